"""
工具模块
"""

from .diagnostics import (
    Diagnostic,
    DiagnosticObserver,
    LoguruObserver,
    RecordingObserver,
    describe_error,
)
from .profiling import profile_async

__all__ = [
    # Diagnostics
    "Diagnostic",
    "DiagnosticObserver",
    "LoguruObserver",
    "RecordingObserver",
    "describe_error",

    # Profiling
    "profile_async",
]

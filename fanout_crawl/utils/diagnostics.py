"""
诊断观察者模块
编排层不直接打印失败，而是把 (operation_id, phase, error_kind, detail) 交给观察者
"""

from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional
from loguru import logger


@dataclass(frozen=True)
class Diagnostic:
    """一条诊断记录"""
    operation_id: str
    phase: str
    error_kind: str
    detail: str

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典"""
        return asdict(self)


def describe_error(error: Optional[BaseException]) -> str:
    """取异常类型名，用作 error_kind"""
    if error is None:
        return "Unknown"
    return type(error).__name__


class DiagnosticObserver:
    """
    观察者基类
    子类实现 on_diagnostic 即可
    """

    def on_diagnostic(self, diagnostic: Diagnostic) -> None:
        raise NotImplementedError

    def report(
        self,
        operation_id: Any,
        phase: str,
        error_kind: str,
        detail: Any = "",
    ) -> Diagnostic:
        """
        构造并分发一条诊断

        Args:
            operation_id: 操作标识（页码、实体 id 等）
            phase: 所处阶段，如 "page" / "grouping" / "standalone"
            error_kind: 错误类别
            detail: 详细信息（异常或字符串）

        Returns:
            生成的 Diagnostic
        """
        diagnostic = Diagnostic(
            operation_id=str(operation_id),
            phase=phase,
            error_kind=error_kind,
            detail=str(detail),
        )
        self.on_diagnostic(diagnostic)
        return diagnostic

    def report_error(self, operation_id: Any, phase: str, error: BaseException) -> Diagnostic:
        return self.report(operation_id, phase, describe_error(error), error)


class LoguruObserver(DiagnosticObserver):
    """默认观察者：写入 loguru"""

    def __init__(self, name: str = "Diagnostics"):
        self.name = name

    def on_diagnostic(self, diagnostic: Diagnostic) -> None:
        logger.warning(
            f"[{self.name}] {diagnostic.phase} {diagnostic.operation_id}: "
            f"{diagnostic.error_kind}: {diagnostic.detail}"
        )


class RecordingObserver(DiagnosticObserver):
    """
    记录型观察者
    保留全部诊断，供测试断言或调用方判断结果是否不完整
    """

    def __init__(self, forward: Optional[DiagnosticObserver] = None):
        self.diagnostics: List[Diagnostic] = []
        self.forward = forward

    def on_diagnostic(self, diagnostic: Diagnostic) -> None:
        self.diagnostics.append(diagnostic)
        if self.forward is not None:
            self.forward.on_diagnostic(diagnostic)

    @property
    def partial(self) -> bool:
        """是否出现过任何失败（即结果可能不完整）"""
        return bool(self.diagnostics)

    def by_phase(self, phase: str) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.phase == phase]

    def kinds(self) -> List[str]:
        return [d.error_kind for d in self.diagnostics]

    def clear(self) -> None:
        self.diagnostics.clear()

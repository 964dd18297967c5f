"""
Pipeline 模块
"""

from .waitable import Waitable, WaitableState, create_waitable, launch
from .coordinator import (
    FirstSettled,
    Completed,
    combine_first,
    combine_all_settled,
    iterate_as_completed,
    raise_if_invalid_state,
)
from .batch import run_batch
from .window import (
    PageExtent,
    PageWindow,
    PageSource,
    WindowResult,
    CrawlWindow,
    crawl_window,
    resolve_page_count,
)
from .fanout import (
    GroupedEntry,
    StandaloneEntry,
    ResultEntry,
    CanonicalRegistry,
    GroupResolution,
    GroupSource,
    StandaloneListing,
    FanoutResult,
    FanoutDedup,
    fanout_dedup,
)

__all__ = [
    # Waitable
    "Waitable",
    "WaitableState",
    "create_waitable",
    "launch",

    # Combinators
    "FirstSettled",
    "Completed",
    "combine_first",
    "combine_all_settled",
    "iterate_as_completed",
    "raise_if_invalid_state",
    "run_batch",

    # Window
    "PageExtent",
    "PageWindow",
    "PageSource",
    "WindowResult",
    "CrawlWindow",
    "crawl_window",
    "resolve_page_count",

    # Fan-out
    "GroupedEntry",
    "StandaloneEntry",
    "ResultEntry",
    "CanonicalRegistry",
    "GroupResolution",
    "GroupSource",
    "StandaloneListing",
    "FanoutResult",
    "FanoutDedup",
    "fanout_dedup",
]

"""
批量处理驱动
对一组条目并发执行 worker，每完成一个就回调一次进度，最后以 (None, None) 通知全部完成
"""

import asyncio
from typing import Any, Awaitable, Callable, Iterable, List, Optional
from loguru import logger

from ..utils.diagnostics import DiagnosticObserver, LoguruObserver
from .coordinator import iterate_as_completed, raise_if_invalid_state
from .waitable import Waitable, launch


ProgressCallback = Callable[[Optional[Any], Optional[Waitable]], None]


async def run_batch(
    items: Iterable[Any],
    worker: Callable[[Any], Awaitable[Any]],
    on_progress: Optional[ProgressCallback] = None,
    concurrency: Optional[int] = None,
    observer: Optional[DiagnosticObserver] = None,
) -> List[Waitable]:
    """
    批量执行

    Args:
        items: 待处理条目
        worker: 对单个条目执行的协程函数
        on_progress: 进度回调 (item, waitable)；结束时调用 (None, None)
        concurrency: 最大并发数，None 表示不限制
        observer: 诊断观察者

    Returns:
        按完成顺序排列的已 settle 的 Waitable 列表
    """
    observer = observer or LoguruObserver("Batch")
    semaphore = asyncio.Semaphore(concurrency) if concurrency else None

    async def _guarded(item):
        if semaphore is None:
            return await worker(item)
        async with semaphore:
            return await worker(item)

    group = [launch(_guarded(item), payload=item) for item in items]
    logger.info(f"[Batch] Started {len(group)} operations (concurrency={concurrency or 'unbounded'})")

    done: List[Waitable] = []
    async for waitable in iterate_as_completed(group):
        raise_if_invalid_state(waitable)
        if waitable.rejected:
            observer.report_error(waitable.payload, "batch", waitable.reason)
        if on_progress is not None:
            on_progress(waitable.payload, waitable)
        done.append(waitable)

    if on_progress is not None:
        on_progress(None, None)

    ok = sum(1 for w in done if w.fulfilled)
    logger.info(f"[Batch] Completed: {ok}/{len(done)} successful")
    return done

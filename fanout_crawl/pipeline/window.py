"""
CrawlWindow - 分页窗口爬取
1. 首页必抓，提取条目和分页信号（总数 / 末页页码）
2. 推算总页数：优先末页页码，其次 ceil(总数 / 每页条数)，否则未知
3. 以固定窗口 W 并发抓取后续页，单页失败只记录不中断
4. 按页码升序合并，页内保持源顺序
"""

import asyncio
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, List, Optional
from loguru import logger

from ..config import CrawlConfig
from ..errors import InvalidState, MandatoryFetchFailure, ParseFailure
from ..utils.diagnostics import DiagnosticObserver, LoguruObserver
from .coordinator import combine_all_settled, raise_if_invalid_state
from .waitable import launch


@dataclass
class PageExtent:
    """分页元数据；两者都缺失表示范围未知"""
    total_count: Optional[int] = None
    last_page: Optional[int] = None


@dataclass
class PageWindow:
    """窗口游标，只由所属爬取循环修改"""
    start_index: int
    batch_size: int
    total_known: Optional[int] = None

    def next_batch(self) -> List[int]:
        end = self.start_index + self.batch_size - 1
        if self.total_known is not None:
            end = min(end, self.total_known)
        return list(range(self.start_index, end + 1))

    def advance(self, past: int) -> None:
        self.start_index = past + 1

    @property
    def exhausted(self) -> bool:
        return self.total_known is not None and self.start_index > self.total_known


@dataclass
class WindowResult:
    """窗口爬取结果"""
    items: List[Any]
    page_count: Optional[int]
    fetched_pages: List[int] = field(default_factory=list)
    failed_pages: List[int] = field(default_factory=list)
    batches: List[List[int]] = field(default_factory=list)


class PageSource(ABC):
    """
    分页数据源协作者
    fetch_page 负责传输，extract_items / extract_extent 负责解析
    """

    name: str = "source"

    @abstractmethod
    async def fetch_page(self, index: int) -> Any:
        """抓取第 index 页，返回文档对象"""

    @abstractmethod
    def extract_items(self, document: Any, index: int) -> List[Any]:
        """从文档中提取条目，保持源顺序"""

    def extract_extent(self, document: Any) -> PageExtent:
        """提取分页信号，默认未知"""
        return PageExtent()


def resolve_page_count(extent: PageExtent, page_size: int) -> Optional[int]:
    """
    推算总页数

    Args:
        extent: 首页提取到的分页信号
        page_size: 每页条目数

    Returns:
        总页数（末页页码），未知时返回 None
    """
    if extent.last_page is not None:
        return extent.last_page
    if extent.total_count is not None and page_size > 0:
        return math.ceil(extent.total_count / page_size)
    return None


class CrawlWindow:
    """
    有界并发的分页爬取

    每次 run() 拥有独立的 PageWindow 游标，不在多次调用之间共享。
    """

    def __init__(
        self,
        source: PageSource,
        config: Optional[CrawlConfig] = None,
        observer: Optional[DiagnosticObserver] = None,
        cancel: Optional[asyncio.Event] = None,
    ):
        self.source = source
        self.config = config or CrawlConfig()
        self.cancel = cancel
        self.source_id = getattr(source, "name", "source")
        self.name = f"CrawlWindow:{self.source_id}"
        self.observer = observer or LoguruObserver(self.name)

        if self.config.window_size < 1:
            raise ValueError("window_size must be >= 1")

    def _op(self, index: int) -> str:
        return f"{self.source_id}:{index}"

    async def _fetch_first(self, index: int):
        try:
            document = await self.source.fetch_page(index)
            items = list(self.source.extract_items(document, index))
        except InvalidState:
            raise
        except Exception as exc:
            logger.error(f"[{self.name}] Mandatory page {index} failed: {exc}")
            raise MandatoryFetchFailure(index, exc) from exc

        try:
            extent = self.source.extract_extent(document) or PageExtent()
        except InvalidState:
            raise
        except Exception as exc:
            self.observer.report_error(self._op(index), "extent", exc)
            extent = PageExtent()
        return items, extent

    async def run(self) -> WindowResult:
        first = self.config.first_page
        items, extent = await self._fetch_first(first)
        page_count = resolve_page_count(extent, self.config.page_size)
        expected = extent.total_count

        result = WindowResult(items=items, page_count=page_count, fetched_pages=[first])
        window = PageWindow(
            start_index=first + 1,
            batch_size=self.config.window_size,
            total_known=page_count,
        )

        logger.info(
            f"[{self.name}] Page {first}: {len(items)} items, "
            f"page_count={page_count if page_count is not None else 'unknown'}, "
            f"expected_items={expected if expected is not None else 'unknown'}"
        )

        while True:
            if window.exhausted:
                break
            if expected is not None and len(result.items) >= expected:
                logger.debug(f"[{self.name}] Expected item count {expected} reached")
                break
            if len(result.batches) >= self.config.max_batches:
                self.observer.report(
                    self._op(window.start_index), "window", "BatchLimit",
                    f"stopped after {self.config.max_batches} batches",
                )
                break
            if self.cancel is not None and self.cancel.is_set():
                logger.info(f"[{self.name}] Cancelled before page {window.start_index}")
                break

            indices = window.next_batch()
            result.batches.append(indices)
            new_items = await self._run_batch(indices, result)
            window.advance(indices[-1])

            batch_failed = all(i in result.failed_pages for i in indices)
            if page_count is None:
                if batch_failed:
                    self.observer.report(
                        self._op(indices[0]), "window", "Inconclusive",
                        f"every page in batch {indices[0]}-{indices[-1]} failed, extent unknown",
                    )
                    break
                if new_items == 0:
                    break
            elif batch_failed and not window.exhausted:
                self.observer.report(
                    self._op(indices[0]), "window", "DataLoss",
                    f"every page in batch {indices[0]}-{indices[-1]} failed, "
                    f"{page_count - indices[-1]} pages remain",
                )

        logger.info(
            f"[{self.name}] Done: {len(result.items)} items from {len(result.fetched_pages)} pages "
            f"({len(result.failed_pages)} failed, {len(result.batches)} batches)"
        )
        return result

    async def _run_batch(self, indices: List[int], result: WindowResult) -> int:
        group = [launch(self.source.fetch_page(i), payload=i) for i in indices]
        settled = await combine_all_settled(group)

        new_items = 0
        for waitable in settled:
            raise_if_invalid_state(waitable)
            index = waitable.payload
            if waitable.rejected:
                self.observer.report_error(self._op(index), "page", waitable.reason)
                result.failed_pages.append(index)
                continue
            try:
                page_items = list(self.source.extract_items(waitable.value, index))
            except InvalidState:
                raise
            except Exception as exc:
                failure = ParseFailure(self._op(index), str(exc))
                self.observer.report_error(self._op(index), "page", failure)
                result.failed_pages.append(index)
                continue
            result.items.extend(page_items)
            result.fetched_pages.append(index)
            new_items += len(page_items)
        return new_items


async def crawl_window(
    source: PageSource,
    config: Optional[CrawlConfig] = None,
    observer: Optional[DiagnosticObserver] = None,
    cancel: Optional[asyncio.Event] = None,
) -> WindowResult:
    """
    便捷入口；配置了 crawl_timeout 时整次爬取受 asyncio.wait_for 约束

    超时抛出 asyncio.TimeoutError；已发出的页面请求不会被取消。
    """
    config = config or CrawlConfig()
    crawler = CrawlWindow(source, config=config, observer=observer, cancel=cancel)
    if config.crawl_timeout:
        return await asyncio.wait_for(crawler.run(), timeout=config.crawl_timeout)
    return await crawler.run()

"""
HtmlListingSource - HTML 分页列表数据源
通过 CSS 选择器提取条目，通过分页控件或"共 N 条"之类的文本提取分页信号
"""

import re
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin
from loguru import logger

from ..pipeline.window import PageExtent, PageSource
from .fetcher import FetchAgent


class HtmlListingSource(PageSource):
    """
    基于 CSS 选择器的分页列表

    - url_template 中用 {page} 表示页码
    - 配置了 pagination_selector 但页面上没有分页控件时，视为只有一页
    - count_pattern 是匹配总条目数的正则，取命名组 count，没有则取第 1 组
    """

    def __init__(
        self,
        fetcher: FetchAgent,
        url_template: str,
        item_selector: str,
        pagination_selector: Optional[str] = None,
        count_pattern: Optional[str] = None,
        page_number_pattern: str = r"(\d+)/?(?:[?#].*)?$",
        name: str = "html-listing",
    ):
        if "{page}" not in url_template:
            raise ValueError("url_template must contain a {page} placeholder")
        self.fetcher = fetcher
        self.url_template = url_template
        self.item_selector = item_selector
        self.pagination_selector = pagination_selector
        self.count_regex = re.compile(count_pattern) if count_pattern else None
        self.page_number_regex = re.compile(page_number_pattern)
        self.name = name

    def page_url(self, index: int) -> str:
        return self.url_template.format(page=index)

    async def fetch_page(self, index: int) -> Any:
        return await self.fetcher.process_with_metrics(self.page_url(index))

    def extract_items(self, document: Any, index: int) -> List[Dict[str, Any]]:
        """
        提取条目

        Args:
            document: BeautifulSoup 文档
            index: 页码

        Returns:
            [{"url", "title", "page"}]，保持页面内顺序
        """
        base = self.page_url(index)
        items = []
        for node in document.select(self.item_selector):
            link = node if node.name == "a" else (node.find_parent("a") or node.find("a"))
            href = link.get("href") if link is not None else None
            items.append({
                "url": urljoin(base, href) if href else None,
                "title": node.get_text(" ", strip=True),
                "page": index,
            })
        return items

    def _page_number(self, link: Any) -> Optional[int]:
        href = link.get("href") or ""
        match = self.page_number_regex.search(href)
        if match:
            return int(match.group(1))
        text = link.get_text(strip=True)
        return int(text) if text.isdigit() else None

    def extract_extent(self, document: Any) -> PageExtent:
        total_count = None
        if self.count_regex is not None:
            match = self.count_regex.search(document.get_text(" ", strip=True))
            if match:
                groups = match.groupdict()
                total_count = int(groups["count"] if "count" in groups else match.group(1))

        last_page = None
        if self.pagination_selector:
            links = document.select(self.pagination_selector)
            numbers = [n for n in (self._page_number(link) for link in links) if n is not None]
            if numbers:
                last_page = max(numbers)
            elif not links:
                last_page = 1

        logger.debug(f"[{self.name}] Extent: total_count={total_count}, last_page={last_page}")
        return PageExtent(total_count=total_count, last_page=last_page)

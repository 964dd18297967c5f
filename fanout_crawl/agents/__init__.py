"""
Agents 模块
外部协作者：抓取、分页列表解析
"""

from .base import BaseAgent
from .fetcher import FetchAgent, create_fetch_agent
from .listing import HtmlListingSource

__all__ = [
    # Base
    "BaseAgent",

    # Fetcher
    "FetchAgent",
    "create_fetch_agent",

    # Listing
    "HtmlListingSource",
]

"""
错误类型模块
区分可恢复的单次操作失败与致命的编程错误
"""

from typing import Any, Optional


class CrawlError(Exception):
    """所有爬取相关错误的基类"""


class TransportFailure(CrawlError):
    """
    传输层失败（连接错误、超时、非 2xx 状态码）
    单页/单实体级别，可恢复
    """

    def __init__(self, url: str, status: Optional[int] = None, detail: str = ""):
        self.url = url
        self.status = status
        self.detail = detail
        msg = f"transport failure for {url}"
        if status is not None:
            msg += f" (HTTP {status})"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class ParseFailure(CrawlError):
    """
    解析失败（JSON 解码失败、响应中缺少预期字段等）
    单页/单实体级别，可恢复
    """

    def __init__(self, source: Any, detail: str = ""):
        self.source = source
        self.detail = detail
        super().__init__(f"parse failure for {source}: {detail}" if detail else f"parse failure for {source}")


class MandatoryFetchFailure(CrawlError):
    """首页获取失败：对该次爬取是致命的，需要抛给调用方"""

    def __init__(self, page_index: int, cause: Optional[BaseException] = None):
        self.page_index = page_index
        self.cause = cause
        super().__init__(f"mandatory page {page_index} could not be fetched: {cause}")


class InvalidState(RuntimeError):
    """
    Waitable 状态非法转换（重复 resolve/reject）
    属于使用错误，内部从不捕获
    """

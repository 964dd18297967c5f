"""
FetchAgent - 抓取协作者
使用 aiohttp 异步请求，带重试和指数退避；
传输错误统一转换为 TransportFailure，解码错误转换为 ParseFailure
"""

import asyncio
import json
from dataclasses import asdict
from typing import Any, List, Optional, Union

import aiohttp
from bs4 import BeautifulSoup
from loguru import logger
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from ..config import FetchConfig
from ..errors import ParseFailure, TransportFailure
from ..utils.profiling import profile_async
from .base import BaseAgent


def _is_retryable(exc: BaseException) -> bool:
    """只重试连接类错误、429 和 5xx"""
    if not isinstance(exc, TransportFailure):
        return False
    return exc.status is None or exc.status == 429 or exc.status >= 500


class FetchAgent(BaseAgent):
    """
    抓取 Agent
    提供 fetch_text / fetch_json / fetch_dom 三种粒度
    """

    def __init__(
        self,
        name: str = "FetchAgent",
        config: Optional[FetchConfig] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        """
        初始化 FetchAgent

        Args:
            name: Agent 名称
            config: 抓取配置
            session: 外部传入的 ClientSession（传入时由调用方负责关闭）
        """
        self.fetch_config = config or FetchConfig()
        super().__init__(name, asdict(self.fetch_config))

        self._session = session
        self._owns_session = session is None

        logger.info(
            f"[{self.name}] Initialized with timeout={self.fetch_config.request_timeout}, "
            f"max_retries={self.fetch_config.max_retries}"
        )

    async def _get_session(self) -> aiohttp.ClientSession:
        """获取或创建 ClientSession"""
        if self._session is None:
            headers = {"User-Agent": self.fetch_config.user_agent}
            headers.update(self.fetch_config.headers)
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.fetch_config.request_timeout),
                headers=headers,
            )
        return self._session

    def can_process(self, input_data: Any) -> bool:
        if isinstance(input_data, str):
            return input_data.startswith(("http://", "https://"))
        elif isinstance(input_data, dict):
            return "url" in input_data
        return False

    async def _get_once(self, url: str) -> str:
        session = await self._get_session()
        try:
            async with session.get(url) as response:
                if response.status >= 400:
                    raise TransportFailure(url, status=response.status)
                return await response.text()
        except aiohttp.ClientError as exc:
            raise TransportFailure(url, detail=str(exc)) from exc
        except asyncio.TimeoutError as exc:
            raise TransportFailure(url, detail="timeout") from exc

    async def fetch_text(self, url: str) -> str:
        """
        抓取文本（带重试）

        Args:
            url: 要抓取的 URL

        Returns:
            响应文本
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(max(1, self.fetch_config.max_retries)),
            wait=wait_exponential(
                multiplier=1,
                min=self.fetch_config.retry_min_wait,
                max=self.fetch_config.retry_max_wait,
            ),
            retry=retry_if_exception(_is_retryable),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.debug(f"[{self.name}] Retry #{attempt.retry_state.attempt_number - 1}: {url}")
                return await self._get_once(url)

    async def fetch_json(self, url: str) -> Any:
        text = await self.fetch_text(url)
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise ParseFailure(url, f"invalid JSON: {exc}") from exc

    @profile_async(
        desc="fetch_dom",
        enabled=lambda self: self.fetch_config.enable_profiling,
    )
    async def fetch_dom(
        self,
        url: str,
        selector: Optional[str] = None,
    ) -> Union[BeautifulSoup, List[Any]]:
        """
        抓取并解析 HTML

        Args:
            url: 要抓取的 URL
            selector: 可选的 CSS 选择器；给出时返回匹配节点列表

        Returns:
            BeautifulSoup 文档或节点列表
        """
        text = await self.fetch_text(url)
        try:
            soup = BeautifulSoup(text, "html.parser")
        except Exception as exc:
            raise ParseFailure(url, str(exc)) from exc
        if selector:
            return soup.select(selector)
        return soup

    async def process(self, input_data: Any) -> BeautifulSoup:
        url = input_data if isinstance(input_data, str) else input_data.get("url")
        return await self.fetch_dom(url)

    async def cleanup(self):
        """清理资源"""
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None
            logger.info(f"[{self.name}] Cleanup completed")

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.cleanup()


def create_fetch_agent(
    name: str = "FetchAgent",
    config: Optional[FetchConfig] = None,
    session: Optional[aiohttp.ClientSession] = None,
) -> FetchAgent:
    """
    工厂函数：创建 FetchAgent 实例

    Args:
        name: Agent 名称
        config: 抓取配置
        session: 可选的共享 ClientSession

    Returns:
        FetchAgent 实例
    """
    return FetchAgent(name=name, config=config, session=session)

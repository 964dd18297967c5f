"""
配置模块
集中管理所有配置参数
"""

import os
from dataclasses import dataclass, field
from typing import Dict, Optional

from dotenv import load_dotenv


@dataclass
class CrawlConfig:
    """分页窗口爬取配置"""

    # 窗口参数
    window_size: int = 4          # 每批并发抓取的页数
    page_size: int = 30           # 每页条目数（用于由总数推算页数）
    first_page: int = 1           # 起始页码

    # 安全上限：最多抓取多少批
    max_batches: int = 250

    # 整次爬取的超时（秒），None 表示不限
    crawl_timeout: Optional[float] = None


@dataclass
class FanoutConfig:
    """分组 + 独立条目合并配置"""

    # 每个批量请求携带的 id 数
    standalone_batch_size: int = 48

    # 每轮同时在途的批量请求数，None 表示一轮全部发出
    standalone_concurrency: Optional[int] = None


@dataclass
class FetchConfig:
    """抓取协作者配置"""

    request_timeout: int = 30
    max_retries: int = 3
    retry_min_wait: float = 1.0
    retry_max_wait: float = 10.0
    user_agent: str = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    headers: Dict[str, str] = field(default_factory=dict)

    # 异步耗时统计
    enable_profiling: bool = False


# 默认配置实例
DEFAULT_CRAWL_CONFIG = CrawlConfig()
DEFAULT_FANOUT_CONFIG = FanoutConfig()
DEFAULT_FETCH_CONFIG = FetchConfig()


def get_config():
    """获取默认配置字典（用于命令行参数覆盖）"""
    return {
        "crawl": DEFAULT_CRAWL_CONFIG,
        "fanout": DEFAULT_FANOUT_CONFIG,
        "fetch": DEFAULT_FETCH_CONFIG,
    }


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


def _env_float(name: str, default: Optional[float]) -> Optional[float]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def load_config_from_env(dotenv_path: Optional[str] = None) -> tuple:
    """
    从 .env 文件和 FANOUT_* 环境变量加载配置

    Args:
        dotenv_path: .env 文件路径，None 时按 python-dotenv 的默认规则查找

    Returns:
        (CrawlConfig, FanoutConfig, FetchConfig)
    """
    load_dotenv(dotenv_path)

    crawl_config = CrawlConfig(
        window_size=_env_int("FANOUT_WINDOW_SIZE", DEFAULT_CRAWL_CONFIG.window_size),
        page_size=_env_int("FANOUT_PAGE_SIZE", DEFAULT_CRAWL_CONFIG.page_size),
        first_page=_env_int("FANOUT_FIRST_PAGE", DEFAULT_CRAWL_CONFIG.first_page),
        max_batches=_env_int("FANOUT_MAX_BATCHES", DEFAULT_CRAWL_CONFIG.max_batches),
        crawl_timeout=_env_float("FANOUT_CRAWL_TIMEOUT", DEFAULT_CRAWL_CONFIG.crawl_timeout),
    )

    fanout_config = FanoutConfig(
        standalone_batch_size=_env_int(
            "FANOUT_STANDALONE_BATCH_SIZE", DEFAULT_FANOUT_CONFIG.standalone_batch_size
        ),
        standalone_concurrency=_env_int(
            "FANOUT_STANDALONE_CONCURRENCY", DEFAULT_FANOUT_CONFIG.standalone_concurrency
        ),
    )

    fetch_config = FetchConfig(
        request_timeout=_env_int("FANOUT_REQUEST_TIMEOUT", DEFAULT_FETCH_CONFIG.request_timeout),
        max_retries=_env_int("FANOUT_MAX_RETRIES", DEFAULT_FETCH_CONFIG.max_retries),
        user_agent=os.getenv("FANOUT_USER_AGENT", DEFAULT_FETCH_CONFIG.user_agent),
        enable_profiling=_env_bool("FANOUT_ENABLE_PROFILING", DEFAULT_FETCH_CONFIG.enable_profiling),
    )

    return crawl_config, fanout_config, fetch_config

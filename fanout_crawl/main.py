"""
命令行入口
对一个 HTML 分页列表执行窗口爬取，每个条目输出一行 JSON
"""

import argparse
import asyncio
import json
import sys
from loguru import logger

from .agents import HtmlListingSource, create_fetch_agent
from .config import CrawlConfig, FetchConfig, load_config_from_env
from .errors import MandatoryFetchFailure
from .pipeline import crawl_window
from .utils import LoguruObserver, RecordingObserver


def setup_logging(verbose: bool = False, log_file: bool = False):
    """
    设置日志配置

    Args:
        verbose: 是否启用详细日志
        log_file: 是否额外写入日志文件
    """
    log_level = "DEBUG" if verbose else "INFO"

    logger.remove()  # 移除默认处理器

    # 控制台输出（stdout 留给结果）
    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>",
        level=log_level,
        colorize=True,
    )

    if log_file:
        logger.add(
            "logs/fanout_crawl_{time:YYYYMMDD_HHmmss}.log",
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {message}",
            level="DEBUG",
            rotation="50 MB",
            retention="7 days",
        )


def _override(value, default):
    return value if value is not None else default


def load_config_from_args(args) -> tuple:
    """
    环境变量提供默认值，命令行参数覆盖

    Returns:
        (CrawlConfig, FetchConfig)
    """
    env_crawl, _, env_fetch = load_config_from_env()

    crawl_config = CrawlConfig(
        window_size=_override(args.window_size, env_crawl.window_size),
        page_size=_override(args.page_size, env_crawl.page_size),
        first_page=_override(args.first_page, env_crawl.first_page),
        max_batches=_override(args.max_batches, env_crawl.max_batches),
        crawl_timeout=_override(args.timeout, env_crawl.crawl_timeout),
    )

    fetch_config = FetchConfig(
        request_timeout=_override(args.request_timeout, env_fetch.request_timeout),
        max_retries=_override(args.max_retries, env_fetch.max_retries),
        user_agent=env_fetch.user_agent,
        enable_profiling=args.verbose or env_fetch.enable_profiling,
    )

    return crawl_config, fetch_config


def print_config_summary(crawl_config: CrawlConfig, fetch_config: FetchConfig, url_template: str):
    logger.info("=" * 60)
    logger.info("fanout-crawl - windowed listing crawl")
    logger.info("=" * 60)
    logger.info(f"URL template: {url_template}")
    logger.info(f"Window size: {crawl_config.window_size}")
    logger.info(f"Page size: {crawl_config.page_size}")
    logger.info(f"First page: {crawl_config.first_page}")
    logger.info(f"Max batches: {crawl_config.max_batches}")
    logger.info(f"Request timeout: {fetch_config.request_timeout}s, retries: {fetch_config.max_retries}")
    logger.info("=" * 60)


async def main_async(args) -> int:
    """
    异步主函数

    Returns:
        进程退出码
    """
    crawl_config, fetch_config = load_config_from_args(args)
    print_config_summary(crawl_config, fetch_config, args.url_template)

    observer = RecordingObserver(forward=LoguruObserver("Crawl"))

    async with create_fetch_agent(config=fetch_config) as fetcher:
        source = HtmlListingSource(
            fetcher,
            url_template=args.url_template,
            item_selector=args.item_selector,
            pagination_selector=args.pagination_selector,
            count_pattern=args.count_pattern,
        )
        try:
            result = await crawl_window(source, config=crawl_config, observer=observer)
        except MandatoryFetchFailure as e:
            logger.error(f"[Main] {e}")
            return 2
        finally:
            fetcher.log_metrics()

    for item in result.items:
        sys.stdout.write(json.dumps(item, ensure_ascii=False) + "\n")

    if observer.partial:
        logger.warning(f"[Main] Partial result: {len(observer.diagnostics)} failures")
        return 1
    return 0


def parse_arguments(argv=None):
    """解析命令行参数"""
    parser = argparse.ArgumentParser(
        description="Windowed concurrent crawl of a paginated HTML listing"
    )

    parser.add_argument(
        "url_template",
        type=str,
        help="Listing URL with a {page} placeholder",
    )
    parser.add_argument(
        "--item-selector",
        type=str,
        required=True,
        help="CSS selector for listing items",
    )
    parser.add_argument(
        "--pagination-selector",
        type=str,
        help="CSS selector for pagination links",
    )
    parser.add_argument(
        "--count-pattern",
        type=str,
        help="Regex matching the total item count (group 'count' or group 1)",
    )

    # 窗口参数
    parser.add_argument("--window-size", type=int, help="Pages fetched concurrently per batch")
    parser.add_argument("--page-size", type=int, help="Items per page")
    parser.add_argument("--first-page", type=int, help="First page index")
    parser.add_argument("--max-batches", type=int, help="Safety bound on batches")
    parser.add_argument("--timeout", type=float, help="Overall crawl timeout in seconds")

    # 抓取参数
    parser.add_argument("--request-timeout", type=int, help="Per-request timeout in seconds")
    parser.add_argument("--max-retries", type=int, help="Attempts per request")

    # 其他
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")
    parser.add_argument("--log-file", action="store_true", help="Also write logs under logs/")

    return parser.parse_args(argv)


def main(argv=None):
    """
    主函数入口
    """
    args = parse_arguments(argv)
    setup_logging(verbose=args.verbose, log_file=args.log_file)

    try:
        code = asyncio.run(main_async(args))
    except KeyboardInterrupt:
        logger.info("[Main] Interrupted")
        code = 130
    except asyncio.TimeoutError:
        logger.error("[Main] Crawl timed out")
        code = 3
    sys.exit(code)


if __name__ == "__main__":
    main()

"""
异步耗时统计
"""

import functools
import time
from typing import Any, Callable, Optional
from loguru import logger


def profile_async(
    desc: Optional[str] = None,
    args_desc: Optional[Callable[..., str]] = None,
    enabled: Callable[[Any], bool] = lambda self: True,
):
    """
    装饰器：记录协程方法的耗时（DEBUG 级别）

    Args:
        desc: 日志中的描述，默认使用函数名
        args_desc: 把调用参数格式化为字符串的函数
        enabled: 接收 self，返回是否记录
    """

    def decorator(fn):
        label = desc or fn.__name__

        @functools.wraps(fn)
        async def wrapper(self, *args, **kwargs):
            if not enabled(self):
                return await fn(self, *args, **kwargs)
            start_time = time.perf_counter()
            try:
                return await fn(self, *args, **kwargs)
            finally:
                elapsed = (time.perf_counter() - start_time) * 1000
                described = args_desc(*args, **kwargs) if args_desc else ",".join(map(str, args))
                logger.debug(f"[Profiling] {label}: took {elapsed:.1f} ms: {described}")

        return wrapper

    return decorator

"""
Waitable - 一次性完成句柄
显式的 pending -> fulfilled / rejected 状态机，只允许转换一次
"""

import asyncio
import itertools
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional

from ..errors import InvalidState


_ids = itertools.count(1)
# 全局 settle 序号，用于还原真实完成顺序
_settle_seq = itertools.count(1)


class WaitableState(str, Enum):
    PENDING = "pending"
    FULFILLED = "fulfilled"
    REJECTED = "rejected"


class Waitable:
    """
    包装单个待完成异步操作的句柄

    - resolve / reject 只能从 PENDING 调用一次，否则抛 InvalidState
    - 任意数量的观察者可以同时 await wait()，互不消费
    - payload 是调用方附带的元数据，引擎不解释它
    """

    def __init__(self, payload: Any = None):
        self.id: int = next(_ids)
        self.payload = payload
        self.state = WaitableState.PENDING
        self.value: Any = None
        self.reason: Optional[BaseException] = None
        self.settle_seq: Optional[int] = None

        self._settled = asyncio.Event()
        self._callbacks: List[Callable[["Waitable"], None]] = []
        self._task: Optional[asyncio.Future] = None

    def __repr__(self) -> str:
        return f"<Waitable #{self.id} {self.state.value} payload={self.payload!r}>"

    # -------------------------
    # State transitions
    # -------------------------
    def _transition(self, target: WaitableState, verb: str) -> None:
        # check + set 之间没有挂起点
        if self.state is not WaitableState.PENDING:
            raise InvalidState(f"Invalid state {self.state.value} for {verb} (waitable #{self.id})")
        self.state = target
        self.settle_seq = next(_settle_seq)

    def resolve(self, value: Any = None) -> None:
        self._transition(WaitableState.FULFILLED, "resolve")
        self.value = value
        self._signal()

    def reject(self, reason: BaseException) -> None:
        self._transition(WaitableState.REJECTED, "reject")
        self.reason = reason
        self._signal()

    def _signal(self) -> None:
        self._settled.set()
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback(self)

    # -------------------------
    # Observation
    # -------------------------
    @property
    def pending(self) -> bool:
        return self.state is WaitableState.PENDING

    @property
    def settled(self) -> bool:
        return self.state is not WaitableState.PENDING

    @property
    def fulfilled(self) -> bool:
        return self.state is WaitableState.FULFILLED

    @property
    def rejected(self) -> bool:
        return self.state is WaitableState.REJECTED

    async def wait(self) -> "Waitable":
        """等待 settle，返回自身；失败不会以异常形式抛出"""
        await self._settled.wait()
        return self

    def result(self) -> Any:
        """
        取结果

        Returns:
            fulfilled 时的 value

        Raises:
            rejected 时抛出 reason；pending 时抛 InvalidState
        """
        if self.state is WaitableState.FULFILLED:
            return self.value
        if self.state is WaitableState.REJECTED:
            raise self.reason
        raise InvalidState(f"Waitable #{self.id} is still pending")

    def add_done_callback(self, callback: Callable[["Waitable"], None]) -> None:
        """注册完成回调；已 settle 时立即同步调用"""
        if self.settled:
            callback(self)
        else:
            self._callbacks.append(callback)

    def remove_done_callback(self, callback: Callable[["Waitable"], None]) -> bool:
        try:
            self._callbacks.remove(callback)
            return True
        except ValueError:
            return False


def create_waitable(payload: Any = None) -> Waitable:
    """工厂函数：创建处于 pending 状态的 Waitable"""
    return Waitable(payload)


def launch(operation: Awaitable[Any], payload: Any = None) -> Waitable:
    """
    把一个外部异步操作（抓取、解析等）包装成 Waitable 并立即调度

    操作抛出的任何 Exception 都会转为 reject，不会逃逸。
    InvalidState 也只记录在 Waitable 上，由消费方通过 raise_if_invalid_state 抛出。

    Args:
        operation: 协程或其他 awaitable
        payload: 附带的元数据

    Returns:
        Waitable 实例
    """
    waitable = Waitable(payload)

    async def _run():
        try:
            value = await operation
        except asyncio.CancelledError as exc:
            waitable.reject(exc)
            raise
        except Exception as exc:
            waitable.reject(exc)
        else:
            waitable.resolve(value)

    waitable._task = asyncio.ensure_future(_run())
    return waitable

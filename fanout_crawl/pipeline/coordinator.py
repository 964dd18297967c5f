"""
Waitable 组合器
- combine_first：任一成员 settle 即返回（成功/失败一视同仁）
- combine_all_settled：等待全部 settle，保持输入顺序
- iterate_as_completed：按真实完成顺序逐个产出
所有组合器都只观察成员，不取消、不修改成员
"""

import asyncio
from collections.abc import Sequence
from typing import Any, AsyncIterator, Iterable, List, NamedTuple, Optional, Tuple

from ..errors import InvalidState
from .waitable import Waitable


class FirstSettled(NamedTuple):
    winner: Waitable
    index: Optional[int]        # 无序分组时为 None
    remaining: List[Waitable]   # 除 winner 外的全部成员，保持输入顺序


class Completed(NamedTuple):
    member: Waitable
    index: Optional[int]
    outstanding: List[Waitable]


def _materialize(group: Iterable[Waitable]) -> Tuple[List[Waitable], bool]:
    """把分组展开为列表，并判断是否是有序分组"""
    ordered = isinstance(group, Sequence) and not isinstance(group, (str, bytes))
    return list(group), ordered


def _by_settle_order(members: Iterable[Waitable]) -> List[Waitable]:
    return sorted((m for m in members if m.settled), key=lambda m: m.settle_seq)


def raise_if_invalid_state(waitable: Waitable) -> None:
    """InvalidState 是使用错误，消费方不得吞掉"""
    if waitable.rejected and isinstance(waitable.reason, InvalidState):
        raise waitable.reason


async def combine_first(group: Iterable[Waitable], full_result: bool = False) -> Any:
    """
    等待第一个 settle 的成员

    Args:
        group: 有序序列或无序集合
        full_result: 为 True 时返回 FirstSettled(winner, index, remaining)

    Returns:
        winner 或 FirstSettled；本调用自身从不因成员失败而抛错
    """
    members, ordered = _materialize(group)
    if not members:
        raise ValueError("combine_first() needs at least one member")

    already = _by_settle_order(members)
    if already:
        winner = already[0]
    else:
        chosen = asyncio.get_running_loop().create_future()

        def _on_done(waitable: Waitable) -> None:
            if not chosen.done():
                chosen.set_result(waitable)

        for member in members:
            member.add_done_callback(_on_done)
        try:
            winner = await chosen
        finally:
            for member in members:
                member.remove_done_callback(_on_done)

    if not full_result:
        return winner

    position = next(i for i, m in enumerate(members) if m is winner)
    remaining = [m for m in members if m is not winner]
    return FirstSettled(winner, position if ordered else None, remaining)


async def combine_all_settled(group: Iterable[Waitable]) -> List[Waitable]:
    """
    等待全部成员 settle

    有序分组按输入顺序返回；无序分组按调用时的迭代顺序返回（调用内稳定）。
    即使全部成员都 rejected 也不会抛错。
    """
    members, _ = _materialize(group)
    for member in members:
        await member.wait()
    return members


async def iterate_as_completed(
    group: Iterable[Waitable],
    full_result: bool = False,
) -> AsyncIterator[Any]:
    """
    按真实 settle 顺序产出成员

    有限、不可重启。消费方提前停止时，剩余成员保持 outstanding，不会被取消。

    Args:
        group: 有序序列或无序集合
        full_result: 为 True 时每项为 Completed(member, index, outstanding)
    """
    members, ordered = _materialize(group)
    queue: asyncio.Queue = asyncio.Queue()
    remaining_positions = list(enumerate(members))

    # 已 settle 的成员按 settle 序号先入队
    for member in _by_settle_order(members):
        queue.put_nowait(member)

    pending = [m for m in members if m.pending]
    for member in pending:
        member.add_done_callback(queue.put_nowait)

    try:
        for _ in range(len(members)):
            member = await queue.get()
            slot = next(k for k, (_, m) in enumerate(remaining_positions) if m is member)
            index, _ = remaining_positions.pop(slot)
            if full_result:
                outstanding = [m for _, m in remaining_positions]
                yield Completed(member, index if ordered else None, outstanding)
            else:
                yield member
    finally:
        for member in pending:
            member.remove_done_callback(queue.put_nowait)

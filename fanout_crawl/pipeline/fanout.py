"""
FanoutDedup - 分组子爬取 + 独立条目合并去重

同一实体可能经由多个子爬取到达，但只能归属一处：
1. 分组阶段：并发解析全部分组，分组本身及其成员在注册表中登记
2. 独立阶段：过滤掉已登记的 id，按批量大小分块并发请求
3. 认领规则：检查与插入在同一步内完成，中间没有挂起点
4. 失败隔离：单个子爬取失败只记录并排除，不影响兄弟任务
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Hashable, Iterable, List, Mapping, Optional, Tuple, Union
from loguru import logger

from ..config import FanoutConfig
from ..errors import InvalidState, ParseFailure
from ..utils.diagnostics import DiagnosticObserver, LoguruObserver
from .coordinator import combine_all_settled, raise_if_invalid_state
from .waitable import launch


# -------------------------
# Result entries (tagged union)
# -------------------------
@dataclass(frozen=True)
class GroupedEntry:
    """来自分组子爬取的实体"""
    canonical_id: Hashable
    entity: Any
    member_ids: Tuple[Hashable, ...] = ()


@dataclass(frozen=True)
class StandaloneEntry:
    """来自独立列表的实体"""
    canonical_id: Hashable
    entity: Any
    category: str = ""


ResultEntry = Union[GroupedEntry, StandaloneEntry]


class CanonicalRegistry:
    """
    canonical id -> 所属结果条目
    插入即认领；已存在的条目永不替换
    """

    def __init__(self):
        self._owners: Dict[Hashable, ResultEntry] = {}

    def claim(self, canonical_id: Hashable, owner: ResultEntry) -> bool:
        """认领成功返回 True；已被认领返回 False（不覆盖、不合并）"""
        if canonical_id in self._owners:
            return False
        self._owners[canonical_id] = owner
        return True

    def owner_of(self, canonical_id: Hashable) -> Optional[ResultEntry]:
        return self._owners.get(canonical_id)

    def __contains__(self, canonical_id: Hashable) -> bool:
        return canonical_id in self._owners

    def __len__(self) -> int:
        return len(self._owners)


# -------------------------
# Collaborators
# -------------------------
@dataclass
class GroupResolution:
    """分组子爬取的解析结果"""
    canonical_id: Hashable
    entity: Any
    member_ids: List[Hashable] = field(default_factory=list)


class GroupSource(ABC):
    """拥有成员的子爬取（例如系列 -> 其中的作品）"""

    @abstractmethod
    async def resolve(self) -> GroupResolution:
        """解析分组实体并列出它包含的成员 id"""

    def describe(self) -> str:
        return repr(self)


class StandaloneListing(ABC):
    """独立条目列表（例如某一类别下的全部作品 id）"""

    category: str = ""

    @abstractmethod
    def candidate_ids(self) -> Iterable[Hashable]:
        """列表中的候选 id，保持源顺序"""

    @abstractmethod
    async def fetch_batch(self, ids: List[Hashable]) -> Mapping[Hashable, Any]:
        """批量获取一组 id 的原始数据"""

    def build_entity(self, canonical_id: Hashable, raw: Any) -> Any:
        return raw


@dataclass
class FanoutResult:
    entries: List[ResultEntry]
    registry: CanonicalRegistry

    @property
    def grouped(self) -> List[GroupedEntry]:
        return [e for e in self.entries if isinstance(e, GroupedEntry)]

    @property
    def standalone(self) -> List[StandaloneEntry]:
        return [e for e in self.entries if isinstance(e, StandaloneEntry)]


def chunked(ids: List[Hashable], size: int) -> List[List[Hashable]]:
    return [ids[i:i + size] for i in range(0, len(ids), size)]


class FanoutDedup:
    """
    分组 + 独立条目的合并器
    每次 run() 使用独立的 CanonicalRegistry
    """

    def __init__(
        self,
        groups: Iterable[GroupSource] = (),
        listings: Iterable[StandaloneListing] = (),
        config: Optional[FanoutConfig] = None,
        observer: Optional[DiagnosticObserver] = None,
        name: str = "FanoutDedup",
    ):
        self.groups = list(groups)
        self.listings = list(listings)
        self.config = config or FanoutConfig()
        self.observer = observer or LoguruObserver(name)
        self.name = name

        if self.config.standalone_batch_size < 1:
            raise ValueError("standalone_batch_size must be >= 1")

    def _claim(self, registry: CanonicalRegistry, canonical_id: Hashable, owner: ResultEntry, phase: str) -> bool:
        if registry.claim(canonical_id, owner):
            return True
        existing = registry.owner_of(canonical_id)
        self.observer.report(
            canonical_id, phase, "DuplicateClaim",
            f"already claimed by {type(existing).__name__}({existing.canonical_id!r})",
        )
        return False

    async def run(self) -> FanoutResult:
        registry = CanonicalRegistry()
        entries: List[ResultEntry] = []

        await self._run_grouping_phase(registry, entries)
        await self._run_standalone_phase(registry, entries)

        grouped = sum(1 for e in entries if isinstance(e, GroupedEntry))
        logger.info(
            f"[{self.name}] Done: {len(entries)} entries "
            f"({grouped} grouped, {len(entries) - grouped} standalone), "
            f"{len(registry)} ids registered"
        )
        return FanoutResult(entries=entries, registry=registry)

    # -------------------------
    # Phase 1: groups
    # -------------------------
    async def _run_grouping_phase(self, registry: CanonicalRegistry, entries: List[ResultEntry]) -> None:
        if not self.groups:
            return
        logger.info(f"[{self.name}] Grouping phase: {len(self.groups)} sub-crawls")

        group = [launch(source.resolve(), payload=source) for source in self.groups]
        settled = await combine_all_settled(group)

        for waitable in settled:
            raise_if_invalid_state(waitable)
            source = waitable.payload
            if waitable.rejected:
                self.observer.report_error(source.describe(), "grouping", waitable.reason)
                continue

            resolution: GroupResolution = waitable.value
            entry = GroupedEntry(
                canonical_id=resolution.canonical_id,
                entity=resolution.entity,
                member_ids=tuple(resolution.member_ids),
            )
            if not self._claim(registry, entry.canonical_id, entry, "grouping"):
                continue
            entries.append(entry)
            for member_id in entry.member_ids:
                self._claim(registry, member_id, entry, "grouping")

    # -------------------------
    # Phase 2: standalone listings
    # -------------------------
    async def _run_standalone_phase(self, registry: CanonicalRegistry, entries: List[ResultEntry]) -> None:
        size = self.config.standalone_batch_size
        chunks: List[Tuple[StandaloneListing, List[Hashable]]] = []
        for listing in self.listings:
            try:
                candidates = list(listing.candidate_ids())
            except InvalidState:
                raise
            except Exception as exc:
                self.observer.report_error(listing.category, "standalone", exc)
                continue
            remaining = [i for i in candidates if i not in registry]
            chunks.extend((listing, chunk) for chunk in chunked(remaining, size))
        if not chunks:
            return

        per_round = self.config.standalone_concurrency or len(chunks)
        logger.info(
            f"[{self.name}] Standalone phase: {len(chunks)} batch requests "
            f"(batch_size={size}, per_round={per_round})"
        )

        for start in range(0, len(chunks), per_round):
            round_chunks = chunks[start:start + per_round]
            group = [
                launch(listing.fetch_batch(ids), payload=(listing, ids))
                for listing, ids in round_chunks
            ]
            settled = await combine_all_settled(group)
            for waitable in settled:
                raise_if_invalid_state(waitable)
                listing, ids = waitable.payload
                if waitable.rejected:
                    self.observer.report_error(
                        f"{listing.category}:{ids[0]}..", "standalone", waitable.reason
                    )
                    continue
                self._accept_batch(registry, entries, listing, ids, waitable.value or {})

    def _accept_batch(
        self,
        registry: CanonicalRegistry,
        entries: List[ResultEntry],
        listing: StandaloneListing,
        ids: List[Hashable],
        raw_by_id: Mapping[Hashable, Any],
    ) -> None:
        for canonical_id in ids:
            raw = raw_by_id.get(canonical_id)
            if raw is None:
                self.observer.report_error(
                    canonical_id, "standalone", ParseFailure(canonical_id, "missing in response")
                )
                continue
            try:
                entity = listing.build_entity(canonical_id, raw)
            except InvalidState:
                raise
            except Exception as exc:
                self.observer.report_error(canonical_id, "standalone", ParseFailure(canonical_id, str(exc)))
                continue
            entry = StandaloneEntry(canonical_id=canonical_id, entity=entity, category=listing.category)
            if self._claim(registry, canonical_id, entry, "standalone"):
                entries.append(entry)


async def fanout_dedup(
    groups: Iterable[GroupSource] = (),
    listings: Iterable[StandaloneListing] = (),
    config: Optional[FanoutConfig] = None,
    observer: Optional[DiagnosticObserver] = None,
) -> FanoutResult:
    """便捷入口"""
    return await FanoutDedup(groups, listings, config=config, observer=observer).run()

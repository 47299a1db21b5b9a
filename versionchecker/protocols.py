from __future__ import annotations

from typing import Callable, Iterable, Mapping, Optional, Protocol, Sequence, Set

from versionchecker.types import LibraryEntry, PlaytimeStats, ProductFacts, TrackedState


class SessionUsable(Protocol):
    def is_usable(self) -> bool: ...

    def product_info(self, app_ids: Iterable[int]) -> Mapping[int, Mapping]: ...


class Resolver(Protocol):
    def resolve_one(self, remote_id: int) -> Optional[ProductFacts]: ...

    def resolve_many(self, remote_ids: Iterable[int]): ...

    def fetch_build_id(self, remote_id: int) -> str: ...


class CadenceTracker(Protocol):
    def get(self, entry_id: str) -> Optional[TrackedState]: ...

    def is_stale(self, entry_id: str, now: Optional[int] = None) -> bool: ...

    def merge_resolved(self, entry_id: str, facts: ProductFacts) -> bool: ...

    def merge_many(self, resolved: Mapping[str, ProductFacts]) -> int: ...

    def reconcile(self, current_entry_ids: Set[str]) -> list: ...


class Selector(Protocol):
    def pick_random_eligible(
        self,
        candidates: Sequence[LibraryEntry],
        is_ineligible: Optional[Callable[[LibraryEntry], bool]] = None,
    ) -> Optional[LibraryEntry]: ...

    def pick_oldest(self, candidates: Sequence[LibraryEntry]) -> Optional[LibraryEntry]: ...


class StatsAggregator(Protocol):
    def compute(self, remote_id: int) -> PlaytimeStats: ...


IdentifierFn = Callable[[LibraryEntry], int]

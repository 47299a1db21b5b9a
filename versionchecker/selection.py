from __future__ import annotations

import logging
import random
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from versionchecker.errors import MetadataShapeError
from versionchecker.identifiers import quiet_remote_id
from versionchecker.protocols import CadenceTracker, IdentifierFn, Resolver
from versionchecker.types import LibraryEntry, ProductFacts

logger = logging.getLogger(__name__)

EntryPredicate = Callable[[LibraryEntry], bool]


def has_any_tag(tags: Iterable[str]) -> EntryPredicate:
    excluded = set(tags)

    def _pred(entry: LibraryEntry) -> bool:
        return any(tag in excluded for tag in entry.tags)

    return _pred


class SelectionEngine:
    def __init__(
        self,
        tracker: CadenceTracker,
        resolver: Resolver,
        identify: IdentifierFn = quiet_remote_id,
        is_ineligible: Optional[EntryPredicate] = None,
        rng: Optional[random.Random] = None,
    ):
        self._tracker = tracker
        self._resolver = resolver
        self._identify = identify
        self.is_ineligible = is_ineligible
        self._rng = rng or random.Random()

    def _refresh_one(self, entry: LibraryEntry) -> None:
        """Resolves a single entry whose cached timestamp is missing or stale."""
        remote_id = self._identify(entry)
        if remote_id <= 0:
            return
        try:
            facts = self._resolver.resolve_one(remote_id)
        except MetadataShapeError as e:
            logger.error("Could not resolve %s: %s", entry.name, e)
            return
        if facts is not None:
            self._tracker.merge_resolved(entry.entry_id, facts)

    def is_due(self, entry: LibraryEntry) -> bool:
        """
        True when the entry has gone at least its cadence without an update,
        or when no update time can be found for it at all.
        """
        if not self._tracker.is_stale(entry.entry_id):
            return False
        self._refresh_one(entry)
        return self._tracker.is_stale(entry.entry_id)

    def pick_random_eligible(
        self,
        candidates: Sequence[LibraryEntry],
        is_ineligible: Optional[EntryPredicate] = None,
        on_check: Optional[Callable[[LibraryEntry], None]] = None,
    ) -> Optional[LibraryEntry]:
        """
        Draws uniformly from the remaining pool until an entry is due for a
        recheck. Ineligible and not-yet-due entries are dropped from the pool;
        the caller's sequence is never touched.
        """
        excluded = is_ineligible or self.is_ineligible
        pool: List[LibraryEntry] = list(candidates)

        while pool:
            entry = pool.pop(self._rng.randrange(len(pool)))
            if entry is None:
                return None
            if on_check is not None:
                on_check(entry)

            if excluded is not None and excluded(entry):
                continue
            if self.is_due(entry):
                return entry

        return None

    def pick_oldest(self, candidates: Sequence[LibraryEntry]) -> Optional[LibraryEntry]:
        """
        Entry with the oldest last update. Fresh cached times are reused,
        everything else goes out in one batched resolve.
        """
        if not candidates:
            return None

        updated: Dict[str, int] = {}
        pending: Dict[int, List[LibraryEntry]] = {}

        for entry in candidates:
            state = self._tracker.get(entry.entry_id)
            if state is not None and state.last_updated_seconds > 0:
                updated[entry.entry_id] = state.last_updated_seconds
                if not self._tracker.is_stale(entry.entry_id):
                    continue

            remote_id = self._identify(entry)
            if remote_id <= 0:
                continue
            pending.setdefault(remote_id, []).append(entry)

        if pending:
            batch = self._resolver.resolve_many(pending.keys())
            resolved: Dict[str, ProductFacts] = {}
            for remote_id, facts in batch.facts.items():
                for entry in pending.get(remote_id, []):
                    resolved[entry.entry_id] = facts
                    updated[entry.entry_id] = facts.last_updated_seconds
            self._tracker.merge_many(resolved)

        oldest: Optional[LibraryEntry] = None
        oldest_seconds: Optional[int] = None
        for entry in candidates:
            seconds = updated.get(entry.entry_id)
            if seconds is None or seconds <= 0:
                continue
            if oldest_seconds is None or seconds < oldest_seconds:
                oldest = entry
                oldest_seconds = seconds

        return oldest

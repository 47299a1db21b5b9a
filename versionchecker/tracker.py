from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Set

from versionchecker.config import DEFAULT_UPDATE_MONTHS
from versionchecker.errors import PersistenceFailure
from versionchecker.store import JsonStateStore
from versionchecker.types import ProductFacts, TrackedState

logger = logging.getLogger(__name__)

# Deliberately coarse: fixed 31-day months, whole months only.
SECONDS_PER_MONTH = 60 * 60 * 24 * 31


def months_since(last_updated_seconds: int, now: int) -> int:
    return (now - last_updated_seconds) // SECONDS_PER_MONTH


class UpdateCadenceTracker:
    """
    Owns the entry id -> TrackedState map.

    Every mutation updates the map under _lock, then flushes a whole-map
    snapshot under _write_lock so concurrent flushes never interleave and the
    newest snapshot is always the last one written.
    """

    def __init__(
        self,
        store: JsonStateStore,
        default_months: float = DEFAULT_UPDATE_MONTHS,
        clock: Callable[[], float] = time.time,
    ):
        self._store = store
        self.default_months = default_months
        self._clock = clock
        self._lock = threading.Lock()
        self._write_lock = threading.Lock()
        self._states: Dict[str, TrackedState] = {}

    def load(self) -> int:
        states = self._store.load()
        with self._lock:
            self._states = states
        return len(states)

    def now(self) -> int:
        return int(self._clock())

    # --- reads ---

    def get(self, entry_id: str) -> Optional[TrackedState]:
        with self._lock:
            state = self._states.get(entry_id)
            return state.copy() if state else None

    def snapshot(self) -> Dict[str, TrackedState]:
        with self._lock:
            return {k: v.copy() for k, v in self._states.items()}

    def __len__(self) -> int:
        with self._lock:
            return len(self._states)

    def __contains__(self, entry_id: object) -> bool:
        with self._lock:
            return entry_id in self._states

    def effective_interval(self, state: Optional[TrackedState]) -> float:
        months = state.recheck_interval_months if state else 0
        return months if months != 0 else self.default_months

    def state_is_stale(self, state: Optional[TrackedState], now: Optional[int] = None) -> bool:
        if state is None or state.last_updated_seconds == 0:
            return True
        now = self.now() if now is None else now
        return months_since(state.last_updated_seconds, now) >= self.effective_interval(state)

    def is_stale(self, entry_id: str, now: Optional[int] = None) -> bool:
        return self.state_is_stale(self.get(entry_id), now)

    # --- writes ---

    def _flush(self) -> None:
        with self._write_lock:
            data = self.snapshot()
            try:
                self._store.save(data)
            except PersistenceFailure as e:
                # in-memory state stays authoritative
                logger.error("%s", e)

    def _merge_locked(self, entry_id: str, facts: ProductFacts) -> bool:
        if facts.last_updated_seconds <= 0:
            return False
        state = self._states.get(entry_id)
        if state is None:
            state = self._states[entry_id] = TrackedState()
        if state.last_updated_seconds == facts.last_updated_seconds:
            return False
        state.last_updated_seconds = int(facts.last_updated_seconds)
        return True

    def merge_resolved(self, entry_id: str, facts: ProductFacts) -> bool:
        with self._lock:
            changed = self._merge_locked(entry_id, facts)
        if changed:
            self._flush()
        return changed

    def merge_many(self, resolved: Mapping[str, ProductFacts]) -> int:
        """Merges a whole resolution pass and flushes once."""
        with self._lock:
            changed = sum(1 for entry_id, facts in resolved.items() if self._merge_locked(entry_id, facts))
        if changed:
            self._flush()
        return changed

    def set_played_version(
        self,
        entry_id: str,
        played_version: str,
        interval_months: float,
        last_updated_seconds: int,
    ) -> TrackedState:
        state = TrackedState(
            played_version=played_version,
            recheck_interval_months=float(interval_months),
            last_updated_seconds=int(last_updated_seconds),
        )
        with self._lock:
            self._states[entry_id] = state
        self._flush()
        return state.copy()

    def reconcile(self, current_entry_ids: Iterable[str]) -> List[str]:
        current: Set[str] = set(current_entry_ids)
        with self._lock:
            removed = [entry_id for entry_id in self._states if entry_id not in current]
            for entry_id in removed:
                del self._states[entry_id]

        for entry_id in removed:
            logger.warning("Game %s removed", entry_id)
        if removed:
            self._flush()
        return removed

    def remove_many(self, entry_ids: Iterable[str]) -> List[str]:
        """Drops state for entries the host reports as removed."""
        with self._lock:
            removed = [entry_id for entry_id in entry_ids if self._states.pop(entry_id, None) is not None]
        if removed:
            self._flush()
        return removed

    def clear(self, entry_id: str) -> bool:
        with self._lock:
            existed = self._states.pop(entry_id, None) is not None
        self._flush()
        return existed

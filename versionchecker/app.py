from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence

import requests

from versionchecker import config as config_mod
from versionchecker.errors import IdentifierUnresolvable, SessionUnavailable
from versionchecker.identifiers import quiet_remote_id, remote_id_for
from versionchecker.playtime import REVIEWS_BASE, PlaytimeStatsAggregator, create_reviews_session
from versionchecker.resolver import ProductInfoResolver
from versionchecker.selection import SelectionEngine, has_any_tag
from versionchecker.session import DEFAULT_POLL_INTERVAL, RemoteSession, Transport
from versionchecker.store import JsonStateStore
from versionchecker.tracker import UpdateCadenceTracker
from versionchecker.types import UNSET_VERSIONS, LibraryEntry, PlaytimeStats, TrackedState, VersionCheck
from versionchecker.versions import check_versions

logger = logging.getLogger(__name__)

DATE_FORMAT = "%Y/%m/%d"


def parse_date(text: str) -> int:
    """YYYY/MM/DD at UTC midnight, as unix seconds."""
    dt = datetime.strptime(text.strip(), DATE_FORMAT).replace(tzinfo=timezone.utc)
    return int(dt.timestamp())


def format_date(seconds: int) -> str:
    return datetime.fromtimestamp(seconds, tz=timezone.utc).strftime(DATE_FORMAT)


def _shown_version(value: Optional[str]) -> str:
    if value is None or value.strip() in UNSET_VERSIONS:
        return "0"
    return value


class VersionChecker:
    """
    Host-facing commands over the session, resolver, tracker, selector and
    playtime stats. A host adapter (the CLI, or a launcher plugin) owns the
    entries and decides what to show.
    """

    def __init__(
        self,
        session: RemoteSession,
        tracker: UpdateCadenceTracker,
        resolver: ProductInfoResolver,
        selector: SelectionEngine,
        stats: PlaytimeStatsAggregator,
        update_tag: str = config_mod.DEFAULT_UPDATE_TAG,
        http: Optional[requests.Session] = None,
    ):
        self.session = session
        self.tracker = tracker
        self.resolver = resolver
        self.selector = selector
        self.stats = stats
        self.update_tag = update_tag
        self._http = http

    @classmethod
    def from_config(
        cls,
        cfg: dict,
        transport: Optional[Transport] = None,
        http: Optional[requests.Session] = None,
    ) -> "VersionChecker":
        session_cfg = cfg.get("session", {})
        if transport is None:
            from versionchecker.steam_transport import SteamTransport

            transport = SteamTransport(product_info_timeout=session_cfg.get("product_info_timeout"))

        session = RemoteSession(
            transport,
            poll_interval=float(session_cfg.get("poll_interval_seconds", DEFAULT_POLL_INTERVAL)),
        )
        tracker = UpdateCadenceTracker(
            JsonStateStore(config_mod.state_path(cfg)),
            default_months=config_mod.default_update_months(cfg),
        )
        resolver = ProductInfoResolver(session)
        selector = SelectionEngine(
            tracker,
            resolver,
            identify=quiet_remote_id,
            is_ineligible=has_any_tag(config_mod.excluded_tags(cfg)),
        )

        reviews_cfg = cfg.get("reviews", {})
        http = http or create_reviews_session(cfg)
        stats = PlaytimeStatsAggregator(
            http,
            base_url=reviews_cfg.get("base_url", REVIEWS_BASE),
            min_interval=float(reviews_cfg.get("min_interval_seconds", 1.0)),
            max_retries=int(reviews_cfg.get("max_retries", 3)),
            timeout=float(reviews_cfg.get("timeout_seconds", 60)),
        )
        return cls(
            session,
            tracker,
            resolver,
            selector,
            stats,
            update_tag=config_mod.update_available_tag(cfg),
            http=http,
        )

    # --- lifecycle ---

    def startup(self, entries: Iterable[LibraryEntry], connect: bool = True) -> List[str]:
        """Loads tracked state, drops state for entries gone from the library."""
        loaded = self.tracker.load()
        removed = self.tracker.reconcile(e.entry_id for e in entries)
        logger.info("Loaded %d tracked entries, pruned %d", loaded, len(removed))
        if connect:
            self.session.start()
        return removed

    def on_entries_removed(self, entry_ids: Iterable[str]) -> List[str]:
        return self.tracker.remove_many(entry_ids)

    def shutdown(self) -> None:
        self.session.stop()
        if self._http is not None:
            self._http.close()

    def require_session(self) -> None:
        if not self.session.is_usable():
            raise SessionUnavailable(f"Steam session is not available ({self.session.state.value})")

    # --- commands ---

    def version_label(self, entry: LibraryEntry) -> str:
        state = self.tracker.get(entry.entry_id)
        played = state.played_version if state else None
        return f"({_shown_version(played)} / {_shown_version(entry.version)})"

    def pick_random(self, entries: Sequence[LibraryEntry]) -> Optional[LibraryEntry]:
        self.require_session()
        return self.selector.pick_random_eligible(entries)

    def pick_oldest(self, entries: Sequence[LibraryEntry]) -> Optional[LibraryEntry]:
        self.require_session()
        return self.selector.pick_oldest(entries)

    def set_versions(self, entries: Iterable[LibraryEntry], set_tag: bool = True) -> List[VersionCheck]:
        self.require_session()
        return check_versions(
            entries,
            self.resolver,
            self.tracker,
            identify=remote_id_for,
            update_tag=self.update_tag,
            set_tag=set_tag,
        )

    def edit(
        self,
        entry: LibraryEntry,
        played_version: str,
        interval_months: float = 0.0,
        last_updated: Optional[str] = None,
    ) -> TrackedState:
        """Manual edit; keeps the cached update time unless a date is given."""
        if last_updated:
            seconds = parse_date(last_updated)
        else:
            current = self.tracker.get(entry.entry_id)
            seconds = current.last_updated_seconds if current else 0
        return self.tracker.set_played_version(entry.entry_id, played_version, interval_months, seconds)

    def clear(self, entry: LibraryEntry) -> LibraryEntry:
        self.tracker.clear(entry.entry_id)
        return replace(entry, version="")

    def playtime(self, entry: LibraryEntry) -> PlaytimeStats:
        remote_id = remote_id_for(entry)
        if remote_id <= 0:
            raise IdentifierUnresolvable(entry.name, f"No usable Steam ID for {entry.name}")
        return self.stats.compute(remote_id)

    @staticmethod
    def playtime_text(stats: PlaytimeStats) -> str:
        return f"Average: {stats.average_hours:.2f} hours | Median: {stats.median_hours:.2f} hours"

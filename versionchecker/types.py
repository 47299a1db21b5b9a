from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Tuple

UNSET_VERSIONS = ("", "0")


@dataclass(frozen=True)
class Link:
    name: str
    url: str


@dataclass(frozen=True)
class LibraryEntry:
    entry_id: str                  # stable host id (UUID string)
    name: str
    version: str = ""              # latest known remote build id
    tags: Tuple[str, ...] = ()
    links: Tuple[Link, ...] = ()

    def __str__(self) -> str:
        return self.name


@dataclass
class TrackedState:
    played_version: str = ""
    recheck_interval_months: float = 0.0   # 0 = use default cadence
    last_updated_seconds: int = 0          # 0 = unknown, must resolve

    @property
    def has_played_version(self) -> bool:
        return self.played_version.strip() not in UNSET_VERSIONS

    def copy(self) -> "TrackedState":
        return TrackedState(
            played_version=self.played_version,
            recheck_interval_months=self.recheck_interval_months,
            last_updated_seconds=self.last_updated_seconds,
        )


@dataclass(frozen=True)
class ProductFacts:
    remote_id: int
    latest_public_build_id: str    # "" when the batch tree has no public build
    last_updated_seconds: int      # max timeupdated across all branches


@dataclass(frozen=True)
class PlaytimeStats:
    average: int                   # minutes
    median: int                    # minutes
    sample_count: int = 0

    @property
    def average_hours(self) -> float:
        return round(self.average / 60, 2)

    @property
    def median_hours(self) -> float:
        return round(self.median / 60, 2)


@dataclass(frozen=True)
class VersionCheck:
    entry: LibraryEntry
    build_id: Optional[str]
    update_available: bool = False
    version_changed: bool = False
    error: Optional[str] = None
    tags_added: Tuple[str, ...] = field(default=())

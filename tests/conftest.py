"""Shared fixtures: a scripted transport, a fixed clock and library entries."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List

import pytest

from versionchecker.session import Connected, LogonResult, RemoteSession
from versionchecker.store import JsonStateStore
from versionchecker.tracker import UpdateCadenceTracker
from versionchecker.types import LibraryEntry, Link

NOW = 1_700_000_000
MONTH = 60 * 60 * 24 * 31


class FakeTransport:
    """Transport double: records calls, hands back queued events and canned trees."""

    def __init__(self, apps: Dict[int, dict] | None = None):
        self.apps = apps or {}
        self.requests: List[List[int]] = []
        self.pending: list = []
        self.log: List[str] = []
        self.fail_requests = False

    def connect(self) -> None:
        self.log.append("connect")

    def disconnect(self) -> None:
        self.log.append("disconnect")

    def logon_anonymous(self) -> None:
        self.log.append("logon")

    def logoff(self) -> None:
        self.log.append("logoff")

    def poll(self, timeout: float) -> list:
        events, self.pending = self.pending, []
        return events

    def get_product_info(self, app_ids: List[int]) -> Dict[int, dict]:
        self.requests.append(list(app_ids))
        if self.fail_requests:
            raise ConnectionError("socket closed")
        return {i: self.apps[i] for i in app_ids if i in self.apps}


def app_tree(branches: dict) -> dict:
    return {"common": {"name": "x"}, "depots": {"branches": branches}}


def make_entry(entry_id: str, app_id: int | None = None, name: str | None = None, **kw) -> LibraryEntry:
    links = ()
    if app_id is not None:
        links = (Link(name="Steam", url=f"https://store.steampowered.com/app/{app_id}/Some_Game/"),)
    return LibraryEntry(entry_id=entry_id, name=name or f"Game {entry_id}", links=links, **kw)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def session(transport: FakeTransport) -> RemoteSession:
    """An authenticated session with no pump thread."""
    s = RemoteSession(transport, spawn=lambda fn: None)
    s.start()
    s.handle_event(Connected())
    s.handle_event(LogonResult(result="OK"))
    return s


@pytest.fixture
def state_path(tmp_path: Path) -> Path:
    return tmp_path / "state" / "data.json"


@pytest.fixture
def tracker(state_path: Path) -> UpdateCadenceTracker:
    return UpdateCadenceTracker(JsonStateStore(state_path), clock=lambda: NOW)

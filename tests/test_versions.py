"""Tests for fetching build ids and flagging available updates."""

from __future__ import annotations

from conftest import app_tree, make_entry
from versionchecker.resolver import ProductInfoResolver
from versionchecker.versions import check_version, check_versions


def public(build_id: str) -> dict:
    return app_tree({"public": {"buildid": build_id, "timeupdated": "100"}})


class TestCheckVersion:
    def test_played_version_behind_adds_tag(self, tracker, session, transport):
        transport.apps[1] = public("200")
        tracker.set_played_version("a", "150", 0, 0)
        entry = make_entry("a", app_id=1, version="150", tags=("RPG",))

        r = check_version(entry, ProductInfoResolver(session), tracker)

        assert r.update_available
        assert r.version_changed
        assert r.entry.version == "200"
        assert r.entry.tags == ("RPG", "Update available")
        assert r.tags_added == ("Update available",)

    def test_no_tag_when_suppressed(self, tracker, session, transport):
        transport.apps[1] = public("200")
        tracker.set_played_version("a", "150", 0, 0)
        entry = make_entry("a", app_id=1, version="150")

        r = check_version(entry, ProductInfoResolver(session), tracker, set_tag=False)

        assert r.update_available
        assert r.entry.tags == ()

    def test_up_to_date(self, tracker, session, transport):
        transport.apps[1] = public("200")
        tracker.set_played_version("a", "200", 0, 0)
        entry = make_entry("a", app_id=1, version="200")

        r = check_version(entry, ProductInfoResolver(session), tracker)

        assert not r.update_available
        assert not r.version_changed

    def test_unset_versions_never_flag(self, tracker, session, transport):
        transport.apps[1] = public("200")
        tracker.set_played_version("a", "0", 0, 0)
        tracker.set_played_version("b", "150", 0, 0)

        resolver = ProductInfoResolver(session)
        assert not check_version(make_entry("a", app_id=1, version="150"), resolver, tracker).update_available
        assert not check_version(make_entry("b", app_id=1, version=""), resolver, tracker).update_available
        assert not check_version(make_entry("c", app_id=1, version="150"), resolver, tracker).update_available

    def test_tag_not_duplicated(self, tracker, session, transport):
        transport.apps[1] = public("3")
        tracker.set_played_version("a", "1", 0, 0)
        entry = make_entry("a", app_id=1, version="2", tags=("Update available",))

        r = check_version(entry, ProductInfoResolver(session), tracker)

        assert r.entry.tags == ("Update available",)
        assert r.tags_added == ()

    def test_missing_steam_id(self, tracker, session):
        r = check_version(make_entry("a"), ProductInfoResolver(session), tracker)
        assert r.build_id is None
        assert "No Steam ID" in r.error

    def test_shape_error_reported_per_entry(self, tracker, session, transport):
        transport.apps[1] = app_tree({"beta": {"buildid": "1"}})
        transport.apps[2] = public("9")
        results = check_versions(
            [make_entry("a", app_id=1), make_entry("b", app_id=2)],
            ProductInfoResolver(session),
            tracker,
        )
        assert results[0].error.startswith("Failed to update version")
        assert results[1].build_id == "9"

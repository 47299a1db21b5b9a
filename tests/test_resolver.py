"""Tests for batched product-info resolution and metadata tree parsing."""

from __future__ import annotations

import pytest

from conftest import app_tree
from versionchecker.errors import (
    BranchesNotFound,
    DepotsNotFound,
    NoBuildId,
    NoPublicBranch,
    SessionUnavailable,
)
from versionchecker.resolver import ProductInfoResolver, latest_time_updated
from versionchecker.session import RemoteSession


class TestResolveMany:
    def test_takes_newest_branch_not_just_public(self, session, transport):
        transport.apps[10] = app_tree({
            "public": {"buildid": "555", "timeupdated": "100"},
            "beta": {"buildid": "777", "timeupdated": "200"},
        })
        batch = ProductInfoResolver(session).resolve_many([10])

        facts = batch.facts[10]
        assert facts.last_updated_seconds == 200
        assert facts.latest_public_build_id == "555"

    def test_compares_timestamps_numerically(self):
        # as strings "9" > "10"
        assert latest_time_updated({"a": {"timeupdated": "9"}, "b": {"timeupdated": "10"}}) == 10

    def test_single_request_for_whole_batch(self, session, transport):
        for app_id in (1, 2, 3):
            transport.apps[app_id] = app_tree({"public": {"buildid": "1", "timeupdated": str(app_id)}})

        batch = ProductInfoResolver(session).resolve_many([3, 1, 2])

        assert transport.requests == [[1, 2, 3]]
        assert sorted(batch.facts) == [1, 2, 3]

    def test_shape_errors_are_per_id(self, session, transport):
        transport.apps[1] = {"common": {}}
        transport.apps[2] = {"depots": {"123": {}}}
        transport.apps[3] = app_tree({"public": {"buildid": "9", "timeupdated": "50"}})

        batch = ProductInfoResolver(session).resolve_many([1, 2, 3])

        assert isinstance(batch.errors[1], DepotsNotFound)
        assert isinstance(batch.errors[2], BranchesNotFound)
        assert list(batch.facts) == [3]

    def test_missing_timeupdated_is_skipped_without_error(self, session, transport):
        transport.apps[4] = app_tree({"public": {"buildid": "9"}})

        batch = ProductInfoResolver(session).resolve_many([4])

        assert batch.facts == {}
        assert batch.errors == {}

    def test_no_public_branch_still_gives_timestamp(self, session, transport):
        transport.apps[5] = app_tree({"beta": {"timeupdated": "70"}})

        facts = ProductInfoResolver(session).resolve_many([5]).facts[5]

        assert facts.latest_public_build_id == ""
        assert facts.last_updated_seconds == 70

    def test_unresolvable_ids_are_not_requested(self, session, transport):
        assert ProductInfoResolver(session).resolve_many([0]).facts == {}
        assert transport.requests == []

    def test_session_unavailable_aborts_batch(self, transport):
        idle = RemoteSession(transport, spawn=lambda fn: None)
        with pytest.raises(SessionUnavailable):
            ProductInfoResolver(idle).resolve_many([10])


class TestResolveOne:
    def test_returns_facts(self, session, transport):
        transport.apps[10] = app_tree({"public": {"buildid": "1", "timeupdated": "100"}})
        assert ProductInfoResolver(session).resolve_one(10).last_updated_seconds == 100

    def test_raises_recorded_error(self, session, transport):
        transport.apps[10] = {"depots": {}}
        with pytest.raises(BranchesNotFound):
            ProductInfoResolver(session).resolve_one(10)

    def test_none_when_nothing_returned(self, session):
        assert ProductInfoResolver(session).resolve_one(99) is None


class TestFetchBuildId:
    def test_public_build_regardless_of_fresher_branches(self, session, transport):
        transport.apps[10] = app_tree({
            "public": {"buildid": "555", "timeupdated": "100"},
            "beta": {"buildid": "777", "timeupdated": "200"},
        })
        assert ProductInfoResolver(session).fetch_build_id(10) == "555"

    def test_build_id_kept_as_raw_string(self, session, transport):
        transport.apps[10] = app_tree({"public": {"buildid": "0012a"}})
        assert ProductInfoResolver(session).fetch_build_id(10) == "0012a"

    def test_no_public_branch(self, session, transport):
        transport.apps[10] = app_tree({"beta": {"buildid": "1"}})
        with pytest.raises(NoPublicBranch):
            ProductInfoResolver(session).fetch_build_id(10)

    def test_no_build_id(self, session, transport):
        transport.apps[10] = app_tree({"public": {"timeupdated": "1"}})
        with pytest.raises(NoBuildId):
            ProductInfoResolver(session).fetch_build_id(10)

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, Mapping, Optional

from versionchecker.errors import (
    BranchesNotFound,
    DepotsNotFound,
    MetadataShapeError,
    NoBuildId,
    NoPublicBranch,
)
from versionchecker.protocols import SessionUsable
from versionchecker.types import ProductFacts

logger = logging.getLogger(__name__)


@dataclass
class ResolveBatch:
    facts: Dict[int, ProductFacts] = field(default_factory=dict)
    errors: Dict[int, MetadataShapeError] = field(default_factory=dict)


def _child(node: object, name: str) -> Optional[object]:
    if not isinstance(node, Mapping):
        return None
    return node.get(name)


def _branches(remote_id: int, tree: Mapping) -> Mapping:
    depots = _child(tree, "depots")
    if not isinstance(depots, Mapping):
        raise DepotsNotFound(remote_id)

    branches = _child(depots, "branches")
    if not isinstance(branches, Mapping):
        raise BranchesNotFound(remote_id)
    return branches


def public_build_id(remote_id: int, tree: Mapping) -> str:
    """Raw buildid of the public branch; build ids are opaque strings."""
    branches = _branches(remote_id, tree)

    public = _child(branches, "public")
    if not isinstance(public, Mapping):
        raise NoPublicBranch(remote_id, f"branches: {sorted(branches)}")

    build_id = _child(public, "buildid")
    if build_id is None:
        raise NoBuildId(remote_id)
    return str(build_id)


def latest_time_updated(branches: Mapping) -> Optional[int]:
    """Newest timeupdated across every branch, compared as numbers."""
    latest: Optional[int] = None
    for branch in branches.values():
        raw = _child(branch, "timeupdated")
        if raw is None:
            continue
        try:
            value = int(str(raw).strip())
        except ValueError:
            continue
        if latest is None or value > latest:
            latest = value
    return latest


class ProductInfoResolver:
    """
    Turns remote ids into ProductFacts with one batched product-info call.

    Shape problems are per id: the id is left out of the result and the
    error recorded, the rest of the batch still resolves.
    """

    def __init__(self, session: SessionUsable):
        self._session = session

    def _fetch(self, remote_ids: Iterable[int]) -> Mapping[int, Mapping]:
        ids = sorted({int(r) for r in remote_ids if int(r) > 0})
        if not ids:
            return {}
        # raises SessionUnavailable / TransportFailure for the whole batch
        return self._session.product_info(ids)

    def resolve_many(self, remote_ids: Iterable[int]) -> ResolveBatch:
        batch = ResolveBatch()

        for remote_id, tree in self._fetch(remote_ids).items():
            try:
                branches = _branches(remote_id, tree)
            except MetadataShapeError as e:
                logger.error("%s", e)
                batch.errors[remote_id] = e
                continue

            time_updated = latest_time_updated(branches)
            if time_updated is None:
                logger.warning("No timeupdated found for app %s: %s", remote_id, sorted(branches))
                continue

            try:
                build_id = public_build_id(remote_id, tree)
            except MetadataShapeError:
                build_id = ""

            batch.facts[remote_id] = ProductFacts(
                remote_id=remote_id,
                latest_public_build_id=build_id,
                last_updated_seconds=time_updated,
            )

        return batch

    def resolve_one(self, remote_id: int) -> Optional[ProductFacts]:
        batch = self.resolve_many([remote_id])
        if remote_id in batch.errors:
            raise batch.errors[remote_id]
        return batch.facts.get(remote_id)

    def fetch_build_id(self, remote_id: int) -> str:
        apps = self._fetch([remote_id])
        tree = apps.get(remote_id)
        if tree is None:
            raise DepotsNotFound(remote_id, "no product info returned")
        return public_build_id(remote_id, tree)

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Iterable, List

from versionchecker.config import DEFAULT_UPDATE_TAG
from versionchecker.errors import MetadataShapeError
from versionchecker.identifiers import remote_id_for
from versionchecker.protocols import CadenceTracker, IdentifierFn, Resolver
from versionchecker.types import UNSET_VERSIONS, LibraryEntry, VersionCheck

logger = logging.getLogger(__name__)


def check_version(
    entry: LibraryEntry,
    resolver: Resolver,
    tracker: CadenceTracker,
    identify: IdentifierFn = remote_id_for,
    update_tag: str = DEFAULT_UPDATE_TAG,
    set_tag: bool = True,
) -> VersionCheck:
    """
    Fetches the latest public build id for one entry.

    The returned entry carries the new version, plus the update tag when the
    user has acknowledged a played version that no longer matches the build.
    """
    remote_id = identify(entry)
    if remote_id <= 0:
        return VersionCheck(entry=entry, build_id=None, error=f"No Steam ID for {entry.name}")

    try:
        build_id = resolver.fetch_build_id(remote_id)
    except MetadataShapeError as e:
        logger.error("%s", e)
        return VersionCheck(
            entry=entry,
            build_id=None,
            error=f"Failed to update version for {entry.name}, see logs for details",
        )

    state = tracker.get(entry.entry_id)
    has_version = entry.version.strip() not in UNSET_VERSIONS
    has_played = state is not None and state.has_played_version
    update_available = has_version and has_played and state.played_version != build_id

    tags = entry.tags
    added: tuple = ()
    if update_available and set_tag and update_tag not in tags:
        tags = tags + (update_tag,)
        added = (update_tag,)

    return VersionCheck(
        entry=replace(entry, version=build_id, tags=tags),
        build_id=build_id,
        update_available=update_available,
        version_changed=entry.version != build_id,
        tags_added=added,
    )


def check_versions(
    entries: Iterable[LibraryEntry],
    resolver: Resolver,
    tracker: CadenceTracker,
    identify: IdentifierFn = remote_id_for,
    update_tag: str = DEFAULT_UPDATE_TAG,
    set_tag: bool = True,
) -> List[VersionCheck]:
    return [
        check_version(entry, resolver, tracker, identify=identify, update_tag=update_tag, set_tag=set_tag)
        for entry in entries
    ]

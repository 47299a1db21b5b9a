from __future__ import annotations

import logging
from typing import Optional

from versionchecker.types import LibraryEntry, Link

logger = logging.getLogger(__name__)

STEAM_LINK_NAME = "steam"
UINT32_MAX = 2**32 - 1


def find_steam_link(entry: LibraryEntry) -> Optional[Link]:
    for link in entry.links:
        if link.name.lower() == STEAM_LINK_NAME:
            return link
    return None


def parse_app_id(url: str) -> Optional[int]:
    """
    Pull the numeric app id out of a store URL like
    https://store.steampowered.com/app/440/Team_Fortress_2/
    """
    parts = url.split("/app/", 1)
    if len(parts) < 2:
        return None
    raw = parts[1].split("/")[0]
    if not (raw.isascii() and raw.isdigit()):
        return None
    value = int(raw)
    if value > UINT32_MAX:
        return None
    return value


def remote_id_for(entry: LibraryEntry, notify: bool = True) -> int:
    """Returns the entry's remote identifier, or 0 when it cannot be derived."""
    link = find_steam_link(entry)
    if link is None:
        if notify:
            logger.warning("No Steam URL found for %s, please set it in the Links tab", entry.name)
        return 0

    if "/app/" not in link.url:
        if notify:
            logger.warning("Could not find Steam ID for %s in URL: %s", entry.name, link.url)
        return 0

    app_id = parse_app_id(link.url)
    if app_id is None:
        if notify:
            logger.warning("Steam ID was not a number for %s in URL: %s", entry.name, link.url)
        return 0

    return app_id


def quiet_remote_id(entry: LibraryEntry) -> int:
    return remote_id_for(entry, notify=False)

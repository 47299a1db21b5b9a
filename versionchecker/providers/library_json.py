from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from versionchecker.types import LibraryEntry, Link


class LibraryError(RuntimeError):
    pass


def _field(obj: dict, name: str, default: Any = None) -> Any:
    # Playnite exports use PascalCase; hand-written files tend to be lowercase
    if name in obj:
        return obj[name]
    return obj.get(name.lower(), default)


def _read_raw(path: Path) -> Any:
    try:
        with path.open("r", encoding="utf-8-sig") as f:
            return json.load(f)
    except FileNotFoundError as e:
        raise LibraryError(f"Library file not found: {path}") from e
    except (OSError, ValueError) as e:
        raise LibraryError(f"Could not read library file {path}: {e}") from e


def _raw_games(raw: Any, path: Path) -> List[dict]:
    games = raw.get("Games", raw.get("games")) if isinstance(raw, dict) else raw
    if not isinstance(games, list):
        raise LibraryError(f"Unexpected library content in {path}: {type(games)}")
    return games


def _entry_from_raw(obj: dict) -> Optional[LibraryEntry]:
    entry_id = _field(obj, "Id")
    if not entry_id:
        return None

    links = []
    for link in _field(obj, "Links") or []:
        if isinstance(link, dict) and _field(link, "Url"):
            links.append(Link(name=str(_field(link, "Name", "") or ""), url=str(_field(link, "Url"))))

    tags = []
    for tag in _field(obj, "Tags") or []:
        # either plain names or {"Name": ...} objects
        name = _tag_name(tag)
        if name:
            tags.append(name)

    return LibraryEntry(
        entry_id=str(entry_id),
        name=str(_field(obj, "Name", "") or ""),
        version=str(_field(obj, "Version", "") or ""),
        tags=tuple(tags),
        links=tuple(links),
    )


def _tag_name(tag: Any) -> Optional[str]:
    name = _field(tag, "Name") if isinstance(tag, dict) else tag
    return str(name) if name else None


def _merge_tags(existing: Any, names: Iterable[str]) -> list:
    """
    Tags as they should be written back: existing items (including their ids)
    are kept for every name still present, new names take the existing shape.
    """
    existing = existing if isinstance(existing, list) else []
    by_name = {}
    for tag in existing:
        name = _tag_name(tag)
        if name is not None and name not in by_name:
            by_name[name] = tag

    as_objects = any(isinstance(t, dict) for t in existing)
    name_key = "Name"
    for tag in existing:
        if isinstance(tag, dict) and "Name" not in tag and "name" in tag:
            name_key = "name"
            break

    merged = []
    for name in names:
        if name in by_name:
            merged.append(by_name[name])
        elif as_objects:
            merged.append({name_key: name})
        else:
            merged.append(name)
    return merged


def load_library(path: str | Path) -> List[LibraryEntry]:
    """
    Reads the host library export. Accepts either a bare list of games or an
    object with a "Games" list; entries without an id are skipped.
    """
    p = Path(path).expanduser()
    items: List[LibraryEntry] = []
    for obj in _raw_games(_read_raw(p), p):
        if not isinstance(obj, dict):
            continue
        entry = _entry_from_raw(obj)
        if entry is not None:
            items.append(entry)
    return items


def save_entries(path: str | Path, entries: Iterable[LibraryEntry]) -> int:
    """
    Writes version and tags of the given entries back into the export,
    leaving every other field as it was. Returns the number of games touched.
    """
    p = Path(path).expanduser()
    raw = _read_raw(p)
    games = _raw_games(raw, p)
    by_id: Dict[str, LibraryEntry] = {e.entry_id: e for e in entries}

    touched = 0
    for obj in games:
        if not isinstance(obj, dict):
            continue
        entry = by_id.get(str(_field(obj, "Id", "")))
        if entry is None:
            continue
        version_key = "Version" if "Version" in obj or "version" not in obj else "version"
        tags_key = "Tags" if "Tags" in obj or "tags" not in obj else "tags"
        obj[version_key] = entry.version
        obj[tags_key] = _merge_tags(obj.get(tags_key), entry.tags)
        touched += 1

    tmp = p.with_suffix(p.suffix + ".tmp")
    try:
        tmp.write_text(json.dumps(raw, ensure_ascii=False, indent=2) + "\n", encoding="utf-8")
        tmp.replace(p)
    except OSError as e:
        raise LibraryError(f"Could not write library file {p}: {e}") from e
    return touched

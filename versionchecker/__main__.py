from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Dict, List

from versionchecker.app import VersionChecker, format_date
from versionchecker.config import load_config
from versionchecker.errors import VersionCheckerError
from versionchecker.providers.library_json import LibraryError, load_library, save_entries
from versionchecker.types import LibraryEntry

SESSION_COMMANDS = ("random", "oldest", "versions")


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="verchk",
        description="verchk: track which games in your library got an update since you last played them.",
    )
    ap.add_argument("--config", default=None, help="Path to config file (default: ~/.config/verchk/config.toml)")
    ap.add_argument("--library", default=None, help="Library export JSON (overrides config)")
    ap.add_argument("--state", default=None, help="Tracked state JSON (overrides config)")
    ap.add_argument("--connect-timeout", type=float, default=30.0, help="Seconds to wait for the Steam logon")
    ap.add_argument("--log-level", default=None, help="Logging level (overrides config)")

    sub = ap.add_subparsers(dest="command", required=True)

    p = sub.add_parser("random", help="Pick a random game that is due for an update check")
    p.add_argument("ids", nargs="*", help="Limit candidates to these entry ids")

    p = sub.add_parser("oldest", help="Pick the game whose last update is the oldest")
    p.add_argument("ids", nargs="*", help="Limit candidates to these entry ids")

    p = sub.add_parser("versions", help="Fetch latest build ids and tag games with updates")
    p.add_argument("ids", nargs="*", help="Entry ids (default: whole library)")
    p.add_argument("--no-tag", action="store_true", help="Do not add the update-available tag")

    p = sub.add_parser("edit", help="Set the played version for one game")
    p.add_argument("id")
    p.add_argument("--played", required=True, help="Version you have played")
    p.add_argument("--months", type=float, default=0.0, help="Recheck interval in months (0 = default)")
    p.add_argument("--last-updated", default=None, help="Last update date, YYYY/MM/DD")

    p = sub.add_parser("clear", help="Stop tracking one game and reset its version")
    p.add_argument("id")

    p = sub.add_parser("playtime", help="Average and median reviewer playtime for one game")
    p.add_argument("id")

    sub.add_parser("status", help="List tracked games with played/latest versions")
    sub.add_parser("prune", help="Drop tracked state for games no longer in the library")
    return ap


def _select(entries: List[LibraryEntry], ids: List[str]) -> List[LibraryEntry]:
    if not ids:
        return entries
    by_id: Dict[str, LibraryEntry] = {e.entry_id: e for e in entries}
    missing = [i for i in ids if i not in by_id]
    if missing:
        raise SystemExit(f"Unknown entry id(s): {', '.join(missing)}")
    return [by_id[i] for i in ids]


def run(args: argparse.Namespace, checker: VersionChecker, library_path: Path) -> int:
    entries = load_library(library_path)
    needs_session = args.command in SESSION_COMMANDS

    removed = checker.startup(entries, connect=needs_session)
    if args.command == "prune":
        print(f"Pruned {len(removed)} entries")
        return 0

    if needs_session and not checker.session.wait_ready(args.connect_timeout):
        print(f"Steam session not ready ({checker.session.state.value})", file=sys.stderr)
        return 1

    if args.command == "random":
        game = checker.pick_random(_select(entries, args.ids))
        print(f"Game found\n{game.name}" if game else "No game found")
        return 0

    if args.command == "oldest":
        game = checker.pick_oldest(_select(entries, args.ids))
        print(f"Game found\n{game.name}" if game else "No game found")
        return 0

    if args.command == "versions":
        targets = _select(entries, args.ids)
        results = checker.set_versions(targets, set_tag=not args.no_tag)
        changed = []
        total = len(results)
        for i, r in enumerate(results, start=1):
            if r.error:
                print(f"[{i}/{total}] {r.error}")
                continue
            flag = " (update available)" if r.update_available else ""
            print(f"[{i}/{total}] {r.entry.name}: {r.build_id}{flag}")
            if r.version_changed or r.tags_added:
                changed.append(r.entry)
        if changed:
            save_entries(library_path, changed)
        print(f"Game version(s) updated: {len(changed)}")
        return 0

    if args.command == "edit":
        (entry,) = _select(entries, [args.id])
        state = checker.edit(entry, args.played, args.months, args.last_updated)
        print(f"{entry.name}: played {state.played_version}, every {checker.tracker.effective_interval(state)} months")
        return 0

    if args.command == "clear":
        (entry,) = _select(entries, [args.id])
        save_entries(library_path, [checker.clear(entry)])
        print(f"Cleared {entry.name}")
        return 0

    if args.command == "playtime":
        (entry,) = _select(entries, [args.id])
        print(checker.playtime_text(checker.playtime(entry)))
        return 0

    if args.command == "status":
        tracked = checker.tracker.snapshot()
        for entry in entries:
            state = tracked.get(entry.entry_id)
            if state is None:
                continue
            updated = format_date(state.last_updated_seconds) if state.last_updated_seconds else "unknown"
            due = "due" if checker.tracker.state_is_stale(state) else "ok"
            print(f"{entry.name} {checker.version_label(entry)} last updated {updated} [{due}]")
        return 0

    raise SystemExit(f"Unknown command: {args.command}")


def main() -> int:
    args = build_parser().parse_args()

    cfg = load_config(Path(args.config) if args.config else None)
    level = args.log_level or cfg.get("logging", {}).get("level", "INFO")
    logging.basicConfig(level=level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    paths = cfg.setdefault("paths", {})
    if args.state:
        paths["state"] = args.state
    library = args.library or paths.get("library")
    if not library:
        raise SystemExit("Library export not provided (via config or --library)")

    checker = VersionChecker.from_config(cfg)
    try:
        return run(args, checker, Path(library).expanduser())
    except (VersionCheckerError, LibraryError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        checker.shutdown()


if __name__ == "__main__":
    raise SystemExit(main())

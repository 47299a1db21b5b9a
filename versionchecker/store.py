from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict

from versionchecker.errors import PersistenceFailure
from versionchecker.types import TrackedState

logger = logging.getLogger(__name__)


def _state_from_json(obj: dict) -> TrackedState:
    return TrackedState(
        played_version=str(obj.get("PlayedVersion") or ""),
        recheck_interval_months=float(obj.get("UpdateMonths") or 0),
        last_updated_seconds=int(obj.get("LastUpdatedSeconds") or 0),
    )


def _state_to_json(state: TrackedState) -> dict:
    return {
        "PlayedVersion": state.played_version,
        "UpdateMonths": state.recheck_interval_months,
        "LastUpdatedSeconds": state.last_updated_seconds,
    }


class JsonStateStore:
    """
    The tracked-state file: one JSON object keyed by entry id.
    Always written whole, through a temp file and os.replace.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path).expanduser()

    def load(self) -> Dict[str, TrackedState]:
        if not self.path.exists():
            return {}

        try:
            with self.path.open("r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, ValueError) as e:
            logger.error("Could not read %s, starting with empty state: %s", self.path, e)
            return {}

        if not isinstance(raw, dict):
            logger.error("Unexpected state file content in %s, starting with empty state", self.path)
            return {}

        out: Dict[str, TrackedState] = {}
        for entry_id, obj in raw.items():
            if not isinstance(obj, dict):
                logger.warning("Skipping malformed state for %s", entry_id)
                continue
            try:
                out[str(entry_id)] = _state_from_json(obj)
            except (TypeError, ValueError) as e:
                logger.warning("Skipping malformed state for %s: %s", entry_id, e)
        return out

    def save(self, states: Dict[str, TrackedState]) -> None:
        data = {entry_id: _state_to_json(s) for entry_id, s in states.items()}
        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=self.path.name, suffix=".tmp", dir=str(self.path.parent))
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
            tmp_name = None
        except OSError as e:
            raise PersistenceFailure(f"Could not write {self.path}: {e}") from e
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass

from __future__ import annotations

import os
from pathlib import Path
import tomllib

DEFAULT_CONFIG_PATH = Path("~/.config/verchk/config.toml").expanduser()
DEFAULT_STATE_PATH = Path("~/.local/share/verchk/data.json").expanduser()

DEFAULT_UPDATE_MONTHS = 3.0
DEFAULT_EXCLUDED_TAGS = ("No download", "GPU Upgrade")
DEFAULT_UPDATE_TAG = "Update available"


def load_config(path: Path | None = None) -> dict:
    cfg_path = path or DEFAULT_CONFIG_PATH
    if not cfg_path.exists():
        # no config file: defaults plus --library/--state on the command line
        return {}

    with cfg_path.open("rb") as f:
        cfg = tomllib.load(f)

    # Expand ~ in any string paths under [paths]
    paths = cfg.get("paths", {})
    for k, v in list(paths.items()):
        if isinstance(v, str):
            paths[k] = os.path.expanduser(v)

    return cfg


def state_path(cfg: dict) -> Path:
    return Path(cfg.get("paths", {}).get("state", str(DEFAULT_STATE_PATH))).expanduser()


def default_update_months(cfg: dict) -> float:
    return float(cfg.get("cadence", {}).get("default_months", DEFAULT_UPDATE_MONTHS))


def excluded_tags(cfg: dict) -> tuple:
    tags = cfg.get("selection", {}).get("excluded_tags", DEFAULT_EXCLUDED_TAGS)
    return tuple(str(t) for t in tags)


def update_available_tag(cfg: dict) -> str:
    return str(cfg.get("tags", {}).get("update_available", DEFAULT_UPDATE_TAG))

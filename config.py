"""
Settings for the CoralHydro2k explorer.

Values come from, lowest to highest priority: built-in defaults,
``<project>/config.json``, ``~/.ch2k-explorer/config.json`` and a few
environment variables (``.env`` is read at import).

Example config.json::

    {
        "archive_url": "https://lipdverse.org/CoralHydro2k/current_version/CoralHydro2k1_0_0.zip",
        "time_var": "year",
        "plot": {"projection": "robinson"},
        "console_format": "full"
    }
"""

import json
import os
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv

load_dotenv()

CONFIG_PATH = Path.home() / ".ch2k-explorer" / "config.json"
_LOCAL_CONFIG_PATH = Path(__file__).resolve().parent / "config.json"
_user_config: dict = {}


def _load_config() -> dict:
    merged: dict = {}
    for path in (_LOCAL_CONFIG_PATH, CONFIG_PATH):
        if not path.exists():
            continue
        try:
            with open(path, "r", encoding="utf-8") as f:
                merged.update(json.load(f))
        except (json.JSONDecodeError, OSError):
            # a broken file falls back to the other layer and the defaults
            continue
    return merged


def get(key: str, default=None):
    """Look up a setting; nested keys are dotted, e.g. ``get("plot.projection")``."""
    node = _user_config
    for part in key.split("."):
        if not isinstance(node, dict):
            return default
        node = node.get(part)
    return default if node is None else node


_user_config = _load_config()


_data_dir: Optional[Path] = None


def get_data_dir() -> Path:
    """Base directory for archives, unpacked LiPD files, cached tables and logs.

    ``CH2K_EXPLORER_DIR`` wins over the ``data_dir`` setting, which wins
    over ``~/.ch2k-explorer``. Resolved once per process.
    """
    global _data_dir
    if _data_dir is None:
        configured = os.environ.get("CH2K_EXPLORER_DIR") or get("data_dir")
        if configured:
            _data_dir = Path(configured).expanduser().resolve()
        else:
            _data_dir = Path.home() / ".ch2k-explorer"
    return _data_dir


def _reset_data_dir() -> None:
    global _data_dir
    _data_dir = None


# lipdverse keeps the latest CoralHydro2k release under current_version/
ARCHIVE_URL = os.getenv(
    "CH2K_ARCHIVE_URL",
    get("archive_url", "https://lipdverse.org/CoralHydro2k/current_version/CoralHydro2k1_0_0.zip"),
)
HTTP_TIMEOUT = get("http_timeout", 120)
TIME_VAR = get("time_var", "year")  # or "age"
DEFAULT_PROJECTION = get("plot.projection", "mollweide")
EXCLUDE_VARIABLE_PATTERN = get("exclude_variable_pattern", "_annual|Uncertainty|year")
CACHE_TABLES = get("cache_tables", True)

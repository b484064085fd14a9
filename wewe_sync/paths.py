"""Filesystem locations used by the sync service."""

from __future__ import annotations

import os
from pathlib import Path

_DEFAULT_DATA_DIR = ".wewe-sync"


def get_data_root() -> Path:
    """Return the directory holding store files and configuration."""
    override = os.environ.get("WEWE_DATA_DIR")
    root = Path(override) if override else Path.cwd() / _DEFAULT_DATA_DIR
    return root if root.is_absolute() else root.resolve()


def get_config_file() -> Path:
    return get_data_root() / "config.json"


def get_store_root() -> Path:
    return get_data_root() / "store"


def get_notes_root() -> Path:
    """Return the root folder for generated notes.

    ``WEWE_NOTES_DIR`` takes precedence; otherwise notes live next to the data.
    """
    override = os.environ.get("WEWE_NOTES_DIR")
    if override:
        return Path(override).resolve()
    return get_data_root() / "notes"

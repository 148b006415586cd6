"""Path utilities for Ricettario.

- Resolves the user-scope application data directory
- Provides the canonical path of the local store and the default backup folder

Resolution order: ``RICETTARIO_HOME``, then ``%APPDATA%`` on Windows, then
``$XDG_DATA_HOME`` / ``~/.local/share`` elsewhere.
"""
from __future__ import annotations

import os
import sys
from pathlib import Path

_APP_DIR_NAME = "Ricettario"
_STORE_FILENAME = "ricettario.sqlite"
_HOME_ENV = "RICETTARIO_HOME"


def get_user_app_data_dir() -> Path:
    override = os.getenv(_HOME_ENV)
    if override:
        return Path(override).expanduser()
    appdata = os.getenv("APPDATA")
    if appdata or sys.platform.startswith("win"):
        base = Path(appdata) if appdata else Path.home() / "AppData" / "Roaming"
        return base / _APP_DIR_NAME
    xdg = os.getenv("XDG_DATA_HOME")
    base = Path(xdg) if xdg else Path.home() / ".local" / "share"
    return base / _APP_DIR_NAME.lower()


def ensure_user_app_data_dir() -> Path:
    """Ensure the user app data directory exists and return it."""
    p = get_user_app_data_dir()
    p.mkdir(parents=True, exist_ok=True)
    return p


def local_store_path() -> Path:
    return ensure_user_app_data_dir() / _STORE_FILENAME


def default_backup_dir() -> Path:
    documents = Path.home() / "Documents"
    return documents if documents.is_dir() else Path.home()

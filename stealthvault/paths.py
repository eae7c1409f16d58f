"""Cross-platform data directory resolution."""

from __future__ import annotations

from pathlib import Path

import platformdirs

_APP_NAME = "StealthVault"
_APP_AUTHOR = "StealthVault"


def get_data_dir() -> Path:
    """Return the platform-appropriate data directory (XDG on Linux)."""
    return Path(platformdirs.user_data_dir(_APP_NAME, _APP_AUTHOR))


def get_store_path(data_dir: Path) -> Path:
    return data_dir / "storage.json"


def get_log_path(data_dir: Path) -> Path:
    return data_dir / "stealthvault.log"


def get_config_path(data_dir: Path) -> Path:
    return data_dir / "config.ini"

"""Centralized application configuration."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional
import os
import sys


def get_default_data_dir(
    app_name: str,
    *,
    platform: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    home: Optional[Path] = None,
) -> Path:
    """Return an OS-specific user data directory for ``app_name``."""

    platform_id = (platform or sys.platform).lower()
    environ = dict(env if env is not None else os.environ)
    home_dir = Path(home or Path.home())
    sanitized = app_name.strip() or "app"
    sanitized = sanitized.replace("/", "-").replace("\\", "-")

    override = environ.get("MONEYMAPPR_DATA_DIR")
    if override:
        return Path(override).expanduser()

    if platform_id.startswith("win"):
        base = Path(environ.get("APPDATA") or home_dir / "AppData" / "Roaming")
    elif platform_id == "darwin":
        base = home_dir / "Library" / "Application Support"
    else:
        base = Path(environ.get("XDG_DATA_HOME") or home_dir / ".local" / "share")

    return base.expanduser() / sanitized


APP_NAME = "MoneyMappr"


DATA_DIR = get_default_data_dir(APP_NAME)
STORAGE_DIR = DATA_DIR / "storage"
LOG_DIR = DATA_DIR / "logs"

for _dir in (DATA_DIR, STORAGE_DIR, LOG_DIR):
    _dir.mkdir(parents=True, exist_ok=True)


CACHE_DB_PATH = STORAGE_DIR / "settings_cache.db"
CONFIG_PATH = DATA_DIR / "config.json"
SYNC_LOG_PATH = LOG_DIR / "sync.log"


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.environ.get(name)
    return value if value else default


@dataclass(frozen=True)
class ApiSettings:
    base_url: str = field(
        default_factory=lambda: _env("MONEYMAPPR_API_BASE_URL", "http://localhost:3000/api/v1")
    )
    organization_id: Optional[str] = field(
        default_factory=lambda: _env("MONEYMAPPR_ORGANIZATION_ID")
    )
    timeout_sec: float = 15.0
    settings_path: str = "/account-groups/{entity_id}/settings"
    trigger_sync_path: str = "/crypto/wallets/{job_key}/sync"
    events_path: str = "/sync/stream"


API = ApiSettings()


@dataclass(frozen=True)
class SyncSettings:
    stuck_after_sec: int = 120
    stuck_sweep_interval_sec: int = 30
    heartbeat_timeout_sec: int = 45


SYNC = SyncSettings()


@dataclass(frozen=True)
class UISettings:
    app_title: str = APP_NAME
    theme_mode: str = "system"
    color_scheme_seed: str = "#4F46E5"
    window_min_width: int = 720
    window_min_height: int = 520
    progress_bar_width: int = 140
    text_subtle: str = "#6B7280"
    error_text: str = "#DC2626"


UI = UISettings()


@dataclass(frozen=True)
class LogSettings:
    path: Path = SYNC_LOG_PATH
    max_bytes: int = 1_000_000
    backup_count: int = 3
    level: str = "INFO"


LOGGING = LogSettings()


__all__ = [
    "API",
    "APP_NAME",
    "CACHE_DB_PATH",
    "CONFIG_PATH",
    "DATA_DIR",
    "LOGGING",
    "LOG_DIR",
    "STORAGE_DIR",
    "SYNC",
    "SYNC_LOG_PATH",
    "UI",
    "ApiSettings",
    "SyncSettings",
    "get_default_data_dir",
]

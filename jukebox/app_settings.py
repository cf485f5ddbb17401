from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import tzinfo
from functools import lru_cache
from pathlib import Path
from typing import Mapping
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

REPO_ROOT = Path(__file__).resolve().parents[1]

DEFAULT_STATS_DAYS = 7
DEFAULT_AUTOSAVE_INTERVAL = 4.0
DEFAULT_EXTENSION = ".mp3"
DEFAULT_CORS_ORIGINS = "http://localhost:3000"


@dataclass(frozen=True)
class Settings:
    music_dir: Path
    db_path: Path
    stats_days: int = DEFAULT_STATS_DAYS
    autosave_interval: float = DEFAULT_AUTOSAVE_INTERVAL
    timezone: tzinfo | None = None
    allowed_extension: str = DEFAULT_EXTENSION
    playlist_prefix_filter: str = ""
    debug_logging: bool = False
    cors_origins: tuple[str, ...] = (DEFAULT_CORS_ORIGINS,)


def _parse_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _lookup(env: Mapping[str, str], *names: str) -> str | None:
    for name in names:
        value = env.get(name)
        if value is not None and value.strip():
            return value.strip()
    return None


def _parse_stats_days(value: str | None) -> int:
    if value is None:
        return DEFAULT_STATS_DAYS
    try:
        days = int(value)
    except ValueError:
        logger.warning(f"Invalid stats window {value!r}, using {DEFAULT_STATS_DAYS} days")
        return DEFAULT_STATS_DAYS
    if days < 1:
        logger.warning(f"Stats window must be at least 1 day, got {days}; using {DEFAULT_STATS_DAYS}")
        return DEFAULT_STATS_DAYS
    return days


def _parse_interval(value: str | None) -> float:
    if value is None:
        return DEFAULT_AUTOSAVE_INTERVAL
    try:
        return float(value)
    except ValueError:
        logger.warning(f"Invalid autosave interval {value!r}, using {DEFAULT_AUTOSAVE_INTERVAL}s")
        return DEFAULT_AUTOSAVE_INTERVAL


def _parse_timezone(value: str | None) -> tzinfo | None:
    if value is None:
        return None
    try:
        return ZoneInfo(value)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown timezone: {value}") from exc


def _resolve_path(value: str | None, default: Path) -> Path:
    if value is None:
        return default
    path = Path(value).expanduser()
    # Relative names resolve against the repository, like the music folder
    return path if path.is_absolute() else REPO_ROOT / path


def load_settings(env: Mapping[str, str] | None = None) -> Settings:
    """Read settings from the environment (or an explicit mapping)."""
    env = os.environ if env is None else env

    extension = _lookup(env, "JUKEBOX_ALLOWED_EXTENSION") or DEFAULT_EXTENSION
    if not extension.startswith("."):
        extension = f".{extension}"

    origins = _lookup(env, "JUKEBOX_CORS_ORIGINS") or DEFAULT_CORS_ORIGINS

    return Settings(
        music_dir=_resolve_path(_lookup(env, "JUKEBOX_MUSIC_DIR", "MUSIC_FOLDER"), REPO_ROOT / "music"),
        db_path=_resolve_path(_lookup(env, "JUKEBOX_DB_PATH", "DB_FILENAME"), REPO_ROOT / "jukebox.db.json"),
        stats_days=_parse_stats_days(_lookup(env, "JUKEBOX_STATS_DAYS", "STATS_DAYS")),
        autosave_interval=_parse_interval(_lookup(env, "JUKEBOX_AUTOSAVE_INTERVAL")),
        timezone=_parse_timezone(_lookup(env, "JUKEBOX_TIMEZONE")),
        allowed_extension=extension.lower(),
        playlist_prefix_filter=_lookup(env, "JUKEBOX_PLAYLIST_PREFIX_FILTER", "PLAYLIST_PREFIX_FILTER") or "",
        debug_logging=_parse_bool(_lookup(env, "JUKEBOX_DEBUG_LOGGING", "DEBUG_LOGGING")),
        cors_origins=tuple(origin.strip() for origin in origins.split(",") if origin.strip()),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Process-wide settings, read once."""
    return load_settings()

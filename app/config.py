from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import find_dotenv, load_dotenv

logger = logging.getLogger(__name__)

STORAGE_BACKENDS = ("file", "redis", "memory")


@dataclass(frozen=True, slots=True)
class Settings:
    # Where the `{capes, emotes, emotesRev}` snapshot lives.
    storage_backend: str = "file"
    data_file: Path = Path("data.json")
    redis_url: str = "redis://localhost:6379/0"
    redis_key: str = "capes-emotes:state"

    emote_ttl_s: float = 60.0
    cape_ttl_s: float = 7 * 24 * 60 * 60

    long_poll_timeout_s: float = 25.0
    long_poll_max_timeout_s: float = 60.0

    # Off by default: sweeps evict silently and long-poll clients learn with the next write.
    emote_notify_on_eviction: bool = False

    max_body_bytes: int = 256 * 1024
    log_level: str = "INFO"


def _env_float(key: str, default: float, *, minimum: float = 0.0) -> float:
    raw = os.environ.get(key)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("ignoring non-numeric %s=%r", key, raw)
        return default
    return max(minimum, value)


def _env_bool(key: str, default: bool) -> bool:
    raw = os.environ.get(key)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_log_level(key: str, default: str) -> str:
    raw = os.environ.get(key, default).strip().upper()
    if raw not in logging.getLevelNamesMapping():
        logger.warning("ignoring unknown %s=%r", key, raw)
        return default
    return raw


def load_settings(*, load_env_file: bool = True) -> Settings:
    """Build settings from the environment (and a `.env` file, if one is found)."""

    if load_env_file:
        env_path = find_dotenv(usecwd=True)
        if env_path:
            load_dotenv(dotenv_path=env_path, override=False)

    backend = os.environ.get("CAPES_STORAGE_BACKEND", "file").strip().lower()
    if backend not in STORAGE_BACKENDS:
        logger.warning("unknown CAPES_STORAGE_BACKEND=%r, falling back to file", backend)
        backend = "file"

    defaults = Settings()
    return Settings(
        storage_backend=backend,
        data_file=Path(os.environ.get("CAPES_DATA_FILE", str(defaults.data_file))),
        redis_url=os.environ.get("REDIS_URL", defaults.redis_url),
        redis_key=os.environ.get("CAPES_REDIS_KEY", defaults.redis_key),
        emote_ttl_s=_env_float("EMOTE_TTL_SECONDS", defaults.emote_ttl_s, minimum=1.0),
        cape_ttl_s=_env_float("CAPE_TTL_SECONDS", defaults.cape_ttl_s, minimum=1.0),
        long_poll_timeout_s=_env_float("LONG_POLL_TIMEOUT_SECONDS", defaults.long_poll_timeout_s),
        long_poll_max_timeout_s=_env_float("LONG_POLL_MAX_TIMEOUT_SECONDS", defaults.long_poll_max_timeout_s),
        emote_notify_on_eviction=_env_bool("EMOTE_NOTIFY_ON_EVICTION", defaults.emote_notify_on_eviction),
        log_level=_env_log_level("LOG_LEVEL", defaults.log_level),
    )

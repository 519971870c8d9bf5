"""
Runtime options for the indexer.

Options are read from environment variables (optionally seeded from a
.env file, see env.py).
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

DEFAULT_DATABASE_URL = "sqlite:///data/glass.db"
DEFAULT_WORKERS = 4
DEFAULT_INTERVAL = 300
DEFAULT_TIMEOUT = 15.0


class ConfigError(Exception):
    """Raised when a required option is missing or malformed."""
    pass


@dataclass(frozen=True)
class Options:
    """All the app config vars."""

    content_server_url: str
    database_url: str = DEFAULT_DATABASE_URL
    index_workers: int = DEFAULT_WORKERS
    index_interval: int = DEFAULT_INTERVAL
    history_page_size: Optional[int] = None
    server_name: Optional[str] = None
    request_timeout: float = DEFAULT_TIMEOUT
    log_level: str = "INFO"
    log_dir: Path = Path("logs")


def _positive_int(env: Mapping[str, str], key: str, default: Optional[int]) -> Optional[int]:
    raw = env.get(key, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{key} must be an integer, got {raw!r}")
    if value <= 0:
        raise ConfigError(f"{key} must be positive, got {value}")
    return value


def _positive_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{key} must be a number, got {raw!r}")
    if value <= 0:
        raise ConfigError(f"{key} must be positive, got {value}")
    return value


def load_options(env: Optional[Mapping[str, str]] = None) -> Options:
    """
    Build Options from the environment.

    Args:
        env: Mapping to read from (default: os.environ)

    Returns:
        Parsed Options

    Raises:
        ConfigError: If CONTENT_SERVER_URL is missing or a numeric value is invalid
    """
    env = os.environ if env is None else env

    content_server_url = env.get("CONTENT_SERVER_URL", "").strip()
    if not content_server_url:
        raise ConfigError("CONTENT_SERVER_URL is required")

    log_level = env.get("LOG_LEVEL", "INFO").strip().upper() or "INFO"
    if log_level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
        raise ConfigError(f"LOG_LEVEL must be a logging level name, got {log_level!r}")

    return Options(
        content_server_url=content_server_url,
        database_url=env.get("DATABASE_URL", "").strip() or DEFAULT_DATABASE_URL,
        index_workers=_positive_int(env, "NUM_WORKERS", DEFAULT_WORKERS),
        index_interval=_positive_int(env, "INDEX_INTERVAL", DEFAULT_INTERVAL),
        history_page_size=_positive_int(env, "HISTORY_PAGE_SIZE", None),
        server_name=env.get("SERVER_NAME", "").strip() or None,
        request_timeout=_positive_float(env, "REQUEST_TIMEOUT", DEFAULT_TIMEOUT),
        log_level=log_level,
        log_dir=Path(env.get("LOG_DIR", "").strip() or "logs"),
    )

"""Settings loaded from environment variables.

Constructor arguments always win; these only supply defaults for the hosts,
the HTTP operation and the simulator.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

ENV_PREFIX = "TICKRUN"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str) -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


@dataclass(frozen=True, slots=True)
class Settings:
    # Seconds between host ticks (BlockingHost / AsyncioHost)
    tick_interval: float
    # Per-request timeout for HttpRequest
    http_timeout: float
    log_level: str

    @staticmethod
    def from_env() -> "Settings":
        tick_interval = _env_float(_k("TICK_INTERVAL"), 0.01)
        http_timeout = _env_float(_k("HTTP_TIMEOUT"), 30.0)
        log_level = _env(_k("LOG_LEVEL"), "WARNING").upper()

        if tick_interval <= 0:
            raise ValueError(f"{_k('TICK_INTERVAL')} must be positive, got {tick_interval}")
        if http_timeout <= 0:
            raise ValueError(f"{_k('HTTP_TIMEOUT')} must be positive, got {http_timeout}")
        if not isinstance(logging.getLevelName(log_level), int):
            raise ValueError(f"{_k('LOG_LEVEL')} must be a logging level name, got {log_level!r}")

        return Settings(
            tick_interval=tick_interval,
            http_timeout=http_timeout,
            log_level=log_level,
        )


def get_settings() -> Settings:
    """Read settings from the current environment."""
    return Settings.from_env()

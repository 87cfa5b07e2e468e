"""Runtime configuration for minerwatch.

All settings come from environment variables; anything unset falls back to
the defaults below.

Usage::

    from minerwatch.config import Settings
    settings = Settings.from_env()
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

DASHBOARD_URL = "https://console.geodnet.com/map"


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Invalid integer for %s=%r, using default %d", name, raw, default)
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    """Service configuration.

    Intervals are stored in seconds; ``REFRESH_INTERVAL`` and
    ``INACTIVITY_TIMEOUT`` are given in minutes in the environment.
    """

    host: str = "0.0.0.0"
    port: int = 3000

    # Session lifecycle
    refresh_interval: float = 60 * 60
    inactivity_timeout: float = 5 * 60
    retry_delay: float = 30.0
    poll_interval: float = 1.0
    reaper_interval: float = 60.0

    # Browser
    dashboard_url: str = DASHBOARD_URL
    browser_executable: str | None = None
    headless: bool = True
    navigation_timeout: float = 90.0

    # Snapshot reader
    read_attempts: int = 45
    settle_attempts: int = 5
    read_interval: float = 1.0

    # HTTP
    cors_origins: list[str] = field(default_factory=lambda: ["*"])
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> Settings:
        origins = os.environ.get("CORS_ORIGINS", "*")
        return cls(
            host=os.environ.get("HOST", "0.0.0.0"),
            port=_env_int("PORT", 3000),
            refresh_interval=_env_int("REFRESH_INTERVAL", 60) * 60,
            inactivity_timeout=_env_int("INACTIVITY_TIMEOUT", 5) * 60,
            retry_delay=float(_env_int("RETRY_DELAY", 30)),
            dashboard_url=os.environ.get("DASHBOARD_URL", DASHBOARD_URL),
            browser_executable=os.environ.get("CHROMIUM_PATH") or None,
            headless=_env_bool("HEADLESS", True),
            navigation_timeout=float(_env_int("NAVIGATION_TIMEOUT", 90)),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        )

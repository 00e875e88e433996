import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from app.config.logger import get_logger

LOGGER = get_logger("settings")

DEFAULT_API_URL = "https://api.anthropic.com/v1/messages"
DEFAULT_API_VERSION = "2023-06-01"
DEFAULT_MODEL = "claude-opus-4-5"


@dataclass(frozen=True)
class Settings:
    """Process configuration, read once from the environment."""

    anthropic_api_key: Optional[str] = None
    anthropic_api_url: str = DEFAULT_API_URL
    anthropic_version: str = DEFAULT_API_VERSION
    model: str = DEFAULT_MODEL
    max_tokens: int = 4000
    upstream_timeout_seconds: float = 120.0
    ledger_capacity: int = 100
    usage_sink_enabled: bool = True
    usage_collection: str = "dj_usage"
    stories_collection: str = "stories"
    debug_logs: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            anthropic_api_key=os.getenv("ANTHROPIC_API_KEY") or None,
            anthropic_api_url=os.getenv("ANTHROPIC_API_URL", DEFAULT_API_URL),
            anthropic_version=os.getenv("ANTHROPIC_VERSION", DEFAULT_API_VERSION),
            model=os.getenv("DJ_MODEL", DEFAULT_MODEL),
            max_tokens=_env_int("DJ_MAX_TOKENS", 4000),
            upstream_timeout_seconds=float(_env_int("UPSTREAM_TIMEOUT_SECONDS", 120)),
            ledger_capacity=_env_int("USAGE_LEDGER_CAPACITY", 100),
            usage_sink_enabled=_env_flag("USAGE_SINK_ENABLED", default=True),
            usage_collection=os.getenv("USAGE_COLLECTION", "dj_usage"),
            stories_collection=os.getenv("STORIES_COLLECTION", "stories"),
            debug_logs=_env_flag("USAGE_TRACKING_DEBUG"),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        LOGGER.warning(
            "Invalid integer setting; using default",
            extra={"setting": name, "value": raw, "default": default},
        )
        return default
    if value <= 0:
        LOGGER.warning(
            "Non-positive integer setting; using default",
            extra={"setting": name, "value": value, "default": default},
        )
        return default
    return value

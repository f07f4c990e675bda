"""
Tabulation Settings

Centralized runtime configuration for the tabulation engine.
All values are loaded from environment variables (a local .env file is
honoured through python-dotenv).
"""
import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()


def get_bool_env(key: str, default: bool = False) -> bool:
    """Get a boolean value from environment variable."""
    value = os.getenv(key, str(default)).lower()
    return value in ('true', '1', 'yes', 'on', 'enabled')


def get_int_env(key: str, default: int) -> int:
    """Get an integer value from environment variable, falling back on junk."""
    raw = os.getenv(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    """
    Settings for the tabulation engine.

    To add a new setting:
    1. Add it here as a field
    2. Load it from environment variable in from_env()
    3. Pass the Settings object to the component that needs it
    """

    database_url: str = "sqlite+aiosqlite:///./tabulation.db"

    # Debounce window for score auto-save, in milliseconds
    autosave_delay_ms: int = 500

    # "rank" or "score"
    default_aggregation_mode: str = "rank"

    # Append score_change / rank_change audit rows after a first submission
    score_change_audit: bool = True

    environment: str = "development"
    log_level: str = "INFO"

    @property
    def autosave_delay(self) -> float:
        """Debounce window in seconds."""
        return max(self.autosave_delay_ms, 0) / 1000.0

    @classmethod
    def from_env(cls) -> "Settings":
        mode = os.getenv("DEFAULT_AGGREGATION_MODE", "rank").strip().lower()
        if mode not in ("rank", "score"):
            mode = "rank"

        return cls(
            database_url=os.getenv("TABULATION_DATABASE_URL", cls.database_url),
            autosave_delay_ms=get_int_env("AUTOSAVE_DELAY_MS", cls.autosave_delay_ms),
            default_aggregation_mode=mode,
            score_change_audit=get_bool_env("FEATURE_SCORE_CHANGE_AUDIT", True),
            environment=os.getenv("ENVIRONMENT", "development"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Process-wide settings, read once."""
    return Settings.from_env()

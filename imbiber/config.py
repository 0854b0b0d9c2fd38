"""
Configuration management for Book Imbiber.
Runtime configuration is stored in the database and cached in-process.
"""

import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field


class RuntimeConfig(BaseModel):
    """
    Runtime configuration stored in database.
    All fields have sensible defaults so a fresh install works without setup.
    """

    # Catalog (Google Books)
    google_books_api_url: str = Field(
        default="https://www.googleapis.com/books/v1/volumes",
        description="Volumes endpoint of the Google Books API",
    )
    google_books_api_key: Optional[str] = Field(
        default=None,
        description="Optional Google Books API key (raises the anonymous quota)",
    )
    default_language: str = Field(
        default="en",
        description="Language searched when no locale is given",
    )

    # HTTP Client
    request_timeout: int = Field(
        default=30,
        description="HTTP request timeout in seconds",
    )
    user_agent: str = Field(
        default="BookImbiber/0.1 (release tracker)",
        description="User-Agent header for HTTP requests",
    )

    # Cache lifetimes
    author_cache_ttl_hours: int = Field(
        default=24,
        ge=0,
        description="How long author searches are served from cache",
    )
    query_cache_ttl_hours: int = Field(
        default=24,
        ge=0,
        description="How long free-text searches are served from cache",
    )
    identifier_cache_ttl_days: int = Field(
        default=7,
        ge=0,
        description="How long ISBN lookups are served from cache",
    )

    # Release checks
    check_cooldown_minutes: int = Field(
        default=60,
        ge=0,
        description="Minimum time between two non-forced release checks for one user",
    )
    check_interval_hours: int = Field(
        default=24,
        ge=1,
        le=24 * 7,
        description="Interval of the scheduled release check",
    )
    check_batch_size: int = Field(
        default=3,
        ge=1,
        le=20,
        description="Number of authors searched concurrently",
    )
    check_batch_delay_ms: int = Field(
        default=500,
        ge=0,
        le=60000,
        description="Pause between two author batches in milliseconds",
    )
    author_search_max_results: int = Field(
        default=10,
        ge=1,
        le=40,
        description="Number of catalog results fetched per followed author",
    )
    release_year_window: int = Field(
        default=1,
        ge=0,
        description="Books published this many years before the current one still count as new",
    )
    releases_per_notification: int = Field(
        default=3,
        ge=1,
        description="Maximum books listed in one release notification",
    )
    notification_retention: int = Field(
        default=50,
        ge=1,
        description="Number of notifications kept in history per user",
    )

    # Scheduler
    timezone: str = Field(
        default="UTC",
        description="Timezone for scheduled tasks",
    )

    # Bark Push Notification
    bark_enabled: bool = Field(
        default=True,
        description="Enable Bark push notifications (can be disabled without clearing device key)",
    )
    bark_device_key: Optional[str] = Field(
        default=None,
        description="Bark device key for push notifications",
    )
    bark_server_url: str = Field(
        default="https://api.day.app",
        description="Bark server URL (self-hosted or default)",
    )

    class Config:
        extra = "ignore"  # Ignore extra fields when loading from DB

    @property
    def check_cooldown_ms(self) -> int:
        return self.check_cooldown_minutes * 60 * 1000


class StaticConfig:
    """
    Static configuration that cannot be changed at runtime.
    These are hardcoded or set via environment for initial bootstrap only.
    """

    APP_NAME: str = "Book Imbiber"
    DEBUG: bool = False
    DATA_DIR: Path = Path(os.getenv("IMBIBER_DATA_DIR", "data"))
    DATABASE_URL: str = os.getenv(
        "IMBIBER_DATABASE_URL", "sqlite+aiosqlite:///data/imbiber.sqlite3"
    )

    @classmethod
    def ensure_data_dir(cls) -> None:
        """Ensure the data directory exists."""
        cls.DATA_DIR.mkdir(parents=True, exist_ok=True)


# =============================================================================
# Runtime config cache (populated on startup from DB)
# =============================================================================

_runtime_config: Optional[RuntimeConfig] = None


def get_runtime_config() -> RuntimeConfig:
    """
    Get the cached runtime configuration.
    Must be initialized on startup via config_store.ensure_config().
    """
    global _runtime_config
    if _runtime_config is None:
        # Return defaults if not yet initialized (CLI tools, tests)
        _runtime_config = RuntimeConfig()
    return _runtime_config


def set_runtime_config(config: RuntimeConfig) -> None:
    """Update the cached runtime configuration."""
    global _runtime_config
    _runtime_config = config

"""Application configuration via Pydantic Settings."""

from typing import Dict
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Global ingestion settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # App
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    # Network timeouts (seconds)
    HTTP_TIMEOUT_SECONDS: float = 10.0
    PAGE_TIMEOUT_SECONDS: float = 15.0
    SELECTOR_TIMEOUT_SECONDS: float = 15.0

    # Headless browser
    BROWSER_HEADLESS: bool = True

    # Naive listing times are local to the source
    SOURCE_TIMEZONE: str = "Asia/Kolkata"

    # Identifies us to robots.txt and URL probes
    SCRAPER_USER_AGENT: str = "EventSyncBot/1.0 (Event Aggregator)"

    # Allevents API (optional; HTML scraping is used when empty)
    ALLEVENTS_API_KEY: str = ""

    # Default request queue policy (seconds)
    QUEUE_MIN_DELAY_SECONDS: float = 1.0
    QUEUE_MAX_CONCURRENT: int = 5
    QUEUE_MAX_RETRIES: int = 3
    QUEUE_RETRY_DELAY_SECONDS: float = 1.0

    # URL reachability probe
    URL_CHECK_CACHE_TTL_SECONDS: int = 60 * 60  # 1 hour
    URL_CHECK_TIMEOUT_SECONDS: float = 3.0

    # Validation
    TEXT_MAX_LENGTH: int = 500
    DESCRIPTION_MAX_LENGTH: int = 5000
    PRICE_SANITY_CEILING: int = 100_000

    # Sync
    SYNC_DEFAULT_LIMIT: int = 50
    SYNC_WINDOW_DAYS: int = 90

    @model_validator(mode="after")
    def normalize_log_level(self) -> "Settings":
        """Accept lower-case level names from the environment."""
        self.LOG_LEVEL = self.LOG_LEVEL.upper()
        return self

    def get_platform_queue_limits(self) -> Dict[str, Dict[str, float]]:
        """Per-platform request pacing.

        Returns:
            Mapping of platform key to queue config keyword arguments
        """
        return {
            "insider": {"min_delay": 2.0, "max_concurrent": 2, "max_retries": 3, "retry_delay": 2.0},
            "paytm-insider": {"min_delay": 2.0, "max_concurrent": 2, "max_retries": 3, "retry_delay": 2.0},
            "bookmyshow": {"min_delay": 2.0, "max_concurrent": 2, "max_retries": 3, "retry_delay": 2.0},
            "allevents": {"min_delay": 1.0, "max_concurrent": 3, "max_retries": 3, "retry_delay": 1.0},
            "explara": {"min_delay": 1.5, "max_concurrent": 2, "max_retries": 3, "retry_delay": 1.5},
            "townscript": {"min_delay": 1.5, "max_concurrent": 2, "max_retries": 3, "retry_delay": 1.5},
            "eventbrite": {"min_delay": 1.2, "max_concurrent": 5, "max_retries": 3, "retry_delay": 1.0},
        }


settings = Settings()

"""Application configuration via Pydantic Settings."""

from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Global application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Storage
    STORE_BACKEND: str = "json"  # 'json' or 'sql'
    DEALS_JSON_PATH: str = "data/deals.json"
    DATABASE_URL: str = "sqlite+aiosqlite:///data/deals.db"
    DATABASE_ECHO: bool = False

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    # Browser driver
    BROWSER_HEADLESS: bool = True
    NAVIGATION_TIMEOUT_MS: int = 60_000
    LISTING_READY_TIMEOUT_MS: int = 90_000
    DETAIL_READY_TIMEOUT_MS: int = 30_000
    SETTLE_DELAY_SECONDS: float = 3.0
    SCROLL_STEP_PX: int = 500
    SCROLL_INTERVAL_SECONDS: float = 0.8
    MAX_SCROLL_ATTEMPTS: int = 40

    # HTTP fetcher (static pages)
    HTTP_TIMEOUT_SECONDS: float = 30.0

    # Retry controller
    MAX_SCRAPE_ATTEMPTS: int = 3
    BACKOFF_MULTIPLIER_SECONDS: float = 2.0
    BACKOFF_MAX_SECONDS: float = 30.0

    # Extraction
    CATEGORY_KEYWORDS: str = "lego"  # Comma-separated, any one must be in the title

    # Scheduler
    SCRAPE_TARGETS: str = ""  # Comma-separated list of URLs
    SCRAPE_INTERVAL_MINUTES: int = 60
    SCRAPE_CONCURRENCY: int = 2

    def get_category_keywords(self) -> List[str]:
        """Parse CATEGORY_KEYWORDS into a list of lowercase keywords."""
        return [k.strip().lower() for k in self.CATEGORY_KEYWORDS.split(",") if k.strip()]

    def get_scrape_targets(self) -> List[str]:
        """Parse SCRAPE_TARGETS into a list of URLs.

        Returns:
            List of URL strings, empty if SCRAPE_TARGETS is not set
        """
        if not self.SCRAPE_TARGETS:
            return []
        return [u.strip() for u in self.SCRAPE_TARGETS.split(",") if u.strip()]


settings = Settings()

"""
Configuration models for the system.
"""

from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import urlparse

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:145.0) "
    "Gecko/20100101 Firefox/145.0"
)


@dataclass
class SourceSiteConfig:
    """Where and how to crawl the catalog."""

    base_url: str = "https://smws.eu"
    live_start_path: str = "/all-whisky"
    live_listing_path: str = (
        "/all-whisky?min-price=0&max-price=0&sort=featured&per-page=16"
        "&filter-page={page}"
    )
    archive_start_path: str = "/archive"
    archive_listing_path: str = "/archive?page={page}"
    listing_selector_timeout: float = 15.0
    detail_selector_timeout: float = 15.0
    listing_settle_delay: float = 2.0
    detail_settle_delay: float = 0.5
    max_pages: int = 200

    def validate(self) -> bool:
        """Validate source site configuration."""
        parsed_url = urlparse(self.base_url or "")
        if not parsed_url.scheme or not parsed_url.netloc:
            raise ValueError(f"Invalid source base URL: {self.base_url}")

        if parsed_url.scheme not in ["http", "https"]:
            raise ValueError(f"Source base URL must use HTTP or HTTPS: {self.base_url}")

        for name in ("live_listing_path", "archive_listing_path"):
            if "{page}" not in getattr(self, name):
                raise ValueError(f"{name} must contain a '{{page}}' placeholder")

        for name in ("listing_selector_timeout", "detail_selector_timeout"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")

        for name in ("listing_settle_delay", "detail_settle_delay"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} cannot be negative")

        if not isinstance(self.max_pages, int) or self.max_pages <= 0:
            raise ValueError("max_pages must be a positive integer")

        return True


@dataclass
class BrowserConfig:
    """Headless browser settings."""

    headless: bool = True
    user_agent: str = DEFAULT_USER_AGENT
    navigation_timeout: float = 45.0
    ignore_https_errors: bool = True

    def validate(self) -> bool:
        if self.navigation_timeout <= 0:
            raise ValueError("Browser navigation timeout must be positive")
        if not self.user_agent or not self.user_agent.strip():
            raise ValueError("Browser user agent cannot be empty")
        return True


@dataclass
class DatabaseConfig:
    """SQLite mirror location."""

    path: str = "data/cask_watchtower.db"

    def validate(self) -> bool:
        if not self.path or not self.path.strip():
            raise ValueError("Database path cannot be empty")
        if self.path.strip() == ":memory:":
            raise ValueError("Database path must be a file, not :memory:")
        return True


@dataclass
class DiscordConfig:
    """Discord bot credentials used for private alert messages."""

    bot_token: str = ""
    api_base_url: str = "https://discord.com/api/v10"
    max_retries: int = 3
    retry_delay: float = 1.0

    def validate(self) -> bool:
        """Validate Discord configuration."""
        if not self.bot_token or self.bot_token.startswith("__MISSING_ENV_VAR_"):
            raise ValueError(
                "Discord bot token is required. Please set the DISCORD_BOT_TOKEN "
                "environment variable."
            )

        if not self.api_base_url.startswith("https://"):
            raise ValueError("Discord API base URL must use HTTPS")

        if not isinstance(self.max_retries, int) or self.max_retries < 0:
            raise ValueError("Discord max_retries must be a non-negative integer")

        return True


@dataclass
class ScheduleConfig:
    """Cycle cadence and freshness window."""

    live_interval_hours: float = 24.0
    archive_interval_hours: float = 48.0
    freshness_days: int = 3

    def validate(self) -> bool:
        if self.live_interval_hours <= 0:
            raise ValueError("live_interval_hours must be positive")
        if self.archive_interval_hours <= 0:
            raise ValueError("archive_interval_hours must be positive")
        if not isinstance(self.freshness_days, int) or self.freshness_days <= 0:
            raise ValueError("freshness_days must be a positive integer")
        return True


@dataclass
class LoggingConfig:
    """Log output settings."""

    level: str = "INFO"
    directory: str = "logs"

    def validate(self) -> bool:
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self.level.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return True


@dataclass
class Configuration:
    """System configuration."""

    source: SourceSiteConfig = field(default_factory=SourceSiteConfig)
    browser: BrowserConfig = field(default_factory=BrowserConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    discord: DiscordConfig = field(default_factory=DiscordConfig)
    schedule: ScheduleConfig = field(default_factory=ScheduleConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    origin_lookup_path: Optional[str] = None

    def validate(self, require_discord: bool = True) -> bool:
        """
        Validate system configuration.

        Discord credentials are only checked when require_discord is set, so
        local commands (alert management, database setup) work without them.
        """
        self.source.validate()
        self.browser.validate()
        self.database.validate()
        if require_discord:
            self.discord.validate()
        self.schedule.validate()
        self.logging.validate()
        return True

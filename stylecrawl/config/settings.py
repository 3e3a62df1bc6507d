"""
StyleCrawl Configuration System
===============================

Configuration management with environment variables and Pydantic models.
Environment variables override Field defaults with clear precedence.
"""

from typing import List, Optional
from enum import Enum

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings

from ..utils.exceptions import ConfigurationError, ErrorCode


class LogLevel(str, Enum):
    """Available log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class Environment(str, Enum):
    """Deployment environments."""
    DEVELOPMENT = "development"
    TEST = "test"
    PRODUCTION = "production"


DEFAULT_USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 13_2_1) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.0 Safari/605.1.15",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:123.0) Gecko/20100101 Firefox/123.0",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36",
]


class CrawlSettings(BaseModel):
    """Crawl limits, content thresholds and output caps."""
    max_posts_limit: int = Field(default=50, ge=1, le=200, description="Platform maximum for posts per crawl")
    default_max_posts: int = Field(default=20, ge=1, le=200, description="Posts crawled when the caller gives no count")
    min_text_length: int = Field(default=80, ge=1, description="Raw extraction length a candidate must exceed to be accepted")
    min_content_length: int = Field(default=200, ge=1, description="Selector text must be longer than this to beat whole-page fallback")
    min_post_length: int = Field(default=200, ge=1, description="Cleaned length a post must exceed to be kept")
    max_sample_length: int = Field(default=1500, ge=100, description="Per-post cap for few-shot samples")
    max_merged_length: int = Field(default=4000, ge=100, description="Per-post cap inside the merged corpus")
    merge_separator: str = Field(default="\n\n---\n\n", description="Separator between posts in the merged corpus")
    request_delay_min: float = Field(default=0.2, ge=0.0, description="Lower bound of the pause after each candidate fetch")
    request_delay_max: float = Field(default=0.7, ge=0.0, description="Upper bound of the pause after each candidate fetch")
    debug_capture_posts: int = Field(default=3, ge=0, le=50, description="Posts whose raw HTML is captured in debug mode")
    debug_dir: str = Field(default="data/debug-html", description="Directory for debug HTML captures")

    @model_validator(mode="after")
    def validate_delay_range(self):
        """Ensure the inter-request delay range is ordered."""
        if self.request_delay_max < self.request_delay_min:
            raise ValueError("request_delay_max must be >= request_delay_min")
        return self


class RetrySettings(BaseModel):
    """Retry and timeout budget for one kind of fetch."""
    max_attempts: int = Field(default=3, ge=1, le=10, description="Maximum attempts per fetch")
    initial_delay: float = Field(default=2.0, ge=0.0, description="Delay before the second attempt, seconds")
    max_delay: float = Field(default=10.0, ge=0.0, description="Upper bound for the backoff delay, seconds")
    backoff_multiplier: float = Field(default=2.0, ge=1.0, description="Exponential backoff multiplier")
    timeout: float = Field(default=20.0, gt=0.0, le=300.0, description="Per-attempt timeout, seconds")


class TransportSettings(BaseModel):
    """Outbound HTTP configuration."""
    feed_retry: RetrySettings = Field(
        default_factory=lambda: RetrySettings(max_attempts=2),
        description="Retry budget for the feed document",
    )
    page_retry: RetrySettings = Field(
        default_factory=RetrySettings,
        description="Retry budget for each post candidate URL",
    )
    max_redirects: int = Field(default=5, ge=0, le=20, description="Redirect hops followed per request")
    connections_per_host: int = Field(default=2, ge=1, le=20, description="Connection pool limit per host")
    user_agents: List[str] = Field(default_factory=lambda: list(DEFAULT_USER_AGENTS), description="Browser User-Agent pool")
    default_referer: str = Field(default="https://blog.naver.com", description="Referer used when the caller gives none")

    @field_validator("user_agents")
    @classmethod
    def validate_user_agents(cls, v):
        """User-Agent pool cannot be empty."""
        if not v:
            raise ValueError("user_agents must contain at least one entry")
        return v


class SecuritySettings(BaseModel):
    """Entry-point policy for feed URLs."""
    allowed_feed_hosts: List[str] = Field(
        default_factory=lambda: ["rss.blog.naver.com", "blog.rss.naver.com"],
        description="Hosts a feed URL may point to",
    )
    feed_path_suffix: str = Field(default=".xml", description="Required feed URL path suffix")

    @field_validator("allowed_feed_hosts")
    @classmethod
    def normalize_hosts(cls, v):
        """Compare hosts case-insensitively."""
        return [host.strip().lower() for host in v if host.strip()]


class LoggingSettings(BaseModel):
    """Logging configuration."""
    level: LogLevel = Field(default=LogLevel.INFO, description="Global log level")
    file_path: Optional[str] = Field(default="logs/stylecrawl.log", description="Log file path")
    max_file_size_mb: int = Field(default=10, ge=1, le=100, description="Max log file size in MB")
    backup_count: int = Field(default=5, ge=1, le=20, description="Number of log backup files")
    structured_logging: bool = Field(default=False, description="Use structured JSON logging")
    console_logging: bool = Field(default=True, description="Enable console logging")


class StyleCrawlSettings(BaseSettings):
    """Main application settings."""

    crawl: CrawlSettings = Field(default_factory=CrawlSettings)
    transport: TransportSettings = Field(default_factory=TransportSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    app_name: str = Field(default="StyleCrawl", description="Application name")
    version: str = Field(default="1.0.0", description="Application version")
    environment: Environment = Field(default=Environment.DEVELOPMENT, description="Deployment environment")
    debug: bool = Field(default=False, description="Enable debug logging")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "env_nested_delimiter": "__",
        "env_prefix": "STYLECRAWL_",
        "extra": "ignore",
    }

    def validate_configuration(self) -> None:
        """Validate cross-section constraints."""
        errors = []

        if self.crawl.default_max_posts > self.crawl.max_posts_limit:
            errors.append("crawl.default_max_posts exceeds crawl.max_posts_limit")

        if self.crawl.min_post_length < self.crawl.min_text_length:
            errors.append("crawl.min_post_length must be >= crawl.min_text_length")

        if not self.security.allowed_feed_hosts:
            errors.append("security.allowed_feed_hosts is empty")

        for name, retry in (("feed_retry", self.transport.feed_retry), ("page_retry", self.transport.page_retry)):
            if retry.max_delay < retry.initial_delay:
                errors.append(f"transport.{name}.max_delay must be >= initial_delay")

        if errors:
            raise ConfigurationError(
                f"Configuration validation failed: {'; '.join(errors)}",
                error_code=ErrorCode.CONFIG_INVALID
            )

    def is_production_mode(self) -> bool:
        """Check if running in production mode."""
        return self.environment == Environment.PRODUCTION

    def debug_allowed(self) -> bool:
        """Debug diagnostics and raw-page capture are never enabled in production."""
        return not self.is_production_mode()

    def get_effective_log_level(self) -> str:
        """Get effective log level considering debug mode."""
        if self.debug:
            return "DEBUG"
        return self.logging.level.value


def load_settings() -> StyleCrawlSettings:
    """Load settings from environment variables and defaults.

    Returns:
        Loaded and validated settings

    Raises:
        ConfigurationError: If configuration is invalid
    """
    from dotenv import load_dotenv
    load_dotenv()

    try:
        settings = StyleCrawlSettings()
        settings.validate_configuration()
        return settings

    except Exception as e:
        if isinstance(e, ConfigurationError):
            raise
        raise ConfigurationError(
            f"Failed to initialize settings: {e}",
            error_code=ErrorCode.CONFIG_INVALID
        )


_settings: Optional[StyleCrawlSettings] = None


def get_settings(reload: bool = False) -> StyleCrawlSettings:
    """Get the cached settings instance.

    Args:
        reload: Force reload of settings

    Returns:
        Settings instance
    """
    global _settings

    if _settings is None or reload:
        _settings = load_settings()

    return _settings

"""Application configuration management."""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List


class ConfigurationError(RuntimeError):
    """Raised when a required setting is missing or unusable."""


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str
    DATABASE_POOL_SIZE: int = 10
    DATABASE_MAX_OVERFLOW: int = 20

    # Redis (empty disables response caching)
    REDIS_URL: str = ""

    # Security
    CRON_SECRET: str = ""
    JWT_SECRET_KEY: str = ""
    JWT_ALGORITHM: str = "HS256"

    # CORS
    ALLOWED_ORIGINS: str = "http://localhost:3000"

    # YouTube Data API
    YOUTUBE_API_KEY: str = ""
    YOUTUBE_DAILY_QUOTA: int = 10000
    YOUTUBE_QUOTA_WARNING_RATIO: float = 0.8

    # Polling
    POLL_MAX_STREAMS: int = 200
    POLL_INTERVAL_SECONDS: int = 60
    POLL_MIN_INTERVAL_SECONDS: int = 55  # Slightly under the trigger cadence
    POLL_CYCLE_BUDGET_SECONDS: float = 50.0  # External ceiling is 60s
    FETCH_MAX_WORKERS: int = 4
    FETCH_MAX_ATTEMPTS: int = 3
    FETCH_RETRY_BASE_DELAY: float = 1.0

    # APScheduler
    SCHEDULER_ENABLED: bool = False
    SCHEDULER_EXECUTORS_DEFAULT_MAX_WORKERS: int = 2

    # Chart data
    CHART_MAX_POINTS: int = 2000
    METRICS_CACHE_TTL_SECONDS: int = 60

    # Error tracking
    SENTRY_DSN: str = ""

    # Application
    DEBUG: bool = False
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )

    @property
    def allowed_origins_list(self) -> List[str]:
        """Parse ALLOWED_ORIGINS comma-separated string into list."""
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",")]


# Global settings instance
settings = Settings()

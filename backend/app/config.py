"""Application configuration."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # API Settings
    APP_NAME: str = "WhatsApp Automation Engine"
    APP_VERSION: str = "1.0.0"
    API_V1_PREFIX: str = "/api/v1"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"  # development, staging, production

    # Database Settings
    DATABASE_URL: str = "sqlite+aiosqlite:///./automations.db"
    SQLALCHEMY_ECHO: bool = False
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10

    # Redis (Celery broker / result backend)
    REDIS_URL: str = "redis://localhost:6379/0"

    # WhatsApp Cloud API
    META_API_VERSION: str = "v19.0"
    META_GRAPH_BASE_URL: str = "https://graph.facebook.com"
    META_VERIFY_TOKEN: str = ""
    OUTBOUND_TIMEOUT_SECONDS: float = 20.0

    # Scheduled resumption
    CRON_SECRET: str = ""
    SCHEDULED_TASK_BATCH_SIZE: int = 100
    RUN_IN_PROCESS_POLLER: bool = False
    POLL_INTERVAL_SECONDS: int = 60

    # Engine behaviour
    MAX_FORWARD_DEPTH: int = 5
    BUSINESS_HOURS_TIMEZONE: str = "UTC"
    HTTP_ACTION_BLOCK_PRIVATE_NETWORKS: bool = True

    # CORS Settings
    ALLOWED_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"  # json or text

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.ENVIRONMENT == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENVIRONMENT == "production"

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse ALLOWED_ORIGINS string into a list."""
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",") if origin.strip()]

    @property
    def meta_base_url(self) -> str:
        """Versioned Graph API base URL."""
        return f"{self.META_GRAPH_BASE_URL.rstrip('/')}/{self.META_API_VERSION}"

    def validate_secrets(self) -> None:
        """Refuse to run in production with the inbound endpoints left unprotected.

        Raises:
            RuntimeError: If CRON_SECRET or META_VERIFY_TOKEN is empty in production
        """
        if self.is_production:
            if not self.CRON_SECRET:
                raise RuntimeError(
                    "CRITICAL: CRON_SECRET environment variable must be set in production."
                )
            if not self.META_VERIFY_TOKEN:
                raise RuntimeError(
                    "CRITICAL: META_VERIFY_TOKEN environment variable must be set in production."
                )


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings.

    Uses caching to ensure settings are loaded only once.

    Returns:
        Settings object with all configuration values
    """
    return Settings()

"""Application settings and configuration.

This module defines all configuration options for the Feedline application.
Settings are loaded from environment variables with sensible defaults.
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="Feedline", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Security and authentication
    secret_key: str = Field(default="feedline-dev-secret", alias="SECRET_KEY")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(
        default=60 * 24 * 30,
        alias="ACCESS_TOKEN_EXPIRE_MINUTES",
    )

    # Database configuration
    database_url: str = Field(default="sqlite:///./feedline.db", alias="DATABASE_URL")
    test_database_url: str | None = Field(default=None, alias="TEST_DATABASE_URL")
    use_testing_database: bool = Field(default=False, alias="USE_TEST_DATABASE")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Relation store behaviour
    store_timeout_seconds: float = Field(default=10.0, alias="STORE_TIMEOUT_SECONDS")
    store_require_composite_indexes: bool = Field(
        default=True,
        alias="STORE_REQUIRE_COMPOSITE_INDEXES",
    )

    # Feed pagination and caching
    feed_page_size: int = Field(default=15, alias="FEED_PAGE_SIZE")
    feed_max_page_size: int = Field(default=100, alias="FEED_MAX_PAGE_SIZE")
    feed_cache_ttl_seconds: float = Field(default=60.0, alias="FEED_CACHE_TTL_SECONDS")
    entity_cache_ttl_seconds: float = Field(default=300.0, alias="ENTITY_CACHE_TTL_SECONDS")

    # Optimistic toggles: queue a second request behind the in-flight one, or drop it
    toggle_inflight_policy: Literal["queue", "reject"] = Field(
        default="queue",
        alias="TOGGLE_INFLIGHT_POLICY",
    )

    # Notification side effects
    notifications_enabled: bool = Field(default=True, alias="NOTIFICATIONS_ENABLED")
    notification_queue_size: int = Field(default=1000, alias="NOTIFICATION_QUEUE_SIZE")

    # CORS configuration for web frontend access
    cors_origins: list[str] = Field(
        default=["*"],
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(
        default=["*"],
        alias="CORS_ALLOW_HEADERS",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @property
    def effective_database_url(self) -> str:
        """Return the database URL respecting testing overrides.

        Returns:
            The active database URL (test database if in testing mode, otherwise production)
        """
        if self.use_testing_database and self.test_database_url:
            return self.test_database_url
        return self.database_url

    @property
    def is_sqlite(self) -> bool:
        """Return True when the active database is SQLite."""
        return self.effective_database_url.startswith("sqlite")


settings = Settings()

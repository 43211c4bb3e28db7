"""Application settings and configuration.

This module defines all configuration options for the Chorus membership core.
Settings are loaded from environment variables with sensible defaults.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="Chorus Membership", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Database configuration
    database_url: str = Field(
        default="sqlite:///./chorus_membership.db",
        alias="DATABASE_URL",
    )
    test_database_url: str | None = Field(default=None, alias="TEST_DATABASE_URL")
    use_testing_database: bool = Field(default=False, alias="USE_TEST_DATABASE")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Join policy applied to newly created communities
    default_join_method: str = Field(default="auto_approve", alias="DEFAULT_JOIN_METHOD")

    # Listing limits for moderator views
    audit_log_page_size: int = Field(default=50, alias="AUDIT_LOG_PAGE_SIZE")
    audit_log_max_page_size: int = Field(default=100, alias="AUDIT_LOG_MAX_PAGE_SIZE")
    mod_queue_page_size: int = Field(default=50, alias="MOD_QUEUE_PAGE_SIZE")

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def database_url_sync(self) -> str:
        """Return a sync-compatible database URL for tooling.

        Converts asyncpg URLs to psycopg for synchronous database operations
        like Alembic migrations.
        """
        url = self.effective_database_url
        if url.startswith("postgresql+asyncpg"):
            return url.replace("postgresql+asyncpg", "postgresql+psycopg", 1)
        return url

    @property
    def effective_database_url(self) -> str:
        """Return the database URL respecting testing overrides."""
        if self.use_testing_database and self.test_database_url:
            return self.test_database_url
        return self.database_url

    def clamp_page_size(self, limit: int | None) -> int:
        """Return a page size bounded by the configured audit log maximum."""
        if limit is None or limit <= 0:
            return self.audit_log_page_size
        return min(limit, self.audit_log_max_page_size)


settings = Settings()

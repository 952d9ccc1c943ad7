"""Application configuration with validation."""

from enum import Enum
from pydantic_settings import BaseSettings
from pydantic import Field, field_validator


class Environment(str, Enum):
    """Application environment."""
    DEVELOPMENT = "development"
    PRODUCTION = "production"


class ConfigurationError(Exception):
    """Raised when application configuration is invalid for the environment."""
    pass


class Settings(BaseSettings):
    """
    Application settings with validation.

    Uses Pydantic for configuration validation; every field can be set
    through an environment variable of the same (case-insensitive) name.
    """

    # Environment
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment (development/production)"
    )

    # Database Configuration
    database_url: str = Field(
        default="sqlite:///./cms_access.db",
        description="Database connection URL"
    )
    # Connection pool tuning (PostgreSQL only; ignored for SQLite).
    db_pool_size: int = Field(
        default=5,
        description="Number of persistent database connections"
    )
    db_max_overflow: int = Field(
        default=10,
        description="Extra connections allowed during traffic bursts"
    )
    db_pool_timeout: int = Field(
        default=30,
        description="Seconds to wait for a connection from the pool before raising"
    )
    db_pool_recycle: int = Field(
        default=1800,
        description="Seconds before a connection is recycled (prevents stale connections)"
    )

    # Identity source (SSO organisation API)
    # Empty URL = use the in-memory static directory (development only).
    identity_api_url: str = Field(
        default="",
        description="Base URL of the identity source's organisation API"
    )
    identity_api_token: str = Field(
        default="",
        description="Bearer token for the identity source"
    )
    identity_api_timeout: float = Field(
        default=30.0,
        description="Request timeout in seconds for identity lookups"
    )

    # Reconciliation
    reconcile_batch_size: int = Field(
        default=10,
        description="Entities evaluated together in one bounded-parallel batch"
    )
    reconcile_max_workers: int = Field(
        default=0,
        description="Threads per batch (0 = same as batch size)"
    )
    reconcile_progress_step: int = Field(
        default=10,
        description="Percent completion between progress log lines"
    )
    wiki_reconcile_interval_seconds: int = Field(
        default=24 * 60 * 60,
        description="Seconds between wiki permission reconciliation runs"
    )
    announcement_reconcile_interval_seconds: int = Field(
        default=24 * 60 * 60,
        description="Seconds between announcement permission reconciliation runs"
    )
    worker_poll_interval: int = Field(
        default=60,
        description="Seconds the worker sleeps between schedule checks"
    )

    # Logging Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    log_format: str = Field(
        default="json",
        description="Log output format: 'json' for structured, 'text' for human-readable"
    )

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the standard Python logging levels."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v_upper

    @field_validator('reconcile_batch_size', 'reconcile_progress_step')
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Must be at least 1")
        return v

    @property
    def reconcile_workers(self) -> int:
        """Effective thread count for one reconciliation batch."""
        return self.reconcile_max_workers or self.reconcile_batch_size

    def validate_production_config(self) -> None:
        """Validate configuration for production environment.

        In production, fails startup if the identity source is not configured.
        In development, returns silently and the static directory is used.

        Raises:
            ConfigurationError: If production config is incomplete.
        """
        errors: list[str] = []

        if not self.identity_api_url:
            errors.append(
                "IDENTITY_API_URL is empty. "
                "Permission drift cannot be detected without the identity source."
            )

        if self.database_url.startswith("sqlite"):
            errors.append(
                "DATABASE_URL points at SQLite. Use PostgreSQL in production."
            )

        if errors and self.environment == Environment.PRODUCTION:
            raise ConfigurationError(
                "Production configuration is invalid:\n  - " + "\n  - ".join(errors)
            )

    class Config:
        """Pydantic configuration."""
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


# Global settings instance
settings = Settings()

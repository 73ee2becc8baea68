"""Configuration management for the tablekit engine.

This module handles environment-based configuration using Pydantic Settings,
supporting both `.env` files and environment variables prefixed with
``TABLEKIT_``.
"""

from typing import Literal

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class TablekitConfig(BaseSettings):
    """Engine configuration."""

    model_config = SettingsConfigDict(
        env_prefix="TABLEKIT_",
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
    )

    # Environment
    environment: Literal["development", "testing", "production"] = Field(
        default="development", description="Application environment"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Log level")
    json_logs: bool = Field(default=False, description="Enable JSON formatted logs")
    debug_mode: bool = Field(
        default=False, description="Verbose debug logging of the schema pipeline"
    )

    # Schema configuration
    schema_path: str = Field(
        default="schemas",
        description="Directory containing schema documents (JSON or YAML)",
    )

    # Shared schema cache tier
    cache_enabled: bool = Field(
        default=False, description="Enable the shared (cross-process) schema cache"
    )
    cache_ttl: int = Field(
        default=3600, ge=0, description="Shared cache entry TTL in seconds"
    )

    # Relationship listings
    default_page_size: int = Field(default=25, ge=1)
    max_page_size: int = Field(default=100, ge=1)

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///tablekit.db",
        description="SQLAlchemy async database URL",
    )
    database_echo: bool = Field(default=False, description="Echo SQL statements")

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"


# Global configuration instance
config = TablekitConfig()

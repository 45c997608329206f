"""Configuration loading for the warehouse fulfillment engine.

This module provides centralized configuration management:
- Load settings from environment variables and .env files
- Validate configuration using pydantic
- Provide typed access to all settings
"""

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment.

    Uses pydantic-settings for environment variable handling with
    .env file support via python-dotenv.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Store configuration
    store_backend: Literal["sqlite", "postgresql"] = Field(
        default="sqlite",
        description="Persistence backend type",
    )
    store_sqlite_path: str = Field(
        default="./data/fulfillment.db",
        description="SQLite database file path",
    )
    database_url: str = Field(
        default="",
        description="PostgreSQL connection URL",
    )

    # Warehouse lifecycle
    replace_mode: Literal["two_phase", "atomic"] = Field(
        default="two_phase",
        description="Warehouse replacement semantics",
    )

    # Fulfillment limits
    max_warehouses_per_product_per_store: int = Field(
        default=2,
        description="Maximum warehouses fulfilling one product for one store",
    )
    max_warehouses_per_store: int = Field(
        default=3,
        description="Maximum distinct warehouses fulfilling one store",
    )
    max_products_per_warehouse: int = Field(
        default=5,
        description="Maximum distinct products stocked by one warehouse",
    )

    # Legacy store manager integration
    legacy_sync_enabled: bool = Field(
        default=True,
        description="Propagate committed store changes to the legacy store manager",
    )

    # Demo data
    seed_demo_data: bool = Field(
        default=False,
        description="Load the demo products, stores and warehouses on startup",
    )

    # Logging configuration
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Log level",
    )
    log_format: Literal["json", "text"] = Field(
        default="text",
        description="Log format",
    )

    # Run mode
    run_mode: Literal["cli"] = Field(
        default="cli",
        description="Run mode",
    )

    # Development
    debug: bool = Field(
        default=False,
        description="Enable debug mode with verbose logging",
    )

    @field_validator(
        "max_warehouses_per_product_per_store",
        "max_warehouses_per_store",
        "max_products_per_warehouse",
    )
    @classmethod
    def validate_limits(cls, v: int) -> int:
        """Ensure fulfillment limits are positive."""
        if v <= 0:
            raise ValueError("fulfillment limits must be positive")
        return v

    @field_validator("store_sqlite_path")
    @classmethod
    def validate_sqlite_path(cls, v: str) -> str:
        """Ensure the SQLite path is not blank."""
        if not v.strip():
            raise ValueError("store_sqlite_path must not be empty")
        return v


def load_settings(env_file: str | None = None) -> Settings:
    """Load application settings from environment.

    Args:
        env_file: Optional path to .env file. If not provided,
                 uses the default .env in the current directory.

    Returns:
        Validated Settings instance.

    Raises:
        ValidationError: If settings validation fails.
    """
    if env_file:
        return Settings(_env_file=env_file)  # type: ignore[call-arg]
    return Settings()


__all__ = ["Settings", "load_settings"]

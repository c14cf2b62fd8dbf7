"""Centralized configuration management for txsync.

This module provides a Pydantic Settings-based configuration system that
consolidates database, Plaid, sync engine and logging settings with environment
variable integration, type validation, and clear error handling.
"""

import os
from decimal import Decimal
from pathlib import Path
from typing import Any, Literal

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseConfig(BaseModel):
    """Database configuration settings."""

    model_config = ConfigDict(frozen=True)

    path: Path = Field(
        default=Path("data/duckdb/txsync.duckdb"),
        description="Path to DuckDB database file",
    )
    create_dirs: bool = Field(
        default=True, description="Automatically create database directories"
    )

    @field_validator("path")
    @classmethod
    def validate_database_path(cls, v: Path) -> Path:
        """Ensure database path has correct extension."""
        if str(v) != ":memory:" and not str(v).endswith((".db", ".duckdb")):
            raise ValueError("Database path must end with .db or .duckdb")
        return v


class PlaidConfig(BaseModel):
    """Plaid API configuration settings."""

    model_config = ConfigDict(frozen=True)

    client_id: str = Field(default="", description="Plaid client ID")
    secret: str = Field(default="", description="Plaid secret key")
    environment: Literal["sandbox", "development", "production"] = Field(
        default="sandbox", description="Plaid environment"
    )
    max_retries: int = Field(
        default=3, ge=0, le=10, description="Maximum API retry attempts"
    )
    retry_delay: float = Field(
        default=1.0, ge=0.0, le=60.0, description="Delay between retries in seconds"
    )


class SyncConfig(BaseModel):
    """Sync engine configuration settings."""

    model_config = ConfigDict(frozen=True)

    page_size: int = Field(
        default=100, ge=1, le=500, description="Transactions requested per sync page"
    )
    duplicate_detection: bool = Field(
        default=True,
        description="Reconcile pending/posted pairs; false selects plain upsert",
    )
    duplicate_amount_tolerance: Decimal = Field(
        default=Decimal("1.00"),
        ge=Decimal("0"),
        description="Absolute amount difference under which two rows on the same date are candidates",
    )
    max_workers: int = Field(
        default=4, ge=1, le=32, description="Items synced concurrently"
    )
    max_pagination_restarts: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Restarts allowed when the feed mutates during pagination",
    )
    advance_cursor_on_write_failure: bool = Field(
        default=False,
        description="Advance the cursor even when a record-level write failed",
    )


class LoggingConfig(BaseModel):
    """Logging configuration settings."""

    model_config = ConfigDict(frozen=True)

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    log_to_file: bool = Field(default=False, description="Enable file logging")
    log_file_path: Path = Field(
        default=Path("logs/txsync.log"), description="Path to log file"
    )
    max_file_size_mb: int = Field(
        default=50, ge=1, description="Size at which the log file rotates"
    )
    backup_count: int = Field(default=5, ge=0, description="Rotated log files kept")


class TxSyncSettings(BaseSettings):
    """Main application settings with environment variable integration.

    Environment variables are loaded with the TXSYNC_ prefix.
    For nested configs, use double underscores: TXSYNC_SYNC__PAGE_SIZE
    """

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    plaid: PlaidConfig = Field(default_factory=PlaidConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    debug: bool = Field(default=False, description="Enable debug mode")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="TXSYNC_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    def __init__(self, **kwargs: Any):
        """Initialize settings with legacy environment variable overrides.

        Args:
            **kwargs: Additional configuration overrides
        """
        # Handle legacy DUCKDB_PATH environment variable
        if "database" not in kwargs:
            duckdb_path = os.getenv("DUCKDB_PATH")
            if duckdb_path:
                kwargs["database"] = DatabaseConfig(path=Path(duckdb_path))

        # Handle legacy Plaid environment variables
        if "plaid" not in kwargs:
            client_id = os.getenv("PLAID_CLIENT_ID")
            secret = os.getenv("PLAID_SECRET")
            env = os.getenv("PLAID_ENV", "sandbox")

            if client_id and secret:
                kwargs["plaid"] = PlaidConfig(
                    client_id=client_id,
                    secret=secret,
                    environment=env
                    if env in ("sandbox", "development", "production")
                    else "sandbox",
                )

        super().__init__(**kwargs)

    def create_directories(self) -> None:
        """Create necessary directories for the application."""
        directories = [self.logging.log_file_path.parent]
        if str(self.database.path) != ":memory:":
            directories.append(self.database.path.parent)

        for directory in directories:
            directory.mkdir(parents=True, exist_ok=True)

    def validate_required_credentials(self) -> None:
        """Validate that Plaid credentials are present.

        Only commands that call Plaid need this; local database commands do not.
        """
        errors: list[str] = []

        if not self.plaid.client_id:
            errors.append("PLAID_CLIENT_ID is required")
        if not self.plaid.secret:
            errors.append("PLAID_SECRET is required")

        if errors:
            raise ValueError(f"Missing required configuration: {', '.join(errors)}")


_settings: TxSyncSettings | None = None


def get_settings() -> TxSyncSettings:
    """Get the cached settings instance, loading it on first use.

    Returns:
        TxSyncSettings: The configuration instance

    Raises:
        ValueError: If configuration is invalid
    """
    global _settings

    if _settings is not None:
        return _settings

    load_dotenv()
    try:
        settings = TxSyncSettings()
    except Exception as e:
        raise ValueError(f"Configuration error: {e}") from e

    if settings.database.create_dirs:
        settings.create_directories()

    _settings = settings
    return settings


def reload_settings() -> TxSyncSettings:
    """Reload settings from environment variables.

    Returns:
        TxSyncSettings: The reloaded configuration instance
    """
    clear_settings_cache()
    return get_settings()


def clear_settings_cache() -> None:
    """Drop the cached settings so the next access reloads them."""
    global _settings
    _settings = None


def get_database_path() -> Path:
    """Get the configured database path."""
    return get_settings().database.path


def get_plaid_config() -> PlaidConfig:
    """Get the Plaid configuration."""
    return get_settings().plaid


def get_sync_config() -> SyncConfig:
    """Get the sync engine configuration."""
    return get_settings().sync

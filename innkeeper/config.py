"""Configuration loading for the Innkeeper booking system.

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
        description="Store backend type",
    )
    store_sqlite_path: str = Field(
        default="./data/innkeeper.db",
        description="SQLite database file path",
    )
    database_url: str = Field(
        default="",
        description="PostgreSQL connection URL",
    )
    store_pool_size: int = Field(
        default=5,
        description="Maximum number of pooled store connections",
    )

    # Availability cache configuration
    cache_backend: Literal["memory", "redis"] = Field(
        default="memory",
        description="Available-unit count cache backend",
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL for the redis cache backend",
    )
    cache_ttl_seconds: int | None = Field(
        default=None,
        description="Expiry for cached counts (None keeps them until invalidated)",
    )

    # Booking rules
    payment_timeout_minutes: int = Field(
        default=15,
        description="Minutes a pending booking holds its unit awaiting payment",
    )
    system_markup_percent: int = Field(
        default=15,
        description="Markup percentage added to each unit's base price",
    )

    # Scheduler configuration
    expiry_sweep_interval_seconds: float = Field(
        default=60,
        description="Interval between expiry sweeps in seconds",
    )
    completion_sweep_interval_seconds: float = Field(
        default=60,
        description="Interval between completion sweeps in seconds",
    )
    cache_recovery_interval_seconds: float = Field(
        default=300,
        description="Interval between cache recovery runs in seconds",
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
    run_mode: Literal["daemon", "cli", "api"] = Field(
        default="api",
        description="Run mode",
    )

    # API configuration
    api_host: str = Field(
        default="0.0.0.0",
        description="Host to listen on for the API server",
    )
    api_port: int = Field(
        default=8080,
        description="Port to listen on for the API server",
    )
    api_key: str = Field(
        default="",
        description="API key for API authentication (required for production)",
    )
    api_require_auth: bool = Field(
        default=False,
        description="Require API key authentication for API endpoints",
    )

    # Development
    debug: bool = Field(
        default=False,
        description="Enable debug mode with verbose logging",
    )

    @field_validator("payment_timeout_minutes")
    @classmethod
    def validate_payment_timeout(cls, v: int) -> int:
        """Ensure the payment window is positive."""
        if v <= 0:
            raise ValueError("payment_timeout_minutes must be positive")
        return v

    @field_validator("system_markup_percent")
    @classmethod
    def validate_markup(cls, v: int) -> int:
        """Ensure markup is within a sane range."""
        if v < 0 or v > 1000:
            raise ValueError("system_markup_percent must be between 0 and 1000")
        return v

    @field_validator(
        "expiry_sweep_interval_seconds",
        "completion_sweep_interval_seconds",
        "cache_recovery_interval_seconds",
    )
    @classmethod
    def validate_interval(cls, v: float) -> float:
        """Ensure scheduler intervals are positive."""
        if v <= 0:
            raise ValueError("sweep and recovery intervals must be positive")
        return v

    @field_validator("store_pool_size")
    @classmethod
    def validate_pool_size(cls, v: int) -> int:
        """Ensure pool size is positive."""
        if v <= 0:
            raise ValueError("store_pool_size must be positive")
        return v

    @field_validator("cache_ttl_seconds")
    @classmethod
    def validate_cache_ttl(cls, v: int | None) -> int | None:
        """Ensure cache TTL, when set, is positive."""
        if v is not None and v <= 0:
            raise ValueError("cache_ttl_seconds must be positive")
        return v

    @field_validator("api_port")
    @classmethod
    def validate_api_port(cls, v: int) -> int:
        """Ensure API port is in valid range."""
        if v <= 0 or v > 65535:
            raise ValueError("api_port must be between 1 and 65535")
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

"""
Sales Warehouse Loader
Centralized Configuration Management

This module provides configuration management using Pydantic settings with
environment variable support, validation, and type safety.
"""

from decimal import Decimal
from enum import Enum
from functools import lru_cache
from typing import List, Optional

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConsistencyPolicy(str, Enum):
    """What to do when a supplied total disagrees with price x quantity"""
    REJECT = "reject"
    RECOMPUTE = "recompute"


class DatabaseSettings(BaseSettings):
    """Warehouse Database Configuration"""

    model_config = SettingsConfigDict(env_prefix="POSTGRES_", populate_by_name=True)

    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    db: str = Field(default="sales_warehouse", description="Database name")
    user: str = Field(default="warehouse", description="Database user")
    password: SecretStr = Field(default="secure_password", description="Database password")
    echo: bool = Field(default=False, description="Echo SQL queries")
    url: Optional[str] = Field(default=None, alias="DATABASE_URL", description="Database URL (overrides host/port)")

    @property
    def async_url(self) -> str:
        """Async database URL - uses DATABASE_URL if set, otherwise asyncpg from host/port"""
        if self.url:
            return self.url
        return f"postgresql+asyncpg://{self.user}:{self.password.get_secret_value()}@{self.host}:{self.port}/{self.db}"


class LoaderSettings(BaseSettings):
    """Batch Loading Configuration"""

    model_config = SettingsConfigDict(env_prefix="LOADER_")

    batch_size: int = Field(default=50, ge=1, description="Records per atomic batch")
    max_workers: int = Field(default=1, ge=1, description="Concurrent batch workers")
    retry_budget: int = Field(default=3, ge=1, description="Attempts to resolve a dimension race")
    total_sale_tolerance: Decimal = Field(
        default=Decimal("0.01"),
        ge=0,
        description="Allowed difference between supplied total and price x quantity",
    )
    consistency_policy: ConsistencyPolicy = Field(
        default=ConsistencyPolicy.REJECT,
        description="reject: fail the record, recompute: replace the supplied total",
    )
    dead_letter_path: Optional[str] = Field(
        default=None,
        description="Directory for rolled-back batches (disabled when unset)",
    )


class AggregateSettings(BaseSettings):
    """Aggregate View Configuration"""

    model_config = SettingsConfigDict(env_prefix="AGGREGATE_")

    refresh_after_load: bool = Field(default=True, description="Refresh views after a load commits facts")
    modes: List[str] = Field(
        default=["plain", "rollup", "cube"],
        description="Views refreshed after a load",
    )


class MonitoringSettings(BaseSettings):
    """Logging Configuration"""

    model_config = SettingsConfigDict(env_prefix="", populate_by_name=True)

    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: str = Field(default="json", description="Log format: json or text")


class Settings(BaseSettings):
    """
    Main Application Settings

    Aggregates all configuration sections and provides a single entry point
    for accessing application configuration.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Application
    app_name: str = Field(default="sales-warehouse", alias="APP_NAME", description="Application name")
    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")
    debug: bool = Field(default=False, alias="DEBUG", description="Debug mode")

    # Version
    version: str = Field(default="1.0.0", description="Application version")

    # Subsystem configurations
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    loader: LoaderSettings = Field(default_factory=LoaderSettings)
    aggregates: AggregateSettings = Field(default_factory=AggregateSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment value"""
        allowed = ["development", "staging", "production", "testing"]
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.app_env == "production"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to ensure settings are only loaded once.

    Returns:
        Settings: Application settings instance
    """
    return Settings()

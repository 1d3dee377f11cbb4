#!/usr/bin/env python3
"""
Centralized Configuration Module using Pydantic Settings

This module provides type-safe, environment-based configuration for the
dormitory expense cache service. Every tunable of the cache layer (Redis
connection, namespace prefix, hot tier, stampede lock, warmup datasets) is
declared here once.

Architectural Decision: Pydantic Settings for type safety and validation
- Environment variable loading with .env support
- Type validation at startup (fail fast on misconfiguration)
- Nested section objects for grouped access (settings.redis, settings.warmup)
"""

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RedisSettings(BaseSettings):
    """
    Redis configuration for the distributed cache tier.

    STAGE-0.1: Redis connection configuration

    Connect timeout mirrors the 10s used by the expense backend; command
    timeout is 5s so a stalled Redis degrades reads to misses quickly.
    """

    REDIS_HOST: str = Field(default="localhost", description="Redis server host")
    REDIS_PORT: int = Field(default=6379, description="Redis server port")
    REDIS_DB: int = Field(default=0, description="Redis database number")
    REDIS_PASSWORD: str | None = Field(default=None, description="Redis password (if required)")
    REDIS_MAX_CONNECTIONS: int = Field(default=50, description="Maximum pooled connections")
    REDIS_SOCKET_TIMEOUT: int = Field(default=5, description="Command timeout in seconds")
    REDIS_SOCKET_CONNECT_TIMEOUT: int = Field(default=10, description="Connection timeout in seconds")
    REDIS_HEALTH_CHECK_INTERVAL: int = Field(default=30, description="Health check interval in seconds")
    REDIS_CONNECT_RETRIES: int = Field(default=3, ge=1, description="Connect attempts before giving up")
    REDIS_RECONNECT_INTERVAL: float = Field(
        default=5.0, ge=0, description="Minimum seconds between lazy reconnect attempts"
    )

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class CacheSettings(BaseSettings):
    """
    Distributed cache behaviour.

    STAGE-2: Namespace, default TTL and stampede lock
    """

    CACHE_KEY_PREFIX: str = Field(default="expense_system:", description="Namespace prefix for every key")
    CACHE_DEFAULT_TTL: int = Field(default=3600, description="TTL used when a caller passes none")
    CACHE_LOCK_TTL: int = Field(default=10, ge=1, description="Stampede lock expiry in seconds")
    CACHE_LOCK_WAIT: float = Field(default=0.1, ge=0, description="Wait before rechecking a locked key")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class HotTierSettings(BaseSettings):
    """
    Process-local hot tier.

    STAGE-2.1: Hot key mirror sizing
    """

    HOT_TIER_ENABLED: bool = Field(default=True, description="Mirror hot keys in process memory")
    HOT_TIER_MAX_SIZE: int = Field(default=100, ge=1, description="Maximum mirrored entries")
    HOT_TIER_TTL: int = Field(default=300, ge=1, description="Local expiry of a mirrored entry")
    HOT_TIER_PROMOTION_THRESHOLD: int = Field(
        default=1, ge=1, description="Redis hits on a hot key before it is mirrored"
    )

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class WarmupSettings(BaseSettings):
    """
    Cache warmup job configuration.

    STAGE-W: Dataset toggles and limits
    """

    WARMUP_ENABLED: bool = Field(default=True, description="Allow warmup runs")
    WARMUP_ON_STARTUP: bool = Field(default=False, description="Run warmup in the background at startup")
    WARMUP_BATCH_SIZE: int = Field(default=50, ge=1, description="Records processed per batch")
    WARMUP_BATCH_DELAY: float = Field(default=0.1, ge=0, description="Pause between batches in seconds")

    WARMUP_USERS_ENABLED: bool = Field(default=True, description="Warm active users")
    WARMUP_USERS_LIMIT: int = Field(default=1000, ge=0, description="Max users to warm")
    WARMUP_ROOMS_ENABLED: bool = Field(default=True, description="Warm active rooms")
    WARMUP_ROOMS_LIMIT: int = Field(default=500, ge=0, description="Max rooms to warm")
    WARMUP_BILLS_ENABLED: bool = Field(default=True, description="Warm recent bills")
    WARMUP_BILLS_LIMIT: int = Field(default=2000, ge=0, description="Max bills to warm")
    WARMUP_STATS_ENABLED: bool = Field(default=False, description="Warm room statistics")
    WARMUP_STATS_LIMIT: int = Field(default=100, ge=0, description="Max rooms whose stats are warmed")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)

    def dataset_enabled(self, name: str) -> bool:
        """Return the enabled flag for a dataset name (users, rooms, bills, stats)."""
        return getattr(self, f"WARMUP_{name.upper()}_ENABLED", False)

    def dataset_limit(self, name: str) -> int:
        """Return the record limit for a dataset name."""
        return getattr(self, f"WARMUP_{name.upper()}_LIMIT", 0)


class LoggingSettings(BaseSettings):
    """
    Logging configuration for structured logging.

    STAGE-L: Logging configuration
    """

    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json", description="Log output format")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class ApplicationSettings(BaseSettings):
    """
    General application settings.

    STAGE-0: Application initialization
    """

    ENVIRONMENT: Literal["development", "staging", "production", "test"] = Field(
        default="development",
        description="Application environment"
    )
    APP_NAME: str = Field(default="Dormitory Expense Cache Service", description="Application name")
    APP_VERSION: str = Field(default="1.0.0", description="Application version")
    API_HOST: str = Field(default="0.0.0.0", description="Bind address for uvicorn")
    API_PORT: int = Field(default=8000, description="Listen port for uvicorn")
    API_BASE_PATH: str = Field(default="/api/v1", description="Prefix for every API router")
    CORS_ORIGINS: list[str] = Field(default=["*"], description="Allowed CORS origins")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class Settings(BaseSettings):
    """
    Main settings class that aggregates all configuration sections.

    Usage:
        from dormcache.core.config.settings import get_settings

        settings = get_settings()
        prefix = settings.cache.CACHE_KEY_PREFIX
        users_limit = settings.warmup.WARMUP_USERS_LIMIT
    """

    # Redis settings
    REDIS_HOST: str = Field(default="localhost", description="Redis server host")
    REDIS_PORT: int = Field(default=6379, description="Redis server port")
    REDIS_DB: int = Field(default=0, description="Redis database number")
    REDIS_PASSWORD: str | None = Field(default=None, description="Redis password (if required)")
    REDIS_MAX_CONNECTIONS: int = Field(default=50, description="Maximum pooled connections")
    REDIS_SOCKET_TIMEOUT: int = Field(default=5, description="Command timeout in seconds")
    REDIS_SOCKET_CONNECT_TIMEOUT: int = Field(default=10, description="Connection timeout in seconds")
    REDIS_HEALTH_CHECK_INTERVAL: int = Field(default=30, description="Health check interval in seconds")
    REDIS_CONNECT_RETRIES: int = Field(default=3, ge=1, description="Connect attempts before giving up")
    REDIS_RECONNECT_INTERVAL: float = Field(
        default=5.0, ge=0, description="Minimum seconds between lazy reconnect attempts"
    )

    # Cache settings
    CACHE_KEY_PREFIX: str = Field(default="expense_system:", description="Namespace prefix for every key")
    CACHE_DEFAULT_TTL: int = Field(default=3600, description="TTL used when a caller passes none")
    CACHE_LOCK_TTL: int = Field(default=10, ge=1, description="Stampede lock expiry in seconds")
    CACHE_LOCK_WAIT: float = Field(default=0.1, ge=0, description="Wait before rechecking a locked key")

    # Hot tier settings
    HOT_TIER_ENABLED: bool = Field(default=True, description="Mirror hot keys in process memory")
    HOT_TIER_MAX_SIZE: int = Field(default=100, ge=1, description="Maximum mirrored entries")
    HOT_TIER_TTL: int = Field(default=300, ge=1, description="Local expiry of a mirrored entry")
    HOT_TIER_PROMOTION_THRESHOLD: int = Field(
        default=1, ge=1, description="Redis hits on a hot key before it is mirrored"
    )

    # Warmup settings
    WARMUP_ENABLED: bool = Field(default=True, description="Allow warmup runs")
    WARMUP_ON_STARTUP: bool = Field(default=False, description="Run warmup in the background at startup")
    WARMUP_BATCH_SIZE: int = Field(default=50, ge=1, description="Records processed per batch")
    WARMUP_BATCH_DELAY: float = Field(default=0.1, ge=0, description="Pause between batches in seconds")
    WARMUP_USERS_ENABLED: bool = Field(default=True, description="Warm active users")
    WARMUP_USERS_LIMIT: int = Field(default=1000, ge=0, description="Max users to warm")
    WARMUP_ROOMS_ENABLED: bool = Field(default=True, description="Warm active rooms")
    WARMUP_ROOMS_LIMIT: int = Field(default=500, ge=0, description="Max rooms to warm")
    WARMUP_BILLS_ENABLED: bool = Field(default=True, description="Warm recent bills")
    WARMUP_BILLS_LIMIT: int = Field(default=2000, ge=0, description="Max bills to warm")
    WARMUP_STATS_ENABLED: bool = Field(default=False, description="Warm room statistics")
    WARMUP_STATS_LIMIT: int = Field(default=100, ge=0, description="Max rooms whose stats are warmed")

    # Logging settings
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json", description="Log output format")

    # Application settings
    ENVIRONMENT: Literal["development", "staging", "production", "test"] = Field(
        default="development",
        description="Application environment"
    )
    APP_NAME: str = Field(default="Dormitory Expense Cache Service", description="Application name")
    APP_VERSION: str = Field(default="1.0.0", description="Application version")
    API_HOST: str = Field(default="0.0.0.0", description="Bind address for uvicorn")
    API_PORT: int = Field(default=8000, description="Listen port for uvicorn")
    API_BASE_PATH: str = Field(default="/api/v1", description="Prefix for every API router")
    CORS_ORIGINS: list[str] = Field(default=["*"], description="Allowed CORS origins")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    # Nested configuration objects
    @property
    def redis(self) -> 'RedisSettings':
        """Get Redis settings."""
        return RedisSettings(
            REDIS_HOST=self.REDIS_HOST,
            REDIS_PORT=self.REDIS_PORT,
            REDIS_DB=self.REDIS_DB,
            REDIS_PASSWORD=self.REDIS_PASSWORD,
            REDIS_MAX_CONNECTIONS=self.REDIS_MAX_CONNECTIONS,
            REDIS_SOCKET_TIMEOUT=self.REDIS_SOCKET_TIMEOUT,
            REDIS_SOCKET_CONNECT_TIMEOUT=self.REDIS_SOCKET_CONNECT_TIMEOUT,
            REDIS_HEALTH_CHECK_INTERVAL=self.REDIS_HEALTH_CHECK_INTERVAL,
            REDIS_CONNECT_RETRIES=self.REDIS_CONNECT_RETRIES,
            REDIS_RECONNECT_INTERVAL=self.REDIS_RECONNECT_INTERVAL,
        )

    @property
    def cache(self) -> 'CacheSettings':
        """Get cache settings."""
        return CacheSettings(
            CACHE_KEY_PREFIX=self.CACHE_KEY_PREFIX,
            CACHE_DEFAULT_TTL=self.CACHE_DEFAULT_TTL,
            CACHE_LOCK_TTL=self.CACHE_LOCK_TTL,
            CACHE_LOCK_WAIT=self.CACHE_LOCK_WAIT,
        )

    @property
    def hot_tier(self) -> 'HotTierSettings':
        """Get hot tier settings."""
        return HotTierSettings(
            HOT_TIER_ENABLED=self.HOT_TIER_ENABLED,
            HOT_TIER_MAX_SIZE=self.HOT_TIER_MAX_SIZE,
            HOT_TIER_TTL=self.HOT_TIER_TTL,
            HOT_TIER_PROMOTION_THRESHOLD=self.HOT_TIER_PROMOTION_THRESHOLD,
        )

    @property
    def warmup(self) -> 'WarmupSettings':
        """Get warmup settings."""
        return WarmupSettings(
            WARMUP_ENABLED=self.WARMUP_ENABLED,
            WARMUP_ON_STARTUP=self.WARMUP_ON_STARTUP,
            WARMUP_BATCH_SIZE=self.WARMUP_BATCH_SIZE,
            WARMUP_BATCH_DELAY=self.WARMUP_BATCH_DELAY,
            WARMUP_USERS_ENABLED=self.WARMUP_USERS_ENABLED,
            WARMUP_USERS_LIMIT=self.WARMUP_USERS_LIMIT,
            WARMUP_ROOMS_ENABLED=self.WARMUP_ROOMS_ENABLED,
            WARMUP_ROOMS_LIMIT=self.WARMUP_ROOMS_LIMIT,
            WARMUP_BILLS_ENABLED=self.WARMUP_BILLS_ENABLED,
            WARMUP_BILLS_LIMIT=self.WARMUP_BILLS_LIMIT,
            WARMUP_STATS_ENABLED=self.WARMUP_STATS_ENABLED,
            WARMUP_STATS_LIMIT=self.WARMUP_STATS_LIMIT,
        )

    @property
    def logging(self) -> 'LoggingSettings':
        """Get logging settings."""
        return LoggingSettings(
            LOG_LEVEL=self.LOG_LEVEL,
            LOG_FORMAT=self.LOG_FORMAT,
        )

    @property
    def app(self) -> 'ApplicationSettings':
        """Get application settings."""
        return ApplicationSettings(
            ENVIRONMENT=self.ENVIRONMENT,
            APP_NAME=self.APP_NAME,
            APP_VERSION=self.APP_VERSION,
            API_HOST=self.API_HOST,
            API_PORT=self.API_PORT,
            API_BASE_PATH=self.API_BASE_PATH,
            CORS_ORIGINS=self.CORS_ORIGINS,
        )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"  # Ignore extra environment variables
    )


# Global settings instance (singleton pattern)
_settings: Settings | None = None


def get_settings() -> Settings:
    """
    Get the global settings instance (singleton).

    STAGE-0.3: Settings initialization

    Returns:
        Settings: Global settings instance
    """
    global _settings

    if _settings is None:
        _settings = Settings()

    return _settings


def reload_settings() -> Settings:
    """
    Reload settings (useful for testing).

    Returns:
        Settings: New settings instance
    """
    global _settings
    _settings = Settings()
    return _settings

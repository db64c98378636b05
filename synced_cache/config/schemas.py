"""
Synced Cache — Configuration Schemas

Defines typed configuration models using Pydantic for validation and type safety.
All configuration is defined here and validated before a cache is composed.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Environment(str, Enum):
    """Runtime environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TEST = "test"


class StorageBackend(str, Enum):
    """Supported key-value media for the local store."""

    MEMORY = "memory"
    REDIS = "redis"


class BroadcastBackend(str, Enum):
    """Supported cross-context broadcast channels."""

    LOCAL = "local"
    REDIS = "redis"


class LogLevel(str, Enum):
    """Log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log output formats."""

    JSON = "json"
    TEXT = "text"


class SyncedCacheConfig(BaseModel):
    """Root configuration for a synced cache instance."""

    environment: Environment = Field(default=Environment.DEVELOPMENT, description="Runtime environment")
    log_level: LogLevel = Field(default=LogLevel.INFO, description="Logging level")
    log_format: LogFormat = Field(default=LogFormat.JSON, description="Log output format")

    # Local store
    storage: StorageBackend = Field(default=StorageBackend.MEMORY, description="Key-value medium backing the cache")
    prefix: str = Field(default="shared_mfe_cache", min_length=1, description="Storage key namespace")
    default_ttl: int = Field(default=3600, ge=0, description="Default TTL in seconds (0 = no expiry)")

    # Backend synchronization
    backend_url: str = Field(
        default="http://localhost:8000/api/cache",
        description="Base URL of the backend authority (/sync, /set, /remove, /clear)",
    )
    sync_interval_ms: int = Field(default=30000, ge=0, description="Periodic sync interval (0 = disabled)")
    retry_delay_ms: int = Field(default=5000, ge=1, description="Delay before retrying a failed sync pass")
    retry_backoff: float = Field(default=1.0, ge=1.0, description="Retry delay multiplier (1.0 = fixed delay)")
    max_retries: int = Field(default=3, ge=0, description="Retries after the first failed sync attempt")
    request_timeout: float = Field(default=10.0, gt=0, description="Backend request timeout in seconds")

    # Cross-context broadcast
    broadcast: BroadcastBackend = Field(default=BroadcastBackend.LOCAL, description="Broadcast channel backend")
    channel: str = Field(default="mfe_cache_channel", min_length=1, description="Broadcast channel name")

    # Redis-specific settings (only used when a redis backend is selected)
    redis_url: str | None = Field(default=None, validate_default=True, description="Redis connection URL")
    redis_socket_timeout: int = Field(default=5, ge=1, description="Redis socket timeout in seconds")

    @field_validator("backend_url")
    @classmethod
    def validate_backend_url(cls, v: str) -> str:
        """Require an absolute http(s) URL and drop any trailing slash."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("backend_url must be an absolute http:// or https:// URL")
        return v.rstrip("/")

    @field_validator("redis_url")
    @classmethod
    def validate_redis_url(cls, v: str | None, info: Any) -> str | None:
        """Ensure redis_url is provided when any backend is redis."""
        storage = info.data.get("storage")
        broadcast = info.data.get("broadcast")
        if (storage == StorageBackend.REDIS or broadcast == BroadcastBackend.REDIS) and not v:
            raise ValueError("redis_url is required when storage or broadcast backend is 'redis'")
        return v

    model_config = ConfigDict(use_enum_values=True, validate_assignment=True)

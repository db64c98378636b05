"""
Synced Cache — Configuration Loader

Loads and validates configuration from environment variables and .env files.
The loaded configuration is memoized; callers hand it to the composition root
(`synced_cache.factory.create_synced_cache`) rather than the cache reading it.
"""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import ValidationError

from ..errors import ConfigurationError
from .schemas import SyncedCacheConfig

logger = logging.getLogger(__name__)

ENV_PREFIX = "SYNCED_CACHE_"

_config_instance: SyncedCacheConfig | None = None


def _env(name: str, default: str | None = None) -> str | None:
    return os.getenv(f"{ENV_PREFIX}{name}", default)


def load_config(
    env_file: str | None = None,
    reload: bool = False,
) -> SyncedCacheConfig:
    """
    Load configuration from environment variables and .env file.

    Args:
        env_file: Path to .env file (default: .env in current directory)
        reload: Force reload even if config already loaded

    Returns:
        Validated SyncedCacheConfig instance

    Raises:
        ConfigurationError: If configuration is invalid
    """
    global _config_instance

    if _config_instance is not None and not reload:
        return _config_instance

    env_path = Path(env_file) if env_file else Path.cwd() / ".env"

    if env_path.exists():
        logger.info(f"Loading environment from {env_path}")
        try:
            load_dotenv(env_path, override=True)
        except Exception as e:
            logger.error(
                f"Failed to load .env file from {env_path}: {e}",
                extra={"path": str(env_path), "error": str(e)},
                exc_info=True,
            )
            raise ConfigurationError(
                f"Failed to load environment file: {e}",
                details={"path": str(env_path), "error": str(e)},
            ) from e
    else:
        logger.debug("No .env file found, using environment variables only")

    # Auto-detect redis backends when only REDIS_URL is provided
    redis_url = _env("REDIS_URL")
    redis_default = "redis" if redis_url else None

    config_dict = {
        "environment": _env("ENVIRONMENT", "development"),
        "log_level": _env("LOG_LEVEL", "INFO"),
        "log_format": _env("LOG_FORMAT", "json"),
        "storage": _env("STORAGE", redis_default or "memory"),
        "prefix": _env("PREFIX", "shared_mfe_cache"),
        "default_ttl": _env("DEFAULT_TTL", "3600"),
        "backend_url": _env("BACKEND_URL", "http://localhost:8000/api/cache"),
        "sync_interval_ms": _env("SYNC_INTERVAL_MS", "30000"),
        "retry_delay_ms": _env("RETRY_DELAY_MS", "5000"),
        "retry_backoff": _env("RETRY_BACKOFF", "1.0"),
        "max_retries": _env("MAX_RETRIES", "3"),
        "request_timeout": _env("REQUEST_TIMEOUT", "10.0"),
        "broadcast": _env("BROADCAST", redis_default or "local"),
        "channel": _env("CHANNEL", "mfe_cache_channel"),
        "redis_url": redis_url,
        "redis_socket_timeout": _env("REDIS_SOCKET_TIMEOUT", "5"),
    }

    try:
        _config_instance = SyncedCacheConfig.model_validate(config_dict)
        logger.info(
            f"Configuration loaded successfully (environment: {_config_instance.environment})",
            extra={
                "environment": _config_instance.environment,
                "storage": _config_instance.storage,
                "broadcast": _config_instance.broadcast,
            },
        )
        return _config_instance
    except ValidationError as e:
        logger.error(
            f"Configuration validation failed: {e}",
            extra={"validation_errors": e.errors(include_url=False), "config_dict_keys": list(config_dict.keys())},
        )
        raise ConfigurationError(
            "Configuration validation failed. Check your SYNCED_CACHE_* environment variables.",
            details={"validation_errors": e.errors(include_url=False)},
        ) from e


def get_config() -> SyncedCacheConfig:
    """
    Get the current configuration instance, loading it on first access.

    Returns:
        Current SyncedCacheConfig instance
    """
    if _config_instance is None:
        return load_config()

    return _config_instance


def reload_config(env_file: str | None = None) -> SyncedCacheConfig:
    """
    Force reload configuration.

    Args:
        env_file: Optional path to .env file

    Returns:
        Reloaded SyncedCacheConfig instance
    """
    return load_config(env_file=env_file, reload=True)


def reset_config() -> None:
    """Forget the memoized configuration (used by tests)."""
    global _config_instance
    _config_instance = None

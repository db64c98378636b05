"""
Synced Cache — Configuration Module

Provides typed configuration loading and validation.
"""

from .loader import get_config, load_config, reload_config, reset_config
from .schemas import (
    BroadcastBackend,
    Environment,
    LogFormat,
    LogLevel,
    StorageBackend,
    SyncedCacheConfig,
)

__all__ = [
    # Loader functions
    "load_config",
    "get_config",
    "reload_config",
    "reset_config",
    # Main config
    "SyncedCacheConfig",
    # Enums
    "Environment",
    "StorageBackend",
    "BroadcastBackend",
    "LogLevel",
    "LogFormat",
]

"""
Synced Cache — Configuration Tests

Tests schema validation and the SYNCED_CACHE_* environment loader.
"""

from pathlib import Path

import pytest
from pydantic import ValidationError

from synced_cache.config import (
    BroadcastBackend,
    StorageBackend,
    SyncedCacheConfig,
    get_config,
    load_config,
    reload_config,
)
from synced_cache.errors import ConfigurationError

_ENV_NAMES = [
    "ENVIRONMENT",
    "LOG_LEVEL",
    "STORAGE",
    "PREFIX",
    "DEFAULT_TTL",
    "BACKEND_URL",
    "SYNC_INTERVAL_MS",
    "MAX_RETRIES",
    "BROADCAST",
    "REDIS_URL",
]


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    """Clear SYNCED_CACHE_* variables; returns a path with no .env file."""
    for name in _ENV_NAMES:
        monkeypatch.delenv(f"SYNCED_CACHE_{name}", raising=False)
    return tmp_path / "missing.env"


class TestSyncedCacheConfig:
    """Test suite for the configuration schema."""

    def test_defaults(self) -> None:
        """Test defaults mirror the documented configuration."""
        config = SyncedCacheConfig()
        assert config.storage == StorageBackend.MEMORY
        assert config.broadcast == BroadcastBackend.LOCAL
        assert config.prefix == "shared_mfe_cache"
        assert config.channel == "mfe_cache_channel"
        assert config.default_ttl == 3600
        assert config.sync_interval_ms == 30000
        assert config.retry_delay_ms == 5000
        assert config.max_retries == 3
        assert config.backend_url == "http://localhost:8000/api/cache"

    def test_backend_url_normalized(self) -> None:
        """Test trailing slashes are stripped."""
        config = SyncedCacheConfig(backend_url="https://example.com/api/cache/")
        assert config.backend_url == "https://example.com/api/cache"

    def test_backend_url_must_be_http(self) -> None:
        """Test non-http URLs are rejected."""
        with pytest.raises(ValidationError):
            SyncedCacheConfig(backend_url="/api/cache")

    @pytest.mark.parametrize("field", ["storage", "broadcast"])
    def test_redis_requires_url(self, field: str) -> None:
        """Test redis backends need redis_url."""
        with pytest.raises(ValidationError, match="redis_url is required"):
            SyncedCacheConfig(**{field: "redis"})

    def test_redis_with_url(self) -> None:
        """Test redis backends validate once a URL is given."""
        config = SyncedCacheConfig(storage="redis", broadcast="redis", redis_url="redis://localhost:6379/0")
        assert config.storage == "redis"
        assert config.broadcast == "redis"

    def test_negative_values_rejected(self) -> None:
        """Test numeric bounds."""
        with pytest.raises(ValidationError):
            SyncedCacheConfig(default_ttl=-1)
        with pytest.raises(ValidationError):
            SyncedCacheConfig(max_retries=-1)


class TestConfigLoader:
    """Test suite for load_config / get_config / reload_config."""

    def test_load_from_environment(self, clean_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test SYNCED_CACHE_* variables are read and coerced."""
        monkeypatch.setenv("SYNCED_CACHE_PREFIX", "orders")
        monkeypatch.setenv("SYNCED_CACHE_DEFAULT_TTL", "60")
        monkeypatch.setenv("SYNCED_CACHE_SYNC_INTERVAL_MS", "0")
        monkeypatch.setenv("SYNCED_CACHE_MAX_RETRIES", "5")

        config = load_config(env_file=str(clean_env), reload=True)
        assert config.prefix == "orders"
        assert config.default_ttl == 60
        assert config.sync_interval_ms == 0
        assert config.max_retries == 5

    def test_load_is_memoized(self, clean_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test get_config returns the loaded instance until reloaded."""
        first = load_config(env_file=str(clean_env), reload=True)
        monkeypatch.setenv("SYNCED_CACHE_PREFIX", "changed")
        assert get_config() is first
        assert load_config(env_file=str(clean_env)) is first

        reloaded = reload_config(env_file=str(clean_env))
        assert reloaded is not first
        assert reloaded.prefix == "changed"

    def test_redis_url_selects_redis_backends(self, clean_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test a bare REDIS_URL switches both backends to redis."""
        monkeypatch.setenv("SYNCED_CACHE_REDIS_URL", "redis://localhost:6379/0")

        config = load_config(env_file=str(clean_env), reload=True)
        assert config.storage == "redis"
        assert config.broadcast == "redis"

    def test_explicit_backend_wins_over_redis_default(self, clean_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test an explicit storage choice is kept when REDIS_URL is set."""
        monkeypatch.setenv("SYNCED_CACHE_REDIS_URL", "redis://localhost:6379/0")
        monkeypatch.setenv("SYNCED_CACHE_STORAGE", "memory")

        config = load_config(env_file=str(clean_env), reload=True)
        assert config.storage == "memory"
        assert config.broadcast == "redis"

    def test_env_file_is_loaded(self, clean_env: Path, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        """Test values from a .env file are applied."""
        # Registered with monkeypatch so the value written by dotenv is undone
        monkeypatch.setenv("SYNCED_CACHE_PREFIX", "placeholder")
        env_file = tmp_path / "test.env"
        env_file.write_text("SYNCED_CACHE_PREFIX=from_file\n")

        config = load_config(env_file=str(env_file), reload=True)
        assert config.prefix == "from_file"

    def test_invalid_environment_raises(self, clean_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test validation failures surface as ConfigurationError."""
        monkeypatch.setenv("SYNCED_CACHE_BACKEND_URL", "ftp://example.com")

        with pytest.raises(ConfigurationError) as exc_info:
            load_config(env_file=str(clean_env), reload=True)
        assert exc_info.value.details["validation_errors"]

"""
Synced Cache — Structured Logging Tests
"""

import json
import logging

from synced_cache.observability import JSONFormatter, setup_logging


class TestJSONFormatter:
    """Test suite for JSONFormatter."""

    def test_extra_fields_are_lifted(self) -> None:
        """Test extra={...} fields appear in the JSON record."""
        record = logging.LogRecord("synced_cache.test", logging.INFO, __file__, 10, "hello %s", ("world",), None)
        record.key = "user"
        record.attempt = 2

        data = json.loads(JSONFormatter().format(record))
        assert data["message"] == "hello world"
        assert data["level"] == "INFO"
        assert data["logger"] == "synced_cache.test"
        assert data["key"] == "user"
        assert data["attempt"] == 2
        assert "args" not in data

    def test_exception_is_formatted(self) -> None:
        """Test exc_info is rendered."""
        try:
            raise ValueError("bad")
        except ValueError:
            import sys

            record = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", None, sys.exc_info())

        data = json.loads(JSONFormatter().format(record))
        assert "ValueError: bad" in data["exception"]


class TestSetupLogging:
    """Test suite for setup_logging."""

    def test_setup_is_idempotent(self) -> None:
        """Test repeated setup keeps a single package handler."""
        setup_logging("DEBUG")
        logger = setup_logging("WARNING", fmt="text")

        own = [h for h in logger.handlers if getattr(h, "_synced_cache_handler", False)]
        assert len(own) == 1
        assert not isinstance(own[0].formatter, JSONFormatter)
        assert logger.level == logging.WARNING

        for handler in own:
            logger.removeHandler(handler)
        logger.setLevel(logging.NOTSET)

"""
Synced Cache — Observability Module

Structured logging for the cache runtime.
"""

from .logging import JSONFormatter, setup_logging

__all__ = [
    "JSONFormatter",
    "setup_logging",
]

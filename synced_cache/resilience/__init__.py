"""
Synced Cache - Resilience Module

Retry policy for backend synchronization:
- Bounded retry attempts
- Fixed or exponential delay with optional jitter
- Error classification via errors.is_retryable_error
"""

from .retry import RetryConfig, backoff_delay

__all__ = [
    "RetryConfig",
    "backoff_delay",
]

"""
Synced Cache - Retry Policy

Retry bookkeeping for backend sync passes. The coordinator does not block
between attempts: it asks the policy for the next delay and schedules the
retry on its scheduler, so a failed pass never holds the event loop.

- Fixed delay by default (exponential_base=1.0), exponential backoff optional
- Optional jitter to spread retries of many contexts sharing one backend
- Bounded attempt count
"""

import random
from dataclasses import dataclass

from ..errors import is_retryable_error


@dataclass
class RetryConfig:
    """
    Configuration for retry behavior.

    Attributes:
        max_retries: Maximum number of retry attempts after the first failure (default: 3)
        base_delay_ms: Delay before the first retry in milliseconds (default: 5000)
        max_delay_ms: Maximum delay in milliseconds (default: 60000)
        exponential_base: Backoff multiplier, 1.0 keeps the delay fixed (default: 1.0)
        jitter: Add random jitter to each delay (default: False)
        jitter_factor: Jitter randomization factor 0-1 (default: 0.1)
    """

    max_retries: int = 3
    base_delay_ms: int = 5000
    max_delay_ms: int = 60000
    exponential_base: float = 1.0
    jitter: bool = False
    jitter_factor: float = 0.1

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.max_retries < 0:
            raise ValueError("max_retries must be non-negative")
        if self.base_delay_ms <= 0:
            raise ValueError("base_delay_ms must be positive")
        if self.max_delay_ms < self.base_delay_ms:
            raise ValueError("max_delay_ms must be >= base_delay_ms")
        if self.exponential_base < 1.0:
            raise ValueError("exponential_base must be >= 1.0")
        if not 0 <= self.jitter_factor <= 1:
            raise ValueError("jitter_factor must be between 0 and 1")

    def should_retry(self, attempt: int, error: Exception) -> bool:
        """
        Decide whether a failed attempt gets another try.

        Args:
            attempt: Number of the attempt that just failed (0 = first attempt)
            error: The failure

        Returns:
            True if the error is transient and retries remain
        """
        return is_retryable_error(error) and attempt < self.max_retries

    def delay_for(self, attempt: int) -> int:
        """Delay in milliseconds before the retry that follows `attempt`."""
        return backoff_delay(
            attempt=attempt,
            base_delay_ms=self.base_delay_ms,
            exponential_base=self.exponential_base,
            max_delay_ms=self.max_delay_ms,
            jitter=self.jitter,
            jitter_factor=self.jitter_factor,
        )


def backoff_delay(
    attempt: int,
    base_delay_ms: int = 5000,
    exponential_base: float = 1.0,
    max_delay_ms: int = 60000,
    jitter: bool = False,
    jitter_factor: float = 0.1,
) -> int:
    """
    Calculate the retry delay with optional exponential growth and jitter.

    Args:
        attempt: Current attempt number (0-indexed)
        base_delay_ms: Initial delay in milliseconds
        exponential_base: Base for exponential calculation (1.0 = fixed delay)
        max_delay_ms: Maximum delay cap
        jitter: Whether to add random jitter
        jitter_factor: Jitter randomization factor (0-1)

    Returns:
        Delay in milliseconds

    Example:
        >>> backoff_delay(0)  # 5000
        >>> backoff_delay(2, base_delay_ms=1000, exponential_base=2.0)  # 4000
    """
    delay = min(base_delay_ms * (exponential_base**attempt), max_delay_ms)

    if jitter and jitter_factor > 0:
        jitter_amount = delay * jitter_factor
        delay = delay + random.uniform(-jitter_amount, jitter_amount)
        delay = max(1.0, delay)

    return int(delay)

"""
Synced Cache - Core Error Types

Defines the exception hierarchy for the synced cache runtime.
All exceptions inherit from SyncedCacheError for consistent error handling.

Error kinds:
- STORAGE_FAILURE: quota/serialization problems in the local medium (non-fatal)
- NETWORK_FAILURE: transport errors and timeouts (retried)
- SERVER_FAILURE: 5xx responses from the backend authority (retried)
- PROTOCOL_FAILURE: malformed or rejected backend exchanges (not retried)
"""

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Structured error kinds delivered on the cache error channel."""

    STORAGE_FAILURE = "STORAGE_FAILURE"
    NETWORK_FAILURE = "NETWORK_FAILURE"
    SERVER_FAILURE = "SERVER_FAILURE"
    PROTOCOL_FAILURE = "PROTOCOL_FAILURE"
    SYNC_EXHAUSTED = "SYNC_EXHAUSTED"
    CONFIGURATION = "CONFIGURATION"
    DISPOSED = "DISPOSED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class SyncedCacheError(Exception):
    """Base exception for all synced cache errors."""

    kind: ErrorKind = ErrorKind.INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for host applications."""
        return {
            "error": self.__class__.__name__,
            "kind": self.kind.value,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(SyncedCacheError):
    """Raised when configuration is invalid or missing."""

    kind = ErrorKind.CONFIGURATION


class StorageError(SyncedCacheError):
    """Raised (or reported) when the local key-value medium rejects an operation."""

    kind = ErrorKind.STORAGE_FAILURE

    def __init__(self, operation: str, key: str | None, cause: Exception):
        message = f"Storage {operation} failed for key {key!r}: {cause}"
        super().__init__(
            message,
            {"operation": operation, "key": key, "error": str(cause), "error_type": type(cause).__name__},
        )
        self.operation = operation
        self.key = key
        self.cause = cause


class BackendError(SyncedCacheError):
    """Base exception for failures talking to the backend authority."""

    def __init__(self, message: str, endpoint: str, details: dict[str, Any] | None = None):
        error_details = {"endpoint": endpoint}
        error_details.update(details or {})
        super().__init__(message, error_details)
        self.endpoint = endpoint


class NetworkError(BackendError):
    """Raised when the backend cannot be reached."""

    kind = ErrorKind.NETWORK_FAILURE


class BackendTimeoutError(NetworkError):
    """Raised when a backend request exceeds the configured timeout."""

    def __init__(self, endpoint: str, timeout: float):
        message = f"Backend request to {endpoint} timed out after {timeout}s"
        super().__init__(message, endpoint, {"timeout": timeout})
        self.timeout = timeout


class ServerError(BackendError):
    """Raised when the backend answers with an error status."""

    kind = ErrorKind.SERVER_FAILURE

    def __init__(self, endpoint: str, status_code: int, reason: str = ""):
        message = f"Backend {endpoint} failed with status {status_code}"
        if reason:
            message += f": {reason}"
        super().__init__(message, endpoint, {"status_code": status_code, "reason": reason})
        self.status_code = status_code


class ProtocolError(BackendError):
    """Raised when a backend response does not match the wire contract."""

    kind = ErrorKind.PROTOCOL_FAILURE


class SyncExhaustedError(SyncedCacheError):
    """Raised on the error channel when a sync pass failed after every retry."""

    kind = ErrorKind.SYNC_EXHAUSTED

    def __init__(self, attempts: int, last_error: Exception):
        message = f"Backend sync failed after {attempts} attempt(s): {last_error}"
        super().__init__(
            message,
            {"attempts": attempts, "error": str(last_error), "error_type": type(last_error).__name__},
        )
        self.attempts = attempts
        self.last_error = last_error


class CacheDisposedError(SyncedCacheError):
    """Raised when a mutation is attempted on a disposed cache."""

    kind = ErrorKind.DISPOSED

    def __init__(self, operation: str):
        super().__init__(f"Cannot {operation}: cache has been disposed", {"operation": operation})


# Statuses that signal a transient condition even though they are not 5xx
_RETRYABLE_CLIENT_STATUSES = frozenset({408, 429})


def is_retryable_error(error: Exception) -> bool:
    """
    Check if an error is transient and a sync pass should be retried.

    Args:
        error: Exception to check

    Returns:
        True if error is retryable (transient)
    """
    if isinstance(error, NetworkError):
        return True

    if isinstance(error, ServerError):
        return error.status_code >= 500 or error.status_code in _RETRYABLE_CLIENT_STATUSES

    return False


def extract_error_kind(error: Exception) -> ErrorKind:
    """
    Extract the ErrorKind of an exception.

    Args:
        error: Exception to categorize

    Returns:
        ErrorKind for the exception (INTERNAL_ERROR for foreign exceptions)
    """
    if isinstance(error, SyncedCacheError):
        return error.kind
    return ErrorKind.INTERNAL_ERROR

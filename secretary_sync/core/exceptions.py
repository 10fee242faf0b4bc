"""
Exception classes for secretary-sync.
"""

from typing import TYPE_CHECKING, List

if TYPE_CHECKING:
    from .validation import FieldError


class SecretarySyncError(Exception):
    """Base exception for all secretary-sync errors."""
    pass


class ConfigurationError(SecretarySyncError):
    """Raised when configuration is invalid or missing."""
    pass


class StorageError(SecretarySyncError):
    """Raised when the local store directory cannot be used."""
    pass


class RemoteStoreError(SecretarySyncError):
    """Base exception for remote document store failures."""
    pass


class RemoteUnavailableError(RemoteStoreError):
    """Raised when the remote store is offline or not configured."""
    pass


class RemoteTransientError(RemoteStoreError):
    """Raised for retryable failures (network, timeout, rate limiting)."""
    pass


class RemoteAuthorizationError(RemoteStoreError):
    """Raised when the remote store rejects credentials. Not retryable."""
    pass


class TaskValidationError(SecretarySyncError):
    """Raised when task input fails validation.

    Carries the field-level error list so callers can show each problem
    next to the offending field.
    """

    def __init__(self, errors: List["FieldError"]):
        self.errors = list(errors)
        summary = "; ".join(f"{e.field}: {e.message}" for e in self.errors)
        super().__init__(f"Invalid task: {summary}" if summary else "Invalid task")


class TaskNotFoundError(SecretarySyncError):
    """Raised when a task cannot be found."""
    pass

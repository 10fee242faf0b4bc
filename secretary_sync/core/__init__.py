"""
Core module for secretary-sync - contains domain models, configuration, and exceptions.
"""

from .models import (
    Task,
    Section,
    Priority,
    SyncStatus,
    SyncOperation,
    SyncRecord,
    ScheduleEntry,
    ScheduleSnapshot,
    Settings,
    EntityRef,
)

from .exceptions import (
    SecretarySyncError,
    ConfigurationError,
    StorageError,
    RemoteStoreError,
    RemoteUnavailableError,
    RemoteTransientError,
    RemoteAuthorizationError,
    TaskValidationError,
    TaskNotFoundError,
)

from .config import StoreConfig, RetrySettings, load_config, save_config
from .validation import FieldError, validate_task_input, ensure_valid

__all__ = [
    # Models
    'Task',
    'Section',
    'Priority',
    'SyncStatus',
    'SyncOperation',
    'SyncRecord',
    'ScheduleEntry',
    'ScheduleSnapshot',
    'Settings',
    'EntityRef',
    # Exceptions
    'SecretarySyncError',
    'ConfigurationError',
    'StorageError',
    'RemoteStoreError',
    'RemoteUnavailableError',
    'RemoteTransientError',
    'RemoteAuthorizationError',
    'TaskValidationError',
    'TaskNotFoundError',
    # Configuration
    'StoreConfig',
    'RetrySettings',
    'load_config',
    'save_config',
    # Validation
    'FieldError',
    'validate_task_input',
    'ensure_valid',
]

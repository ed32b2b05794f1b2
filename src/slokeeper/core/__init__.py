"""Core modules for slokeeper - centralized definitions and utilities."""

from slokeeper.core.errors import (
    AggregateConflictError,
    ConflictError,
    InvalidConfigurationError,
    NotificationDeliveryError,
    SLOKeeperError,
    SLONotFoundError,
    StorageError,
    StorageTimeoutError,
    StorageUnavailableError,
    format_error_message,
    guard_storage,
)

__all__ = [
    "SLOKeeperError",
    "SLONotFoundError",
    "InvalidConfigurationError",
    "ConflictError",
    "StorageError",
    "StorageUnavailableError",
    "StorageTimeoutError",
    "AggregateConflictError",
    "NotificationDeliveryError",
    "format_error_message",
    "guard_storage",
]

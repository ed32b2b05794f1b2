"""
Unified error handling for slokeeper.

Every failure the evaluation engine reports is a subclass of
``SLOKeeperError``. The scheduler and the read-side handlers branch on the
subclass, never on message text:

- SLONotFoundError: SLO id does not resolve (no side effects)
- InvalidConfigurationError: rejected before any storage access
- StorageUnavailableError / StorageTimeoutError: transient, not retried here
- NotificationDeliveryError: alert decision was made but dispatch failed
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import structlog
from sqlalchemy.exc import SQLAlchemyError

logger = structlog.get_logger()


class SLOKeeperError(Exception):
    """Base exception for slokeeper errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class SLONotFoundError(SLOKeeperError):
    """Raised when an SLO id does not resolve to a configuration."""

    def __init__(self, slo_id: str, details: dict[str, Any] | None = None):
        super().__init__(f"SLO not found: {slo_id}", {"slo_id": slo_id, **(details or {})})
        self.slo_id = slo_id


class InvalidConfigurationError(SLOKeeperError):
    """Raised for SLO configurations the engine cannot evaluate."""


class ConflictError(InvalidConfigurationError):
    """Raised when an SLO name is already taken for a service."""


class StorageError(SLOKeeperError):
    """Raised when a storage backend fails."""

    transient: bool = False


class StorageUnavailableError(StorageError):
    """Raised when a storage backend cannot be reached or errors out."""

    transient = True


class StorageTimeoutError(StorageError):
    """Raised when a storage call exceeds its deadline."""

    transient = True


class AggregateConflictError(StorageError):
    """Raised when an aggregate bucket would be written twice."""


class NotificationDeliveryError(SLOKeeperError):
    """Raised when a notification could not be dispatched."""


def format_error_message(error: SLOKeeperError) -> str:
    """Format an error message for logs and API responses."""
    msg = error.message
    if error.details:
        detail_str = ", ".join(f"{k}={v}" for k, v in error.details.items())
        msg = f"{msg} ({detail_str})"
    return msg


@asynccontextmanager
async def guard_storage(operation: str, **context: Any) -> AsyncIterator[None]:
    """
    Translate backend failures inside the block into ``StorageError``s.

    Timeouts become ``StorageTimeoutError``; SQLAlchemy and OS level failures
    become ``StorageUnavailableError``. slokeeper errors pass through untouched.

    Usage:
        async with guard_storage("sum_window", slo_id=slo.id):
            await asyncio.wait_for(source.sum_window(...), timeout)
    """
    try:
        yield
    except SLOKeeperError:
        raise
    except asyncio.TimeoutError as exc:
        logger.warning("storage_timeout", operation=operation, **context)
        raise StorageTimeoutError(
            f"Storage operation timed out: {operation}",
            {"operation": operation, **context},
        ) from exc
    except (SQLAlchemyError, OSError) as exc:
        logger.warning(
            "storage_unavailable",
            operation=operation,
            error_type=type(exc).__name__,
            error=str(exc),
            **context,
        )
        raise StorageUnavailableError(
            f"Storage operation failed: {operation}: {exc}",
            {"operation": operation, **context},
        ) from exc

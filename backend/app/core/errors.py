"""
Domain error taxonomy.

Services raise these; API routers translate them to HTTP status codes and
the sync loops decide per type whether an event is dropped or retried.

- ValidationError: malformed input, never retried (400)
- NotFoundError: referenced entity absent (404)
- ConflictError: duplicate detection (idempotent no-op) or a refused
  delete while dependents exist (409)
- TransientStoreError: connection/timeout against the store, retryable (503)
- DegradedModeWarning: non-fatal condition that is logged while
  processing continues (cache down, camera unresolved)
"""
import logging
from typing import Optional


class AppError(Exception):
    """Base class for domain errors."""

    status_code: int = 500

    def __init__(self, message: str, *, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field


class ValidationError(AppError):
    """Input failed validation; dropping it is final."""

    status_code = 400


class NotFoundError(AppError):
    """A referenced entity does not exist (or is soft-deleted)."""

    status_code = 404


class ConflictError(AppError):
    """The operation conflicts with existing state."""

    status_code = 409


class TransientStoreError(AppError):
    """The relational store failed in a way that may succeed on retry."""

    status_code = 503


class DegradedModeWarning(UserWarning):
    """Processing continued in a degraded mode."""


def log_degraded(logger: logging.Logger, message: str, **fields) -> None:
    """Log a DegradedModeWarning; the caller carries on."""
    logger.warning(
        message,
        extra={
            "event_type": "degraded_mode",
            "warning_type": DegradedModeWarning.__name__,
            **fields,
        }
    )

"""Application-level exception types.

Every request-level rejection has its own subclass and a stable ``code`` so
the HTTP layer can map outcomes to status codes without the engine knowing
about wire formats.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients."""

    hint: str
    max_value: int
    actual_value: int
    limit: int
    remaining: int
    retry_after: int
    reset_at: int
    client_ip: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when a key, value, secret or client address is unacceptable."""


class RateLimitedAppError(AppError):
    """Raised when the client's token budget for the window is exhausted."""


class SecretMismatchAppError(AppError):
    """Raised when a write to a claimed key presents the wrong secret."""


class CapacityExceededAppError(AppError):
    """Raised when a new key cannot be inserted because the store is full."""


class NotFoundAppError(AppError):
    """Raised when a key is absent or has expired."""


class PersistenceAppError(AppError):
    """Snapshot I/O failure. Logged by the persistence layer, never sent to clients."""

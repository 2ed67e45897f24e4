"""Rate limiter interfaces.

The HTTP layer and the KV service depend on this abstraction, not on the
concrete in-memory implementation.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from ipaddress import IPv4Address


@dataclass(frozen=True)
class RateLimitResult:
    """Result of a consume operation.

    Attributes:
        allowed: Whether the request may proceed.
        limit: Token budget per window.
        remaining: Tokens left for this IP in the current window.
        reset_at: UNIX epoch seconds when the current window is expected to reset.
        retry_after_seconds: Suggested wait time in seconds when blocked.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: int
    retry_after_seconds: int | None


class AbstractRateLimiter(ABC):
    """Interface for per-IP token budgets."""

    @abstractmethod
    def consume(self, ip: IPv4Address, *, cost: int = 1) -> RateLimitResult:
        """Consume ``cost`` tokens from the budget of ``ip``.

        Args:
            ip: Client IPv4 address.
            cost: Tokens to consume.

        Returns:
            RateLimitResult describing whether it was allowed.
        """
        raise NotImplementedError

    @abstractmethod
    def reset(self) -> None:
        """Restore every budget by discarding all per-IP state."""
        raise NotImplementedError

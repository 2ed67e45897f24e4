"""In-memory per-IP token budget with a fixed, externally driven reset.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: uses a lock around shared state.
- The window is not sliding. A client active at the end of one window gets a
  full budget again right after :meth:`reset`.
"""

from __future__ import annotations

import math
import threading
import time
from ipaddress import IPv4Address
from typing import Callable

from bootkv.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult

# Budgets are small unsigned counters.
MAX_LIMIT = 255


class InMemoryTokenBucketRateLimiter(AbstractRateLimiter):
    """Token budget per IPv4 address, refilled wholesale by :meth:`reset`.

    An address not seen since the last reset starts with the full ``limit``.
    A request whose cost exceeds the remaining tokens is refused and leaves
    the counter untouched.
    """

    def __init__(
        self,
        *,
        limit: int,
        window_seconds: float,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the limiter.

        Args:
            limit: Tokens available per address per window.
            window_seconds: Nominal reset interval, used for reset hints only;
                the actual reset is driven by the caller.
            clock: Time source function returning UNIX time in seconds.

        Raises:
            ValueError: If limit or window_seconds are invalid.
        """
        if not 1 <= limit <= MAX_LIMIT:
            raise ValueError(f"limit must be between 1 and {MAX_LIMIT}")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")

        self._limit = limit
        self._window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._remaining: dict[IPv4Address, int] = {}
        self._window_start = clock()

    @property
    def limit(self) -> int:
        return self._limit

    def _reset_at(self) -> float:
        return self._window_start + self._window_seconds

    def consume(self, ip: IPv4Address, *, cost: int = 1) -> RateLimitResult:
        """Consume ``cost`` tokens for ``ip``.

        Raises:
            ValueError: If cost is < 1 or ``ip`` is not an IPv4Address.
        """
        if cost < 1:
            raise ValueError("cost must be >= 1")
        if not isinstance(ip, IPv4Address):
            raise ValueError("ip must be an IPv4Address")

        with self._lock:
            available = self._remaining.get(ip, self._limit)
            reset_at = self._reset_at()

            if available >= cost:
                available -= cost
                self._remaining[ip] = available
                return RateLimitResult(
                    allowed=True,
                    limit=self._limit,
                    remaining=available,
                    reset_at=int(reset_at),
                    retry_after_seconds=None,
                )

        retry_after = max(0, int(math.ceil(reset_at - self._clock())))
        return RateLimitResult(
            allowed=False,
            limit=self._limit,
            remaining=available,
            reset_at=int(reset_at),
            retry_after_seconds=retry_after,
        )

    def reset(self) -> None:
        with self._lock:
            self._remaining = {}
            self._window_start = self._clock()

    def tracked_addresses(self) -> int:
        """Number of addresses with a partially used budget."""

        with self._lock:
            return len(self._remaining)

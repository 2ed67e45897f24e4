"""Thread-safe in-memory entry store with owner secrets and TTL sweeping.

Keys map to a single :class:`Entry`. Capacity is checked only when a new key
is inserted, so updates to existing keys always succeed once authorized.
Expiry is not evaluated on the read/write path; a periodic sweep removes
stale entries.
"""

from __future__ import annotations

import enum
import logging
import threading
import time
from dataclasses import dataclass, replace
from typing import Callable

from bootkv.services.authorizer import AuthDecision, authorize_write

logger = logging.getLogger(__name__)


@dataclass
class Entry:
    """A stored value together with its ownership and freshness metadata."""

    value: bytes
    owner_secret: str | None
    last_update: float

    @property
    def is_claimed(self) -> bool:
        return bool(self.owner_secret)


class PutOutcome(str, enum.Enum):
    OK = "ok"
    SECRET_MISMATCH = "secret_mismatch"
    CAPACITY_EXCEEDED = "capacity_exceeded"


class EntryStore:
    """Key to :class:`Entry` mapping guarded by a single lock.

    Attributes:
        max_num_kv: Upper bound on the number of keys, enforced on insert.
    """

    def __init__(
        self,
        *,
        max_num_kv: int,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if max_num_kv < 1:
            raise ValueError("max_num_kv must be >= 1")

        self._max_num_kv = max_num_kv
        self._clock = clock
        self._lock = threading.RLock()
        self._entries: dict[str, Entry] = {}

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return f"EntryStore(max_num_kv={self._max_num_kv}, size={len(self._entries)})"

    def __len__(self) -> int:
        return self.size()

    @property
    def max_num_kv(self) -> int:
        return self._max_num_kv

    def get(self, key: str) -> Entry | None:
        """Return a copy of the entry stored under ``key``, or None."""

        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            return replace(entry)

    def put(self, key: str, value: bytes, secret: str | None = None) -> PutOutcome:
        """Insert or update ``key``.

        An unclaimed entry adopts ``secret`` when one is supplied; a claimed
        entry only accepts writes carrying the same secret.

        Args:
            key: Effective key (already validated and namespaced).
            value: Raw bytes to store.
            secret: Owner secret presented by the writer; empty means none.

        Returns:
            PutOutcome describing the result. Nothing is mutated unless OK.
        """

        secret = secret or None
        with self._lock:
            now = self._clock()
            entry = self._entries.get(key)

            if entry is not None:
                decision = authorize_write(entry.owner_secret, secret)
                if decision is AuthDecision.DENIED:
                    return PutOutcome.SECRET_MISMATCH
                if decision is AuthDecision.CLAIM:
                    entry.owner_secret = secret
                entry.value = value
                entry.last_update = now
                return PutOutcome.OK

            if len(self._entries) >= self._max_num_kv:
                return PutOutcome.CAPACITY_EXCEEDED

            self._entries[key] = Entry(value=value, owner_secret=secret, last_update=now)
            return PutOutcome.OK

    def restore(self, key: str, value: bytes, secret: str | None, now: float) -> bool:
        """Rehydrate an entry from a snapshot.

        Returns:
            False when the store is already at capacity and the entry was skipped.
        """

        with self._lock:
            if key not in self._entries and len(self._entries) >= self._max_num_kv:
                return False
            self._entries[key] = Entry(value=value, owner_secret=secret or None, last_update=now)
            return True

    def sweep_expired(self, now: float | None = None, *, ttl: float) -> int:
        """Remove every entry whose last write is more than ``ttl`` seconds old.

        Args:
            now: Reference time; defaults to the store clock.
            ttl: Time-to-live in seconds.

        Returns:
            Number of entries removed.
        """

        if now is None:
            now = self._clock()

        with self._lock:
            expired = [k for k, e in self._entries.items() if now - e.last_update > ttl]
            for key in expired:
                del self._entries[key]

        if expired:
            logger.info("store.sweep", extra={"expired_count": len(expired), "ttl_s": ttl})
        return len(expired)

    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def range_all(self, visitor: Callable[[str, Entry], bool | None]) -> None:
        """Call ``visitor(key, entry)`` for every entry.

        The visitor sees copies captured in one pass under the lock and runs
        after the lock is released, so it may safely call back into the
        store. Returning ``False`` stops the iteration.
        """

        with self._lock:
            items = [(k, replace(e)) for k, e in self._entries.items()]

        for key, entry in items:
            if visitor(key, entry) is False:
                break

    def snapshot(self) -> dict[str, tuple[bytes, str | None]]:
        """Return a consistent ``{key: (value, owner_secret)}`` copy."""

        with self._lock:
            return {k: (e.value, e.owner_secret) for k, e in self._entries.items()}

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

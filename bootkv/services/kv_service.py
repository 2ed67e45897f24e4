"""KV service: the contract the HTTP layer talks to.

Composes the entry store, the rate limiter and the authorization rules.
Returns outcome codes rather than raising, so the transport decides how each
outcome is rendered.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from ipaddress import IPv4Address

from bootkv.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult
from bootkv.core.errors import ValidationAppError
from bootkv.services import authorizer
from bootkv.services.entry_store import EntryStore, PutOutcome

logger = logging.getLogger(__name__)

OK_PAYLOAD = b"OK"


class WriteOutcome(str, enum.Enum):
    OK = "ok"
    SECRET_MISMATCH = "secret_mismatch"
    CAPACITY_EXCEEDED = "capacity_exceeded"
    TOO_LARGE = "too_large"
    INVALID_KEY = "invalid_key"


@dataclass(frozen=True)
class ReadResult:
    found: bool
    value: bytes = b""


@dataclass(frozen=True)
class WriteResult:
    """Outcome of a write.

    Attributes:
        outcome: Stable outcome code.
        payload: Response body on success (``OK`` or the caller's IP).
        key: Effective key after IP-scoped rewriting.
        error: Validation error when ``outcome`` is TOO_LARGE or INVALID_KEY.
    """

    outcome: WriteOutcome
    payload: bytes | None = None
    key: str | None = None
    error: ValidationAppError | None = None

    @property
    def ok(self) -> bool:
        return self.outcome is WriteOutcome.OK


class KVService:
    """Entry point for reads, writes and rate checks."""

    def __init__(
        self,
        store: EntryStore,
        limiter: AbstractRateLimiter,
        *,
        max_key_size: int,
        max_value_size: int,
    ) -> None:
        self.store = store
        self.limiter = limiter
        self.max_key_size = max_key_size
        self.max_value_size = max_value_size

    def check_rate(self, client_ip: IPv4Address, cost: int) -> RateLimitResult:
        return self.limiter.consume(client_ip, cost=cost)

    @staticmethod
    def rewrite_ip_scoped_key(raw_key: str, client_ip_text: str) -> str:
        return authorizer.rewrite_ip_scoped_key(raw_key, client_ip_text)

    def handle_read(self, key: str) -> ReadResult:
        entry = self.store.get(key)
        if entry is None:
            return ReadResult(found=False)
        return ReadResult(found=True, value=entry.value)

    def handle_write(
        self,
        key: str,
        body: bytes,
        secret: str | None,
        client_ip: IPv4Address,
    ) -> WriteResult:
        """Validate, namespace and store a write.

        Args:
            key: Raw key as requested by the client.
            body: Value bytes.
            secret: Owner secret header value, if any.
            client_ip: Observed client address.

        Returns:
            WriteResult with the outcome; the store is untouched unless OK.
            INVALID_KEY means the key no longer fits once IP-scoped.
        """
        try:
            authorizer.validate_write_sizes(body, secret, self.max_value_size)
        except ValidationAppError as exc:
            return WriteResult(outcome=WriteOutcome.TOO_LARGE, error=exc)

        client_ip_text = str(client_ip)
        effective_key = authorizer.rewrite_ip_scoped_key(key, client_ip_text)
        try:
            authorizer.validate_key(effective_key, self.max_key_size)
        except ValidationAppError as exc:
            return WriteResult(outcome=WriteOutcome.INVALID_KEY, key=effective_key, error=exc)

        result = self.store.put(effective_key, body, secret)
        if result is PutOutcome.SECRET_MISMATCH:
            logger.warning("kv.write.secret_mismatch", extra={"key_length": len(effective_key)})
            return WriteResult(outcome=WriteOutcome.SECRET_MISMATCH, key=effective_key)
        if result is PutOutcome.CAPACITY_EXCEEDED:
            logger.warning("kv.write.capacity_exceeded", extra={"max_num_kv": self.store.max_num_kv})
            return WriteResult(outcome=WriteOutcome.CAPACITY_EXCEEDED, key=effective_key)

        if authorizer.is_ip_scoped(effective_key):
            payload = client_ip_text.encode("ascii")
        else:
            payload = OK_PAYLOAD

        logger.debug(
            "kv.write.ok",
            extra={"key_length": len(effective_key), "value_size": len(body), "claimed": bool(secret)},
        )
        return WriteResult(outcome=WriteOutcome.OK, payload=payload, key=effective_key)

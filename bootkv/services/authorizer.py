"""Write authorization and request validation rules.

Pure functions only: nothing here touches the store or the rate limiter.

Design principles:
- Ownership: the first non-empty secret written to a key claims it for good
- Size limits: the owner secret counts against the value budget
- IP scoping: ``ip/<name>`` keys written by a client are namespaced under
  that client's own address, so nobody can publish on behalf of another IP
"""

from __future__ import annotations

import enum

from bootkv.core.errors import ValidationAppError

IP_SCOPE_PREFIX = "ip/"


class AuthDecision(str, enum.Enum):
    ALLOWED = "allowed"
    CLAIM = "claim"
    DENIED = "denied"


def authorize_write(owner_secret: str | None, supplied_secret: str | None) -> AuthDecision:
    """Decide whether a write to an existing entry may proceed.

    Args:
        owner_secret: Secret currently attached to the entry (None/empty when
            the key is unclaimed).
        supplied_secret: Secret presented by the writer.

    Returns:
        ALLOWED for a permitted write that leaves ownership unchanged, CLAIM
        when an unclaimed entry should adopt ``supplied_secret``, DENIED when
        the secrets differ.

    Examples:
        >>> authorize_write(None, "s1")
        <AuthDecision.CLAIM: 'claim'>
        >>> authorize_write("s1", "s1")
        <AuthDecision.ALLOWED: 'allowed'>
        >>> authorize_write("s1", "")
        <AuthDecision.DENIED: 'denied'>
    """
    if owner_secret:
        if owner_secret == (supplied_secret or ""):
            return AuthDecision.ALLOWED
        return AuthDecision.DENIED
    if supplied_secret:
        return AuthDecision.CLAIM
    return AuthDecision.ALLOWED


def byte_length(text: str) -> int:
    return len(text.encode("utf-8"))


def secret_byte_length(secret: str) -> int:
    """Size of an owner secret as it was sent on the wire.

    ASGI servers decode header values as latin-1, so each character maps back
    to exactly one raw byte. Secrets passed in directly (not from a header)
    may hold characters outside latin-1; those are measured as UTF-8.

    Examples:
        >>> secret_byte_length("s1")
        2
        >>> secret_byte_length("\\xc3\\xa9")  # "é" sent as UTF-8, decoded as latin-1
        2
    """
    try:
        return len(secret.encode("latin-1"))
    except UnicodeEncodeError:
        return byte_length(secret)


def validate_key(key: str, max_key_size: int) -> None:
    """Reject empty keys and keys longer than ``max_key_size`` bytes.

    Raises:
        ValidationAppError: ``key_required`` or ``key_too_long``.
    """
    if not key:
        raise ValidationAppError(code="key_required", message="Key is required")

    size = byte_length(key)
    if size > max_key_size:
        raise ValidationAppError(
            code="key_too_long",
            message="Key too long",
            details={"max_value": max_key_size, "actual_value": size},
        )


def allowed_value_size(secret: str | None, max_value_size: int) -> int:
    """Return how many value bytes fit next to ``secret``.

    Raises:
        ValidationAppError: ``secret_too_large`` when the secret alone
            exceeds the budget.
    """
    secret_size = secret_byte_length(secret or "")
    if secret_size > max_value_size:
        raise ValidationAppError(
            code="secret_too_large",
            message="Value plus secret too large",
            details={"max_value": max_value_size, "actual_value": secret_size},
        )
    return max_value_size - secret_size


def validate_write_sizes(body: bytes, secret: str | None, max_value_size: int) -> None:
    """Check ``len(secret) <= max`` and ``len(body) <= max - len(secret)``.

    Raises:
        ValidationAppError: ``secret_too_large``, ``value_plus_secret_too_large``
            or ``value_too_large``.
    """
    allowed = allowed_value_size(secret, max_value_size)
    if len(body) <= allowed:
        return

    if secret:
        raise ValidationAppError(
            code="value_plus_secret_too_large",
            message="Value plus secret too large",
            details={"max_value": allowed, "actual_value": len(body)},
        )
    raise ValidationAppError(
        code="value_too_large",
        message="Value too large",
        details={"max_value": allowed, "actual_value": len(body)},
    )


def is_ip_scoped(key: str) -> bool:
    return key.startswith(IP_SCOPE_PREFIX)


def rewrite_ip_scoped_key(raw_key: str, client_ip_text: str) -> str:
    """Embed the writer's address into an ``ip/`` key.

    Only applied to writes. A bare ``ip/`` with nothing after it is left
    unchanged.

    Examples:
        >>> rewrite_ip_scoped_key("ip/myservice", "203.0.113.7")
        'ip/203.0.113.7/myservice'
        >>> rewrite_ip_scoped_key("other/key", "203.0.113.7")
        'other/key'
    """
    if len(raw_key) <= len(IP_SCOPE_PREFIX) or not is_ip_scoped(raw_key):
        return raw_key
    remainder = raw_key[len(IP_SCOPE_PREFIX):]
    return f"{IP_SCOPE_PREFIX}{client_ip_text}/{remainder}"

"""Bounded request body reading."""
from __future__ import annotations

import logging

from fastapi import Request

logger = logging.getLogger(__name__)


async def read_body_limited(request: Request, max_bytes: int) -> bytes:
    """Read at most ``max_bytes + 1`` bytes of the request body.

    Reading one byte past the limit lets the caller tell "exactly at the
    limit" from "too large" without buffering an arbitrarily large upload.
    The rest of the stream is left unread.

    Args:
        request: Incoming request.
        max_bytes: Largest acceptable body size.

    Returns:
        The body, truncated to ``max_bytes + 1`` bytes.
    """
    cap = max_bytes + 1

    size = 0
    chunks: list[bytes] = []
    async for chunk in request.stream():
        if not chunk:
            continue
        chunks.append(chunk)
        size += len(chunk)
        if size >= cap:
            logger.debug(
                "request_body.truncated",
                extra={"max_bytes": max_bytes, "read_bytes": size},
            )
            break

    return b"".join(chunks)[:cap]

"""Rate limit enforcement for the HTTP layer.

Writes and reads draw different amounts from the same per-IP budget. The
check runs before any authorization or store access, and an accepted request
is charged even if the write itself later fails.
"""

from __future__ import annotations

import logging

from bootkv.core.client_ip import ClientAddress
from bootkv.core.config import RateLimitSettings
from bootkv.core.errors import RateLimitedAppError
from bootkv.services.kv_service import KVService

logger = logging.getLogger(__name__)


def cost_for_method(method: str, rate_settings: RateLimitSettings) -> int:
    """POST pays the write cost; every other method pays the read cost."""

    if method.upper() == "POST":
        return rate_settings.post_cost
    return rate_settings.get_cost


def enforce_rate_limit(
    service: KVService,
    client: ClientAddress,
    method: str,
    rate_settings: RateLimitSettings,
) -> None:
    """Consume the request's cost from the client's budget.

    Raises:
        RateLimitedAppError: When the budget cannot cover the cost.
    """

    if not rate_settings.enabled:
        return

    cost = cost_for_method(method, rate_settings)
    result = service.check_rate(client.ip, cost)
    if result.allowed:
        logger.debug(
            "rate_limit.allowed",
            extra={"cost": cost, "limit": result.limit, "remaining": result.remaining},
        )
        return

    retry_after = result.retry_after_seconds or 0
    logger.warning(
        "rate_limit.exceeded",
        extra={
            "cost": cost,
            "limit": result.limit,
            "remaining": result.remaining,
            "retry_after_s": retry_after,
        },
    )
    raise RateLimitedAppError(
        code="rate_limited",
        message="Rate limit",
        details={
            "limit": result.limit,
            "remaining": result.remaining,
            "retry_after": retry_after,
            "reset_at": result.reset_at,
        },
    )

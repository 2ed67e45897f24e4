"""Unit tests for the in-memory per-IP token budget."""

from ipaddress import IPv4Address
from unittest.mock import Mock

import pytest

from bootkv.adapters.rate_limit.in_memory import InMemoryTokenBucketRateLimiter

IP = IPv4Address("203.0.113.7")
OTHER_IP = IPv4Address("203.0.113.8")


def test_two_costs_within_budget_both_succeed() -> None:
    limiter = InMemoryTokenBucketRateLimiter(limit=11, window_seconds=60)

    first = limiter.consume(IP, cost=3)
    second = limiter.consume(IP, cost=8)

    assert first.allowed is True
    assert first.remaining == 8
    assert second.allowed is True
    assert second.remaining == 0


def test_rejection_leaves_counter_unchanged() -> None:
    limiter = InMemoryTokenBucketRateLimiter(limit=11, window_seconds=60)

    assert limiter.consume(IP, cost=3).allowed is True
    assert limiter.consume(IP, cost=3).allowed is True
    assert limiter.consume(IP, cost=3).allowed is True

    blocked = limiter.consume(IP, cost=3)
    assert blocked.allowed is False
    assert blocked.remaining == 2

    # A cheaper request still fits in what the refusal left behind
    assert limiter.consume(IP, cost=1).remaining == 1
    assert limiter.consume(IP, cost=1).remaining == 0
    assert limiter.consume(IP, cost=1).allowed is False


def test_blocked_result_has_retry_hint() -> None:
    clock = Mock(return_value=1000.0)
    limiter = InMemoryTokenBucketRateLimiter(limit=1, window_seconds=60, clock=clock)

    limiter.consume(IP)
    clock.return_value = 1015.5
    blocked = limiter.consume(IP)

    assert blocked.allowed is False
    assert blocked.reset_at == 1060
    assert blocked.retry_after_seconds == 45


def test_reset_restores_full_budget() -> None:
    limiter = InMemoryTokenBucketRateLimiter(limit=3, window_seconds=60)

    assert limiter.consume(IP, cost=3).allowed is True
    assert limiter.consume(IP, cost=1).allowed is False

    limiter.reset()

    result = limiter.consume(IP, cost=3)
    assert result.allowed is True
    assert result.remaining == 0


def test_reset_moves_window_start() -> None:
    clock = Mock(return_value=1000.0)
    limiter = InMemoryTokenBucketRateLimiter(limit=1, window_seconds=60, clock=clock)

    clock.return_value = 1070.0
    limiter.reset()
    limiter.consume(IP)

    assert limiter.consume(IP).reset_at == 1130


def test_isolated_by_address() -> None:
    limiter = InMemoryTokenBucketRateLimiter(limit=1, window_seconds=60)

    assert limiter.consume(IP).allowed is True
    assert limiter.consume(IP).allowed is False

    assert limiter.consume(OTHER_IP).allowed is True
    assert limiter.tracked_addresses() == 2


@pytest.mark.parametrize(
    "kwargs",
    [
        {"limit": 0, "window_seconds": 60},
        {"limit": 256, "window_seconds": 60},
        {"limit": 1, "window_seconds": 0},
    ],
)
def test_invalid_constructor_args(kwargs: dict) -> None:
    with pytest.raises(ValueError):
        InMemoryTokenBucketRateLimiter(**kwargs)


def test_invalid_consume_args() -> None:
    limiter = InMemoryTokenBucketRateLimiter(limit=1, window_seconds=60)

    with pytest.raises(ValueError):
        limiter.consume("203.0.113.7")

    with pytest.raises(ValueError):
        limiter.consume(IP, cost=0)

"""Pytest configuration and fixtures shared across all test modules.

Environment defaults are set before any bootkv import so the module-level
settings never pick up a developer's .env file or write a snapshot into the
working directory.
"""

import os
import tempfile
from pathlib import Path

# CRITICAL: Set this before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("PERSIST_SNAPSHOT_PATH", str(Path(tempfile.gettempdir()) / "bootkv-test-store.json"))
os.environ.setdefault("SERVER_DISABLE_LOCAL_IP_WARNING", "true")

import pytest
from fastapi.testclient import TestClient

from bootkv.core.app_factory import create_app
from bootkv.core.config import PersistenceSettings, RateLimitSettings, Settings, StoreSettings

CLIENT_IP = "203.0.113.7"


class FakeClock:
    """Deterministic clock for TTL and rate window tests."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


def with_peer(app, host: str, port: int = 50000):
    """Wrap an ASGI app so every request appears to come from ``host``."""

    async def asgi(scope, receive, send):
        if scope["type"] == "http":
            scope = dict(scope, client=(host, port))
        await app(scope, receive, send)

    return asgi


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def snapshot_path(tmp_path: Path) -> Path:
    return tmp_path / "store.json"


@pytest.fixture
def app_settings(snapshot_path: Path) -> Settings:
    return Settings(
        store=StoreSettings(max_key_size=100, max_value_size=1000, max_num_kv=100),
        rate_limit=RateLimitSettings(max_requests=255),
        persistence=PersistenceSettings(snapshot_path=snapshot_path),
    )


@pytest.fixture
def app(app_settings: Settings):
    return create_app(app_settings, configure_logs=False)


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(with_peer(app, CLIENT_IP))


@pytest.fixture
def client_for(app):
    """Build clients bound to other peer addresses against the same app."""

    def _make(host: str) -> TestClient:
        return TestClient(with_peer(app, host))

    return _make

"""Application factory for the FastAPI app.

Builds the engine (entry store, rate limiter, persistence, scheduler), hangs
it off ``app.state`` and ties its lifecycle to the ASGI lifespan:

    load snapshot → start scheduler → serve → stop scheduler → final flush
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.gzip import GZipMiddleware
from starlette.concurrency import run_in_threadpool

from bootkv.adapters.rate_limit.in_memory import InMemoryTokenBucketRateLimiter
from bootkv.api.routes import kv_router
from bootkv.core.config import Settings, settings as default_settings
from bootkv.core.exception_handlers import setup_exception_handlers
from bootkv.core.logging import configure_logging
from bootkv.core.middleware import request_id_middleware
from bootkv.core.scheduler import MaintenanceScheduler
from bootkv.services.entry_store import EntryStore
from bootkv.services.kv_service import KVService
from bootkv.services.persistence import PersistenceManager

logger = logging.getLogger(__name__)


@dataclass
class Engine:
    """The in-process data engine behind the HTTP surface."""

    service: KVService
    persistence: PersistenceManager
    scheduler: MaintenanceScheduler

    def startup(self) -> None:
        self.persistence.load()
        self.scheduler.start()

    def shutdown(self, grace_seconds: float) -> None:
        self.scheduler.shutdown()
        self.persistence.close(grace_seconds)


def build_engine(app_settings: Settings) -> Engine:
    store = EntryStore(max_num_kv=app_settings.store.max_num_kv)
    limiter = InMemoryTokenBucketRateLimiter(
        limit=app_settings.rate_limit.max_requests,
        window_seconds=app_settings.rate_limit.reset_duration.total_seconds(),
    )
    service = KVService(
        store,
        limiter,
        max_key_size=app_settings.store.max_key_size,
        max_value_size=app_settings.store.max_value_size,
    )
    persistence = PersistenceManager(store, app_settings.persistence.snapshot_path)
    scheduler = MaintenanceScheduler(
        store=store,
        limiter=limiter,
        persistence=persistence,
        expire_duration=app_settings.store.expire_duration,
        reset_duration=app_settings.rate_limit.reset_duration,
        save_duration=app_settings.persistence.save_duration,
    )
    return Engine(service=service, persistence=persistence, scheduler=scheduler)


def create_app(app_settings: Settings | None = None, *, configure_logs: bool = True) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        app_settings: Settings to use; defaults to the environment-loaded ones.
        configure_logs: Install the root log handler (tests usually skip this).

    Returns:
        Configured app with middleware, handlers, routers and lifespan.
    """
    cfg = app_settings or default_settings

    # Logging first so subsequent init logs are formatted as desired
    if configure_logs:
        configure_logging(cfg.log)

    engine = build_engine(cfg)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await run_in_threadpool(engine.startup)
        logger.info("bootkv.started", extra={"keys": engine.service.store.size()})
        try:
            yield
        finally:
            logger.info("bootkv.stopping")
            await run_in_threadpool(engine.shutdown, cfg.persistence.shutdown_grace_seconds)

    app = FastAPI(
        title="bootkv",
        description="Ephemeral public key-value store for peer bootstrap and rendezvous.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = cfg
    app.state.engine = engine
    app.state.kv_service = engine.service

    app.middleware("http")(request_id_middleware)
    app.add_middleware(GZipMiddleware, minimum_size=500)

    setup_exception_handlers(app)

    app.include_router(kv_router)

    return app

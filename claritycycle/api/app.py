from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager, suppress
import logging
import os
from pathlib import Path
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from ..clock import Clock, RealClock
from ..config import Settings, load_settings
from ..db import ClarityDB
from ..mailer import Mailer
from ..ratelimit import RateLimitStore, build_limiters
from .errors import install_error_handlers
from .routes.auth import router as auth_router
from .routes.contact import router as contact_router
from .routes.export import router as export_router
from .routes.health import router as health_router
from .routes.sessions import router as sessions_router
from .routes.tasks import router as tasks_router
from .routes.track_record import router as track_record_router

logger = logging.getLogger(__name__)


async def _sweep_rate_limits(store: RateLimitStore, interval_sec: float) -> None:
    while True:
        await asyncio.sleep(interval_sec)
        removed = store.sweep()
        if removed:
            logger.debug("rate limit sweep dropped %d keys", removed)


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings: Settings = app.state.settings
    sweeper = asyncio.create_task(
        _sweep_rate_limits(app.state.rate_limit_store, max(1, settings.rate_limit_sweep_sec))
    )
    logger.info("Clarity Cycle API ready (db=%s)", app.state.db_path)
    try:
        yield
    finally:
        sweeper.cancel()
        with suppress(asyncio.CancelledError):
            await sweeper


def create_app(
    db_path: Path | None = None,
    settings: Settings | None = None,
    clock: Clock | None = None,
    mailer: Mailer | None = None,
    frontend_dist: Path | None = None,
) -> FastAPI:
    resolved_settings = settings or load_settings()
    resolved_db = Path(db_path or resolved_settings.db_path)
    ClarityDB(resolved_db)

    app = FastAPI(title="Clarity Cycle API", version=resolved_settings.api_version, lifespan=_lifespan)
    app.state.db_path = str(resolved_db)
    app.state.settings = resolved_settings
    app.state.clock = clock or RealClock()
    app.state.mailer = mailer or Mailer(resolved_settings.smtp)
    app.state.rate_limit_store = RateLimitStore(clock=app.state.clock)
    app.state.limiters = build_limiters(
        app.state.rate_limit_store,
        resolved_settings.rate_limit_window_sec,
        resolved_settings.rate_limit_max_requests,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(resolved_settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    install_error_handlers(app)

    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(tasks_router)
    app.include_router(sessions_router)
    app.include_router(track_record_router)
    app.include_router(export_router)
    app.include_router(contact_router)

    if frontend_dist and (frontend_dist / "index.html").exists():
        app.mount("/", StaticFiles(directory=str(frontend_dist), html=True), name="frontend")

    return app


def create_default_app() -> FastAPI:
    dist_raw = os.environ.get("CLARITY_FRONTEND_DIST", "").strip()
    return create_app(frontend_dist=Path(dist_raw) if dist_raw else None)

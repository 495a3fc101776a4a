from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI

from market_sync import __version__
from market_sync.api.routes.admin import router as admin_router
from market_sync.config import SyncSettings, get_settings
from market_sync.scheduler import BackgroundSync


def health():
    return {"status": "ok"}


def create_app(settings: Optional[SyncSettings] = None, *, runner: Optional[BackgroundSync] = None) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(title="market_sync", version=__version__)
    app.state.settings = settings
    app.state.sync_runner = runner or BackgroundSync(settings)

    app.include_router(admin_router)

    @app.get("/health")
    def health_route():
        return health()

    @app.on_event("startup")
    def _start_sync():
        logger = logging.getLogger("msync.api")
        if not settings.sync_on_startup:
            return
        started = app.state.sync_runner.start()
        logger.warning("startup sync enabled: started=%s db=%s", started, settings.db_path)

    @app.on_event("shutdown")
    def _stop_sync():
        app.state.sync_runner.cancel()

    return app

from __future__ import annotations

import logging
import secrets
from typing import Optional

from fastapi import APIRouter, Header, HTTPException, Request

from market_sync.api.schemas import CountsResponse, DataSourceOut, SyncAccepted, SyncStatus
from market_sync.errors import StoreUnavailableError
from market_sync.storage import SQLiteStore


router = APIRouter(prefix="/admin", tags=["admin"])
logger = logging.getLogger("msync.api")


def _require_admin(request: Request, token: Optional[str]) -> None:
    expected = request.app.state.settings.admin_token
    if not expected:
        raise HTTPException(status_code=404, detail="admin endpoint disabled")
    if not token or not secrets.compare_digest(str(token), str(expected)):
        raise HTTPException(status_code=403, detail="invalid admin token")


@router.post("/sync", status_code=202, response_model=SyncAccepted)
def trigger_sync(request: Request, x_admin_token: Optional[str] = Header(default=None)) -> SyncAccepted:
    _require_admin(request, x_admin_token)
    runner = request.app.state.sync_runner
    accepted = runner.start()
    status = runner.status()
    logger.info("sync requested accepted=%s", accepted)
    return SyncAccepted(accepted=accepted, state=status["state"], started_at=status["started_at"])


@router.get("/sync", response_model=SyncStatus)
def sync_status(request: Request, x_admin_token: Optional[str] = Header(default=None)) -> SyncStatus:
    _require_admin(request, x_admin_token)
    return SyncStatus(**request.app.state.sync_runner.status())


@router.get("/counts", response_model=CountsResponse)
def counts(request: Request, x_admin_token: Optional[str] = Header(default=None)) -> CountsResponse:
    _require_admin(request, x_admin_token)
    settings = request.app.state.settings
    try:
        store = SQLiteStore(settings.db_path)
    except StoreUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))
    try:
        c = store.counts()
        sources = [
            DataSourceOut(
                key=m.key,
                name=m.name,
                kind=m.kind,
                last_refresh=m.last_refresh,
                last_attempt=m.last_attempt,
                record_count=m.record_count,
                last_status=m.last_status,
                last_error=m.last_error,
            )
            for m in store.list_data_sources()
        ]
    finally:
        store.close()
    return CountsResponse(**c, data_sources=sources)

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class SyncAccepted(BaseModel):
    accepted: bool
    state: str
    started_at: Optional[str] = None


class SyncStatus(BaseModel):
    state: str
    started_at: Optional[str] = None
    finished_at: Optional[str] = None
    cancel_requested: bool = False
    last_error: Optional[str] = None
    last_report: Optional[Dict[str, Any]] = None


class DataSourceOut(BaseModel):
    key: str
    name: str
    kind: str
    last_refresh: Optional[str] = None
    last_attempt: Optional[str] = None
    record_count: int = 0
    last_status: Optional[str] = None
    last_error: Optional[str] = None


class CountsResponse(BaseModel):
    properties: int = 0
    properties_by_jurisdiction: Dict[str, int] = Field(default_factory=dict)
    civic_records: int = 0
    geo_points: int = 0
    signals: int = 0
    aggregates: int = 0
    data_sources: List[DataSourceOut] = Field(default_factory=list)

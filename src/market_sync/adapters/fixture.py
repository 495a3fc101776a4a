from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from market_sync.adapters.base import PROPERTY, SourceAdapter, get_adapter, register_adapter
from market_sync.models import FetchResult, RawRecord, TimeRange, utc_now_iso


@register_adapter
class FixtureAdapter(SourceAdapter):
    """Offline adapter serving a JSON array from disk or memory.

    ``error`` makes the fetch fail after serving ``records`` as the partial
    result, which is how tests exercise per-domain failure isolation.
    """

    adapter_key = "fixture"

    def __init__(
        self,
        *,
        adapter_key: str = "fixture",
        kind: str = PROPERTY,
        jurisdiction: str = "",
        path: Optional[str] = None,
        records: Optional[List[Dict[str, Any]]] = None,
        error: Optional[str] = None,
        window_days: Optional[int] = None,
    ):
        self.adapter_key = adapter_key
        self.kind = kind
        self.jurisdiction = jurisdiction
        self.name = adapter_key
        self.path = path
        self._records = records
        self.error = error
        self.window_days = window_days
        self.calls = 0

    def _load(self) -> List[Dict[str, Any]]:
        if self._records is not None:
            return list(self._records)
        if not self.path:
            return []
        data = json.loads(Path(self.path).read_text(encoding="utf-8"))
        if not isinstance(data, list):
            raise ValueError(f"fixture {self.path} must hold a JSON array")
        return [r for r in data if isinstance(r, dict)]

    def fetch(self, window: TimeRange, limit: int) -> FetchResult:
        self.calls += 1
        fetched_at = utc_now_iso()
        rows = self._load()[: max(0, int(limit))]
        return FetchResult(
            source=self.adapter_key,
            records=[RawRecord(source=self.adapter_key, payload=r, fetched_at=fetched_at) for r in rows],
            error=self.error,
            pages=1,
        )


def fixture_for(adapter_key: str, fixtures_dir: str) -> FixtureAdapter:
    """Stand-in for a registered adapter, reading ``<fixtures_dir>/<key>.json``."""

    real = get_adapter(adapter_key)
    path = Path(fixtures_dir) / f"{adapter_key}.json"
    return FixtureAdapter(
        adapter_key=real.adapter_key,
        kind=real.kind,
        jurisdiction=real.jurisdiction,
        path=str(path) if path.exists() else None,
        records=None if path.exists() else [],
        window_days=real.window_days,
    )

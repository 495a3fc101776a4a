from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


SYNCED = "synced"
SKIPPED_FRESH = "skipped-fresh"
FAILED = "failed"
CANCELLED = "cancelled"


@dataclass
class DomainOutcome:
    domain: str
    status: str
    reason: str = ""
    fetched: int = 0
    written: int = 0
    skipped_records: int = 0
    record_errors: int = 0
    error: Optional[str] = None
    sources: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "domain": self.domain,
            "status": self.status,
            "reason": self.reason,
            "fetched": self.fetched,
            "written": self.written,
            "skipped_records": self.skipped_records,
            "record_errors": self.record_errors,
            "error": self.error,
            "sources": list(self.sources),
        }


@dataclass
class AggregateRefresh:
    count: int = 0
    levels: Dict[str, int] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict:
        return {
            "count": self.count,
            "levels": dict(self.levels),
            "errors": dict(self.errors),
        }


@dataclass
class SyncReport:
    run_id: str
    started_at: str
    finished_at: str = ""
    outcomes: List[DomainOutcome] = field(default_factory=list)
    signals_written: int = 0
    signals_error: Optional[str] = None
    aggregates: Optional[AggregateRefresh] = None
    counts: Dict[str, Any] = field(default_factory=dict)
    cancelled: bool = False

    def outcome(self, domain: str) -> Optional[DomainOutcome]:
        for o in self.outcomes:
            if o.domain == domain:
                return o
        return None

    def by_status(self, status: str) -> List[str]:
        return [o.domain for o in self.outcomes if o.status == status]

    @property
    def ok(self) -> bool:
        return not self.by_status(FAILED) and self.signals_error is None and (
            self.aggregates is None or self.aggregates.ok
        )

    def to_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "ok": self.ok,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "synced": self.by_status(SYNCED),
            "skipped": self.by_status(SKIPPED_FRESH),
            "failed": self.by_status(FAILED),
            "cancelled": self.by_status(CANCELLED),
            "outcomes": [o.to_dict() for o in self.outcomes],
            "signals_written": self.signals_written,
            "signals_error": self.signals_error,
            "aggregates": self.aggregates.to_dict() if self.aggregates else None,
            "counts": dict(self.counts),
        }

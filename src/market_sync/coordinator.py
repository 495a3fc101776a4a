"""Evaluate-and-sync run over the builtin domains.

One run inspects stored counts, refreshes the stale domains and then rebuilds
the derived tables (signals, aggregates, coverage) from whatever is stored.
Fetches run concurrently; every write happens on the calling thread in plan
order, so the store connection is never shared across threads.
"""

from __future__ import annotations

import logging
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from market_sync.adapters import AMENITY, CIVIC, PROPERTY, TRANSIT, SourceAdapter, get_adapter
from market_sync.aggregation import AggregationEngine
from market_sync.config import SyncSettings
from market_sync.coverage import refresh_coverage
from market_sync.domains import AGGREGATES, SIGNALS, DomainSpec, builtin_plan
from market_sync.errors import SourceFetchError, StoreUnavailableError
from market_sync.models import DataSourceMeta, FetchResult, TimeRange
from market_sync.normalization import Normalizer
from market_sync.report import CANCELLED, FAILED, SKIPPED_FRESH, SYNCED, DomainOutcome, SyncReport
from market_sync.signals import SignalComputer


logger = logging.getLogger("msync.coordinator")

AdapterFactory = Callable[[str], SourceAdapter]

_DERIVED_COUNT_KEYS = {SIGNALS: "signals", AGGREGATES: "aggregates"}


class SyncCoordinator:
    def __init__(
        self,
        store,
        *,
        settings: Optional[SyncSettings] = None,
        plan: Optional[Sequence[DomainSpec]] = None,
        adapter_factory: Optional[AdapterFactory] = None,
        normalizer: Optional[Normalizer] = None,
        now: Optional[datetime] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.store = store
        self.settings = settings or SyncSettings()
        self.plan = list(plan) if plan is not None else builtin_plan(self.settings.enabled_domains)
        self.adapter_factory = adapter_factory or self._default_adapter
        self.normalizer = normalizer or Normalizer(settings=self.settings)
        self.now = now or datetime.now(timezone.utc)
        self.cancel_event = cancel_event or threading.Event()

    def _default_adapter(self, key: str) -> SourceAdapter:
        return get_adapter(key, timeout=self.settings.http_timeout_s, page_size=self.settings.page_size)

    @property
    def now_iso(self) -> str:
        return self.now.astimezone(timezone.utc).replace(microsecond=0).isoformat()

    # -- staleness ----------------------------------------------------------

    def domain_count(self, spec: DomainSpec) -> int:
        if spec.kind == PROPERTY:
            return self.store.count_by("properties", jurisdiction=spec.jurisdiction)
        if spec.kind == CIVIC:
            return sum(self.store.count_by("civic_records", source=a) for a in spec.adapters)
        return sum(self.store.count_by("geo_points", source=a) for a in spec.adapters)

    def evaluate(self, spec: DomainSpec, counts: Dict[str, Any]) -> Tuple[bool, str]:
        """(stale, reason) for one domain against the current counts."""

        have = self.domain_count(spec)
        need = spec.threshold(self.settings)
        if have < need:
            return True, f"{have} records below minimum {need}"
        for table in spec.depends_on:
            if not counts.get(_DERIVED_COUNT_KEYS.get(table, table)):
                return True, f"{table} table is empty"
        return False, f"{have} records at or above minimum {need}"

    # -- fetch --------------------------------------------------------------

    def _window_for(self, adapter: SourceAdapter) -> TimeRange:
        return TimeRange.last_days(adapter.window_days or self.settings.civic_window_days, now=self.now)

    def _fetch(self, adapter: SourceAdapter) -> FetchResult:
        try:
            return adapter.fetch(self._window_for(adapter), self.settings.record_cap)
        finally:
            adapter.close()

    # -- write --------------------------------------------------------------

    def _write(self, spec: DomainSpec, adapter: SourceAdapter, result: FetchResult, outcome: DomainOutcome) -> int:
        norm = self.normalizer
        if spec.kind == PROPERTY:
            rows, errors = norm.normalize(result.records, spec.jurisdiction or adapter.jurisdiction)
            written = self.store.upsert_properties(rows)
        elif spec.kind == CIVIC:
            rows, errors = norm.normalize_civic(result.records, adapter.adapter_key, as_of=self.now_iso)
            if self.settings.replace_raw_on_refresh:
                written = self.store.replace_raw_records(adapter.adapter_key, rows)
            else:
                written = self.store.upsert_raw_records(rows)
        elif spec.kind in (TRANSIT, AMENITY):
            rows, errors = norm.normalize_points(result.records, adapter.adapter_key)
            written = self.store.replace_points(adapter.adapter_key, rows)
        else:
            raise ValueError(f"unknown domain kind: {spec.kind}")

        outcome.skipped_records += norm.last_skipped
        outcome.record_errors += len(errors)
        if errors:
            logger.debug(
                "normalization errors domain=%s source=%s count=%s first=%s",
                spec.key,
                adapter.adapter_key,
                len(errors),
                errors[0],
            )
        return written

    def _record_source(
        self,
        adapter: Optional[SourceAdapter],
        key: str,
        kind: str,
        *,
        status: str,
        error: Optional[str] = None,
        record_count: int = 0,
    ) -> None:
        info = adapter.describe() if adapter is not None else {"name": key, "description": "", "refresh_cadence": ""}
        self.store.upsert_data_source(
            DataSourceMeta(
                key=key,
                name=str(info.get("name") or key),
                kind=kind,
                description=str(info.get("description") or ""),
                refresh_cadence=str(info.get("refresh_cadence") or ""),
                last_refresh=self.now_iso if status == SYNCED else None,
                last_attempt=self.now_iso,
                record_count=int(record_count),
                last_status=status,
                last_error=error,
            )
        )

    # -- run ----------------------------------------------------------------

    def evaluate_and_sync(self) -> SyncReport:
        """Refresh stale domains, then rebuild derived tables.

        Per-domain failures are recorded in the report. Only an unreachable
        store raises.
        """

        try:
            self.store.ping()
        except StoreUnavailableError:
            logger.error("store unreachable; aborting sync")
            raise

        report = SyncReport(run_id=f"sync:{uuid.uuid4().hex[:10]}", started_at=self.now_iso)
        counts = self.store.counts()
        logger.info("sync started", extra={"run_id": report.run_id, "domains": len(self.plan)})

        stale: List[DomainSpec] = []
        for spec in self.plan:
            is_stale, reason = self.evaluate(spec, counts)
            if is_stale:
                stale.append(spec)
                logger.info("domain stale: %s", reason, extra={"domain": spec.key})
            else:
                report.outcomes.append(
                    DomainOutcome(domain=spec.key, status=SKIPPED_FRESH, reason=reason, sources=list(spec.adapters))
                )
                logger.info("domain fresh: %s", reason, extra={"domain": spec.key, "status": SKIPPED_FRESH})

        with ThreadPoolExecutor(max_workers=max(1, self.settings.max_workers), thread_name_prefix="msync-fetch") as pool:
            jobs: Dict[str, List[Tuple[str, Optional[SourceAdapter], Any]]] = {}
            for spec in stale:
                entries: List[Tuple[str, Optional[SourceAdapter], Any]] = []
                for key in spec.adapters:
                    try:
                        adapter = self.adapter_factory(key)
                    except Exception as e:
                        entries.append((key, None, e))
                        continue
                    if self.cancel_event.is_set():
                        entries.append((key, adapter, None))
                        continue
                    entries.append((key, adapter, pool.submit(self._fetch, adapter)))
                jobs[spec.key] = entries

            for spec in stale:
                outcome = self._sync_domain(spec, jobs[spec.key])
                report.outcomes.append(outcome)

        report.cancelled = self.cancel_event.is_set()
        order = {spec.key: i for i, spec in enumerate(self.plan)}
        report.outcomes.sort(key=lambda o: order.get(o.domain, len(order)))

        if report.cancelled:
            logger.warning("sync cancelled; derived tables left as they were", extra={"run_id": report.run_id})
        else:
            self._refresh_derived(report)

        report.counts = self.store.counts()
        report.finished_at = datetime.now(timezone.utc).replace(microsecond=0).isoformat()
        logger.info(
            "sync finished",
            extra={
                "run_id": report.run_id,
                "synced": len(report.by_status(SYNCED)),
                "skipped": len(report.by_status(SKIPPED_FRESH)),
                "failed": len(report.by_status(FAILED)),
                "cancelled": len(report.by_status(CANCELLED)),
            },
        )
        return report

    def _sync_domain(self, spec: DomainSpec, entries: List[Tuple[str, Optional[SourceAdapter], Any]]) -> DomainOutcome:
        outcome = DomainOutcome(domain=spec.key, status=SYNCED, reason="stale", sources=list(spec.adapters))

        if self.cancel_event.is_set():
            for _, adapter, fut in entries:
                if adapter is not None and (fut is None or (isinstance(fut, Future) and fut.cancel())):
                    adapter.close()
            outcome.status = CANCELLED
            outcome.reason = "run cancelled"
            logger.info("domain cancelled", extra={"domain": spec.key, "status": CANCELLED})
            return outcome

        # Every adapter of the domain must fetch cleanly before anything is written.
        fetched: List[Tuple[SourceAdapter, FetchResult]] = []
        for key, adapter, job in entries:
            try:
                if isinstance(job, Exception):
                    raise job
                result = job.result()
                if not result.ok:
                    raise SourceFetchError(result.error or "fetch failed", source=key, partial=result.records)
            except Exception as e:
                outcome.status = FAILED
                outcome.error = f"{key}: {e}"
                logger.warning(
                    "domain failed: %s", outcome.error, extra={"domain": spec.key, "status": FAILED, "source": key}
                )
                self._record_source(adapter, key, spec.kind, status=FAILED, error=str(e))
                continue
            outcome.fetched += len(result.records)
            fetched.append((adapter, result))

        if outcome.status == FAILED:
            for adapter, _ in fetched:
                self._record_source(adapter, adapter.adapter_key, spec.kind, status=FAILED, error="domain failed")
            return outcome

        if self.cancel_event.is_set():
            outcome.status = CANCELLED
            outcome.reason = "run cancelled before write"
            logger.info("domain cancelled", extra={"domain": spec.key, "status": CANCELLED})
            return outcome

        for adapter, result in fetched:
            try:
                n = self._write(spec, adapter, result, outcome)
            except Exception as e:
                outcome.status = FAILED
                outcome.error = f"{adapter.adapter_key}: {e}"
                logger.warning(
                    "domain write failed: %s",
                    outcome.error,
                    extra={"domain": spec.key, "status": FAILED, "source": adapter.adapter_key},
                )
                self._record_source(adapter, adapter.adapter_key, spec.kind, status=FAILED, error=str(e))
                return outcome
            outcome.written += n
            self._record_source(adapter, adapter.adapter_key, spec.kind, status=SYNCED, record_count=n)

        logger.info(
            "domain synced",
            extra={
                "domain": spec.key,
                "status": SYNCED,
                "records": outcome.written,
                "fetched": outcome.fetched,
                "record_errors": outcome.record_errors,
            },
        )
        return outcome

    def _refresh_derived(self, report: SyncReport) -> None:
        try:
            computer = SignalComputer(self.store, settings=self.settings, now=self.now)
            report.signals_written = computer.refresh(chunk_size=self.settings.write_chunk_size)
        except Exception as e:
            report.signals_error = str(e)
            logger.warning("signal refresh failed: %s", e)

        report.aggregates = AggregationEngine(
            self.store, settings=self.settings, now_iso=self.now_iso
        ).refresh_aggregates()

        try:
            refresh_coverage(self.store, computed_at=self.now_iso)
        except Exception as e:
            logger.warning("coverage refresh failed: %s", e)


def evaluate_and_sync(store, **kwargs: Any) -> SyncReport:
    return SyncCoordinator(store, **kwargs).evaluate_and_sync()

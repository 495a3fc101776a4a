from __future__ import annotations

import dataclasses
import threading
from datetime import datetime, timezone

import pytest

from market_sync.adapters import CIVIC, PROPERTY, TRANSIT, FixtureAdapter, fixture_for
from market_sync.config import SyncSettings
from market_sync.coordinator import SyncCoordinator
from market_sync.domains import BUILTIN_DOMAINS, DomainSpec, builtin_plan
from market_sync.errors import StoreUnavailableError
from market_sync.models import GeoType
from market_sync.normalization import MidpointEstimationPolicy, Normalizer
from market_sync.report import CANCELLED, FAILED, SKIPPED_FRESH, SYNCED
from market_sync.storage import SQLiteStore


NOW = datetime(2026, 6, 1, tzinfo=timezone.utc)


def _settings(**overrides):
    base = dict(min_property_records=5, min_civic_records=1, min_point_records=1, estimation_seed=11)
    base.update(overrides)
    return dataclasses.replace(SyncSettings(), **base)


def _coordinator(store, factory, *, plan=None, settings=None, **kw):
    settings = settings or _settings()
    return SyncCoordinator(
        store,
        settings=settings,
        plan=plan,
        adapter_factory=factory,
        normalizer=Normalizer(estimation=MidpointEstimationPolicy(), settings=settings),
        now=NOW,
        **kw,
    )


def _fixture_factory(fixtures_dir, *, failing=(), created=None):
    def factory(key):
        adapter = fixture_for(key, str(fixtures_dir))
        if key in failing:
            adapter.error = "HTTP 503 from upstream"
        if created is not None:
            created.append(adapter)
        return adapter

    return factory


def test_builtin_plan_and_filter():
    assert [d.key for d in builtin_plan()] == [d.key for d in BUILTIN_DOMAINS]
    assert [d.key for d in builtin_plan(["nyc_transit", "ct_properties"])] == ["ct_properties", "nyc_transit"]
    with pytest.raises(KeyError):
        builtin_plan(["atlantis"])


def test_full_sync_from_fixtures(store, fixtures_dir):
    report = _coordinator(store, _fixture_factory(fixtures_dir)).evaluate_and_sync()

    assert report.ok, report.to_dict()
    assert report.by_status(SYNCED) == [d.key for d in BUILTIN_DOMAINS]
    assert report.counts["properties_by_jurisdiction"] == {"ct": 3, "nyc": 8}
    assert report.signals_written == 11
    assert report.aggregates.levels == {
        GeoType.ZIP: 3,
        GeoType.CITY: 3,
        GeoType.COUNTY: 3,
        GeoType.NEIGHBORHOOD: 1,
    }

    nyc = report.outcome("nyc_properties")
    assert nyc.fetched == 10
    assert nyc.written == 8
    assert nyc.record_errors == 1
    assert nyc.skipped_records == 1
    assert report.outcome("nyc_complaints").record_errors == 1

    z = store.get_aggregate(GeoType.ZIP, "10001")
    assert (z.p25_price, z.median_price, z.p75_price) == (450000, 600000, 750000)

    props = {p.source_key: p for p in store.list_properties(jurisdiction="nyc")}
    s = store.get_signal_summary(props["1007650001"].id)
    assert s["open_violations"] == 2
    assert s["recent_complaints"] == 1
    assert s["active_permits"] == 1
    assert s["building_health_score"] == 88
    assert s["health_risk_level"] == "low"
    assert s["nearest_transit_name"] == "34 St-Penn Station"
    assert s["parks_nearby"] == 1

    meta = store.get_data_source("nyc_pluto")
    assert meta.last_status == SYNCED
    assert meta.record_count == 8
    assert meta.last_refresh == "2026-06-01T00:00:00+00:00"
    assert {c.state for c in store.list_coverage()} == {"CT", "NY"}


def test_one_failing_domain_does_not_stop_others(store, fixtures_dir):
    report = _coordinator(store, _fixture_factory(fixtures_dir, failing={"ct_cama"})).evaluate_and_sync()

    assert report.by_status(FAILED) == ["ct_properties"]
    assert "503" in report.outcome("ct_properties").error
    assert report.outcome("nyc_properties").status == SYNCED
    assert store.count_by("properties", jurisdiction="ct") == 0
    assert store.count_by("properties", jurisdiction="nyc") == 8
    assert report.aggregates.ok
    assert report.ok is False

    meta = store.get_data_source("ct_cama")
    assert meta.last_status == FAILED
    assert meta.last_refresh is None


def test_adapter_exception_and_factory_error_are_contained(store, fixtures_dir):
    class Boom(FixtureAdapter):
        def fetch(self, window, limit):
            raise RuntimeError("socket closed")

    def factory(key):
        if key == "nyc_311":
            return Boom(adapter_key=key, kind=CIVIC, jurisdiction="nyc")
        if key == "nyc_subway":
            raise KeyError("no such adapter")
        return fixture_for(key, str(fixtures_dir))

    report = _coordinator(store, factory).evaluate_and_sync()
    assert set(report.by_status(FAILED)) == {"nyc_complaints", "nyc_transit"}
    assert "socket closed" in report.outcome("nyc_complaints").error
    assert report.outcome("nyc_violations").status == SYNCED
    assert report.signals_error is None


def test_partial_records_of_failed_domain_are_not_written(store, fixtures_dir):
    plan = [DomainSpec("nyc_amenities", TRANSIT, ("nyc_parks", "nyc_schools"), "nyc")]
    report = _coordinator(store, _fixture_factory(fixtures_dir, failing={"nyc_schools"}), plan=plan).evaluate_and_sync()
    assert report.outcome("nyc_amenities").status == FAILED
    assert store.count_by("geo_points") == 0


def test_threshold_gating_and_idempotence(store, fixtures_dir):
    created = []
    factory = _fixture_factory(fixtures_dir, created=created)
    first = _coordinator(store, factory).evaluate_and_sync()
    assert first.ok
    aggregates = [a.to_dict() for a in store.list_aggregates()]
    counts = store.counts()

    created.clear()
    second = _coordinator(store, factory).evaluate_and_sync()
    assert second.ok
    # nyc holds 8 properties >= 5; ct holds 3 < 5 and is fetched again
    assert second.outcome("nyc_properties").status == SKIPPED_FRESH
    assert second.outcome("ct_properties").status == SYNCED
    assert "ct_cama" in {a.adapter_key for a in created}
    assert "nyc_pluto" not in {a.adapter_key for a in created}
    assert store.counts() == counts
    assert [a.to_dict() for a in store.list_aggregates()] == aggregates


def test_empty_derived_table_makes_domain_stale(store, fixtures_dir):
    factory = _fixture_factory(fixtures_dir)
    _coordinator(store, factory).evaluate_and_sync()
    store.delete_aggregates()

    coord = _coordinator(store, factory)
    stale, reason = coord.evaluate(
        next(d for d in BUILTIN_DOMAINS if d.key == "nyc_properties"), store.counts()
    )
    assert stale is True
    assert "aggregates" in reason

    report = coord.evaluate_and_sync()
    assert report.outcome("nyc_properties").status == SYNCED
    assert store.count_by("market_aggregates") > 0


def test_replace_raw_records_on_refresh(store):
    rows = [{"unique_key": "1", "status": "Open"}, {"unique_key": "2", "status": "Open"}]
    plan = [DomainSpec("nyc_complaints", CIVIC, ("nyc_311",), "nyc", min_records=10)]

    def factory(key):
        return FixtureAdapter(adapter_key=key, kind=CIVIC, jurisdiction="nyc", records=rows)

    _coordinator(store, factory, plan=plan).evaluate_and_sync()
    rows = [{"unique_key": "3", "status": "Open"}]
    _coordinator(store, factory, plan=plan).evaluate_and_sync()
    assert store.count_by("civic_records", source="nyc_311") == 1

    rows = [{"unique_key": "4", "status": "Open"}]
    _coordinator(store, factory, plan=plan, settings=_settings(replace_raw_on_refresh=False)).evaluate_and_sync()
    assert store.count_by("civic_records", source="nyc_311") == 2


def test_civic_window_comes_from_adapter(store):
    seen = {}

    class Recorder(FixtureAdapter):
        def fetch(self, window, limit):
            seen[self.adapter_key] = (window, limit)
            return super().fetch(window, limit)

    plan = [
        DomainSpec("a", CIVIC, ("nyc_311",), "nyc"),
        DomainSpec("b", CIVIC, ("nyc_dob_permits",), "nyc"),
    ]

    def factory(key):
        return Recorder(adapter_key=key, kind=CIVIC, jurisdiction="nyc", records=[], window_days=182 if key == "nyc_311" else None)

    _coordinator(store, factory, plan=plan, settings=_settings(civic_window_days=90, record_cap=42)).evaluate_and_sync()
    assert (seen["nyc_311"][0].end - seen["nyc_311"][0].start).days == 182
    assert (seen["nyc_dob_permits"][0].end - seen["nyc_dob_permits"][0].start).days == 90
    assert seen["nyc_311"][1] == 42


def test_cancelled_run_reports_remaining_domains(store, fixtures_dir):
    cancel = threading.Event()
    cancel.set()
    report = _coordinator(store, _fixture_factory(fixtures_dir), cancel_event=cancel).evaluate_and_sync()
    assert report.cancelled is True
    assert report.by_status(CANCELLED) == [d.key for d in BUILTIN_DOMAINS]
    assert report.aggregates is None
    assert store.count_by("properties") == 0


def test_unreachable_store_is_fatal(tmp_path, fixtures_dir):
    s = SQLiteStore(str(tmp_path / "gone.sqlite"))
    s.close()
    with pytest.raises(StoreUnavailableError):
        _coordinator(s, _fixture_factory(fixtures_dir)).evaluate_and_sync()


def test_property_domain_uses_its_jurisdiction(store):
    plan = [DomainSpec("ct_properties", PROPERTY, ("ct_cama",), "ct", min_records=1)]
    rows = [{"pid": "9", "property_city": "STAMFORD", "location": "1 MAIN ST", "assessed_total": "300000"}]

    def factory(key):
        return FixtureAdapter(adapter_key=key, kind=PROPERTY, jurisdiction="ct", records=rows)

    report = _coordinator(store, factory, plan=plan).evaluate_and_sync()
    assert report.outcome("ct_properties").written == 1
    p = store.list_properties(jurisdiction="ct")[0]
    assert p.zip_code == "06901"
    assert p.estimated_value == 429000


def test_permit_state_follows_run_clock(store):
    rows = [
        {
            "job_filing_number": "B1",
            "work_permit": "B1-PL",
            "permit_status": "Permit Issued",
            "bbl": "3002370001",
            "expired_date": "2026-03-01T00:00:00.000",
        }
    ]
    plan = [DomainSpec("nyc_permits", CIVIC, ("nyc_dob_permits",), "nyc", min_records=10)]

    def factory(key):
        return FixtureAdapter(adapter_key=key, kind=CIVIC, jurisdiction="nyc", records=rows)

    def active_permits(now):
        coord = _coordinator(store, factory, plan=plan)
        coord.now = now
        coord.evaluate_and_sync()
        return store.civic_counts_by_parcel(recent_since="1900-01-01")["3002370001"]["active_permits"]

    assert active_permits(datetime(2026, 1, 1, tzinfo=timezone.utc)) == 1
    assert active_permits(NOW) == 0

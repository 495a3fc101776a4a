from __future__ import annotations

from datetime import datetime, timezone

from market_sync.models import APPROXIMATE, GeoPoint, RawCivicRecord
from market_sync.signals import (
    SignalComputer,
    amenity_score,
    building_health_score,
    confidence_band,
    flood_band,
    health_risk_level,
    transit_score,
)


NOW = datetime(2026, 6, 1, tzinfo=timezone.utc)
BBL = "1007650001"


def _civic(external_id, kind, *, is_open=True, opened_at="2026-03-01T00:00:00+00:00", parcel_key=BBL):
    return RawCivicRecord(
        source=f"test_{kind}",
        external_id=external_id,
        kind=kind,
        jurisdiction="nyc",
        parcel_key=parcel_key,
        is_open=is_open,
        opened_at=opened_at,
    )


def test_health_score_and_bands():
    assert building_health_score(2, 1) == 88
    assert health_risk_level(88) == "low"
    assert health_risk_level(80) == "low"
    assert health_risk_level(79) == "medium"
    assert health_risk_level(60) == "medium"
    assert health_risk_level(45) == "high"
    assert health_risk_level(39) == "critical"
    assert health_risk_level(None) == "unknown"
    assert building_health_score(30, 0) == 0


def test_transit_amenity_flood_and_confidence_bands():
    assert transit_score(None) is None
    assert transit_score(150) == 100
    assert transit_score(450) == 75
    assert transit_score(999) == 45
    assert transit_score(1500) == 35
    assert transit_score(10000) == 0

    assert amenity_score({"park": 2, "school": 1, "hospital": 0}) == 28
    assert amenity_score({"park": 20}) == 100

    bands = (40.65, 40.68, 40.72)
    assert flood_band(40.60, bands) == ("VE", "severe")
    assert flood_band(40.66, bands) == ("AE", "high")
    assert flood_band(40.70, bands) == ("X-SHADED", "moderate")
    assert flood_band(40.80, bands) == ("X", "minimal")
    assert flood_band(None, bands) == (None, "unknown")

    assert confidence_band(100) == "high"
    assert confidence_band(60) == "medium"
    assert confidence_band(10) == "low"


def test_property_with_violations_and_complaint(store, make_property):
    store.upsert_raw_records(
        [
            _civic("v1", "violation"),
            _civic("v2", "violation"),
            _civic("v3", "violation", is_open=False),
            _civic("c1", "complaint"),
            _civic("c2", "complaint", opened_at="2024-01-01T00:00:00+00:00"),
            _civic("p1", "permit"),
        ]
    )
    prop = make_property("a", parcel_key=BBL)

    s = SignalComputer(store, now=NOW).compute_signal(prop)
    assert s.open_violations == 2
    assert s.recent_complaints == 1
    assert s.active_permits == 1
    assert s.building_health_score == 88
    assert s.health_risk_level == "low"
    assert "civic records" in s.data_sources


def test_linked_parcel_without_records_scores_clean(store, make_property):
    store.upsert_raw_records([_civic("v1", "violation", parcel_key="3002370001")])
    s = SignalComputer(store, now=NOW).compute_signal(make_property("b", parcel_key=BBL))
    assert s.building_health_score == 100
    assert s.health_risk_level == "low"


def test_unlinked_property_health_unknown(store, make_property):
    store.upsert_raw_records([_civic("v1", "violation")])
    ct = make_property("c", jurisdiction="ct", state="CT", parcel_key=None, latitude=41.05, longitude=-73.54)
    s = SignalComputer(store, now=NOW).compute_signal(ct)
    assert s.building_health_score is None
    assert s.health_risk_level == "unknown"


def test_transit_nearest_and_unknown_fallback(store, make_property):
    store.replace_points(
        "nyc_subway",
        [
            GeoPoint("nyc_subway", "near", "transit", "subway", "Near St", 40.7505, -73.9900, accessible=False, routes="1"),
            GeoPoint("nyc_subway", "far", "transit", "subway", "Far St", 40.7530, -73.9900, accessible=True),
        ],
    )
    computer = SignalComputer(store, now=NOW)

    s = computer.compute_signal(make_property("d", latitude=40.7500, longitude=-73.9900))
    assert s.nearest_transit_name == "Near St"
    assert s.nearest_transit_routes == "1"
    assert 50 <= s.nearest_transit_m <= 60
    assert s.transit_score == 100
    assert s.has_accessible_transit is True

    remote = computer.compute_signal(make_property("e", latitude=40.90, longitude=-73.80))
    assert remote.nearest_transit_m is None
    assert remote.transit_score is None


def test_amenities_flood_and_completeness(store, make_property):
    store.replace_points(
        "nyc_parks",
        [GeoPoint("nyc_parks", "p1", "amenity", "park", "Park", 40.6601, -73.9501)],
    )
    store.replace_points(
        "nyc_schools",
        [GeoPoint("nyc_schools", "s1", "amenity", "school", "School", 40.6602, -73.9502)],
    )
    s = SignalComputer(store, now=NOW).compute_signal(
        make_property("f", latitude=40.6600, longitude=-73.9500, parcel_key=None)
    )
    assert s.parks_nearby == 1
    assert s.schools_nearby == 1
    assert s.amenity_score == 18
    assert s.flood_zone == "AE"
    assert s.is_flood_high_risk is True
    # flood + amenities of five categories
    assert s.data_completeness == 40
    assert s.signal_confidence == "low"


def test_missing_coordinates_leave_location_signals_unknown(store, make_property):
    s = SignalComputer(store, now=NOW).compute_signal(
        make_property("g", latitude=None, longitude=None, coordinate_precision=APPROXIMATE, parcel_key=None)
    )
    assert s.flood_risk_level == "unknown"
    assert s.transit_score is None
    assert s.data_completeness == 0
    assert s.coordinate_precision == APPROXIMATE


def test_refresh_is_idempotent_full_row_upsert(store, make_property):
    props = [make_property(str(i), parcel_key=BBL) for i in range(7)]
    store.upsert_properties(props)

    assert SignalComputer(store, now=NOW).refresh(chunk_size=3) == 7
    before = store.get_signal_summary(props[0].id)
    # no civic data ingested for the jurisdiction yet
    assert before["building_health_score"] is None
    assert before["health_risk_level"] == "unknown"

    store.upsert_raw_records([_civic("v1", "violation")])
    assert SignalComputer(store, now=NOW).refresh(chunk_size=3) == 7
    after = store.get_signal_summary(props[0].id)
    assert store.count_by("property_signal_summary") == 7
    assert after["open_violations"] == 1
    assert after["building_health_score"] == 95

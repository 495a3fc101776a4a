from __future__ import annotations

import dataclasses

import pytest

from market_sync.aggregation import AggregationEngine, percentile
from market_sync.config import SyncSettings
from market_sync.coverage import compute_coverage
from market_sync.models import APPROXIMATE, ESTIMATED, GeoType


NOW_ISO = "2026-06-01T00:00:00+00:00"


def _engine(store, **overrides):
    return AggregationEngine(store, settings=dataclasses.replace(SyncSettings(), **overrides), now_iso=NOW_ISO)


def test_percentile_continuous_scenario():
    values = [400000, 500000, 650000]
    assert percentile(values, 0.5) == 500000
    # position q*(n-1): 0.5 between 400k and 500k, 1.5 between 500k and 650k
    assert percentile(values, 0.25) == 450000
    assert percentile(values, 0.75) == 575000


def test_percentile_edges_and_nearest_rank():
    assert percentile([], 0.5) is None
    assert percentile([7], 0.25) == 7
    assert percentile([1, 2, 3, 4], 0.5) == 2.5
    assert percentile([1, 2, 3, 4], 0.5, "nearest_rank") == 2
    assert percentile([1, 2, 3, 4], 0.75, "nearest_rank") == 3
    assert percentile([1, 2, 3, 4], 0.0, "nearest_rank") == 1
    with pytest.raises(ValueError):
        percentile([1], 1.5)
    with pytest.raises(ValueError):
        percentile([1], 0.5, "mode")


def test_zip_level_scenario_a(store, make_property):
    store.upsert_properties(
        [make_property(k, value=v) for k, v in (("a", 400000), ("b", 500000), ("c", 650000))]
    )
    res = _engine(store).refresh_aggregates()
    assert res.ok
    row = store.get_aggregate(GeoType.ZIP, "10001")
    assert row.median_price == 500000
    assert row.p25_price == 450000
    assert row.p75_price == 575000
    assert row.transaction_count == 3
    assert row.is_approximation is False
    assert row.trend_12m is None


def test_minimum_sample_sizes(store, make_property):
    props = [make_property(f"z{i}", zip_code="10002", value=100000 * (i + 1)) for i in range(2)]
    props += [make_property(f"y{i}", zip_code="10003", value=100000 * (i + 1), neighborhood="CD 103") for i in range(4)]
    props.append(make_property("nv", zip_code="10003", value=None, neighborhood="CD 103"))
    store.upsert_properties(props)

    res = _engine(store).refresh_aggregates()
    assert res.ok
    zips = {a.geo_id for a in store.list_aggregates(geo_type=GeoType.ZIP)}
    assert zips == {"10003"}
    assert store.get_aggregate(GeoType.ZIP, "10003").transaction_count == 4
    # four valued properties roll up below the neighborhood minimum of five
    assert store.list_aggregates(geo_type=GeoType.NEIGHBORHOOD) == []


def test_rollup_consistency(store, make_property):
    props = []
    for zip_code, n, base in (("10001", 3, 300000), ("10011", 4, 600000), ("10014", 5, 900000)):
        props += [
            make_property(f"{zip_code}-{i}", zip_code=zip_code, value=base + i * 10000, sqft=1000 + i * 100)
            for i in range(n)
        ]
    props += [
        make_property(f"bk-{i}", zip_code="11201", city="Brooklyn", county="Kings", neighborhood="CD 302", value=700000)
        for i in range(3)
    ]
    store.upsert_properties(props)

    res = _engine(store).refresh_aggregates()
    assert res.ok
    assert res.levels[GeoType.ZIP] == 4

    zips = {a.geo_id: a for a in store.list_aggregates(geo_type=GeoType.ZIP)}
    manhattan = store.get_aggregate(GeoType.CITY, "manhattan-ny")
    assert manhattan.is_approximation is True
    assert manhattan.zip_count == 3
    assert manhattan.transaction_count == sum(zips[z].transaction_count for z in ("10001", "10011", "10014"))

    expected = sum(zips[z].median_price * zips[z].transaction_count for z in ("10001", "10011", "10014")) / 12
    assert manhattan.median_price == int(round(expected))

    county = store.get_aggregate(GeoType.COUNTY, "kings-ny")
    assert county.transaction_count == 3
    assert county.median_price == 700000

    hoods = {a.geo_id for a in store.list_aggregates(geo_type=GeoType.NEIGHBORHOOD)}
    assert hoods == {"cd-101-ny"}


def test_replace_semantics_scenario_d(store, make_property):
    store.upsert_properties(
        [make_property(f"{z}-{i}", zip_code=z, value=250000 + 5000 * i) for z in ("10001", "10002") for i in range(5)]
    )
    engine = _engine(store)
    first = engine.refresh_aggregates()
    snapshot = sorted((a.to_dict() for a in store.list_aggregates()), key=lambda d: (d["geo_type"], d["geo_id"]))

    store.delete_aggregates()
    assert store.count_by("market_aggregates") == 0

    second = engine.refresh_aggregates()
    again = sorted((a.to_dict() for a in store.list_aggregates()), key=lambda d: (d["geo_type"], d["geo_id"]))
    assert second.count == first.count
    assert again == snapshot


def test_stale_geographies_do_not_linger(store, make_property):
    store.upsert_properties([make_property(f"a{i}", zip_code="10001") for i in range(3)])
    _engine(store).refresh_aggregates()
    assert store.get_aggregate(GeoType.ZIP, "10001") is not None

    store.upsert_properties([make_property(f"a{i}", zip_code="10009") for i in range(3)])
    _engine(store).refresh_aggregates()
    assert store.get_aggregate(GeoType.ZIP, "10001") is None
    assert store.get_aggregate(GeoType.ZIP, "10009") is not None


def test_level_failure_is_isolated(store, make_property, monkeypatch):
    store.upsert_properties([make_property(f"a{i}") for i in range(5)])
    engine = _engine(store)
    engine.refresh_aggregates()
    before_county = store.list_aggregates(geo_type=GeoType.COUNTY)

    real = store.replace_aggregates

    def flaky(geo_type, rows):
        if geo_type == GeoType.COUNTY:
            raise RuntimeError("disk full")
        return real(geo_type, rows)

    monkeypatch.setattr(store, "replace_aggregates", flaky)
    res = engine.refresh_aggregates()
    assert not res.ok
    assert "disk full" in res.errors[GeoType.COUNTY]
    assert set(res.levels) == {GeoType.ZIP, GeoType.CITY, GeoType.NEIGHBORHOOD}
    assert store.list_aggregates(geo_type=GeoType.COUNTY) == before_county


def test_nearest_rank_setting(store, make_property):
    store.upsert_properties([make_property(k, value=v) for k, v in (("a", 1), ("b", 2), ("c", 3), ("d", 4))])
    _engine(store, percentile_method="nearest_rank").refresh_aggregates()
    assert store.get_aggregate(GeoType.ZIP, "10001").median_price == 2


def test_coverage_ratios(make_property):
    props = [
        make_property("a", last_sale_price=100000),
        make_property("b", coordinate_precision=APPROXIMATE, field_provenance={"sqft": ESTIMATED}),
        make_property("c", jurisdiction="ct", state="CT"),
    ]
    stats = {s.state: s for s in compute_coverage(props, computed_at=NOW_ISO)}
    ny = stats["NY"]
    assert ny.property_count == 2
    assert ny.sqft_completeness == 0.5
    assert ny.year_built_completeness == 0.5
    assert ny.last_sale_completeness == 0.5
    assert ny.exact_coordinate_ratio == 0.5
    assert ny.confidence_score == 50.0
    assert stats["CT"].confidence_score == 75.0


def test_spelling_variants_share_one_rollup_row(store, make_property):
    props = [
        make_property(f"a{i}", jurisdiction="ct", state="CT", zip_code="06830", city="Greenwich",
                      county="Fairfield", neighborhood="Old Greenwich", value=600000 + i * 1000)
        for i in range(5)
    ]
    props += [
        make_property(f"b{i}", jurisdiction="ct", state="CT", zip_code="06870", city="GREENWICH",
                      county="Fairfield", neighborhood="OLD GREENWICH", value=800000)
        for i in range(4)
    ]
    store.upsert_properties(props)

    res = _engine(store).refresh_aggregates()
    assert res.ok, res.errors
    assert res.levels[GeoType.NEIGHBORHOOD] == 1

    hood = store.get_aggregate(GeoType.NEIGHBORHOOD, "old-greenwich-ct")
    assert hood.geo_name == "Old Greenwich"
    assert hood.transaction_count == 9
    assert hood.zip_count == 2
    city = store.get_aggregate(GeoType.CITY, "greenwich-ct")
    assert city.transaction_count == 9

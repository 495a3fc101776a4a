from __future__ import annotations

from datetime import datetime, timezone

import httpx
import pytest

from market_sync.adapters import get_adapter, list_adapters
from market_sync.adapters.socrata import soql_literal
from market_sync.models import TimeRange


NOW = datetime(2026, 6, 1, tzinfo=timezone.utc)


def _client(handler):
    return httpx.Client(transport=httpx.MockTransport(handler))


def test_builtin_adapters_registered():
    keys = set(list_adapters())
    assert {
        "nyc_pluto",
        "ct_cama",
        "nyc_dob_permits",
        "nyc_311",
        "nyc_hpd_violations",
        "nyc_subway",
        "nyc_parks",
        "nyc_schools",
        "nyc_hospitals",
        "fixture",
    } <= keys
    with pytest.raises(KeyError):
        get_adapter("nope")


def test_soql_literal_escapes_quotes():
    assert soql_literal("O'BRIEN") == "'O''BRIEN'"


def test_window_filter_and_pagination():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        params = dict(request.url.params)
        seen.append(params)
        offset = int(params["$offset"])
        limit = int(params["$limit"])
        rows = [{"unique_key": str(i)} for i in range(offset, min(offset + limit, 5))]
        return httpx.Response(200, json=rows)

    adapter = get_adapter("nyc_311", client=_client(handler), page_size=2)
    res = adapter.fetch(TimeRange.last_days(182, now=NOW), limit=100)

    assert res.ok
    assert [r.payload["unique_key"] for r in res.records] == ["0", "1", "2", "3", "4"]
    assert res.pages == 3
    assert [p["$offset"] for p in seen] == ["0", "2", "4"]
    first = seen[0]
    assert first["$order"] == "created_date DESC"
    assert "created_date>='2025-12-01T00:00:00'" in first["$where"]
    assert "created_date<='2026-06-01T00:00:00'" in first["$where"]


def test_record_cap_bounds_requests():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        limit = int(request.url.params["$limit"])
        calls.append(limit)
        return httpx.Response(200, json=[{"bbl": str(i)} for i in range(limit)])

    adapter = get_adapter("nyc_pluto", client=_client(handler), page_size=4)
    res = adapter.fetch(TimeRange.last_days(365, now=NOW), limit=10)
    assert len(res.records) == 10
    assert calls == [4, 4, 2]


def test_http_error_returns_partial_result():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.params["$offset"] == "0":
            return httpx.Response(200, json=[{"violationid": "1"}, {"violationid": "2"}])
        return httpx.Response(500, text="upstream down")

    adapter = get_adapter("nyc_hpd_violations", client=_client(handler), page_size=2)
    res = adapter.fetch(TimeRange.last_days(182, now=NOW), limit=10)
    assert not res.ok
    assert "500" in res.error
    assert len(res.records) == 2


def test_non_array_body_is_an_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"error": True, "message": "bad query"})

    res = get_adapter("nyc_parks", client=_client(handler)).fetch(TimeRange.last_days(30, now=NOW), limit=5)
    assert not res.ok
    assert res.records == []


def test_transport_error_is_captured():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    res = get_adapter("nyc_subway", client=_client(handler)).fetch(TimeRange.last_days(30, now=NOW), limit=5)
    assert not res.ok
    assert "refused" in res.error


def test_ct_cama_queries_each_town_and_stops_on_failure():
    towns_seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        where = request.url.params["$where"]
        towns_seen.append(where)
        assert request.url.params["$order"] == "assessed_total DESC"
        if "DARIEN" in where:
            return httpx.Response(503)
        town = "STAMFORD" if "STAMFORD" in where else "NEW CANAAN"
        return httpx.Response(200, json=[{"pid": "1", "property_city": town, "assessed_total": "100000"}])

    adapter = get_adapter(
        "ct_cama",
        client=_client(handler),
        towns=["Stamford", "New Canaan", "Darien", "Westport"],
        per_town_limit=10,
    )
    res = adapter.fetch(TimeRange.last_days(365, now=NOW), limit=100)

    assert len(towns_seen) == 3
    assert "upper(property_city)='STAMFORD'" in towns_seen[0]
    assert "upper(property_city)='NEW CANAAN'" in towns_seen[1]
    assert res.error.startswith("Darien:")
    assert len(res.records) == 2

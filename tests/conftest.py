import os
import socket
import sys
import urllib.request
from pathlib import Path

import pytest


REPO_ROOT = Path(__file__).resolve().parents[1]
SRC = REPO_ROOT / "src"
FIXTURES = Path(__file__).resolve().parent / "fixtures"

# Prefer repo sources over any installed package.
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


@pytest.fixture(autouse=True)
def block_network(monkeypatch):
    if os.getenv("LIVE") == "1":
        return

    real_connect = socket.socket.connect

    def guarded_connect(sock, address):
        host = address[0]
        if host not in ("127.0.0.1", "localhost"):
            raise RuntimeError("Network access blocked in tests")
        return real_connect(sock, address)

    monkeypatch.setattr(socket.socket, "connect", guarded_connect)
    monkeypatch.setattr(
        urllib.request,
        "urlopen",
        lambda *args, **kwargs: (_ for _ in ()).throw(
            RuntimeError("Network access blocked in tests")
        ),
    )


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for k in list(os.environ):
        if k.startswith("MSYNC_"):
            monkeypatch.delenv(k, raising=False)
    from market_sync.config import reset_settings_cache

    reset_settings_cache()
    yield
    reset_settings_cache()


@pytest.fixture
def fixtures_dir():
    return FIXTURES


@pytest.fixture
def store(tmp_path):
    from market_sync.storage import SQLiteStore

    s = SQLiteStore(str(tmp_path / "market.sqlite"))
    try:
        yield s
    finally:
        s.close()


@pytest.fixture
def make_property():
    from market_sync.models import EXACT, SOURCE, Property, property_id_for

    def _make(key, *, jurisdiction="nyc", state="NY", zip_code="10001", value=500000, sqft=1000, **kw):
        fields = {
            "id": property_id_for(jurisdiction, key),
            "jurisdiction": jurisdiction,
            "source": "test",
            "source_key": key,
            "address": f"{key} Main St",
            "city": "Manhattan",
            "state": state,
            "zip_code": zip_code,
            "county": "New York",
            "neighborhood": "CD 101",
            "latitude": 40.75,
            "longitude": -73.99,
            "coordinate_precision": EXACT,
            "sqft": sqft,
            "year_built": 1950,
            "estimated_value": value,
            "price_per_sqft": round(value / sqft, 2) if value and sqft else None,
            "field_provenance": {"sqft": SOURCE, "year_built": SOURCE},
        }
        fields.update(kw)
        return Property(**fields)

    return _make


@pytest.fixture(autouse=True)
def reset_msync_logging():
    import logging

    yield
    logger = logging.getLogger("msync")
    for h in list(logger.handlers):
        logger.removeHandler(h)
    logger.propagate = True
    logger.setLevel(logging.NOTSET)

from __future__ import annotations

import json
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional


PROPERTY_ID_NAMESPACE = uuid.UUID("6f1c1f6e-7d1b-4f55-9a7e-3c2b8d6a0b11")


class PropertyType:
    SFH = "SFH"
    CONDO = "Condo"
    TOWNHOME = "Townhome"
    MULTI_2_4 = "Multi-family 2-4"
    MULTI_5_PLUS = "Multi-family 5+"
    MIXED_USE = "Mixed-Use"
    COMMERCIAL = "Commercial"
    VACANT_LAND = "Vacant Land"

    ALL = (SFH, CONDO, TOWNHOME, MULTI_2_4, MULTI_5_PLUS, MIXED_USE, COMMERCIAL, VACANT_LAND)


class GeoType:
    ZIP = "zip"
    CITY = "city"
    COUNTY = "county"
    NEIGHBORHOOD = "neighborhood"

    ROLLUPS = (CITY, COUNTY, NEIGHBORHOOD)
    ALL = (ZIP, CITY, COUNTY, NEIGHBORHOOD)


# Provenance markers for Property.field_provenance
SOURCE = "source"
ESTIMATED = "estimated"
DERIVED = "derived"

EXACT = "exact"
APPROXIMATE = "approximate"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def parse_iso(value: str) -> datetime:
    dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def property_id_for(jurisdiction: str, source_key: str) -> str:
    return str(uuid.uuid5(PROPERTY_ID_NAMESPACE, f"{jurisdiction}:{source_key}"))


@dataclass(frozen=True)
class TimeRange:
    start: datetime
    end: datetime

    @classmethod
    def last_days(cls, days: int, *, now: Optional[datetime] = None) -> "TimeRange":
        end = now or datetime.now(timezone.utc)
        return cls(start=end - timedelta(days=int(days)), end=end)

    def contains(self, when: datetime) -> bool:
        return self.start <= when <= self.end


@dataclass(frozen=True)
class RawRecord:
    """One row as returned by a source adapter, before normalization."""

    source: str
    payload: Dict[str, Any]
    fetched_at: str

    def payload_json(self) -> str:
        return json.dumps(self.payload or {}, ensure_ascii=True, sort_keys=True, default=str)


@dataclass
class FetchResult:
    source: str
    records: List[RawRecord] = field(default_factory=list)
    error: Optional[str] = None
    pages: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class RawCivicRecord:
    """A permit, violation or complaint. Keyed by (source, external_id)."""

    source: str
    external_id: str
    kind: str  # permit | violation | complaint
    jurisdiction: str
    parcel_key: Optional[str] = None
    address: Optional[str] = None
    zip_code: Optional[str] = None
    status: Optional[str] = None
    is_open: bool = False
    opened_at: Optional[str] = None  # ISO8601
    closed_at: Optional[str] = None
    category: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    raw: Optional[Dict[str, Any]] = None

    def raw_json(self) -> str:
        return json.dumps(self.raw or {}, ensure_ascii=True, sort_keys=True, default=str)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class GeoPoint:
    """A transit stop or amenity used by the signal spatial index."""

    source: str
    external_id: str
    kind: str  # transit | amenity
    category: str  # subway | park | school | hospital ...
    name: str
    latitude: float
    longitude: float
    accessible: bool = False
    routes: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Property:
    id: str
    jurisdiction: str
    source: str
    source_key: str
    address: str
    city: str
    state: str
    zip_code: str
    county: Optional[str] = None
    neighborhood: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    coordinate_precision: str = APPROXIMATE
    property_type: str = PropertyType.SFH
    beds: Optional[int] = None
    baths: Optional[float] = None
    sqft: Optional[int] = None
    lot_size: Optional[int] = None
    year_built: Optional[int] = None
    assessed_value: Optional[float] = None
    estimated_value: Optional[int] = None
    price_per_sqft: Optional[float] = None
    last_sale_price: Optional[int] = None
    last_sale_date: Optional[str] = None  # YYYY-MM-DD
    parcel_key: Optional[str] = None
    field_provenance: Dict[str, str] = field(default_factory=dict)
    data_sources: List[str] = field(default_factory=list)

    def is_estimated(self, name: str) -> bool:
        return self.field_provenance.get(name) == ESTIMATED

    @property
    def has_exact_coordinates(self) -> bool:
        return self.coordinate_precision == EXACT

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class PropertySignalSummary:
    property_id: str
    parcel_key: Optional[str]
    active_permits: int = 0
    open_violations: int = 0
    recent_complaints: int = 0
    building_health_score: Optional[int] = None
    health_risk_level: str = "unknown"
    nearest_transit_m: Optional[int] = None
    nearest_transit_name: Optional[str] = None
    nearest_transit_routes: Optional[str] = None
    has_accessible_transit: bool = False
    transit_score: Optional[int] = None
    flood_zone: Optional[str] = None
    flood_risk_level: str = "unknown"
    is_flood_high_risk: bool = False
    is_flood_moderate_risk: bool = False
    parks_nearby: int = 0
    schools_nearby: int = 0
    hospitals_nearby: int = 0
    amenity_score: int = 0
    data_completeness: int = 0
    signal_confidence: str = "low"
    coordinate_precision: str = APPROXIMATE
    data_sources: List[str] = field(default_factory=list)
    updated_at: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class MarketAggregate:
    geo_type: str
    geo_id: str
    geo_name: str
    state: str
    median_price: Optional[int]
    p25_price: Optional[int]
    p75_price: Optional[int]
    median_price_per_sqft: Optional[float]
    p25_price_per_sqft: Optional[float]
    p75_price_per_sqft: Optional[float]
    transaction_count: int
    zip_count: int = 1
    is_approximation: bool = False
    # Trend fields are placeholders until sales history is ingested.
    turnover_rate: Optional[float] = None
    volatility: Optional[float] = None
    trend_3m: Optional[float] = None
    trend_6m: Optional[float] = None
    trend_12m: Optional[float] = None
    computed_at: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class DataSourceMeta:
    key: str
    name: str
    kind: str
    description: str = ""
    refresh_cadence: str = ""
    last_refresh: Optional[str] = None
    last_attempt: Optional[str] = None
    record_count: int = 0
    last_status: Optional[str] = None
    last_error: Optional[str] = None
    is_active: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CoverageStat:
    state: str
    property_count: int
    sqft_completeness: float
    year_built_completeness: float
    last_sale_completeness: float
    exact_coordinate_ratio: float
    confidence_score: float
    computed_at: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

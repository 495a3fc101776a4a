from __future__ import annotations

import json
import sqlite3
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Protocol, Sequence, Tuple

from market_sync.errors import StoreUnavailableError
from market_sync.models import (
    CoverageStat,
    DataSourceMeta,
    GeoPoint,
    MarketAggregate,
    Property,
    PropertySignalSummary,
    RawCivicRecord,
)


DEFAULT_CHUNK_SIZE = 500


def _chunked(seq: Sequence[Any], n: int) -> Iterable[Sequence[Any]]:
    n = max(int(n), 1)
    for i in range(0, len(seq), n):
        yield seq[i : i + n]


def _json(obj: Any) -> str:
    return json.dumps(obj, ensure_ascii=True, sort_keys=True, default=str)


class Store(Protocol):
    """Persistence contract the pipeline depends on.

    Upserts are idempotent and ``replace_*`` calls are atomic per scope, so a
    retried or overlapping run converges on the same rows.
    """

    def ping(self) -> None: ...

    def upsert_raw_records(self, records: Sequence[RawCivicRecord]) -> int: ...

    def replace_raw_records(self, source: str, records: Sequence[RawCivicRecord]) -> int: ...

    def replace_points(self, source: str, points: Sequence[GeoPoint]) -> int: ...

    def upsert_properties(self, properties: Sequence[Property]) -> int: ...

    def upsert_signal_summaries(self, rows: Sequence[PropertySignalSummary]) -> int: ...

    def replace_aggregates(self, geo_type: str, rows: Sequence[MarketAggregate]) -> int: ...

    def count_by(self, table: str, **filters: Any) -> int: ...


# table -> columns that may be used as count_by filters
_COUNTABLE: Dict[str, Tuple[str, ...]] = {
    "properties": ("jurisdiction", "state", "zip_code", "source"),
    "civic_records": ("source", "jurisdiction", "kind"),
    "geo_points": ("source", "kind", "category"),
    "property_signal_summary": ("signal_confidence", "health_risk_level"),
    "market_aggregates": ("geo_type", "state"),
    "data_sources": ("kind", "last_status"),
}


class SQLiteStore:
    """SQLite implementation of the ``Store`` contract."""

    def __init__(self, path: str, *, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.path = str(path)
        self.chunk_size = max(1, int(chunk_size))
        try:
            if self.path != ":memory:":
                Path(self.path).parent.mkdir(parents=True, exist_ok=True)
            self.conn = sqlite3.connect(self.path)
            self.conn.row_factory = sqlite3.Row
            self._init_schema()
        except (OSError, sqlite3.Error) as e:
            raise StoreUnavailableError(f"cannot open store at {self.path!r}: {e}") from e

    def _init_schema(self) -> None:
        self.conn.execute(
            """
            CREATE TABLE IF NOT EXISTS civic_records (
                source TEXT NOT NULL,
                external_id TEXT NOT NULL,
                kind TEXT NOT NULL,
                jurisdiction TEXT NOT NULL,
                parcel_key TEXT,
                address TEXT,
                zip_code TEXT,
                status TEXT,
                is_open INTEGER NOT NULL DEFAULT 0,
                opened_at TEXT,
                closed_at TEXT,
                category TEXT,
                latitude REAL,
                longitude REAL,
                raw_json TEXT,
                PRIMARY KEY (source, external_id)
            )
            """
        )
        self.conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_civic_parcel ON civic_records(parcel_key, kind)"
        )
        self.conn.execute(
            """
            CREATE TABLE IF NOT EXISTS geo_points (
                source TEXT NOT NULL,
                external_id TEXT NOT NULL,
                kind TEXT NOT NULL,
                category TEXT NOT NULL,
                name TEXT,
                latitude REAL NOT NULL,
                longitude REAL NOT NULL,
                accessible INTEGER NOT NULL DEFAULT 0,
                routes TEXT,
                PRIMARY KEY (source, external_id)
            )
            """
        )
        self.conn.execute(
            """
            CREATE TABLE IF NOT EXISTS properties (
                id TEXT PRIMARY KEY,
                jurisdiction TEXT NOT NULL,
                source TEXT NOT NULL,
                source_key TEXT NOT NULL,
                address TEXT NOT NULL,
                city TEXT NOT NULL,
                state TEXT NOT NULL,
                zip_code TEXT NOT NULL,
                county TEXT,
                neighborhood TEXT,
                latitude REAL,
                longitude REAL,
                coordinate_precision TEXT NOT NULL,
                property_type TEXT NOT NULL,
                beds INTEGER,
                baths REAL,
                sqft INTEGER,
                lot_size INTEGER,
                year_built INTEGER,
                assessed_value REAL,
                estimated_value INTEGER,
                price_per_sqft REAL,
                last_sale_price INTEGER,
                last_sale_date TEXT,
                parcel_key TEXT,
                field_provenance_json TEXT NOT NULL,
                data_sources_json TEXT NOT NULL,
                UNIQUE(jurisdiction, source_key)
            )
            """
        )
        self.conn.execute("CREATE INDEX IF NOT EXISTS idx_properties_zip ON properties(zip_code)")
        self.conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_properties_jurisdiction ON properties(jurisdiction)"
        )
        self.conn.execute(
            """
            CREATE TABLE IF NOT EXISTS property_signal_summary (
                property_id TEXT PRIMARY KEY,
                parcel_key TEXT,
                active_permits INTEGER NOT NULL,
                open_violations INTEGER NOT NULL,
                recent_complaints INTEGER NOT NULL,
                building_health_score INTEGER,
                health_risk_level TEXT NOT NULL,
                nearest_transit_m INTEGER,
                nearest_transit_name TEXT,
                nearest_transit_routes TEXT,
                has_accessible_transit INTEGER NOT NULL,
                transit_score INTEGER,
                flood_zone TEXT,
                flood_risk_level TEXT NOT NULL,
                is_flood_high_risk INTEGER NOT NULL,
                is_flood_moderate_risk INTEGER NOT NULL,
                parks_nearby INTEGER NOT NULL,
                schools_nearby INTEGER NOT NULL,
                hospitals_nearby INTEGER NOT NULL,
                amenity_score INTEGER NOT NULL,
                data_completeness INTEGER NOT NULL,
                signal_confidence TEXT NOT NULL,
                coordinate_precision TEXT NOT NULL,
                data_sources_json TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )
        self.conn.execute(
            """
            CREATE TABLE IF NOT EXISTS market_aggregates (
                geo_type TEXT NOT NULL,
                geo_id TEXT NOT NULL,
                geo_name TEXT NOT NULL,
                state TEXT NOT NULL,
                median_price INTEGER,
                p25_price INTEGER,
                p75_price INTEGER,
                median_price_per_sqft REAL,
                p25_price_per_sqft REAL,
                p75_price_per_sqft REAL,
                transaction_count INTEGER NOT NULL,
                zip_count INTEGER NOT NULL,
                is_approximation INTEGER NOT NULL,
                turnover_rate REAL,
                volatility REAL,
                trend_3m REAL,
                trend_6m REAL,
                trend_12m REAL,
                computed_at TEXT NOT NULL,
                PRIMARY KEY (geo_type, geo_id)
            )
            """
        )
        self.conn.execute(
            """
            CREATE TABLE IF NOT EXISTS data_sources (
                key TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                kind TEXT NOT NULL,
                description TEXT,
                refresh_cadence TEXT,
                last_refresh TEXT,
                last_attempt TEXT,
                record_count INTEGER NOT NULL DEFAULT 0,
                last_status TEXT,
                last_error TEXT,
                is_active INTEGER NOT NULL DEFAULT 1
            )
            """
        )
        self.conn.execute(
            """
            CREATE TABLE IF NOT EXISTS coverage_stats (
                state TEXT PRIMARY KEY,
                property_count INTEGER NOT NULL,
                sqft_completeness REAL NOT NULL,
                year_built_completeness REAL NOT NULL,
                last_sale_completeness REAL NOT NULL,
                exact_coordinate_ratio REAL NOT NULL,
                confidence_score REAL NOT NULL,
                computed_at TEXT NOT NULL
            )
            """
        )
        self.conn.commit()

    def close(self) -> None:
        if self.conn is not None:
            self.conn.close()
            self.conn = None

    def ping(self) -> None:
        try:
            if self.conn is None:
                raise sqlite3.ProgrammingError("store is closed")
            self.conn.execute("SELECT 1").fetchone()
        except sqlite3.Error as e:
            raise StoreUnavailableError(f"store unreachable: {e}") from e

    # -- raw civic records -------------------------------------------------

    @staticmethod
    def _civic_row(r: RawCivicRecord) -> tuple:
        return (
            r.source,
            r.external_id,
            r.kind,
            r.jurisdiction,
            r.parcel_key,
            r.address,
            r.zip_code,
            r.status,
            1 if r.is_open else 0,
            r.opened_at,
            r.closed_at,
            r.category,
            r.latitude,
            r.longitude,
            r.raw_json(),
        )

    _CIVIC_INSERT = """
        INSERT OR IGNORE INTO civic_records (
            source, external_id, kind, jurisdiction, parcel_key, address, zip_code,
            status, is_open, opened_at, closed_at, category, latitude, longitude, raw_json
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
    """

    def upsert_raw_records(self, records: Sequence[RawCivicRecord]) -> int:
        """Insert-or-ignore; existing (source, external_id) rows are never updated."""
        if not records:
            return 0
        before = self.conn.total_changes
        with self.conn:
            for chunk in _chunked(list(records), self.chunk_size):
                self.conn.executemany(self._CIVIC_INSERT, [self._civic_row(r) for r in chunk])
        return self.conn.total_changes - before

    def replace_raw_records(self, source: str, records: Sequence[RawCivicRecord]) -> int:
        """Re-ingestion replace of one source's namespace, in a single transaction."""
        rows = [self._civic_row(r) for r in records if r.source == source]
        with self.conn:
            self.conn.execute("DELETE FROM civic_records WHERE source=?", (source,))
            for chunk in _chunked(rows, self.chunk_size):
                self.conn.executemany(self._CIVIC_INSERT, chunk)
        return self.count_by("civic_records", source=source)

    def civic_counts_by_parcel(self, *, recent_since: str) -> Dict[str, Dict[str, int]]:
        rows = self.conn.execute(
            """
            SELECT
                parcel_key,
                SUM(CASE WHEN kind='permit' AND is_open=1 THEN 1 ELSE 0 END) AS active_permits,
                SUM(CASE WHEN kind='violation' AND is_open=1 THEN 1 ELSE 0 END) AS open_violations,
                SUM(CASE WHEN kind='complaint' AND opened_at >= ? THEN 1 ELSE 0 END) AS recent_complaints,
                COUNT(*) AS total
            FROM civic_records
            WHERE parcel_key IS NOT NULL AND parcel_key != ''
            GROUP BY parcel_key
            """,
            (recent_since,),
        ).fetchall()
        return {
            str(r["parcel_key"]): {
                "active_permits": int(r["active_permits"] or 0),
                "open_violations": int(r["open_violations"] or 0),
                "recent_complaints": int(r["recent_complaints"] or 0),
                "total": int(r["total"] or 0),
            }
            for r in rows
        }

    def civic_jurisdictions(self) -> List[str]:
        rows = self.conn.execute(
            "SELECT DISTINCT jurisdiction FROM civic_records ORDER BY jurisdiction"
        ).fetchall()
        return [str(r["jurisdiction"]) for r in rows]

    # -- transit / amenity points -------------------------------------------

    def replace_points(self, source: str, points: Sequence[GeoPoint]) -> int:
        rows = [
            (
                p.source,
                p.external_id,
                p.kind,
                p.category,
                p.name,
                float(p.latitude),
                float(p.longitude),
                1 if p.accessible else 0,
                p.routes,
            )
            for p in points
            if p.source == source
        ]
        with self.conn:
            self.conn.execute("DELETE FROM geo_points WHERE source=?", (source,))
            for chunk in _chunked(rows, self.chunk_size):
                self.conn.executemany(
                    """
                    INSERT OR REPLACE INTO geo_points (
                        source, external_id, kind, category, name, latitude, longitude, accessible, routes
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    chunk,
                )
        return self.count_by("geo_points", source=source)

    def list_points(self, *, kind: Optional[str] = None) -> List[GeoPoint]:
        if kind:
            rows = self.conn.execute(
                "SELECT * FROM geo_points WHERE kind=? ORDER BY source, external_id", (kind,)
            ).fetchall()
        else:
            rows = self.conn.execute("SELECT * FROM geo_points ORDER BY source, external_id").fetchall()
        return [
            GeoPoint(
                source=r["source"],
                external_id=r["external_id"],
                kind=r["kind"],
                category=r["category"],
                name=r["name"] or "",
                latitude=float(r["latitude"]),
                longitude=float(r["longitude"]),
                accessible=bool(r["accessible"]),
                routes=r["routes"],
            )
            for r in rows
        ]

    # -- properties ---------------------------------------------------------

    def upsert_properties(self, properties: Sequence[Property]) -> int:
        if not properties:
            return 0
        payload = [
            (
                p.id,
                p.jurisdiction,
                p.source,
                p.source_key,
                p.address,
                p.city,
                p.state,
                p.zip_code,
                p.county,
                p.neighborhood,
                p.latitude,
                p.longitude,
                p.coordinate_precision,
                p.property_type,
                p.beds,
                p.baths,
                p.sqft,
                p.lot_size,
                p.year_built,
                p.assessed_value,
                p.estimated_value,
                p.price_per_sqft,
                p.last_sale_price,
                p.last_sale_date,
                p.parcel_key,
                _json(p.field_provenance or {}),
                _json(list(p.data_sources or [])),
            )
            for p in properties
        ]
        with self.conn:
            for chunk in _chunked(payload, self.chunk_size):
                self.conn.executemany(
                    """
                    INSERT INTO properties (
                        id, jurisdiction, source, source_key, address, city, state, zip_code,
                        county, neighborhood, latitude, longitude, coordinate_precision,
                        property_type, beds, baths, sqft, lot_size, year_built, assessed_value,
                        estimated_value, price_per_sqft, last_sale_price, last_sale_date,
                        parcel_key, field_provenance_json, data_sources_json
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        source=excluded.source,
                        address=excluded.address,
                        city=excluded.city,
                        state=excluded.state,
                        zip_code=excluded.zip_code,
                        county=excluded.county,
                        neighborhood=excluded.neighborhood,
                        latitude=excluded.latitude,
                        longitude=excluded.longitude,
                        coordinate_precision=excluded.coordinate_precision,
                        property_type=excluded.property_type,
                        beds=excluded.beds,
                        baths=excluded.baths,
                        sqft=excluded.sqft,
                        lot_size=excluded.lot_size,
                        year_built=excluded.year_built,
                        assessed_value=excluded.assessed_value,
                        estimated_value=excluded.estimated_value,
                        price_per_sqft=excluded.price_per_sqft,
                        last_sale_price=excluded.last_sale_price,
                        last_sale_date=excluded.last_sale_date,
                        parcel_key=excluded.parcel_key,
                        field_provenance_json=excluded.field_provenance_json,
                        data_sources_json=excluded.data_sources_json
                    """,
                    chunk,
                )
        return len(payload)

    @staticmethod
    def _row_to_property(r: sqlite3.Row) -> Property:
        return Property(
            id=r["id"],
            jurisdiction=r["jurisdiction"],
            source=r["source"],
            source_key=r["source_key"],
            address=r["address"],
            city=r["city"],
            state=r["state"],
            zip_code=r["zip_code"],
            county=r["county"],
            neighborhood=r["neighborhood"],
            latitude=r["latitude"],
            longitude=r["longitude"],
            coordinate_precision=r["coordinate_precision"],
            property_type=r["property_type"],
            beds=r["beds"],
            baths=r["baths"],
            sqft=r["sqft"],
            lot_size=r["lot_size"],
            year_built=r["year_built"],
            assessed_value=r["assessed_value"],
            estimated_value=r["estimated_value"],
            price_per_sqft=r["price_per_sqft"],
            last_sale_price=r["last_sale_price"],
            last_sale_date=r["last_sale_date"],
            parcel_key=r["parcel_key"],
            field_provenance=json.loads(r["field_provenance_json"] or "{}"),
            data_sources=json.loads(r["data_sources_json"] or "[]"),
        )

    def iter_properties(self, *, jurisdiction: Optional[str] = None) -> Iterator[Property]:
        if jurisdiction:
            cur = self.conn.execute(
                "SELECT * FROM properties WHERE jurisdiction=? ORDER BY id", (jurisdiction,)
            )
        else:
            cur = self.conn.execute("SELECT * FROM properties ORDER BY id")
        for r in cur:
            yield self._row_to_property(r)

    def list_properties(self, *, jurisdiction: Optional[str] = None) -> List[Property]:
        return list(self.iter_properties(jurisdiction=jurisdiction))

    def get_property(self, property_id: str) -> Optional[Property]:
        r = self.conn.execute("SELECT * FROM properties WHERE id=?", (property_id,)).fetchone()
        return self._row_to_property(r) if r else None

    # -- signals ------------------------------------------------------------

    def upsert_signal_summaries(self, rows: Sequence[PropertySignalSummary]) -> int:
        """Full-row upsert keyed by property_id; every column is overwritten."""
        if not rows:
            return 0
        payload = [
            (
                s.property_id,
                s.parcel_key,
                int(s.active_permits),
                int(s.open_violations),
                int(s.recent_complaints),
                s.building_health_score,
                s.health_risk_level,
                s.nearest_transit_m,
                s.nearest_transit_name,
                s.nearest_transit_routes,
                1 if s.has_accessible_transit else 0,
                s.transit_score,
                s.flood_zone,
                s.flood_risk_level,
                1 if s.is_flood_high_risk else 0,
                1 if s.is_flood_moderate_risk else 0,
                int(s.parks_nearby),
                int(s.schools_nearby),
                int(s.hospitals_nearby),
                int(s.amenity_score),
                int(s.data_completeness),
                s.signal_confidence,
                s.coordinate_precision,
                _json(list(s.data_sources or [])),
                s.updated_at,
            )
            for s in rows
        ]
        with self.conn:
            for chunk in _chunked(payload, self.chunk_size):
                self.conn.executemany(
                    """
                    INSERT OR REPLACE INTO property_signal_summary (
                        property_id, parcel_key, active_permits, open_violations, recent_complaints,
                        building_health_score, health_risk_level, nearest_transit_m,
                        nearest_transit_name, nearest_transit_routes, has_accessible_transit,
                        transit_score, flood_zone, flood_risk_level, is_flood_high_risk,
                        is_flood_moderate_risk, parks_nearby, schools_nearby, hospitals_nearby,
                        amenity_score, data_completeness, signal_confidence, coordinate_precision,
                        data_sources_json, updated_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    chunk,
                )
        return len(payload)

    def get_signal_summary(self, property_id: str) -> Optional[Dict[str, Any]]:
        r = self.conn.execute(
            "SELECT * FROM property_signal_summary WHERE property_id=?", (property_id,)
        ).fetchone()
        if r is None:
            return None
        out = dict(r)
        out["data_sources"] = json.loads(out.pop("data_sources_json") or "[]")
        return out

    # -- aggregates ---------------------------------------------------------

    def replace_aggregates(self, geo_type: str, rows: Sequence[MarketAggregate]) -> int:
        """Snapshot-replace every row of one geo_type inside one transaction."""
        payload = [
            (
                a.geo_type,
                a.geo_id,
                a.geo_name,
                a.state,
                a.median_price,
                a.p25_price,
                a.p75_price,
                a.median_price_per_sqft,
                a.p25_price_per_sqft,
                a.p75_price_per_sqft,
                int(a.transaction_count),
                int(a.zip_count),
                1 if a.is_approximation else 0,
                a.turnover_rate,
                a.volatility,
                a.trend_3m,
                a.trend_6m,
                a.trend_12m,
                a.computed_at,
            )
            for a in rows
        ]
        if any(p[0] != geo_type for p in payload):
            raise ValueError(f"replace_aggregates({geo_type!r}) received rows of another geo_type")
        with self.conn:
            self.conn.execute("DELETE FROM market_aggregates WHERE geo_type=?", (geo_type,))
            for chunk in _chunked(payload, self.chunk_size):
                self.conn.executemany(
                    """
                    INSERT INTO market_aggregates (
                        geo_type, geo_id, geo_name, state, median_price, p25_price, p75_price,
                        median_price_per_sqft, p25_price_per_sqft, p75_price_per_sqft,
                        transaction_count, zip_count, is_approximation, turnover_rate, volatility,
                        trend_3m, trend_6m, trend_12m, computed_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    chunk,
                )
        return len(payload)

    def delete_aggregates(self, *, geo_type: Optional[str] = None) -> None:
        with self.conn:
            if geo_type:
                self.conn.execute("DELETE FROM market_aggregates WHERE geo_type=?", (geo_type,))
            else:
                self.conn.execute("DELETE FROM market_aggregates")

    def list_aggregates(self, *, geo_type: Optional[str] = None) -> List[MarketAggregate]:
        if geo_type:
            rows = self.conn.execute(
                "SELECT * FROM market_aggregates WHERE geo_type=? ORDER BY geo_id", (geo_type,)
            ).fetchall()
        else:
            rows = self.conn.execute(
                "SELECT * FROM market_aggregates ORDER BY geo_type, geo_id"
            ).fetchall()
        out: List[MarketAggregate] = []
        for r in rows:
            d = dict(r)
            d["is_approximation"] = bool(d["is_approximation"])
            out.append(MarketAggregate(**d))
        return out

    def get_aggregate(self, geo_type: str, geo_id: str) -> Optional[MarketAggregate]:
        for a in self.list_aggregates(geo_type=geo_type):
            if a.geo_id == geo_id:
                return a
        return None

    # -- coverage -----------------------------------------------------------

    def replace_coverage(self, rows: Sequence[CoverageStat]) -> int:
        with self.conn:
            self.conn.execute("DELETE FROM coverage_stats")
            self.conn.executemany(
                """
                INSERT INTO coverage_stats (
                    state, property_count, sqft_completeness, year_built_completeness,
                    last_sale_completeness, exact_coordinate_ratio, confidence_score, computed_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        c.state,
                        int(c.property_count),
                        float(c.sqft_completeness),
                        float(c.year_built_completeness),
                        float(c.last_sale_completeness),
                        float(c.exact_coordinate_ratio),
                        float(c.confidence_score),
                        c.computed_at,
                    )
                    for c in rows
                ],
            )
        return len(rows)

    def list_coverage(self) -> List[CoverageStat]:
        rows = self.conn.execute("SELECT * FROM coverage_stats ORDER BY state").fetchall()
        return [CoverageStat(**dict(r)) for r in rows]

    # -- data source bookkeeping -------------------------------------------

    def upsert_data_source(self, meta: DataSourceMeta) -> None:
        with self.conn:
            self.conn.execute(
                """
                INSERT INTO data_sources (
                    key, name, kind, description, refresh_cadence, last_refresh, last_attempt,
                    record_count, last_status, last_error, is_active
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    name=excluded.name,
                    kind=excluded.kind,
                    description=excluded.description,
                    refresh_cadence=excluded.refresh_cadence,
                    last_refresh=COALESCE(excluded.last_refresh, data_sources.last_refresh),
                    last_attempt=excluded.last_attempt,
                    record_count=excluded.record_count,
                    last_status=excluded.last_status,
                    last_error=excluded.last_error,
                    is_active=excluded.is_active
                """,
                (
                    meta.key,
                    meta.name,
                    meta.kind,
                    meta.description,
                    meta.refresh_cadence,
                    meta.last_refresh,
                    meta.last_attempt,
                    int(meta.record_count),
                    meta.last_status,
                    meta.last_error,
                    1 if meta.is_active else 0,
                ),
            )

    def get_data_source(self, key: str) -> Optional[DataSourceMeta]:
        r = self.conn.execute("SELECT * FROM data_sources WHERE key=?", (key,)).fetchone()
        if r is None:
            return None
        d = dict(r)
        d["is_active"] = bool(d["is_active"])
        return DataSourceMeta(**d)

    def list_data_sources(self) -> List[DataSourceMeta]:
        rows = self.conn.execute("SELECT key FROM data_sources ORDER BY key").fetchall()
        return [m for m in (self.get_data_source(r["key"]) for r in rows) if m is not None]

    # -- counts -------------------------------------------------------------

    def count_by(self, table: str, **filters: Any) -> int:
        allowed = _COUNTABLE.get(table)
        if allowed is None:
            raise ValueError(f"count_by: unknown table {table!r}")
        clauses: List[str] = []
        params: List[Any] = []
        for col, value in sorted(filters.items()):
            if col not in allowed:
                raise ValueError(f"count_by: column {col!r} not filterable on {table!r}")
            clauses.append(f"{col}=?")
            params.append(value)
        sql = f"SELECT COUNT(*) AS n FROM {table}"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        row = self.conn.execute(sql, params).fetchone()
        return int(row["n"] or 0)

    def counts(self) -> Dict[str, Any]:
        by_jurisdiction = {
            str(r["jurisdiction"]): int(r["n"])
            for r in self.conn.execute(
                "SELECT jurisdiction, COUNT(*) AS n FROM properties GROUP BY jurisdiction ORDER BY jurisdiction"
            ).fetchall()
        }
        return {
            "properties": self.count_by("properties"),
            "properties_by_jurisdiction": by_jurisdiction,
            "civic_records": self.count_by("civic_records"),
            "geo_points": self.count_by("geo_points"),
            "signals": self.count_by("property_signal_summary"),
            "aggregates": self.count_by("market_aggregates"),
        }

"""Per-property risk and opportunity signals.

Health counts come from raw civic records joined on the parcel key; transit
and amenity figures come from a coarse grid index over stored points; flood
risk is a latitude-band proxy, not a flood-map join.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence, Tuple

from market_sync.config import SyncSettings
from market_sync.geo import GridIndex, approx_distance_m
from market_sync.models import Property, PropertySignalSummary


logger = logging.getLogger("msync.signals")

HEALTH_BASE_SCORE = 100
OPEN_VIOLATION_WEIGHT = 5
RECENT_COMPLAINT_WEIGHT = 2
HEALTH_RISK_BANDS = ((80, "low"), (60, "medium"), (40, "high"))
HEALTH_RISK_FLOOR = "critical"

TRANSIT_SEARCH_CELLS = 5
TRANSIT_SCORE_BANDS = ((200, 100), (400, 90), (600, 75), (800, 60), (1000, 45))
TRANSIT_DECAY_START_M = 1000
TRANSIT_DECAY_M_PER_POINT = 50
ACCESSIBLE_TRANSIT_MAX_M = 500

AMENITY_SEARCH_CELLS = 10
AMENITY_WEIGHTS = {"park": 10, "school": 8, "hospital": 15}
AMENITY_SCORE_CAP = 100

# Zones ordered from the lowest latitude band up; anything above the last
# configured band is FLOOD_DEFAULT.
FLOOD_ZONES = (("VE", "severe"), ("AE", "high"), ("X-SHADED", "moderate"))
FLOOD_DEFAULT = ("X", "minimal")

COMPLETENESS_WEIGHTS = {"parcel": 1.0, "transit": 1.0, "flood": 1.0, "health": 1.0, "amenities": 1.0}
LINKED_WITHOUT_RECORDS_CREDIT = 0.5
CONFIDENCE_BANDS = ((80, "high"), (50, "medium"))
CONFIDENCE_FLOOR = "low"


def building_health_score(open_violations: int, recent_complaints: int) -> int:
    return max(
        0,
        HEALTH_BASE_SCORE
        - int(open_violations) * OPEN_VIOLATION_WEIGHT
        - int(recent_complaints) * RECENT_COMPLAINT_WEIGHT,
    )


def health_risk_level(score: Optional[int]) -> str:
    if score is None:
        return "unknown"
    for floor, label in HEALTH_RISK_BANDS:
        if score >= floor:
            return label
    return HEALTH_RISK_FLOOR


def transit_score(distance_m: Optional[float]) -> Optional[int]:
    if distance_m is None:
        return None
    for limit, score in TRANSIT_SCORE_BANDS:
        if distance_m < limit:
            return score
    last = TRANSIT_SCORE_BANDS[-1][1]
    return int(round(max(0.0, last - (distance_m - TRANSIT_DECAY_START_M) / TRANSIT_DECAY_M_PER_POINT)))


def amenity_score(counts: Dict[str, int]) -> int:
    total = sum(AMENITY_WEIGHTS.get(cat, 0) * int(n) for cat, n in counts.items())
    return min(AMENITY_SCORE_CAP, total)


def flood_band(latitude: Optional[float], bands: Sequence[float]) -> Tuple[Optional[str], str]:
    if latitude is None:
        return None, "unknown"
    for threshold, (zone, level) in zip(sorted(bands), FLOOD_ZONES):
        if latitude < threshold:
            return zone, level
    return FLOOD_DEFAULT


def confidence_band(completeness: int) -> str:
    for floor, label in CONFIDENCE_BANDS:
        if completeness >= floor:
            return label
    return CONFIDENCE_FLOOR


class SignalComputer:
    def __init__(self, store, *, settings: Optional[SyncSettings] = None, now: Optional[datetime] = None):
        self.store = store
        self.settings = settings or SyncSettings()
        self.now = now or datetime.now(timezone.utc)
        self._civic: Optional[Dict[str, Dict[str, int]]] = None
        self._civic_jurisdictions: Optional[set] = None
        self._transit: Optional[GridIndex] = None
        self._amenities: Optional[GridIndex] = None

    def _load(self) -> None:
        if self._civic is not None:
            return
        since = (self.now - timedelta(days=self.settings.recent_complaint_days)).replace(microsecond=0).isoformat()
        self._civic = self.store.civic_counts_by_parcel(recent_since=since)
        self._civic_jurisdictions = set(self.store.civic_jurisdictions())
        self._transit = GridIndex(self.store.list_points(kind="transit"))
        self._amenities = GridIndex(self.store.list_points(kind="amenity"))
        logger.debug(
            "signal inputs parcels=%s transit=%s amenities=%s",
            len(self._civic),
            self._transit.size,
            self._amenities.size,
        )

    def compute_signal(self, prop: Property) -> PropertySignalSummary:
        self._load()

        parts: Dict[str, float] = {}
        sources: List[str] = list(prop.data_sources or [])
        s = PropertySignalSummary(
            property_id=prop.id,
            parcel_key=prop.parcel_key,
            coordinate_precision=prop.coordinate_precision,
            updated_at=self.now.replace(microsecond=0).isoformat(),
        )

        if prop.parcel_key:
            parts["parcel"] = 1.0
            if prop.jurisdiction in (self._civic_jurisdictions or set()):
                counts = self._civic.get(prop.parcel_key)
                if counts:
                    s.active_permits = counts["active_permits"]
                    s.open_violations = counts["open_violations"]
                    s.recent_complaints = counts["recent_complaints"]
                    parts["health"] = 1.0
                else:
                    parts["health"] = LINKED_WITHOUT_RECORDS_CREDIT
                s.building_health_score = building_health_score(s.open_violations, s.recent_complaints)
                sources.append("civic records")
        s.health_risk_level = health_risk_level(s.building_health_score)

        lat, lng = prop.latitude, prop.longitude
        if lat is not None and lng is not None:
            hit = self._transit.nearest(lat, lng, TRANSIT_SEARCH_CELLS)
            if hit is not None:
                point, dist = hit
                s.nearest_transit_m = int(round(dist))
                s.nearest_transit_name = point.name
                s.nearest_transit_routes = point.routes
                s.transit_score = transit_score(dist)
                s.has_accessible_transit = any(
                    p.accessible and d < ACCESSIBLE_TRANSIT_MAX_M
                    for p, d in self._nearby_transit(lat, lng)
                )
                parts["transit"] = 1.0
                sources.append("transit points")

            counts = self._amenities.count_by_category(lat, lng, AMENITY_SEARCH_CELLS, ("park", "school", "hospital"))
            s.parks_nearby = counts["park"]
            s.schools_nearby = counts["school"]
            s.hospitals_nearby = counts["hospital"]
            s.amenity_score = amenity_score(counts)
            if sum(counts.values()) > 0:
                parts["amenities"] = 1.0
                sources.append("amenity points")

            zone, level = flood_band(lat, self.settings.flood_lat_bands)
            s.flood_zone = zone
            s.flood_risk_level = level
            s.is_flood_high_risk = level in ("severe", "high")
            s.is_flood_moderate_risk = level == "moderate"
            parts["flood"] = 1.0

        total = sum(COMPLETENESS_WEIGHTS.values())
        got = sum(COMPLETENESS_WEIGHTS[k] * v for k, v in parts.items())
        s.data_completeness = int(round(100.0 * got / total)) if total else 0
        s.signal_confidence = confidence_band(s.data_completeness)
        s.data_sources = sources
        return s

    def _nearby_transit(self, lat: float, lng: float):
        for p in self._transit.candidates(lat, lng, TRANSIT_SEARCH_CELLS):
            yield p, approx_distance_m(lat, lng, p.latitude, p.longitude)

    def compute_signals(self, properties: Sequence[Property]) -> List[PropertySignalSummary]:
        return [self.compute_signal(p) for p in properties]

    def refresh(self, *, chunk_size: Optional[int] = None) -> int:
        """Recompute and upsert summaries for every stored property."""

        size = max(1, int(chunk_size or self.settings.write_chunk_size))
        written = 0
        batch: List[Property] = []
        for prop in self.store.list_properties():
            batch.append(prop)
            if len(batch) >= size:
                written += self.store.upsert_signal_summaries(self.compute_signals(batch))
                batch = []
        if batch:
            written += self.store.upsert_signal_summaries(self.compute_signals(batch))
        logger.info("signals refreshed", extra={"records": written})
        return written

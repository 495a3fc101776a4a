from __future__ import annotations

import hashlib
from typing import Any, Dict, Optional, Tuple

from market_sync.errors import NormalizationError
from market_sync.models import GeoPoint, RawRecord
from market_sync.normalization.base import PointMapper, as_float, clean_str, register_point_mapper


def _ring_centroid(coords: Any) -> Optional[Tuple[float, float]]:
    """Vertex mean of the first ring found in nested GeoJSON coordinates."""

    node = coords
    while isinstance(node, list) and node and isinstance(node[0], list) and node[0] and isinstance(node[0][0], list):
        node = node[0]
    if not isinstance(node, list) or not node:
        return None
    pts = [(as_float(p[1]), as_float(p[0])) for p in node if isinstance(p, list) and len(p) >= 2]
    pts = [(la, ln) for la, ln in pts if la is not None and ln is not None]
    if not pts:
        return None
    return sum(p[0] for p in pts) / len(pts), sum(p[1] for p in pts) / len(pts)


def extract_lat_lng(p: Dict[str, Any]) -> Optional[Tuple[float, float]]:
    for lat_key, lng_key in (("gtfs_latitude", "gtfs_longitude"), ("latitude", "longitude")):
        lat, lng = as_float(p.get(lat_key)), as_float(p.get(lng_key))
        if lat is not None and lng is not None:
            return lat, lng
    loc = p.get("location")
    if isinstance(loc, dict):
        lat, lng = as_float(loc.get("latitude")), as_float(loc.get("longitude"))
        if lat is not None and lng is not None:
            return lat, lng
    geom = p.get("the_geom") or p.get("georeference")
    if isinstance(geom, dict):
        coords = geom.get("coordinates")
        if (geom.get("type") or "").lower() == "point" and isinstance(coords, list) and len(coords) >= 2:
            lat, lng = as_float(coords[1]), as_float(coords[0])
            if lat is not None and lng is not None:
                return lat, lng
        return _ring_centroid(coords)
    return None


def _fallback_id(name: str, lat: float, lng: float) -> str:
    return hashlib.sha1(f"{name}|{lat:.6f}|{lng:.6f}".encode("utf-8")).hexdigest()[:16]


@register_point_mapper
class SubwayStationMapper(PointMapper):
    source = "nyc_subway"

    def map(self, raw: RawRecord) -> GeoPoint:
        p = raw.payload or {}
        loc = extract_lat_lng(p)
        name = clean_str(p.get("stop_name") or p.get("station_name"))
        if loc is None:
            raise NormalizationError("missing coordinates", source=self.source, record_key=name)
        lat, lng = loc
        ext = clean_str(p.get("gtfs_stop_id") or p.get("station_id") or p.get("objectid"))
        ada = p.get("ada")
        return GeoPoint(
            source=self.source,
            external_id=ext or _fallback_id(name, lat, lng),
            kind="transit",
            category="subway",
            name=name or "Subway station",
            latitude=lat,
            longitude=lng,
            accessible=ada is True or clean_str(ada) == "1",
            routes=clean_str(p.get("daytime_routes")) or None,
        )


class AmenityMapper(PointMapper):
    category: str

    def map(self, raw: RawRecord) -> GeoPoint:
        p = raw.payload or {}
        name = clean_str(p.get("name") or p.get("signname") or p.get("facname") or p.get("location_name"))
        loc = extract_lat_lng(p)
        if loc is None:
            raise NormalizationError("missing coordinates", source=self.source, record_key=name)
        lat, lng = loc
        ext = clean_str(p.get("objectid") or p.get("gispropnum") or p.get("ats_system_code") or p.get("system_code"))
        return GeoPoint(
            source=self.source,
            external_id=ext or _fallback_id(name, lat, lng),
            kind="amenity",
            category=self.category,
            name=name or self.category.title(),
            latitude=lat,
            longitude=lng,
        )


@register_point_mapper
class ParkMapper(AmenityMapper):
    source = "nyc_parks"
    category = "park"


@register_point_mapper
class SchoolMapper(AmenityMapper):
    source = "nyc_schools"
    category = "school"


@register_point_mapper
class HospitalMapper(AmenityMapper):
    source = "nyc_hospitals"
    category = "hospital"

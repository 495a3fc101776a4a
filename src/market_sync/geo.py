from __future__ import annotations

import math
import re
import unicodedata
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from market_sync.models import GeoPoint


GRID_SCALE = 1000  # cells per degree (~111 m of latitude)
METERS_PER_DEGREE = 111000.0


def grid_cell(lat: float, lng: float) -> Tuple[int, int]:
    return math.floor(lat * GRID_SCALE), math.floor(lng * GRID_SCALE)


def approx_distance_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Equirectangular approximation; accurate enough at city scale."""

    d_lat = (lat2 - lat1) * METERS_PER_DEGREE
    d_lng = (lng2 - lng1) * METERS_PER_DEGREE * math.cos(math.radians(lat1))
    return math.sqrt(d_lat * d_lat + d_lng * d_lng)


def slugify(value: str) -> str:
    s = unicodedata.normalize("NFKD", str(value or "")).encode("ascii", "ignore").decode("ascii")
    s = re.sub(r"[^a-z0-9]+", "-", s.lower()).strip("-")
    return s or "unknown"


class GridIndex:
    """Bucketed point index for bounded neighbour searches."""

    def __init__(self, points: Iterable[GeoPoint] = ()):
        self._cells: Dict[Tuple[int, int], List[GeoPoint]] = defaultdict(list)
        self.size = 0
        for p in points:
            self.add(p)

    def add(self, point: GeoPoint) -> None:
        self._cells[grid_cell(point.latitude, point.longitude)].append(point)
        self.size += 1

    def candidates(self, lat: float, lng: float, radius_cells: int) -> List[GeoPoint]:
        r = max(0, int(radius_cells))
        cy, cx = grid_cell(lat, lng)
        out: List[GeoPoint] = []
        for y in range(cy - r, cy + r + 1):
            for x in range(cx - r, cx + r + 1):
                bucket = self._cells.get((y, x))
                if bucket:
                    out.extend(bucket)
        return out

    def nearest(self, lat: float, lng: float, radius_cells: int) -> Optional[Tuple[GeoPoint, float]]:
        best: Optional[Tuple[GeoPoint, float]] = None
        for p in self.candidates(lat, lng, radius_cells):
            d = approx_distance_m(lat, lng, p.latitude, p.longitude)
            if best is None or d < best[1] or (d == best[1] and p.external_id < best[0].external_id):
                best = (p, d)
        return best

    def count_by_category(self, lat: float, lng: float, radius_cells: int, categories: Sequence[str]) -> Dict[str, int]:
        counts = {c: 0 for c in categories}
        for p in self.candidates(lat, lng, radius_cells):
            if p.category in counts:
                counts[p.category] += 1
        return counts

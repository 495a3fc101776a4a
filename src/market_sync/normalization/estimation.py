from __future__ import annotations

import random
from typing import Dict, Optional, Protocol, Tuple

from market_sync.models import PropertyType


# field -> property type -> inclusive (low, high). "*" is the fallback row;
# a type mapped to None is never estimated for that field.
ESTIMATE_RANGES: Dict[str, Dict[str, Optional[Tuple[int, int]]]] = {
    "beds": {
        PropertyType.CONDO: (1, 2),
        PropertyType.TOWNHOME: (2, 4),
        PropertyType.MULTI_2_4: (3, 6),
        PropertyType.MULTI_5_PLUS: None,
        PropertyType.COMMERCIAL: None,
        PropertyType.VACANT_LAND: None,
        "*": (2, 4),
    },
    "baths": {
        PropertyType.CONDO: (1, 2),
        PropertyType.MULTI_5_PLUS: None,
        PropertyType.COMMERCIAL: None,
        PropertyType.VACANT_LAND: None,
        "*": (1, 3),
    },
    "sqft": {
        PropertyType.CONDO: (600, 1500),
        PropertyType.TOWNHOME: (1000, 2200),
        PropertyType.MULTI_2_4: (1800, 3500),
        PropertyType.MULTI_5_PLUS: (3000, 8000),
        PropertyType.VACANT_LAND: None,
        "*": (800, 2500),
    },
    "year_built": {
        PropertyType.VACANT_LAND: None,
        "*": (1940, 2020),
    },
}


def estimate_range(field: str, property_type: str) -> Optional[Tuple[int, int]]:
    table = ESTIMATE_RANGES.get(field)
    if table is None:
        return None
    if property_type in table:
        return table[property_type]
    return table.get("*")


class EstimationPolicy(Protocol):
    """Synthesizes values for fields a source does not provide.

    ``key`` identifies the record (jurisdiction-qualified source key) so a
    policy can be deterministic per record.
    """

    def estimate(self, field: str, property_type: str, key: str) -> Optional[int]: ...

    def jitter(self, key: str, tolerance: float) -> Tuple[float, float]: ...


class RandomEstimationPolicy:
    """Uniform draw within the documented range.

    With a seed, every (record, field) pair gets its own derived generator, so
    the same input yields the same values regardless of batch order.
    """

    def __init__(self, seed: Optional[int] = None):
        self.seed = seed

    def _rng(self, key: str, field: str) -> random.Random:
        if self.seed is None:
            return random.Random()
        return random.Random(f"{self.seed}:{key}:{field}")

    def estimate(self, field: str, property_type: str, key: str) -> Optional[int]:
        bounds = estimate_range(field, property_type)
        if bounds is None:
            return None
        lo, hi = bounds
        return self._rng(key, field).randint(lo, hi)

    def jitter(self, key: str, tolerance: float) -> Tuple[float, float]:
        tol = abs(float(tolerance))
        if tol == 0:
            return 0.0, 0.0
        rng = self._rng(key, "jitter")
        return rng.uniform(-tol, tol), rng.uniform(-tol, tol)


class MidpointEstimationPolicy:
    """Deterministic: range midpoint, no jitter."""

    def estimate(self, field: str, property_type: str, key: str) -> Optional[int]:
        bounds = estimate_range(field, property_type)
        if bounds is None:
            return None
        lo, hi = bounds
        return (lo + hi) // 2

    def jitter(self, key: str, tolerance: float) -> Tuple[float, float]:
        return 0.0, 0.0

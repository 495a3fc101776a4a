from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from market_sync.adapters.base import AMENITY, CIVIC, PROPERTY, TRANSIT
from market_sync.config import SyncSettings


SIGNALS = "signals"
AGGREGATES = "aggregates"


@dataclass(frozen=True)
class DomainSpec:
    """One independently refreshable slice of upstream data.

    ``min_records`` overrides the per-kind threshold from settings.
    ``depends_on`` names derived tables; an empty one makes the domain stale.
    """

    key: str
    kind: str
    adapters: Tuple[str, ...]
    jurisdiction: str = ""
    min_records: Optional[int] = None
    depends_on: Tuple[str, ...] = ()

    def threshold(self, settings: SyncSettings) -> int:
        if self.min_records is not None:
            return int(self.min_records)
        if self.kind == PROPERTY:
            return settings.min_property_records
        if self.kind == CIVIC:
            return settings.min_civic_records
        return settings.min_point_records


BUILTIN_DOMAINS: Tuple[DomainSpec, ...] = (
    DomainSpec("nyc_properties", PROPERTY, ("nyc_pluto",), "nyc", depends_on=(SIGNALS, AGGREGATES)),
    DomainSpec("ct_properties", PROPERTY, ("ct_cama",), "ct", depends_on=(SIGNALS, AGGREGATES)),
    DomainSpec("nyc_permits", CIVIC, ("nyc_dob_permits",), "nyc", depends_on=(SIGNALS,)),
    DomainSpec("nyc_complaints", CIVIC, ("nyc_311",), "nyc", depends_on=(SIGNALS,)),
    DomainSpec("nyc_violations", CIVIC, ("nyc_hpd_violations",), "nyc", depends_on=(SIGNALS,)),
    DomainSpec("nyc_transit", TRANSIT, ("nyc_subway",), "nyc"),
    DomainSpec("nyc_amenities", AMENITY, ("nyc_parks", "nyc_schools", "nyc_hospitals"), "nyc"),
)


def builtin_plan(enabled: Iterable[str] = ()) -> List[DomainSpec]:
    """Builtin domains in execution order, optionally filtered by key."""

    wanted = {str(k).strip().lower() for k in enabled if str(k).strip()}
    if not wanted:
        return list(BUILTIN_DOMAINS)
    unknown = wanted - {d.key for d in BUILTIN_DOMAINS}
    if unknown:
        raise KeyError(f"Unknown domain(s): {', '.join(sorted(unknown))}")
    return [d for d in BUILTIN_DOMAINS if d.key in wanted]


def list_domains() -> List[str]:
    return [d.key for d in BUILTIN_DOMAINS]

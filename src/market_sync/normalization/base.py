from __future__ import annotations

import dataclasses
import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Tuple

from market_sync.config import SyncSettings
from market_sync.errors import NormalizationError
from market_sync.models import (
    APPROXIMATE,
    ESTIMATED,
    EXACT,
    SOURCE,
    GeoPoint,
    Property,
    RawCivicRecord,
    RawRecord,
    parse_iso,
)
from market_sync.normalization.estimation import EstimationPolicy, RandomEstimationPolicy


logger = logging.getLogger("msync.normalize")


# -- value helpers ----------------------------------------------------------


def clean_str(value: Any) -> str:
    if value is None:
        return ""
    return re.sub(r"\s+", " ", str(value)).strip()


def as_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    s = str(value).strip().replace(",", "").replace("$", "")
    if not s:
        return None
    try:
        return float(s)
    except ValueError:
        return None


def as_int(value: Any) -> Optional[int]:
    f = as_float(value)
    if f is None:
        return None
    return int(round(f))


def positive_int(value: Any) -> Optional[int]:
    n = as_int(value)
    return n if n is not None and n > 0 else None


def zip5(value: Any) -> Optional[str]:
    s = clean_str(value)[:5]
    return s if len(s) == 5 and s.isdigit() else None


def to_iso(value: Any) -> Optional[str]:
    s = clean_str(value)
    if not s:
        return None
    try:
        return parse_iso(s).replace(microsecond=0).isoformat()
    except ValueError:
        return None


def to_date(value: Any) -> Optional[str]:
    iso = to_iso(value)
    return iso[:10] if iso else None


def normalize_bbl(value: Any) -> Optional[str]:
    """Borough-block-lot as a 10-digit string; PLUTO serves it as a decimal."""

    s = clean_str(value)
    if not s:
        return None
    s = s.split(".", 1)[0]
    s = re.sub(r"\D", "", s)
    return s if len(s) == 10 and s[0] in "12345" else None


def bbl_from_parts(borough: Any, block: Any, lot: Any) -> Optional[str]:
    boro = clean_str(borough)
    codes = {"MANHATTAN": "1", "BRONX": "2", "BROOKLYN": "3", "QUEENS": "4", "STATEN ISLAND": "5"}
    boro = codes.get(boro.upper(), boro)
    blk = as_int(block)
    lt = as_int(lot)
    if boro not in {"1", "2", "3", "4", "5"} or blk is None or lt is None:
        return None
    return f"{boro}{blk:05d}{lt:04d}"


# -- mapper registries ------------------------------------------------------


class PropertyMapper(ABC):
    """Maps one jurisdiction's assessor rows to canonical properties.

    ``map`` returns None for rows that are filtered out on purpose (below the
    minimum assessed value) and raises NormalizationError for rows that
    cannot be mapped.
    """

    jurisdiction: str
    state: str
    source_label: str
    equalization_ratio: float = 1.0
    min_assessed_value: float = 0.0

    @abstractmethod
    def map(self, payload: Dict[str, Any], norm: "Normalizer") -> Optional[Property]:
        raise NotImplementedError


class CivicMapper(ABC):
    source: str
    kind: str

    @abstractmethod
    def map(self, raw: RawRecord) -> RawCivicRecord:
        raise NotImplementedError


class PointMapper(ABC):
    source: str

    @abstractmethod
    def map(self, raw: RawRecord) -> GeoPoint:
        raise NotImplementedError


_PROPERTY_MAPPERS: Dict[str, PropertyMapper] = {}
_CIVIC_MAPPERS: Dict[str, CivicMapper] = {}
_POINT_MAPPERS: Dict[str, PointMapper] = {}


def register_property_mapper(cls):
    _PROPERTY_MAPPERS[cls.jurisdiction] = cls()
    return cls


def register_civic_mapper(cls):
    _CIVIC_MAPPERS[cls.source] = cls()
    return cls


def register_point_mapper(cls):
    _POINT_MAPPERS[cls.source] = cls()
    return cls


def list_jurisdictions() -> List[str]:
    return sorted(_PROPERTY_MAPPERS.keys())


# -- normalizer -------------------------------------------------------------


class Normalizer:
    """Turns adapter output into canonical rows.

    Each ``normalize*`` call returns ``(rows, errors)``; a bad record is
    reported in ``errors`` and never aborts the batch. ``last_skipped`` holds
    the number of rows the previous call filtered out deliberately.
    """

    def __init__(
        self,
        *,
        estimation: Optional[EstimationPolicy] = None,
        settings: Optional[SyncSettings] = None,
    ):
        self.settings = settings or SyncSettings()
        self.estimation = estimation or RandomEstimationPolicy(self.settings.estimation_seed)
        self.last_skipped = 0

    # helpers for mappers

    def fill(
        self,
        value: Optional[Any],
        field: str,
        property_type: str,
        key: str,
        provenance: Dict[str, str],
    ) -> Optional[Any]:
        """Source value when present, else an estimate flagged as such."""

        if value is not None:
            provenance[field] = SOURCE
            return value
        est = self.estimation.estimate(field, property_type, key)
        if est is not None:
            provenance[field] = ESTIMATED
        return est

    def locate(
        self,
        lat: Optional[float],
        lng: Optional[float],
        centroid: Tuple[float, float],
        key: str,
        provenance: Dict[str, str],
    ) -> Tuple[float, float, str]:
        if lat is not None and lng is not None and lat != 0 and lng != 0:
            provenance["latitude"] = provenance["longitude"] = SOURCE
            return float(lat), float(lng), EXACT
        dlat, dlng = self.estimation.jitter(key, self.settings.jitter_degrees)
        provenance["latitude"] = provenance["longitude"] = ESTIMATED
        return round(centroid[0] + dlat, 6), round(centroid[1] + dlng, 6), APPROXIMATE

    # entry points

    def normalize(self, raw: Sequence[RawRecord], jurisdiction: str) -> Tuple[List[Property], List[NormalizationError]]:
        mapper = _PROPERTY_MAPPERS.get((jurisdiction or "").strip().lower())
        if mapper is None:
            raise KeyError(f"Unknown jurisdiction: {jurisdiction}")

        out: Dict[str, Property] = {}
        errors: List[NormalizationError] = []
        skipped = 0
        for r in raw:
            try:
                prop = mapper.map(r.payload or {}, self)
            except NormalizationError as e:
                errors.append(e)
                logger.debug("skip record: %s", e)
                continue
            if prop is None:
                skipped += 1
                continue
            out[prop.id] = prop
        self.last_skipped = skipped
        return list(out.values()), errors

    def normalize_civic(
        self, raw: Sequence[RawRecord], source: str, *, as_of: Optional[str] = None
    ) -> Tuple[List[RawCivicRecord], List[NormalizationError]]:
        """``as_of`` replaces each record's ``fetched_at`` as the reference time for open/expired state."""
        mapper = _CIVIC_MAPPERS.get(source)
        if mapper is None:
            raise KeyError(f"No civic mapper for source: {source}")
        out: Dict[str, RawCivicRecord] = {}
        errors: List[NormalizationError] = []
        for r in raw:
            if as_of:
                r = dataclasses.replace(r, fetched_at=as_of)
            try:
                rec = mapper.map(r)
            except NormalizationError as e:
                errors.append(e)
                logger.debug("skip record: %s", e)
                continue
            out.setdefault(rec.external_id, rec)
        self.last_skipped = 0
        return list(out.values()), errors

    def normalize_points(self, raw: Sequence[RawRecord], source: str) -> Tuple[List[GeoPoint], List[NormalizationError]]:
        mapper = _POINT_MAPPERS.get(source)
        if mapper is None:
            raise KeyError(f"No point mapper for source: {source}")
        out: Dict[str, GeoPoint] = {}
        errors: List[NormalizationError] = []
        for r in raw:
            try:
                p = mapper.map(r)
            except NormalizationError as e:
                errors.append(e)
                logger.debug("skip record: %s", e)
                continue
            out.setdefault(p.external_id, p)
        self.last_skipped = 0
        return list(out.values()), errors

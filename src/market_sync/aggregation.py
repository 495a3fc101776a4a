"""Market statistics over the geography hierarchy.

ZIP level is computed from canonical properties. City, county and
neighborhood levels are rolled up from the ZIP results: their median, p25
and p75 are count-weighted averages of the constituent ZIP values, which is
an approximation of the true pooled percentile. Rolled-up rows carry
``is_approximation=True`` so readers can tell.

Roll-up units are keyed by state and slugged name. Names that are only
unique within a town (CT CAMA neighborhood codes) are qualified with the town
by the mapper before they get here.
"""

from __future__ import annotations

import logging
import math
from collections import Counter, defaultdict
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from market_sync.config import SyncSettings
from market_sync.errors import AggregationError
from market_sync.geo import slugify
from market_sync.models import GeoType, MarketAggregate, Property, utc_now_iso
from market_sync.report import AggregateRefresh


logger = logging.getLogger("msync.aggregates")

CONTINUOUS = "continuous"
NEAREST_RANK = "nearest_rank"


def percentile(values: Sequence[float], q: float, method: str = CONTINUOUS) -> Optional[float]:
    """p-th quantile of ``values`` (q in [0, 1]).

    ``continuous`` interpolates linearly between closest ranks, matching SQL
    PERCENTILE_CONT: position = q * (n - 1). ``nearest_rank`` returns the
    smallest value with at least q of the sample at or below it.
    """

    if not values:
        return None
    if not 0.0 <= q <= 1.0:
        raise ValueError(f"quantile out of range: {q}")
    v = sorted(float(x) for x in values)
    n = len(v)
    if method == NEAREST_RANK:
        rank = max(1, math.ceil(q * n))
        return v[rank - 1]
    if method != CONTINUOUS:
        raise ValueError(f"unknown percentile method: {method}")
    pos = q * (n - 1)
    lo = math.floor(pos)
    hi = math.ceil(pos)
    if lo == hi:
        return v[lo]
    return v[lo] + (v[hi] - v[lo]) * (pos - lo)


def _most_common(values: Iterable[Optional[str]]) -> Optional[str]:
    counts = Counter(v for v in values if v)
    if not counts:
        return None
    return sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))[0][0]


def _weighted(pairs: Iterable[Tuple[Optional[float], int]]) -> Optional[float]:
    num = 0.0
    den = 0
    for value, weight in pairs:
        if value is None or weight <= 0:
            continue
        num += float(value) * weight
        den += weight
    return num / den if den else None


def _round_price(v: Optional[float]) -> Optional[int]:
    return int(round(v)) if v is not None else None


def _round_ppsf(v: Optional[float]) -> Optional[float]:
    return round(v, 2) if v is not None else None


@dataclass
class ZipStat:
    """A materialized ZIP group plus the parent units it rolls up into."""

    row: MarketAggregate
    ppsf_count: int
    city: Optional[str]
    county: Optional[str]
    neighborhood: Optional[str]


class AggregationEngine:
    def __init__(self, store, *, settings: Optional[SyncSettings] = None, now_iso: Optional[str] = None):
        self.store = store
        self.settings = settings or SyncSettings()
        self.now_iso = now_iso

    def _stats(self, prices: List[float], ppsf: List[float]) -> Dict[str, Optional[float]]:
        m = self.settings.percentile_method
        return {
            "p25_price": percentile(prices, 0.25, m),
            "median_price": percentile(prices, 0.5, m),
            "p75_price": percentile(prices, 0.75, m),
            "p25_price_per_sqft": percentile(ppsf, 0.25, m),
            "median_price_per_sqft": percentile(ppsf, 0.5, m),
            "p75_price_per_sqft": percentile(ppsf, 0.75, m),
        }

    def compute_zip_level(self, properties: Iterable[Property], computed_at: str) -> List[ZipStat]:
        groups: Dict[str, List[Property]] = defaultdict(list)
        for p in properties:
            if p.zip_code and p.estimated_value is not None and p.estimated_value > 0:
                groups[p.zip_code].append(p)

        out: List[ZipStat] = []
        for zip_code in sorted(groups):
            members = groups[zip_code]
            if len(members) < self.settings.min_zip_sample:
                continue
            prices = [float(p.estimated_value) for p in members]
            ppsf = [float(p.price_per_sqft) for p in members if p.price_per_sqft and p.price_per_sqft > 0]
            st = self._stats(prices, ppsf)
            row = MarketAggregate(
                geo_type=GeoType.ZIP,
                geo_id=zip_code,
                geo_name=zip_code,
                state=_most_common(p.state for p in members) or "",
                median_price=_round_price(st["median_price"]),
                p25_price=_round_price(st["p25_price"]),
                p75_price=_round_price(st["p75_price"]),
                median_price_per_sqft=_round_ppsf(st["median_price_per_sqft"]),
                p25_price_per_sqft=_round_ppsf(st["p25_price_per_sqft"]),
                p75_price_per_sqft=_round_ppsf(st["p75_price_per_sqft"]),
                transaction_count=len(members),
                zip_count=1,
                is_approximation=False,
                computed_at=computed_at,
            )
            out.append(
                ZipStat(
                    row=row,
                    ppsf_count=len(ppsf),
                    city=_most_common(p.city for p in members),
                    county=_most_common(p.county for p in members),
                    neighborhood=_most_common(p.neighborhood for p in members),
                )
            )
        return out

    def roll_up(self, geo_type: str, zips: Sequence[ZipStat], computed_at: str) -> List[MarketAggregate]:
        if geo_type not in GeoType.ROLLUPS:
            raise ValueError(f"not a roll-up level: {geo_type}")

        # keyed by the stored slug so spelling variants of one name share a row
        groups: Dict[Tuple[str, str], List[ZipStat]] = defaultdict(list)
        names: Dict[Tuple[str, str], Counter] = defaultdict(Counter)
        for z in zips:
            name = getattr(z, geo_type)
            if name:
                key = (z.row.state, slugify(name))
                groups[key].append(z)
                names[key][name] += z.row.transaction_count

        min_total = self.settings.min_neighborhood_sample if geo_type == GeoType.NEIGHBORHOOD else 1
        rows: List[MarketAggregate] = []
        for state, slug in sorted(groups):
            members = groups[(state, slug)]
            name = sorted(names[(state, slug)].items(), key=lambda kv: (-kv[1], kv[0]))[0][0]
            total = sum(z.row.transaction_count for z in members)
            if total < min_total:
                continue

            def by_count(attr: str) -> Optional[float]:
                return _weighted((getattr(z.row, attr), z.row.transaction_count) for z in members)

            def by_ppsf_count(attr: str) -> Optional[float]:
                return _weighted((getattr(z.row, attr), z.ppsf_count) for z in members)

            rows.append(
                MarketAggregate(
                    geo_type=geo_type,
                    geo_id=f"{slug}-{state.lower()}" if state else slug,
                    geo_name=name,
                    state=state,
                    median_price=_round_price(by_count("median_price")),
                    p25_price=_round_price(by_count("p25_price")),
                    p75_price=_round_price(by_count("p75_price")),
                    median_price_per_sqft=_round_ppsf(by_ppsf_count("median_price_per_sqft")),
                    p25_price_per_sqft=_round_ppsf(by_ppsf_count("p25_price_per_sqft")),
                    p75_price_per_sqft=_round_ppsf(by_ppsf_count("p75_price_per_sqft")),
                    transaction_count=total,
                    zip_count=len(members),
                    is_approximation=True,
                    computed_at=computed_at,
                )
            )
        return rows

    def refresh_aggregates(self) -> AggregateRefresh:
        """Snapshot-replace every geography level.

        A failure at one level leaves that level as it was and is recorded in
        the result; the other levels are still replaced.
        """

        computed_at = self.now_iso or utc_now_iso()
        result = AggregateRefresh()

        try:
            zips = self.compute_zip_level(self.store.list_properties(), computed_at)
        except Exception as e:
            err = AggregationError(GeoType.ZIP, str(e))
            logger.warning("aggregation failed: %s", err, extra={"geo_type": GeoType.ZIP})
            for level in GeoType.ALL:
                result.errors[level] = str(err)
            return result

        plan: List[Tuple[str, Optional[List[MarketAggregate]]]] = [(GeoType.ZIP, [z.row for z in zips])]
        plan.extend((level, None) for level in GeoType.ROLLUPS)

        for level, rows in plan:
            try:
                if rows is None:
                    rows = self.roll_up(level, zips, computed_at)
                written = self.store.replace_aggregates(level, rows)
            except Exception as e:
                err = AggregationError(level, str(e))
                result.errors[level] = str(err)
                logger.warning("aggregation level failed: %s", err, extra={"geo_type": level})
                continue
            result.levels[level] = written
            result.count += written

        logger.info(
            "aggregates refreshed",
            extra={"records": result.count, "levels": dict(result.levels), "errors": len(result.errors)},
        )
        return result

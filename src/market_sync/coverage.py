from __future__ import annotations

import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Optional

from market_sync.models import SOURCE, CoverageStat, Property, utc_now_iso


logger = logging.getLogger("msync.aggregates")


def _share(n: int, total: int) -> float:
    return round(n / total, 4) if total else 0.0


def compute_coverage(properties: Iterable[Property], *, computed_at: Optional[str] = None) -> List[CoverageStat]:
    """Per-state share of source-verified fields and exact coordinates."""

    at = computed_at or utc_now_iso()
    by_state: Dict[str, List[Property]] = defaultdict(list)
    for p in properties:
        by_state[p.state].append(p)

    out: List[CoverageStat] = []
    for state in sorted(by_state):
        rows = by_state[state]
        n = len(rows)
        sqft = _share(sum(1 for p in rows if p.field_provenance.get("sqft") == SOURCE), n)
        year = _share(sum(1 for p in rows if p.field_provenance.get("year_built") == SOURCE), n)
        sale = _share(sum(1 for p in rows if p.last_sale_price is not None), n)
        exact = _share(sum(1 for p in rows if p.has_exact_coordinates), n)
        out.append(
            CoverageStat(
                state=state,
                property_count=n,
                sqft_completeness=sqft,
                year_built_completeness=year,
                last_sale_completeness=sale,
                exact_coordinate_ratio=exact,
                confidence_score=round(100.0 * (sqft + year + sale + exact) / 4.0, 1),
                computed_at=at,
            )
        )
    return out


def refresh_coverage(store, *, computed_at: Optional[str] = None) -> int:
    stats = compute_coverage(store.list_properties(), computed_at=computed_at)
    written = store.replace_coverage(stats)
    logger.info("coverage refreshed", extra={"records": written})
    return written

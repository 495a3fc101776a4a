from __future__ import annotations

import logging
from typing import Iterable, Optional

from market_sync.adapters.base import PROPERTY, register_adapter
from market_sync.adapters.socrata import SocrataAdapter, soql_literal
from market_sync.models import FetchResult, TimeRange


logger = logging.getLogger("msync.adapters")

CT_OPENDATA_BASE = "https://data.ct.gov/resource"

CT_TOWNS = (
    "Stamford", "Bridgeport", "New Haven", "Hartford", "Waterbury",
    "Norwalk", "Danbury", "New Britain", "Greenwich", "Fairfield",
    "West Hartford", "Hamden", "Milford", "Meriden", "Bristol",
    "Manchester", "West Haven", "Stratford", "Middletown", "Shelton",
    "Trumbull", "Darien", "Westport", "New Canaan", "Ridgefield",
)


@register_adapter
class CtCamaAdapter(SocrataAdapter):
    """CT statewide CAMA and parcel data, queried one town at a time.

    Each town is capped at ``per_town_limit`` rows ordered by assessed total,
    so the whole fetch stays bounded. The first failing town ends the fetch
    with the rows collected so far.
    """

    adapter_key = "ct_cama"
    kind = PROPERTY
    jurisdiction = "ct"
    name = "CT CAMA"
    description = "Connecticut computer-assisted mass appraisal records (CT Grand List)"
    refresh_cadence = "annual"
    url = f"{CT_OPENDATA_BASE}/rny9-6ak2.json"
    order = "assessed_total DESC"

    def __init__(self, *, towns: Optional[Iterable[str]] = None, per_town_limit: int = 500, **kwargs):
        super().__init__(**kwargs)
        self.towns = tuple(towns) if towns is not None else CT_TOWNS
        self.per_town_limit = max(1, int(per_town_limit))

    def fetch(self, window: TimeRange, limit: int) -> FetchResult:
        out = FetchResult(source=self.adapter_key)
        remaining = max(0, int(limit))
        for town in self.towns:
            if remaining <= 0:
                break
            part = self.fetch_pages(
                url=self.url,
                window=None,
                limit=min(self.per_town_limit, remaining),
                extra_where=f"upper(property_city)={soql_literal(town.upper())}",
            )
            out.records.extend(part.records)
            out.pages += part.pages
            remaining -= len(part.records)
            logger.debug("ct town=%s rows=%s", town, len(part.records))
            if not part.ok:
                out.error = f"{town}: {part.error}"
                break
        return out

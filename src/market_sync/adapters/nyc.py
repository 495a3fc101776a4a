from __future__ import annotations

from market_sync.adapters.base import CIVIC, PROPERTY, register_adapter
from market_sync.adapters.socrata import SocrataAdapter


NYC_OPENDATA_BASE = "https://data.cityofnewyork.us/resource"


@register_adapter
class NycPlutoAdapter(SocrataAdapter):
    """NYC Primary Land Use Tax Lot Output, one row per tax lot."""

    adapter_key = "nyc_pluto"
    kind = PROPERTY
    jurisdiction = "nyc"
    name = "NYC PLUTO"
    description = "Tax lot characteristics and assessed values (NYC Dept. of City Planning)"
    refresh_cadence = "quarterly"
    url = f"{NYC_OPENDATA_BASE}/64uk-42ks.json"
    order = "bbl"
    select = (
        "bbl,address,zipcode,borough,landuse,bldgclass,unitsres,resarea,bldgarea,"
        "lotarea,yearbuilt,assesstot,latitude,longitude,cd"
    )


@register_adapter
class NycDobPermitsAdapter(SocrataAdapter):
    adapter_key = "nyc_dob_permits"
    kind = CIVIC
    jurisdiction = "nyc"
    name = "NYC DOB Permits"
    description = "DOB NOW approved permits, filtered by issue date"
    url = f"{NYC_OPENDATA_BASE}/rbx6-tga4.json"
    date_field = "issued_date"
    window_days = 365


@register_adapter
class Nyc311Adapter(SocrataAdapter):
    adapter_key = "nyc_311"
    kind = CIVIC
    jurisdiction = "nyc"
    name = "NYC 311 Service Requests"
    description = "311 complaints, filtered by creation date"
    url = f"{NYC_OPENDATA_BASE}/erm2-nwe9.json"
    date_field = "created_date"
    window_days = 182


@register_adapter
class NycHpdViolationsAdapter(SocrataAdapter):
    adapter_key = "nyc_hpd_violations"
    kind = CIVIC
    jurisdiction = "nyc"
    name = "NYC HPD Violations"
    description = "Housing maintenance code violations, filtered by inspection date"
    url = f"{NYC_OPENDATA_BASE}/wvxf-dwi5.json"
    date_field = "inspectiondate"
    window_days = 182

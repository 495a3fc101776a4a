from __future__ import annotations

from market_sync.adapters.base import AMENITY, TRANSIT, register_adapter
from market_sync.adapters.nyc import NYC_OPENDATA_BASE
from market_sync.adapters.socrata import SocrataAdapter


@register_adapter
class NycSubwayAdapter(SocrataAdapter):
    adapter_key = "nyc_subway"
    kind = TRANSIT
    jurisdiction = "nyc"
    name = "MTA Subway Stations"
    description = "Subway station locations, daytime routes and ADA status"
    refresh_cadence = "monthly"
    url = "https://data.ny.gov/resource/39hk-dx4f.json"
    order = "gtfs_stop_id"


@register_adapter
class NycParksAdapter(SocrataAdapter):
    adapter_key = "nyc_parks"
    kind = AMENITY
    jurisdiction = "nyc"
    name = "NYC Parks Properties"
    description = "Parks properties; locations derived from the property geometry"
    refresh_cadence = "monthly"
    url = f"{NYC_OPENDATA_BASE}/enfh-gkve.json"


@register_adapter
class NycSchoolsAdapter(SocrataAdapter):
    adapter_key = "nyc_schools"
    kind = AMENITY
    jurisdiction = "nyc"
    name = "NYC School Locations"
    refresh_cadence = "annual"
    url = f"{NYC_OPENDATA_BASE}/wg9x-4ke6.json"


@register_adapter
class NycHospitalsAdapter(SocrataAdapter):
    adapter_key = "nyc_hospitals"
    kind = AMENITY
    jurisdiction = "nyc"
    name = "NYC Health + Hospitals Facilities"
    refresh_cadence = "annual"
    url = f"{NYC_OPENDATA_BASE}/833y-fsy8.json"

from __future__ import annotations

from typing import Any, Dict, Optional

from market_sync.errors import NormalizationError
from market_sync.models import DERIVED, SOURCE, Property, PropertyType, property_id_for
from market_sync.normalization import lookups
from market_sync.normalization.base import (
    Normalizer,
    PropertyMapper,
    as_float,
    clean_str,
    normalize_bbl,
    positive_int,
    register_property_mapper,
    zip5,
)


def pluto_property_type(bldgclass: str, landuse: str, units: Optional[int]) -> str:
    ptype = lookups.PLUTO_BUILDING_CLASS_MAP.get(bldgclass[:2].upper()) if bldgclass else None
    if ptype is None:
        code = landuse.zfill(2) if landuse.isdigit() else landuse
        ptype = lookups.PLUTO_LAND_USE_MAP.get(code, PropertyType.SFH)
        # land use alone cannot tell 2-4 unit buildings apart
        if units is not None:
            if ptype == PropertyType.SFH and units > 2:
                ptype = PropertyType.MULTI_2_4 if units <= 4 else PropertyType.MULTI_5_PLUS
            elif ptype == PropertyType.MULTI_5_PLUS and units <= 4:
                ptype = PropertyType.MULTI_2_4
    return ptype


@register_property_mapper
class NycPlutoMapper(PropertyMapper):
    jurisdiction = "nyc"
    state = "NY"
    source_label = "PLUTO"
    equalization_ratio = lookups.NYC_EQUALIZATION_RATIO
    min_assessed_value = 1.0

    def map(self, payload: Dict[str, Any], norm: Normalizer) -> Optional[Property]:
        bbl = normalize_bbl(payload.get("bbl"))
        if bbl is None:
            raise NormalizationError("missing or malformed bbl", source="nyc_pluto", record_key=clean_str(payload.get("bbl")))

        assessed = as_float(payload.get("assesstot"))
        if assessed is None:
            raise NormalizationError("unparseable assesstot", source="nyc_pluto", record_key=bbl)
        if assessed < self.min_assessed_value:
            return None

        address = clean_str(payload.get("address"))
        if not address:
            raise NormalizationError("missing address", source="nyc_pluto", record_key=bbl)
        zip_code = zip5(payload.get("zipcode"))
        if zip_code is None:
            raise NormalizationError("missing zipcode", source="nyc_pluto", record_key=bbl)

        borough = lookups.NYC_BOROUGHS.get(clean_str(payload.get("borough")).upper())
        if borough is None:
            borough = lookups.NYC_BOROUGHS[bbl[0]]

        prov: Dict[str, str] = {
            "address": SOURCE,
            "zip_code": SOURCE,
            "city": DERIVED,
            "assessed_value": SOURCE,
        }

        units = positive_int(payload.get("unitsres"))
        ptype = pluto_property_type(
            clean_str(payload.get("bldgclass")),
            clean_str(payload.get("landuse")),
            units,
        )
        prov["property_type"] = DERIVED

        sqft = norm.fill(
            positive_int(payload.get("resarea")) or positive_int(payload.get("bldgarea")),
            "sqft",
            ptype,
            bbl,
            prov,
        )
        beds = norm.fill(None, "beds", ptype, bbl, prov)
        baths = norm.fill(None, "baths", ptype, bbl, prov)
        year_built = norm.fill(positive_int(payload.get("yearbuilt")), "year_built", ptype, bbl, prov)
        lot_size = positive_int(payload.get("lotarea"))
        if lot_size is not None:
            prov["lot_size"] = SOURCE

        estimated_value = int(round(min(assessed * self.equalization_ratio, lookups.NYC_MAX_ESTIMATED_VALUE)))
        prov["estimated_value"] = DERIVED
        price_per_sqft = round(estimated_value / sqft, 2) if sqft else None
        if price_per_sqft is not None:
            prov["price_per_sqft"] = DERIVED

        lat, lng, precision = norm.locate(
            as_float(payload.get("latitude")),
            as_float(payload.get("longitude")),
            lookups.NYC_BOROUGH_CENTROIDS[borough],
            bbl,
            prov,
        )

        cd = clean_str(payload.get("cd"))
        return Property(
            id=property_id_for(self.jurisdiction, bbl),
            jurisdiction=self.jurisdiction,
            source="nyc_pluto",
            source_key=bbl,
            address=address,
            city=borough,
            state=self.state,
            zip_code=zip_code,
            county=lookups.NYC_BOROUGH_COUNTY[borough],
            neighborhood=f"CD {cd}" if cd else borough,
            latitude=lat,
            longitude=lng,
            coordinate_precision=precision,
            property_type=ptype,
            beds=beds,
            baths=float(baths) if baths is not None else None,
            sqft=sqft,
            lot_size=lot_size,
            year_built=year_built,
            assessed_value=assessed,
            estimated_value=estimated_value,
            price_per_sqft=price_per_sqft,
            parcel_key=bbl,
            field_provenance=prov,
            data_sources=[self.source_label],
        )

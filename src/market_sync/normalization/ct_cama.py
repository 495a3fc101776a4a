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
    positive_int,
    register_property_mapper,
    to_date,
    zip5,
)



def _neighborhood(town: str, code: Any) -> str:
    # CAMA neighborhood codes repeat across towns
    code = clean_str(code)
    return f"{town} {code}" if code else town


@register_property_mapper
class CtCamaMapper(PropertyMapper):
    jurisdiction = "ct"
    state = "CT"
    source_label = "CT CAMA"
    equalization_ratio = lookups.CT_EQUALIZATION_RATIO
    min_assessed_value = lookups.CT_MIN_ASSESSED_VALUE

    def map(self, payload: Dict[str, Any], norm: Normalizer) -> Optional[Property]:
        town = clean_str(payload.get("property_city")).title()
        parcel = clean_str(payload.get("pid") or payload.get("link") or payload.get("unique_id"))
        address = clean_str(payload.get("location"))
        record_key = f"{town.upper()}:{parcel or address}" if town else ""

        if not town or not (parcel or address):
            raise NormalizationError("missing town or parcel identifier", source="ct_cama", record_key=record_key)

        assessed = as_float(payload.get("assessed_total"))
        if assessed is None:
            raise NormalizationError("unparseable assessed_total", source="ct_cama", record_key=record_key)
        if assessed < self.min_assessed_value:
            return None
        if not address:
            raise NormalizationError("missing location", source="ct_cama", record_key=record_key)

        prov: Dict[str, str] = {"address": SOURCE, "city": SOURCE, "assessed_value": SOURCE}

        state_use = clean_str(payload.get("state_use"))
        ptype = lookups.CT_STATE_USE_MAP.get(state_use, PropertyType.SFH)
        occupancy = positive_int(payload.get("occupancy"))
        if occupancy is not None and occupancy > 4:
            ptype = PropertyType.MULTI_5_PLUS
        prov["property_type"] = DERIVED

        beds = norm.fill(positive_int(payload.get("number_of_bedroom")), "beds", ptype, record_key, prov)
        full_baths = norm.fill(positive_int(payload.get("number_of_baths")), "baths", ptype, record_key, prov)
        half_baths = positive_int(payload.get("number_of_half_baths")) or 0
        baths = float(full_baths) + half_baths * 0.5 if full_baths is not None else None
        sqft = norm.fill(positive_int(payload.get("living_area")), "sqft", ptype, record_key, prov)
        year_built = norm.fill(
            positive_int(payload.get("ayb")) or positive_int(payload.get("eyb")),
            "year_built",
            ptype,
            record_key,
            prov,
        )

        acres = as_float(payload.get("land_acres"))
        lot_size = int(round(acres * 43560)) if acres and acres > 0 else None
        if lot_size is not None:
            prov["lot_size"] = DERIVED

        estimated_value = int(round(assessed * self.equalization_ratio))
        prov["estimated_value"] = DERIVED
        price_per_sqft = round(estimated_value / sqft, 2) if sqft else None
        if price_per_sqft is not None:
            prov["price_per_sqft"] = DERIVED

        last_sale_price = positive_int(payload.get("sale_price"))
        last_sale_date = to_date(payload.get("sale_date"))
        if last_sale_price is None:
            last_sale_price = positive_int(payload.get("prior_sale_price"))
            last_sale_date = to_date(payload.get("prior_sale_date"))
        if last_sale_price is not None:
            prov["last_sale_price"] = SOURCE

        zip_code = zip5(payload.get("property_zip"))
        if zip_code is None:
            mailing = zip5(payload.get("mailing_zip"))
            # owner mailing ZIPs outside CT say nothing about the parcel
            zip_code = mailing if mailing and mailing.startswith("06") else None
        if zip_code is None:
            zip_code = lookups.CT_TOWN_ZIP.get(town, lookups.CT_DEFAULT_ZIP)
            prov["zip_code"] = DERIVED
        else:
            prov["zip_code"] = SOURCE

        centroid = lookups.CT_TOWN_CENTROIDS.get(town, lookups.CT_DEFAULT_CENTROID)
        lat, lng, precision = norm.locate(None, None, centroid, record_key, prov)

        return Property(
            id=property_id_for(self.jurisdiction, record_key),
            jurisdiction=self.jurisdiction,
            source="ct_cama",
            source_key=record_key,
            address=address,
            city=town,
            state=self.state,
            zip_code=zip_code,
            county=lookups.CT_TOWN_COUNTY.get(town),
            neighborhood=_neighborhood(town, payload.get("neighborhood")),
            latitude=lat,
            longitude=lng,
            coordinate_precision=precision,
            property_type=ptype,
            beds=beds,
            baths=baths,
            sqft=sqft,
            lot_size=lot_size,
            year_built=year_built,
            assessed_value=assessed,
            estimated_value=estimated_value,
            price_per_sqft=price_per_sqft,
            last_sale_price=last_sale_price,
            last_sale_date=last_sale_date,
            parcel_key=None,
            field_provenance=prov,
            data_sources=[self.source_label],
        )

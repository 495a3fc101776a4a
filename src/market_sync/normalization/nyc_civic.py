from __future__ import annotations

from market_sync.errors import NormalizationError
from market_sync.models import RawCivicRecord, RawRecord
from market_sync.normalization.base import (
    CivicMapper,
    as_float,
    bbl_from_parts,
    clean_str,
    normalize_bbl,
    register_civic_mapper,
    to_iso,
    zip5,
)


CLOSED_PERMIT_STATUSES = frozenset(
    {"signed off", "signed-off", "expired", "revoked", "cancelled", "canceled", "closed", "withdrawn"}
)


def _street(*parts) -> str:
    return " ".join(p for p in (clean_str(x) for x in parts) if p)


@register_civic_mapper
class DobPermitMapper(CivicMapper):
    source = "nyc_dob_permits"
    kind = "permit"

    def map(self, raw: RawRecord) -> RawCivicRecord:
        p = raw.payload or {}
        job = clean_str(p.get("job_filing_number"))
        if not job:
            raise NormalizationError("missing job_filing_number", source=self.source)
        permit = clean_str(p.get("work_permit"))
        external_id = permit or f"{job}:{clean_str(p.get('work_type')) or 'NA'}"

        status = clean_str(p.get("permit_status")) or None
        expires = to_iso(p.get("expired_date"))
        is_open = (status or "").lower() not in CLOSED_PERMIT_STATUSES
        if is_open and expires and raw.fetched_at and expires < raw.fetched_at:
            is_open = False

        return RawCivicRecord(
            source=self.source,
            external_id=external_id,
            kind=self.kind,
            jurisdiction="nyc",
            parcel_key=normalize_bbl(p.get("bbl")) or bbl_from_parts(p.get("borough"), p.get("block"), p.get("lot")),
            address=_street(p.get("house_no"), p.get("street_name")) or None,
            zip_code=zip5(p.get("zip_code")),
            status=status,
            is_open=is_open,
            opened_at=to_iso(p.get("issued_date")),
            closed_at=expires,
            category=clean_str(p.get("work_type")) or None,
            raw=p,
        )


@register_civic_mapper
class Nyc311Mapper(CivicMapper):
    source = "nyc_311"
    kind = "complaint"

    def map(self, raw: RawRecord) -> RawCivicRecord:
        p = raw.payload or {}
        key = clean_str(p.get("unique_key"))
        if not key:
            raise NormalizationError("missing unique_key", source=self.source)
        status = clean_str(p.get("status")) or None
        return RawCivicRecord(
            source=self.source,
            external_id=key,
            kind=self.kind,
            jurisdiction="nyc",
            parcel_key=normalize_bbl(p.get("bbl")),
            address=clean_str(p.get("incident_address")) or None,
            zip_code=zip5(p.get("incident_zip")),
            status=status,
            is_open=(status or "").lower() != "closed",
            opened_at=to_iso(p.get("created_date")),
            closed_at=to_iso(p.get("closed_date")),
            category=clean_str(p.get("complaint_type")) or None,
            latitude=as_float(p.get("latitude")),
            longitude=as_float(p.get("longitude")),
            raw=p,
        )


@register_civic_mapper
class HpdViolationMapper(CivicMapper):
    source = "nyc_hpd_violations"
    kind = "violation"

    def map(self, raw: RawRecord) -> RawCivicRecord:
        p = raw.payload or {}
        key = clean_str(p.get("violationid"))
        if not key:
            raise NormalizationError("missing violationid", source=self.source)
        violation_status = clean_str(p.get("violationstatus"))
        current = clean_str(p.get("currentstatus"))
        return RawCivicRecord(
            source=self.source,
            external_id=key,
            kind=self.kind,
            jurisdiction="nyc",
            parcel_key=normalize_bbl(p.get("bbl")) or bbl_from_parts(p.get("boroid"), p.get("block"), p.get("lot")),
            address=_street(p.get("housenumber"), p.get("streetname")) or None,
            zip_code=zip5(p.get("zip")),
            status=current or violation_status or None,
            is_open=violation_status == "Open" or current == "VIOLATION OPEN",
            opened_at=to_iso(p.get("inspectiondate")),
            closed_at=to_iso(p.get("currentstatusdate")) if violation_status == "Close" else None,
            category=clean_str(p.get("class")) or None,
            latitude=as_float(p.get("latitude")),
            longitude=as_float(p.get("longitude")),
            raw=p,
        )

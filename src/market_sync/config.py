from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Tuple


_PREFIX = "MSYNC_"


def _env(name: str) -> Optional[str]:
    raw = os.getenv(_PREFIX + name)
    if raw is None:
        return None
    raw = str(raw).strip()
    return raw or None


def _env_bool(name: str, default: bool) -> bool:
    raw = _env(name)
    if raw is None:
        return default
    v = raw.lower()
    if v in {"1", "true", "t", "yes", "y", "on"}:
        return True
    if v in {"0", "false", "f", "no", "n", "off"}:
        return False
    return default


def _env_int(name: str, default: int, *, minimum: int = 0) -> int:
    raw = _env(name)
    if raw is None:
        return default
    try:
        return max(minimum, int(float(raw)))
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = _env(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_float_list(name: str, default: Tuple[float, ...]) -> Tuple[float, ...]:
    raw = _env(name)
    if raw is None:
        return default
    try:
        values = tuple(float(p) for p in raw.split(",") if p.strip())
    except ValueError:
        return default
    return values or default


def _env_list(name: str) -> Tuple[str, ...]:
    raw = _env(name)
    if raw is None:
        return ()
    return tuple(p.strip().lower() for p in raw.split(",") if p.strip())


@dataclass(frozen=True)
class SyncSettings:
    """Runtime settings for the sync pipeline.

    Everything is read from ``MSYNC_*`` environment variables. Invalid values
    fall back to the default rather than failing startup.

    ``percentile_method``, ``jitter_degrees`` and ``flood_lat_bands`` are
    heuristic placeholders. They need confirmation from someone who owns the
    market data before the numbers are used for anything but screening.
    """

    db_path: str = "./market.sqlite"

    # staleness thresholds
    min_property_records: int = 500
    min_civic_records: int = 1
    min_point_records: int = 1

    # fetch bounds
    record_cap: int = 20000
    page_size: int = 1000
    civic_window_days: int = 365
    http_timeout_s: float = 30.0
    max_workers: int = 4

    # writes
    write_chunk_size: int = 500
    replace_raw_on_refresh: bool = True

    # normalization
    jitter_degrees: float = 0.015
    estimation_seed: Optional[int] = None

    # signals
    recent_complaint_days: int = 365
    flood_lat_bands: Tuple[float, ...] = (40.65, 40.68, 40.72)

    # aggregates
    percentile_method: str = "continuous"
    min_zip_sample: int = 3
    min_neighborhood_sample: int = 5

    enabled_domains: Tuple[str, ...] = ()
    sync_on_startup: bool = False
    admin_token: Optional[str] = None

    @classmethod
    def from_env(cls) -> "SyncSettings":
        seed_raw = _env("ESTIMATION_SEED")
        try:
            seed = int(seed_raw) if seed_raw is not None else None
        except ValueError:
            seed = None

        method = (_env("PERCENTILE_METHOD") or "continuous").lower()
        if method not in {"continuous", "nearest_rank"}:
            method = "continuous"

        return cls(
            db_path=_env("DB_PATH") or "./market.sqlite",
            min_property_records=_env_int("MIN_PROPERTY_RECORDS", 500),
            min_civic_records=_env_int("MIN_CIVIC_RECORDS", 1),
            min_point_records=_env_int("MIN_POINT_RECORDS", 1),
            record_cap=_env_int("RECORD_CAP", 20000, minimum=1),
            page_size=_env_int("PAGE_SIZE", 1000, minimum=1),
            civic_window_days=_env_int("CIVIC_WINDOW_DAYS", 365, minimum=1),
            http_timeout_s=_env_float("HTTP_TIMEOUT_S", 30.0),
            max_workers=_env_int("MAX_WORKERS", 4, minimum=1),
            write_chunk_size=_env_int("WRITE_CHUNK_SIZE", 500, minimum=1),
            replace_raw_on_refresh=_env_bool("REPLACE_RAW_ON_REFRESH", True),
            jitter_degrees=abs(_env_float("JITTER_DEGREES", 0.015)),
            estimation_seed=seed,
            recent_complaint_days=_env_int("RECENT_COMPLAINT_DAYS", 365, minimum=1),
            flood_lat_bands=tuple(sorted(_env_float_list("FLOOD_LAT_BANDS", (40.65, 40.68, 40.72))))[:3],
            percentile_method=method,
            min_zip_sample=_env_int("MIN_ZIP_SAMPLE", 3, minimum=1),
            min_neighborhood_sample=_env_int("MIN_NEIGHBORHOOD_SAMPLE", 5, minimum=1),
            enabled_domains=_env_list("ENABLED_DOMAINS"),
            sync_on_startup=_env_bool("SYNC_ON_STARTUP", False),
            admin_token=_env("ADMIN_TOKEN"),
        )


@lru_cache(maxsize=1)
def get_settings() -> SyncSettings:
    return SyncSettings.from_env()


def reset_settings_cache() -> None:
    """Test helper to force env re-read."""

    get_settings.cache_clear()

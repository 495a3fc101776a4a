from __future__ import annotations

from typing import Any, List, Optional


class MarketSyncError(Exception):
    """Base class for pipeline errors."""


class StoreUnavailableError(MarketSyncError):
    """The persistence layer cannot be reached. Fatal for a sync run."""


class SourceFetchError(MarketSyncError):
    """An adapter could not complete its fetch.

    ``partial`` holds whatever records were received before the failure.
    """

    def __init__(self, message: str, *, source: str = "", partial: Optional[List[Any]] = None):
        super().__init__(message)
        self.source = source
        self.partial = list(partial or [])


class NormalizationError(MarketSyncError):
    """One raw record could not be mapped to the canonical shape."""

    def __init__(self, reason: str, *, source: str = "", record_key: str = ""):
        super().__init__(f"{source}:{record_key or '?'}: {reason}")
        self.reason = reason
        self.source = source
        self.record_key = record_key


class AggregationError(MarketSyncError):
    """A single geography level could not be rebuilt."""

    def __init__(self, geo_type: str, message: str):
        super().__init__(f"{geo_type}: {message}")
        self.geo_type = geo_type

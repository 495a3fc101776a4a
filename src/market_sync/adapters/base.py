from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from market_sync.models import FetchResult, TimeRange


# Domain kinds an adapter can feed.
PROPERTY = "property"
CIVIC = "civic"
TRANSIT = "transit"
AMENITY = "amenity"


class SourceAdapter(ABC):
    """Fetches raw records from one public dataset.

    ``fetch`` never raises for HTTP or transport failures: it returns whatever
    was received together with an error string, and the caller decides what a
    failed fetch means for its domain.
    """

    adapter_key: str
    kind: str = PROPERTY
    # Normalizer mapping used for this adapter's records.
    jurisdiction: str = ""
    name: str = ""
    description: str = ""
    refresh_cadence: str = "daily"
    # Overrides the configured fetch window when set.
    window_days: Optional[int] = None

    @abstractmethod
    def fetch(self, window: TimeRange, limit: int) -> FetchResult:
        raise NotImplementedError

    def close(self) -> None:
        return None

    def describe(self) -> Dict[str, Any]:
        return {
            "key": self.adapter_key,
            "kind": self.kind,
            "jurisdiction": self.jurisdiction,
            "name": self.name or self.adapter_key,
            "description": self.description,
            "refresh_cadence": self.refresh_cadence,
        }


_ADAPTERS: Dict[str, type[SourceAdapter]] = {}


def register_adapter(cls: type[SourceAdapter]) -> type[SourceAdapter]:
    key = (getattr(cls, "adapter_key", "") or "").strip().lower()
    if not key:
        raise ValueError("adapter_key is required")
    _ADAPTERS[key] = cls
    return cls


def get_adapter(adapter_key: str, **kwargs: Any) -> SourceAdapter:
    key = (adapter_key or "").strip().lower()
    cls = _ADAPTERS.get(key)
    if cls is None:
        raise KeyError(f"Unknown adapter: {adapter_key}")
    return cls(**kwargs)


def list_adapters() -> List[str]:
    return sorted(_ADAPTERS.keys())

from market_sync.normalization.base import Normalizer, list_jurisdictions
from market_sync.normalization.estimation import (
    ESTIMATE_RANGES,
    EstimationPolicy,
    MidpointEstimationPolicy,
    RandomEstimationPolicy,
)

# Jurisdiction and source mappers register themselves on import.
from market_sync.normalization import ct_cama, nyc_civic, nyc_pluto, points  # noqa: F401,E402

__all__ = [
    "ESTIMATE_RANGES",
    "EstimationPolicy",
    "MidpointEstimationPolicy",
    "Normalizer",
    "RandomEstimationPolicy",
    "list_jurisdictions",
]

from ._base import AdjustmentResult
from .stratification import Stratification, StratificationResult
from .matching import FullMatching, FullMatchingResult
from .weighting import InverseProbabilityWeighting, WeightingResult

__all__ = [
    "AdjustmentResult",
    "Stratification", "StratificationResult",
    "FullMatching", "FullMatchingResult",
    "InverseProbabilityWeighting", "WeightingResult",
]

import logging

from .simulate import simulate_population, true_propensity, TRUE_EFFECT
from .design import design_matrix, interact, PROPENSITY_TERMS, OUTCOME_TERMS
from .propensity import PropensityModel, PropensityResult
from .adjustments import (
    Stratification, StratificationResult,
    FullMatching, FullMatchingResult,
    InverseProbabilityWeighting, WeightingResult,
)
from .balance import balance_table, BalanceTable
from .effects import EffectEstimator, EffectResult, Estimate
from .config import AnalysisConfig
from .pipeline import run_analysis, AnalysisResult
from ._exceptions import InputError, ConvergenceError, DegenerateStratumError, InfiniteWeightError

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "simulate_population", "true_propensity", "TRUE_EFFECT",
    "design_matrix", "interact", "PROPENSITY_TERMS", "OUTCOME_TERMS",
    "PropensityModel", "PropensityResult",
    "Stratification", "StratificationResult",
    "FullMatching", "FullMatchingResult",
    "InverseProbabilityWeighting", "WeightingResult",
    "balance_table", "BalanceTable",
    "EffectEstimator", "EffectResult", "Estimate",
    "AnalysisConfig",
    "run_analysis", "AnalysisResult",
    "InputError", "ConvergenceError", "DegenerateStratumError", "InfiniteWeightError",
]

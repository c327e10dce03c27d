from __future__ import annotations

from dataclasses import dataclass, field, replace as _replace

from ._exceptions import InputError
from .adjustments.matching import DISTANCES as MATCHING_DISTANCES
from .adjustments.stratification import DEFAULT_STRATA
from .balance import DEFAULT_THRESHOLD
from .design import OUTCOME_TERMS, PROPENSITY_TERMS, Term
from .effects import DEFAULT_ALPHA

DEFAULT_N    = 2_000
DEFAULT_SEED = 2_891_286


@dataclass(frozen=True)
class AnalysisConfig:
    """
    Every tunable of one analysis run.

    A config is immutable; use ``replace()`` to derive a variant::

        config = AnalysisConfig().replace(n=5_000, caliper=0.05)
    """

    n: int = DEFAULT_N
    """Population size."""

    seed: int = DEFAULT_SEED
    """Seed for the single random generator threaded through the simulation."""

    n_strata: int = DEFAULT_STRATA
    """Number of propensity-score strata."""

    balance_threshold: float = DEFAULT_THRESHOLD
    """Absolute standardized mean difference above which a covariate is flagged."""

    matching_distance: str = "propensity"
    """``"propensity"`` or ``"mahalanobis"``."""

    caliper: float | None = None
    """Maximum admissible within-set distance for full matching; ``None`` disables it."""

    alpha: float = DEFAULT_ALPHA
    """Confidence intervals are ``1 - alpha``."""

    propensity_terms: tuple[Term, ...] = field(default_factory=lambda: tuple(PROPENSITY_TERMS))
    outcome_terms: tuple[Term, ...] = field(default_factory=lambda: tuple(OUTCOME_TERMS))
    confounders: tuple[str, ...] = ("w1", "w2")

    def __post_init__(self) -> None:
        if isinstance(self.n, bool) or not isinstance(self.n, int) or self.n < 1:
            raise InputError(f"n must be a positive integer, got {self.n!r}.")
        if self.n_strata < 2:
            raise InputError(f"n_strata must be at least 2, got {self.n_strata}.")
        if not 0 < self.balance_threshold:
            raise InputError("balance_threshold must be positive.")
        if self.matching_distance not in MATCHING_DISTANCES:
            raise InputError(
                f"matching_distance must be one of {MATCHING_DISTANCES}, "
                f"got {self.matching_distance!r}."
            )
        if self.caliper is not None and self.caliper <= 0:
            raise InputError("caliper must be positive when given.")
        if not 0 < self.alpha < 1:
            raise InputError(f"alpha must lie in (0, 1), got {self.alpha}.")
        if not self.confounders:
            raise InputError("At least one confounder is required.")

    def replace(self, **overrides) -> AnalysisConfig:
        """Return a copy with ``overrides`` applied (validated again)."""
        return _replace(self, **overrides)

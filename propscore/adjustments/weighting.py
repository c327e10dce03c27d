from __future__ import annotations

import logging

import numpy as np
import pandas as pd

from .._exceptions import InfiniteWeightError
from ._base import WEIGHT, AdjustmentResult, require_scores

logger = logging.getLogger(__name__)


class WeightingResult(AdjustmentResult):
    """Population annotated with inverse-probability weights. No clustering."""

    method = "inverse probability weighting"

    def __init__(self, data: pd.DataFrame, stabilized: bool) -> None:
        super().__init__(data, cluster=None)
        self._stabilized = stabilized

    @property
    def stabilized(self) -> bool:
        return self._stabilized

    @property
    def effective_sample_size(self) -> float:
        """Kish effective sample size, ``(sum w)^2 / sum w^2``."""
        w = self.weights
        return float(w.sum() ** 2 / np.sum(w ** 2))

    def _detail_lines(self) -> list[str]:
        return [
            f"  Stabilized           : {'yes' if self._stabilized else 'no'}",
            f"  Effective N          : {self.effective_sample_size:>10.1f}",
        ]


class InverseProbabilityWeighting:
    """
    ATE weights ``1 / ps`` for exposed and ``1 / (1 - ps)`` for unexposed
    records.

    With ``stabilize=True`` each weight is multiplied by the marginal
    probability of the record's own exposure group, which keeps the weights
    summing to roughly the population size per group.
    """

    def __init__(self, stabilize: bool = False) -> None:
        self._stabilize = stabilize

    def fit(self, data: pd.DataFrame) -> WeightingResult:
        """
        Assign ``weight``.

        Raises
        ------
        ``InfiniteWeightError``
            If any propensity score is exactly 0 or 1.
        """
        exposure, scores = require_scores(data, stage="weighting")
        boundary = (scores <= 0.0) | (scores >= 1.0)
        if boundary.any():
            raise InfiniteWeightError(
                f"\n{int(boundary.sum())} record(s) have a propensity score of "
                f"exactly 0 or 1, giving an unbounded inverse-probability weight.\n\n"
                f"Consider:\n"
                f"  - Revisiting the propensity model specification\n"
                f"  - Trimming records outside the region of common support\n"
                f"  - Stratification or matching instead of weighting"
            )

        exposed = exposure == 1
        weights = np.where(exposed, 1.0 / scores, 1.0 / (1.0 - scores))
        if self._stabilize:
            p = exposed.mean()
            weights = weights * np.where(exposed, p, 1.0 - p)

        annotated = data.assign(**{WEIGHT: weights})
        logger.info(
            "Inverse-probability weights for %d records: range [%.3f, %.3f]",
            len(data), weights.min(), weights.max(),
        )
        return WeightingResult(annotated, self._stabilize)

from __future__ import annotations

import numpy as np
import pandas as pd

from .._exceptions import InputError
from ..balance import DEFAULT_THRESHOLD, BalanceTable, balance_table
from ..design import check_columns
from ..propensity import EXPOSURE, SCORE, check_exposure

WEIGHT   = "weight"
STRATUM  = "stratum"
SUBCLASS = "subclass"


def require_scores(data: pd.DataFrame, stage: str) -> tuple[np.ndarray, np.ndarray]:
    """Return ``(exposure, propensity_score)`` arrays after validating both columns."""
    exposure = check_exposure(data, EXPOSURE)
    if SCORE not in data.columns:
        raise InputError(
            f"{stage}: column '{SCORE}' not found. "
            f"Annotate the data with PropensityResult.annotate() first."
        )
    check_columns(data, [SCORE], stage=stage)
    return exposure, data[SCORE].to_numpy(dtype=float)


def subclass_weights(exposure: np.ndarray, subclass: np.ndarray) -> np.ndarray:
    """
    ATE weights for units grouped into subclasses (strata or matched sets).

    A unit in subclass ``s`` gets ``n_s / n_s,g`` where ``g`` is its exposure
    group, so both groups carry the full subclass size and contribute equally
    within it. Units with a missing subclass get weight 0.
    """
    weights = np.zeros(len(exposure))
    assigned = ~pd.isna(subclass)
    frame = pd.DataFrame({
        "subclass": subclass[assigned],
        "exposure": exposure[assigned],
        "unit":     1,
    })
    size = frame.groupby("subclass")["unit"].transform("count")
    group_size = frame.groupby(["subclass", "exposure"])["unit"].transform("count")
    weights[assigned] = (size / group_size).to_numpy(dtype=float)
    return weights


class AdjustmentResult:
    """
    An annotated population plus what the effect estimator needs from the
    adjustment: which column to cluster standard errors on, if any.
    """

    method = "adjustment"

    def __init__(self, data: pd.DataFrame, cluster: str | None) -> None:
        self._data = data
        self._cluster = cluster

    @property
    def data(self) -> pd.DataFrame:
        """The annotated population (a copy)."""
        return self._data.copy()

    @property
    def weights(self) -> np.ndarray:
        return self._data[WEIGHT].to_numpy(dtype=float)

    @property
    def cluster(self) -> str | None:
        """Column identifying clusters for robust variance, or ``None`` for HC3."""
        return self._cluster

    def balance(
        self,
        covariates: list[str],
        threshold: float = DEFAULT_THRESHOLD,
    ) -> BalanceTable:
        """Standardized mean differences before and after this adjustment."""
        return balance_table(
            self._data, covariates, weights=WEIGHT, threshold=threshold, method=self.method,
        )

    def _detail_lines(self) -> list[str]:
        return []

    def summary(self) -> str:
        w = self.weights
        exposed = self._data[EXPOSURE].to_numpy() == 1
        lines = [
            "",
            f"Adjustment: {self.method}",
            "─" * 50,
            *self._detail_lines(),
            f"  Weight range         : [{w.min():.4f}, {w.max():.4f}]",
            f"  Sum of weights       : exposed {w[exposed].sum():.1f}, unexposed {w[~exposed].sum():.1f}",
            "",
        ]
        return "\n".join(lines)

    def __repr__(self) -> str:
        return self.summary()

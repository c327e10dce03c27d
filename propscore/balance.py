from __future__ import annotations

import logging

import numpy as np
import pandas as pd

from ._exceptions import InputError
from .design import check_columns
from .propensity import EXPOSURE, check_exposure

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.1


def _pooled_sd(x_exposed: np.ndarray, x_unexposed: np.ndarray) -> float:
    var_e = np.var(x_exposed, ddof=1) if len(x_exposed) > 1 else 0.0
    var_u = np.var(x_unexposed, ddof=1) if len(x_unexposed) > 1 else 0.0
    sd = float(np.sqrt((var_e + var_u) / 2.0))
    # A constant covariate cannot be imbalanced; fall back to the raw difference.
    return sd if sd > 0 else 1.0


def standardized_difference(
    x: np.ndarray,
    exposure: np.ndarray,
    weights: np.ndarray | None = None,
    scale: float | None = None,
) -> float:
    """
    Weighted mean difference (exposed minus unexposed) divided by ``scale``.

    ``scale`` defaults to the unweighted pooled standard deviation
    ``sqrt((s²_exposed + s²_unexposed) / 2)``.
    """
    exposed = exposure == 1
    if scale is None:
        scale = _pooled_sd(x[exposed], x[~exposed])
    if weights is None:
        weights = np.ones_like(x, dtype=float)
    w_e, w_u = weights[exposed], weights[~exposed]
    if w_e.sum() <= 0 or w_u.sum() <= 0:
        raise InputError("Both exposure groups need positive total weight to assess balance.")
    diff = np.average(x[exposed], weights=w_e) - np.average(x[~exposed], weights=w_u)
    return float(diff / scale)


class BalanceTable:
    """
    Standardized mean differences per covariate, before and after adjustment.

    A covariate is ``balanced`` when the absolute adjusted difference does not
    exceed ``threshold``. Both columns share the unadjusted pooled standard
    deviation as denominator, so they are directly comparable.
    """

    def __init__(self, table: pd.DataFrame, threshold: float, method: str) -> None:
        self._table = table
        self._threshold = threshold
        self._method = method

    @property
    def table(self) -> pd.DataFrame:
        """One row per covariate: ``smd_before``, ``smd_after``, ``balanced``."""
        return self._table.copy()

    @property
    def threshold(self) -> float:
        return self._threshold

    @property
    def passed(self) -> bool:
        """``True`` if every covariate is balanced after adjustment."""
        return bool(self._table["balanced"].all())

    @property
    def imbalanced(self) -> list[str]:
        """Covariates whose adjusted difference exceeds the threshold."""
        return list(self._table.index[~self._table["balanced"]])

    def summary(self) -> str:
        lines = [
            "",
            f"Covariate balance: {self._method}",
            "─" * 50,
            f"  {'covariate':<12}{'SMD before':>12}{'SMD after':>12}",
        ]
        for cov, row in self._table.iterrows():
            flag = "" if row["balanced"] else "  *"
            lines.append(f"  {cov:<12}{row['smd_before']:>12.4f}{row['smd_after']:>12.4f}{flag}")
        lines.append("")
        if self.passed:
            lines.append(f"  All covariates within |SMD| <= {self._threshold}.")
        else:
            lines.append(
                f"  {len(self.imbalanced)} covariate(s) exceed |SMD| > {self._threshold} (marked *)."
            )
        lines.append("")
        return "\n".join(lines)

    def __repr__(self) -> str:
        return self.summary()


def balance_table(
    data: pd.DataFrame,
    covariates: list[str],
    weights: str | np.ndarray | None = None,
    threshold: float = DEFAULT_THRESHOLD,
    method: str = "unadjusted",
) -> BalanceTable:
    """
    Compute the standardized mean difference of each covariate between
    exposure groups, unadjusted and weighted by ``weights``.

    Parameters
    ----------
    data : pd.DataFrame
        Must contain ``exposure`` and every covariate.
    covariates : list of str
        Columns to assess.
    weights : str, array or None
        Adjustment weights, given as a column name or an array aligned with
        ``data``. ``None`` compares the raw groups twice.
    threshold : float
        Largest acceptable absolute adjusted difference.
    """
    if threshold <= 0:
        raise InputError("Balance threshold must be positive.")
    exposure = check_exposure(data, EXPOSURE)
    check_columns(data, list(covariates), stage="balance")

    if weights is None:
        w = np.ones(len(data))
    elif isinstance(weights, str):
        check_columns(data, [weights], stage="balance")
        w = data[weights].to_numpy(dtype=float)
    else:
        w = np.asarray(weights, dtype=float)
        if w.shape != (len(data),) or not np.all(np.isfinite(w)):
            raise InputError("Balance weights must be a finite array aligned with the data.")
    if np.any(w < 0):
        raise InputError("Balance weights must be non-negative.")

    rows = {}
    exposed = exposure == 1
    for cov in covariates:
        x = data[cov].to_numpy(dtype=float)
        scale = _pooled_sd(x[exposed], x[~exposed])
        before = standardized_difference(x, exposure, scale=scale)
        after = standardized_difference(x, exposure, weights=w, scale=scale)
        rows[cov] = {
            "smd_before": before,
            "smd_after":  after,
            "balanced":   abs(after) <= threshold,
        }
    table = pd.DataFrame.from_dict(rows, orient="index")
    table["balanced"] = table["balanced"].astype(bool)
    table.index.name = "covariate"

    result = BalanceTable(table, threshold, method)
    if not result.passed:
        logger.warning("%s: imbalance remains in %s", method, result.imbalanced)
    return result

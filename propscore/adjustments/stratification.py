from __future__ import annotations

import logging

import numpy as np
import pandas as pd

from .._exceptions import DegenerateStratumError, InputError
from ..propensity import EXPOSURE
from ._base import STRATUM, SUBCLASS, WEIGHT, AdjustmentResult, require_scores, subclass_weights

logger = logging.getLogger(__name__)

DEFAULT_STRATA = 5


class StratificationResult(AdjustmentResult):
    """
    Population partitioned into propensity-score strata.

    ``stratum`` runs from 1 to ``n_strata`` in increasing order of
    propensity score. ``weight`` holds ATE stratification weights and
    ``subclass`` repeats the stratum for clustered variance.
    """

    method = "stratification"

    def __init__(self, data: pd.DataFrame, boundaries: np.ndarray) -> None:
        super().__init__(data, cluster=SUBCLASS)
        self._boundaries = boundaries

    @property
    def n_strata(self) -> int:
        return len(self._boundaries) - 1

    @property
    def boundaries(self) -> np.ndarray:
        """The ``n_strata + 1`` quantile cut points, lowest first."""
        return self._boundaries.copy()

    @property
    def counts(self) -> pd.DataFrame:
        """Records per stratum and exposure group."""
        return pd.crosstab(self._data[STRATUM], self._data[EXPOSURE])

    def _detail_lines(self) -> list[str]:
        lines = [f"  {'stratum':<10}{'range':<22}{'unexposed':>10}{'exposed':>10}"]
        counts = self.counts
        for s in counts.index:
            lo, hi = self._boundaries[s - 1], self._boundaries[s]
            bracket = "[" if s == 1 else "("
            lines.append(
                f"  {s:<10}{bracket}{lo:.4f}, {hi:.4f}]{'':<5}"
                f"{counts.loc[s].get(0, 0):>10d}{counts.loc[s].get(1, 0):>10d}"
            )
        return lines


class Stratification:
    """
    Subclassification on quantiles of the propensity score.

    Cut points are the ``k + 1`` quantiles of ``propensity_score``. Strata
    are right-closed, so a score equal to a cut point falls in the lower
    stratum; the lowest edge is inclusive, so the minimum score falls in
    stratum 1 and every record is covered.

    Example::

        scored = PropensityModel().fit(data).annotate(data)
        strat  = Stratification(n_strata=5).fit(scored)
        print(strat.balance(["w1", "w2"]).summary())
    """

    def __init__(self, n_strata: int = DEFAULT_STRATA) -> None:
        if isinstance(n_strata, bool) or not isinstance(n_strata, (int, np.integer)) or n_strata < 2:
            raise InputError(f"n_strata must be an integer >= 2, got {n_strata!r}.")
        self._n_strata = int(n_strata)

    def fit(self, data: pd.DataFrame) -> StratificationResult:
        """
        Assign ``stratum``, ``subclass`` and ``weight``.

        Raises
        ------
        ``InputError``
            If scores are missing, or ties make two quantile cut points equal.
        ``DegenerateStratumError``
            If any stratum holds only exposed or only unexposed records.
        """
        exposure, scores = require_scores(data, stage="stratification")
        if len(scores) < self._n_strata:
            raise InputError(
                f"Cannot form {self._n_strata} strata from {len(scores)} records."
            )

        try:
            codes, boundaries = pd.qcut(
                scores, q=self._n_strata, labels=False, retbins=True,
            )
        except ValueError as exc:
            raise InputError(
                f"Propensity-score quantiles are not distinct enough for "
                f"{self._n_strata} strata (tied scores)."
            ) from exc
        strata = np.asarray(codes, dtype=int) + 1

        counts = pd.crosstab(strata, exposure)
        for s in range(1, self._n_strata + 1):
            n_exposed = int(counts.loc[s].get(1.0, 0)) if s in counts.index else 0
            n_unexposed = int(counts.loc[s].get(0.0, 0)) if s in counts.index else 0
            if n_exposed == 0 or n_unexposed == 0:
                raise DegenerateStratumError(
                    f"\nStratum {s} (propensity in "
                    f"[{boundaries[s - 1]:.4f}, {boundaries[s]:.4f}]) has "
                    f"{n_exposed} exposed and {n_unexposed} unexposed records.\n\n"
                    f"No treatment contrast can be estimated within it. Consider:\n"
                    f"  - Fewer strata\n"
                    f"  - Trimming records outside the region of common support"
                )

        annotated = data.assign(**{
            STRATUM:  strata,
            SUBCLASS: strata,
            WEIGHT:   subclass_weights(exposure, strata),
        })
        logger.info(
            "Stratified %d records into %d strata at cut points %s",
            len(data), self._n_strata, np.round(boundaries, 4).tolist(),
        )
        logger.debug("Stratum counts:\n%s", counts)
        return StratificationResult(annotated, np.asarray(boundaries, dtype=float))

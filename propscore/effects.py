from __future__ import annotations

import logging
from dataclasses import asdict, dataclass

import numpy as np
import pandas as pd
import scipy.stats as st
import statsmodels.api as sm

from ._exceptions import InputError
from .adjustments._base import WEIGHT, AdjustmentResult
from .design import OUTCOME_TERMS, Term, check_columns, design_matrix, interact, term_name
from .propensity import EXPOSURE, check_exposure

logger = logging.getLogger(__name__)

OUTCOME = "outcome"
DEFAULT_ALPHA = 0.05


@dataclass(frozen=True)
class Estimate:
    """A point estimate with its robust standard error and normal-based interval."""

    estimate: float
    std_error: float
    statistic: float
    p_value: float
    conf_low: float
    conf_high: float

    @classmethod
    def from_gradient(cls, gradient: np.ndarray, params: np.ndarray, vcov: np.ndarray, alpha: float) -> Estimate:
        """
        Delta method for a quantity linear in the coefficients,
        ``gradient @ params``; its variance is ``gradient' V gradient``.
        """
        estimate = float(gradient @ params)
        std_error = float(np.sqrt(max(gradient @ vcov @ gradient, 0.0)))
        if std_error > 0:
            statistic = estimate / std_error
        elif estimate == 0:
            # an exactly null contrast: no evidence against zero
            statistic = 0.0
        else:
            statistic = np.inf * np.sign(estimate)
        z = st.norm.ppf(1.0 - alpha / 2.0)
        return cls(
            estimate=estimate,
            std_error=std_error,
            statistic=float(statistic),
            p_value=float(2.0 * st.norm.sf(abs(statistic))),
            conf_low=estimate - z * std_error,
            conf_high=estimate + z * std_error,
        )

    def to_dict(self) -> dict[str, float]:
        return asdict(self)


# ── Result ─────────────────────────────────────────────────────────────────────

class EffectResult:
    """
    The result of an outcome-model effect estimation on adjusted data.

    ``effect`` is the average marginal effect of exposure: the weighted mean,
    over the adjusted population, of the predicted outcome under exposure
    minus the predicted outcome without it. With stratification or full
    matching the standard error is cluster-robust by subclass; with weighting
    it is HC3.
    """

    def __init__(
        self,
        result,
        comparison: Estimate,
        predictions: pd.DataFrame,
        unadjusted_effect: float,
        method: str,
        vcov_type: str,
        alpha: float,
        n_used: int,
    ) -> None:
        self._result = result
        self._comparison = comparison
        self._predictions = predictions
        self._unadjusted_effect = unadjusted_effect
        self._method = method
        self._vcov_type = vcov_type
        self._alpha = alpha
        self._n_used = n_used

    @property
    def effect(self) -> float:
        """ATE: average marginal effect of exposure on outcome."""
        return self._comparison.estimate

    @property
    def unadjusted_effect(self) -> float:
        """Naive mean difference outcome|exposed minus outcome|unexposed."""
        return self._unadjusted_effect

    @property
    def std_err(self) -> float:
        return self._comparison.std_error

    @property
    def conf_int(self) -> tuple[float, float]:
        """``1 - alpha`` confidence interval for the ATE."""
        return (self._comparison.conf_low, self._comparison.conf_high)

    @property
    def pvalue(self) -> float:
        """Two-sided p-value for ``H0: ATE = 0``."""
        return self._comparison.p_value

    @property
    def method(self) -> str:
        return self._method

    @property
    def vcov_type(self) -> str:
        """``"cluster"`` or ``"HC3"``."""
        return self._vcov_type

    @property
    def n_used(self) -> int:
        """Records with positive weight that entered the outcome model."""
        return self._n_used

    def comparison(self) -> Estimate:
        """Average marginal effect as an ``Estimate``."""
        return self._comparison

    def predictions(self) -> pd.DataFrame:
        """Average predicted outcome at each exposure level, indexed by exposure (0, 1)."""
        return self._predictions.copy()

    @property
    def statsmodels_result(self):
        """The underlying statsmodels WLS result, for full diagnostics."""
        return self._result

    def summary(self) -> str:
        lo, hi = self.conf_int
        level = round(100 * (1 - self._alpha))
        bias = self.unadjusted_effect - self.effect
        lines = [
            "",
            f"Average treatment effect: {EXPOSURE} → {OUTCOME}  ({self._method})",
            "─" * 54,
            f"  ATE estimate         : {self.effect:>10.4f}",
            f"  Unadjusted estimate  : {self.unadjusted_effect:>10.4f}  (naive mean difference)",
            f"  Confounding bias     : {bias:>+10.4f}",
            "",
            f"  Std. error           : {self.std_err:>10.4f}  ({self._vcov_type})",
            f"  {level}% CI               : [{lo:.4f}, {hi:.4f}]",
            f"  p-value              : {self.pvalue:>10.4f}",
            f"  N (weight > 0)       : {self._n_used:>10d}",
            "",
            "  Average predictions",
            "  " + "┄" * 48,
        ]
        for level_, row in self._predictions.iterrows():
            lines.append(
                f"  {EXPOSURE} = {level_}         : {row['estimate']:>10.4f}  "
                f"[{row['conf_low']:.4f}, {row['conf_high']:.4f}]"
            )
        lines.append("")
        return "\n".join(lines)

    def __repr__(self) -> str:
        return self.summary()


# ── Estimator ──────────────────────────────────────────────────────────────────

class EffectEstimator:
    """
    Weighted linear outcome model with g-computation contrasts.

    Fits ``outcome ~ exposure * (terms)`` by weighted least squares on the
    records an adjustment gave positive weight, then averages the predicted
    outcomes with every record set to exposed and to unexposed.

    Example::

        adjusted = InverseProbabilityWeighting().fit(scored)
        result   = EffectEstimator().fit(adjusted)
        print(result.summary())
    """

    def __init__(self, terms: list[Term] | None = None, alpha: float = DEFAULT_ALPHA) -> None:
        self._terms = list(OUTCOME_TERMS if terms is None else terms)
        if not 0 < alpha < 1:
            raise InputError(f"alpha must lie in (0, 1), got {alpha}.")
        self._alpha = alpha
        self._model_terms = interact(EXPOSURE, self._terms)

    def fit(self, adjusted: AdjustmentResult) -> EffectResult:
        """
        Raises
        ------
        ``InputError``
            If outcome, exposure or a model term is missing or non-finite,
            or too few weighted records remain to fit the model.
        """
        data = adjusted.data
        exposure = check_exposure(data, EXPOSURE)
        check_columns(data, [OUTCOME, WEIGHT], stage="effect estimation")

        outcome = data[OUTCOME].to_numpy(dtype=float)
        unadjusted = float(outcome[exposure == 1].mean() - outcome[exposure == 0].mean())

        weights = data[WEIGHT].to_numpy(dtype=float)
        keep = weights > 0
        used = data.loc[keep]
        w = weights[keep]
        if len(used) <= len(self._model_terms) + 1:
            raise InputError(
                f"Only {len(used)} records have positive weight; the outcome model "
                f"needs more than {len(self._model_terms) + 1}."
            )
        check_exposure(used, EXPOSURE)

        X = design_matrix(used, self._model_terms)
        model = sm.WLS(used[OUTCOME].to_numpy(dtype=float), X, weights=w)
        if adjusted.cluster is not None:
            groups = pd.factorize(used[adjusted.cluster])[0]
            result = model.fit(cov_type="cluster", cov_kwds={"groups": groups})
            vcov_type = "cluster"
        else:
            result = model.fit(cov_type="HC3")
            vcov_type = "HC3"

        params = np.asarray(result.params, dtype=float)
        vcov = np.asarray(result.cov_params(), dtype=float)

        X1 = design_matrix(used.assign(**{EXPOSURE: 1.0}), self._model_terms).to_numpy()
        X0 = design_matrix(used.assign(**{EXPOSURE: 0.0}), self._model_terms).to_numpy()
        g1 = np.average(X1, axis=0, weights=w)
        g0 = np.average(X0, axis=0, weights=w)

        comparison = Estimate.from_gradient(g1 - g0, params, vcov, self._alpha)
        predictions = pd.DataFrame(
            [
                Estimate.from_gradient(g0, params, vcov, self._alpha).to_dict(),
                Estimate.from_gradient(g1, params, vcov, self._alpha).to_dict(),
            ],
            index=pd.Index([0, 1], name=EXPOSURE),
        )

        method = getattr(adjusted, "method", "adjustment")
        logger.info(
            "%s: ATE %.4f (SE %.4f, %s) from %d records",
            method, comparison.estimate, comparison.std_error, vcov_type, len(used),
        )
        logger.debug(
            "Outcome model coefficients: %s",
            dict(zip([term_name(t) for t in self._model_terms], params[1:])),
        )
        return EffectResult(
            result,
            comparison,
            predictions,
            unadjusted_effect=unadjusted,
            method=method,
            vcov_type=vcov_type,
            alpha=self._alpha,
            n_used=int(keep.sum()),
        )

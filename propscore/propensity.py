from __future__ import annotations

import logging
import warnings

import numpy as np
import pandas as pd
import statsmodels.api as sm
from statsmodels.tools.sm_exceptions import (
    ConvergenceWarning,
    HessianInversionWarning,
    PerfectSeparationError,
    PerfectSeparationWarning,
)

from ._exceptions import ConvergenceError, InputError
from .design import PROPENSITY_TERMS, Term, design_matrix, term_name, term_variables

logger = logging.getLogger(__name__)

EXPOSURE = "exposure"
SCORE    = "propensity_score"

_MAXITER = 100


def check_exposure(data: pd.DataFrame, exposure: str = EXPOSURE) -> np.ndarray:
    """Return the exposure column as a float array after checking it is binary 0/1 with both groups."""
    if exposure not in data.columns:
        raise InputError(f"Exposure column '{exposure}' not found in dataframe.")
    values = data[exposure].to_numpy(dtype=float)
    if not np.all(np.isfinite(values)):
        raise InputError(f"Exposure '{exposure}' has missing or non-finite values.")
    found = set(np.unique(values))
    if not found <= {0.0, 1.0}:
        raise InputError(
            f"Exposure '{exposure}' must be binary (0/1). "
            f"Found values: {sorted(found)[:10]}"
        )
    if found != {0.0, 1.0}:
        raise InputError(
            f"Exposure '{exposure}' must contain both 0 and 1. "
            f"Found only: {sorted(found)}"
        )
    return values


# ── Result ─────────────────────────────────────────────────────────────────────

class PropensityResult:
    """
    A fitted propensity-score model.

    Wraps the statsmodels ``Logit`` result and the fitted scores. Use
    ``annotate()`` to attach the scores to the population the model was fit
    on.
    """

    def __init__(self, result, terms: list[Term], scores: np.ndarray, base: pd.DataFrame) -> None:
        self._result = result
        self._terms = list(terms)
        self._scores = scores
        self._base = base

    @property
    def params(self) -> pd.Series:
        """Logistic regression coefficients, indexed by term name."""
        return self._result.params.copy()

    @property
    def std_err(self) -> pd.Series:
        """Standard errors of the coefficients."""
        return self._result.bse.copy()

    @property
    def pvalues(self) -> pd.Series:
        return self._result.pvalues.copy()

    @property
    def terms(self) -> list[Term]:
        return list(self._terms)

    @property
    def scores(self) -> np.ndarray:
        """Fitted propensity scores, strictly inside (0, 1)."""
        return self._scores.copy()

    @property
    def average_slopes(self) -> pd.Series:
        """
        Mean partial derivative of the linear predictor (log-odds) with
        respect to each base variable.

        With quadratic and interaction terms a single coefficient does not
        describe how the log-odds move with a variable; this averages the
        full derivative over the fitted sample. For the ``w1`` term, for
        instance, it is ``b_w1 + 2 b_w1:w1 mean(w1) + b_w1:w2 mean(w2)``.
        """
        params = self._result.params
        slopes = {}
        for var in term_variables(self._terms):
            total = np.zeros(len(self._base))
            for term in self._terms:
                count = term.count(var)
                if not count:
                    continue
                rest = list(term)
                rest.remove(var)
                partial = np.full(len(self._base), float(count))
                for other in rest:
                    partial = partial * self._base[other].to_numpy()
                total = total + params[term_name(term)] * partial
            slopes[var] = float(total.mean())
        return pd.Series(slopes, name="average_slope")

    @property
    def converged(self) -> bool:
        return bool(self._result.mle_retvals["converged"])

    @property
    def statsmodels_result(self):
        """The underlying statsmodels Logit result, for full diagnostics."""
        return self._result

    def annotate(self, data: pd.DataFrame) -> pd.DataFrame:
        """Return a copy of ``data`` with a ``propensity_score`` column."""
        if len(data) != len(self._scores):
            raise InputError(
                f"Cannot annotate {len(data)} records with {len(self._scores)} fitted scores."
            )
        return data.assign(**{SCORE: self._scores})

    def summary(self) -> str:
        lines = [
            "",
            f"Propensity model: {EXPOSURE} ~ {' + '.join(term_name(t) for t in self._terms)}",
            "─" * 54,
            f"  {'term':<16}{'coef':>10}{'std.err':>10}{'p-value':>10}",
        ]
        for name in self._result.params.index:
            lines.append(
                f"  {name:<16}{self._result.params[name]:>10.4f}"
                f"{self._result.bse[name]:>10.4f}{self._result.pvalues[name]:>10.4f}"
            )
        lo, hi = float(self._scores.min()), float(self._scores.max())
        lines += [
            "",
            f"  N                    : {len(self._scores):>10d}",
            f"  Score range          : [{lo:.4f}, {hi:.4f}]",
            "",
        ]
        return "\n".join(lines)

    def __repr__(self) -> str:
        return self.summary()


# ── Estimator ──────────────────────────────────────────────────────────────────

class PropensityModel:
    """
    Logistic regression of exposure on confounder terms.

    Terms are given explicitly (see ``propscore.design``); the default is
    ``w1 + w1:w1 + w2 + w1:w2``, matching the exposure mechanism of the
    simulated population.

    Example::

        data   = simulate_population(2_000, rng=2_891_286)
        ps     = PropensityModel().fit(data)
        scored = ps.annotate(data)
    """

    def __init__(self, terms: list[Term] | None = None) -> None:
        self._terms = list(PROPENSITY_TERMS if terms is None else terms)
        if not self._terms:
            raise InputError("The propensity model needs at least one term.")
        if any(EXPOSURE in term for term in self._terms):
            raise InputError(f"Exposure '{EXPOSURE}' cannot be a propensity model term.")

    def fit(self, data: pd.DataFrame) -> PropensityResult:
        """
        Fit by maximum likelihood (Newton-Raphson).

        Raises
        ------
        ``InputError``
            If the exposure or a confounder column is missing or non-finite,
            or the exposure is not binary with both groups present.
        ``ConvergenceError``
            If fitting does not converge, separation is detected, or any
            fitted score is not strictly inside (0, 1).
        """
        y = check_exposure(data, EXPOSURE)
        X = design_matrix(data, self._terms)

        with warnings.catch_warnings():
            warnings.simplefilter("error", PerfectSeparationWarning)
            warnings.simplefilter("ignore", ConvergenceWarning)
            warnings.simplefilter("ignore", HessianInversionWarning)
            try:
                result = sm.Logit(y, X).fit(method="newton", maxiter=_MAXITER, disp=0)
            except (PerfectSeparationError, PerfectSeparationWarning) as exc:
                raise ConvergenceError(
                    f"Perfect separation: the confounder terms predict "
                    f"'{EXPOSURE}' exactly, so its coefficients are not identified."
                ) from exc
            except np.linalg.LinAlgError as exc:
                raise ConvergenceError(
                    "Propensity model Hessian is singular; check the terms for collinearity."
                ) from exc

        if not result.mle_retvals["converged"]:
            raise ConvergenceError(
                f"Propensity model did not converge within {_MAXITER} Newton iterations."
            )

        scores = np.asarray(result.predict(X), dtype=float)
        if not np.all(np.isfinite(scores)) or np.any(scores <= 0.0) or np.any(scores >= 1.0):
            raise ConvergenceError(
                "Fitted propensity scores reach 0 or 1; the exposure groups "
                "are (quasi-)separated by the confounders."
            )

        logger.info(
            "Propensity model fit on %d records in %d iterations; scores in [%.4f, %.4f]",
            len(y), result.mle_retvals.get("iterations", -1), scores.min(), scores.max(),
        )
        logger.debug("Propensity coefficients: %s", result.params.to_dict())
        base = data[term_variables(self._terms)].astype(float)
        return PropensityResult(result, self._terms, scores, base)

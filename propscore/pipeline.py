from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
import pandas as pd

from .adjustments import FullMatching, InverseProbabilityWeighting, Stratification
from .adjustments._base import AdjustmentResult
from .balance import BalanceTable, balance_table
from .config import AnalysisConfig
from .effects import EffectEstimator, EffectResult
from .propensity import PropensityModel, PropensityResult
from .simulate import TRUE_EFFECT, simulate_population

logger = logging.getLogger(__name__)

METHODS = ("stratification", "matching", "weighting")


@dataclass
class AnalysisResult:
    """Every intermediate object of one analysis run, keyed by adjustment method."""

    config: AnalysisConfig
    population: pd.DataFrame
    propensity: PropensityResult
    unadjusted_balance: BalanceTable
    adjustments: dict[str, AdjustmentResult]
    balance: dict[str, BalanceTable]
    effects: dict[str, EffectResult]

    @property
    def scored(self) -> pd.DataFrame:
        """The population with propensity scores attached."""
        return self.propensity.annotate(self.population)

    def estimates(self) -> pd.DataFrame:
        """One row per method: estimate, std_error, statistic, p_value, conf_low, conf_high."""
        rows = {m: self.effects[m].comparison().to_dict() for m in METHODS}
        frame = pd.DataFrame.from_dict(rows, orient="index")
        frame.index.name = "method"
        return frame

    def summary(self) -> str:
        cfg = self.config
        lines = [
            "",
            f"Propensity-score analysis  (n = {cfg.n}, seed = {cfg.seed})",
            "━" * 66,
            f"  True simulated effect : {TRUE_EFFECT:.4f}",
            "",
            f"  {'method':<18}{'ATE':>10}{'std.err':>10}{'conf.low':>11}{'conf.high':>11}{'balanced':>10}",
        ]
        for m in METHODS:
            est = self.effects[m].comparison()
            ok = "yes" if self.balance[m].passed else "no"
            lines.append(
                f"  {m:<18}{est.estimate:>10.4f}{est.std_error:>10.4f}"
                f"{est.conf_low:>11.4f}{est.conf_high:>11.4f}{ok:>10}"
            )
        lines.append("")
        return "\n".join(lines)

    def __repr__(self) -> str:
        return self.summary()


def run_analysis(config: AnalysisConfig | None = None) -> AnalysisResult:
    """
    Simulate, score, adjust three ways, check balance and estimate the ATE.

    The random generator is created once from ``config.seed`` and is only
    used by the simulation; every later stage is deterministic. Any stage
    failure propagates unmodified.
    """
    cfg = AnalysisConfig() if config is None else config
    rng = np.random.default_rng(cfg.seed)
    confounders = list(cfg.confounders)

    population = simulate_population(cfg.n, rng)
    propensity = PropensityModel(list(cfg.propensity_terms)).fit(population)
    scored = propensity.annotate(population)

    strategies = {
        "stratification": Stratification(cfg.n_strata),
        "matching":       FullMatching(cfg.matching_distance, cfg.caliper, confounders),
        "weighting":      InverseProbabilityWeighting(),
    }
    estimator = EffectEstimator(list(cfg.outcome_terms), alpha=cfg.alpha)

    adjustments: dict[str, AdjustmentResult] = {}
    balance: dict[str, BalanceTable] = {}
    effects: dict[str, EffectResult] = {}
    for name, strategy in strategies.items():
        logger.info("Running %s", name)
        adjustments[name] = strategy.fit(scored)
        balance[name] = adjustments[name].balance(confounders, cfg.balance_threshold)
        effects[name] = estimator.fit(adjustments[name])

    return AnalysisResult(
        config=cfg,
        population=population,
        propensity=propensity,
        unadjusted_balance=balance_table(
            scored, confounders, threshold=cfg.balance_threshold,
        ),
        adjustments=adjustments,
        balance=balance,
        effects=effects,
    )

"""
Propensity-score stratification
===============================
Simulate the confounded population, estimate propensity scores, split into
quintiles of the score and estimate the ATE within the strata.
"""

import numpy as np
from propscore import (
    simulate_population, PropensityModel, Stratification, EffectEstimator, TRUE_EFFECT,
)

RNG = np.random.default_rng(2_891_286)
N = 2_000

# ── 1. Simulate data ──────────────────────────────────────────────────────────
df = simulate_population(N, RNG)

# ── 2. Propensity scores ──────────────────────────────────────────────────────
ps = PropensityModel().fit(df)
print(ps.summary())
scored = ps.annotate(df)

# ── 3. Stratify and check balance ─────────────────────────────────────────────
strata = Stratification(n_strata=5).fit(scored)
print(strata.summary())
print(strata.balance(["w1", "w2"]).summary())

# ── 4. Estimate ───────────────────────────────────────────────────────────────
result = EffectEstimator().fit(strata)
print(result.summary())
print(f"True effect: {TRUE_EFFECT}")

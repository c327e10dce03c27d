"""
Optimal full matching
=====================
Group every exposed and unexposed record into matched sets on the propensity
score, then compare with a caliper that drops poorly matched records.
"""

import numpy as np
from propscore import (
    simulate_population, PropensityModel, FullMatching, EffectEstimator,
)

RNG = np.random.default_rng(2_891_286)

df     = simulate_population(2_000, RNG)
scored = PropensityModel().fit(df).annotate(df)

# ── Full matching, every record kept ──────────────────────────────────────────
matched = FullMatching().fit(scored)
print(matched.summary())
print(matched.set_sizes.describe())
print(matched.balance(["w1", "w2"]).summary())
print(EffectEstimator().fit(matched).summary())

# ── With a caliper on the score ───────────────────────────────────────────────
tight = FullMatching(caliper=0.01).fit(scored)
print(tight.summary())
print(EffectEstimator().fit(tight).summary())

"""
Inverse-probability weighting
=============================
Weight records by the inverse probability of the exposure they received and
compare raw and stabilized weights.
"""

import numpy as np
from propscore import (
    simulate_population, PropensityModel, InverseProbabilityWeighting, EffectEstimator,
)

RNG = np.random.default_rng(2_891_286)

df     = simulate_population(2_000, RNG)
scored = PropensityModel().fit(df).annotate(df)

for stabilize in (False, True):
    weighted = InverseProbabilityWeighting(stabilize=stabilize).fit(scored)
    print(weighted.summary())
    print(weighted.balance(["w1", "w2", "w3", "w4"]).summary())
    print(EffectEstimator().fit(weighted).summary())

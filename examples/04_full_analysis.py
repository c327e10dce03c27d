"""
The whole analysis in one call
==============================
Run all three adjustments on the reference population and print the
comparison table.
"""

import logging

from propscore import AnalysisConfig, run_analysis

logging.basicConfig(level=logging.INFO, format="%(name)s: %(message)s")

result = run_analysis(AnalysisConfig(n=2_000, seed=2_891_286))

print(result.propensity.summary())
for method, table in result.balance.items():
    print(table.summary())
print(result.summary())
print(result.estimates())

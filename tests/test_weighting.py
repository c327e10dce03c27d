import numpy as np
import pandas as pd
import pytest

from propscore import (
    InverseProbabilityWeighting, PropensityModel, WeightingResult, simulate_population,
    InfiniteWeightError,
)


def make_scored(n=2_000, seed=2_891_286):
    df = simulate_population(n, rng=seed)
    return PropensityModel().fit(df).annotate(df)


class TestInverseProbabilityWeighting:
    @classmethod
    def setup_class(cls):
        cls.df = make_scored(n=10_000, seed=17)
        cls.result = InverseProbabilityWeighting().fit(cls.df)
        cls.data = cls.result.data

    def test_returns_result_without_cluster(self):
        assert isinstance(self.result, WeightingResult)
        assert self.result.cluster is None

    def test_weight_formula(self):
        ps = self.data["propensity_score"].to_numpy()
        a = self.data["exposure"].to_numpy()
        expected = np.where(a == 1, 1 / ps, 1 / (1 - ps))
        np.testing.assert_allclose(self.data["weight"], expected)

    def test_weights_at_least_one(self):
        assert (self.data["weight"] >= 1.0).all()

    def test_group_weight_sums_balance(self):
        w, a = self.data["weight"], self.data["exposure"]
        exposed_total = (w * a).sum()
        unexposed_total = (w * (1 - a)).sum()
        assert exposed_total == pytest.approx(unexposed_total, rel=0.1)
        assert exposed_total == pytest.approx(len(self.data), rel=0.1)

    def test_effective_sample_size(self):
        ess = self.result.effective_sample_size
        assert 0 < ess <= len(self.data)


class TestStabilizedWeights:
    def test_stabilized_weights_scale_by_marginal_rate(self):
        df = make_scored(n=1_000, seed=4)
        raw = InverseProbabilityWeighting().fit(df).weights
        stab = InverseProbabilityWeighting(stabilize=True).fit(df)
        a = df["exposure"].to_numpy()
        p = a.mean()
        np.testing.assert_allclose(stab.weights, raw * np.where(a == 1, p, 1 - p))
        assert stab.stabilized


class TestInfiniteWeights:
    @pytest.mark.parametrize("boundary", [0.0, 1.0])
    def test_boundary_score_raises(self, boundary):
        df = pd.DataFrame({
            "exposure":         [0, 1, 0, 1],
            "propensity_score": [0.3, boundary, 0.5, 0.6],
        })
        with pytest.raises(InfiniteWeightError):
            InverseProbabilityWeighting().fit(df)

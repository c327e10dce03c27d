from dataclasses import FrozenInstanceError

import numpy as np
import pandas as pd
import pytest

from propscore import AnalysisConfig, AnalysisResult, TRUE_EFFECT, run_analysis, InputError
from propscore.pipeline import METHODS


class TestEndToEnd:
    """The reference scenario: 2000 records, seed 2891286. Run once."""

    @classmethod
    def setup_class(cls):
        cls.result = run_analysis(AnalysisConfig(n=2_000, seed=2_891_286))

    def test_returns_analysis_result(self):
        assert isinstance(self.result, AnalysisResult)
        assert len(self.result.population) == 2_000

    def test_propensity_signs_match_mechanism(self):
        ps = self.result.propensity
        assert ps.params["w1"] > 0
        assert ps.params["w2"] < 0
        assert ps.average_slopes["w1"] > 0
        assert ps.average_slopes["w2"] < 0

    def test_scores_in_open_unit_interval(self):
        scores = self.result.scored["propensity_score"]
        assert ((scores > 0) & (scores < 1)).all()

    @pytest.mark.parametrize("method", METHODS)
    def test_ate_plausible(self, method):
        assert abs(self.result.effects[method].effect - TRUE_EFFECT) < 0.5

    @pytest.mark.parametrize("method", METHODS)
    def test_adjustment_reduces_imbalance(self, method):
        table = self.result.balance[method].table
        assert (table["smd_after"].abs() < table["smd_before"].abs()).all()

    @pytest.mark.parametrize("method", METHODS)
    def test_adjusted_confounders_below_threshold(self, method):
        table = self.result.balance[method]
        assert table.passed
        assert (table.table["smd_after"].abs() < table.threshold).all()

    @pytest.mark.parametrize("method", METHODS)
    def test_balance_rerun_is_identical(self, method):
        config = self.result.config
        again = self.result.adjustments[method].balance(
            list(config.confounders), config.balance_threshold,
        )
        pd.testing.assert_frame_equal(again.table, self.result.balance[method].table)
        assert again.summary() == self.result.balance[method].summary()

    def test_unadjusted_balance_flags_confounders(self):
        assert not self.result.unadjusted_balance.passed

    def test_estimates_frame(self):
        frame = self.result.estimates()
        assert list(frame.index) == list(METHODS)
        assert (frame["conf_low"] < frame["conf_high"]).all()

    def test_summary(self):
        summary = self.result.summary()
        for method in METHODS:
            assert method in summary
        assert repr(self.result) == summary


class TestReproducibility:
    def test_same_seed_same_estimates(self):
        config = AnalysisConfig(n=400, seed=10)
        a = run_analysis(config)
        b = run_analysis(config)
        pd.testing.assert_frame_equal(a.population, b.population)
        pd.testing.assert_frame_equal(a.estimates(), b.estimates())


class TestAnalysisConfig:
    def test_defaults(self):
        config = AnalysisConfig()
        assert config.n == 2_000
        assert config.seed == 2_891_286
        assert config.n_strata == 5
        assert config.balance_threshold == 0.1
        assert config.confounders == ("w1", "w2")

    def test_replace_returns_new_config(self):
        config = AnalysisConfig()
        other = config.replace(n=100, caliper=0.05)
        assert other.n == 100 and other.caliper == 0.05
        assert config.n == 2_000

    def test_frozen(self):
        with pytest.raises(FrozenInstanceError):
            AnalysisConfig().n = 5

    @pytest.mark.parametrize("overrides", [
        {"n": 0},
        {"n_strata": 1},
        {"balance_threshold": 0},
        {"matching_distance": "euclidean"},
        {"caliper": -1.0},
        {"alpha": 1.0},
        {"confounders": ()},
    ])
    def test_invalid_values_raise(self, overrides):
        with pytest.raises(InputError):
            AnalysisConfig(**overrides)

    def test_caliper_and_distance_flow_through(self):
        result = run_analysis(AnalysisConfig(n=300, seed=21, matching_distance="mahalanobis"))
        sizes = result.adjustments["matching"].set_sizes
        assert ((sizes[0] >= 1) & (sizes[1] >= 1)).all()

    def test_defaults_shared_with_components(self):
        from propscore.adjustments.matching import DISTANCES
        from propscore.adjustments.stratification import DEFAULT_STRATA
        from propscore.balance import DEFAULT_THRESHOLD
        from propscore.effects import DEFAULT_ALPHA

        config = AnalysisConfig()
        assert config.n_strata == DEFAULT_STRATA
        assert config.balance_threshold == DEFAULT_THRESHOLD
        assert config.alpha == DEFAULT_ALPHA
        assert config.matching_distance in DISTANCES
        for distance in DISTANCES:
            assert AnalysisConfig(matching_distance=distance).matching_distance == distance

import numpy as np
import pandas as pd
import pytest

from propscore import (
    BalanceTable, InverseProbabilityWeighting, PropensityModel, balance_table,
    simulate_population, InputError,
)
from propscore.balance import standardized_difference


class TestStandardizedDifference:
    def test_unweighted_value(self):
        x = np.array([1.0, 2.0, 3.0, 2.0, 3.0, 4.0])
        a = np.array([0, 0, 0, 1, 1, 1])
        # means 2 and 3, both variances 1
        assert standardized_difference(x, a) == pytest.approx(1.0)

    def test_weights_shift_means(self):
        x = np.array([0.0, 1.0, 0.0, 1.0])
        a = np.array([0, 0, 1, 1])
        w = np.array([1.0, 1.0, 0.0, 1.0])
        assert standardized_difference(x, a, weights=w, scale=1.0) == pytest.approx(0.5)

    def test_zero_group_weight_raises(self):
        x = np.array([0.0, 1.0, 0.0, 1.0])
        a = np.array([0, 0, 1, 1])
        with pytest.raises(InputError):
            standardized_difference(x, a, weights=np.array([1.0, 1.0, 0.0, 0.0]))


class TestBalanceTable:
    """Large weighted population so sampling noise in the SMDs is small."""

    @classmethod
    def setup_class(cls):
        df = simulate_population(20_000, rng=123)
        cls.scored = PropensityModel().fit(df).annotate(df)
        cls.adjusted = InverseProbabilityWeighting().fit(cls.scored)
        cls.table = cls.adjusted.balance(["w1", "w2", "w3", "w4"])

    def test_returns_balance_table(self):
        assert isinstance(self.table, BalanceTable)
        assert list(self.table.table.columns) == ["smd_before", "smd_after", "balanced"]

    def test_confounders_imbalanced_before(self):
        before = self.table.table["smd_before"]
        assert before["w1"] > 0.1
        assert before["w2"] < -0.1

    def test_noise_covariates_balanced_before(self):
        before = self.table.table["smd_before"]
        assert abs(before["w3"]) < 0.1
        assert abs(before["w4"]) < 0.1

    def test_weighting_balances_everything(self):
        assert self.table.passed
        assert self.table.imbalanced == []
        assert (self.table.table["smd_after"].abs() < 0.1).all()

    def test_rerun_is_identical(self):
        again = self.adjusted.balance(["w1", "w2", "w3", "w4"])
        pd.testing.assert_frame_equal(again.table, self.table.table)
        assert again.passed

    def test_rerun_on_annotated_data(self):
        again = balance_table(self.adjusted.data, ["w1", "w2"], weights="weight")
        assert again.passed

    def test_unweighted_table_flags_confounders(self):
        raw = balance_table(self.scored, ["w1", "w2"])
        assert not raw.passed
        assert set(raw.imbalanced) == {"w1", "w2"}
        np.testing.assert_allclose(raw.table["smd_before"], raw.table["smd_after"])

    def test_threshold_is_configurable(self):
        loose = balance_table(self.scored, ["w1", "w2"], threshold=1.0)
        assert loose.passed
        assert loose.threshold == 1.0

    def test_summary_marks_imbalance(self):
        raw = balance_table(self.scored, ["w1", "w2"])
        assert "*" in raw.summary()
        assert "All covariates" in self.table.summary()


class TestBalanceValidation:
    def test_negative_weights_raise(self):
        df = simulate_population(50, rng=1)
        with pytest.raises(InputError):
            balance_table(df, ["w1"], weights=-np.ones(len(df)))

    def test_misaligned_weights_raise(self):
        df = simulate_population(50, rng=1)
        with pytest.raises(InputError):
            balance_table(df, ["w1"], weights=np.ones(3))

    def test_missing_covariate_raises(self):
        df = simulate_population(50, rng=1)
        with pytest.raises(InputError):
            balance_table(df, ["w9"])

    def test_non_positive_threshold_raises(self):
        df = simulate_population(50, rng=1)
        with pytest.raises(InputError):
            balance_table(df, ["w1"], threshold=0)

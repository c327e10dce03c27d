import numpy as np
import pandas as pd
import pytest

from propscore import simulate_population, true_propensity, TRUE_EFFECT, InputError
from propscore.simulate import COLUMNS


class TestSimulatePopulation:
    def test_columns_and_ids(self):
        df = simulate_population(50, rng=1)
        assert list(df.columns) == COLUMNS
        assert df["id"].tolist() == list(range(1, 51))

    def test_same_seed_reproduces_population(self):
        pd.testing.assert_frame_equal(
            simulate_population(500, rng=2_891_286),
            simulate_population(500, rng=2_891_286),
        )

    def test_generator_and_integer_seed_agree(self):
        pd.testing.assert_frame_equal(
            simulate_population(200, rng=7),
            simulate_population(200, rng=np.random.default_rng(7)),
        )

    def test_different_seeds_differ(self):
        a = simulate_population(200, rng=1)
        b = simulate_population(200, rng=2)
        assert not np.allclose(a["w1"], b["w1"])

    def test_shared_generator_advances(self):
        rng = np.random.default_rng(3)
        a = simulate_population(100, rng)
        b = simulate_population(100, rng)
        assert not a.equals(b)

    def test_value_ranges(self):
        df = simulate_population(2_000, rng=11)
        assert df["w1"].between(0.02, 0.70).all()
        assert set(df["w4"].unique()) <= {0, 1}
        assert set(df["exposure"].unique()) == {0, 1}
        assert np.isfinite(df[["w2", "w3", "outcome"]].to_numpy()).all()

    def test_true_propensity_in_unit_interval(self):
        p = true_propensity(simulate_population(1_000, rng=5))
        assert np.all((p > 0) & (p < 1))


class TestGeneratingMechanism:
    """One large draw; check the outcome mechanism recovers its coefficients."""

    @classmethod
    def setup_class(cls):
        cls.df = simulate_population(20_000, rng=99)

    def test_outcome_regression_recovers_effect(self):
        df = self.df
        X = np.column_stack([
            np.ones(len(df)), df["w1"], df["w1"] ** 2, df["w2"], df["exposure"],
        ])
        coef, *_ = np.linalg.lstsq(X, df["outcome"].to_numpy(), rcond=None)
        assert abs(coef[4] - TRUE_EFFECT) < 0.1
        assert abs(coef[3] - (-2.0)) < 0.1

    def test_noise_covariates_unrelated_to_exposure(self):
        df = self.df
        assert abs(np.corrcoef(df["w3"], df["exposure"])[0, 1]) < 0.05
        assert abs(np.corrcoef(df["w4"], df["exposure"])[0, 1]) < 0.05

    def test_w2_lowers_exposure_rate(self):
        df = self.df
        high = df.loc[df["w2"] > df["w2"].median(), "exposure"].mean()
        low  = df.loc[df["w2"] <= df["w2"].median(), "exposure"].mean()
        assert high < low


class TestSimulateValidation:
    @pytest.mark.parametrize("n", [0, -5, 2.5, True])
    def test_bad_population_size_raises(self, n):
        with pytest.raises(InputError):
            simulate_population(n, rng=1)

    def test_bad_rng_raises(self):
        with pytest.raises(InputError):
            simulate_population(10, rng="seed")

import numpy as np
import pandas as pd
import pytest

from bednets import simulate_households
from bednets.estimators.balance import balance_table, pooled_sd, standardized_mean_differences

CONFOUNDERS = ["health", "income", "temperature"]


def make_data(n=1_000, seed=42):
    return simulate_households(n=n, seed=seed)


class TestStandardizedMeanDifferences:
    def test_confounded_sample_is_imbalanced(self):
        smd = standardized_mean_differences(make_data(), "net_num", CONFOUNDERS)
        assert list(smd.index) == CONFOUNDERS
        assert smd.abs().max() > 0.1

    def test_random_assignment_is_balanced(self):
        df = simulate_households(n=5_000, confounding=0.0, seed=11)
        smd = standardized_mean_differences(df, "net_num", CONFOUNDERS)
        assert (smd.abs() < 0.1).all()

    def test_hand_computed_value(self):
        df = pd.DataFrame({"t": [1, 1, 0, 0], "x": [2.0, 4.0, 0.0, 2.0]})
        # means 3 and 1, both group variances 2
        smd = standardized_mean_differences(df, "t", ["x"])
        assert smd["x"] == pytest.approx(2.0 / np.sqrt(2.0))

    def test_weights_shift_the_means(self):
        df = pd.DataFrame({"t": [1, 1, 0, 0], "x": [2.0, 4.0, 0.0, 2.0]})
        unweighted = standardized_mean_differences(df, "t", ["x"])
        weighted = standardized_mean_differences(df, "t", ["x"], weights=np.array([3.0, 1.0, 1.0, 1.0]))
        assert weighted["x"] < unweighted["x"]

    def test_shared_scale_is_used(self):
        df = make_data()
        scale = pooled_sd(df, "net_num", CONFOUNDERS) * 2
        own = standardized_mean_differences(df, "net_num", CONFOUNDERS)
        shared = standardized_mean_differences(df, "net_num", CONFOUNDERS, scale=scale)
        np.testing.assert_allclose(shared, own / 2)


class TestUndefinedScale:
    def test_single_treated_row_gives_nan_not_zero(self):
        df = pd.DataFrame({"t": [1, 0, 0, 0], "x": [9.0, 0.0, 1.0, 2.0]})
        assert pooled_sd(df, "t", ["x"]).isna().all()
        smd = standardized_mean_differences(df, "t", ["x"])
        assert np.isnan(smd["x"])

    def test_constant_covariate_with_equal_means_is_zero(self):
        df = pd.DataFrame({"t": [1, 1, 0, 0], "x": [5.0, 5.0, 5.0, 5.0]})
        assert standardized_mean_differences(df, "t", ["x"])["x"] == 0.0

    def test_zero_scale_with_different_means_is_nan(self):
        df = pd.DataFrame({"t": [1, 1, 0, 0], "x": [1.0, 1.0, 3.0, 3.0]})
        assert np.isnan(standardized_mean_differences(df, "t", ["x"])["x"])


class TestBalanceTable:
    def test_one_column_per_view(self):
        df = make_data()
        raw = standardized_mean_differences(df, "net_num", CONFOUNDERS)
        table = balance_table({"Raw": raw, "Again": raw})
        assert list(table.columns) == ["Raw", "Again"]
        assert list(table.index) == CONFOUNDERS

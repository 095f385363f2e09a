import numpy as np
import pandas as pd
import pytest
import statsmodels.formula.api as smf

from bednets import weighted_regression, RegressionResult
from bednets._exceptions import WeightError


def make_data(n=400):
    rng = np.random.default_rng(42)
    x = rng.choice([0, 1], size=n)
    z = rng.normal(size=n)
    y = 3.0 * x + 1.5 * z + rng.normal(size=n)
    return pd.DataFrame({"x": x, "z": z, "y": y, "w": rng.uniform(0.5, 2.0, size=n)})


class TestWeightedRegression:
    def test_returns_regression_result(self):
        result = weighted_regression(make_data(), "y", ["x"])
        assert isinstance(result, RegressionResult)
        assert not result.weighted

    def test_unit_weights_match_ols(self):
        df = make_data()
        ours = weighted_regression(df, "y", ["x", "z"], weights=np.ones(len(df)))
        ols = smf.ols("y ~ x + z", data=df).fit()
        np.testing.assert_allclose(ours.params.values, ols.params.values, rtol=1e-10)
        np.testing.assert_allclose(
            [ours.std_err("x"), ours.std_err("z")], [ols.bse["x"], ols.bse["z"]], rtol=1e-10,
        )

    def test_no_weights_equals_unit_weights(self):
        df = make_data()
        a = weighted_regression(df, "y", ["x"])
        b = weighted_regression(df, "y", ["x"], weights=np.ones(len(df)))
        assert a.estimate("x") == pytest.approx(b.estimate("x"), rel=1e-12)

    def test_weight_column_by_name(self):
        df = make_data()
        by_name = weighted_regression(df, "y", ["x"], weights="w")
        by_vector = weighted_regression(df, "y", ["x"], weights=df["w"].to_numpy())
        assert by_name.weighted
        assert by_name.estimate("x") == pytest.approx(by_vector.estimate("x"))

    def test_integer_weights_equal_row_duplication(self):
        df = make_data(n=100)
        counts = np.where(np.arange(100) % 3 == 0, 2.0, 1.0)
        weighted = weighted_regression(df, "y", ["x"], weights=counts)
        duplicated = pd.concat([df, df.loc[counts == 2.0]], ignore_index=True)
        ols = weighted_regression(duplicated, "y", ["x"])
        assert weighted.estimate("x") == pytest.approx(ols.estimate("x"), rel=1e-10)

    def test_recovers_effect(self):
        result = weighted_regression(make_data(n=2_000), "y", ["x", "z"])
        assert abs(result.estimate("x") - 3.0) < 0.2
        lo, hi = result.conf_int("x")
        assert lo < result.estimate("x") < hi
        assert 0 <= result.pvalue("x") <= 1

    def test_coef_table_columns(self):
        table = weighted_regression(make_data(), "y", ["x"]).coef_table("Naive")
        assert list(table.columns) == [
            "model_name", "term", "estimate", "std_error", "conf_low", "conf_high", "p_value",
        ]
        assert table.loc[0, "model_name"] == "Naive"
        assert table.loc[0, "term"] == "x"

    def test_summary_mentions_terms(self):
        summary = weighted_regression(make_data(), "y", ["x"], weights="w").summary()
        assert "Weighted least squares" in summary
        assert "x" in summary


class TestWeightedRegressionValidation:
    def test_infinite_weight_raises(self):
        df = make_data()
        w = np.ones(len(df))
        w[5] = np.inf
        with pytest.raises(WeightError) as excinfo:
            weighted_regression(df, "y", ["x"], weights=w)
        assert excinfo.value.rows == [5]

    def test_nan_weight_raises(self):
        df = make_data()
        w = np.ones(len(df))
        w[0] = np.nan
        with pytest.raises(WeightError):
            weighted_regression(df, "y", ["x"], weights=w)

    def test_negative_weight_raises(self):
        df = make_data()
        w = np.ones(len(df))
        w[1] = -1.0
        with pytest.raises(WeightError):
            weighted_regression(df, "y", ["x"], weights=w)

    def test_all_zero_weights_raise(self):
        df = make_data()
        with pytest.raises(WeightError, match="zero"):
            weighted_regression(df, "y", ["x"], weights=np.zeros(len(df)))

    def test_wrong_length_raises(self):
        df = make_data()
        with pytest.raises(ValueError, match="one entry per row"):
            weighted_regression(df, "y", ["x"], weights=np.ones(3))

    def test_missing_column_raises(self):
        with pytest.raises(ValueError, match="not found"):
            weighted_regression(make_data(), "y", ["nope"])

    def test_no_predictors_raises(self):
        with pytest.raises(ValueError, match="predictor"):
            weighted_regression(make_data(), "y", [])

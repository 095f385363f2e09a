import numpy as np
import pandas as pd
import pytest

from bednets import PropensityModel, simulate_households
from bednets._exceptions import ConvergenceError

CONFOUNDERS = ["income", "temperature", "health"]


class TestPropensityModelFit:
    @classmethod
    def setup_class(cls):
        cls.df = simulate_households(n=2_000, seed=11)
        cls.model = PropensityModel("net_num", CONFOUNDERS).fit(cls.df)

    def test_converged(self):
        assert self.model.converged
        assert 0 < self.model.iterations <= 35

    def test_params_include_intercept_and_confounders(self):
        assert set(self.model.params.index) == {"Intercept", *CONFOUNDERS}

    def test_signs_follow_simulation(self):
        params = self.model.params
        assert params["income"] > 0
        assert params["temperature"] < 0
        assert params["health"] > 0

    def test_predictions_strictly_inside_unit_interval(self):
        ps = self.model.predict(self.df)
        assert ((ps > 0) & (ps < 1)).all()

    def test_predict_matches_statsmodels(self):
        ours = self.model.predict(self.df).to_numpy()
        theirs = np.asarray(self.model.statsmodels_result.predict(self.df))
        np.testing.assert_allclose(ours, theirs, rtol=1e-10)

    def test_predict_uses_logistic_link(self):
        params = self.model.params
        row = self.df.iloc[[0]]
        linear = params["Intercept"] + sum(params[c] * row[c].iloc[0] for c in CONFOUNDERS)
        assert self.model.predict(row).iloc[0] == pytest.approx(1.0 / (1.0 + np.exp(-linear)))

    def test_score_returns_augmented_copy(self):
        scored = self.model.score(self.df)
        assert "propensity" in scored.columns
        assert "propensity" not in self.df.columns
        assert scored.index.equals(self.df.index)

    def test_summary(self):
        assert "Propensity model" in self.model.summary()


class TestPropensityModelFailures:
    def test_perfect_separation_raises(self):
        rng = np.random.default_rng(0)
        x = rng.normal(size=200)
        df = pd.DataFrame({"t": (x > 0).astype(int), "x": x})
        with pytest.raises(ConvergenceError):
            PropensityModel("t", ["x"]).fit(df)

    def test_iteration_cap_raises(self):
        df = simulate_households(n=500, seed=2)
        with pytest.raises(ConvergenceError) as excinfo:
            PropensityModel("net_num", CONFOUNDERS, max_iter=1).fit(df)
        assert excinfo.value.coefficients

    def test_unfitted_predict_raises(self):
        with pytest.raises(RuntimeError, match="fit"):
            PropensityModel("net_num", CONFOUNDERS).predict(simulate_households(n=10))

    def test_single_class_raises(self):
        df = simulate_households(n=100).assign(net_num=1)
        with pytest.raises(ValueError, match="both 0 and 1"):
            PropensityModel("net_num", CONFOUNDERS).fit(df)

    def test_non_binary_raises(self):
        df = simulate_households(n=100).assign(net_num=lambda d: d["net_num"] + 1)
        with pytest.raises(ValueError, match="binary"):
            PropensityModel("net_num", CONFOUNDERS).fit(df)

    def test_missing_column_raises(self):
        with pytest.raises(ValueError, match="not found"):
            PropensityModel("net_num", ["nope"]).fit(simulate_households(n=50))

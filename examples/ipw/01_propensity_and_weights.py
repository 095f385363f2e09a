"""
Propensity scores and inverse probability weights
=================================================
Fits the logistic propensity model, turns scores into ATE weights, and shows
the effect of capping extreme weights.
"""

from bednets import (
    IPWConfig, PropensityModel, add_ipw, simulate_households, weighted_regression,
)

df = simulate_households(n=3_000, confounding=2.0, seed=8)

model = PropensityModel("net_num", ["income", "temperature", "health"]).fit(df)
print(model.summary())

weighted = add_ipw(model.score(df), "net_num", config=IPWConfig(truncate_at=10))
print(weighted[["propensity", "ipw", "ipw_truncated"]].describe())

for column in ("ipw", "ipw_truncated"):
    fit = weighted_regression(weighted, "malaria_risk", ["net_num"], weights=column)
    print(f"{column:<14}: {fit.estimate('net_num'):.3f}  (SE {fit.std_err('net_num'):.3f})")

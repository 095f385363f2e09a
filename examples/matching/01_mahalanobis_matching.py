"""
Mahalanobis matching, with and without replacement
==================================================
With replacement a control can be reused, and the match weight records how
many times. Without replacement every weight is 1 but some treated units may
be left unmatched.
"""

from bednets import MatchingConfig, match, simulate_households, weighted_regression

CONFOUNDERS = ["health", "income", "temperature"]

df = simulate_households(n=2_000, seed=4)

for replace in (True, False):
    result = match(df, "net_num", CONFOUNDERS, MatchingConfig(replace=replace))
    matched = result.matched_data(df)
    print(result.summary())
    print(f"  Max match weight     : {matched['match_weight'].max():.0f}")

    unweighted = weighted_regression(matched, "malaria_risk", ["net_num"])
    weighted = weighted_regression(matched, "malaria_risk", ["net_num"], weights="match_weight")
    print(f"  Matched estimate     : {unweighted.estimate('net_num'):.3f}")
    print(f"  Matched + weights    : {weighted.estimate('net_num'):.3f}")

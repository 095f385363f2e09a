"""
Naive vs matching vs IPW
========================
Simulates a bed net survey where wealthier, healthier households in cooler
areas are both more likely to use nets and less exposed to malaria, then
compares how close each estimator gets to the true effect.
"""

import logging

from bednets import AnalysisConfig, CausalComparison, malaria_dag, simulate_households

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

TRUE_EFFECT = -10.0

# ── 1. Simulate data with confounding ─────────────────────────────────────────
df = simulate_households(n=3_000, effect=TRUE_EFFECT, seed=1)

# ── 2. DAG, configuration and estimation ──────────────────────────────────────
dag = malaria_dag()
print(dag)

config = AnalysisConfig.from_dict({"ipw.truncate_at": 10})
result = CausalComparison(dag, treatment="net_num", outcome="malaria_risk", config=config).fit(df)

# ── 3. Compare estimates ──────────────────────────────────────────────────────
print(result.summary())
for row in result.table.itertuples(index=False):
    print(f"{row.model_name:<20}: {row.estimate:>8.3f}  (bias: {row.estimate - TRUE_EFFECT:+.3f})")

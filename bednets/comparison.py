from __future__ import annotations

import logging

import pandas as pd

from .config import AnalysisConfig
from .dag import DAG
from .data import require_finite
from ._exceptions import IdentificationError, MatchingError
from .estimators.balance import balance_table, pooled_sd, standardized_mean_differences
from .estimators.ipw import IPW_COLUMN, TRUNCATED_COLUMN, add_ipw
from .estimators.matching import WEIGHT_COLUMN, MatchResult, match
from .estimators.propensity import PROPENSITY_COLUMN, PropensityModel
from .estimators.regression import COEF_COLUMNS, RegressionResult, weighted_regression

logger = logging.getLogger(__name__)

NAIVE = "Naive"
MATCHED = "Matched"
MATCHED_WEIGHTED = "Matched + weights"
IPW = "IPW"
IPW_TRUNCATED = "IPW truncated"

MODEL_ORDER = [NAIVE, MATCHED, MATCHED_WEIGHTED, IPW, IPW_TRUNCATED]


# Identifying assumptions, printed under every summary.
ASSUMPTIONS = [
    "Conditional exchangeability: no unobserved confounders given the adjustment set",
    "Positivity: every unit has a non-zero chance of each treatment level",
    "Correct specification of the propensity (logistic) model",
    "Stable Unit Treatment Value Assumption (SUTVA)",
]


# ── Result ─────────────────────────────────────────────────────────────────────

class ComparisonResult:
    """
    Treatment effect estimates from every model, side by side.

    ``table`` lists the treatment coefficient of each model in the fixed
    order Naive, Matched, Matched + weights, IPW, IPW truncated (the last
    only when a truncation cap was configured).
    """

    def __init__(
        self,
        models: dict[str, RegressionResult],
        match_result: MatchResult,
        propensity_model: PropensityModel,
        weighted_data: pd.DataFrame,
        matched_data: pd.DataFrame,
        balance: pd.DataFrame,
        treatment: str,
        outcome: str,
        adjustment_set: set[str],
        config: AnalysisConfig,
    ) -> None:
        self._models = models
        self._match_result = match_result
        self._propensity_model = propensity_model
        self._weighted_data = weighted_data
        self._matched_data = matched_data
        self._balance = balance
        self._treatment = treatment
        self._outcome = outcome
        self._adjustment_set = adjustment_set
        self._config = config

    @property
    def table(self) -> pd.DataFrame:
        """Coefficient table: ``model_name, term, estimate, std_error, conf_low, conf_high, p_value``."""
        frames = [
            self._models[name].coef_table(name, [self._treatment])
            for name in MODEL_ORDER if name in self._models
        ]
        return pd.concat(frames, ignore_index=True)[COEF_COLUMNS]

    @property
    def models(self) -> dict[str, RegressionResult]:
        """Model name → fitted regression, in display order."""
        return {name: self._models[name] for name in MODEL_ORDER if name in self._models}

    def effect(self, model_name: str) -> float:
        """Treatment coefficient of one model."""
        if model_name not in self._models:
            raise KeyError(f"No model named {model_name!r}; available: {list(self.models)}")
        return self._models[model_name].estimate(self._treatment)

    @property
    def match_result(self) -> MatchResult:
        return self._match_result

    @property
    def propensity_model(self) -> PropensityModel:
        return self._propensity_model

    @property
    def matched_data(self) -> pd.DataFrame:
        """Matched rows with their ``match_weight``."""
        return self._matched_data.copy()

    @property
    def weighted_data(self) -> pd.DataFrame:
        """Full sample with ``propensity``, ``ipw`` (and ``ipw_truncated``) columns."""
        return self._weighted_data.copy()

    @property
    def balance(self) -> pd.DataFrame:
        """Standardised mean differences of each confounder, per view."""
        return self._balance.copy()

    @property
    def adjustment_set(self) -> set[str]:
        return set(self._adjustment_set)

    @property
    def assumptions(self) -> list[str]:
        return list(ASSUMPTIONS)

    def summary(self) -> str:
        adj = sorted(self._adjustment_set)
        lines = [
            "",
            f"Causal Effect Comparison: {self._treatment} → {self._outcome}",
            f"  Adjustment set: {', '.join(adj) if adj else '(none)'}",
            "─" * 66,
            f"  {'Model':<20}{'Estimate':>12}{'Std. error':>12}   95% CI",
        ]
        for row in self.table.itertuples(index=False):
            lines.append(
                f"  {row.model_name:<20}{row.estimate:>12.4f}{row.std_error:>12.4f}"
                f"   [{row.conf_low:.4f}, {row.conf_high:.4f}]"
            )
        m = self._match_result
        lines += [
            "",
            f"  Matching: {m.n_matched} treated matched to {m.n_controls} distinct controls "
            f"({'with' if self._config.matching.replace else 'without'} replacement, "
            f"{self._config.matching.distance} distance)",
            f"  Weights : {self._config.ipw.estimand.upper()} inverse probability weights"
            + (f", truncated at {self._config.ipw.truncate_at:g}" if self._config.ipw.truncate_at else ""),
            "",
            "  Covariate balance (standardised mean difference)",
            "  " + "┄" * 48,
        ]
        for line in self._balance.round(3).to_string().splitlines():
            lines.append(f"  {line}")
        lines += ["", "  Assumptions", "  " + "┄" * 48]
        for a in ASSUMPTIONS:
            lines.append(f"  - {a}")
        lines.append("")
        return "\n".join(lines)

    def __repr__(self) -> str:
        return self.summary()


# ── Pipeline ───────────────────────────────────────────────────────────────────

class CausalComparison:
    """
    Estimate a binary treatment effect three ways and compare them:

    1. **Naive**: ``outcome ~ treatment`` on the full sample.
    2. **Matching**: nearest-neighbour Mahalanobis matching on the adjustment
       set, then ``outcome ~ treatment`` on the matched rows, both unweighted
       and with match weights.
    3. **IPW**: logistic propensity model on the adjustment set, then
       ``outcome ~ treatment`` weighted by inverse probability weights, and
       by truncated weights when ``ipw.truncate_at`` is configured.

    The adjustment set comes from the DAG (backdoor criterion) unless
    ``config.adjustment_set`` overrides it. Every stage works on a copy; the
    input frame is never modified.

    Example::

        from bednets import CausalComparison, malaria_dag

        result = CausalComparison(
            malaria_dag(), treatment="net_num", outcome="malaria_risk"
        ).fit(df)
        print(result.table)
    """

    def __init__(
        self,
        dag: DAG | None,
        treatment: str,
        outcome: str,
        config: AnalysisConfig | None = None,
        id_column: str = "id",
    ) -> None:
        self._dag = dag
        self._treatment = treatment
        self._outcome = outcome
        self._config = config or AnalysisConfig()
        self._id_column = id_column
        self._validate_inputs()

    def _validate_inputs(self) -> None:
        if self._treatment == self._outcome:
            raise ValueError("Treatment and outcome must be different variables.")
        if self._dag is None:
            if self._config.adjustment_set is None:
                raise ValueError("Either a DAG or config.adjustment_set is required.")
            return
        nodes = self._dag.nodes
        for label, var in [("Treatment", self._treatment), ("Outcome", self._outcome)]:
            if var not in nodes:
                raise ValueError(
                    f"{label} '{var}' is not a node in the DAG. "
                    f"Known nodes: {sorted(nodes)}"
                )

    def _identify(self, data_columns: set[str]) -> set[str]:
        override = self._config.adjustment_set
        if override is not None:
            missing = sorted(set(override) - data_columns)
            if missing:
                raise IdentificationError(
                    f"Configured adjustment set columns not found in dataframe: {missing}"
                )
            return set(override)
        return self._dag.adjustment_set(self._treatment, self._outcome, observed=data_columns)

    def fit(self, data: pd.DataFrame) -> ComparisonResult:
        """
        Run every model on ``data``.

        Raises
        ------
        ``DataError``
            If the id, treatment, outcome or an adjustment-set column holds a
            missing, non-numeric or infinite value. Names the first bad row.
        ``IdentificationError``
            If the backdoor criterion cannot be met with the observed columns.
        ``MatchingError``
            If the adjustment set is empty, the covariance is singular or no
            treated unit found a match.
        ``ConvergenceError``
            If the propensity model fails to converge or separates.
        ``WeightError``
            If a propensity score is 0 or 1 and no clipping was configured.
        ``ValueError``
            If required columns are missing or treatment is not 0/1.
        """
        T, Y, cfg = self._treatment, self._outcome, self._config
        data_columns = set(data.columns)
        for label, var in [("Treatment", T), ("Outcome", Y), ("Id", self._id_column)]:
            if var not in data_columns:
                raise ValueError(f"{label} column '{var}' not found in dataframe.")
        if data[T].dtype == bool:
            # Formulas treat bool columns as categorical; regress on the 0/1 form.
            data = data.assign(**{T: data[T].astype(int)})

        adjustment_set = self._identify(data_columns)
        confounders = sorted(adjustment_set)
        logger.info("Adjustment set for %s → %s: %s", T, Y, confounders)
        # statsmodels drops NaN rows silently; every model must see the same rows.
        require_finite(data, [T, Y, *confounders], id_column=self._id_column)
        if not confounders:
            raise MatchingError(
                f"The adjustment set for '{T}' → '{Y}' is empty; there is "
                f"nothing to match on. The naive estimate is already unconfounded."
            )

        match_result = match(data, T, confounders, cfg.matching, id_column=self._id_column)
        if match_result.is_empty:
            raise MatchingError(
                f"Matching on {confounders} produced no matches; the treated or "
                f"control group is empty."
            )
        matched = match_result.matched_data(data)

        models: dict[str, RegressionResult] = {}
        models[NAIVE] = weighted_regression(data, Y, [T])
        models[MATCHED] = weighted_regression(matched, Y, [T])
        models[MATCHED_WEIGHTED] = weighted_regression(matched, Y, [T], weights=WEIGHT_COLUMN)

        propensity_model = PropensityModel(T, confounders).fit(data)
        weighted = add_ipw(propensity_model.score(data), T, PROPENSITY_COLUMN, cfg.ipw)
        models[IPW] = weighted_regression(weighted, Y, [T], weights=IPW_COLUMN)
        if cfg.ipw.truncate_at is not None:
            models[IPW_TRUNCATED] = weighted_regression(weighted, Y, [T], weights=TRUNCATED_COLUMN)

        scale = pooled_sd(data, T, confounders)
        balance = balance_table({
            "Raw": standardized_mean_differences(data, T, confounders, scale=scale),
            "Matched": standardized_mean_differences(
                matched, T, confounders, weights=WEIGHT_COLUMN, scale=scale,
            ),
            "IPW": standardized_mean_differences(weighted, T, confounders, weights=IPW_COLUMN, scale=scale),
        })

        return ComparisonResult(
            models=models,
            match_result=match_result,
            propensity_model=propensity_model,
            weighted_data=weighted,
            matched_data=matched,
            balance=balance,
            treatment=T,
            outcome=Y,
            adjustment_set=adjustment_set,
            config=cfg,
        )

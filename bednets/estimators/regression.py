from __future__ import annotations

import logging
from typing import Sequence

import numpy as np
import pandas as pd
import statsmodels.formula.api as smf

from .._exceptions import WeightError

logger = logging.getLogger(__name__)

COEF_COLUMNS = ["model_name", "term", "estimate", "std_error", "conf_low", "conf_high", "p_value"]


class RegressionResult:
    """
    A fitted (optionally weighted) least squares regression.

    Thin wrapper over a statsmodels result that exposes per-term estimates and
    a tidy coefficient table. The same class backs the naive, matched and IPW
    models, which differ only in the weights they were fitted with.
    """

    def __init__(self, result, outcome: str, predictors: list[str], weighted: bool) -> None:
        self._result = result
        self._outcome = outcome
        self._predictors = list(predictors)
        self._weighted = weighted

    @property
    def params(self) -> pd.Series:
        """All coefficients, intercept included."""
        return self._result.params.copy()

    @property
    def predictors(self) -> list[str]:
        return list(self._predictors)

    @property
    def nobs(self) -> int:
        return int(self._result.nobs)

    @property
    def weighted(self) -> bool:
        """``True`` if the model was fitted with non-unit weights."""
        return self._weighted

    def estimate(self, term: str) -> float:
        return float(self._result.params[term])

    def std_err(self, term: str) -> float:
        return float(self._result.bse[term])

    def conf_int(self, term: str, alpha: float = 0.05) -> tuple[float, float]:
        """Confidence interval for ``term`` (95% by default)."""
        ci = self._result.conf_int(alpha=alpha)
        return (float(ci.loc[term, 0]), float(ci.loc[term, 1]))

    def pvalue(self, term: str) -> float:
        return float(self._result.pvalues[term])

    @property
    def statsmodels_result(self):
        """The underlying statsmodels result, for full diagnostics."""
        return self._result

    def coef_table(self, model_name: str, terms: Sequence[str] | None = None) -> pd.DataFrame:
        """
        One row per term with ``model_name, term, estimate, std_error,
        conf_low, conf_high, p_value``. Defaults to the predictors only.
        """
        terms = list(terms) if terms is not None else self._predictors
        rows = []
        for term in terms:
            lo, hi = self.conf_int(term)
            rows.append({
                "model_name": model_name,
                "term": term,
                "estimate": self.estimate(term),
                "std_error": self.std_err(term),
                "conf_low": lo,
                "conf_high": hi,
                "p_value": self.pvalue(term),
            })
        return pd.DataFrame(rows, columns=COEF_COLUMNS)

    def summary(self) -> str:
        kind = "Weighted least squares" if self._weighted else "Ordinary least squares"
        lines = [
            "",
            f"{kind}: {self._outcome} ~ {' + '.join(self._predictors)}",
            "─" * 50,
        ]
        for term in self._predictors:
            lo, hi = self.conf_int(term)
            lines.append(
                f"  {term:<20}: {self.estimate(term):>10.4f}  "
                f"(SE {self.std_err(term):.4f}, 95% CI [{lo:.4f}, {hi:.4f}])"
            )
        lines += [f"  N = {self.nobs}", ""]
        return "\n".join(lines)

    def __repr__(self) -> str:
        return self.summary()


def weighted_regression(
    data: pd.DataFrame,
    outcome: str,
    predictors: Sequence[str],
    weights: str | pd.Series | np.ndarray | None = None,
) -> RegressionResult:
    """
    Fit ``outcome ~ predictors`` by weighted least squares.

    Parameters
    ----------
    data : pd.DataFrame
        Must contain the outcome and predictor columns.
    outcome : str
        Outcome column.
    predictors : sequence of str
        Predictor columns. An intercept is always included.
    weights : str, array-like or None
        A column name of ``data`` or a vector aligned with its rows. ``None``
        gives every row weight 1, which reproduces ordinary least squares.

    Raises
    ------
    ``WeightError``
        If any weight is negative or non-finite, or all weights are zero.
    ``ValueError``
        If a column is missing or no predictors are given.
    """
    predictors = list(predictors)
    if not predictors:
        raise ValueError("At least one predictor is required.")
    for col in [outcome, *predictors]:
        if col not in data.columns:
            raise ValueError(f"Column '{col}' not found in dataframe.")

    if weights is None:
        w = np.ones(len(data))
    elif isinstance(weights, str):
        if weights not in data.columns:
            raise ValueError(f"Weight column '{weights}' not found in dataframe.")
        w = data[weights].to_numpy(dtype=float)
    else:
        w = np.asarray(weights, dtype=float)
        if w.shape != (len(data),):
            raise ValueError(
                f"Weights must have one entry per row: got {w.shape}, expected ({len(data)},)."
            )

    bad = ~np.isfinite(w) | (w < 0)
    if bad.any():
        rows = list(data.index[bad])
        raise WeightError(
            f"{len(rows)} weight(s) are negative or non-finite (rows: {rows[:10]}).",
            rows=rows,
        )
    if not (w > 0).any():
        raise WeightError("All weights are zero; nothing to fit.")

    rhs = " + ".join(predictors)
    result = smf.wls(f"{outcome} ~ {rhs}", data=data, weights=w).fit()
    weighted = not np.all(w == 1.0)
    logger.debug("Fitted %s ~ %s on %d rows (weighted=%s)", outcome, rhs, len(data), weighted)
    return RegressionResult(result, outcome, predictors, weighted)

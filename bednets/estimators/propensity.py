from __future__ import annotations

import logging
import warnings
from typing import Sequence

import numpy as np
import pandas as pd
import statsmodels.formula.api as smf
from statsmodels.tools.sm_exceptions import (
    ConvergenceWarning,
    PerfectSeparationError,
    PerfectSeparationWarning,
)

from .._exceptions import ConvergenceError

logger = logging.getLogger(__name__)

PROPENSITY_COLUMN = "propensity"

# Fitted probabilities outside this band are reported as poor overlap.
_OVERLAP_BAND = (0.01, 0.99)


class PropensityModel:
    """
    Logistic regression of a binary treatment on confounders, fitted by
    Newton–Raphson maximum likelihood.

    A fit that does not converge within ``max_iter`` iterations, or that shows
    signs of perfect separation (diverging coefficients, a linear predictor
    larger than ``separation_threshold`` in absolute value), raises
    ``ConvergenceError`` instead of returning an untrustworthy model.

    Example::

        model = PropensityModel("net_num", ["income", "temperature", "health"]).fit(df)
        scored = model.score(df)          # copy of df with a 'propensity' column
    """

    def __init__(
        self,
        treatment: str,
        confounders: Sequence[str],
        max_iter: int = 35,
        tol: float = 1e-8,
        separation_threshold: float = 30.0,
    ) -> None:
        if max_iter < 1:
            raise ValueError("max_iter must be at least 1.")
        if separation_threshold <= 0:
            raise ValueError("separation_threshold must be positive.")
        self._treatment = treatment
        self._confounders = sorted(confounders)
        self._max_iter = max_iter
        self._tol = tol
        self._separation_threshold = separation_threshold
        self._result = None

    # ── Fitting ───────────────────────────────────────────────────────────────

    def fit(self, data: pd.DataFrame) -> PropensityModel:
        """
        Fit the model on ``data`` and return self.

        Raises
        ------
        ``ConvergenceError``
            On non-convergence or separation.
        ``ValueError``
            If a column is missing or the treatment is not binary with both
            classes present.
        """
        T = self._treatment
        for col in [T, *self._confounders]:
            if col not in data.columns:
                raise ValueError(f"Column '{col}' not found in dataframe.")

        t_vals = set(pd.unique(data[T].dropna()))
        if not t_vals <= {0, 1}:
            raise ValueError(f"Treatment '{T}' must be binary (0/1). Found values: {sorted(t_vals)}")
        if len({int(v) for v in t_vals}) < 2:
            raise ValueError(f"Treatment '{T}' must contain both 0 and 1. Found only: {t_vals}")

        rhs = " + ".join(self._confounders) if self._confounders else "1"
        frame = data[[T, *self._confounders]].assign(**{T: data[T].astype(float)})

        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            try:
                result = smf.logit(f"{T} ~ {rhs}", data=frame).fit(
                    method="newton", maxiter=self._max_iter, tol=self._tol, disp=0,
                )
            except PerfectSeparationError as exc:
                raise ConvergenceError(
                    f"Propensity model for '{T}' shows perfect separation: {exc}"
                ) from exc
            except np.linalg.LinAlgError as exc:
                raise ConvergenceError(
                    f"Propensity model for '{T}' has a singular Hessian: {exc}"
                ) from exc

        iterations = int(result.mle_retvals.get("iterations", self._max_iter))
        coefs = {k: float(v) for k, v in result.params.items()}

        if any(issubclass(w.category, PerfectSeparationWarning) for w in caught):
            raise ConvergenceError(
                f"Propensity model for '{T}' shows perfect separation after "
                f"{iterations} iterations; coefficients diverge: {_fmt_coefs(coefs)}",
                iterations=iterations,
                coefficients=coefs,
            )

        if not all(np.isfinite(list(coefs.values()))):
            raise ConvergenceError(
                f"Propensity model for '{T}' produced non-finite coefficients: {_fmt_coefs(coefs)}",
                iterations=iterations,
                coefficients=coefs,
            )

        linear = np.asarray(result.fittedvalues, dtype=float)
        if np.max(np.abs(linear)) > self._separation_threshold:
            raise ConvergenceError(
                f"Propensity model for '{T}' diverged: linear predictor reaches "
                f"{np.max(np.abs(linear)):.1f} (threshold {self._separation_threshold}), "
                f"which indicates quasi-complete separation. Coefficients: {_fmt_coefs(coefs)}",
                iterations=iterations,
                coefficients=coefs,
            )

        if not result.mle_retvals.get("converged", False):
            raise ConvergenceError(
                f"Propensity model for '{T}' did not converge within "
                f"{self._max_iter} iterations. Coefficients: {_fmt_coefs(coefs)}",
                iterations=iterations,
                coefficients=coefs,
            )

        for w in caught:
            if issubclass(w.category, ConvergenceWarning):
                logger.warning("Propensity fit: %s", w.message)

        self._result = result
        logger.info(
            "Propensity model %s ~ %s converged in %d iterations", T, rhs, iterations,
        )

        lo, hi = _OVERLAP_BAND
        ps = self.predict(data)
        extreme = int(((ps < lo) | (ps > hi)).sum())
        if extreme:
            logger.warning(
                "%d of %d propensity scores fall outside [%.2f, %.2f]; "
                "weights for these rows will be large (poor overlap)",
                extreme, len(ps), lo, hi,
            )
        return self

    # ── Prediction ────────────────────────────────────────────────────────────

    def _require_fit(self):
        if self._result is None:
            raise RuntimeError("PropensityModel has not been fitted; call fit() first.")
        return self._result

    def predict(self, data: pd.DataFrame) -> pd.Series:
        """
        Probability of treatment for every row, ``1 / (1 + exp(-β·x))``,
        indexed like ``data``.
        """
        result = self._require_fit()
        missing = [c for c in self._confounders if c not in data.columns]
        if missing:
            raise ValueError(f"Columns not found in dataframe: {missing}")
        linear = np.full(len(data), float(result.params.get("Intercept", 0.0)))
        for col in self._confounders:
            linear += float(result.params[col]) * data[col].to_numpy(dtype=float)
        return pd.Series(1.0 / (1.0 + np.exp(-linear)), index=data.index, name=PROPENSITY_COLUMN)

    def score(self, data: pd.DataFrame) -> pd.DataFrame:
        """Copy of ``data`` with a ``propensity`` column added."""
        out = data.copy()
        out[PROPENSITY_COLUMN] = self.predict(data)
        return out

    # ── Introspection ─────────────────────────────────────────────────────────

    @property
    def params(self) -> pd.Series:
        """Fitted coefficients, intercept included."""
        return self._require_fit().params.copy()

    @property
    def iterations(self) -> int:
        return int(self._require_fit().mle_retvals.get("iterations", 0))

    @property
    def converged(self) -> bool:
        return bool(self._require_fit().mle_retvals.get("converged", False))

    @property
    def confounders(self) -> list[str]:
        return list(self._confounders)

    @property
    def statsmodels_result(self):
        """The underlying statsmodels Logit result, for full diagnostics."""
        return self._require_fit()

    def summary(self) -> str:
        result = self._require_fit()
        lines = [
            "",
            f"Propensity model: {self._treatment} ~ {' + '.join(self._confounders) or '1'}",
            "─" * 50,
        ]
        for term, value in result.params.items():
            lines.append(f"  {term:<20}: {value:>10.4f}  (SE {result.bse[term]:.4f})")
        lines += [
            f"  Iterations           : {self.iterations}",
            f"  Pseudo R²            : {result.prsquared:.4f}",
            "",
        ]
        return "\n".join(lines)

    def __repr__(self) -> str:
        if self._result is None:
            return f"PropensityModel({self._treatment!r}, {self._confounders!r}) (unfitted)"
        return self.summary()


def _fmt_coefs(coefs: dict[str, float]) -> str:
    return ", ".join(f"{k}={v:.3g}" for k, v in coefs.items())

from __future__ import annotations

import logging
from typing import Sequence

import numpy as np
import pandas as pd
from scipy.spatial.distance import cdist

from ..config import MatchingConfig
from .._exceptions import MatchingError

logger = logging.getLogger(__name__)

WEIGHT_COLUMN = "match_weight"

# Reciprocal condition number below which Σ is treated as singular.
_RCOND_MIN = 1e-12


# ── Result ─────────────────────────────────────────────────────────────────────

class MatchResult:
    """
    The outcome of nearest-neighbour covariate matching.

    ``matches`` maps each matched treated id to the list of control ids it was
    paired with. ``weights`` holds one entry per row of the matched dataset:
    1 for every matched treated unit, and for each control the number of
    times it was selected. These are frequency weights that undo the
    double counting introduced by matching with replacement; they are not
    causal weights. Without replacement every weight is exactly 1.
    """

    def __init__(
        self,
        matches: dict,
        unmatched_treated: list,
        treatment: str,
        confounders: list[str],
        config: MatchingConfig,
        id_column: str,
    ) -> None:
        self._matches = matches
        self._unmatched_treated = unmatched_treated
        self._treatment = treatment
        self._confounders = confounders
        self._config = config
        self._id_column = id_column

        counts: dict = {}
        for controls in matches.values():
            for c in controls:
                counts[c] = counts.get(c, 0) + 1
        weights = {t: 1.0 for t in matches}
        weights.update({c: float(k) for c, k in counts.items()})
        self._weights = pd.Series(weights, name=WEIGHT_COLUMN, dtype=float)
        self._weights.index.name = id_column
        self._control_ids = set(counts)

    @property
    def matches(self) -> dict:
        """Treated id → list of matched control ids."""
        return {t: list(c) for t, c in self._matches.items()}

    @property
    def weights(self) -> pd.Series:
        """Match weight per matched row, indexed by id."""
        return self._weights.copy()

    @property
    def n_matched(self) -> int:
        """Number of treated units that found a control."""
        return len(self._matches)

    @property
    def n_controls(self) -> int:
        """Number of distinct controls used."""
        return len(self._control_ids)

    @property
    def unmatched_treated(self) -> list:
        """Treated ids left without a control (pool exhausted)."""
        return list(self._unmatched_treated)

    @property
    def is_empty(self) -> bool:
        return not self._matches

    @property
    def confounders(self) -> list[str]:
        return list(self._confounders)

    @property
    def config(self) -> MatchingConfig:
        return self._config

    def control_weight_total(self) -> float:
        """Sum of control weights; equals ``n_matched`` for 1:1 matching."""
        return float(self._weights.loc[list(self._control_ids)].sum()) if self._control_ids else 0.0

    def matched_data(self, data: pd.DataFrame) -> pd.DataFrame:
        """
        Rows of ``data`` that took part in a match, each once, with a
        ``match_weight`` column. Returns a copy in the original row order.
        """
        ids = data[self._id_column]
        keep = ids.isin(self._weights.index)
        out = data.loc[keep].copy()
        out[WEIGHT_COLUMN] = out[self._id_column].map(self._weights).to_numpy(dtype=float)
        return out

    def summary(self) -> str:
        cfg = self._config
        lines = [
            "",
            f"Matching on: {', '.join(self._confounders)}",
            "─" * 50,
            f"  Method               : {cfg.method} neighbour, {cfg.distance} distance "
            f"({'with' if cfg.replace else 'without'} replacement)",
            f"  Covariance           : {cfg.covariance}",
            f"  Treated matched      : {self.n_matched}",
            f"  Treated unmatched    : {len(self._unmatched_treated)}",
            f"  Distinct controls    : {self.n_controls}",
            "",
        ]
        return "\n".join(lines)

    def __repr__(self) -> str:
        return self.summary()


# ── Matching ───────────────────────────────────────────────────────────────────

def _inverse_covariance(X: np.ndarray, confounders: Sequence[str]) -> np.ndarray:
    if X.shape[0] <= X.shape[1]:
        raise MatchingError(
            f"Cannot estimate the covariance of {list(confounders)} from "
            f"{X.shape[0]} rows; Mahalanobis distance is undefined."
        )
    cov = np.atleast_2d(np.cov(X, rowvar=False, ddof=1))
    logger.debug("Mahalanobis covariance:\n%s", cov)
    if not np.all(np.isfinite(cov)) or np.linalg.cond(cov) * _RCOND_MIN > 1.0:
        raise MatchingError(
            f"Covariance matrix of {list(confounders)} is singular; "
            f"Mahalanobis distance is undefined. Drop collinear or constant "
            f"confounders, or request distance='euclidean' explicitly."
        )
    return np.linalg.inv(cov)


def match(
    data: pd.DataFrame,
    treatment: str,
    confounders: Sequence[str],
    config: MatchingConfig | None = None,
    id_column: str = "id",
) -> MatchResult:
    """
    Nearest-neighbour matching of treated to control units on ``confounders``.

    Treated units are processed in ascending ``id_column`` order. Each is paired
    with the closest available control; ties go to the control with the
    smallest id. With ``config.replace`` a control can serve many treated
    units, otherwise it leaves the pool once used and treated units that find
    the pool empty stay unmatched.

    Empty treated or control groups give an empty result, not an error; the
    caller decides whether that is acceptable.

    Raises
    ------
    ``MatchingError``
        If the Mahalanobis covariance matrix is singular.
    ``ValueError``
        If columns are missing, ids are not unique, treatment is not 0/1 or a
        confounder value is missing, non-numeric or infinite.
    """
    config = config or MatchingConfig()
    confounders = list(confounders)
    if not confounders:
        raise ValueError("At least one confounder is required for covariate matching.")
    for col in [id_column, treatment, *confounders]:
        if col not in data.columns:
            raise ValueError(f"Column '{col}' not found in dataframe.")
    if data[id_column].duplicated().any():
        raise ValueError(f"Id column '{id_column}' must be unique.")

    t_vals = set(pd.unique(data[treatment]))
    if not t_vals <= {0, 1}:
        raise ValueError(
            f"Treatment '{treatment}' must be binary (0/1). Found values: {sorted(t_vals)}"
        )

    ordered = data.sort_values(id_column, kind="mergesort")
    X = ordered[confounders].apply(pd.to_numeric, errors="coerce").to_numpy(dtype=float)
    not_finite = ~np.isfinite(X).all(axis=1)
    if not_finite.any():
        bad_ids = ordered.loc[not_finite, id_column].tolist()
        raise ValueError(
            f"Confounders {confounders} must be finite numbers. "
            f"Missing, non-numeric or infinite values for ids: {bad_ids}"
        )

    is_treated = ordered[treatment].to_numpy() == 1
    treated = ordered.loc[is_treated]
    control = ordered.loc[~is_treated]
    treated_ids = treated[id_column].tolist()
    control_ids = np.asarray(control[id_column].tolist(), dtype=object)

    if len(treated) == 0 or len(control) == 0:
        logger.warning(
            "Matching skipped: %d treated and %d control units available",
            len(treated), len(control),
        )
        return MatchResult({}, treated_ids, treatment, confounders, config, id_column)

    X_t = X[is_treated]
    X_c = X[~is_treated]

    if config.distance == "mahalanobis":
        if config.covariance == "pooled":
            basis = X
        elif config.covariance == "control":
            basis = X_c
        else:
            basis = X_t
        VI = _inverse_covariance(basis, confounders)
        dist = cdist(X_t, X_c, metric="mahalanobis", VI=VI)
    else:
        dist = cdist(X_t, X_c, metric="euclidean")

    matches: dict = {}
    unmatched: list = []
    if config.replace:
        # argmin returns the first minimum, i.e. the lowest control id.
        best = np.argmin(dist, axis=1)
        for i, t_id in enumerate(treated_ids):
            matches[t_id] = [control_ids[best[i]]]
    else:
        available = np.ones(len(control_ids), dtype=bool)
        for i, t_id in enumerate(treated_ids):
            if not available.any():
                unmatched.append(t_id)
                continue
            row = np.where(available, dist[i], np.inf)
            j = int(np.argmin(row))
            matches[t_id] = [control_ids[j]]
            available[j] = False

    if unmatched:
        logger.warning("%d treated unit(s) left unmatched: control pool exhausted", len(unmatched))

    result = MatchResult(matches, unmatched, treatment, confounders, config, id_column)
    logger.info(
        "Matched %d of %d treated units to %d distinct controls",
        result.n_matched, len(treated_ids), result.n_controls,
    )
    return result

"""
Inverse probability weights from propensity scores.

Three estimands are supported, each a closed-form transform of the treatment
indicator ``T`` and propensity ``p``:

* ``ate``: ``T/p + (1-T)/(1-p)``
* ``att``: ``T + (1-T)·p/(1-p)``
* ``atc``: ``T·(1-p)/p + (1-T)``

Only one is ever applied to a given weight vector. Truncation is a hard cap,
``min(w, cap)``.
"""
from __future__ import annotations

import logging

import numpy as np
import pandas as pd

from ..config import IPWConfig, ESTIMANDS
from .._exceptions import WeightError

logger = logging.getLogger(__name__)

IPW_COLUMN = "ipw"
TRUNCATED_COLUMN = "ipw_truncated"


def inverse_probability_weights(
    treatment,
    propensity,
    estimand: str = "ate",
    clip: tuple[float, float] | None = None,
) -> pd.Series:
    """
    Compute inverse probability weights.

    Parameters
    ----------
    treatment : array-like of 0/1
    propensity : array-like of float
        Must lie strictly inside (0, 1) unless ``clip`` is given.
    estimand : {"ate", "att", "atc"}
    clip : (lo, hi), optional
        Clip propensities into ``[lo, hi]`` before weighting instead of
        failing on degenerate scores.

    Returns
    -------
    pd.Series
        Named ``ipw``, indexed like ``propensity`` if it is a Series.

    Raises
    ------
    ``WeightError``
        If a propensity is non-finite, or is 0 or 1 (or outside (0, 1)) and
        no ``clip`` was requested. ``rows`` lists the offending labels.
    """
    if estimand not in ESTIMANDS:
        raise ValueError(f"estimand must be one of {list(ESTIMANDS)}, got {estimand!r}")

    index = propensity.index if isinstance(propensity, pd.Series) else None
    p = np.asarray(propensity, dtype=float)
    t = np.asarray(treatment, dtype=float)
    if p.shape != t.shape:
        raise ValueError(f"treatment and propensity differ in shape: {t.shape} vs {p.shape}")
    if index is None:
        index = pd.RangeIndex(len(p))

    bad_t = ~np.isin(t, (0.0, 1.0))
    if bad_t.any():
        raise ValueError(f"Treatment must be 0/1; found {sorted(set(t[bad_t].tolist()))}")

    non_finite = ~np.isfinite(p)
    if non_finite.any():
        rows = list(index[non_finite])
        raise WeightError(f"Non-finite propensity score in rows {rows[:10]}", rows=rows)

    if clip is not None:
        lo, hi = clip
        if not 0.0 < lo < hi < 1.0:
            raise ValueError(f"clip must satisfy 0 < lo < hi < 1, got {clip!r}")
        n_clipped = int(((p < lo) | (p > hi)).sum())
        if n_clipped:
            logger.warning("Clipped %d propensity score(s) into [%g, %g]", n_clipped, lo, hi)
        p = np.clip(p, lo, hi)
    else:
        degenerate = (p <= 0.0) | (p >= 1.0)
        if degenerate.any():
            rows = list(index[degenerate])
            raise WeightError(
                f"{len(rows)} propensity score(s) are 0 or 1, so the inverse "
                f"probability weight is undefined (rows: {rows[:10]}). The "
                f"propensity model is degenerate; revisit it or pass clip=(lo, hi).",
                rows=rows,
            )

    if estimand == "ate":
        w = t / p + (1.0 - t) / (1.0 - p)
    elif estimand == "att":
        w = t + (1.0 - t) * p / (1.0 - p)
    else:
        w = t * (1.0 - p) / p + (1.0 - t)

    # Guards against overflow for p within machine epsilon of 0 or 1.
    if not np.all(np.isfinite(w)):
        rows = list(index[~np.isfinite(w)])
        raise WeightError(f"Non-finite inverse probability weight in rows {rows[:10]}", rows=rows)

    return pd.Series(w, index=index, name=IPW_COLUMN)


def truncate_weights(weights, cap: float) -> pd.Series:
    """
    Cap weights at ``cap``. Idempotent: truncating twice at the same cap is
    the same as truncating once.
    """
    cap = float(cap)
    if not np.isfinite(cap) or cap <= 0:
        raise ValueError(f"Truncation cap must be a positive number, got {cap!r}")
    w = weights if isinstance(weights, pd.Series) else pd.Series(np.asarray(weights, dtype=float))
    n_capped = int((w > cap).sum())
    if n_capped:
        logger.info("Truncated %d weight(s) at %g", n_capped, cap)
    return w.clip(upper=cap).rename(TRUNCATED_COLUMN)


def add_ipw(
    data: pd.DataFrame,
    treatment: str,
    propensity_column: str = "propensity",
    config: IPWConfig | None = None,
) -> pd.DataFrame:
    """
    Copy of ``data`` with an ``ipw`` column, and an ``ipw_truncated`` column
    when ``config.truncate_at`` is set.
    """
    config = config or IPWConfig()
    for col in [treatment, propensity_column]:
        if col not in data.columns:
            raise ValueError(f"Column '{col}' not found in dataframe.")

    out = data.copy()
    out[IPW_COLUMN] = inverse_probability_weights(
        out[treatment], out[propensity_column], estimand=config.estimand, clip=config.clip,
    )
    if config.truncate_at is not None:
        out[TRUNCATED_COLUMN] = truncate_weights(out[IPW_COLUMN], config.truncate_at)
    logger.info(
        "Computed %s weights: mean %.3f, max %.3f",
        config.estimand.upper(), out[IPW_COLUMN].mean(), out[IPW_COLUMN].max(),
    )
    return out

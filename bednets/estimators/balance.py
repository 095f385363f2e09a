from __future__ import annotations

from typing import Mapping, Sequence

import numpy as np
import pandas as pd

# |SMD| below this is conventionally read as balanced.
BALANCE_THRESHOLD = 0.1


def pooled_sd(data: pd.DataFrame, treatment: str, covariates: Sequence[str]) -> pd.Series:
    """
    sqrt((s²_treated + s²_control) / 2) for each covariate, unweighted.

    NaN when either group has fewer than two rows.
    """
    t = data[treatment].to_numpy() == 1
    if t.sum() < 2 or (~t).sum() < 2:
        return pd.Series(np.nan, index=list(covariates), dtype=float)
    out = {}
    for col in covariates:
        x = data[col].to_numpy(dtype=float)
        out[col] = float(np.sqrt((np.var(x[t], ddof=1) + np.var(x[~t], ddof=1)) / 2.0))
    return pd.Series(out, dtype=float)


def standardized_mean_differences(
    data: pd.DataFrame,
    treatment: str,
    covariates: Sequence[str],
    weights: str | np.ndarray | pd.Series | None = None,
    scale: pd.Series | None = None,
) -> pd.Series:
    """
    Weighted difference in covariate means between treated and control units,
    divided by a pooled standard deviation.

    Pass the ``scale`` of the unadjusted sample (see :func:`pooled_sd`) when
    comparing raw, matched and weighted views, so that every view shares the
    same denominator. Defaults to the pooled SD of ``data`` itself.

    A covariate whose scale is NaN, or zero while the means differ, gets a NaN
    SMD rather than a misleading 0.
    """
    covariates = list(covariates)
    t = data[treatment].to_numpy() == 1
    if weights is None:
        w = np.ones(len(data))
    elif isinstance(weights, str):
        w = data[weights].to_numpy(dtype=float)
    else:
        w = np.asarray(weights, dtype=float)
    if scale is None:
        scale = pooled_sd(data, treatment, covariates)

    out = {}
    for col in covariates:
        x = data[col].to_numpy(dtype=float)
        diff = np.average(x[t], weights=w[t]) - np.average(x[~t], weights=w[~t])
        sd = float(scale[col])
        if sd > 0:
            out[col] = diff / sd
        elif sd == 0 and diff == 0:
            out[col] = 0.0
        else:
            # No usable spread, or a group too small to estimate one.
            out[col] = np.nan
    return pd.Series(out, name="smd", dtype=float)


def balance_table(views: Mapping[str, pd.Series]) -> pd.DataFrame:
    """
    Side-by-side SMDs, one column per view (e.g. ``Raw``, ``Matched``, ``IPW``),
    one row per covariate.
    """
    return pd.DataFrame({name: smd for name, smd in views.items()})

"""
The household survey schema, the causal graph assumed for it, and a
simulator that produces data with the same shape and a known effect.
"""
from __future__ import annotations

import logging

import numpy as np
import pandas as pd

from .dag import DAG
from ._exceptions import DataError

logger = logging.getLogger(__name__)

TREATMENT = "net_num"
OUTCOME = "malaria_risk"

REQUIRED_COLUMNS = [
    "id", "malaria_risk", "net", "net_num", "eligible",
    "income", "temperature", "health", "household_size", "resistance",
]

# Columns that must lie within [0, 100].
BOUNDED_COLUMNS = ["malaria_risk", "health", "resistance"]

MALARIA_ADJUSTMENT_SET = frozenset({"income", "temperature", "health"})


def malaria_dag(treatment: str = TREATMENT) -> DAG:
    """
    The fixed causal graph for the bed net survey.

    ``treatment`` names the treatment node so the graph lines up with whichever
    column encodes net use (``net_num`` for the 0/1 form, ``net`` for the boolean).
    """
    dag = DAG()
    dag.assume("income").causes(treatment, OUTCOME, "health", "eligible")
    dag.assume("health").causes(treatment, OUTCOME)
    dag.assume("temperature").causes(treatment, OUTCOME, "resistance")
    dag.assume("resistance").causes(OUTCOME)
    dag.assume("household_size").causes("eligible", treatment)
    dag.assume("eligible").causes(treatment)
    dag.assume(treatment).causes(OUTCOME)
    return dag


def validate_households(data: pd.DataFrame) -> pd.DataFrame:
    """
    Check a household table against the survey schema and return a clean copy.

    The ``household`` column of the raw survey export is renamed to
    ``household_size``. Boolean columns are coerced to ``bool`` and
    ``net_num`` to ``int``.

    Raises
    ------
    ``DataError``
        On the first problem found, naming the row ``id`` and column. No
        partial result is returned.
    """
    df = data.rename(columns={"household": "household_size"}).copy()

    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise DataError(f"Missing required columns: {missing}")

    for col in REQUIRED_COLUMNS:
        nulls = df[col].isna()
        if nulls.any():
            _fail(df, nulls, col, "missing value")

    dupes = df["id"].duplicated()
    if dupes.any():
        _fail(df, dupes, "id", "duplicate id")

    for col in ["net", "eligible"]:
        df[col] = _as_bool(df, col)

    net_num = pd.to_numeric(df["net_num"], errors="coerce")
    bad = ~net_num.isin([0, 1])
    if bad.any():
        _fail(df, bad, "net_num", "must be 0 or 1")
    df["net_num"] = net_num.astype(int)

    mismatch = df["net_num"] != df["net"].astype(int)
    if mismatch.any():
        _fail(df, mismatch, "net_num", "disagrees with 'net'")

    for col in ["malaria_risk", "income", "temperature", "health", "resistance"]:
        values = pd.to_numeric(df[col], errors="coerce")
        bad = ~np.isfinite(values.astype(float))
        if bad.any():
            _fail(df, bad, col, "not a finite number")
        df[col] = values.astype(float)

    for col in BOUNDED_COLUMNS:
        bad = (df[col] < 0) | (df[col] > 100)
        if bad.any():
            _fail(df, bad, col, "outside [0, 100]")

    size = pd.to_numeric(df["household_size"], errors="coerce")
    bad = ~np.isfinite(size.astype(float)) | (size < 1) | (size != np.round(size))
    if bad.any():
        _fail(df, bad, "household_size", "must be a positive integer")
    df["household_size"] = size.astype(int)

    logger.info("Validated %d household records", len(df))
    return df


def simulate_households(
    n: int = 1_000,
    effect: float = -10.0,
    confounding: float = 1.0,
    seed: int = 42,
) -> pd.DataFrame:
    """
    Simulate a household survey that follows :func:`malaria_dag`.

    Net use depends on income, health and temperature through a logistic model
    whose slopes are scaled by ``confounding`` (0 gives random assignment).
    ``malaria_risk`` depends on the same three variables and on ``net_num``
    with a constant, known ``effect``. Fixed ``seed`` → identical frame.
    """
    rng = np.random.default_rng(seed)

    income      = rng.normal(900, 150, size=n)
    temperature = rng.normal(24, 4, size=n)
    health      = np.clip(50 + 0.02 * (income - 900) + rng.normal(0, 14, size=n), 0, 100)

    z_income = (income - 900) / 150
    z_temp   = (temperature - 24) / 4
    z_health = (health - 50) / 15

    household_size = rng.integers(1, 9, size=n)
    eligible = (income < 800) & (household_size >= 3)
    resistance = np.clip(40 + 2.0 * (temperature - 24) + rng.normal(0, 10, size=n), 0, 100)

    logit = confounding * (0.8 * z_income - 0.5 * z_temp + 0.6 * z_health)
    net = rng.uniform(size=n) < 1.0 / (1.0 + np.exp(-logit))

    malaria_risk = np.clip(
        40
        + effect * net
        - 5.0 * z_income
        + 3.0 * z_temp
        - 4.0 * z_health
        + rng.normal(0, 5, size=n),
        0,
        100,
    )

    return pd.DataFrame({
        "id": np.arange(1, n + 1),
        "malaria_risk": malaria_risk,
        "net": net,
        "net_num": net.astype(int),
        "eligible": eligible,
        "income": income,
        "temperature": temperature,
        "health": health,
        "household_size": household_size,
        "resistance": resistance,
    })


# ── Helpers ───────────────────────────────────────────────────────────────────

def require_finite(data: pd.DataFrame, columns, id_column: str = "id") -> None:
    """
    Raise ``DataError`` for the first row whose value in any of ``columns`` is
    missing, non-numeric or infinite. ``id_column`` must have no missing values.
    """
    nulls = data[id_column].isna()
    if nulls.any():
        _fail(data, nulls, id_column, "missing value", id_column=id_column)
    for col in columns:
        values = pd.to_numeric(data[col], errors="coerce").astype(float)
        bad = ~np.isfinite(values)
        if bad.any():
            _fail(data, bad, col, "not a finite number", id_column=id_column)


def _fail(
    df: pd.DataFrame, mask: pd.Series, column: str, problem: str, id_column: str = "id",
) -> None:
    pos = int(np.flatnonzero(np.asarray(mask))[0])
    row_id = df[id_column].iloc[pos] if id_column in df.columns else df.index[pos]
    value = df[column].iloc[pos]
    raise DataError(
        f"Row id={row_id!r}: column '{column}' {problem} (value: {value!r})",
        row_id=row_id,
        column=column,
    )


def _as_bool(df: pd.DataFrame, column: str) -> pd.Series:
    mapping = {
        True: True, False: False, 1: True, 0: False,
        "TRUE": True, "FALSE": False, "True": True, "False": False,
        "true": True, "false": False,
    }
    converted = df[column].map(lambda v: mapping.get(v, None))
    bad = converted.isna()
    if bad.any():
        _fail(df, bad, column, "must be boolean")
    return converted.astype(bool)

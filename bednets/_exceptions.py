from __future__ import annotations


class IdentificationError(Exception):
    """
    Raised when the backdoor criterion cannot be satisfied with the observed
    columns, i.e. a confounder declared in the DAG is absent from the data.

    Note: this only checks confounders the user explicitly modelled. There may
    be additional unobserved confounders not represented in the DAG at all;
    bednets has no way to detect those.
    """
    pass


class GraphError(Exception):
    """Raised when the DAG is structurally invalid."""
    pass


class DataError(Exception):
    """
    Raised when an input household record is malformed or out of range.

    ``row_id`` is the ``id`` of the first offending row (``None`` when the
    problem is with the table as a whole, e.g. a missing column).
    """

    def __init__(self, message: str, row_id=None, column: str | None = None) -> None:
        super().__init__(message)
        self.row_id = row_id
        self.column = column


class MatchingError(Exception):
    """Raised when covariate matching cannot proceed or produced no matches."""
    pass


class ConvergenceError(Exception):
    """
    Raised when the propensity model failed to converge or diverged
    (perfect or quasi-perfect separation).
    """

    def __init__(
        self,
        message: str,
        iterations: int | None = None,
        coefficients: dict[str, float] | None = None,
    ) -> None:
        super().__init__(message)
        self.iterations = iterations
        self.coefficients = dict(coefficients or {})


class WeightError(Exception):
    """
    Raised when a weight would be undefined or non-finite, e.g. a propensity
    score of exactly 0 or 1. ``rows`` lists the offending row labels.
    """

    def __init__(self, message: str, rows=None) -> None:
        super().__init__(message)
        self.rows = list(rows) if rows is not None else []

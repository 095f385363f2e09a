import logging

from .dag import DAG
from .config import AnalysisConfig, MatchingConfig, IPWConfig
from .data import malaria_dag, validate_households, simulate_households, MALARIA_ADJUSTMENT_SET
from .estimators.regression import weighted_regression, RegressionResult
from .estimators.matching import match, MatchResult
from .estimators.propensity import PropensityModel
from .estimators.ipw import inverse_probability_weights, truncate_weights, add_ipw
from .estimators.balance import standardized_mean_differences
from .comparison import CausalComparison, ComparisonResult, MODEL_ORDER
from ._exceptions import (
    IdentificationError, GraphError, DataError, MatchingError, ConvergenceError, WeightError,
)

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.1.0"

__all__ = [
    "DAG",
    "AnalysisConfig", "MatchingConfig", "IPWConfig",
    "malaria_dag", "validate_households", "simulate_households", "MALARIA_ADJUSTMENT_SET",
    "weighted_regression", "RegressionResult",
    "match", "MatchResult",
    "PropensityModel",
    "inverse_probability_weights", "truncate_weights", "add_ipw",
    "standardized_mean_differences",
    "CausalComparison", "ComparisonResult", "MODEL_ORDER",
    "IdentificationError", "GraphError", "DataError", "MatchingError", "ConvergenceError", "WeightError",
]

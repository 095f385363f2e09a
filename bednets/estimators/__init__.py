from .regression import weighted_regression, RegressionResult
from .matching import match, MatchResult
from .propensity import PropensityModel
from .ipw import inverse_probability_weights, truncate_weights, add_ipw
from .balance import standardized_mean_differences, balance_table

__all__ = [
    "weighted_regression", "RegressionResult",
    "match", "MatchResult",
    "PropensityModel",
    "inverse_probability_weights", "truncate_weights", "add_ipw",
    "standardized_mean_differences", "balance_table",
]

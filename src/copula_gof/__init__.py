"""
copula-gof: Copula Family Selection with Bootstrap Goodness-of-Fit

Selects, among Gaussian, Student-t, Clayton, Gumbel, Frank and comonotonic
copulas, the family that best explains the joint rank structure of paired
scores, and tests every fitted family with a parametric bootstrap whose
p-value is (1 + #{boot >= observed}) / (N_valid + 1).
"""

from .analyzer import AnalysisResults, CopulaSelectionAnalyzer, FamilyReport, format_results
from .bootstrap import GoFResult, bootstrap_gof, bootstrap_p_value
from .errors import (
    AllFamiliesFailedError,
    BootstrapCancelled,
    ConfigError,
    CopulaGofError,
    FitError,
    InsufficientSampleSizeError,
)
from .families import DEFAULT_FAMILIES, CopulaFamily, get_copula
from .fitting import FitFailure, FittedCopula, fit_copula, fit_families
from .gof import gof_statistic
from .pseudo_obs import pseudo_observations
from .resampling import bootstrap_family_selection, summarize_selection_bootstrap
from .selection import SelectionResult, select_family

from .core import (
    analyze_pairs,
    analyze_dataframe,
    results_to_dict,
    results_to_frame,
    run_demo_scenarios,
)

__version__ = "1.0.0"

__all__ = [
    "CopulaSelectionAnalyzer",
    "AnalysisResults",
    "FamilyReport",
    "format_results",
    "CopulaFamily",
    "DEFAULT_FAMILIES",
    "get_copula",
    "pseudo_observations",
    "fit_copula",
    "fit_families",
    "FittedCopula",
    "FitFailure",
    "select_family",
    "SelectionResult",
    "gof_statistic",
    "bootstrap_gof",
    "bootstrap_p_value",
    "GoFResult",
    "bootstrap_family_selection",
    "summarize_selection_bootstrap",
    "CopulaGofError",
    "FitError",
    "InsufficientSampleSizeError",
    "AllFamiliesFailedError",
    "BootstrapCancelled",
    "ConfigError",
    "analyze_pairs",
    "analyze_dataframe",
    "results_to_dict",
    "results_to_frame",
    "run_demo_scenarios",
    "__version__",
]

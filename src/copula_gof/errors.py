"""
Exception types for copula fitting, selection and goodness-of-fit testing.

Family- and replicate-level problems are captured as data by the component
that detects them; only the condition-level errors below escape to callers.
"""


class CopulaGofError(Exception):
    """Base class for all package errors."""


class FitError(CopulaGofError):
    """A family could not be fit (non-convergence, boundary estimate, bad likelihood)."""


class InsufficientSampleSizeError(CopulaGofError, ValueError):
    """Too few score pairs to analyze a condition."""

    def __init__(self, n: int, minimum: int):
        self.n = n
        self.minimum = minimum
        super().__init__(f"Insufficient sample size: n={n}, need at least {minimum}")


class AllFamiliesFailedError(CopulaGofError):
    """No requested family produced a successful fit."""


class BootstrapCancelled(CopulaGofError):
    """A bootstrap run was stopped before all replicates finished.

    Partial counts are discarded; the run must be repeated in full.
    """


class ConfigError(CopulaGofError, ValueError):
    """Raised when configuration is invalid."""

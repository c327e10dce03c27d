class InputError(ValueError):
    """
    Raised when the data handed to a stage is malformed: a required column is
    absent, a confounder holds missing or non-finite values, or the exposure
    is not a binary 0/1 indicator with both groups present.
    """
    pass


class ConvergenceError(RuntimeError):
    """
    Raised when maximum-likelihood fitting of the propensity model fails.

    Covers non-convergence, perfect separation, and fitted scores that reach
    exactly 0 or 1. The statsmodels exception that triggered it, if any, is
    chained as ``__cause__``.
    """
    pass


class DegenerateStratumError(ValueError):
    """Raised when a propensity stratum contains only one exposure group."""
    pass


class InfiniteWeightError(ValueError):
    """Raised when inverse-probability weighting meets a score of exactly 0 or 1."""
    pass

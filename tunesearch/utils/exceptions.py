"""
Custom exception hierarchy for the tunesearch hyperparameter search engine.
"""

class TuneSearchException(Exception):
    """Base exception for all system errors."""
    pass

class ConfigurationError(TuneSearchException):
    """Configuration, parameter space or grid validation failed."""
    pass

class DataValidationError(TuneSearchException):
    """Input data cannot be resampled or evaluated."""
    pass

class FitError(TuneSearchException):
    """Pipeline fit failed (non-convergence or invalid parameter combination)."""
    pass

class SurrogateFitError(TuneSearchException):
    """Bayesian surrogate model could not be fit on the search history."""
    pass

class AggregationUndefined(TuneSearchException):
    """Every fold of every candidate configuration failed."""
    pass

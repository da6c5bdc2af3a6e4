"""
tunesearch
==========

Hyperparameter search over modeling pipelines: exhaustive grid search with
submodel deduplication and Gaussian-process Bayesian optimization, both
estimating performance by repeated cross-validation.
"""

__version__ = "0.1.0"

"""
Bayesian Optimization Engine
============================

Responsibility:
- Latin hypercube initial design evaluated under full resampling.
- Gaussian process surrogate over transformed parameter coordinates.
- Expected improvement with an exponentially decaying exploration trade-off.
- Space-filling fallback when the surrogate cannot be fit.
"""

from .acquisition import DecaySchedule, exp_decay, expected_improvement
from .bayes_opt_engine import BayesOptEngine, HistoryEntry
from .surrogate import GaussianProcessSurrogate

__all__ = [
    'BayesOptEngine', 'HistoryEntry', 'DecaySchedule', 'exp_decay', 'expected_improvement',
    'GaussianProcessSurrogate',
]

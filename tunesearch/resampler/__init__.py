"""
Resampler
=========

Responsibility:
- Repeated (optionally stratified) k-fold partitioning.
- Explicit seeding; identical seeds reproduce identical folds.
"""

from .resampler import Fold, Resampler

__all__ = ['Fold', 'Resampler']

"""
Grid Search Engine
==================

Responsibility:
- Exhaustive evaluation of a Cartesian parameter grid under resampling.
- Submodel-trick deduplication of physical fits.
- Batched parallel execution with a barrier before aggregation.
- Persistence of the flat result tables.
"""

from .grid_search_engine import GridSearchEngine

__all__ = ['GridSearchEngine']

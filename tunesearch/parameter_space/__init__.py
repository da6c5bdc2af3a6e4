"""
Parameter Space
===============

Responsibility:
- Declaration of tunable dimensions (continuous, discrete, ordinal).
- Invertible value transforms; search math in transformed coordinates.
- Space-filling (Latin hypercube) sampling and Cartesian grids.
- Immutable, hashable parameter configurations.
"""

from .parameter_config import ParameterConfig
from .parameter_space import ParameterSpace, ParameterSpec
from .transforms import Transform, TRANSFORMS, get_transform

__all__ = ['ParameterConfig', 'ParameterSpace', 'ParameterSpec', 'Transform', 'TRANSFORMS', 'get_transform']

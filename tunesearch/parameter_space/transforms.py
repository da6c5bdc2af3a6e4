"""
Monotone value transforms for parameter ranges.

Ranges of transformed parameters are declared in transformed units (e.g. a
penalty range of (-10, 0) under ``log10``); all search math runs in those
coordinates and values handed to the pipeline are mapped back to native units.
"""
from dataclasses import dataclass
from typing import Callable, Dict, Union

import numpy as np

from tunesearch.utils.exceptions import ConfigurationError


def _identity(x):
    return x

def _pow2(x):
    return np.power(2.0, x)

def _pow10(x):
    return np.power(10.0, x)

def _square(x):
    return np.square(x)


@dataclass(frozen=True)
class Transform:
    """A named, invertible, monotone mapping between native and transformed units."""
    name: str
    forward: Callable
    inverse: Callable

    def to_transformed(self, value: float) -> float:
        return float(self.forward(value))

    def to_native(self, value: float) -> float:
        return float(self.inverse(value))

    def check_invertible(self, low: float, high: float, probes: int = 9) -> None:
        """
        Verify the transform round-trips and stays monotone over [low, high]
        (transformed units). Raises ConfigurationError otherwise.
        """
        grid = np.linspace(low, high, probes)
        with np.errstate(all='ignore'):
            native = np.asarray(self.inverse(grid), dtype=float)
            back = np.asarray(self.forward(native), dtype=float)

        if not np.all(np.isfinite(native)) or not np.allclose(back, grid, rtol=1e-9, atol=1e-9):
            raise ConfigurationError(
                f"Transform '{self.name}' is not invertible over [{low}, {high}]."
            )
        steps = np.diff(native)
        # A single-point range has no direction to check
        if low != high and steps.size and not (np.all(steps > 0) or np.all(steps < 0)):
            raise ConfigurationError(
                f"Transform '{self.name}' is not monotone over [{low}, {high}]."
            )


IDENTITY = Transform('identity', _identity, _identity)

TRANSFORMS: Dict[str, Transform] = {
    'identity': IDENTITY,
    'log2': Transform('log2', np.log2, _pow2),
    'log10': Transform('log10', np.log10, _pow10),
    'ln': Transform('ln', np.log, np.exp),
    'sqrt': Transform('sqrt', np.sqrt, _square),
}


def get_transform(transform: Union[str, Transform, None]) -> Transform:
    """Resolve a transform by name; ``None`` means identity."""
    if transform is None:
        return IDENTITY
    if isinstance(transform, Transform):
        return transform
    if transform not in TRANSFORMS:
        raise ConfigurationError(
            f"Unknown transform '{transform}'. Available: {sorted(TRANSFORMS)}"
        )
    return TRANSFORMS[transform]

"""
Acquisition function and exploration/exploitation schedule.
"""
import math
from dataclasses import dataclass

import numpy as np
from scipy.stats import norm

from tunesearch.utils.exceptions import ConfigurationError
from tunesearch.utils import constants


def exp_decay(iteration: int, start_val: float, limit_val: float, slope: float) -> float:
    """
    Exponential decay from ``start_val`` (at iteration 1) towards ``limit_val``:

        tau(i) = limit_val + (start_val - limit_val) * exp(-slope * (i - 1))
    """
    return limit_val + (start_val - limit_val) * math.exp(-slope * (iteration - 1))


@dataclass(frozen=True)
class DecaySchedule:
    """Trade-off schedule passed to expected improvement, one value per iteration."""
    start_val: float = 0.1
    limit_val: float = 0.0
    slope: float = 0.25

    def __post_init__(self):
        if self.slope < 0:
            raise ConfigurationError(f"decay slope must be >= 0, got {self.slope}.")
        if not all(math.isfinite(v) for v in (self.start_val, self.limit_val, self.slope)):
            raise ConfigurationError("decay parameters must be finite.")

    def __call__(self, iteration: int) -> float:
        return exp_decay(iteration, self.start_val, self.limit_val, self.slope)

    @classmethod
    def from_dict(cls, options: dict) -> "DecaySchedule":
        defaults = cls()
        return cls(
            start_val=float(options.get('start_val', defaults.start_val)),
            limit_val=float(options.get('limit_val', defaults.limit_val)),
            slope=float(options.get('slope', defaults.slope)),
        )


def expected_improvement(mean: np.ndarray, std: np.ndarray, best: float, trade_off: float = 0.0,
                         direction: str = constants.MINIMIZE) -> np.ndarray:
    """
    Expected improvement over ``best``.

    EI(x) = delta * Phi(z) + sigma * phi(z), z = delta / sigma, where delta is
    the predicted gain over ``best`` reduced by ``trade_off``. Larger
    trade-offs demand bigger predicted gains and push the search towards
    uncertain regions.
    """
    mean = np.asarray(mean, dtype=float)
    std = np.asarray(std, dtype=float)
    if direction == constants.MINIMIZE:
        delta = best - mean - trade_off
    elif direction == constants.MAXIMIZE:
        delta = mean - best - trade_off
    else:
        raise ValueError(f"direction must be one of {constants.DIRECTIONS}, got '{direction}'.")

    with np.errstate(divide='ignore', invalid='ignore'):
        z = delta / std
        ei = delta * norm.cdf(z) + std * norm.pdf(z)
    ei = np.where(std > 0, ei, np.maximum(delta, 0.0))
    return np.maximum(ei, 0.0)

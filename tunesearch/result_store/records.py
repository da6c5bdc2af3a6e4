import math
from dataclasses import dataclass
from typing import Any, Optional

from tunesearch.parameter_space import ParameterConfig
from tunesearch.utils import constants


@dataclass(frozen=True)
class MetricRecord:
    """One metric of one configuration on one fold. Write-once."""
    config: ParameterConfig
    fold_id: str
    metric: str
    value: float
    status: str = constants.STATUS_OK
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == constants.STATUS_OK

    @classmethod
    def failed(cls, config: ParameterConfig, fold_id: str, metric: str, message: str) -> "MetricRecord":
        return cls(config, fold_id, metric, math.nan, constants.STATUS_FAILED, message)


@dataclass(frozen=True, eq=False)
class Extraction:
    """Payload captured from a fitted artifact, keyed by the fit's configuration and fold."""
    config: ParameterConfig
    fold_id: str
    payload: Any


@dataclass(frozen=True)
class Aggregate:
    """
    Fold statistics for one configuration and metric.

    ``mean`` is NaN iff every fold failed; ``n`` counts all folds.
    """
    mean: float
    std_error: float
    n: int
    n_failed: int

    @property
    def defined(self) -> bool:
        return not math.isnan(self.mean)

import numpy as np
from sklearn.metrics import mean_absolute_error, mean_squared_error, r2_score

from tunesearch.utils import constants


def rmse(y_true, y_pred) -> float:
    return float(np.sqrt(mean_squared_error(y_true, y_pred)))


def mae(y_true, y_pred) -> float:
    return float(mean_absolute_error(y_true, y_pred))


def rsq(y_true, y_pred) -> float:
    return float(r2_score(y_true, y_pred))


METRICS = {
    'rmse': rmse,
    'mae': mae,
    'rsq': rsq,
}


def compute_metric(metric_name: str, y_true, y_pred) -> float:
    """Standard metric calculation."""
    if metric_name not in METRICS:
        raise ValueError(f"Unknown metric '{metric_name}'. Available: {sorted(METRICS)}")
    return METRICS[metric_name](y_true, y_pred)


def metric_direction(metric_name: str) -> str:
    """Natural optimization direction of a known metric."""
    return constants.METRIC_DIRECTIONS.get(metric_name, constants.MINIMIZE)

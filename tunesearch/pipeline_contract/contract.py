import abc
from typing import Any, FrozenSet, Mapping, Optional, Sequence, Tuple

import pandas as pd

from tunesearch.parameter_space import ParameterConfig
from tunesearch.utils.exceptions import DataValidationError


class PipelineContract(abc.ABC):
    """
    Narrow interface between the search core and a preprocessing + estimator
    collaborator.

    ``free_parameters`` names the dimensions that can be swept on an already
    fitted artifact (e.g. a regularization-path penalty). All other
    dimensions are fit-determining: configurations that agree on them share
    one physical fit per fold.

    Implementations receive fully resolved configurations and must not read
    parameter values from any enclosing scope, so they can run on remote
    workers.
    """

    free_parameters: FrozenSet[str] = frozenset()

    @abc.abstractmethod
    def fit(self, config: ParameterConfig, train_data: Any) -> Any:
        """
        Fit on a training partition. ``config`` only carries fit-determining
        dimensions. Raises FitError on non-convergence or invalid combinations.
        """
        raise NotImplementedError

    @abc.abstractmethod
    def score(self, artifact: Any, validation_data: Any, metric_name: str,
              free_values: Optional[Mapping[str, Any]] = None) -> float:
        """Metric of ``artifact`` on a validation partition at the given free-dimension values."""
        raise NotImplementedError

    def fit_parameters(self, config: ParameterConfig) -> ParameterConfig:
        return config.exclude(self.free_parameters)

    def free_values(self, config: ParameterConfig) -> ParameterConfig:
        return config.restrict(self.free_parameters)


def split_features_target(data: pd.DataFrame, target: str,
                          drop_columns: Sequence[str] = ()) -> Tuple[pd.DataFrame, pd.Series]:
    """Separate the feature matrix from the target column."""
    if target not in data.columns:
        raise DataValidationError(f"Target column '{target}' not found in data.")
    existing_drop = [c for c in list(drop_columns) + [target] if c in data.columns]
    X = data.drop(columns=existing_drop)
    if X.shape[1] == 0:
        raise DataValidationError("No feature columns left after dropping target and metadata columns.")
    return X, data[target]

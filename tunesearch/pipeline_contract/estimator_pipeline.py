import warnings
from typing import Any, Dict, Mapping, Optional, Sequence

from sklearn.exceptions import ConvergenceWarning

from tunesearch.parameter_space import ParameterConfig
from tunesearch.pipeline_contract.contract import PipelineContract, split_features_target
from tunesearch.pipeline_contract.metrics import compute_metric
from tunesearch.pipeline_contract.model_factory import ModelFactory
from tunesearch.utils.exceptions import FitError


class EstimatorPipeline(PipelineContract):
    """
    Fits one scikit-learn estimator per configuration.

    Every dimension is fit-determining, so each (configuration, fold) pair
    costs one physical fit.
    """

    free_parameters = frozenset()

    def __init__(self, model_name: str, target: str, drop_columns: Sequence[str] = (),
                 fixed_params: Optional[Dict[str, Any]] = None, strict_convergence: bool = True):
        ModelFactory.accepted_parameters(model_name)  # fail early on unknown models
        self.model_name = model_name
        self.target = target
        self.drop_columns = list(drop_columns)
        self.fixed_params = dict(fixed_params or {})
        self.strict_convergence = strict_convergence

    def fit(self, config: ParameterConfig, train_data: Any) -> Any:
        X, y = split_features_target(train_data, self.target, self.drop_columns)
        params = {**self.fixed_params, **config.to_dict()}

        unknown = set(config) - set(ModelFactory.accepted_parameters(self.model_name))
        if unknown:
            raise FitError(f"{self.model_name} does not accept parameters {sorted(unknown)}.")

        model = ModelFactory.create(self.model_name, params)
        with warnings.catch_warnings():
            if self.strict_convergence:
                warnings.simplefilter('error', ConvergenceWarning)
            try:
                model.fit(X, y)
            except ConvergenceWarning as e:
                raise FitError(f"{self.model_name} did not converge: {e}") from e
            except (ValueError, ArithmeticError) as e:
                raise FitError(f"{self.model_name} fit failed for {config}: {e}") from e
        return model

    def score(self, artifact: Any, validation_data: Any, metric_name: str,
              free_values: Optional[Mapping[str, Any]] = None) -> float:
        X, y = split_features_target(validation_data, self.target, self.drop_columns)
        return compute_metric(metric_name, y, artifact.predict(X))

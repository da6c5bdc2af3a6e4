"""
Elastic-net regularization path contract.

One fit per (mixture, preprocessing settings, fold) computes coefficients
along a fixed log-spaced penalty path; any penalty inside the path is read
off by interpolating coefficients in log-penalty space, so ``penalty`` is a
free dimension.
"""
import logging
import math
import warnings
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Sequence, Tuple

import numpy as np
from sklearn.exceptions import ConvergenceWarning
from sklearn.feature_selection import SelectKBest, f_regression
from sklearn.linear_model import enet_path
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import StandardScaler

from tunesearch.parameter_space import ParameterConfig
from tunesearch.pipeline_contract.contract import PipelineContract, split_features_target
from tunesearch.pipeline_contract.metrics import compute_metric
from tunesearch.utils.exceptions import ConfigurationError, FitError

logger = logging.getLogger(__name__)

# enet_path is unreliable for a pure ridge penalty
MIN_MIXTURE = 1e-3

# Relative slack at the path ends for float error from inverse transforms
_BOUND_RTOL = 1e-9


@dataclass
class PenaltyPathArtifact:
    """Fitted preprocessing plus the coefficient path over ``penalties`` (descending)."""
    preprocessor: Pipeline
    penalties: np.ndarray
    coefs: np.ndarray          # (n_features, n_penalties)
    x_mean: np.ndarray
    y_mean: float
    feature_names: List[str]
    mixture: float

    def coefficients_at(self, penalty: float) -> Tuple[np.ndarray, float]:
        """
        Coefficients and intercept at ``penalty``.

        Raises:
            ValueError: If ``penalty`` lies outside the fitted path.
        """
        low, high = float(self.penalties[-1]), float(self.penalties[0])
        if not low * (1 - _BOUND_RTOL) <= penalty <= high * (1 + _BOUND_RTOL):
            raise ValueError(f"penalty={penalty} lies outside the fitted path [{low:.6g}, {high:.6g}].")
        log_path = np.log(self.penalties[::-1])
        target = math.log(min(max(penalty, low), high))
        coef = np.array([np.interp(target, log_path, row[::-1]) for row in self.coefs])
        intercept = self.y_mean - float(self.x_mean @ coef)
        return coef, intercept

    def predict(self, X: Any, penalty: float) -> np.ndarray:
        coef, intercept = self.coefficients_at(penalty)
        return np.asarray(self.preprocessor.transform(X), dtype=float) @ coef + intercept


class PenaltyPathPipeline(PipelineContract):
    """
    Standardization, optional top-k feature selection (``num_terms``) and an
    elastic-net path with mixing ``mixture`` (l1 ratio).

    Fit-determining dimensions: ``mixture`` and ``num_terms``.
    Free dimension: ``penalty``.
    """

    free_parameters = frozenset({'penalty'})

    def __init__(self, target: str, drop_columns: Sequence[str] = (),
                 penalty_bounds: Tuple[float, float] = (1e-10, 1.0), n_penalties: int = 100,
                 max_iter: int = 1000, tol: float = 1e-4, strict_convergence: bool = False):
        low, high = penalty_bounds
        if not (0 < low < high):
            raise ConfigurationError(f"penalty_bounds must satisfy 0 < low < high, got {penalty_bounds}.")
        if n_penalties < 2:
            raise ConfigurationError("n_penalties must be >= 2.")
        self.target = target
        self.drop_columns = list(drop_columns)
        self.penalty_bounds = (float(low), float(high))
        self.n_penalties = n_penalties
        self.max_iter = max_iter
        self.tol = tol
        self.strict_convergence = strict_convergence

    def check_space(self, space) -> None:
        """
        Reject a parameter space whose ``penalty`` range reaches beyond
        ``penalty_bounds``; such penalties cannot be read off the path.
        """
        if 'penalty' not in space:
            return
        spec = space['penalty']
        values = spec.values if spec.values is not None else spec.native_range
        low, high = self.penalty_bounds
        outside = [v for v in values if not low * (1 - _BOUND_RTOL) <= float(v) <= high * (1 + _BOUND_RTOL)]
        if outside:
            raise ConfigurationError(
                f"penalty values {outside} lie outside penalty_bounds [{low:g}, {high:g}]; "
                f"widen 'pipeline.penalty_bounds' or narrow the penalty range."
            )

    def _build_preprocessor(self, config: ParameterConfig, n_features: int) -> Pipeline:
        steps = [('scale', StandardScaler())]
        if 'num_terms' in config:
            k = int(config['num_terms'])
            if k < 1:
                raise FitError(f"num_terms must be >= 1, got {k}.")
            steps.append(('select', SelectKBest(f_regression, k=min(k, n_features))))
        return Pipeline(steps)

    def fit(self, config: ParameterConfig, train_data: Any) -> PenaltyPathArtifact:
        unknown = set(config) - {'mixture', 'num_terms'}
        if unknown:
            raise FitError(f"Unsupported fit parameters {sorted(unknown)} for the penalty path.")

        X, y = split_features_target(train_data, self.target, self.drop_columns)
        mixture = float(config.get('mixture', 1.0))
        if not 0.0 <= mixture <= 1.0:
            raise FitError(f"mixture must lie in [0, 1], got {mixture}.")
        if mixture < MIN_MIXTURE:
            logger.debug(f"mixture={mixture} raised to {MIN_MIXTURE} for the coordinate-descent path.")
            mixture = MIN_MIXTURE

        low, high = self.penalty_bounds
        penalties = np.logspace(math.log10(high), math.log10(low), self.n_penalties)

        with warnings.catch_warnings():
            if self.strict_convergence:
                warnings.simplefilter('error', ConvergenceWarning)
            else:
                warnings.simplefilter('ignore', ConvergenceWarning)
            try:
                preprocessor = self._build_preprocessor(config, X.shape[1])
                Xt = np.asarray(preprocessor.fit_transform(X, y), dtype=float)
                y_arr = np.asarray(y, dtype=float)
                x_mean, y_mean = Xt.mean(axis=0), float(y_arr.mean())
                _, coefs, _ = enet_path(
                    Xt - x_mean, y_arr - y_mean, l1_ratio=mixture, alphas=penalties,
                    max_iter=self.max_iter, tol=self.tol,
                )
            except ConvergenceWarning as e:
                raise FitError(f"Elastic-net path did not converge (mixture={mixture}): {e}") from e
            except (ValueError, ArithmeticError) as e:
                raise FitError(f"Elastic-net path failed for {config}: {e}") from e

        if not np.all(np.isfinite(coefs)):
            raise FitError(f"Elastic-net path produced non-finite coefficients for {config}.")

        return PenaltyPathArtifact(
            preprocessor=preprocessor,
            penalties=penalties,
            coefs=coefs,
            x_mean=x_mean,
            y_mean=y_mean,
            feature_names=list(preprocessor.get_feature_names_out()),
            mixture=mixture,
        )

    def score(self, artifact: PenaltyPathArtifact, validation_data: Any, metric_name: str,
              free_values: Optional[Mapping[str, Any]] = None) -> float:
        if not free_values or 'penalty' not in free_values:
            raise ValueError("A penalty value is required to score a penalty-path artifact.")
        X, y = split_features_target(validation_data, self.target, self.drop_columns)
        return compute_metric(metric_name, y, artifact.predict(X, float(free_values['penalty'])))

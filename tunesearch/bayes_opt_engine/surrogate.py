import warnings
from typing import Optional, Tuple

import numpy as np
from sklearn.exceptions import ConvergenceWarning
from sklearn.gaussian_process import GaussianProcessRegressor
from sklearn.gaussian_process.kernels import ConstantKernel, Matern

from tunesearch.utils.exceptions import SurrogateFitError


class GaussianProcessSurrogate:
    """
    Gaussian process response model over unit-cube parameter coordinates.

    Points with an undefined (NaN) metric are dropped before fitting; fewer
    than two distinct remaining points raise SurrogateFitError.
    """

    def __init__(self, seed: Optional[int] = None, nu: float = 2.5, n_restarts_optimizer: int = 5):
        self.seed = seed
        self.nu = nu
        self.n_restarts_optimizer = n_restarts_optimizer
        self.model: Optional[GaussianProcessRegressor] = None

    def fit(self, X: np.ndarray, y: np.ndarray) -> "GaussianProcessSurrogate":
        X = np.atleast_2d(np.asarray(X, dtype=float))
        y = np.asarray(y, dtype=float)
        mask = np.isfinite(y)
        X, y = X[mask], y[mask]

        n_distinct = len(np.unique(X, axis=0)) if len(X) else 0
        if n_distinct < 2:
            self.model = None
            raise SurrogateFitError(f"Need at least 2 distinct evaluated points, have {n_distinct}.")

        kernel = ConstantKernel(1.0, (1e-3, 1e3)) * Matern(
            length_scale=np.ones(X.shape[1]), length_scale_bounds=(1e-2, 1e2), nu=self.nu
        )
        model = GaussianProcessRegressor(
            kernel=kernel,
            alpha=1e-6,
            normalize_y=True,
            n_restarts_optimizer=self.n_restarts_optimizer,
            random_state=self.seed,
        )
        with warnings.catch_warnings():
            warnings.simplefilter('ignore', ConvergenceWarning)
            try:
                model.fit(X, y)
            except (ValueError, np.linalg.LinAlgError) as e:
                self.model = None
                raise SurrogateFitError(f"Gaussian process fit failed: {e}") from e

        self.model = model
        return self

    def predict(self, X: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Posterior mean and standard deviation."""
        if self.model is None:
            raise SurrogateFitError("Surrogate has not been fitted.")
        mean, std = self.model.predict(np.atleast_2d(np.asarray(X, dtype=float)), return_std=True)
        return mean, np.maximum(std, 0.0)

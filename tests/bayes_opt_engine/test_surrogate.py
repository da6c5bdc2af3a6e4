import numpy as np
import pytest

from tunesearch.bayes_opt_engine import GaussianProcessSurrogate
from tunesearch.utils.exceptions import SurrogateFitError


@pytest.fixture
def points():
    rng = np.random.default_rng(1)
    X = rng.uniform(size=(12, 2))
    y = np.sin(3 * X[:, 0]) + X[:, 1] ** 2
    return X, y


def test_fit_and_predict(points):
    X, y = points
    surrogate = GaussianProcessSurrogate(seed=0).fit(X, y)
    mean, std = surrogate.predict(X)
    assert mean.shape == std.shape == (12,)
    assert np.allclose(mean, y, atol=0.05)
    assert (std >= 0).all()


def test_uncertainty_grows_away_from_data(points):
    X, y = points
    surrogate = GaussianProcessSurrogate(seed=0).fit(X, y)
    _, std_near = surrogate.predict(X[:1])
    _, std_far = surrogate.predict(np.array([[5.0, 5.0]]))
    assert std_far[0] > std_near[0]


def test_undefined_points_are_dropped(points):
    X, y = points
    y = y.copy()
    y[:10] = np.nan
    surrogate = GaussianProcessSurrogate(seed=0).fit(X, y)
    assert surrogate.model.X_train_.shape[0] == 2


def test_too_few_distinct_points():
    X = np.array([[0.5, 0.5], [0.5, 0.5], [0.1, 0.9]])
    y = np.array([1.0, 1.0, np.nan])
    with pytest.raises(SurrogateFitError, match="at least 2"):
        GaussianProcessSurrogate().fit(X, y)


def test_predict_before_fit():
    with pytest.raises(SurrogateFitError, match="not been fitted"):
        GaussianProcessSurrogate().predict(np.zeros((1, 2)))


def test_same_seed_same_model(points):
    X, y = points
    a = GaussianProcessSurrogate(seed=3).fit(X, y).predict(np.array([[0.3, 0.7]]))
    b = GaussianProcessSurrogate(seed=3).fit(X, y).predict(np.array([[0.3, 0.7]]))
    assert np.allclose(a[0], b[0]) and np.allclose(a[1], b[1])

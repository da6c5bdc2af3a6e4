import logging
from unittest.mock import MagicMock

import numpy as np
import pandas as pd
import pytest

from tunesearch.pipeline_contract import PipelineContract
from tunesearch.utils.exceptions import FitError


class CountingContract(PipelineContract):
    """
    Deterministic stand-in pipeline that records every physical fit.

    The score of a configuration is the sum of its fit-determining and free
    values, so the best configuration is known in advance.
    """

    def __init__(self, free_parameters=('penalty',), fail_when=None, score_fn=None):
        self.free_parameters = frozenset(free_parameters)
        self.fail_when = fail_when
        self.score_fn = score_fn
        self.fit_calls = []

    def fit(self, config, train_data):
        self.fit_calls.append((config, len(train_data)))
        if self.fail_when is not None and self.fail_when(config):
            raise FitError(f"forced failure for {dict(config)}")
        return {'config': config, 'n_train': len(train_data)}

    def score(self, artifact, validation_data, metric_name, free_values=None):
        free_values = dict(free_values or {})
        if self.score_fn is not None:
            return self.score_fn(artifact['config'], free_values, metric_name)
        return float(sum(artifact['config'].values()) + sum(free_values.values()))


@pytest.fixture
def mock_logger():
    return MagicMock(spec=logging.Logger)


@pytest.fixture
def counting_contract():
    return CountingContract()


@pytest.fixture
def make_contract():
    return CountingContract


@pytest.fixture
def regression_data():
    """Linear target on five features, three of them informative."""
    rng = np.random.default_rng(0)
    n = 80
    X = rng.normal(size=(n, 5))
    y = 3.0 * X[:, 0] - 2.0 * X[:, 1] + 0.5 * X[:, 2] + rng.normal(scale=0.1, size=n)
    df = pd.DataFrame(X, columns=[f'x{i}' for i in range(5)])
    df['y'] = y
    return df


@pytest.fixture
def engine_config(tmp_path):
    return {
        'seed': 7,
        'outputs': {'base_results_dir': str(tmp_path), 'save_results': False},
        'execution': {'n_jobs': 1, 'batch_size': 8},
    }

import logging
import math
import time
from unittest.mock import MagicMock, patch

import numpy as np
import pandas as pd
import pytest

from tunesearch.base import SearchState
from tunesearch.grid_search_engine import GridSearchEngine
from tunesearch.parameter_space import ParameterConfig, ParameterSpace, ParameterSpec
from tunesearch.pipeline_contract import PenaltyPathPipeline, PipelineContract
from tunesearch.pipeline_evaluator import PipelineEvaluator
from tunesearch.resampler import Resampler
from tunesearch.result_store import ResultStore
from tunesearch.utils.exceptions import ConfigurationError, TuneSearchException


class SleepingContract(PipelineContract):
    """Contract whose fits outlast any short batch timeout."""

    free_parameters = frozenset({'penalty'})

    def __init__(self, seconds):
        self.seconds = seconds

    def fit(self, config, train_data):
        time.sleep(self.seconds)
        return config

    def score(self, artifact, validation_data, metric_name, free_values=None):
        return 0.0


@pytest.fixture
def data():
    return pd.DataFrame({'x': np.arange(30, dtype=float), 'y': np.arange(30, dtype=float)})


@pytest.fixture
def space():
    return ParameterSpace([
        ParameterSpec('mixture', low=0.0, high=1.0),
        ParameterSpec('num_terms', kind='discrete', low=1, high=5),
        ParameterSpec('penalty', low=-10, high=0, transform='log10'),
    ])


@pytest.fixture
def levels():
    return {'mixture': 3, 'num_terms': 5, 'penalty': 20}


@pytest.fixture
def resampler():
    return Resampler(folds=2, seed=0)


def make_engine(config, logger):
    return GridSearchEngine(config, logger)


class TestGridSearchEngine:

    def test_submodel_trick_fits_once_per_fit_group(self, engine_config, mock_logger, space, levels,
                                                    resampler, counting_contract, data):
        evaluator = PipelineEvaluator(counting_contract, data, ['rmse'], logger=mock_logger)
        engine = make_engine(engine_config, mock_logger)

        store = engine.run(space, space.regular_grid(levels), resampler, evaluator)

        # 3 mixtures x 5 num_terms = 15 fits per fold; 20 penalties ride along
        assert len(counting_contract.fit_calls) == 15 * 2
        assert engine.fit_calls == 30
        assert len(store) == 300 * 2
        assert engine.state == SearchState.DONE

    def test_without_free_dimensions_every_pair_is_fitted(self, engine_config, mock_logger, space,
                                                          resampler, make_contract, data):
        contract = make_contract(free_parameters=())
        evaluator = PipelineEvaluator(contract, data, ['rmse'], logger=mock_logger)
        engine = make_engine(engine_config, mock_logger)

        engine.run(space, {'mixture': [0.0, 1.0], 'num_terms': [1, 2], 'penalty': [0.1, 1.0]}, resampler, evaluator)

        assert len(contract.fit_calls) == 8 * 2

    def test_best_configuration(self, engine_config, mock_logger, space, levels, resampler, counting_contract, data):
        evaluator = PipelineEvaluator(counting_contract, data, ['rmse'], logger=mock_logger)
        store = make_engine(engine_config, mock_logger).run(space, space.regular_grid(levels), resampler, evaluator)

        best = store.best()
        assert best['mixture'] == 0.0
        assert best['num_terms'] == 1
        assert best['penalty'] == pytest.approx(1e-10)

    def test_same_seed_gives_identical_results(self, engine_config, mock_logger, space, make_contract, data):
        frames = []
        for _ in range(2):
            evaluator = PipelineEvaluator(make_contract(), data, ['rmse', 'mae'], logger=mock_logger)
            store = make_engine(engine_config, mock_logger).run(space, 2, Resampler(folds=3, seed=5), evaluator)
            frames.append(store.to_frame())
        pd.testing.assert_frame_equal(frames[0], frames[1])

    def test_failed_fits_are_recorded_and_search_continues(self, engine_config, mock_logger, space,
                                                           resampler, make_contract, data):
        contract = make_contract(fail_when=lambda c: c['mixture'] == 0.0)
        evaluator = PipelineEvaluator(contract, data, ['rmse'], logger=mock_logger)
        grid = {'mixture': [0.0, 0.5], 'num_terms': [1], 'penalty': [0.1, 1.0]}

        store = make_engine(engine_config, mock_logger).run(space, grid, resampler, evaluator)

        failed = ParameterConfig(mixture=0.0, num_terms=1, penalty=0.1)
        agg = store.aggregate(failed)
        assert math.isnan(agg.mean)
        assert agg.n_failed == 2
        assert store.best()['mixture'] == 0.5

    def test_every_configuration_failing_leaves_no_best(self, engine_config, mock_logger, space,
                                                        resampler, make_contract, data):
        contract = make_contract(fail_when=lambda c: True)
        evaluator = PipelineEvaluator(contract, data, ['rmse'], logger=mock_logger)
        engine = make_engine(engine_config, mock_logger)

        store = engine.run(space, {'mixture': [0.5], 'num_terms': [1], 'penalty': [0.1]}, resampler, evaluator)

        assert len(store) == 2
        assert any("No best configuration" in str(c) for c in mock_logger.warning.call_args_list)

    def test_cancellation_stops_at_batch_boundary(self, engine_config, mock_logger, space, make_contract, data):
        engine_config['execution']['batch_size'] = 4
        engine = make_engine(engine_config, mock_logger)
        contract = make_contract()
        original_fit = contract.fit

        def fit_then_stop(config, train_data):
            artifact = original_fit(config, train_data)
            if len(contract.fit_calls) == 2:
                engine.request_stop()
            return artifact

        contract.fit = fit_then_stop
        evaluator = PipelineEvaluator(contract, data, ['rmse'], logger=mock_logger)

        store = engine.run(space, 3, Resampler(folds=2, seed=0), evaluator)

        # The in-flight batch completes; nothing after it is dispatched
        assert len(contract.fit_calls) == 4
        assert engine.stopped_early
        # 4 fits x 3 penalties x 1 metric
        assert len(store) == 12

    def test_grid_explosion_is_rejected_before_fitting(self, engine_config, mock_logger, space, levels,
                                                       resampler, counting_contract, data):
        engine_config['resources'] = {'max_grid_configs': 100}
        evaluator = PipelineEvaluator(counting_contract, data, ['rmse'], logger=mock_logger)

        with pytest.raises(ConfigurationError, match="Grid Explosion"):
            make_engine(engine_config, mock_logger).run(space, space.regular_grid(levels), resampler, evaluator)
        assert counting_contract.fit_calls == []

    def test_out_of_range_grid_is_rejected_before_fitting(self, engine_config, mock_logger, space,
                                                          resampler, counting_contract, data):
        evaluator = PipelineEvaluator(counting_contract, data, ['rmse'], logger=mock_logger)
        with pytest.raises(ConfigurationError):
            make_engine(engine_config, mock_logger).run(
                space, {'mixture': [1.5], 'num_terms': [1], 'penalty': [0.1]}, resampler, evaluator
            )
        assert counting_contract.fit_calls == []

    def test_existing_results_are_not_refitted(self, engine_config, mock_logger, space, resampler,
                                               counting_contract, data):
        evaluator = PipelineEvaluator(counting_contract, data, ['rmse'], logger=mock_logger)
        engine = make_engine(engine_config, mock_logger)
        grid = {'mixture': [0.5], 'num_terms': [1, 2], 'penalty': [0.1]}

        store = engine.run(space, grid, resampler, evaluator)
        engine.run(space, grid, resampler, evaluator, store=store)

        assert len(counting_contract.fit_calls) == 4
        assert engine.fit_calls == 0
        assert len(store) == 4

    def test_batch_timeout_records_failures(self, engine_config, mock_logger, space, resampler,
                                            counting_contract, data):
        engine_config['execution'].update({'timeout': 1})
        evaluator = PipelineEvaluator(counting_contract, data, ['rmse'], logger=mock_logger)
        engine = make_engine(engine_config, mock_logger)

        with patch('tunesearch.grid_search_engine.grid_search_engine.Parallel') as parallel:
            parallel.return_value.side_effect = TimeoutError()
            store = engine.run(space, {'mixture': [0.5], 'num_terms': [1], 'penalty': [0.1]}, resampler, evaluator)

        assert all(r.message == 'timeout' and not r.ok for r in store.records())
        assert len(store) == 2

    def test_batch_timeout_in_worker_processes_records_failures(self, engine_config, space, resampler, data):
        engine_config['execution'].update({'n_jobs': 2, 'timeout': 0.5})
        logger = logging.getLogger('tests.grid_search_engine')
        evaluator = PipelineEvaluator(SleepingContract(3.0), data, ['rmse'], logger=logger)
        engine = make_engine(engine_config, logger)

        store = engine.run(space, {'mixture': [0.5], 'num_terms': [1], 'penalty': [0.1]}, resampler, evaluator)

        assert len(store) == 2
        assert all(r.status == 'failed' and r.message == 'timeout' for r in store.records())
        assert engine.state == SearchState.DONE

    def test_worker_processes_reproduce_the_sequential_result(self, engine_config, regression_data):
        space = ParameterSpace([
            ParameterSpec('mixture', low=0.5, high=1.0),
            ParameterSpec('num_terms', kind='discrete', low=2, high=4),
            ParameterSpec('penalty', low=-4, high=0, transform='log10'),
        ])
        grid = space.regular_grid({'mixture': 3, 'num_terms': 3, 'penalty': 3})
        logger = logging.getLogger('tests.grid_search_engine')

        frames = []
        for n_jobs in (1, 2):
            engine_config['execution']['n_jobs'] = n_jobs
            contract = PenaltyPathPipeline(target='y', penalty_bounds=(1e-4, 1.0), n_penalties=20)
            evaluator = PipelineEvaluator(contract, regression_data, ['rmse', 'rsq'], logger=logger)
            store = make_engine(engine_config, logger).run(space, grid, Resampler(folds=3, seed=0), evaluator)
            frames.append(store.to_frame())

        sequential, parallel = frames
        assert len(parallel) == 27 * 3 * 2
        assert (parallel['status'] == 'ok').all()
        pd.testing.assert_frame_equal(sequential, parallel)

    def test_unexpected_errors_are_wrapped(self, engine_config, mock_logger, space, counting_contract, data):
        resampler = MagicMock()
        resampler.split.side_effect = RuntimeError("disk gone")
        evaluator = PipelineEvaluator(counting_contract, data, ['rmse'], logger=mock_logger)

        with pytest.raises(TuneSearchException, match="Grid Search failed: disk gone"):
            make_engine(engine_config, mock_logger).run(space, 2, resampler, evaluator)
        mock_logger.error.assert_called_once()

    def test_results_are_saved(self, engine_config, mock_logger, space, resampler, counting_contract, data, tmp_path):
        engine_config['outputs']['save_results'] = True
        evaluator = PipelineEvaluator(counting_contract, data, ['rmse'], logger=mock_logger)

        make_engine(engine_config, mock_logger).run(space, 2, resampler, evaluator)

        out = tmp_path / "02_GridSearch"
        assert (out / "metrics.parquet").exists()
        assert (out / "summary.parquet").exists()
        assert (out / "best_configuration.json").exists()


class TestBuildGrid:

    def test_grid_from_levels_config(self, engine_config, mock_logger, space, levels):
        engine_config['search'] = {'levels': levels}
        configs = make_engine(engine_config, mock_logger).build_grid(space, None)
        assert len(configs) == 300

    def test_grid_from_explicit_config(self, engine_config, mock_logger, space):
        engine_config['search'] = {'grid': {'mixture': [0.5], 'num_terms': [1, 2], 'penalty': [0.1]}}
        configs = make_engine(engine_config, mock_logger).build_grid(space, None)
        assert configs == [
            ParameterConfig(mixture=0.5, num_terms=1, penalty=0.1),
            ParameterConfig(mixture=0.5, num_terms=2, penalty=0.1),
        ]

    def test_grid_from_rows_drops_duplicates(self, engine_config, mock_logger, space):
        row = {'mixture': 0.5, 'num_terms': 1, 'penalty': 0.1}
        configs = make_engine(engine_config, mock_logger).build_grid(space, [row, dict(row)])
        assert len(configs) == 1

    def test_missing_grid(self, engine_config, mock_logger, space):
        with pytest.raises(ConfigurationError, match="No grid"):
            make_engine(engine_config, mock_logger).build_grid(space, None)

    def test_boolean_grid_rejected(self, engine_config, mock_logger, space):
        with pytest.raises(ConfigurationError):
            make_engine(engine_config, mock_logger).build_grid(space, True)

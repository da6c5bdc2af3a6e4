import logging
import multiprocessing
from collections.abc import Mapping
from typing import Dict, List, Optional, Sequence, Tuple, Union

from joblib import Parallel, delayed

from tunesearch.base.base_engine import BaseEngine, SearchState
from tunesearch.parameter_space import ParameterConfig, ParameterSpace
from tunesearch.pipeline_evaluator import EvaluationResult, FitUnit, PipelineEvaluator
from tunesearch.resampler import Fold, Resampler
from tunesearch.result_store import ResultStore
from tunesearch.utils.error_handling import handle_engine_errors
from tunesearch.utils.exceptions import AggregationUndefined, ConfigurationError
from tunesearch.utils import constants

GridSpec = Union[Mapping, Sequence[Mapping], int, None]


class GridSearchEngine(BaseEngine):
    """
    Exhaustive search over a Cartesian parameter grid.

    - Grid validation before any fit (ConfigurationError aborts the run).
    - Submodel-trick grouping: one physical fit per (fit-determining values, fold).
    - Batched joblib parallelism; results are only written to the store after
      each batch barrier.
    - Cooperative cancellation at batch boundaries.
    """

    def __init__(self, config: dict, logger: logging.Logger):
        super().__init__(config, logger)
        self.search_config = config.get('search', {})

        execution = config.get('execution', {})
        self.n_jobs = execution.get('n_jobs', 1)
        self.batch_size = execution.get('batch_size', constants.DEFAULT_BATCH_SIZE)
        self.timeout = execution.get('timeout')
        self.backend = execution.get('backend')

        # Resource Limits
        self.max_configs = config.get('resources', {}).get('max_grid_configs', constants.DEFAULT_MAX_GRID_CONFIGS)

        outputs = config.get('outputs', {})
        self.save_results = outputs.get('save_results', True) and not outputs.get('skip_dir_creation', False)
        self.excel_copy = outputs.get('save_excel_copy', False)

        # Physical fits dispatched during the last run
        self.fit_calls = 0

    def _get_engine_directory_name(self) -> str:
        return constants.GRID_SEARCH_DIR

    @handle_engine_errors("Grid Search")
    def run(self, space: ParameterSpace, grid: GridSpec, resampler: Resampler, evaluator: PipelineEvaluator,
            store: Optional[ResultStore] = None, metric: Optional[str] = None,
            direction: Optional[str] = None) -> ResultStore:
        """
        Evaluate every grid row on every fold.

        Args:
            space: Parameter space the grid belongs to.
            grid: Mapping of explicit value lists, a list of configurations,
                a number of regular levels per dimension, or None to read the
                grid from the ``search`` configuration section.
            resampler: Fold generator applied to ``evaluator.data``.
            evaluator: Pipeline evaluator bound to the dataset.
            store: Optional store to extend (already recorded fits are skipped).
            metric, direction: Used for the final best-configuration report.

        Returns:
            The ResultStore holding every (configuration, fold, metric) status.
        """
        self._begin()
        configs = self.build_grid(space, grid)
        folds = resampler.split(evaluator.data)
        store = store if store is not None else ResultStore(evaluator.metrics, self.logger)

        self._set_state(SearchState.RUNNING)
        self.logger.info(f"Starting Grid Search: {len(configs)} configurations x {len(folds)} folds...")
        self.evaluate_configs(configs, folds, evaluator, store)
        self._set_state(SearchState.DONE)

        self._finalize(store, metric, direction)
        return store

    def build_grid(self, space: ParameterSpace, grid: GridSpec) -> List[ParameterConfig]:
        """Resolve and validate the grid. Raises ConfigurationError before any work starts."""
        if grid is None:
            if self.search_config.get('levels'):
                return self._check_size(space.regular_grid(self.search_config['levels']))
            grid = self.search_config.get('grid')
            if not grid:
                raise ConfigurationError("No grid given and no 'search.grid' or 'search.levels' configured.")

        if isinstance(grid, bool):
            raise ConfigurationError("Grid must be a mapping, a list of configurations or a level count.")
        if isinstance(grid, int):
            configs = space.regular_grid(grid)
        elif isinstance(grid, Mapping):
            configs = space.cross_product(grid)
        else:
            configs = list(dict.fromkeys(space.make_config(row) for row in grid))
        return self._check_size(configs)

    def _check_size(self, configs: List[ParameterConfig]) -> List[ParameterConfig]:
        if not configs:
            raise ConfigurationError("Parameter grid is empty.")
        if len(configs) > self.max_configs:
            raise ConfigurationError(
                f"Grid Explosion Detected! Total configurations ({len(configs)}) exceeds "
                f"safety limit ({self.max_configs}). Reduce the grid or increase 'resources.max_grid_configs'."
            )
        return configs

    def evaluate_configs(self, configs: Sequence[ParameterConfig], folds: Sequence[Fold],
                         evaluator: PipelineEvaluator, store: ResultStore) -> int:
        """
        Evaluate ``configs`` on every fold and record the results.

        Returns:
            Number of physical fits dispatched.
        """
        store.register(configs)
        groups = evaluator.group(configs, folds)
        pending = [
            (unit, members) for unit, members in groups.items()
            if not self._unit_recorded(store, unit, members, evaluator.metrics)
        ]
        folds_by_id = {fold.fold_id: fold for fold in folds}

        self.logger.info(
            f"{len(configs) * len(folds)} (configuration, fold) pairs collapse into {len(groups)} fits "
            f"({len(groups) - len(pending)} already recorded)."
        )

        dispatched = 0
        for start in range(0, len(pending), self.batch_size):
            if self.stop_requested:
                self.stopped_early = True
                self.logger.warning(f"Search stopped after {dispatched}/{len(pending)} fits.")
                break

            batch = pending[start:start + self.batch_size]
            results = self._run_batch(batch, folds_by_id, evaluator)

            # Barrier passed: every fold of the batch has reported
            for result in results:
                store.record_many(result.items)

            dispatched += len(batch)
            self.fit_calls += len(batch)
            n_failed = sum(1 for r in results if not r.fitted)
            self.logger.info(f"Processed {dispatched}/{len(pending)} fits ({n_failed} failed in last batch)...")

        return dispatched

    def _run_batch(self, batch: List[Tuple[FitUnit, List[ParameterConfig]]], folds_by_id: Dict[str, Fold],
                   evaluator: PipelineEvaluator) -> List[EvaluationResult]:
        try:
            return Parallel(n_jobs=self.n_jobs, timeout=self.timeout, backend=self.backend)(
                delayed(evaluator.evaluate_unit)(unit, members, folds_by_id[unit.fold_id])
                for unit, members in batch
            )
        except (TimeoutError, multiprocessing.TimeoutError):
            self.logger.error(
                f"Batch of {len(batch)} fits exceeded the {self.timeout}s timeout. Recording them as failed."
            )
            return [
                evaluator.failed_result(members, folds_by_id[unit.fold_id], "timeout")
                for unit, members in batch
            ]

    @staticmethod
    def _unit_recorded(store: ResultStore, unit: FitUnit, members: Sequence[ParameterConfig],
                       metrics: Sequence[str]) -> bool:
        return all(store.has_result(c, unit.fold_id, m) for c in members for m in metrics)

    def _begin(self) -> None:
        if self.state not in (SearchState.IDLE, SearchState.DONE):
            raise RuntimeError(f"{self.__class__.__name__} is already {self.state.value}.")
        self.state = SearchState.IDLE
        self.stopped_early = False
        self._stop_event.clear()
        self.fit_calls = 0

    def _finalize(self, store: ResultStore, metric: Optional[str], direction: Optional[str]) -> None:
        if len(store) == 0:
            self.logger.warning("Search finished without any recorded result.")
            return

        metric = metric or store.primary_metric
        try:
            best = store.best(metric, direction)
        except AggregationUndefined as e:
            self.logger.warning(f"No best configuration: {e}")
        else:
            agg = store.aggregate(best, metric)
            self.logger.info(
                f"Best Config Found: {dict(best)} (mean {metric}: {agg.mean:.5g}, "
                f"std_err: {agg.std_error:.3g}, failed folds: {agg.n_failed}/{agg.n})"
            )

        if self.save_results:
            store.save(self.output_dir, excel_copy=self.excel_copy, metric=metric, direction=direction)

import logging
import math
from dataclasses import dataclass
from typing import List, Mapping, Optional, Set, Tuple, Union

import numpy as np
import pandas as pd

from tunesearch.base.base_engine import SearchState
from tunesearch.bayes_opt_engine.acquisition import DecaySchedule, expected_improvement
from tunesearch.bayes_opt_engine.surrogate import GaussianProcessSurrogate
from tunesearch.grid_search_engine import GridSearchEngine
from tunesearch.parameter_space import ParameterConfig, ParameterSpace
from tunesearch.pipeline_evaluator import PipelineEvaluator
from tunesearch.resampler import Resampler
from tunesearch.result_store import ResultStore
from tunesearch.utils.error_handling import handle_engine_errors
from tunesearch.utils.exceptions import ConfigurationError, SurrogateFitError
from tunesearch.utils.file_io import save_dataframe
from tunesearch.utils import constants

# Fresh space-filling draws tried before declaring the space exhausted
_MAX_FALLBACK_DRAWS = 25


@dataclass(frozen=True)
class HistoryEntry:
    """One completed evaluation of the sequential search."""
    iteration: int
    config: ParameterConfig
    mean: float
    std_error: float
    n_failed: int
    source: str
    acquisition: float = math.nan


class BayesOptEngine(GridSearchEngine):
    """
    Sequential model-based search.

    Workflow:
    1. Initializing: a Latin hypercube design of ``initial`` configurations is
       evaluated on the full fold set with the grid-search machinery.
    2. Iterating: a Gaussian process is refit on the search history each
       iteration; expected improvement, with a trade-off decaying from
       ``start_val`` to ``limit_val``, picks the next configuration among
       space-filling candidates. A surrogate that cannot be fit falls back to
       a fresh space-filling sample.
    3. Done: the ResultStore holds every evaluation; ``history`` holds one
       entry per evaluated configuration.
    """

    def __init__(self, config: dict, logger: logging.Logger):
        super().__init__(config, logger)
        bayes = self.search_config.get('bayes', {})
        self.initial = bayes.get('initial', 5)
        self.iterations = bayes.get('iter', 10)
        self.decay = DecaySchedule.from_dict(bayes.get('decay', {}))
        self.n_candidates = bayes.get('n_candidates', constants.DEFAULT_N_CANDIDATES)
        self.no_improve = bayes.get('no_improve')

        master_seed = config.get('seed', constants.DEFAULT_SEED)
        seeds = config.get('_internal_seeds', {})
        self.sampling_seed = seeds.get('space_filling', master_seed + 1000)
        self.surrogate_seed = seeds.get('surrogate', master_seed + 2000)

        self.history: List[HistoryEntry] = []

    def _get_engine_directory_name(self) -> str:
        return constants.BAYES_OPT_DIR

    @handle_engine_errors("Bayesian Optimization")
    def run(self, space: ParameterSpace, resampler: Resampler, evaluator: PipelineEvaluator,
            metric: Optional[str] = None, direction: Optional[str] = None, initial: Optional[int] = None,
            iterations: Optional[int] = None, decay: Union[DecaySchedule, Mapping, None] = None,
            store: Optional[ResultStore] = None) -> ResultStore:
        """
        Run the initial design followed by ``iterations`` acquisition steps.

        Args:
            space: Parameter space to search.
            resampler: Fold generator applied to ``evaluator.data``.
            evaluator: Pipeline evaluator bound to the dataset.
            metric: Metric the surrogate models (defaults to the evaluator's first metric).
            direction: 'minimize' or 'maximize' (defaults to the metric's natural direction).
            initial, iterations, decay: Override the ``search.bayes`` configuration.
            store: Optional store to extend.

        Returns:
            ResultStore with every evaluated configuration.
        """
        metric, direction, initial, iterations, schedule = self._resolve_options(
            evaluator, metric, direction, initial, iterations, decay
        )
        self._begin()
        self.history = []
        folds = resampler.split(evaluator.data)
        store = store if store is not None else ResultStore(evaluator.metrics, self.logger)

        # 1. Initial space-filling design
        self._set_state(SearchState.INITIALIZING)
        initial_configs = space.sample_space_filling(initial, seed=self.sampling_seed)
        self.logger.info(
            f"Starting Bayesian Optimization: {len(initial_configs)} initial configurations, "
            f"{iterations} iterations, {len(folds)} folds, optimizing {metric} ({direction})..."
        )
        self.evaluate_configs(initial_configs, folds, evaluator, store)
        for config in initial_configs:
            # A stop during the design leaves later configurations unfitted
            if store.aggregate(config, metric).n == 0:
                continue
            entry = self._append_history(0, config, store, metric, 'initial')
            self.logger.info(f"Initial {dict(config)} -> mean {metric}={entry.mean:.5g}")

        # 2. Sequential acquisition loop
        self._set_state(SearchState.ITERATING)
        surrogate = GaussianProcessSurrogate(seed=self.surrogate_seed)
        evaluated: Set[ParameterConfig] = set(store.configs) | set(initial_configs)
        best_mean = self._best_history_mean(direction)
        stale = 0

        for iteration in range(1, iterations + 1):
            if self.stop_requested or self.stopped_early:
                self.stopped_early = True
                self.logger.warning(f"Bayesian Optimization stopped before iteration {iteration}.")
                break

            trade_off = schedule(iteration)
            candidate, source, score = self._propose(space, surrogate, evaluated, direction, trade_off, iteration)
            if candidate is None:
                self.logger.warning(f"No unevaluated configuration left at iteration {iteration}. Ending search.")
                break

            self.evaluate_configs([candidate], folds, evaluator, store)
            evaluated.add(candidate)
            entry = self._append_history(iteration, candidate, store, metric, source, score)
            self.logger.info(
                f"Iteration {iteration}/{iterations} [{source}] tau={trade_off:.4g} "
                f"config={dict(candidate)} -> mean {metric}={entry.mean:.5g} "
                f"(failed folds: {entry.n_failed})"
            )

            new_best = self._best_history_mean(direction)
            if self._improved(best_mean, new_best, direction):
                best_mean, stale = new_best, 0
            else:
                stale += 1
            if self.no_improve is not None and stale >= self.no_improve:
                self.logger.info(f"No improvement for {stale} iterations. Stopping early.")
                break

        self._set_state(SearchState.DONE)
        self._finalize(store, metric, direction)
        return store

    def history_frame(self) -> pd.DataFrame:
        """SearchHistory as a table (one row per evaluated configuration)."""
        names = []
        for entry in self.history:
            for name in entry.config:
                if name not in names:
                    names.append(name)
        rows = [
            {
                'iteration': e.iteration,
                **{n: e.config.get(n) for n in names},
                'mean': e.mean,
                'std_err': e.std_error,
                'n_failed': e.n_failed,
                'source': e.source,
                'acquisition': e.acquisition,
            }
            for e in self.history
        ]
        return pd.DataFrame(rows, columns=['iteration'] + names + ['mean', 'std_err', 'n_failed', 'source', 'acquisition'])

    def _propose(self, space: ParameterSpace, surrogate: GaussianProcessSurrogate, evaluated: Set[ParameterConfig],
                 direction: str, trade_off: float, iteration: int) -> Tuple[Optional[ParameterConfig], str, float]:
        try:
            X = np.vstack([space.to_unit(e.config) for e in self.history])
            y = np.array([e.mean for e in self.history])
            surrogate.fit(X, y)
        except SurrogateFitError as e:
            self.logger.warning(f"Surrogate fit failed at iteration {iteration}: {e} Falling back to a space-filling sample.")
            return self._fallback(space, evaluated, iteration), 'fallback', math.nan

        candidates = [
            c for c in space.sample_space_filling(self.n_candidates, seed=[self.sampling_seed, iteration])
            if c not in evaluated
        ]
        if not candidates:
            return self._fallback(space, evaluated, iteration), 'fallback', math.nan

        mean, std = surrogate.predict(np.vstack([space.to_unit(c) for c in candidates]))
        scores = expected_improvement(mean, std, self._best_history_mean(direction), trade_off, direction)
        index = int(np.argmax(scores))
        return candidates[index], 'acquisition', float(scores[index])

    def _fallback(self, space: ParameterSpace, evaluated: Set[ParameterConfig],
                  iteration: int) -> Optional[ParameterConfig]:
        for attempt in range(_MAX_FALLBACK_DRAWS):
            config = space.sample_space_filling(1, seed=[self.sampling_seed, iteration, attempt])[0]
            if config not in evaluated:
                return config
        return None

    def _append_history(self, iteration: int, config: ParameterConfig, store: ResultStore, metric: str,
                        source: str, acquisition: float = math.nan) -> HistoryEntry:
        agg = store.aggregate(config, metric)
        entry = HistoryEntry(iteration, config, agg.mean, agg.std_error, agg.n_failed, source, acquisition)
        self.history.append(entry)
        return entry

    def _best_history_mean(self, direction: str) -> float:
        means = [e.mean for e in self.history if not math.isnan(e.mean)]
        if not means:
            return math.nan
        return min(means) if direction == constants.MINIMIZE else max(means)

    @staticmethod
    def _improved(previous: float, current: float, direction: str) -> bool:
        if math.isnan(current):
            return False
        if math.isnan(previous):
            return True
        return current < previous if direction == constants.MINIMIZE else current > previous

    def _resolve_options(self, evaluator: PipelineEvaluator, metric: Optional[str], direction: Optional[str],
                         initial: Optional[int], iterations: Optional[int],
                         decay: Union[DecaySchedule, Mapping, None]):
        metric = metric or evaluator.metrics[0]
        if metric not in evaluator.metrics:
            raise ConfigurationError(f"Metric '{metric}' is not computed by the evaluator ({evaluator.metrics}).")
        direction = direction or constants.METRIC_DIRECTIONS.get(metric, constants.MINIMIZE)
        if direction not in constants.DIRECTIONS:
            raise ConfigurationError(f"direction must be one of {constants.DIRECTIONS}, got '{direction}'.")

        initial = self.initial if initial is None else initial
        iterations = self.iterations if iterations is None else iterations
        if not isinstance(initial, int) or initial < 1:
            raise ConfigurationError(f"initial must be an integer >= 1, got {initial}.")
        if not isinstance(iterations, int) or iterations < 0:
            raise ConfigurationError(f"iter must be an integer >= 0, got {iterations}.")
        if not isinstance(self.n_candidates, int) or self.n_candidates < 1:
            raise ConfigurationError(f"n_candidates must be an integer >= 1, got {self.n_candidates}.")

        if decay is None:
            schedule = self.decay
        elif isinstance(decay, DecaySchedule):
            schedule = decay
        else:
            schedule = DecaySchedule.from_dict(decay)
        return metric, direction, initial, iterations, schedule

    def _finalize(self, store: ResultStore, metric: Optional[str], direction: Optional[str]) -> None:
        super()._finalize(store, metric, direction)
        if self.save_results and self.history:
            save_dataframe(self.history_frame(), self.output_dir / constants.HISTORY_FILE, excel_copy=self.excel_copy)

import json
import logging
import math
import threading
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from tunesearch.parameter_space import ParameterConfig
from tunesearch.result_store.records import Aggregate, Extraction, MetricRecord
from tunesearch.utils.exceptions import AggregationUndefined
from tunesearch.utils.file_io import NumpyEncoder, save_dataframe, save_json
from tunesearch.utils import constants


class ResultStore:
    """
    Owns every MetricRecord and Extraction of a search run.

    Records are write-once: a second record for the same (configuration,
    fold, metric), or a second extraction for the same (configuration, fold),
    is rejected. Configurations keep their first-enumeration order, which is
    the final tie-breaker of ``best``.
    """

    def __init__(self, metrics: Optional[Sequence[str]] = None, logger: Optional[logging.Logger] = None):
        self.metrics: List[str] = list(metrics or [])
        self.logger = logger or logging.getLogger(__name__)
        self._records: List[MetricRecord] = []
        self._record_keys = set()
        # (config, metric) -> records, in arrival order
        self._by_config_metric: Dict[Tuple[ParameterConfig, str], List[MetricRecord]] = {}
        self._by_config: Dict[ParameterConfig, List[MetricRecord]] = {}
        self._extractions: List[Extraction] = []
        self._extraction_index: Dict[tuple, int] = {}
        self._config_order: Dict[ParameterConfig, int] = {}
        self._lock = threading.RLock()

    # ------------------------------------------------------------------ #
    # Writing
    # ------------------------------------------------------------------ #
    def register(self, configs: Iterable[ParameterConfig]) -> None:
        """Fix the enumeration order of configurations before results arrive."""
        with self._lock:
            for config in configs:
                self._config_order.setdefault(config, len(self._config_order))

    def record(self, item: Union[MetricRecord, Extraction]) -> None:
        with self._lock:
            if isinstance(item, MetricRecord):
                key = (item.config, item.fold_id, item.metric)
                if key in self._record_keys:
                    raise ValueError(f"Metric '{item.metric}' already recorded for {item.config} on {item.fold_id}.")
                self._record_keys.add(key)
                self._records.append(item)
                self._by_config_metric.setdefault((item.config, item.metric), []).append(item)
                self._by_config.setdefault(item.config, []).append(item)
                self._config_order.setdefault(item.config, len(self._config_order))
                if item.metric not in self.metrics:
                    self.metrics.append(item.metric)
            elif isinstance(item, Extraction):
                key = (item.config, item.fold_id)
                if key in self._extraction_index:
                    raise ValueError(f"Extraction already recorded for {item.config} on {item.fold_id}.")
                self._extraction_index[key] = len(self._extractions)
                self._extractions.append(item)
            else:
                raise TypeError(f"Cannot record object of type {type(item).__name__}.")

    def record_many(self, items: Iterable[Union[MetricRecord, Extraction]]) -> None:
        with self._lock:
            for item in items:
                self.record(item)

    # ------------------------------------------------------------------ #
    # Reading
    # ------------------------------------------------------------------ #
    def __len__(self) -> int:
        return len(self._records)

    @property
    def configs(self) -> List[ParameterConfig]:
        """Configurations with at least one record, in enumeration order."""
        with self._lock:
            # _config_order is insertion-ordered and its values count up from 0
            return [c for c in self._config_order if c in self._by_config]

    @property
    def primary_metric(self) -> Optional[str]:
        return self.metrics[0] if self.metrics else None

    def records(self, config: Optional[ParameterConfig] = None, metric: Optional[str] = None) -> List[MetricRecord]:
        if config is not None and not isinstance(config, ParameterConfig):
            config = ParameterConfig(config)
        with self._lock:
            if config is not None and metric is not None:
                return list(self._by_config_metric.get((config, metric), []))
            if config is not None:
                return list(self._by_config.get(config, []))
            return [r for r in self._records if metric is None or r.metric == metric]

    @property
    def extractions(self) -> List[Extraction]:
        with self._lock:
            return list(self._extractions)

    def has_result(self, config: ParameterConfig, fold_id: str, metric: str) -> bool:
        return (config, fold_id, metric) in self._record_keys

    def aggregate(self, config: ParameterConfig, metric: Optional[str] = None) -> Aggregate:
        """
        Fold statistics for ``config``. Failed folds are excluded from the
        mean but counted in ``n_failed``; if every fold failed the mean is NaN.
        """
        metric = self._resolve_metric(metric)
        rows = self.records(config, metric)
        ok = np.array([r.value for r in rows if r.ok], dtype=float)
        n_failed = len(rows) - len(ok)

        mean = float(ok.mean()) if len(ok) else math.nan
        std_error = float(ok.std(ddof=1) / math.sqrt(len(ok))) if len(ok) > 1 else math.nan
        return Aggregate(mean=mean, std_error=std_error, n=len(rows), n_failed=n_failed)

    def best(self, metric: Optional[str] = None, direction: Optional[str] = None) -> ParameterConfig:
        """
        Configuration with the optimal mean. Ties go to fewer failed folds,
        then to the first-enumerated configuration.
        """
        metric = self._resolve_metric(metric)
        direction = self._resolve_direction(metric, direction)
        sign = 1.0 if direction == constants.MINIMIZE else -1.0

        candidates = []
        for config in self.configs:
            agg = self.aggregate(config, metric)
            if agg.defined:
                candidates.append((sign * agg.mean, agg.n_failed, self._config_order[config], config))

        if not candidates:
            raise AggregationUndefined(f"No configuration has a defined mean for metric '{metric}'.")
        return min(candidates, key=lambda c: c[:3])[3]

    def summarize(self, metric: Optional[str] = None) -> pd.DataFrame:
        """One row per (configuration, metric) with fold statistics."""
        metrics = [self._resolve_metric(metric)] if metric else list(self.metrics)
        param_cols = self._parameter_columns(c for c in self.configs)
        rows = []
        for config in self.configs:
            for name in metrics:
                agg = self.aggregate(config, name)
                if agg.n == 0:
                    continue
                rows.append({
                    **{p: config.get(p, np.nan) for p in param_cols},
                    'config_id': self._config_order[config] + 1,
                    'metric': name,
                    'mean': agg.mean,
                    'std_err': agg.std_error,
                    'n': agg.n,
                    'n_failed': agg.n_failed,
                })
        return pd.DataFrame(rows, columns=param_cols + ['config_id', 'metric', 'mean', 'std_err', 'n', 'n_failed'])

    def show_best(self, metric: Optional[str] = None, direction: Optional[str] = None, n: int = 5) -> pd.DataFrame:
        """Top ``n`` configurations ordered the same way ``best`` ranks them."""
        metric = self._resolve_metric(metric)
        direction = self._resolve_direction(metric, direction)
        summary = self.summarize(metric)
        summary = summary[summary['mean'].notna()].copy()
        summary['_rank_mean'] = summary['mean'] if direction == constants.MINIMIZE else -summary['mean']
        summary = summary.sort_values(['_rank_mean', 'n_failed', 'config_id'], kind='mergesort')
        return summary.drop(columns='_rank_mean').head(n).reset_index(drop=True)

    def select_by_one_std_err(self, order_by: Union[str, Sequence[str]], metric: Optional[str] = None,
                              direction: Optional[str] = None, ascending: bool = True) -> ParameterConfig:
        """
        Simplest configuration whose mean lies within one standard error of
        the best mean. Simplicity is given by sorting on ``order_by``.
        """
        metric = self._resolve_metric(metric)
        direction = self._resolve_direction(metric, direction)
        best = self.best(metric, direction)
        best_agg = self.aggregate(best, metric)
        margin = 0.0 if math.isnan(best_agg.std_error) else best_agg.std_error

        if direction == constants.MINIMIZE:
            within = lambda m: m <= best_agg.mean + margin
        else:
            within = lambda m: m >= best_agg.mean - margin

        keys = [order_by] if isinstance(order_by, str) else list(order_by)
        eligible = []
        for config in self.configs:
            agg = self.aggregate(config, metric)
            if agg.defined and within(agg.mean):
                eligible.append(config)
        eligible.sort(key=lambda c: tuple(c[k] for k in keys), reverse=not ascending)
        return eligible[0]

    def extraction_for(self, config: ParameterConfig, fold_id: str) -> Optional[Extraction]:
        """
        Extraction of the fit that produced ``config`` on ``fold_id``.
        Extractions are keyed by the fit-determining sub-configuration, so
        the first extraction whose configuration is contained in ``config``
        is returned.
        """
        with self._lock:
            index = self._extraction_index.get((config, fold_id))
            if index is not None:
                return self._extractions[index]
            for extraction in self._extractions:
                if extraction.fold_id == fold_id and all(
                    k in config and config[k] == v for k, v in extraction.config.items()
                ):
                    return extraction
        return None

    # ------------------------------------------------------------------ #
    # Tables
    # ------------------------------------------------------------------ #
    def to_frame(self) -> pd.DataFrame:
        """Flat result table: one row per (configuration, fold, metric)."""
        with self._lock:
            records = list(self._records)
        param_cols = self._parameter_columns(r.config for r in records)
        rows = [
            {
                **{p: r.config.get(p, np.nan) for p in param_cols},
                'fold_id': r.fold_id,
                'metric': r.metric,
                'value': r.value,
                'status': r.status,
                'message': r.message,
            }
            for r in records
        ]
        return pd.DataFrame(rows, columns=param_cols + ['fold_id', 'metric', 'value', 'status', 'message'])

    def extractions_frame(self) -> pd.DataFrame:
        """Extraction table: one row per (fit configuration, fold) with an opaque payload."""
        with self._lock:
            extractions = list(self._extractions)
        param_cols = self._parameter_columns(e.config for e in extractions)
        rows = [
            {**{p: e.config.get(p, np.nan) for p in param_cols}, 'fold_id': e.fold_id, 'payload': e.payload}
            for e in extractions
        ]
        return pd.DataFrame(rows, columns=param_cols + ['fold_id', 'payload'])

    def save(self, output_dir: Path, excel_copy: bool = False, metric: Optional[str] = None,
             direction: Optional[str] = None) -> Dict[str, Path]:
        """Persist result, summary and extraction tables plus the best configuration."""
        output_dir = Path(output_dir)
        saved = {
            'metrics': save_dataframe(self.to_frame(), output_dir / constants.METRICS_FILE, excel_copy=excel_copy),
            'summary': save_dataframe(self.summarize(), output_dir / constants.SUMMARY_FILE, excel_copy=excel_copy),
        }

        if self._extractions:
            extractions = self.extractions_frame()
            extractions['payload'] = extractions['payload'].map(lambda p: json.dumps(p, cls=NumpyEncoder))
            saved['extractions'] = save_dataframe(extractions, output_dir / constants.EXTRACTIONS_FILE)

        if self.metrics:
            metric = self._resolve_metric(metric)
            direction = self._resolve_direction(metric, direction)
            try:
                best = self.best(metric, direction)
            except AggregationUndefined as e:
                self.logger.warning(f"No best configuration to save: {e}")
            else:
                agg = self.aggregate(best, metric)
                saved['best'] = save_json({
                    'params': best.to_dict(),
                    'config_fingerprint': best.fingerprint,
                    'metric': metric,
                    'direction': direction,
                    'mean': agg.mean,
                    'std_err': agg.std_error,
                    'n': agg.n,
                    'n_failed': agg.n_failed,
                }, output_dir / constants.BEST_CONFIG_FILE)

        self.logger.info(f"Saved {len(self._records)} metric records to {output_dir}")
        return saved

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #
    def _resolve_metric(self, metric: Optional[str]) -> str:
        if metric is None:
            if not self.metrics:
                raise ValueError("No metric recorded yet; pass the metric name explicitly.")
            return self.metrics[0]
        return metric

    @staticmethod
    def _resolve_direction(metric: str, direction: Optional[str]) -> str:
        direction = direction or constants.METRIC_DIRECTIONS.get(metric, constants.MINIMIZE)
        if direction not in constants.DIRECTIONS:
            raise ValueError(f"direction must be one of {constants.DIRECTIONS}, got '{direction}'.")
        return direction

    @staticmethod
    def _parameter_columns(configs: Iterable[Any]) -> List[str]:
        columns: Dict[str, None] = {}
        for config in configs:
            for name in config:
                columns.setdefault(name, None)
        return list(columns)

import logging
import math
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from tunesearch.parameter_space import ParameterConfig
from tunesearch.pipeline_contract import PipelineContract
from tunesearch.pipeline_evaluator.extraction import ExtractionHook
from tunesearch.resampler import Fold
from tunesearch.result_store import Extraction, MetricRecord
from tunesearch.utils.exceptions import ConfigurationError, FitError


@dataclass(frozen=True)
class FitUnit:
    """
    One physical fit: the fit-determining part of a configuration on one fold.
    Configurations that differ only on free dimensions share a FitUnit.
    """
    config: ParameterConfig
    fold_id: str


@dataclass
class EvaluationResult:
    """Immutable output of one FitUnit evaluation, emitted back to the caller."""
    metrics: List[MetricRecord]
    extraction: Optional[Extraction] = None
    fitted: bool = False
    duration: float = 0.0
    message: Optional[str] = None

    @property
    def items(self) -> list:
        return self.metrics + ([self.extraction] if self.extraction is not None else [])


class PipelineEvaluator:
    """
    Evaluates configurations on folds through the pipeline contract.

    Submodel trick: configurations sharing every fit-determining value are
    grouped into one FitUnit per fold; the contract is fitted once per unit
    and every configuration (i.e. every free-dimension value) is scored
    from that single artifact.

    The evaluator holds the dataset explicitly and never mutates shared
    state, so ``evaluate_unit`` is safe to run on parallel workers.
    """

    def __init__(self, contract: PipelineContract, data: Any, metrics: Sequence[str],
                 extraction_hook: Optional[ExtractionHook] = None, logger: Optional[logging.Logger] = None):
        if not metrics:
            raise ConfigurationError("At least one metric must be requested.")
        if extraction_hook is not None and not callable(extraction_hook):
            raise ConfigurationError("extraction_hook must be callable.")
        self.contract = contract
        self.data = data
        self.metrics = list(metrics)
        self.extraction_hook = extraction_hook
        self.logger = logger or logging.getLogger(__name__)

    def fit_unit(self, config: ParameterConfig, fold: Fold) -> FitUnit:
        return FitUnit(self.contract.fit_parameters(config), fold.fold_id)

    def group(self, configs: Sequence[ParameterConfig], folds: Sequence[Fold]) -> Dict[FitUnit, List[ParameterConfig]]:
        """
        Partition (configuration, fold) pairs into FitUnits, keeping
        first-enumeration order of units and of configurations within a unit.
        """
        groups: Dict[FitUnit, List[ParameterConfig]] = {}
        for fold in folds:
            for config in configs:
                groups.setdefault(self.fit_unit(config, fold), []).append(config)
        return groups

    def evaluate(self, config: ParameterConfig, fold: Fold) -> EvaluationResult:
        """Evaluate a single configuration on a single fold."""
        return self.evaluate_unit(self.fit_unit(config, fold), [config], fold)

    def evaluate_unit(self, unit: FitUnit, configs: Sequence[ParameterConfig], fold: Fold) -> EvaluationResult:
        """
        Fit once for ``unit`` and score every configuration in ``configs``.

        Fit failures never propagate: every dependent record is marked failed.
        """
        if unit.fold_id != fold.fold_id:
            raise ValueError(f"FitUnit fold {unit.fold_id} does not match fold {fold.fold_id}.")
        for config in configs:
            if self.contract.fit_parameters(config) != unit.config:
                raise ValueError(f"{config} does not belong to fit unit {unit.config}.")

        start_time = time.time()
        train_data = fold.training(self.data)
        validation_data = fold.validation(self.data)

        try:
            artifact = self.contract.fit(unit.config, train_data)
        except FitError as e:
            self.logger.warning(f"Fit failed for {dict(unit.config)} on {fold.fold_id}: {e}")
            return self.failed_result(configs, fold, str(e), time.time() - start_time)
        except Exception as e:
            message = f"{type(e).__name__}: {e}"
            self.logger.error(f"Unexpected fit error for {dict(unit.config)} on {fold.fold_id}: {message}")
            return self.failed_result(configs, fold, message, time.time() - start_time)

        extraction = self._extract(unit, artifact)

        records = []
        for config in configs:
            free_values = self.contract.free_values(config)
            for metric in self.metrics:
                records.append(self._score(artifact, validation_data, config, fold, metric, free_values))

        del artifact
        return EvaluationResult(records, extraction, fitted=True, duration=time.time() - start_time)

    def failed_result(self, configs: Sequence[ParameterConfig], fold: Fold, message: str,
                      duration: float = 0.0) -> EvaluationResult:
        records = [
            MetricRecord.failed(config, fold.fold_id, metric, message)
            for config in configs for metric in self.metrics
        ]
        return EvaluationResult(records, None, fitted=False, duration=duration, message=message)

    def _score(self, artifact: Any, validation_data: Any, config: ParameterConfig, fold: Fold,
               metric: str, free_values: ParameterConfig) -> MetricRecord:
        try:
            value = float(self.contract.score(artifact, validation_data, metric, free_values))
        except Exception as e:
            message = f"{type(e).__name__}: {e}"
            self.logger.warning(f"Scoring '{metric}' failed for {dict(config)} on {fold.fold_id}: {message}")
            return MetricRecord.failed(config, fold.fold_id, metric, message)

        if not math.isfinite(value):
            return MetricRecord.failed(config, fold.fold_id, metric, f"non-finite metric value {value}")
        return MetricRecord(config, fold.fold_id, metric, value)

    def _extract(self, unit: FitUnit, artifact: Any) -> Optional[Extraction]:
        if self.extraction_hook is None:
            return None
        try:
            payload = self.extraction_hook(artifact)
        except Exception as e:
            self.logger.warning(f"Extraction hook failed for {dict(unit.config)} on {unit.fold_id}: {e}")
            return None
        return Extraction(unit.config, unit.fold_id, payload)

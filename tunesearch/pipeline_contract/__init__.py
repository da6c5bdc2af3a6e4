"""
Pipeline Contract
=================

Responsibility:
- Abstract fit/score interface consumed by the search core.
- Declaration of free (post-fit sweepable) vs fit-determining dimensions.
- Reference scikit-learn contracts: a plain estimator and an elastic-net
  regularization path with a free penalty.
"""

from .contract import PipelineContract, split_features_target
from .estimator_pipeline import EstimatorPipeline
from .metrics import METRICS, compute_metric, metric_direction
from .model_factory import ModelFactory
from .penalty_path import PenaltyPathArtifact, PenaltyPathPipeline

__all__ = [
    'PipelineContract', 'split_features_target', 'EstimatorPipeline', 'METRICS', 'compute_metric',
    'metric_direction', 'ModelFactory', 'PenaltyPathArtifact', 'PenaltyPathPipeline',
]

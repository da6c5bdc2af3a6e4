"""
Pipeline Evaluator
==================

Responsibility:
- Evaluation of configurations on folds through the pipeline contract.
- Submodel-trick grouping: one physical fit per (fit-determining values, fold).
- Local recovery of fit failures into failed metric records.
- Optional extraction hooks run once per successful fit.
"""

from .extraction import ExtractionHook, extract_coefficients
from .pipeline_evaluator import EvaluationResult, FitUnit, PipelineEvaluator

__all__ = ['ExtractionHook', 'extract_coefficients', 'EvaluationResult', 'FitUnit', 'PipelineEvaluator']

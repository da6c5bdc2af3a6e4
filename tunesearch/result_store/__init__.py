"""
Result Store
============

Responsibility:
- Write-once storage of per-fold metric records and extractions.
- Aggregation (mean, standard error, failure counts) per configuration.
- Best-configuration selection with deterministic tie-breaking.
- Flat result and extraction tables for reporting collaborators.
"""

from .records import Aggregate, Extraction, MetricRecord
from .result_store import ResultStore

__all__ = ['Aggregate', 'Extraction', 'MetricRecord', 'ResultStore']

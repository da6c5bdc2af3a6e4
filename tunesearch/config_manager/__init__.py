"""
Configuration Manager Module
============================

Responsibility:
- Centralized loading and validation of JSON search configurations.
- Enforcement of schema constraints and logical rules before any fit.
- Grid-size and memory guardrails.
- Deterministic seed propagation for reproducibility.
"""

from .config_manager import ConfigurationManager

__all__ = ['ConfigurationManager']

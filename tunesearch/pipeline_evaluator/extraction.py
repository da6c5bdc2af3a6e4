"""
Extraction hooks.

A hook is a pure callable ``(fitted_artifact) -> payload`` run once per
successful physical fit, before the artifact is discarded. It must not touch
global state; it only sees the artifact.
"""
from typing import Any, Callable, Dict

import numpy as np

from tunesearch.pipeline_contract import PenaltyPathArtifact

ExtractionHook = Callable[[Any], Any]


def extract_coefficients(artifact: Any) -> Dict[str, Any]:
    """
    Coefficients of a linear artifact.

    Penalty-path artifacts yield the whole path (one coefficient vector per
    penalty); plain scikit-learn linear estimators yield ``coef_`` and
    ``intercept_``.
    """
    if isinstance(artifact, PenaltyPathArtifact):
        return {
            'feature_names': list(artifact.feature_names),
            'penalties': artifact.penalties.tolist(),
            'coefficients': artifact.coefs.T.tolist(),
        }

    coef = getattr(artifact, 'coef_', None)
    if coef is None:
        raise ValueError(f"{type(artifact).__name__} exposes no coefficients.")
    names = getattr(artifact, 'feature_names_in_', None)
    return {
        'feature_names': list(names) if names is not None else None,
        'coefficients': np.ravel(coef).tolist(),
        'intercept': np.ravel(getattr(artifact, 'intercept_', 0.0)).tolist(),
    }

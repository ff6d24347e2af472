"""Fit method implementations + registry."""

from __future__ import annotations

from typing import Dict, Union

from ..errors import RVMConfigError
from .common import FitMethod, FitResult, Method, ProgressCallback, ProgressInfo, has_converged
from .evidence import fit_evidence_approximation
from .fast_online import fit_fast_online
from .fast_tipping import fit_fast_tipping

_METHODS: Dict[Method, FitMethod] = {
    Method.EVIDENCE_APPROXIMATION: fit_evidence_approximation,
    Method.FAST_TIPPING: fit_fast_tipping,
    Method.FAST_ONLINE: fit_fast_online,
}


def get_method(name: Union[str, Method]) -> FitMethod:
    """Return a fit method implementation by name."""
    try:
        return _METHODS[Method(name)]
    except ValueError as e:
        raise RVMConfigError(
            f"Unknown method {name!r}. Available: {AVAILABLE_METHODS}"
        ) from e


AVAILABLE_METHODS = tuple(m.value for m in _METHODS)

__all__ = [
    "AVAILABLE_METHODS",
    "FitMethod",
    "FitResult",
    "Method",
    "ProgressCallback",
    "ProgressInfo",
    "get_method",
    "has_converged",
]

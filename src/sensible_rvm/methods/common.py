from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Optional, Protocol, Sequence

import numpy as np

if TYPE_CHECKING:
    from ..config import RVMConfig
    from ..features import Feature


class Method(str, Enum):
    """Fit algorithms available to RVMRegression."""

    EVIDENCE_APPROXIMATION = "evidence_approximation"
    FAST_TIPPING = "fast_tipping"
    FAST_ONLINE = "fast_online"


@dataclass(frozen=True)
class FitResult:
    """Normalized result returned by any fit method."""

    feature_indexes: np.ndarray  # surviving features, in active-set order
    alpha: np.ndarray  # precisions of the surviving features
    beta: float
    m: np.ndarray
    sigma: np.ndarray
    converged: bool
    iterations: int


@dataclass(frozen=True)
class ProgressInfo:
    """Snapshot handed to a progress callback."""

    iteration: int
    active_flags: np.ndarray  # bool, one per candidate feature
    active_indexes: np.ndarray
    alpha: np.ndarray  # full length, +inf for inactive features
    beta: float
    score: np.ndarray


ProgressCallback = Callable[[ProgressInfo], None]


class FitMethod(Protocol):
    """Fit method protocol: fit one training set."""

    def __call__(
        self,
        features: Sequence["Feature"],
        x: np.ndarray,
        y: np.ndarray,
        *,
        config: "RVMConfig",
        rng: np.random.Generator,
        callback: Optional[ProgressCallback] = None,
    ) -> FitResult: ...


def has_converged(old_alpha: np.ndarray, new_alpha: np.ndarray, threshold: float) -> bool:
    """Convergence test shared by all methods.

    Sums |old - new| over entries finite on both sides. An entry that is
    infinite on exactly one side means the active set changed, which is never
    converged; entries infinite on both sides are ignored.
    """
    old_alpha = np.asarray(old_alpha, dtype=float)
    new_alpha = np.asarray(new_alpha, dtype=float)
    old_inf = np.isinf(old_alpha)
    new_inf = np.isinf(new_alpha)
    if np.any(old_inf != new_inf):
        return False
    finite = ~old_inf
    delta = float(np.sum(np.abs(old_alpha[finite] - new_alpha[finite])))
    return delta < threshold


def residual_floor(y: np.ndarray) -> float:
    """Smallest residual sum of squares used in the beta update."""
    return float(np.finfo(float).eps * max(1.0, float(np.dot(y, y))))


def initial_beta(y: np.ndarray, ddof: int = 0) -> float:
    var = float(np.var(y, ddof=ddof))
    var = max(var, residual_floor(y) / max(1, y.shape[0]))
    return 1.0 / (0.1 * var)


def update_beta(n: int, gamma_sum: float, rss: float, floor: float) -> float:
    """Noise precision re-estimate (n - sum(gamma)) / ||Phi m - y||^2."""
    return float((n - gamma_sum) / max(float(rss), floor))


def stack_columns(features: Sequence["Feature"], indexes: Optional[Sequence[int]] = None) -> np.ndarray:
    """Design matrix with one (memoized) training column per feature."""
    idx = range(len(features)) if indexes is None else indexes
    cols = [features[int(i)].column() for i in idx]
    return np.stack(cols, axis=1)


def emit_progress(
    callback: Optional[ProgressCallback],
    iteration: int,
    fcount: int,
    active: Sequence[int],
    alpha: np.ndarray,
    beta: float,
    score: Any,
) -> None:
    if callback is None:
        return
    flags = np.zeros(fcount, dtype=bool)
    active_arr = np.asarray(list(active), dtype=int)
    flags[active_arr] = True
    callback(
        ProgressInfo(
            iteration=int(iteration),
            active_flags=flags,
            active_indexes=active_arr,
            alpha=np.array(alpha, dtype=float, copy=True),
            beta=float(beta),
            score=np.array(score, dtype=float, copy=True),
        )
    )

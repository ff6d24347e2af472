from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Sequence, Tuple

import numpy as np
from scipy import stats

from .errors import RVMConfigError
from .features import Feature


@dataclass(frozen=True)
class Prediction:
    """Point prediction plus optional per-quantile estimates.

    ``quantile_values`` has shape (rows, len(quantiles)) when quantiles were
    requested, otherwise None.
    """

    value: np.ndarray
    quantiles: Tuple[float, ...] = ()
    quantile_values: Optional[np.ndarray] = None

    def quantile(self, level: float) -> np.ndarray:
        """Return the column for one requested quantile level."""
        if self.quantile_values is None:
            raise KeyError(level)
        for j, q in enumerate(self.quantiles):
            if q == level:
                return self.quantile_values[:, j]
        raise KeyError(level)


@dataclass(frozen=True)
class RVMResults:
    method: str
    feature_indexes: np.ndarray
    training_indexes: np.ndarray
    relevance_vectors: np.ndarray  # one prototype row per surviving feature
    feature_names: Tuple[str, ...]
    m: np.ndarray
    sigma: np.ndarray
    alpha: np.ndarray
    beta: float
    converged: bool
    iterations: int
    stats: Dict[str, Any] = field(default_factory=dict)

    @property
    def rv_count(self) -> int:
        return int(self.relevance_vectors.shape[0])

    def summary(self, digits: int = 6) -> str:
        """Return a human-readable summary string for the results."""
        lines = [f"RVMResults(method={self.method!r})"]
        lines.append(f"> relevant vectors count: {self.rv_count}")
        lines.append(
            "> relevant vector training indexes: ["
            + ",".join(str(int(i)) for i in self.training_indexes)
            + "]"
        )
        lines.append(f"> convergence: {str(self.converged).lower()}")
        lines.append(f"> iterations: {self.iterations}")
        lines.append("> mean:")
        for name, v in zip(self.feature_names, self.m):
            lines.append(f"  {float(v):>{digits + 8}.{digits}g}  {name}")
        lines.append("> alphas:")
        for name, a in zip(self.feature_names, self.alpha):
            lines.append(f"  {float(a):>{digits + 8}.{digits}g}  {name}")
        lines.append(f"> beta: {self.beta:.{digits}g}")
        return "\n".join(lines)


def _as_matrix(x: Any, d: int) -> np.ndarray:
    arr = np.asarray(x, dtype=float)
    if arr.ndim == 0:
        arr = arr.reshape(1, 1)
    elif arr.ndim == 1:
        arr = arr.reshape(-1, 1) if d == 1 else arr.reshape(1, -1)
    if arr.ndim != 2 or arr.shape[1] != d:
        raise RVMConfigError(f"Expected inputs with {d} columns, got shape {np.shape(x)}.")
    return np.ascontiguousarray(arr)


@dataclass(frozen=True)
class RVMRun:
    """A fitted RVM: the model that produced it, its features and results.

    ``features`` holds only the surviving features, in the order of
    ``results.feature_indexes`` (which index the full candidate list).
    """

    model: Any
    features: Tuple[Feature, ...]
    results: RVMResults
    data: Optional[Dict[str, Any]] = None

    @property
    def converged(self) -> bool:
        return self.results.converged

    @property
    def active_features(self) -> Tuple[Feature, ...]:
        return self.features

    def design_matrix(self, x: Any) -> np.ndarray:
        """Evaluate every surviving feature on the rows of ``x``."""
        d = int(self.results.relevance_vectors.shape[1])
        rows = _as_matrix(x, d)
        cols = [f.evaluate_rows(rows) for f in self.active_features]
        return np.stack(cols, axis=1)

    def _variance(self, phi: np.ndarray) -> np.ndarray:
        return 1.0 / self.results.beta + np.sum((phi @ self.results.sigma) * phi, axis=1)

    def predictive_variance(self, x: Any) -> np.ndarray:
        """Noise variance plus weight uncertainty: 1/beta + phi(x)^T Sigma phi(x)."""
        return self._variance(self.design_matrix(x))

    def predict(self, x: Any, quantiles: Sequence[float] = ()) -> Prediction:
        """Predict at ``x``; with ``quantiles`` also return Normal predictive quantiles."""
        levels = tuple(float(q) for q in quantiles)
        for q in levels:
            if not (0.0 < q < 1.0):
                raise RVMConfigError(f"Quantile level {q!r} is not in (0, 1).")

        phi = self.design_matrix(x)
        value = phi @ self.results.m
        if not levels:
            return Prediction(value=value)

        sd = np.sqrt(self._variance(phi))
        qv = stats.norm.ppf(np.asarray(levels)[None, :], loc=value[:, None], scale=sd[:, None])
        return Prediction(value=value, quantiles=levels, quantile_values=qv)

    def summary(self, digits: int = 6) -> str:
        return self.results.summary(digits=digits)

    def plot(self, **kwargs):
        """Plot training data, prediction and quantile band (1D inputs only)."""
        from .plotting import plot_fit

        if self.data is None:
            raise ValueError("Run has no stored training data to plot.")
        x = np.asarray(self.data["x"], dtype=float)
        if x.ndim == 2:
            if x.shape[1] != 1:
                raise ValueError("Run.plot supports 1D inputs only.")
            x = x[:, 0]
        return plot_fit(x=x, y=self.data["y"], run=self, **kwargs)

    def __str__(self) -> str:
        return f"{self.model}; fitted=true, rvm count={self.results.rv_count}"

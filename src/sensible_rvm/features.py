"""Basis features and the providers that generate them from training data."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Protocol, Sequence, Tuple

import numpy as np
from scipy import stats

from .errors import RVMConfigError
from .kernels import RBFKernel


class Kernel(Protocol):
    """Kernel protocol: vectorized similarity of rows to one center."""

    name: str

    def column(self, x: np.ndarray, center: np.ndarray) -> np.ndarray: ...


@dataclass(eq=False)
class Feature:
    """One candidate basis function.

    ``train_index`` is the training row the feature is built on, or -1 when the
    feature is synthetic. ``prototype`` is the vector reported as relevance
    vector. ``evaluate_rows`` maps an (m, d) matrix to m scalars and is what
    prediction uses; the training column is produced once by ``column()`` and
    dropped by ``release()`` when the fit ends.
    """

    name: str
    train_index: int
    prototype: np.ndarray
    evaluate_rows: Callable[[np.ndarray], np.ndarray]
    train_x: np.ndarray = field(repr=False)
    _column: Optional[np.ndarray] = field(default=None, init=False, repr=False)

    def column(self) -> np.ndarray:
        """Training column, computed on first use and cached afterwards."""
        if self._column is None:
            col = np.asarray(self.evaluate_rows(self.train_x), dtype=float)
            col.setflags(write=False)
            self._column = col
        return self._column

    @property
    def is_cached(self) -> bool:
        return self._column is not None

    def release(self) -> None:
        """Drop the cached training column; ``column()`` recomputes it on demand."""
        self._column = None

    def evaluate(self, v: Any) -> float:
        """Evaluate the feature at a single input vector."""
        row = np.asarray(v, dtype=float).reshape(1, -1)
        return float(self.evaluate_rows(row)[0])


class FeatureProvider(Protocol):
    """Provider protocol: build candidate features from the training matrix."""

    def generate_features(self, x: np.ndarray, rng: np.random.Generator) -> List[Feature]: ...


def _kernel_feature(
    name: str, train_index: int, center: np.ndarray, kernel: Kernel, x: np.ndarray
) -> Feature:
    def evaluate_rows(rows: np.ndarray) -> np.ndarray:
        return kernel.column(np.asarray(rows, dtype=float), center)

    return Feature(
        name=name,
        train_index=int(train_index),
        prototype=center,
        evaluate_rows=evaluate_rows,
        train_x=x,
    )


def _check_fraction(p: float) -> None:
    if not (0.0 <= p <= 1.0):
        raise RVMConfigError(f"Percentage value p={p:g} is not in interval [0,1].")


def _gamma_tuple(gammas: Any) -> Tuple[float, ...]:
    if gammas is None:
        raise RVMConfigError("Gamma vector cannot be empty.")
    out = tuple(float(g) for g in np.atleast_1d(np.asarray(gammas, dtype=float)))
    if len(out) == 0:
        raise RVMConfigError("Gamma vector cannot be empty.")
    return out


def _fmt_vector(v: np.ndarray) -> str:
    return "[" + ",".join(f"{float(a):.6g}" for a in v) + "]"


@dataclass(frozen=True)
class InterceptProvider:
    """Single constant feature."""

    def generate_features(self, x: np.ndarray, rng: np.random.Generator) -> List[Feature]:
        def ones(rows: np.ndarray) -> np.ndarray:
            return np.ones(np.asarray(rows).shape[0], dtype=float)

        return [
            Feature(
                name="intercept",
                train_index=-1,
                prototype=np.mean(x, axis=0),
                evaluate_rows=ones,
                train_x=x,
            )
        ]

    def __str__(self) -> str:
        return "InterceptProvider{}"


@dataclass(frozen=True)
class RBFProvider:
    """RBF features on a sampled fraction ``p`` of (row, gamma) pairs.

    Gamma is the inverse of the squared kernel width; ``p=1`` builds one
    feature for every training row and every gamma.
    """

    gammas: Sequence[float]
    p: float = 1.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "gammas", _gamma_tuple(self.gammas))
        object.__setattr__(self, "p", float(self.p))
        _check_fraction(self.p)
        for g in self.gammas:
            if not np.isfinite(g) or g <= 0:
                raise RVMConfigError(f"RBF gamma must be positive, got {g!r}.")

    def generate_features(self, x: np.ndarray, rng: np.random.Generator) -> List[Feature]:
        n = int(x.shape[0])
        total = n * len(self.gammas)
        count = int(total * self.p)
        selection = np.sort(rng.choice(total, size=count, replace=False))

        features: List[Feature] = []
        for pos in selection:
            gamma_index, row = divmod(int(pos), n)
            kernel = RBFKernel(self.gammas[gamma_index])
            center = np.array(x[row], dtype=float)
            name = f"{kernel.name}, vector: {_fmt_vector(center)}, train index: {row}"
            features.append(_kernel_feature(name, row, center, kernel, x))
        return features

    def __str__(self) -> str:
        gammas = ",".join(f"{g:g}" for g in self.gammas)
        return f"RBFProvider{{gammas=[{gammas}],p={self.p:g}}}"


@dataclass(frozen=True)
class KernelProvider:
    """Features from an arbitrary kernel centered on sampled training rows."""

    kernel: Kernel
    p: float = 1.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "p", float(self.p))
        _check_fraction(self.p)

    def generate_features(self, x: np.ndarray, rng: np.random.Generator) -> List[Feature]:
        n = int(x.shape[0])
        count = max(1, int(n * self.p))
        selection = np.sort(rng.choice(n, size=count, replace=False))

        features: List[Feature] = []
        for row in selection:
            row = int(row)
            center = np.array(x[row], dtype=float)
            name = f"{self.kernel.name}, vector: {_fmt_vector(center)}, train index: {row}"
            features.append(_kernel_feature(name, row, center, self.kernel, x))
        return features

    def __str__(self) -> str:
        return f"KernelProvider{{kernel={self.kernel.name},p={self.p:g}}}"


@dataclass(frozen=True)
class RandomRBFProvider:
    """RBF features on synthetic centers.

    Each center takes every coordinate from a randomly chosen training row and
    adds a sample from ``noise`` (a frozen scipy.stats distribution). The
    number of centers is ``max(1, int(len(gammas) * n * p))``, so ``p`` may
    exceed 1.
    """

    gammas: Sequence[float]
    p: float = 1.0
    noise: Any = field(default_factory=stats.norm, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "gammas", _gamma_tuple(self.gammas))
        object.__setattr__(self, "p", float(self.p))
        if not np.isfinite(self.p) or self.p < 0:
            raise RVMConfigError(f"Percentage value p={self.p:g} must be non-negative.")
        for g in self.gammas:
            if not np.isfinite(g) or g <= 0:
                raise RVMConfigError(f"RBF gamma must be positive, got {g!r}.")

    def generate_features(self, x: np.ndarray, rng: np.random.Generator) -> List[Feature]:
        n, d = x.shape
        count = max(1, int(len(self.gammas) * n * self.p))
        return [self._next_feature(x, rng, n, d) for _ in range(count)]

    def _next_feature(self, x: np.ndarray, rng: np.random.Generator, n: int, d: int) -> Feature:
        kernel = RBFKernel(self.gammas[int(rng.integers(len(self.gammas)))])
        rows = rng.integers(n, size=d)
        noise = np.asarray(self.noise.rvs(size=d, random_state=rng), dtype=float).reshape(d)
        center = x[rows, np.arange(d)] + noise
        name = f"{kernel.name}, vector: {_fmt_vector(center)}, train index: -1"
        return _kernel_feature(name, -1, center, kernel, x)

    def __str__(self) -> str:
        gammas = ",".join(f"{g:g}" for g in self.gammas)
        noise = getattr(getattr(self.noise, "dist", None), "name", type(self.noise).__name__)
        return f"RandomRBFProvider{{gammas=[{gammas}],p={self.p:g},noise={noise}}}"

"""Kernel functions used to build RVM basis features."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from .errors import RVMConfigError


def _row_dot(x: np.ndarray, center: np.ndarray) -> np.ndarray:
    # Row-wise reduction keeps one-row and many-row evaluation bitwise identical.
    return np.sum(x * center[None, :], axis=1)


@dataclass(frozen=True)
class RBFKernel:
    """Radial basis kernel k(u, v) = exp(-gamma * ||u - v||^2)."""

    gamma: float = 1.0

    def __post_init__(self) -> None:
        if not np.isfinite(self.gamma) or self.gamma <= 0:
            raise RVMConfigError(f"RBF gamma must be positive, got {self.gamma!r}.")

    @property
    def name(self) -> str:
        return f"RBF(gamma={self.gamma:g})"

    def column(self, x: np.ndarray, center: np.ndarray) -> np.ndarray:
        diff = x - center[None, :]
        return np.exp(-self.gamma * np.sum(diff * diff, axis=1))

    def __call__(self, u, v) -> float:
        return float(self.column(np.atleast_2d(np.asarray(u, dtype=float)), np.asarray(v, dtype=float))[0])


@dataclass(frozen=True)
class LinearKernel:
    """Linear kernel k(u, v) = u.v + bias."""

    bias: float = 1.0

    @property
    def name(self) -> str:
        return f"LinearKernel(bias={self.bias:g})"

    def column(self, x: np.ndarray, center: np.ndarray) -> np.ndarray:
        return _row_dot(x, center) + self.bias

    def __call__(self, u, v) -> float:
        return float(self.column(np.atleast_2d(np.asarray(u, dtype=float)), np.asarray(v, dtype=float))[0])


@dataclass(frozen=True)
class PolyKernel:
    """Polynomial kernel k(u, v) = (slope * u.v + bias)^degree."""

    degree: int = 2
    slope: float = 1.0
    bias: float = 1.0

    def __post_init__(self) -> None:
        if int(self.degree) != self.degree or self.degree < 1:
            raise RVMConfigError(f"Polynomial degree must be a positive integer, got {self.degree!r}.")

    @property
    def name(self) -> str:
        return f"PolyKernel(degree={self.degree},slope={self.slope:g},bias={self.bias:g})"

    def column(self, x: np.ndarray, center: np.ndarray) -> np.ndarray:
        return (self.slope * _row_dot(x, center) + self.bias) ** int(self.degree)

    def __call__(self, u, v) -> float:
        return float(self.column(np.atleast_2d(np.asarray(u, dtype=float)), np.asarray(v, dtype=float))[0])

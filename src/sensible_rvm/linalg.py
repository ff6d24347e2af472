from __future__ import annotations

from typing import Dict, Optional, Tuple

import numpy as np
from loguru import logger
from scipy import linalg

from .errors import RVMNumericalError


def _symmetrize(a: np.ndarray) -> np.ndarray:
    return 0.5 * (a + a.T)


def _cholesky_inverse(t: np.ndarray) -> np.ndarray:
    c, lower = linalg.cho_factor(t, lower=True, check_finite=True)
    return linalg.cho_solve((c, lower), np.eye(t.shape[0]), check_finite=False)


def _qr_inverse(t: np.ndarray) -> np.ndarray:
    q, r = linalg.qr(t, check_finite=True)
    diag = np.abs(np.diag(r))
    tol = np.finfo(float).eps * max(t.shape) * (float(np.max(diag)) if diag.size else 0.0)
    if diag.size == 0 or not np.all(np.isfinite(diag)) or float(np.min(diag)) <= tol:
        raise np.linalg.LinAlgError("Matrix is singular.")
    return linalg.solve_triangular(r, q.T, check_finite=False)


def robust_inverse(t: np.ndarray) -> np.ndarray:
    """Invert a symmetric matrix through QR; raise RVMNumericalError if singular."""
    t = np.asarray(t, dtype=float)
    try:
        inv = _qr_inverse(t)
    except (np.linalg.LinAlgError, ValueError) as exc:
        raise RVMNumericalError(f"Could not invert {t.shape} matrix: {exc}") from exc
    return _symmetrize(inv)


def spd_inverse(t: np.ndarray) -> np.ndarray:
    """Invert an SPD matrix with Cholesky, retrying once with QR on failure."""
    t = np.asarray(t, dtype=float)
    try:
        return _symmetrize(_cholesky_inverse(t))
    except (np.linalg.LinAlgError, ValueError) as exc:
        logger.warning("Cholesky failed on {} matrix ({}); retrying with QR.", t.shape, exc)
    return robust_inverse(t)


class GramMatrix:
    """Growable symmetric matrix of inner products between active features.

    Storage is a square buffer that doubles on demand; only the leading
    ``size x size`` block is live.
    """

    def __init__(self, capacity: int = 16):
        self._buf = np.zeros((max(1, int(capacity)), max(1, int(capacity))), dtype=float)
        self._size = 0

    @property
    def size(self) -> int:
        return self._size

    @property
    def values(self) -> np.ndarray:
        """Live block (a view, do not mutate)."""
        return self._buf[: self._size, : self._size]

    def _grow(self, needed: int) -> None:
        cap = self._buf.shape[0]
        if needed <= cap:
            return
        while cap < needed:
            cap *= 2
        buf = np.zeros((cap, cap), dtype=float)
        buf[: self._size, : self._size] = self.values
        self._buf = buf

    def append(self, cross: np.ndarray, diag: float) -> None:
        """Add one row/column: ``cross`` against the live entries plus the diagonal."""
        cross = np.asarray(cross, dtype=float).reshape(-1)
        if cross.shape[0] != self._size:
            raise ValueError(f"Expected {self._size} cross products, got {cross.shape[0]}.")
        k = self._size
        self._grow(k + 1)
        self._buf[k, :k] = cross
        self._buf[:k, k] = cross
        self._buf[k, k] = float(diag)
        self._size = k + 1

    def remove(self, pos: int) -> None:
        """Drop row and column ``pos``, shifting the trailing block up and left."""
        k = self._size
        if not (0 <= pos < k):
            raise IndexError(f"Position {pos} out of range for size {k}.")
        live = self._buf[:k, :k]
        keep = np.r_[0:pos, pos + 1 : k]
        self._buf[: k - 1, : k - 1] = live[np.ix_(keep, keep)]
        self._size = k - 1


class PairCache:
    """Symmetric cache of inner products keyed by an unordered pair of feature ids."""

    def __init__(self) -> None:
        self._values: Dict[Tuple[int, int], float] = {}

    @staticmethod
    def _key(i: int, j: int) -> Tuple[int, int]:
        return (i, j) if i >= j else (j, i)

    def get(self, i: int, j: int) -> Optional[float]:
        return self._values.get(self._key(int(i), int(j)))

    def store(self, i: int, j: int, value: float) -> float:
        """Store a value unless present; return the cached one."""
        return self._values.setdefault(self._key(int(i), int(j)), float(value))

    def __len__(self) -> int:
        return len(self._values)

    def __contains__(self, pair: Tuple[int, int]) -> bool:
        i, j = pair
        return self._key(int(i), int(j)) in self._values

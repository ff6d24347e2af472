from __future__ import annotations

from typing import Any, List, Optional, Sequence

import numpy as np
from loguru import logger

from ..linalg import GramMatrix, PairCache, spd_inverse
from .common import (
    FitResult,
    ProgressCallback,
    emit_progress,
    has_converged,
    initial_beta,
    residual_floor,
    update_beta,
)
from .fast_tipping import initial_feature, likelihood_deltas, sparsity_quality

# Selection bias towards features correlated with the target.
_CORRELATION_POWER = 0.7


class _FastOnline:
    """State of one fast online fit.

    Only the Gram matrix of the active features is kept; inner products
    between active features and candidates go through a symmetric cache and
    are computed on first use.
    """

    def __init__(self, features: Sequence[Any], y: np.ndarray, config: Any):
        self.features = features
        self.y = y
        self.config = config
        self.n = int(y.shape[0])
        self.fcount = len(features)
        self.floor = residual_floor(y)

        self.candidates: List[int] = list(range(self.fcount))
        self.fails = np.zeros(self.fcount, dtype=int)

        cols = [f.column() for f in features]
        self.phii_dot_phii = np.array([c @ c for c in cols], dtype=float)
        self.phii_dot_y = np.array([c @ y for c in cols], dtype=float)
        self.y_dot_y = float(y @ y)
        self.weight = 1.0 + np.abs(self.phii_dot_y) ** _CORRELATION_POWER

        self.big_s = np.zeros(self.fcount)
        self.big_q = np.zeros(self.fcount)
        self.s = np.zeros(self.fcount)
        self.q = np.zeros(self.fcount)
        self.alpha = np.full(self.fcount, np.inf)

        self.beta = initial_beta(y, ddof=1)
        best, alpha_best = initial_feature(self.phii_dot_phii, self.phii_dot_y, self.beta)
        self.alpha[best] = alpha_best
        self.active: List[int] = [best]
        self.gram = GramMatrix()
        self.gram.append(np.empty(0), self.phii_dot_phii[best])
        self.cache = PairCache()
        logger.debug("fast online starts from feature {} (alpha={:.4g})", best, alpha_best)

        self.m = np.zeros(1)
        self.sigma = np.eye(1)

    def cross_products(self, i: int) -> np.ndarray:
        """Inner products of feature ``i`` with every active feature."""
        if np.isfinite(self.alpha[i]):
            return self.gram.values[:, self.active.index(i)].copy()

        out = np.empty(len(self.active))
        column = None
        for j, a in enumerate(self.active):
            value = self.cache.get(i, a)
            if value is None:
                if column is None:
                    column = self.features[i].column()
                value = self.cache.store(i, a, float(self.features[a].column() @ column))
            out[j] = value
        return out

    def compute_posterior(self) -> None:
        t = self.beta * self.gram.values + np.diag(self.alpha[self.active])
        self.sigma = spd_inverse(t)
        self.m = self.beta * (self.sigma @ self.phii_dot_y[self.active])

    def compute_statistics(self) -> None:
        beta = self.beta
        right = self.phii_dot_y[self.active]
        idx = np.asarray(self.candidates, dtype=int)
        left = np.stack([self.cross_products(i) for i in self.candidates], axis=0)
        left_sigma = left @ self.sigma
        self.big_s[idx] = beta * self.phii_dot_phii[idx] - beta * beta * np.sum(left_sigma * left, axis=1)
        self.big_q[idx] = beta * self.phii_dot_y[idx] - beta * beta * (left_sigma @ right)
        s, q = sparsity_quality(self.big_s[idx], self.big_q[idx], self.alpha[idx])
        self.s[idx] = s
        self.q[idx] = q

    def compute_beta(self) -> None:
        k = len(self.active)
        gamma_sum = k - float(np.sum(self.alpha[self.active] * np.diag(self.sigma)))
        m = self.m
        rss = self.y_dot_y - 2.0 * float(m @ self.phii_dot_y[self.active]) + float(m @ self.gram.values @ m)
        self.beta = update_beta(self.n, gamma_sum, rss, self.floor)

    def update_best_vector(self, it: int) -> None:
        idx = np.asarray(self.candidates, dtype=int)
        alpha = self.alpha[idx]
        theta, delta = likelihood_deltas(self.big_s[idx], self.big_q[idx], self.s[idx], self.q[idx], alpha)
        rejected = np.isinf(alpha) & (theta <= 0)
        delta[rejected] = -np.inf
        delta = delta * self.weight[idx]

        self.fails[idx[rejected]] += 1
        self.fails[idx[~rejected]] = 0
        dropped = idx[self.fails[idx] > self.config.max_failures]

        pos = int(np.argmax(delta))
        best = int(idx[pos])
        if dropped.size:
            drop = set(dropped.tolist())
            self.candidates = [c for c in self.candidates if c not in drop]
            logger.debug("iteration {}: dropped {} candidates", it, len(drop))

        if not np.isfinite(delta[pos]):
            return
        if theta[pos] > 0:
            new_alpha = self.s[best] ** 2 / theta[pos]
            if np.isinf(self.alpha[best]):
                self.add_feature(best, new_alpha)
                logger.debug("iteration {}: add feature {}", it, best)
            else:
                self.alpha[best] = new_alpha
        elif np.isfinite(self.alpha[best]) and len(self.active) > 1:
            self.remove_feature(best)
            logger.debug("iteration {}: delete feature {}", it, best)

    def add_feature(self, index: int, alpha: float) -> None:
        cross = self.cross_products(index)
        self.alpha[index] = alpha
        self.gram.append(cross, self.phii_dot_phii[index])
        self.active.append(index)

    def remove_feature(self, index: int) -> None:
        pos = self.active.index(index)
        self.alpha[index] = np.inf
        self.gram.remove(pos)
        self.active.pop(pos)

    def step(self) -> None:
        self.compute_posterior()
        self.compute_statistics()
        self.compute_beta()

    def progress(self, callback: Optional[ProgressCallback], it: int) -> None:
        if callback is None:
            return
        with np.errstate(invalid="ignore"):
            score = np.log1p(self.q * self.q - self.s)
        emit_progress(callback, it, self.fcount, self.active, self.alpha, self.beta, score)

    def result(self, converged: bool, iterations: int) -> FitResult:
        idx = np.asarray(self.active, dtype=int)
        return FitResult(
            feature_indexes=idx,
            alpha=self.alpha[idx].copy(),
            beta=float(self.beta),
            m=self.m.copy(),
            sigma=self.sigma.copy(),
            converged=converged,
            iterations=iterations,
        )


def fit_fast_online(
    features: Sequence[Any],
    x: np.ndarray,
    y: np.ndarray,
    *,
    config: Any,
    rng: np.random.Generator,
    callback: Optional[ProgressCallback] = None,
) -> FitResult:
    """Fast marginal likelihood maximisation for large candidate pools.

    Follows the same add / re-estimate / delete scheme as fast tipping but
    never forms Phi^T Phi; candidates that keep being rejected are dropped
    after ``config.max_failures`` consecutive rejections.
    """
    state = _FastOnline(features, y, config)
    state.step()
    state.progress(callback, 0)

    old_alpha = state.alpha.copy()
    for it in range(1, config.max_iter + 1):
        state.update_best_vector(it)
        state.step()
        state.progress(callback, it)

        if has_converged(old_alpha, state.alpha, config.fit_threshold):
            return state.result(True, it)
        old_alpha = state.alpha.copy()

    return state.result(False, config.max_iter)

from __future__ import annotations

from typing import Any, Optional, Sequence

import numpy as np
from loguru import logger

from ..errors import RVMNumericalError
from ..linalg import spd_inverse
from .common import (
    FitResult,
    ProgressCallback,
    emit_progress,
    has_converged,
    initial_beta,
    residual_floor,
    stack_columns,
    update_beta,
)


def _posterior(phi_t_phi, phi_t_y, alpha, beta):
    t = beta * phi_t_phi + np.diag(alpha)
    sigma = spd_inverse(t)
    m = beta * (sigma @ phi_t_y)
    return m, sigma


def fit_evidence_approximation(
    features: Sequence[Any],
    x: np.ndarray,
    y: np.ndarray,
    *,
    config: Any,
    rng: np.random.Generator,
    callback: Optional[ProgressCallback] = None,
) -> FitResult:
    """Type-II maximum likelihood over the full basis, pruning as it goes.

    Every feature starts active; each iteration re-estimates all alphas with
    the MacKay update gamma_i / m_i^2 and drops those that diverge past
    ``config.alpha_threshold``.
    """
    n = int(y.shape[0])
    fcount = len(features)
    floor = residual_floor(y)

    phi = stack_columns(features)
    phi_t_phi = phi.T @ phi
    phi_t_y = phi.T @ y
    indexes = np.arange(fcount)

    beta = initial_beta(y)
    alpha = np.abs(rng.random(fcount) / 10.0)
    alpha_full = np.full(fcount, np.inf)
    alpha_full[indexes] = alpha
    emit_progress(callback, 0, fcount, indexes, alpha_full, beta, np.full(fcount, np.nan))

    m = np.zeros(fcount)
    sigma = np.eye(fcount)
    for it in range(1, config.max_iter + 1):
        m, sigma = _posterior(phi_t_phi, phi_t_y, alpha, beta)

        gamma = 1.0 - alpha * np.diag(sigma)
        old_alpha_full = alpha_full.copy()

        with np.errstate(divide="ignore", invalid="ignore"):
            alpha = gamma / (m * m)
        residual = phi @ m - y
        beta = update_beta(n, float(np.sum(gamma)), float(residual @ residual), floor)

        keep = np.isfinite(alpha) & (alpha <= config.alpha_threshold)
        if not np.all(keep):
            if not np.any(keep):
                raise RVMNumericalError(
                    f"All {indexes.size} remaining features were pruned at iteration {it}."
                )
            logger.debug("iteration {}: pruned {} features", it, int(np.sum(~keep)))
            indexes = indexes[keep]
            alpha = alpha[keep]
            gamma = gamma[keep]
            phi = phi[:, keep]
            phi_t_phi = phi_t_phi[np.ix_(keep, keep)]
            phi_t_y = phi_t_y[keep]
            m, sigma = _posterior(phi_t_phi, phi_t_y, alpha, beta)

        alpha_full = np.full(fcount, np.inf)
        alpha_full[indexes] = alpha
        score = np.full(fcount, np.nan)
        score[indexes] = gamma
        emit_progress(callback, it, fcount, indexes, alpha_full, beta, score)

        if has_converged(old_alpha_full, alpha_full, config.fit_threshold):
            return FitResult(
                feature_indexes=indexes.copy(),
                alpha=alpha.copy(),
                beta=beta,
                m=m.copy(),
                sigma=sigma.copy(),
                converged=True,
                iterations=it,
            )

    return FitResult(
        feature_indexes=indexes.copy(),
        alpha=alpha.copy(),
        beta=beta,
        m=m.copy(),
        sigma=sigma.copy(),
        converged=False,
        iterations=config.max_iter,
    )

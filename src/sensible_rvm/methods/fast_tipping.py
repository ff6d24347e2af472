from __future__ import annotations

from typing import Any, List, Optional, Sequence, Tuple

import numpy as np
from loguru import logger

from ..errors import RVMNumericalError
from ..linalg import robust_inverse
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


def initial_feature(phi_dot_phi: np.ndarray, phi_dot_y: np.ndarray, beta: float) -> Tuple[int, float]:
    """Pick the starting feature and its alpha.

    The feature with the largest projection phi_i.y / phi_i.phi_i wins (the
    last one on ties); its alpha comes from the single-basis closed form
    ||phi||^2 / ((phi.y)^2 / ||phi||^2 - 1/beta).
    """
    with np.errstate(divide="ignore", invalid="ignore"):
        projection = phi_dot_y / phi_dot_phi
    projection = np.where(np.isnan(projection), -np.inf, projection)
    best = int(projection.size - 1 - np.argmax(projection[::-1]))

    denom = phi_dot_y[best] ** 2 / phi_dot_phi[best] - 1.0 / beta
    alpha = phi_dot_phi[best] / denom if denom > 0 else np.inf
    if not np.isfinite(alpha) or alpha <= 0:
        raise RVMNumericalError(
            f"Cannot initialise from feature {best}: its projection on the target "
            "does not exceed the initial noise variance."
        )
    return best, float(alpha)


def sparsity_quality(
    big_s: np.ndarray, big_q: np.ndarray, alpha: np.ndarray
) -> Tuple[np.ndarray, np.ndarray]:
    """Turn S/Q into s/q, correcting entries whose feature is already active."""
    s = big_s.copy()
    q = big_q.copy()
    active = np.isfinite(alpha)
    a = alpha[active]
    denom = a - big_s[active]
    s[active] = a * big_s[active] / denom
    q[active] = a * big_q[active] / denom
    return s, q


def likelihood_deltas(
    big_s: np.ndarray, big_q: np.ndarray, s: np.ndarray, q: np.ndarray, alpha: np.ndarray
) -> Tuple[np.ndarray, np.ndarray]:
    """Marginal likelihood change for the best action on every candidate.

    Returns ``(theta, delta)``; candidates with no possible action get 0 and
    non-finite deltas are mapped to -inf.
    """
    theta = q * q - s
    inactive = np.isinf(alpha)
    delta = np.zeros_like(theta)
    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        q2 = big_q * big_q

        add = (theta > 0) & inactive
        delta[add] = (q2[add] - big_s[add]) / big_s[add] + np.log(big_s[add] / q2[add])

        reestimate = (theta > 0) & ~inactive
        alpha_new = s[reestimate] ** 2 / theta[reestimate]
        d_alpha = 1.0 / alpha_new - 1.0 / alpha[reestimate]
        delta[reestimate] = q2[reestimate] / (big_s[reestimate] + 1.0 / d_alpha) - np.log1p(
            big_s[reestimate] * d_alpha
        )

        delete = (theta <= 0) & ~inactive
        delta[delete] = q2[delete] / (big_s[delete] - alpha[delete]) - np.log(
            1.0 - big_s[delete] / alpha[delete]
        )
    delta[~np.isfinite(delta)] = -np.inf
    return theta, delta


def apply_best_action(
    big_s: np.ndarray,
    big_q: np.ndarray,
    s: np.ndarray,
    q: np.ndarray,
    alpha: np.ndarray,
    active: List[int],
) -> Optional[Tuple[str, int]]:
    """Apply the add, re-estimate or delete with the largest gain.

    ``alpha`` and ``active`` are updated in place. Returns ``(action, index)``
    or None when nothing changed; deleting the last active feature is skipped.
    """
    theta, delta = likelihood_deltas(big_s, big_q, s, q, alpha)
    i = int(np.argmax(delta))
    if not np.isfinite(delta[i]):
        return None

    if theta[i] > 0:
        action = "re-estimate"
        if np.isinf(alpha[i]):
            active.append(i)
            action = "add"
        alpha[i] = s[i] * s[i] / theta[i]
        return action, i

    if np.isfinite(alpha[i]) and len(active) > 1:
        alpha[i] = np.inf
        active.remove(i)
        return "delete", i
    return None


def fit_fast_tipping(
    features: Sequence[Any],
    x: np.ndarray,
    y: np.ndarray,
    *,
    config: Any,
    rng: np.random.Generator,
    callback: Optional[ProgressCallback] = None,
) -> FitResult:
    """Sequential sparse Bayesian learning (Tipping & Faul, 2003).

    Starts from a single feature and applies one add, re-estimate or delete
    per iteration, always the action with the largest marginal likelihood
    gain. Phi^T Phi is precomputed for every candidate.
    """
    n = int(y.shape[0])
    fcount = len(features)
    floor = residual_floor(y)

    phi = stack_columns(features)
    phi_hat = phi.T @ phi
    phi_dot_y = phi.T @ y
    phi_hat_diag = np.diag(phi_hat).copy()

    beta = initial_beta(y, ddof=1)
    alpha = np.full(fcount, np.inf)
    best, alpha_best = initial_feature(phi_hat_diag, phi_dot_y, beta)
    alpha[best] = alpha_best
    active: List[int] = [best]
    logger.debug("fast tipping starts from feature {} (alpha={:.4g})", best, alpha_best)

    def posterior(beta: float) -> Tuple[np.ndarray, np.ndarray]:
        t = beta * phi_hat[np.ix_(active, active)] + np.diag(alpha[active])
        sigma = robust_inverse(t)
        return beta * (sigma @ phi_dot_y[active]), sigma

    def statistics(beta: float, sigma: np.ndarray) -> Tuple[np.ndarray, ...]:
        left = phi_hat[:, active]
        left_sigma = left @ sigma
        big_s = beta * phi_hat_diag - beta * beta * np.sum(left_sigma * left, axis=1)
        big_q = beta * phi_dot_y - beta * beta * (left_sigma @ phi_dot_y[active])
        s, q = sparsity_quality(big_s, big_q, alpha)
        return big_s, big_q, s, q

    def new_beta(m: np.ndarray, sigma: np.ndarray) -> float:
        gamma = 1.0 - alpha[active] * np.diag(sigma)
        residual = phi[:, active] @ m - y
        return update_beta(n, float(np.sum(gamma)), float(residual @ residual), floor)

    m, sigma = posterior(beta)
    big_s, big_q, s, q = statistics(beta, sigma)
    beta = new_beta(m, sigma)
    with np.errstate(invalid="ignore"):
        emit_progress(callback, 0, fcount, active, alpha, beta, np.log1p(q * q - s))

    old_alpha = alpha.copy()
    for it in range(1, config.max_iter + 1):
        step = apply_best_action(big_s, big_q, s, q, alpha, active)
        if step is not None and step[0] != "re-estimate":
            logger.debug("iteration {}: {} feature {}", it, *step)

        m, sigma = posterior(beta)
        big_s, big_q, s, q = statistics(beta, sigma)
        beta = new_beta(m, sigma)
        with np.errstate(invalid="ignore"):
            emit_progress(callback, it, fcount, active, alpha, beta, np.log1p(q * q - s))

        if has_converged(old_alpha, alpha, config.fit_threshold):
            return _result(active, alpha, beta, m, sigma, True, it)
        old_alpha = alpha.copy()

    return _result(active, alpha, beta, m, sigma, False, config.max_iter)


def _result(active, alpha, beta, m, sigma, converged, iterations) -> FitResult:
    idx = np.asarray(active, dtype=int)
    return FitResult(
        feature_indexes=idx,
        alpha=alpha[idx].copy(),
        beta=float(beta),
        m=np.array(m, copy=True),
        sigma=np.array(sigma, copy=True),
        converged=bool(converged),
        iterations=int(iterations),
    )

"""
Perplexity calibration: per-point Gaussian precisions by bisection.

For each point i the precision beta_i is chosen so that the row
distribution

    p(j | i) = exp(-beta_i f_ij) / sum_k exp(-beta_i f_ik),    j != i

has Shannon entropy log(perplexity). The entropy of a row is

    H_i = log(sum_j w_ij) + beta_i * sum_j f_ij w_ij / sum_j w_ij

which is monotonically decreasing in beta_i, so bisection is safe. All rows
are searched together, but each row carries its own bracket and stops
moving once it is within tolerance: the result for point i never depends
on the other points' targets.

The kernel input f is usually the squared input distance matrix. Row
minima are subtracted before exponentiating, which leaves P and H unchanged
but keeps very large precisions from underflowing every weight to zero.

Reference: van der Maaten & Hinton (2008), Appendix "x2p".
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Tuple, Union

import jax.numpy as jnp
import numpy as np

from ..core import ProbabilityMatrix, ProbType
from .probability import row_perplexity

log = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class CalibrationResult:
    """
    Outcome of a perplexity search.

    Attributes:
        beta: Per-point precisions, shape (n,)
        pm: Row probabilities at those precisions
        perplexity: Achieved perplexity of each row, shape (n,)
        n_iter: Number of bisection rounds performed
    """
    beta: jnp.ndarray
    pm: ProbabilityMatrix
    perplexity: jnp.ndarray
    n_iter: int

    @property
    def bandwidths(self) -> jnp.ndarray:
        return precisions_to_bandwidths(self.beta)


def precisions_to_bandwidths(beta: jnp.ndarray) -> jnp.ndarray:
    """Gaussian bandwidths sigma = 1 / sqrt(2 beta)."""
    return 1.0 / jnp.sqrt(2.0 * beta)


def _shifted_input(f: jnp.ndarray) -> Tuple[jnp.ndarray, jnp.ndarray]:
    """Off-diagonal kernel input shifted by its row minimum, and the mask."""
    n = f.shape[0]
    offdiag = 1.0 - jnp.eye(n, dtype=f.dtype)
    masked = jnp.where(offdiag > 0, f, jnp.inf)
    shifted = (f - jnp.min(masked, axis=1, keepdims=True)) * offdiag
    return shifted, offdiag


def _row_stats(shifted, offdiag, beta) -> Tuple[jnp.ndarray, jnp.ndarray]:
    """Row entropies and row probabilities at the given precisions."""
    wm = jnp.exp(-beta[:, None] * shifted) * offdiag
    sum_w = jnp.sum(wm, axis=1)
    entropy = jnp.log(sum_w) + beta * jnp.sum(shifted * wm, axis=1) / sum_w
    return entropy, wm / sum_w[:, None]


def find_beta(
    f: jnp.ndarray,
    perplexity: Union[float, jnp.ndarray],
    tol: float = 1e-5,
    max_iter: int = 50,
    beta_init: float = 1.0,
) -> CalibrationResult:
    """
    Find per-point precisions that reproduce a target perplexity.

    Args:
        f: Kernel input matrix (usually squared distances), shape (n, n)
        perplexity: Target perplexity, scalar or one per point
        tol: Tolerance on |H - log(perplexity)|
        max_iter: Maximum bisection rounds
        beta_init: Starting precision for every point

    Returns:
        CalibrationResult with ROW probabilities

    Raises:
        ValueError: for a non-square input or a perplexity outside (1, n - 1]
    """
    f = jnp.asarray(f)
    if f.ndim != 2 or f.shape[0] != f.shape[1]:
        raise ValueError(f"Expected square matrix, got shape {f.shape}")
    n = f.shape[0]
    perplexity = jnp.broadcast_to(jnp.asarray(perplexity, dtype=f.dtype), (n,))
    if bool(jnp.any(perplexity <= 1.0)) or bool(jnp.any(perplexity > n - 1)):
        raise ValueError(f"Perplexity must lie in (1, {n - 1}] for {n} points")

    target = jnp.log(perplexity)
    shifted, offdiag = _shifted_input(f)

    beta = jnp.full((n,), beta_init, dtype=f.dtype)
    lo = jnp.zeros((n,), dtype=f.dtype)
    hi = jnp.full((n,), jnp.inf, dtype=f.dtype)

    n_iter = 0
    for n_iter in range(max_iter):
        entropy, _ = _row_stats(shifted, offdiag, beta)
        diff = entropy - target
        active = jnp.abs(diff) >= tol
        if not bool(jnp.any(active)):
            break

        # Entropy too high: distribution too flat, increase precision
        too_flat = active & (diff > 0)
        too_sharp = active & (diff <= 0)
        lo = jnp.where(too_flat, beta, lo)
        hi = jnp.where(too_sharp, beta, hi)
        raised = jnp.where(jnp.isinf(hi), beta * 2.0, 0.5 * (beta + hi))
        lowered = jnp.where(lo == 0, beta * 0.5, 0.5 * (beta + lo))
        beta = jnp.where(too_flat, raised, jnp.where(too_sharp, lowered, beta))
    else:
        n_iter = max_iter

    _, pm = _row_stats(shifted, offdiag, beta)
    achieved = row_perplexity(pm)

    n_bad = int(np.sum(np.abs(np.log(np.asarray(achieved)) - np.asarray(target)) >= tol))
    if n_bad:
        log.warning("Perplexity search did not converge for %d of %d points", n_bad, n)
    sigma = np.asarray(precisions_to_bandwidths(beta))
    log.info(
        "Calibrated %d points in %d rounds: sigma min %.4g median %.4g "
        "mean %.4g max %.4g", n, n_iter, sigma.min(), np.median(sigma),
        sigma.mean(), sigma.max()
    )
    return CalibrationResult(
        beta=beta,
        pm=ProbabilityMatrix(pm, ProbType.ROW),
        perplexity=achieved,
        n_iter=n_iter,
    )


__all__ = [
    'CalibrationResult',
    'precisions_to_bandwidths',
    'find_beta',
]

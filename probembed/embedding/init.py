"""
Initialization of an embedding run.

Input initializers turn an InputState without probabilities into one with
P tagged for the method, and may return an updated MethodSpec (multiscale
output kernels, per-point parameters, importance degrees):

    PerplexityInit            one calibrated Gaussian per point
    MultiscalePerplexityInit  average of several calibrations; the output
                              kernel gets one scale per perplexity

Output initializers produce starting coordinates:

    pca_init     scores on the leading principal components
    mds_init     classical (Torgerson) MDS from a distance matrix
    random_init  small Gaussian noise from an explicit PRNG key

init_embedding ties them together.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Optional, Sequence, Tuple, Union

import jax
import jax.numpy as jnp
import numpy as np

from ..core import CostType, ConfigurationError, ProbabilityMatrix, ProbType
from ..geometry.distance import Transform
from ..geometry.kernels import ImportanceWeightedKernel, dist2_to_weights
from ..information.calibration import find_beta
from ..information.probability import convert_prob, weights_to_probs
from .method import MethodSpec
from .state import InputState, OutputState, update_output

log = logging.getLogger(__name__)


# =============================================================================
# Input Initialization
# =============================================================================

class PrecisionTransfer(Enum):
    """
    How calibrated input precisions shape the output kernels of a
    multiscale method.

    - SCALE_TO_PERPLEXITY: one symmetric kernel per scale with precision
      beta * perplexity^(-2 / d), d the output dimensionality
    - NONE: the method's kernel, unchanged, for every scale
    - TRANSFER: the per-point input precisions of each scale (asymmetric)
    """
    SCALE_TO_PERPLEXITY = "scale"
    NONE = "none"
    TRANSFER = "transfer"


@dataclass(frozen=True)
class PerplexityInit:
    """
    Input probabilities from a single perplexity calibration.

    Attributes:
        perplexity: Target perplexity, scalar or one per point
        tol: Entropy tolerance of the bisection
        max_iter: Maximum bisection rounds
    """
    perplexity: Union[float, Sequence[float]] = 30.0
    tol: float = 1e-5
    max_iter: int = 50

    def __call__(self, inp: InputState, method: MethodSpec, ndim: int):
        result = find_beta(inp.d2m, jnp.asarray(self.perplexity), self.tol, self.max_iter)
        pm = convert_prob(result.pm, method.prob_type)
        return replace(inp, pm=pm, beta=result.beta), method


@dataclass(frozen=True)
class MultiscalePerplexityInit:
    """
    Input probabilities averaged over several perplexities.

    The method's kernel becomes the template for one output kernel per
    perplexity, so the method must use the plugin gradient.

    Reference: Lee, Peluffo-Ordonez & Verleysen (2015), "Multi-scale
    similarities in stochastic neighbour embedding".
    """
    perplexities: Tuple[float, ...] = (45.0, 35.0, 25.0)
    transfer: PrecisionTransfer = PrecisionTransfer.SCALE_TO_PERPLEXITY
    tol: float = 1e-5
    max_iter: int = 50

    def __call__(self, inp: InputState, method: MethodSpec, ndim: int):
        if method.kernel is None:
            raise ConfigurationError("Multiscale initialization requires a kernel")
        if not isinstance(self.transfer, PrecisionTransfer):
            raise ConfigurationError(f"Unknown precision transfer {self.transfer!r}")

        results = [find_beta(inp.d2m, perp, self.tol, self.max_iter)
                   for perp in self.perplexities]
        prow = sum(r.pm.data for r in results) / len(results)
        pm = convert_prob(ProbabilityMatrix(prow, ProbType.ROW), method.prob_type)

        template = method.kernel
        if self.transfer == PrecisionTransfer.SCALE_TO_PERPLEXITY:
            base_beta = getattr(template, 'beta', 1.0)
            scales = tuple(
                template.with_precision(base_beta * float(perp) ** (-2.0 / ndim))
                for perp in self.perplexities
            )
        elif self.transfer == PrecisionTransfer.TRANSFER:
            scales = tuple(template.with_precision(r.beta) for r in results)
        else:
            scales = tuple(template for _ in self.perplexities)

        log.info(
            "Multiscale input over perplexities %s (%s output precisions)",
            ", ".join(f"{p:g}" for p in self.perplexities), self.transfer.value
        )
        inp = replace(inp, pm=pm, scale_betas=tuple(r.beta for r in results))
        return inp, replace(method, scales=scales)


def _kernel_input(inp: InputState, transform: Transform) -> jnp.ndarray:
    if transform == Transform.NONE and inp.dm is not None:
        return inp.dm
    return transform.apply(inp.d2m)


def input_from_method(inp: InputState, method: MethodSpec) -> InputState:
    """
    Input probabilities from the method's own pipeline, with no calibration.

    An importance-weighted kernel contributes its base kernel here, since
    its degrees are themselves computed from P.
    """
    kernel = method.kernel
    if isinstance(kernel, ImportanceWeightedKernel):
        kernel = kernel.base
    wm = dist2_to_weights(_kernel_input(inp, method.transform), kernel)
    pm, _ = weights_to_probs(wm, method.prob_type)
    return replace(inp, pm=pm)


def _finalize_method(inp: InputState, method: MethodSpec) -> MethodSpec:
    """Per-point expansion and importance degrees, once n and P are known."""
    kernel = method.kernel
    if kernel is None:
        return method
    if method.per_point:
        kernel = kernel.expand(inp.n)
    if isinstance(kernel, ImportanceWeightedKernel) and kernel.degrees is None:
        degrees = inp.n * jnp.sum(inp.pm.data, axis=1)
        kernel = ImportanceWeightedKernel(kernel.base, degrees)
    if kernel is method.kernel:
        return method
    return replace(method, kernel=kernel)


# =============================================================================
# Output Initialization
# =============================================================================

def pca_init(xm: jnp.ndarray, ndim: int = 2) -> jnp.ndarray:
    """
    Scores on the leading principal components of the centered data.

    Args:
        xm: Input coordinates, shape (n, p)
        ndim: Output dimensionality

    Returns:
        Coordinates, shape (n, ndim)
    """
    xm = jnp.asarray(xm)
    if xm.ndim != 2:
        raise ValueError(f"Expected 2D array, got shape {xm.shape}")
    centered = xm - jnp.mean(xm, axis=0)
    u, s, _ = jnp.linalg.svd(centered, full_matrices=False)
    return u[:, :ndim] * s[:ndim]


def mds_init(dm: jnp.ndarray, ndim: int = 2) -> jnp.ndarray:
    """Classical MDS coordinates from a distance matrix."""
    dm = jnp.asarray(dm)
    n = dm.shape[0]
    centering = jnp.eye(n) - jnp.ones((n, n)) / n
    bm = -0.5 * centering @ (dm * dm) @ centering
    evals, evecs = jnp.linalg.eigh(bm)
    order = jnp.argsort(evals)[::-1][:ndim]
    return evecs[:, order] * jnp.sqrt(jnp.maximum(evals[order], 0.0))


def random_init(key: jax.Array, n: int, ndim: int = 2, scale: float = 1e-4) -> jnp.ndarray:
    """Gaussian coordinates with standard deviation `scale`."""
    return scale * jax.random.normal(key, (n, ndim))


OutputInit = Union[jnp.ndarray, np.ndarray, Callable[[InputState, int], jnp.ndarray]]


def _initial_coords(inp: InputState, ndim: int, output_init: Optional[OutputInit]):
    if output_init is None:
        if inp.xm is not None:
            return pca_init(inp.xm, ndim)
        return mds_init(inp.dm, ndim)
    if callable(output_init):
        return output_init(inp, ndim)
    ym = jnp.asarray(output_init)
    if ym.shape != (inp.n, ndim):
        raise ValueError(f"Expected initial coordinates of shape {(inp.n, ndim)}, got {ym.shape}")
    return ym


# =============================================================================
# Run Initialization
# =============================================================================

def init_embedding(
    method: MethodSpec,
    xm: Optional[jnp.ndarray] = None,
    dm: Optional[jnp.ndarray] = None,
    ndim: int = 2,
    input_init: Optional[Callable] = None,
    output_init: Optional[OutputInit] = None,
) -> Tuple[InputState, OutputState, MethodSpec]:
    """
    Build the input state, the initial output state and the final method.

    Exactly one of xm (coordinates) and dm (distances) must be given.

    Args:
        method: Method to run
        xm: Input coordinates, shape (n, p)
        dm: Input distance matrix, shape (n, n)
        ndim: Output dimensionality
        input_init: PerplexityInit, MultiscalePerplexityInit or any callable
            (inp, method, ndim) -> (inp, method); None runs the method's own
            kernel over the input distances
        output_init: Initial coordinates, or callable (inp, ndim) -> ym;
            None uses PCA (coordinates) or classical MDS (distances)

    Returns:
        (inp, out, method)
    """
    if (xm is None) == (dm is None):
        raise ValueError("Provide exactly one of coordinates or distances")
    inp = InputState.from_coords(xm) if xm is not None else InputState.from_distances(dm)

    if method.cost.cost_type == CostType.PROBABILITY:
        if input_init is not None:
            inp, method = input_init(inp, method, ndim)
        else:
            inp = input_from_method(inp, method)
        method = _finalize_method(inp, method)
    elif input_init is not None:
        log.debug("%s compares distances; ignoring input initializer", method.name)

    ym = _initial_coords(inp, ndim, output_init)
    out = update_output(inp, OutputState(ym=ym), method)
    log.debug("Initialized %s: %d points, %d output dimensions", method.name, inp.n, ndim)
    return inp, out, method


__all__ = [
    'PrecisionTransfer',
    'PerplexityInit',
    'MultiscalePerplexityInit',
    'input_from_method',
    'pca_init',
    'mds_init',
    'random_init',
    'init_embedding',
]

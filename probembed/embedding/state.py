"""
Input and output state, and the output update orchestrator.

The input state is fixed for a run: distances (or coordinates) of the
high-dimensional data and, for probability-based methods, the input
probability matrix P. The output state is rebuilt from the embedding
coordinates after every step:

    Y -> D^2 -> f -> W -> Q   (per scale for multiscale methods)

Intermediates are dropped unless the method declared them in its keep set,
then the method's and the cost's out_updated hooks run, in that order.

States are frozen dataclasses: an update returns a new OutputState and
never mutates the previous one, so a finite-difference probe can never
corrupt the state it was derived from.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

import jax.numpy as jnp

from ..core import CostType, Keep, ProbabilityMatrix, WeightMatrix
from ..geometry.distance import coords_to_dist2, dist2_to_dist, Transform
from ..geometry.kernels import Kernel, dist2_to_weights
from ..information.probability import weights_to_probs


# =============================================================================
# States
# =============================================================================

@dataclass(frozen=True, eq=False)
class InputState:
    """
    High-dimensional side of the embedding.

    Attributes:
        dm: Input distance matrix, shape (n, n)
        d2m: Squared input distances
        xm: Input coordinates, if the data came as coordinates
        pm: Input probabilities tagged with the method's probability type
        beta: Calibrated per-point precisions, if any
        scale_betas: Calibrated precisions per scale for multiscale methods
    """
    dm: Optional[jnp.ndarray]
    d2m: Optional[jnp.ndarray]
    xm: Optional[jnp.ndarray] = None
    pm: Optional[ProbabilityMatrix] = None
    beta: Optional[jnp.ndarray] = None
    scale_betas: Tuple[jnp.ndarray, ...] = ()

    @property
    def n(self) -> int:
        return self.d2m.shape[0]

    @classmethod
    def from_coords(cls, xm: jnp.ndarray) -> 'InputState':
        xm = jnp.asarray(xm)
        d2m = coords_to_dist2(xm)
        return cls(dm=dist2_to_dist(d2m), d2m=d2m, xm=xm)

    @classmethod
    def from_distances(cls, dm: jnp.ndarray) -> 'InputState':
        dm = jnp.asarray(dm)
        if dm.ndim != 2 or dm.shape[0] != dm.shape[1]:
            raise ValueError(f"Expected square distance matrix, got shape {dm.shape}")
        return cls(dm=dm, d2m=dm * dm)


@dataclass(frozen=True, eq=False)
class ScaleResult:
    """Weights and probabilities of one scale of a multiscale method."""
    kernel: Kernel
    wm: WeightMatrix
    qm: ProbabilityMatrix


@dataclass(frozen=True, eq=False)
class OutputState:
    """
    Low-dimensional side of the embedding.

    Only ym and qm are always present (qm is None for distance-based
    costs). The remaining matrices are filled in when kept.

    Attributes:
        ym: Embedding coordinates, shape (n, d)
        qm: Output probabilities
        d2m: Squared output distances
        dm: Output distances
        wm: Output weights
        qcm: Conditional probabilities before joint averaging
        zm: Mixture matrix cached by the Jensen-Shannon cost
        scales: Per-scale results of a multiscale method
    """
    ym: jnp.ndarray
    qm: Optional[ProbabilityMatrix] = None
    d2m: Optional[jnp.ndarray] = None
    dm: Optional[jnp.ndarray] = None
    wm: Optional[WeightMatrix] = None
    qcm: Optional[ProbabilityMatrix] = None
    zm: Optional[jnp.ndarray] = None
    scales: Tuple[ScaleResult, ...] = ()

    @property
    def n(self) -> int:
        return self.ym.shape[0]


# =============================================================================
# Orchestration
# =============================================================================

def _multiscale_probs(f, method) -> Tuple[ProbabilityMatrix, Tuple[ScaleResult, ...]]:
    prob_type = method.output_prob_type
    results = []
    for kernel in method.scales:
        wm = dist2_to_weights(f, kernel)
        qm, _ = weights_to_probs(wm, prob_type)
        results.append(ScaleResult(kernel=kernel, wm=wm, qm=qm))
    mean = sum(r.qm.data for r in results) / len(results)
    return ProbabilityMatrix(mean, prob_type), tuple(results)


def update_output(inp: InputState, out: OutputState, method) -> OutputState:
    """
    Rebuild the output state from its coordinates.

    Only out.ym is read; every derived matrix is recomputed.

    Args:
        inp: Input state (passed to the out_updated hooks)
        out: Output state carrying the new coordinates
        method: MethodSpec describing the pipeline and the keep set

    Returns:
        New OutputState with only the declared intermediates retained
    """
    ym = jnp.asarray(out.ym)
    keep = method.keep
    d2m = coords_to_dist2(ym)
    f = method.transform.apply(d2m)

    qm = wm = qcm = None
    scales: Tuple[ScaleResult, ...] = ()
    if method.cost.cost_type == CostType.PROBABILITY:
        if method.scales:
            qm, scales = _multiscale_probs(f, method)
        else:
            wm = dist2_to_weights(f, method.kernel)
            qm, qcm = weights_to_probs(wm, method.output_prob_type)

    dm = None
    if Keep.DISTANCES in keep:
        dm = f if method.transform == Transform.NONE else dist2_to_dist(d2m)

    out = OutputState(
        ym=ym,
        qm=qm,
        d2m=d2m if Keep.SQUARED_DISTANCES in keep else None,
        dm=dm,
        wm=wm if Keep.WEIGHTS in keep else None,
        qcm=qcm if Keep.CONDITIONAL in keep else None,
        scales=scales if Keep.SCALES in keep else (),
    )
    if method.out_updated is not None:
        out = method.out_updated(inp, out, method)
    return method.cost.out_updated(inp, out, method)


def cost_value(inp: InputState, out: OutputState, method) -> jnp.ndarray:
    """Scalar cost of the current output state."""
    return method.cost.value(inp, out, method)


def cost_point(inp: InputState, out: OutputState, method) -> jnp.ndarray:
    """Per-point decomposition of the cost, shape (n,)."""
    return method.cost.pointwise(inp, out, method)


__all__ = [
    'InputState',
    'ScaleResult',
    'OutputState',
    'update_output',
    'cost_value',
    'cost_point',
]

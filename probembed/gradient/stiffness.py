"""
Stiffness matrices and the coordinate gradient.

Every cost in this package depends on the embedding only through pairwise
squared distances, so its gradient has the spring form

    dC/dy_i = sum_j S_ij (y_i - y_j)

with a symmetric stiffness matrix S = 2 (K + K^T), K = dC/dD^2. Three
strategies build S:

CLOSED_FORM
    Hand-reduced algebra per (cost, kernel) pair. K = numerator * h, with
    the numerator from the divergence and h = stiffness_factor from the
    kernel. When the whole pipeline is symmetric (symmetric kernel, joint
    input and output) K is already symmetric and S = 4K.

PLUGIN
    Generic chain rule, valid for any combination:

        dC/dQ -> dC/dW (normalization Jacobian) -> dC/df (kernel)
              -> dC/dD^2 (transform)

    Multiscale methods sum the per-scale chains.

DISTANCE
    Generic chain rule for distance residual costs:
    S = (G + G^T) / (D + eps), G = dC/dD.

The gradient is assembled from explicit pairwise differences, not from
row sums of S times Y minus S Y, which keeps coincident points exact.
"""
from __future__ import annotations

from typing import Callable, Dict

import jax.numpy as jnp

from ..core import (
    EPS,
    ConfigurationError,
    CostType,
    ProbType,
    StiffnessStrategy,
    WeightMatrix,
)
from ..geometry.distance import Transform


# =============================================================================
# Method Classification
# =============================================================================

def is_asymmetric_kernel(method) -> bool:
    """True if any of the method's kernels can produce asymmetric weights."""
    kernels = method.scales or ((method.kernel,) if method.kernel is not None else ())
    return any(not k.is_symmetric for k in kernels)


def is_joint_out_prob(method) -> bool:
    return method.output_prob_type == ProbType.JOINT


def is_fully_symmetric_embedding(method) -> bool:
    """
    Symmetric kernel, joint input and symmetric output probabilities.

    Under these conditions K = dC/dD^2 is symmetric and S = 4K.
    """
    return (
        method.kernel is not None
        and not method.scales
        and method.kernel.is_symmetric
        and method.prob_type == ProbType.JOINT
        and method.output_prob_type in (ProbType.JOINT, ProbType.CONDITIONAL)
    )


def is_enforced_joint_out_prob(method) -> bool:
    """Joint output probabilities obtained by averaging an asymmetric kernel."""
    return is_joint_out_prob(method) and is_asymmetric_kernel(method)


# =============================================================================
# Gradient From Stiffness
# =============================================================================

def stiffness_to_gradient(sm: jnp.ndarray, ym: jnp.ndarray) -> jnp.ndarray:
    """
    Coordinate gradient from a stiffness matrix.

    Args:
        sm: Stiffness matrix, shape (n, n)
        ym: Coordinates, shape (n, d)

    Returns:
        grad[i] = sum_j S[i, j] (y_i - y_j), shape (n, d)
    """
    diff = ym[:, None, :] - ym[None, :, :]
    return jnp.einsum('ij,ijk->ik', sm, diff)


def _symmetrized(km: jnp.ndarray) -> jnp.ndarray:
    return 2.0 * (km + km.T)


# =============================================================================
# Closed Form
# =============================================================================

def closed_form_stiffness(inp, out, method) -> jnp.ndarray:
    """
    Hand-reduced stiffness.

    Raises:
        ConfigurationError: if the cost or kernel has no closed form
    """
    cost = method.cost
    if cost.cost_type == CostType.DISTANCE:
        return cost.stiffness(inp, out, method)
    if method.kernel is None:
        raise ConfigurationError("Closed-form stiffness requires a kernel")

    qm = out.qm.data
    if is_enforced_joint_out_prob(method):
        if out.qcm is None:
            raise ConfigurationError("Closed-form stiffness requires the conditional output matrix")
        rm = out.qcm.data
    else:
        rm = qm
    row_wise = method.output_prob_type == ProbType.ROW
    numerator = cost.stiffness_numerator(inp.pm.data, qm, rm, row_wise, out)

    wm = out.wm.data if out.wm is not None else None
    km = numerator * method.kernel.stiffness_factor(None, wm)
    if method.transform != Transform.SQUARED:
        km = km * method.transform.chain_factor(out.d2m)

    if is_fully_symmetric_embedding(method):
        return 4.0 * km
    return _symmetrized(km)


# =============================================================================
# Plugin
# =============================================================================

def normalization_jacobian(gm: jnp.ndarray, wm: WeightMatrix, prob_type: ProbType) -> jnp.ndarray:
    """
    dC/dW from dC/dQ for each way of turning weights into probabilities.

    Args:
        gm: dC/dQ
        wm: Tagged weight matrix Q was computed from
        prob_type: Output probability type

    Returns:
        dC/dW, same shape as gm
    """
    w = wm.data
    if prob_type == ProbType.UNNORMALIZED:
        return gm
    if prob_type == ProbType.ROW:
        row_sum = jnp.sum(w, axis=1, keepdims=True) + EPS
        mean = jnp.sum(gm * w, axis=1, keepdims=True) / row_sum
        return (gm - mean) / row_sum
    if prob_type == ProbType.JOINT and not wm.is_symmetric:
        # Q = (C + C^T) / 2 with C = W / Z
        gm = 0.5 * (gm + gm.T)
    total = jnp.sum(w)
    return (gm - jnp.sum(gm * w) / total) / total


def _plugin_chain(gm, wm: WeightMatrix, kernel, method, d2m) -> jnp.ndarray:
    """K = dC/dD^2 for one weight matrix."""
    km = normalization_jacobian(gm, wm, method.output_prob_type)
    f = method.transform.apply(d2m)
    if kernel is not None:
        km = km * kernel.gradient(f, wm.data)
    if method.transform != Transform.SQUARED:
        km = km * method.transform.chain_factor(d2m)
    return km


def plugin_stiffness(inp, out, method) -> jnp.ndarray:
    """Stiffness by the generic chain rule through the probability pipeline."""
    if method.cost.cost_type != CostType.PROBABILITY:
        raise ConfigurationError("Plugin stiffness requires a probability-based cost")
    gm = method.cost.gradient_q(inp.pm.data, out.qm.data, out)
    if method.scales:
        scale_g = gm / len(out.scales)
        km = sum(
            _plugin_chain(scale_g, s.wm, s.kernel, method, out.d2m)
            for s in out.scales
        )
    else:
        km = _plugin_chain(gm, out.wm, method.kernel, method, out.d2m)
    return _symmetrized(km)


# =============================================================================
# Distance
# =============================================================================

def distance_stiffness(inp, out, method) -> jnp.ndarray:
    """Stiffness by the generic chain rule for distance residual costs."""
    if method.cost.cost_type != CostType.DISTANCE:
        raise ConfigurationError("Distance stiffness requires a distance-based cost")
    gm = method.cost.gradient_contribution(inp, out, method)
    return (gm + gm.T) / (out.dm + method.cost.eps)


# =============================================================================
# Dispatch
# =============================================================================

_STIFFNESS: Dict[StiffnessStrategy, Callable] = {
    StiffnessStrategy.CLOSED_FORM: closed_form_stiffness,
    StiffnessStrategy.PLUGIN: plugin_stiffness,
    StiffnessStrategy.DISTANCE: distance_stiffness,
}


def stiffness(inp, out, method) -> jnp.ndarray:
    """Stiffness matrix by the method's declared strategy."""
    try:
        build = _STIFFNESS[method.stiffness]
    except KeyError:
        raise ConfigurationError(f"Unknown stiffness strategy {method.stiffness!r}") from None
    return build(inp, out, method)


def gradient(inp, out, method) -> jnp.ndarray:
    """Analytic coordinate gradient of the cost, shape (n, d)."""
    return stiffness_to_gradient(stiffness(inp, out, method), out.ym)


__all__ = [
    'is_asymmetric_kernel',
    'is_joint_out_prob',
    'is_fully_symmetric_embedding',
    'is_enforced_joint_out_prob',
    'stiffness_to_gradient',
    'closed_form_stiffness',
    'normalization_jacobian',
    'plugin_stiffness',
    'distance_stiffness',
    'stiffness',
    'gradient',
]

"""
Distance engine: coordinates to (squared) distance matrices.

Probability-based embeddings feed squared Euclidean distances to their
kernels, which avoids a square root per pair. Distance-based costs (STRESS,
Sammon) need the raw distances, so the square root is only taken when a
method declares that it needs them.

The Transform enum describes what the kernel actually sees:
- SQUARED: f = D^2 (the usual SNE choice)
- NONE: f = D (classical MDS-style embedders)
"""
from __future__ import annotations

from enum import Enum

import jax.numpy as jnp

from ..core import EPS


def coords_to_dist2(xm: jnp.ndarray) -> jnp.ndarray:
    """
    Squared Euclidean distance matrix from a coordinate matrix.

    Uses the expansion ||x_i - x_j||^2 = |x_i|^2 + |x_j|^2 - 2 x_i.x_j, so
    floating point cancellation can produce small negative values. Those are
    clamped to zero and the diagonal is forced to exactly zero.

    Args:
        xm: Coordinates, shape (n, d)

    Returns:
        Squared distances, shape (n, n)
    """
    if xm.ndim != 2:
        raise ValueError(f"Expected 2D array, got shape {xm.shape}")
    sumsq = jnp.sum(xm * xm, axis=1)
    d2m = sumsq[:, None] + sumsq[None, :] - 2.0 * (xm @ xm.T)
    d2m = jnp.maximum(d2m, 0.0)
    return d2m * (1.0 - jnp.eye(xm.shape[0], dtype=d2m.dtype))


def dist2_to_dist(d2m: jnp.ndarray) -> jnp.ndarray:
    """Elementwise square root of a squared distance matrix."""
    return jnp.sqrt(d2m)


def distance_matrix(xm: jnp.ndarray) -> jnp.ndarray:
    """Euclidean distance matrix from a coordinate matrix."""
    return dist2_to_dist(coords_to_dist2(xm))


def upper_tri(m: jnp.ndarray) -> jnp.ndarray:
    """Strictly upper triangular entries as a flat vector."""
    rows, cols = jnp.triu_indices(m.shape[0], k=1)
    return m[rows, cols]


class Transform(Enum):
    """
    Mapping from squared distances to the kernel input f.

    The chain-rule factor df/dD^2 is what the plugin gradient needs to carry
    a derivative with respect to f back to the squared distances.
    """
    SQUARED = "square"
    NONE = "none"

    def apply(self, d2m: jnp.ndarray) -> jnp.ndarray:
        if self == Transform.SQUARED:
            return d2m
        return dist2_to_dist(d2m)

    def chain_factor(self, d2m: jnp.ndarray) -> jnp.ndarray:
        """df/dD^2, elementwise."""
        if self == Transform.SQUARED:
            return jnp.ones_like(d2m)
        return 0.5 / (dist2_to_dist(d2m) + EPS)

    @property
    def needs_distances(self) -> bool:
        """The plugin chain rule for raw distances needs D itself."""
        return self == Transform.NONE


__all__ = [
    'coords_to_dist2',
    'dist2_to_dist',
    'distance_matrix',
    'upper_tri',
    'Transform',
]

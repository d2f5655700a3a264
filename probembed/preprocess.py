"""
Input preprocessing: scaling, whitening and distance scaling.

The embedding core never scales its input. These functions prepare
coordinates (and the distance matrix derived from them) beforehand:

Column scaling
    sd_scale_columns, center_columns, max_scale_columns, range_scale_columns,
    whiten (PCA or ZCA)

Matrix scaling
    range_scale_matrix, sd_scale_matrix, center_matrix, max_scale_matrix

Distances
    scale_distances (mean pairwise distance becomes one, recommended for NeRV)

make_preprocess() bundles a choice of these into one callable.
"""
from __future__ import annotations

import logging
from typing import Callable, List, Optional, Tuple

import jax.numpy as jnp

from .core import EPS
from .geometry.distance import distance_matrix, upper_tri

log = logging.getLogger(__name__)


# =============================================================================
# Column Scaling
# =============================================================================

def sd_scale_columns(xm: jnp.ndarray) -> jnp.ndarray:
    """Center columns and scale them to unit (sample) standard deviation."""
    return center_columns(xm) / jnp.std(xm, axis=0, ddof=1)


def center_columns(xm: jnp.ndarray) -> jnp.ndarray:
    return xm - jnp.mean(xm, axis=0)


def max_scale_columns(xm: jnp.ndarray) -> jnp.ndarray:
    """Divide each column by its largest absolute value."""
    return xm / jnp.max(jnp.abs(xm), axis=0)


def range_scale_columns(xm: jnp.ndarray, rmin: float = 0.0, rmax: float = 1.0) -> jnp.ndarray:
    """Scale each column linearly onto [rmin, rmax]; constant columns map to rmin."""
    xmin = jnp.min(xm, axis=0)
    xmax = jnp.max(xm, axis=0)
    return (xm - xmin) * ((rmax - rmin) / jnp.maximum(xmax - xmin, EPS)) + rmin


# =============================================================================
# Matrix Scaling
# =============================================================================

def range_scale_matrix(xm: jnp.ndarray, rmin: float = 0.0, rmax: float = 1.0) -> jnp.ndarray:
    """Scale all elements together onto [rmin, rmax]."""
    xmin = jnp.min(xm)
    xmax = jnp.max(xm)
    return (xm - xmin) * ((rmax - rmin) / jnp.maximum(xmax - xmin, EPS)) + rmin


def sd_scale_matrix(xm: jnp.ndarray) -> jnp.ndarray:
    return (xm - jnp.mean(xm)) / jnp.std(xm, ddof=1)


def center_matrix(xm: jnp.ndarray) -> jnp.ndarray:
    return xm - jnp.mean(xm)


def max_scale_matrix(xm: jnp.ndarray) -> jnp.ndarray:
    return xm / jnp.abs(jnp.max(xm))


# =============================================================================
# Whitening
# =============================================================================

def whiten(
    xm: jnp.ndarray,
    scale: bool = False,
    zca: bool = False,
    ncomp: Optional[int] = None,
    epsilon: float = 1e-5,
) -> jnp.ndarray:
    """
    Decorrelate the columns and give them unit variance.

    PCA whitening projects the centered data on its leading ncomp principal
    axes and divides each by its singular value. ZCA whitening rotates the
    result back into the input space, so it keeps the input dimensionality
    even when ncomp is smaller.

    Args:
        xm: Data, shape (n, p)
        scale: Also scale centered columns to unit standard deviation first
        zca: Use the zero-phase (ZCA) rotation
        ncomp: Number of components (default min(n, p))
        epsilon: Added to singular values before inversion

    Returns:
        Whitened data, shape (n, ncomp), or (n, p) for ZCA
    """
    xm = sd_scale_columns(xm) if scale else center_columns(xm)
    n = xm.shape[0]
    if ncomp is None:
        ncomp = min(xm.shape)
    _, s, vt = jnp.linalg.svd(xm, full_matrices=False)
    vm = vt[:ncomp]
    wm = (jnp.sqrt(n - 1.0) / (s[:ncomp] + epsilon))[:, None] * vm
    if zca:
        wm = vm.T @ wm
    return xm @ wm.T


# =============================================================================
# Miscellaneous
# =============================================================================

def varfilter(xm: jnp.ndarray, minvar: float = 0.0) -> jnp.ndarray:
    """Drop columns whose (sample) variance is not above minvar."""
    keep = jnp.var(xm, axis=0, ddof=1) > minvar
    return xm[:, keep]


def scale_distances(dm: jnp.ndarray) -> jnp.ndarray:
    """Divide a distance matrix by its mean pairwise distance."""
    return dm / jnp.mean(upper_tri(dm))


# =============================================================================
# Preprocessor Factory
# =============================================================================

Preprocessor = Callable[..., Tuple[Optional[jnp.ndarray], jnp.ndarray]]

# make_preprocess flags share these names
_sd_scale_columns = sd_scale_columns
_range_scale_matrix = range_scale_matrix
_range_scale_columns = range_scale_columns
_center_columns = center_columns
_max_scale_matrix = max_scale_matrix
_whiten = whiten
_scale_distances = scale_distances


def make_preprocess(
    range_scale_matrix: bool = False,
    range_scale: bool = False,
    rmin: float = 0.0,
    rmax: float = 1.0,
    auto_scale: bool = False,
    tsne: bool = False,
    whiten: bool = False,
    zwhiten: bool = False,
    whiten_dims: Optional[int] = None,
    scale_distances: bool = False,
    filter_zero_var: bool = True,
) -> Preprocessor:
    """
    Build a preprocessor.

    At most one coordinate scaling is applied, chosen in this order:
    auto_scale, range_scale_matrix, range_scale, tsne (center columns then
    divide by the largest element), whiten, zwhiten.

    The returned callable accepts coordinates (preprocess(xm)) or a distance
    matrix (preprocess(dm=dm)) and returns (xm, dm); xm is None for a
    distance input. Coordinate scaling is skipped for distance input.
    """
    steps: List[Tuple[str, Callable]] = []
    if filter_zero_var:
        steps.append(("filter zero-variance columns", varfilter))

    if auto_scale:
        steps.append(("scale columns to sd 1", _sd_scale_columns))
    elif range_scale_matrix:
        steps.append((f"range scale matrix to ({rmin}, {rmax})",
                      lambda xm: _range_scale_matrix(xm, rmin, rmax)))
    elif range_scale:
        steps.append((f"range scale columns to ({rmin}, {rmax})",
                      lambda xm: _range_scale_columns(xm, rmin, rmax)))
    elif tsne:
        steps.append(("center columns", _center_columns))
        steps.append(("scale matrix by abs max", _max_scale_matrix))
    elif whiten or zwhiten:
        label = "ZCA" if zwhiten else "PCA"
        steps.append((f"{label} whitening",
                      lambda xm: _whiten(xm, zca=zwhiten, ncomp=whiten_dims)))

    scale_dm = scale_distances

    def preprocess(xm: Optional[jnp.ndarray] = None, dm: Optional[jnp.ndarray] = None):
        if (xm is None) == (dm is None):
            raise ValueError("Provide exactly one of coordinates or distances")
        if xm is not None:
            xm = jnp.asarray(xm)
            if xm.ndim != 2:
                raise ValueError(f"Expected 2D array, got shape {xm.shape}")
            for label, fn in steps:
                log.info("Preprocessing: %s", label)
                xm = fn(xm)
            dm = distance_matrix(xm)
        else:
            dm = jnp.asarray(dm)
        if scale_dm:
            log.info("Preprocessing: scale distances to mean 1")
            dm = _scale_distances(dm)
        return xm, dm

    return preprocess


__all__ = [
    'sd_scale_columns',
    'center_columns',
    'max_scale_columns',
    'range_scale_columns',
    'range_scale_matrix',
    'sd_scale_matrix',
    'center_matrix',
    'max_scale_matrix',
    'whiten',
    'varfilter',
    'scale_distances',
    'make_preprocess',
]

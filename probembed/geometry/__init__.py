"""
Geometry of the embedding: distances and similarity kernels.

- distance: Coordinates to (squared) distance matrices, kernel input transform
- kernels: Exponential, Student-t, heavy-tailed, inhomogeneous-t and
  importance-weighted kernels with their symmetry declarations
"""
from .distance import (
    coords_to_dist2,
    dist2_to_dist,
    distance_matrix,
    upper_tri,
    Transform,
)
from .kernels import (
    Kernel,
    ExpKernel,
    TDistKernel,
    HeavyTailKernel,
    InhomogeneousTKernel,
    IdentityKernel,
    ImportanceWeightedKernel,
    dist2_to_weights,
)

__all__ = [
    'coords_to_dist2',
    'dist2_to_dist',
    'distance_matrix',
    'upper_tri',
    'Transform',
    'Kernel',
    'ExpKernel',
    'TDistKernel',
    'HeavyTailKernel',
    'InhomogeneousTKernel',
    'IdentityKernel',
    'ImportanceWeightedKernel',
    'dist2_to_weights',
]

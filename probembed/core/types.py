"""
Core type system for probability-based embedding.

This module defines the tags that travel with every matrix in the
embedding pipeline:

- ProbType: Normalization semantics of a probability matrix
- WeightSymmetry: Whether a kernel can produce W[i, j] != W[j, i]
- CostType: Whether a cost compares probabilities or distances
- StiffnessStrategy: How the coordinate gradient is assembled
- Keep: Optional intermediate matrices an output state may retain
- WeightMatrix / ProbabilityMatrix: Tagged wrappers around raw arrays

The key insight is that the same numeric buffer means different things
depending on how it was normalized. A row-stochastic matrix and a joint
probability matrix are not interchangeable, and the gradient shortcuts that
are legal for one are wrong for the other. The tag therefore travels with
the data and is the only authority for which conversion applies.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

import jax.numpy as jnp


# Floor used to avoid division by zero and log(0). Same value as a float64
# machine epsilon regardless of the active JAX precision.
EPS = float(jnp.finfo(jnp.float64).eps)


class ConfigurationError(ValueError):
    """
    Fatal configuration problem.

    Raised at method construction or first use for missing tags, unknown
    variants and unsupported combinations. Never caught inside the package.
    """


class ProbType(Enum):
    """
    Normalization semantics of a probability matrix.

    - ROW: n independent distributions, each row sums to one (ASNE)
    - CONDITIONAL: one distribution, grand sum is one, need not be symmetric
    - JOINT: one distribution, grand sum is one, P[i, j] == P[j, i] (SSNE, t-SNE)
    - UNNORMALIZED: raw weights used directly (un-normalized embedders, MDS)
    """
    ROW = "row"
    CONDITIONAL = "cond"
    JOINT = "joint"
    UNNORMALIZED = "none"


class WeightSymmetry(Enum):
    """
    Symmetry classification of a weight matrix, fixed by its kernel.

    Classification is structural: a kernel with per-point parameters is
    ASYMMETRIC even when every per-point value happens to be equal.
    """
    SYMMETRIC = "symm"
    ASYMMETRIC = "asymm"


class CostType(Enum):
    """Which kind of matrices a cost function compares."""
    PROBABILITY = "prob"
    DISTANCE = "dist"


class StiffnessStrategy(Enum):
    """
    How the coordinate gradient is computed.

    - CLOSED_FORM: hand-derived per-method stiffness
    - PLUGIN: generic chain rule through the probability pipeline
    - DISTANCE: generic chain rule for distance-residual costs
    """
    CLOSED_FORM = "closed"
    PLUGIN = "plugin"
    DISTANCE = "distance"


class Keep(Enum):
    """
    Intermediate output matrices a method can ask the orchestrator to retain.

    The output probability matrix is always kept; these are the optional
    extras that cost a square root or an extra normalization pass.
    """
    DISTANCES = "dm"
    SQUARED_DISTANCES = "d2m"
    WEIGHTS = "wm"
    CONDITIONAL = "qcm"
    SCALES = "scales"


# =============================================================================
# Tagged Matrices
# =============================================================================

@dataclass(frozen=True)
class WeightMatrix:
    """
    Non-negative weight matrix with zero diagonal and a symmetry tag.

    Attributes:
        data: Raw (n, n) array
        symmetry: Classification of the kernel that produced the weights
    """
    data: jnp.ndarray
    symmetry: WeightSymmetry

    def __post_init__(self):
        if not isinstance(self.symmetry, WeightSymmetry):
            raise ConfigurationError(
                f"Weight matrix must carry a WeightSymmetry tag, got {self.symmetry!r}"
            )

    @property
    def n(self) -> int:
        return self.data.shape[0]

    @property
    def is_symmetric(self) -> bool:
        return self.symmetry == WeightSymmetry.SYMMETRIC


@dataclass(frozen=True)
class ProbabilityMatrix:
    """
    Probability matrix together with its normalization semantics.

    Attributes:
        data: Raw (n, n) array
        prob_type: Which invariants hold (row sums, grand sum, symmetry)
    """
    data: jnp.ndarray
    prob_type: ProbType

    def __post_init__(self):
        if not isinstance(self.prob_type, ProbType):
            raise ConfigurationError(
                f"Probability matrix must carry a ProbType tag, got {self.prob_type!r}"
            )

    @property
    def n(self) -> int:
        return self.data.shape[0]

    def retag(self, data: jnp.ndarray) -> 'ProbabilityMatrix':
        """Wrap new values with the same type tag."""
        return ProbabilityMatrix(data, self.prob_type)


__all__ = [
    'EPS',
    'ConfigurationError',
    'ProbType',
    'WeightSymmetry',
    'CostType',
    'StiffnessStrategy',
    'Keep',
    'WeightMatrix',
    'ProbabilityMatrix',
]

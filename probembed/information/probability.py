"""
Probability matrices: weights to probabilities, and conversions between
probability semantics.

Three semantics are tracked (see ProbType):

    ROW          each row sums to one; P[i, j] = p(j | i)          (ASNE)
    CONDITIONAL  grand sum is one, not necessarily symmetric
    JOINT        grand sum is one and P[i, j] == P[j, i]          (SSNE, t-SNE)

Input probabilities usually start as ROW (one calibrated distribution per
point) and are converted once to whatever the method needs. Output
probabilities are produced directly from weights. For a symmetric kernel,
grand-sum normalization already gives a joint matrix; for an asymmetric
kernel, an explicit averaging step is required and the pre-averaging
conditional matrix is returned as well, because some gradients need it.

Dispatch is by table over the closed set of (ProbType, WeightSymmetry)
pairs; an unknown pair is a ConfigurationError rather than a late lookup
failure.
"""
from __future__ import annotations

from typing import Callable, Dict, Optional, Tuple

import jax.numpy as jnp

from ..core import (
    EPS,
    ConfigurationError,
    ProbabilityMatrix,
    ProbType,
    WeightMatrix,
    WeightSymmetry,
)


# =============================================================================
# Weights -> Probabilities
# =============================================================================

def weights_to_row(wm: jnp.ndarray) -> jnp.ndarray:
    """
    Row probabilities: P[i, j] = W[i, j] / (sum_k W[i, k] + eps).

    The eps floor keeps isolated points (all-zero rows) finite.
    """
    return wm / (jnp.sum(wm, axis=1, keepdims=True) + EPS)


def weights_to_conditional(wm: jnp.ndarray) -> jnp.ndarray:
    """Conditional probabilities: P = W / sum(W) + eps."""
    return wm / jnp.sum(wm) + EPS


# A symmetric weight matrix normalized by its grand sum is already joint
symmetric_weights_to_joint = weights_to_conditional


def asymmetric_weights_to_joint(wm: jnp.ndarray) -> Tuple[jnp.ndarray, jnp.ndarray]:
    """
    Joint probabilities from an asymmetric weight matrix.

    Returns:
        (joint, conditional): the symmetrized matrix and the conditional
        matrix it was averaged from
    """
    pcm = weights_to_conditional(wm)
    return symmetrize(pcm), pcm


def weights_to_unnormalized(wm: jnp.ndarray) -> jnp.ndarray:
    """The weights themselves, for embedders with no normalization."""
    return wm


def symmetrize(pm: jnp.ndarray) -> jnp.ndarray:
    """(P + P^T) / 2."""
    return 0.5 * (pm + pm.T)


def _row(wm):
    return weights_to_row(wm), None


def _cond(wm):
    return weights_to_conditional(wm), None


def _symm_joint(wm):
    return symmetric_weights_to_joint(wm), None


def _unnormalized(wm):
    return weights_to_unnormalized(wm), None


_WEIGHT_CONVERSIONS: Dict[Tuple[ProbType, WeightSymmetry], Callable] = {
    (ProbType.ROW, WeightSymmetry.SYMMETRIC): _row,
    (ProbType.ROW, WeightSymmetry.ASYMMETRIC): _row,
    (ProbType.CONDITIONAL, WeightSymmetry.SYMMETRIC): _cond,
    (ProbType.CONDITIONAL, WeightSymmetry.ASYMMETRIC): _cond,
    (ProbType.JOINT, WeightSymmetry.SYMMETRIC): _symm_joint,
    (ProbType.JOINT, WeightSymmetry.ASYMMETRIC): asymmetric_weights_to_joint,
    (ProbType.UNNORMALIZED, WeightSymmetry.SYMMETRIC): _unnormalized,
    (ProbType.UNNORMALIZED, WeightSymmetry.ASYMMETRIC): _unnormalized,
}


def weights_to_probs(
    wm: WeightMatrix,
    prob_type: ProbType,
) -> Tuple[ProbabilityMatrix, Optional[ProbabilityMatrix]]:
    """
    Normalize a tagged weight matrix into the requested probability type.

    Args:
        wm: Weight matrix carrying its symmetry tag
        prob_type: Requested semantics

    Returns:
        (P, Pc): P tagged with prob_type; Pc is the conditional matrix
        before averaging, only for an asymmetric kernel with joint output

    Raises:
        ConfigurationError: for an untagged weight matrix or unknown type
    """
    if not isinstance(wm, WeightMatrix):
        raise ConfigurationError("Weight matrix must be a tagged WeightMatrix")
    try:
        convert = _WEIGHT_CONVERSIONS[(prob_type, wm.symmetry)]
    except KeyError:
        raise ConfigurationError(
            f"No weight to probability conversion for {prob_type!r} "
            f"with {wm.symmetry!r} weights"
        ) from None
    pm, pcm = convert(wm.data)
    pcm = None if pcm is None else ProbabilityMatrix(pcm, ProbType.CONDITIONAL)
    return ProbabilityMatrix(pm, prob_type), pcm


# =============================================================================
# Probability Type Conversions
# =============================================================================

def row_to_conditional(prow: ProbabilityMatrix) -> ProbabilityMatrix:
    """Scale a row matrix so the whole matrix sums to one."""
    _expect(prow, ProbType.ROW)
    return ProbabilityMatrix(prow.data / jnp.sum(prow.data), ProbType.CONDITIONAL)


def row_to_joint(prow: ProbabilityMatrix) -> ProbabilityMatrix:
    """Conditional then symmetrized: the SSNE / t-SNE input probabilities."""
    _expect(prow, ProbType.ROW)
    pcond = row_to_conditional(prow)
    return ProbabilityMatrix(symmetrize(pcond.data), ProbType.JOINT)


def row_to_avrow(prow: ProbabilityMatrix) -> ProbabilityMatrix:
    """
    Row matrix renormalized after averaging p(j|i) and p(i|j).

    Borrows the symmetrization of joint probabilities while keeping
    point-wise normalization.
    """
    _expect(prow, ProbType.ROW)
    pjoint = row_to_joint(prow)
    return ProbabilityMatrix(weights_to_row(pjoint.data), ProbType.ROW)


def row_to_unnormalized(prow: ProbabilityMatrix) -> ProbabilityMatrix:
    """Re-tag row probabilities for an un-normalized embedder."""
    _expect(prow, ProbType.ROW)
    return ProbabilityMatrix(prow.data, ProbType.UNNORMALIZED)


def conditional_to_joint(pcond: ProbabilityMatrix) -> ProbabilityMatrix:
    _expect(pcond, ProbType.CONDITIONAL)
    return ProbabilityMatrix(symmetrize(pcond.data), ProbType.JOINT)


def _expect(pm: ProbabilityMatrix, prob_type: ProbType) -> None:
    if not isinstance(pm, ProbabilityMatrix):
        raise ConfigurationError("Probability matrix must be a tagged ProbabilityMatrix")
    if pm.prob_type != prob_type:
        raise ConfigurationError(
            f"Expected {prob_type.value} probabilities, got {pm.prob_type.value}"
        )


_PROB_CONVERSIONS: Dict[Tuple[ProbType, ProbType], Callable] = {
    (ProbType.ROW, ProbType.CONDITIONAL): row_to_conditional,
    (ProbType.ROW, ProbType.JOINT): row_to_joint,
    (ProbType.ROW, ProbType.UNNORMALIZED): row_to_unnormalized,
    (ProbType.CONDITIONAL, ProbType.JOINT): conditional_to_joint,
}


def convert_prob(pm: ProbabilityMatrix, prob_type: ProbType) -> ProbabilityMatrix:
    """
    Convert a probability matrix into the semantics a method requires.

    Identity when the types already match.

    Raises:
        ConfigurationError: if pm is untagged or no conversion exists
    """
    if not isinstance(pm, ProbabilityMatrix):
        raise ConfigurationError("Probability matrix must be a tagged ProbabilityMatrix")
    if pm.prob_type == prob_type:
        return pm
    try:
        convert = _PROB_CONVERSIONS[(pm.prob_type, prob_type)]
    except KeyError:
        raise ConfigurationError(
            f"No conversion from {pm.prob_type.value} to {prob_type.value} probabilities"
        ) from None
    return convert(pm)


# =============================================================================
# Diagnostics
# =============================================================================

def row_entropy(prow: jnp.ndarray) -> jnp.ndarray:
    """Shannon entropy (nats) of each row distribution."""
    return -jnp.sum(prow * jnp.log(prow + EPS), axis=1)


def row_perplexity(prow: jnp.ndarray) -> jnp.ndarray:
    """exp(entropy) of each row: the effective number of neighbors."""
    return jnp.exp(row_entropy(prow))


__all__ = [
    'weights_to_row',
    'weights_to_conditional',
    'symmetric_weights_to_joint',
    'asymmetric_weights_to_joint',
    'weights_to_unnormalized',
    'symmetrize',
    'weights_to_probs',
    'row_to_conditional',
    'row_to_joint',
    'row_to_avrow',
    'row_to_unnormalized',
    'conditional_to_joint',
    'convert_prob',
    'row_entropy',
    'row_perplexity',
]

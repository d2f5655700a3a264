"""
Similarity kernels: (transformed) distances to weight matrices.

Every kernel maps the kernel input f (usually squared distances) to
non-negative weights and declares whether the result can be asymmetric.
The declaration is load-bearing: downstream probability conversion and
gradient simplification depend on it, so it is never inferred from values.

Two derivatives are exposed for the two gradient strategies:

- gradient(f, w): raw dW/df, used by the generic plugin chain rule
- stiffness_factor(f, w): h such that dW/df = -W * h, used by the
  closed-form stiffness shortcuts (exp: beta, t: W, heavy-tailed: beta W^alpha).
  Only kernels with needs_weights read w; none of them read f.

Per-point parameters (a vector of length n) apply by row: W[i, j] uses the
parameter of point i, which is what makes the kernel asymmetric.

Reference: Yang, Peltonen & Kaski (2014), "Optimization equivalence of
divergences improves neighbor embedding"; van der Maaten & Hinton (2008).
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Optional, Union

import jax.numpy as jnp

from ..core import ConfigurationError, WeightMatrix, WeightSymmetry


Param = Union[float, jnp.ndarray]


def _per_point(param: Param) -> jnp.ndarray:
    """Broadcastable form of a kernel parameter: scalar or column vector."""
    param = jnp.asarray(param)
    if param.ndim == 0:
        return param
    return param[:, None]


def _vector(param: Param, n: int) -> jnp.ndarray:
    return jnp.broadcast_to(jnp.asarray(param, dtype=float), (n,))


def _classify(*params: Param) -> WeightSymmetry:
    """Structural symmetry: any per-point parameter makes the kernel asymmetric."""
    if any(jnp.ndim(p) > 0 for p in params):
        return WeightSymmetry.ASYMMETRIC
    return WeightSymmetry.SYMMETRIC


@dataclass(frozen=True, eq=False)
class Kernel:
    """
    Base class for similarity kernels.

    Subclasses implement weights() and gradient(), and must declare a
    symmetry. apply() enforces the zero self-weight post-condition and tags
    the output.
    """
    needs_weights: ClassVar[bool] = False

    @property
    def symmetry(self) -> Optional[WeightSymmetry]:
        return None

    @property
    def is_symmetric(self) -> bool:
        return self.symmetry == WeightSymmetry.SYMMETRIC

    def weights(self, f: jnp.ndarray) -> jnp.ndarray:
        raise NotImplementedError

    def gradient(self, f: jnp.ndarray, w: jnp.ndarray) -> jnp.ndarray:
        raise NotImplementedError

    def stiffness_factor(self, f: jnp.ndarray, w: jnp.ndarray) -> jnp.ndarray:
        raise ConfigurationError(
            f"{type(self).__name__} has no closed-form stiffness factor"
        )

    def with_precision(self, beta: Param) -> 'Kernel':
        raise ConfigurationError(
            f"{type(self).__name__} has no precision parameter to transfer"
        )

    def expand(self, n: int) -> 'Kernel':
        """Copy with every parameter broadcast to one value per point."""
        raise ConfigurationError(
            f"{type(self).__name__} has no per-point parameters"
        )

    def apply(self, f: jnp.ndarray) -> WeightMatrix:
        """
        Weight matrix from kernel input, with zero diagonal and symmetry tag.

        Raises:
            ConfigurationError: if the kernel does not declare a symmetry
        """
        symmetry = self.symmetry
        if not isinstance(symmetry, WeightSymmetry):
            raise ConfigurationError(
                f"{type(self).__name__} must declare a WeightSymmetry"
            )
        wm = self.weights(f)
        wm = wm * (1.0 - jnp.eye(wm.shape[0], dtype=wm.dtype))
        return WeightMatrix(wm, symmetry)


@dataclass(frozen=True, eq=False)
class ExpKernel(Kernel):
    """
    Gaussian kernel on squared distances: W = exp(-beta * f).

    Used by ASNE, SSNE, NeRV and JSE. beta is the precision; a vector of
    per-point precisions (e.g. transferred from perplexity calibration)
    gives an asymmetric kernel.
    """
    beta: Param = 1.0

    @property
    def symmetry(self) -> WeightSymmetry:
        return _classify(self.beta)

    def weights(self, f):
        return jnp.exp(-_per_point(self.beta) * f)

    def gradient(self, f, w):
        return -_per_point(self.beta) * w

    def stiffness_factor(self, f, w):
        return _per_point(self.beta)

    def with_precision(self, beta):
        return ExpKernel(beta=beta)

    def expand(self, n):
        return ExpKernel(beta=_vector(self.beta, n))


@dataclass(frozen=True, eq=False)
class TDistKernel(Kernel):
    """Student-t kernel with one degree of freedom: W = 1 / (1 + f)."""
    needs_weights: ClassVar[bool] = True

    @property
    def symmetry(self) -> WeightSymmetry:
        return WeightSymmetry.SYMMETRIC

    def weights(self, f):
        return 1.0 / (1.0 + f)

    def gradient(self, f, w):
        return -1.0 / ((1.0 + f) * (1.0 + f))

    def stiffness_factor(self, f, w):
        return w


@dataclass(frozen=True, eq=False)
class HeavyTailKernel(Kernel):
    """
    Heavy-tailed kernel of HSSNE: W = (alpha * beta * f + 1)^(-1/alpha).

    alpha = 0 recovers the exponential kernel, alpha = 1 with beta = 1
    recovers the t-distribution. Either parameter may be per-point.

    Reference: Yang, King, Xu & Oja (2009), "Heavy-tailed symmetric
    stochastic neighbor embedding".
    """
    beta: Param = 1.0
    alpha: Param = 0.5
    needs_weights: ClassVar[bool] = True

    @property
    def symmetry(self) -> WeightSymmetry:
        return _classify(self.beta, self.alpha)

    def weights(self, f):
        beta = _per_point(self.beta)
        alpha = _per_point(self.alpha)
        safe_alpha = jnp.where(alpha == 0, 1.0, alpha)
        heavy = (safe_alpha * beta * f + 1.0) ** (-1.0 / safe_alpha)
        return jnp.where(alpha == 0, jnp.exp(-beta * f), heavy)

    def gradient(self, f, w):
        beta = _per_point(self.beta)
        alpha = _per_point(self.alpha)
        return -w * beta / (alpha * beta * f + 1.0)

    def stiffness_factor(self, f, w):
        return _per_point(self.beta) * w ** _per_point(self.alpha)

    def with_precision(self, beta):
        return HeavyTailKernel(beta=beta, alpha=self.alpha)

    def expand(self, n):
        return HeavyTailKernel(beta=_vector(self.beta, n), alpha=_vector(self.alpha, n))


@dataclass(frozen=True, eq=False)
class InhomogeneousTKernel(Kernel):
    """
    Student-t kernel with (possibly per-point) degrees of freedom:
    W = (1 + f / dof)^(-(dof + 1) / 2).

    dof = 1 is t-SNE; dof -> infinity approaches a Gaussian.

    Reference: Kitazono, Grozavu, Rogovschi, Omori & Ozawa (2016),
    "t-Distributed stochastic neighbor embedding with inhomogeneous
    degrees of freedom".
    """
    dof: Param = 1.0
    needs_weights: ClassVar[bool] = True

    @property
    def symmetry(self) -> WeightSymmetry:
        return _classify(self.dof)

    def weights(self, f):
        dof = _per_point(self.dof)
        return (1.0 + f / dof) ** (-0.5 * (dof + 1.0))

    def gradient(self, f, w):
        dof = _per_point(self.dof)
        return -w * (dof + 1.0) / (2.0 * (dof + f))

    def stiffness_factor(self, f, w):
        dof = _per_point(self.dof)
        return ((dof + 1.0) / (2.0 * dof)) * w ** (2.0 / (dof + 1.0))

    def expand(self, n):
        return InhomogeneousTKernel(dof=_vector(self.dof, n))


@dataclass(frozen=True, eq=False)
class IdentityKernel(Kernel):
    """
    The kernel input itself is the weight: W = f.

    Used by the un-normalized distance embedders. There is no closed-form
    stiffness factor, so methods using it need the plugin gradient.
    """

    @property
    def symmetry(self) -> WeightSymmetry:
        return WeightSymmetry.SYMMETRIC

    def weights(self, f):
        return f

    def gradient(self, f, w):
        return jnp.ones_like(f)


@dataclass(frozen=True, eq=False)
class ImportanceWeightedKernel(Kernel):
    """
    Base kernel scaled by input-space importance: W[i, j] = m_i m_j base(f).

    The degrees m are the row sums of the input probabilities, computed once
    at initialization. The scaling is symmetric, so the classification is
    inherited from the base kernel, and so is the stiffness factor.

    Reference: Yang, Peltonen & Kaski (2014), weighted SNE.
    """
    base: Kernel = ExpKernel()
    degrees: Optional[jnp.ndarray] = None

    @property
    def needs_weights(self) -> bool:
        return self.base.needs_weights

    @property
    def symmetry(self) -> Optional[WeightSymmetry]:
        return self.base.symmetry

    def _importance(self) -> jnp.ndarray:
        if self.degrees is None:
            raise ConfigurationError(
                "Importance weights require input degrees; initialize the "
                "method against an input state first"
            )
        return jnp.outer(self.degrees, self.degrees)

    def weights(self, f):
        return self._importance() * self.base.weights(f)

    def gradient(self, f, w):
        return self._importance() * self.base.gradient(f, self.base.weights(f))

    def stiffness_factor(self, f, w):
        importance = self._importance()
        if w is not None:
            w = w / jnp.where(importance > 0, importance, 1.0)
        return self.base.stiffness_factor(f, w)

    def with_precision(self, beta):
        return ImportanceWeightedKernel(self.base.with_precision(beta), self.degrees)


def dist2_to_weights(f: jnp.ndarray, kernel: Optional[Kernel]) -> WeightMatrix:
    """
    Weight matrix from kernel input.

    With no kernel configured the identity kernel applies: the input itself
    is the weight matrix.
    """
    if kernel is None:
        kernel = IdentityKernel()
    return kernel.apply(f)


__all__ = [
    'Kernel',
    'ExpKernel',
    'TDistKernel',
    'HeavyTailKernel',
    'InhomogeneousTKernel',
    'IdentityKernel',
    'ImportanceWeightedKernel',
    'dist2_to_weights',
]

"""
Divergences between input probabilities P and output probabilities Q.

Each divergence supplies three things:

- value / pointwise: the cost and its per-point decomposition
- gradient_q: dC/dQ, consumed by the generic plugin gradient
- stiffness_numerator: the closed-form reduction of dC/dW * W, consumed by
  the closed-form stiffness

The closed-form reduction comes from the shared normalization structure.
For Q = W / Z (grand sum) or Q = W / R_i (row sum):

    dC/dW_ij * W_ij = R_ij * (G_ij - <G>_R)

where G = dC/dQ and <G>_R is the R-weighted mean of G (per row for row
probabilities). R is Q itself, or, when an asymmetric kernel is forced into
joint probabilities, the conditional matrix Qc before averaging. The kernel
then contributes dW/df = -W h, so the stiffness kernel is
K = -R (G - <G>_R) h. Each divergence writes -R (G - <G>_R) in its simplest
algebraic form: for KL(P||Q) it collapses to (R / Q)(P - Q).

Logs are eps-regularized: log((a + eps) / (b + eps)).

Reference: Venna, Peltonen, Nybo, Aidos & Kaski (2010) for NeRV; Lee,
Renard, Bernard-Brunel, Verleysen (2013) for JSE.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from typing import ClassVar, Optional

import jax.numpy as jnp

from ..core import EPS, ConfigurationError, CostType, ProbabilityMatrix


def _mean(rm: jnp.ndarray, xm: jnp.ndarray, row_wise: bool) -> jnp.ndarray:
    """R-weighted mean of X, per row or over the whole matrix."""
    if row_wise:
        return jnp.sum(rm * xm, axis=1, keepdims=True)
    return jnp.sum(rm * xm)


def _log_ratio(a: jnp.ndarray, b: jnp.ndarray, eps: float) -> jnp.ndarray:
    return jnp.log((a + eps) / (b + eps))


def kl_divergence(pm: jnp.ndarray, qm: jnp.ndarray, eps: float = EPS) -> jnp.ndarray:
    """KL(P||Q) summed over all entries."""
    return jnp.sum(pm * _log_ratio(pm, qm, eps))


def kl_divergence_rows(pm: jnp.ndarray, qm: jnp.ndarray, eps: float = EPS) -> jnp.ndarray:
    """KL(P||Q) contribution of each row."""
    return jnp.sum(pm * _log_ratio(pm, qm, eps), axis=1)


# =============================================================================
# Divergence Base
# =============================================================================

@dataclass(frozen=True)
class Divergence:
    """
    Base class for probability-based costs.

    Attributes:
        eps: Floor inside logarithms and divisions
    """
    eps: float = EPS

    cost_type: ClassVar[CostType] = CostType.PROBABILITY
    name: ClassVar[str] = "divergence"
    has_closed_form: ClassVar[bool] = True

    def divergence(self, pm, qm, out) -> jnp.ndarray:
        raise NotImplementedError

    def divergence_rows(self, pm, qm, out) -> jnp.ndarray:
        raise NotImplementedError

    def gradient_q(self, pm, qm, out) -> jnp.ndarray:
        raise NotImplementedError

    def stiffness_numerator(self, pm, qm, rm, row_wise: bool, out) -> jnp.ndarray:
        raise ConfigurationError(f"{self.name} has no closed-form stiffness")

    def value(self, inp, out, method) -> jnp.ndarray:
        return self.divergence(_data(inp.pm, "input"), _data(out.qm, "output"), out)

    def pointwise(self, inp, out, method) -> jnp.ndarray:
        return self.divergence_rows(_data(inp.pm, "input"), _data(out.qm, "output"), out)

    def out_updated(self, inp, out, method):
        """Hook run by the orchestrator after each output update."""
        return out


def _data(pm: Optional[ProbabilityMatrix], which: str) -> jnp.ndarray:
    if pm is None:
        raise ConfigurationError(f"Cost requires {which} probabilities")
    return pm.data


# =============================================================================
# Divergences
# =============================================================================

@dataclass(frozen=True)
class KLDivergence(Divergence):
    """
    KL(P||Q) = sum P log(P / Q).

    The SNE cost: penalizes neighbors in input space that are placed far
    apart in the embedding (missed neighbors).
    """
    name: ClassVar[str] = "KL"

    def divergence(self, pm, qm, out):
        return kl_divergence(pm, qm, self.eps)

    def divergence_rows(self, pm, qm, out):
        return kl_divergence_rows(pm, qm, self.eps)

    def gradient_q(self, pm, qm, out):
        return -pm / (qm + self.eps)

    def stiffness_numerator(self, pm, qm, rm, row_wise, out):
        if rm is qm:
            return pm - qm
        return (rm / qm) * (pm - qm)


@dataclass(frozen=True)
class ReverseKLDivergence(Divergence):
    """
    KL(Q||P) = sum Q log(Q / P).

    Penalizes embedding neighbors that are not input neighbors (false
    neighbors).
    """
    name: ClassVar[str] = "revKL"

    def divergence(self, pm, qm, out):
        return kl_divergence(qm, pm, self.eps)

    def divergence_rows(self, pm, qm, out):
        return kl_divergence_rows(qm, pm, self.eps)

    def gradient_q(self, pm, qm, out):
        return _log_ratio(qm, pm, self.eps) + qm / (qm + self.eps)

    def stiffness_numerator(self, pm, qm, rm, row_wise, out):
        lm = _log_ratio(qm, pm, self.eps)
        return -rm * (lm - _mean(rm, lm, row_wise))


@dataclass(frozen=True)
class NeRVDivergence(Divergence):
    """
    NeRV cost: lamda * KL(P||Q) + (1 - lamda) * KL(Q||P).

    Trades recall (lamda -> 1, SNE) against precision (lamda -> 0).
    """
    lamda: float = 0.5
    name: ClassVar[str] = "NeRV"

    def __post_init__(self):
        if not 0.0 <= self.lamda <= 1.0:
            raise ConfigurationError(f"NeRV lamda must be in [0, 1], got {self.lamda}")

    def divergence(self, pm, qm, out):
        return (self.lamda * kl_divergence(pm, qm, self.eps)
                + (1.0 - self.lamda) * kl_divergence(qm, pm, self.eps))

    def divergence_rows(self, pm, qm, out):
        return (self.lamda * kl_divergence_rows(pm, qm, self.eps)
                + (1.0 - self.lamda) * kl_divergence_rows(qm, pm, self.eps))

    def gradient_q(self, pm, qm, out):
        forward = KLDivergence(self.eps).gradient_q(pm, qm, out)
        reverse = ReverseKLDivergence(self.eps).gradient_q(pm, qm, out)
        return self.lamda * forward + (1.0 - self.lamda) * reverse

    def stiffness_numerator(self, pm, qm, rm, row_wise, out):
        forward = KLDivergence(self.eps).stiffness_numerator(pm, qm, rm, row_wise, out)
        reverse = ReverseKLDivergence(self.eps).stiffness_numerator(pm, qm, rm, row_wise, out)
        return self.lamda * forward + (1.0 - self.lamda) * reverse


@dataclass(frozen=True)
class JSDivergence(Divergence):
    """
    Generalized Jensen-Shannon divergence of JSE:

        JS = KL(P||Z) / (1 - kappa) + KL(Q||Z) / kappa
        Z  = kappa P + (1 - kappa) Q

    kappa -> 0 approaches KL(P||Q), kappa -> 1 approaches KL(Q||P). The
    mixture Z is recomputed after each output update and cached on the
    output state.
    """
    kappa: float = 0.5
    name: ClassVar[str] = "JS"

    def __post_init__(self):
        if not 0.0 < self.kappa < 1.0:
            raise ConfigurationError(f"JS kappa must be in (0, 1), got {self.kappa}")

    def mixture(self, pm, qm):
        return self.kappa * pm + (1.0 - self.kappa) * qm

    def _z(self, pm, qm, out):
        if out is not None and out.zm is not None:
            return out.zm
        return self.mixture(pm, qm)

    def divergence(self, pm, qm, out):
        zm = self._z(pm, qm, out)
        return (kl_divergence(pm, zm, self.eps) / (1.0 - self.kappa)
                + kl_divergence(qm, zm, self.eps) / self.kappa)

    def divergence_rows(self, pm, qm, out):
        zm = self._z(pm, qm, out)
        return (kl_divergence_rows(pm, zm, self.eps) / (1.0 - self.kappa)
                + kl_divergence_rows(qm, zm, self.eps) / self.kappa)

    def gradient_q(self, pm, qm, out):
        zm = self._z(pm, qm, out)
        zeps = zm + self.eps
        return (-pm / zeps
                + (_log_ratio(qm, zm, self.eps) + qm / (qm + self.eps)
                   - (1.0 - self.kappa) * qm / zeps) / self.kappa)

    def stiffness_numerator(self, pm, qm, rm, row_wise, out):
        lm = _log_ratio(qm, self._z(pm, qm, out), self.eps)
        return -(rm / self.kappa) * (lm - _mean(rm, lm, row_wise))

    def out_updated(self, inp, out, method):
        return replace(out, zm=self.mixture(inp.pm.data, out.qm.data))


@dataclass(frozen=True)
class SquaredError(Divergence):
    """
    0.5 * sum (P - Q)^2.

    With no kernel and no normalization, P and Q are the input and output
    distances themselves and this is classical metric MDS STRESS.
    """
    name: ClassVar[str] = "square"
    has_closed_form: ClassVar[bool] = False

    def divergence(self, pm, qm, out):
        diff = pm - qm
        return 0.5 * jnp.sum(diff * diff)

    def divergence_rows(self, pm, qm, out):
        diff = pm - qm
        return 0.5 * jnp.sum(diff * diff, axis=1)

    def gradient_q(self, pm, qm, out):
        return qm - pm


__all__ = [
    'kl_divergence',
    'kl_divergence_rows',
    'Divergence',
    'KLDivergence',
    'ReverseKLDivergence',
    'NeRVDivergence',
    'JSDivergence',
    'SquaredError',
]

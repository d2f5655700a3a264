"""
Distance-residual costs: compare input distances R with output distances D
directly, with no kernel or normalization in between.

    STRESS            0.5 sum (R - D)^2
    SSTRESS           0.5 sum (R^2 - D^2)^2
    Sammon            (1 / sum R) sum (R - D)^2 / R

The sums run over the full matrix; for STRESS that equals the usual sum over
unordered pairs. Sammon's normalizing constant 1 / sum R is fixed by the
input, so it is recomputed on the fly rather than cached.

Trainable costs expose gradient_contribution (dC/dD, for the generic
distance chain rule) and stiffness (the closed-form shortcut). The
diagnostics at the bottom (Kruskal, normalized stress, RMS, mean relative
error) are values only.

Reference: Sammon (1969), "A nonlinear mapping for data structure
analysis"; Kruskal (1964).
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar

import jax.numpy as jnp

from ..core import EPS, ConfigurationError, CostType
from ..geometry.distance import upper_tri


def _input_distances(inp) -> jnp.ndarray:
    if inp.dm is None:
        raise ConfigurationError("Distance-based cost requires input distances")
    return inp.dm


def _output_distances(out) -> jnp.ndarray:
    if out.dm is None:
        raise ConfigurationError("Distance-based cost requires output distances to be kept")
    return out.dm


def _n_pairs(n: int) -> float:
    return 0.5 * n * (n - 1)


# =============================================================================
# Base
# =============================================================================

@dataclass(frozen=True)
class DistanceCost:
    """Base class for costs on input and output distance matrices."""
    eps: float = EPS

    cost_type: ClassVar[CostType] = CostType.DISTANCE
    name: ClassVar[str] = "distance"
    has_closed_form: ClassVar[bool] = True
    trainable: ClassVar[bool] = True

    def value(self, inp, out, method) -> jnp.ndarray:
        raise NotImplementedError

    def pointwise(self, inp, out, method) -> jnp.ndarray:
        raise NotImplementedError

    def gradient_contribution(self, inp, out, method) -> jnp.ndarray:
        """dC/dD, elementwise."""
        raise ConfigurationError(f"{self.name} is a diagnostic and cannot be optimized")

    def stiffness(self, inp, out, method) -> jnp.ndarray:
        raise ConfigurationError(f"{self.name} has no closed-form stiffness")

    def out_updated(self, inp, out, method):
        return out


# =============================================================================
# Trainable Costs
# =============================================================================

@dataclass(frozen=True)
class MetricStress(DistanceCost):
    """Metric MDS STRESS: 0.5 sum (R - D)^2."""
    name: ClassVar[str] = "STRESS"

    def value(self, inp, out, method):
        diff = _input_distances(inp) - _output_distances(out)
        return 0.5 * jnp.sum(diff * diff)

    def pointwise(self, inp, out, method):
        diff = _input_distances(inp) - _output_distances(out)
        return 0.5 * jnp.sum(diff * diff, axis=1)

    def gradient_contribution(self, inp, out, method):
        return -(_input_distances(inp) - _output_distances(out))

    def stiffness(self, inp, out, method):
        rm = _input_distances(inp)
        dm = _output_distances(out)
        return -2.0 * (rm - dm) / (dm + self.eps)


@dataclass(frozen=True)
class MetricSStress(DistanceCost):
    """SSTRESS on squared distances: 0.5 sum (R^2 - D^2)^2."""
    name: ClassVar[str] = "SSTRESS"

    def _residual(self, inp, out):
        rm = _input_distances(inp)
        dm = _output_distances(out)
        return rm * rm - dm * dm

    def value(self, inp, out, method):
        diff = self._residual(inp, out)
        return 0.5 * jnp.sum(diff * diff)

    def pointwise(self, inp, out, method):
        diff = self._residual(inp, out)
        return 0.5 * jnp.sum(diff * diff, axis=1)

    def gradient_contribution(self, inp, out, method):
        return -2.0 * _output_distances(out) * self._residual(inp, out)

    def stiffness(self, inp, out, method):
        return -4.0 * self._residual(inp, out)


@dataclass(frozen=True)
class SammonStress(DistanceCost):
    """
    Sammon's stress: (1 / sum R) sum (R - D)^2 / (R + eps).

    Large input distances are down-weighted, so local structure dominates.
    """
    name: ClassVar[str] = "Sammon"

    def _inv_sum(self, rm):
        return 1.0 / (jnp.sum(rm) + self.eps)

    def value(self, inp, out, method):
        rm = _input_distances(inp)
        diff = rm - _output_distances(out)
        return self._inv_sum(rm) * jnp.sum(diff * diff / (rm + self.eps))

    def pointwise(self, inp, out, method):
        rm = _input_distances(inp)
        diff = rm - _output_distances(out)
        return self._inv_sum(rm) * jnp.sum(diff * diff / (rm + self.eps), axis=1)

    def gradient_contribution(self, inp, out, method):
        rm = _input_distances(inp)
        dm = _output_distances(out)
        return -2.0 * self._inv_sum(rm) * (rm - dm) / (rm + self.eps)

    def stiffness(self, inp, out, method):
        rm = _input_distances(inp)
        dm = _output_distances(out)
        return (-4.0 * self._inv_sum(rm) * (rm - dm)
                / ((rm + self.eps) * (dm + self.eps)))


@dataclass(frozen=True)
class SammonStressUnnormalized(DistanceCost):
    """
    Sammon's stress without the 1 / sum R constant, over unordered pairs.

    Same minimizer as SammonStress.
    """
    name: ClassVar[str] = "Sammon (unnormalized)"

    def value(self, inp, out, method):
        rm = _input_distances(inp)
        diff = rm - _output_distances(out)
        return jnp.sum(upper_tri(diff * diff / (rm + self.eps)))

    def pointwise(self, inp, out, method):
        rm = _input_distances(inp)
        diff = rm - _output_distances(out)
        return 0.5 * jnp.sum(diff * diff / (rm + self.eps), axis=1)

    def gradient_contribution(self, inp, out, method):
        rm = _input_distances(inp)
        return -(rm - _output_distances(out)) / (rm + self.eps)

    def stiffness(self, inp, out, method):
        rm = _input_distances(inp)
        dm = _output_distances(out)
        return -2.0 * (rm - dm) / ((rm + self.eps) * (dm + self.eps))


# =============================================================================
# Diagnostics
# =============================================================================

@dataclass(frozen=True)
class NormalizedStress(DistanceCost):
    """STRESS divided by sum over pairs of (R + eps)^2. Scale-free."""
    name: ClassVar[str] = "normalized STRESS"
    trainable: ClassVar[bool] = False
    has_closed_form: ClassVar[bool] = False

    def _norm(self, inp):
        rm = _input_distances(inp) + self.eps
        return jnp.sum(upper_tri(rm * rm))

    def value(self, inp, out, method):
        return MetricStress(self.eps).value(inp, out, method) / self._norm(inp)

    def pointwise(self, inp, out, method):
        return MetricStress(self.eps).pointwise(inp, out, method) / self._norm(inp)


@dataclass(frozen=True)
class KruskalStress(DistanceCost):
    """
    Kruskal's stress-1: sqrt(STRESS / sum over pairs of (D + eps)^2).

    pointwise returns each point's share of the squared value.
    """
    name: ClassVar[str] = "Kruskal"
    trainable: ClassVar[bool] = False
    has_closed_form: ClassVar[bool] = False

    def _norm(self, out):
        dm = _output_distances(out) + self.eps
        return jnp.sum(upper_tri(dm * dm))

    def value(self, inp, out, method):
        return jnp.sqrt(MetricStress(self.eps).value(inp, out, method) / self._norm(out))

    def pointwise(self, inp, out, method):
        return MetricStress(self.eps).pointwise(inp, out, method) / self._norm(out)


@dataclass(frozen=True)
class RMSStress(DistanceCost):
    """
    Root mean square distance residual over unordered pairs.

    pointwise returns each point's share of the squared value.
    """
    name: ClassVar[str] = "RMS"
    trainable: ClassVar[bool] = False
    has_closed_form: ClassVar[bool] = False

    def value(self, inp, out, method):
        n = _input_distances(inp).shape[0]
        return jnp.sqrt(MetricStress(self.eps).value(inp, out, method) / _n_pairs(n))

    def pointwise(self, inp, out, method):
        n = _input_distances(inp).shape[0]
        return MetricStress(self.eps).pointwise(inp, out, method) / _n_pairs(n)


@dataclass(frozen=True)
class MeanRelativeError(DistanceCost):
    """Mean over unordered pairs of |R - D| / R."""
    name: ClassVar[str] = "MRE"
    trainable: ClassVar[bool] = False
    has_closed_form: ClassVar[bool] = False

    def _relative(self, inp, out):
        rm = _input_distances(inp)
        return jnp.abs(rm - _output_distances(out)) / (rm + self.eps)

    def value(self, inp, out, method):
        rel = self._relative(inp, out)
        return jnp.sum(upper_tri(rel)) / _n_pairs(rel.shape[0])

    def pointwise(self, inp, out, method):
        rel = self._relative(inp, out)
        return 0.5 * jnp.sum(rel, axis=1) / _n_pairs(rel.shape[0])


__all__ = [
    'DistanceCost',
    'MetricStress',
    'MetricSStress',
    'SammonStress',
    'SammonStressUnnormalized',
    'NormalizedStress',
    'KruskalStress',
    'RMSStress',
    'MeanRelativeError',
]

"""
Embedding method specifications.

A MethodSpec is the immutable configuration of one embedding method:
cost, kernel, probability semantics, kernel input transform and gradient
strategy. Named methods from the literature are plain factory functions
returning a MethodSpec:

    Probability-based (SNE family)
        asne, ssne, tsne, tasne, hssne, rasne, rssne, rtsne,
        nerv, snerv, hsnerv, tnerv, jse, sjse, hsjse,
        htsne, itsne, ihssne, ih3sne, ihpsne, wssne

    Distance-based
        mmds, smmds, sammon_map

    Anything else
        embedder(cost, kernel, transform, prob_type, ...)

Invalid combinations are rejected when the MethodSpec is constructed, not when
the first gradient is requested. The set of intermediate matrices the
output update must retain (the keep set) is declared here too, once, from
the cost type, gradient strategy, kernel needs and transform.

Example:
    >>> method = tsne()
    >>> Keep.WEIGHTS in method.keep
    True
    >>> plugin = pluginize(method)
    >>> plugin.stiffness
    <StiffnessStrategy.PLUGIN: 'plugin'>
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Callable, FrozenSet, Optional, Tuple, Union

from ..core import (
    ConfigurationError,
    CostType,
    Keep,
    ProbType,
    StiffnessStrategy,
)
from ..geometry.distance import Transform
from ..geometry.kernels import (
    ExpKernel,
    HeavyTailKernel,
    IdentityKernel,
    ImportanceWeightedKernel,
    InhomogeneousTKernel,
    Kernel,
    TDistKernel,
)
from ..gradient.stiffness import is_enforced_joint_out_prob
from ..information.divergence import (
    Divergence,
    JSDivergence,
    KLDivergence,
    NeRVDivergence,
    ReverseKLDivergence,
)
from ..information.stress import (
    DistanceCost,
    MetricSStress,
    MetricStress,
    SammonStress,
)


Cost = Union[Divergence, DistanceCost]


# =============================================================================
# Method Specification
# =============================================================================

@dataclass(frozen=True, eq=False)
class MethodSpec:
    """
    Immutable embedding method configuration.

    Attributes:
        name: Display name
        cost: Divergence or distance cost
        kernel: Output kernel; None for distance costs and un-normalized
            embedders on raw (squared) distances
        prob_type: Input probability type (None for distance costs)
        out_prob_type: Output probability type when it differs from the input
        transform: What the kernel sees (squared or raw distances)
        stiffness: Gradient strategy
        scales: Per-scale output kernels of a multiscale method, filled in by
            the multiscale input initializer
        per_point: Expand kernel parameters to one value per point at
            initialization (inhomogeneous methods)
        out_updated: Optional hook (inp, out, method) -> out run before the
            cost's own hook
        keep: Declared intermediates (computed, not passed)
    """
    name: str
    cost: Cost
    kernel: Optional[Kernel] = None
    prob_type: Optional[ProbType] = None
    out_prob_type: Optional[ProbType] = None
    transform: Transform = Transform.SQUARED
    stiffness: StiffnessStrategy = StiffnessStrategy.CLOSED_FORM
    scales: Tuple[Kernel, ...] = ()
    per_point: bool = False
    out_updated: Optional[Callable] = None
    keep: FrozenSet[Keep] = field(init=False)

    def __post_init__(self):
        _validate(self)
        object.__setattr__(self, 'keep', declare_keep(self))

    @property
    def output_prob_type(self) -> Optional[ProbType]:
        if self.out_prob_type is not None:
            return self.out_prob_type
        return self.prob_type

    @property
    def is_multiscale(self) -> bool:
        return len(self.scales) > 0


def _validate(method: MethodSpec) -> None:
    """Reject unsupported combinations at construction."""
    cost = method.cost
    cost_type = getattr(cost, 'cost_type', None)
    if not isinstance(cost_type, CostType):
        raise ConfigurationError(f"Cost {cost!r} does not declare a CostType")
    if not isinstance(method.stiffness, StiffnessStrategy):
        raise ConfigurationError(f"Unknown stiffness strategy {method.stiffness!r}")
    if not isinstance(method.transform, Transform):
        raise ConfigurationError(f"Unknown transform {method.transform!r}")

    if cost_type == CostType.DISTANCE:
        if not cost.trainable:
            raise ConfigurationError(f"{cost.name} is a diagnostic and cannot be optimized")
        if method.kernel is not None or method.scales:
            raise ConfigurationError("Distance-based costs take no kernel")
        if method.stiffness == StiffnessStrategy.PLUGIN:
            raise ConfigurationError(
                "Distance-based costs use the DISTANCE strategy, not PLUGIN"
            )
        return

    for prob_type in (method.prob_type, method.out_prob_type):
        if prob_type is not None and not isinstance(prob_type, ProbType):
            raise ConfigurationError(f"Unknown probability type {prob_type!r}")
    if method.prob_type is None:
        raise ConfigurationError("Probability-based costs need a probability type")
    if method.stiffness == StiffnessStrategy.DISTANCE:
        raise ConfigurationError("The DISTANCE strategy requires a distance-based cost")

    if method.stiffness == StiffnessStrategy.CLOSED_FORM:
        if not cost.has_closed_form:
            raise ConfigurationError(f"{cost.name} has no closed-form stiffness")
        if method.kernel is None or isinstance(method.kernel, IdentityKernel):
            raise ConfigurationError("Closed-form stiffness requires a non-identity kernel")
        if method.scales:
            raise ConfigurationError("Multiscale methods require the plugin gradient")
        if ProbType.UNNORMALIZED in (method.prob_type, method.output_prob_type):
            raise ConfigurationError(
                "Closed-form stiffness requires normalized probabilities"
            )
        # numerators assume P is normalized the same way as Q
        row_in = method.prob_type == ProbType.ROW
        row_out = method.output_prob_type == ProbType.ROW
        if row_in != row_out:
            raise ConfigurationError(
                f"Closed-form stiffness cannot mix {method.prob_type.value} input "
                f"with {method.output_prob_type.value} output probabilities"
            )
        if is_enforced_joint_out_prob(method) and method.prob_type != ProbType.JOINT:
            raise ConfigurationError(
                "Closed-form stiffness with an averaged joint output requires "
                "joint input probabilities"
            )


def declare_keep(method: MethodSpec) -> FrozenSet[Keep]:
    """
    Intermediate matrices the output update must retain for this method.

    The output probabilities are always kept and are not listed.
    """
    keep = set()
    if method.cost.cost_type == CostType.DISTANCE:
        keep.add(Keep.DISTANCES)
        return frozenset(keep)

    if method.stiffness == StiffnessStrategy.PLUGIN:
        keep.add(Keep.SQUARED_DISTANCES)
        if method.scales:
            keep.add(Keep.SCALES)
        else:
            keep.add(Keep.WEIGHTS)
    else:
        if method.kernel is not None and method.kernel.needs_weights:
            keep.add(Keep.WEIGHTS)
        if is_enforced_joint_out_prob(method):
            keep.add(Keep.CONDITIONAL)
        if method.transform != Transform.SQUARED:
            keep.add(Keep.SQUARED_DISTANCES)
    return frozenset(keep)


def with_stiffness(method: MethodSpec, stiffness: StiffnessStrategy) -> MethodSpec:
    """Copy of the method using another gradient strategy."""
    return replace(method, stiffness=stiffness)


def pluginize(method: MethodSpec) -> MethodSpec:
    """Copy of the method using the generic chain-rule gradient."""
    if method.cost.cost_type == CostType.DISTANCE:
        return with_stiffness(method, StiffnessStrategy.DISTANCE)
    return with_stiffness(method, StiffnessStrategy.PLUGIN)


# =============================================================================
# SNE Family
# =============================================================================

def asne(beta: float = 1.0) -> MethodSpec:
    """Asymmetric SNE (Hinton & Roweis, 2002): row probabilities, Gaussian."""
    return MethodSpec("ASNE", KLDivergence(), ExpKernel(beta), ProbType.ROW)


def ssne(beta: float = 1.0) -> MethodSpec:
    """Symmetric SNE: joint probabilities, Gaussian."""
    return MethodSpec("SSNE", KLDivergence(), ExpKernel(beta), ProbType.JOINT)


def tsne() -> MethodSpec:
    """t-SNE (van der Maaten & Hinton, 2008)."""
    return MethodSpec("t-SNE", KLDivergence(), TDistKernel(), ProbType.JOINT)


def tasne() -> MethodSpec:
    """ASNE with the t-distributed kernel."""
    return MethodSpec("t-ASNE", KLDivergence(), TDistKernel(), ProbType.ROW)


def hssne(beta: float = 1.0, alpha: float = 0.0) -> MethodSpec:
    """Heavy-tailed SSNE (Yang et al., 2009). alpha = 0 is SSNE."""
    return MethodSpec("HSSNE", KLDivergence(), HeavyTailKernel(beta, alpha), ProbType.JOINT)


def rasne(beta: float = 1.0) -> MethodSpec:
    """ASNE with the reverse KL divergence."""
    return MethodSpec("RASNE", ReverseKLDivergence(), ExpKernel(beta), ProbType.ROW)


def rssne(beta: float = 1.0) -> MethodSpec:
    """SSNE with the reverse KL divergence."""
    return MethodSpec("RSSNE", ReverseKLDivergence(), ExpKernel(beta), ProbType.JOINT)


def rtsne() -> MethodSpec:
    """t-SNE with the reverse KL divergence."""
    return MethodSpec("RTSNE", ReverseKLDivergence(), TDistKernel(), ProbType.JOINT)


def nerv(lamda: float = 0.5, beta: float = 1.0) -> MethodSpec:
    """Neighbor Retrieval Visualizer (Venna et al., 2010)."""
    return MethodSpec("NeRV", NeRVDivergence(lamda=lamda), ExpKernel(beta), ProbType.ROW)


def snerv(lamda: float = 0.5, beta: float = 1.0) -> MethodSpec:
    """NeRV with joint probabilities."""
    return MethodSpec("SNeRV", NeRVDivergence(lamda=lamda), ExpKernel(beta), ProbType.JOINT)


def hsnerv(lamda: float = 0.5, beta: float = 1.0, alpha: float = 0.0) -> MethodSpec:
    """Symmetric NeRV with the heavy-tailed kernel."""
    return MethodSpec(
        "HSNeRV", NeRVDivergence(lamda=lamda), HeavyTailKernel(beta, alpha), ProbType.JOINT
    )


def tnerv(lamda: float = 0.5) -> MethodSpec:
    """Symmetric NeRV with the t-distributed kernel."""
    return MethodSpec("t-NeRV", NeRVDivergence(lamda=lamda), TDistKernel(), ProbType.JOINT)


def jse(kappa: float = 0.5, beta: float = 1.0) -> MethodSpec:
    """Jensen-Shannon Embedding (Lee et al., 2013)."""
    return MethodSpec("JSE", JSDivergence(kappa=kappa), ExpKernel(beta), ProbType.ROW)


def sjse(kappa: float = 0.5, beta: float = 1.0) -> MethodSpec:
    """JSE with joint probabilities."""
    return MethodSpec("SJSE", JSDivergence(kappa=kappa), ExpKernel(beta), ProbType.JOINT)


def hsjse(kappa: float = 0.5, beta: float = 1.0, alpha: float = 0.0) -> MethodSpec:
    """Symmetric JSE with the heavy-tailed kernel."""
    return MethodSpec(
        "HSJSE", JSDivergence(kappa=kappa), HeavyTailKernel(beta, alpha), ProbType.JOINT
    )


def htsne(dof: float = 1.0) -> MethodSpec:
    """
    t-SNE with a single tunable degree of freedom. dof = 1 is t-SNE; large
    dof approaches SSNE.
    """
    return MethodSpec("HTSNE", KLDivergence(), InhomogeneousTKernel(dof), ProbType.JOINT)


# =============================================================================
# Inhomogeneous And Weighted Variants
# =============================================================================

def itsne(dof: float = 1.0) -> MethodSpec:
    """
    Inhomogeneous t-SNE (Kitazono et al., 2016): one degree of freedom per
    point. The per-point kernel is asymmetric, so the joint output requires
    the averaging step.
    """
    return MethodSpec(
        "it-SNE", KLDivergence(), InhomogeneousTKernel(dof), ProbType.JOINT, per_point=True
    )


def ihssne(alpha: float = 0.5, beta: float = 1.0) -> MethodSpec:
    """HSSNE with per-point heavy-tailedness, joint output."""
    return MethodSpec(
        "iHSSNE", KLDivergence(), HeavyTailKernel(beta, alpha), ProbType.JOINT, per_point=True
    )


def ih3sne(alpha: float = 0.5, beta: float = 1.0) -> MethodSpec:
    """HSSNE with per-point heavy-tailedness: joint input, conditional output."""
    return MethodSpec(
        "iH3SNE", KLDivergence(), HeavyTailKernel(beta, alpha), ProbType.JOINT,
        out_prob_type=ProbType.CONDITIONAL, per_point=True,
    )


def ihpsne(alpha: float = 0.5, beta: float = 1.0) -> MethodSpec:
    """HSSNE with per-point heavy-tailedness, conditional probabilities throughout."""
    return MethodSpec(
        "iHPSNE", KLDivergence(), HeavyTailKernel(beta, alpha), ProbType.CONDITIONAL,
        per_point=True,
    )


def wssne(beta: float = 1.0) -> MethodSpec:
    """
    Weighted SSNE (Yang et al., 2014): output weights scaled by the input
    degree of both points. Degrees are taken from P at initialization.
    """
    return MethodSpec(
        "ws-SNE", KLDivergence(), ImportanceWeightedKernel(ExpKernel(beta)), ProbType.JOINT
    )


# =============================================================================
# Distance-Based
# =============================================================================

def mmds() -> MethodSpec:
    """Metric MDS minimizing STRESS."""
    return MethodSpec("MMDS", MetricStress())


def smmds() -> MethodSpec:
    """Metric MDS minimizing SSTRESS."""
    return MethodSpec("SMMDS", MetricSStress())


def sammon_map() -> MethodSpec:
    """Sammon mapping."""
    return MethodSpec("Sammon", SammonStress())


# =============================================================================
# Generic
# =============================================================================

def embedder(
    cost: Cost,
    kernel: Optional[Kernel] = None,
    transform: Transform = Transform.SQUARED,
    prob_type: Optional[ProbType] = ProbType.UNNORMALIZED,
    out_prob_type: Optional[ProbType] = None,
    stiffness: Optional[StiffnessStrategy] = None,
    name: str = "embedder",
) -> MethodSpec:
    """
    Assemble a method from parts.

    Defaults to the generic gradient (PLUGIN, or DISTANCE for a distance
    cost), which works for every combination. With SquaredError, no kernel,
    raw distances and no normalization this is metric MDS.
    """
    if cost.cost_type == CostType.DISTANCE:
        prob_type = None
        default = StiffnessStrategy.DISTANCE
    else:
        default = StiffnessStrategy.PLUGIN
    return MethodSpec(
        name, cost, kernel, prob_type, out_prob_type, transform,
        stiffness if stiffness is not None else default,
    )


METHODS = {
    'asne': asne,
    'ssne': ssne,
    'tsne': tsne,
    'tasne': tasne,
    'hssne': hssne,
    'rasne': rasne,
    'rssne': rssne,
    'rtsne': rtsne,
    'nerv': nerv,
    'snerv': snerv,
    'hsnerv': hsnerv,
    'tnerv': tnerv,
    'jse': jse,
    'sjse': sjse,
    'hsjse': hsjse,
    'htsne': htsne,
    'itsne': itsne,
    'ihssne': ihssne,
    'ih3sne': ih3sne,
    'ihpsne': ihpsne,
    'wssne': wssne,
    'mmds': mmds,
    'smmds': smmds,
    'sammon': sammon_map,
}


def get_method(name: str) -> MethodSpec:
    """
    Named method with default parameters.

    Raises:
        ConfigurationError: for an unknown name
    """
    try:
        factory = METHODS[name.lower()]
    except KeyError:
        raise ConfigurationError(
            f"Unknown method {name!r}; choose from {', '.join(sorted(METHODS))}"
        ) from None
    return factory()


__all__ = [
    'MethodSpec',
    'declare_keep',
    'with_stiffness',
    'pluginize',
    'asne',
    'ssne',
    'tsne',
    'tasne',
    'hssne',
    'rasne',
    'rssne',
    'rtsne',
    'nerv',
    'snerv',
    'hsnerv',
    'tnerv',
    'jse',
    'sjse',
    'hsjse',
    'htsne',
    'itsne',
    'ihssne',
    'ih3sne',
    'ihpsne',
    'wssne',
    'mmds',
    'smmds',
    'sammon_map',
    'embedder',
    'METHODS',
    'get_method',
]

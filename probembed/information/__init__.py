"""
Probabilities and the costs defined on them.

- probability: Weights to probabilities, conversions between semantics
- divergence: KL, reverse KL, NeRV, Jensen-Shannon and squared error
- stress: Distance-residual costs (STRESS, SSTRESS, Sammon) and diagnostics
- calibration: Perplexity-based precision search
"""
from .probability import (
    weights_to_row,
    weights_to_conditional,
    symmetric_weights_to_joint,
    asymmetric_weights_to_joint,
    weights_to_unnormalized,
    symmetrize,
    weights_to_probs,
    row_to_conditional,
    row_to_joint,
    row_to_avrow,
    row_to_unnormalized,
    conditional_to_joint,
    convert_prob,
    row_entropy,
    row_perplexity,
)
from .divergence import (
    kl_divergence,
    kl_divergence_rows,
    Divergence,
    KLDivergence,
    ReverseKLDivergence,
    NeRVDivergence,
    JSDivergence,
    SquaredError,
)
from .stress import (
    DistanceCost,
    MetricStress,
    MetricSStress,
    SammonStress,
    SammonStressUnnormalized,
    NormalizedStress,
    KruskalStress,
    RMSStress,
    MeanRelativeError,
)
from .calibration import (
    CalibrationResult,
    precisions_to_bandwidths,
    find_beta,
)

__all__ = [
    # Probabilities
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
    # Divergences
    'kl_divergence',
    'kl_divergence_rows',
    'Divergence',
    'KLDivergence',
    'ReverseKLDivergence',
    'NeRVDivergence',
    'JSDivergence',
    'SquaredError',
    # Distance costs
    'DistanceCost',
    'MetricStress',
    'MetricSStress',
    'SammonStress',
    'SammonStressUnnormalized',
    'NormalizedStress',
    'KruskalStress',
    'RMSStress',
    'MeanRelativeError',
    # Calibration
    'CalibrationResult',
    'precisions_to_bandwidths',
    'find_beta',
]

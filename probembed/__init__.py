"""
Probability-Based Embedding

Dimensionality reduction by matching input and output similarities. The
SNE family (ASNE, SSNE, t-SNE, NeRV, JSE and their heavy-tailed,
reverse, inhomogeneous and weighted variants) and metric MDS / Sammon
mapping share one pipeline and one gradient engine:

    Y -> D^2 -> f -> W -> Q -> C(P, Q) -> K -> dC/dY

Core Types (probembed.core):
    - ProbType: Row, conditional, joint or un-normalized semantics
    - WeightSymmetry: Declared kernel symmetry
    - WeightMatrix, ProbabilityMatrix: Tagged matrices
    - ConfigurationError: Unsupported configuration, raised at construction

Geometry (probembed.geometry):
    - coords_to_dist2, Transform: Distances and the kernel input
    - ExpKernel, TDistKernel, HeavyTailKernel, InhomogeneousTKernel,
      ImportanceWeightedKernel: Similarity kernels

Information (probembed.information):
    - weights_to_probs, convert_prob: Normalization between semantics
    - KLDivergence, ReverseKLDivergence, NeRVDivergence, JSDivergence,
      SquaredError: Probability costs
    - MetricStress, MetricSStress, SammonStress: Distance costs
    - find_beta: Perplexity calibration

Gradient (probembed.gradient):
    - stiffness, gradient: Closed-form, plugin and distance strategies
    - finite_difference_gradient: Numerical check

Embedding (probembed.embedding):
    - MethodSpec and the named factories (tsne(), jse(), ...)
    - init_embedding, PerplexityInit, MultiscalePerplexityInit
    - cost_and_gradient: Pull interface for optimizers

Optimization (probembed.optim):
    - GradientDescent, embed

Usage:
    from probembed import tsne, embed, PerplexityInit
    result = embed(xm, tsne(), input_init=PerplexityInit(30))
"""

__version__ = "0.1.0"

# =============================================================================
# Core Types (probembed.core)
# =============================================================================
from .core import (
    EPS,
    ConfigurationError,
    ProbType,
    WeightSymmetry,
    CostType,
    StiffnessStrategy,
    Keep,
    WeightMatrix,
    ProbabilityMatrix,
)

# =============================================================================
# Geometry (probembed.geometry)
# =============================================================================
from .geometry import (
    # Distances
    coords_to_dist2,
    dist2_to_dist,
    distance_matrix,
    upper_tri,
    Transform,
    # Kernels
    Kernel,
    ExpKernel,
    TDistKernel,
    HeavyTailKernel,
    InhomogeneousTKernel,
    IdentityKernel,
    ImportanceWeightedKernel,
    dist2_to_weights,
)

# =============================================================================
# Information (probembed.information)
# =============================================================================
from .information import (
    # Probabilities
    weights_to_probs,
    convert_prob,
    symmetrize,
    row_entropy,
    row_perplexity,
    # Divergences
    kl_divergence,
    Divergence,
    KLDivergence,
    ReverseKLDivergence,
    NeRVDivergence,
    JSDivergence,
    SquaredError,
    # Distance costs
    DistanceCost,
    MetricStress,
    MetricSStress,
    SammonStress,
    SammonStressUnnormalized,
    NormalizedStress,
    KruskalStress,
    RMSStress,
    MeanRelativeError,
    # Calibration
    CalibrationResult,
    find_beta,
    precisions_to_bandwidths,
)

# =============================================================================
# Gradient (probembed.gradient)
# =============================================================================
from .gradient import (
    stiffness,
    gradient,
    stiffness_to_gradient,
    finite_difference_gradient,
)

# =============================================================================
# Embedding (probembed.embedding)
# =============================================================================
from .embedding import (
    # State
    InputState,
    OutputState,
    update_output,
    cost_value,
    cost_point,
    # Methods
    MethodSpec,
    pluginize,
    with_stiffness,
    asne,
    ssne,
    tsne,
    tasne,
    hssne,
    rasne,
    rssne,
    rtsne,
    nerv,
    snerv,
    hsnerv,
    tnerv,
    jse,
    sjse,
    hsjse,
    htsne,
    itsne,
    ihssne,
    ih3sne,
    ihpsne,
    wssne,
    mmds,
    smmds,
    sammon_map,
    embedder,
    METHODS,
    get_method,
    # Initialization
    PrecisionTransfer,
    PerplexityInit,
    MultiscalePerplexityInit,
    pca_init,
    mds_init,
    random_init,
    init_embedding,
    # Engine
    cost_and_gradient,
)

# =============================================================================
# Optimization (probembed.optim) and preprocessing
# =============================================================================
from .optim import (
    GradientDescent,
    GradientDescentState,
    EmbeddingResult,
    optimize,
    embed,
)
from .preprocess import (
    range_scale_matrix,
    range_scale_columns,
    sd_scale_columns,
    whiten,
    scale_distances,
    make_preprocess,
)


__all__ = [
    '__version__',
    # Core
    'EPS',
    'ConfigurationError',
    'ProbType',
    'WeightSymmetry',
    'CostType',
    'StiffnessStrategy',
    'Keep',
    'WeightMatrix',
    'ProbabilityMatrix',
    # Geometry
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
    # Information
    'weights_to_probs',
    'convert_prob',
    'symmetrize',
    'row_entropy',
    'row_perplexity',
    'kl_divergence',
    'Divergence',
    'KLDivergence',
    'ReverseKLDivergence',
    'NeRVDivergence',
    'JSDivergence',
    'SquaredError',
    'DistanceCost',
    'MetricStress',
    'MetricSStress',
    'SammonStress',
    'SammonStressUnnormalized',
    'NormalizedStress',
    'KruskalStress',
    'RMSStress',
    'MeanRelativeError',
    'CalibrationResult',
    'find_beta',
    'precisions_to_bandwidths',
    # Gradient
    'stiffness',
    'gradient',
    'stiffness_to_gradient',
    'finite_difference_gradient',
    # Embedding
    'InputState',
    'OutputState',
    'update_output',
    'cost_value',
    'cost_point',
    'MethodSpec',
    'pluginize',
    'with_stiffness',
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
    'PrecisionTransfer',
    'PerplexityInit',
    'MultiscalePerplexityInit',
    'pca_init',
    'mds_init',
    'random_init',
    'init_embedding',
    'cost_and_gradient',
    # Optimization and preprocessing
    'GradientDescent',
    'GradientDescentState',
    'EmbeddingResult',
    'optimize',
    'embed',
    'range_scale_matrix',
    'range_scale_columns',
    'sd_scale_columns',
    'whiten',
    'scale_distances',
    'make_preprocess',
]

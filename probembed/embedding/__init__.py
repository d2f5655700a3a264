"""
Embedding methods, state and initialization.

- method: MethodSpec, keep-set declaration and the named method factories
- state: Input/output state and the output update orchestrator
- init: Perplexity (single and multiscale) input initialization, output
  coordinate initialization
- engine: cost_and_gradient pull interface for optimizers
"""
from .state import (
    InputState,
    ScaleResult,
    OutputState,
    update_output,
    cost_value,
    cost_point,
)
from .method import (
    MethodSpec,
    declare_keep,
    with_stiffness,
    pluginize,
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
)
from .init import (
    PrecisionTransfer,
    PerplexityInit,
    MultiscalePerplexityInit,
    input_from_method,
    pca_init,
    mds_init,
    random_init,
    init_embedding,
)
from .engine import cost_and_gradient

__all__ = [
    # State
    'InputState',
    'ScaleResult',
    'OutputState',
    'update_output',
    'cost_value',
    'cost_point',
    # Methods
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
    # Initialization
    'PrecisionTransfer',
    'PerplexityInit',
    'MultiscalePerplexityInit',
    'input_from_method',
    'pca_init',
    'mds_init',
    'random_init',
    'init_embedding',
    # Engine
    'cost_and_gradient',
]

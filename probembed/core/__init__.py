"""
Core type system for probability-based embedding.

This module provides the tag taxonomy shared by every layer:
- ProbType: Row / conditional / joint / un-normalized semantics
- WeightSymmetry: Symmetric or asymmetric kernel output
- CostType, StiffnessStrategy, Keep: Dispatch and caching declarations
- WeightMatrix, ProbabilityMatrix: Tagged wrappers
"""
from .types import (
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

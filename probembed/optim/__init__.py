"""
Optimization of embedding coordinates.

- optimizer: Momentum gradient descent (with bold driver step size) and the
  optimize / embed convenience loops
"""
from .optimizer import (
    GradientDescentState,
    GradientDescent,
    EmbeddingResult,
    optimize,
    embed,
)

__all__ = [
    'GradientDescentState',
    'GradientDescent',
    'EmbeddingResult',
    'optimize',
    'embed',
]

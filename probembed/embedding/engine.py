"""
Pull interface for optimizers: cost and gradient at given coordinates.
"""
from __future__ import annotations

from typing import Tuple

import jax.numpy as jnp

from ..gradient.stiffness import gradient
from .state import InputState, OutputState, cost_value, update_output


def cost_and_gradient(
    ym: jnp.ndarray,
    inp: InputState,
    out: OutputState,
    method,
) -> Tuple[jnp.ndarray, jnp.ndarray, OutputState]:
    """
    Move the embedding to ym and evaluate it.

    Args:
        ym: New coordinates
        inp: Input state
        out: Current output state (not modified)
        method: MethodSpec

    Returns:
        (cost, gradient, updated output state)
    """
    out = update_output(inp, OutputState(ym=ym), method)
    return cost_value(inp, out, method), gradient(inp, out, method), out


__all__ = ['cost_and_gradient']

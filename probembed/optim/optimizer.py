"""
Gradient Descent Driver for Embeddings

This module pulls (cost, gradient) pairs from the embedding engine and
moves the output coordinates. The engine never pushes anything and never
sees the optimizer: every step is

    cost, grad, out = cost_and_gradient(ym, inp, out, method)
    state = optimizer.step(state, grad, cost)

=============================================================================
THE UPDATE:
=============================================================================

Classical momentum:

    v_new = mu * v - lr * grad
    y_new = y + v_new

With the bold driver step size adaptation (adaptive=True), the learning
rate grows by `increase` after a step that lowered the cost, and shrinks by
`decrease` after one that raised it, in which case the momentum is also
discarded.

Reference: Battiti (1989), "Accelerated backpropagation learning: Two
optimization methods".

=============================================================================
TERMINATION:
=============================================================================

embed() stops after max_iter steps, or earlier when the relative change
in cost between two reports falls below tol. Cancellation belongs to the
caller; the engine has no cancellation points.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

import jax.numpy as jnp

from ..embedding.engine import cost_and_gradient
from ..embedding.init import init_embedding
from ..embedding.method import MethodSpec
from ..embedding.state import InputState, OutputState

log = logging.getLogger(__name__)


# =============================================================================
# OPTIMIZER STATE
# =============================================================================

@dataclass(frozen=True, eq=False)
class GradientDescentState:
    """
    State of a gradient descent run.

    Attributes:
        params: Current coordinates
        step: Number of steps taken
        velocity: Momentum buffer, same shape as params
        learning_rate: Current step size (changes under the bold driver)
        cost: Cost at the previous step, if known
    """
    params: jnp.ndarray
    step: int = 0
    velocity: Optional[jnp.ndarray] = None
    learning_rate: float = 1.0
    cost: Optional[float] = None


# =============================================================================
# GRADIENT DESCENT
# =============================================================================

class GradientDescent:
    """
    Momentum gradient descent with optional bold driver step size.

    ==========================================================================
    USAGE:
    ==========================================================================

        inp, out, method = init_embedding(tsne(), xm=data,
                                          input_init=PerplexityInit(30))
        optimizer = GradientDescent(learning_rate=10.0, momentum=0.5)
        state = optimizer.init(out.ym)
        for _ in range(100):
            cost, grad, out = cost_and_gradient(state.params, inp, out, method)
            state = optimizer.step(state, grad, cost)
    """

    def __init__(self,
                 learning_rate: float = 1.0,
                 momentum: float = 0.5,
                 adaptive: bool = False,
                 increase: float = 1.1,
                 decrease: float = 0.5):
        """
        Args:
            learning_rate: Initial step size
            momentum: Momentum coefficient in [0, 1)
            adaptive: Use the bold driver step size adaptation
            increase: Step size growth after a successful step
            decrease: Step size shrinkage after a failed step
        """
        if learning_rate <= 0:
            raise ValueError(f"learning_rate must be positive, got {learning_rate}")
        if not 0.0 <= momentum < 1.0:
            raise ValueError(f"momentum must lie in [0, 1), got {momentum}")
        self.learning_rate = learning_rate
        self.momentum = momentum
        self.adaptive = adaptive
        self.increase = increase
        self.decrease = decrease

    # ─────────────────────────────────────────────────────────────────────────
    # INITIALIZATION
    # ─────────────────────────────────────────────────────────────────────────

    def init(self, params: jnp.ndarray) -> GradientDescentState:
        return GradientDescentState(
            params=params,
            velocity=jnp.zeros_like(params),
            learning_rate=self.learning_rate,
        )

    # ─────────────────────────────────────────────────────────────────────────
    # STEP
    # ─────────────────────────────────────────────────────────────────────────

    def step(self,
             state: GradientDescentState,
             gradient: jnp.ndarray,
             cost: Optional[float] = None) -> GradientDescentState:
        """
        Take one step.

        Args:
            state: Current state
            gradient: dC/dY at state.params
            cost: C at state.params; required for the bold driver

        Returns:
            New GradientDescentState
        """
        learning_rate = state.learning_rate
        velocity = state.velocity
        if self.adaptive and cost is not None and state.cost is not None:
            if cost > state.cost:
                learning_rate *= self.decrease
                velocity = jnp.zeros_like(velocity)
            else:
                learning_rate *= self.increase

        velocity = self.momentum * velocity - learning_rate * gradient
        return GradientDescentState(
            params=state.params + velocity,
            step=state.step + 1,
            velocity=velocity,
            learning_rate=learning_rate,
            cost=None if cost is None else float(cost),
        )


# =============================================================================
# CONVENIENCE LOOP
# =============================================================================

@dataclass(frozen=True, eq=False)
class EmbeddingResult:
    """
    Final state of an embedding run.

    Attributes:
        ym: Final coordinates
        cost: Final cost
        n_iter: Steps taken
        costs: Cost at each report
        inp, out, method: Final states and the method actually run
    """
    ym: jnp.ndarray
    cost: float
    n_iter: int
    costs: List[float]
    inp: InputState
    out: OutputState
    method: MethodSpec


def _relative_change(old: float, new: float) -> float:
    return abs(old - new) / max(abs(old), 1e-300)


def optimize(inp: InputState,
             out: OutputState,
             method: MethodSpec,
             optimizer: Optional[GradientDescent] = None,
             max_iter: int = 1000,
             tol: float = 1e-7,
             report_every: int = 50) -> EmbeddingResult:
    """
    Run gradient descent from an initialized embedding.

    Args:
        inp, out, method: As returned by init_embedding
        optimizer: Defaults to GradientDescent with the bold driver
        max_iter: Maximum number of steps
        tol: Stop when the relative cost change between reports is below this
        report_every: Steps between progress reports and convergence checks

    Returns:
        EmbeddingResult
    """
    if optimizer is None:
        optimizer = GradientDescent(adaptive=True)
    state = optimizer.init(out.ym)
    costs: List[float] = []
    cost = None

    for _ in range(max_iter):
        cost, grad, out = cost_and_gradient(state.params, inp, out, method)
        cost = float(cost)
        if state.step % report_every == 0:
            log.info("%s iter %d cost %.6g", method.name, state.step, cost)
            if costs and _relative_change(costs[-1], cost) < tol:
                log.info("%s converged at iter %d", method.name, state.step)
                costs.append(cost)
                break
            costs.append(cost)
        state = optimizer.step(state, grad, cost)
    else:
        cost, _, out = cost_and_gradient(state.params, inp, out, method)
        cost = float(cost)
        costs.append(cost)

    return EmbeddingResult(
        ym=out.ym,
        cost=cost,
        n_iter=state.step,
        costs=costs,
        inp=inp,
        out=out,
        method=method,
    )


def embed(xm: Optional[jnp.ndarray] = None,
          method: Optional[MethodSpec] = None,
          dm: Optional[jnp.ndarray] = None,
          ndim: int = 2,
          input_init=None,
          output_init=None,
          optimizer: Optional[GradientDescent] = None,
          max_iter: int = 1000,
          tol: float = 1e-7,
          report_every: int = 50) -> EmbeddingResult:
    """
    Initialize and optimize an embedding in one call.

    Args:
        xm: Input coordinates (or pass dm)
        method: MethodSpec to run
        dm: Input distance matrix
        ndim: Output dimensionality
        input_init, output_init: See init_embedding
        optimizer, max_iter, tol, report_every: See optimize

    Returns:
        EmbeddingResult
    """
    if method is None:
        raise ValueError("An embedding method is required")
    inp, out, method = init_embedding(
        method, xm=xm, dm=dm, ndim=ndim,
        input_init=input_init, output_init=output_init,
    )
    return optimize(inp, out, method, optimizer=optimizer, max_iter=max_iter,
                    tol=tol, report_every=report_every)


__all__ = [
    'GradientDescentState',
    'GradientDescent',
    'EmbeddingResult',
    'optimize',
    'embed',
]

"""Numerical integration utilities for reference models."""

from __future__ import annotations

from collections.abc import Callable

import numpy as np
import numpy.typing as npt

FloatArray = npt.NDArray[np.float64]


def rk4_step(
    rhs: Callable[[FloatArray, FloatArray], FloatArray],
    state: FloatArray,
    action: FloatArray,
    dtime: float,
) -> FloatArray:
    """Run a single explicit RK4 step under a zero-order-held action.

    Args:
        rhs: Time-invariant derivative function ``f(x, u)`` for
            ``dx/dt = f(x, u)``.
        state: Current state vector.
        action: Action held constant over the step.
        dtime: Integration step width [s].

    Returns:
        Updated state vector after one RK4 step.
    """
    k1 = rhs(state, action)
    k2 = rhs(state + 0.5 * dtime * k1, action)
    k3 = rhs(state + 0.5 * dtime * k2, action)
    k4 = rhs(state + dtime * k3, action)
    return np.asarray(state + (dtime / 6.0) * (k1 + 2.0 * k2 + 2.0 * k3 + k4), dtype=np.float64)


def euler_step(
    rhs: Callable[[FloatArray, FloatArray], FloatArray],
    state: FloatArray,
    action: FloatArray,
    dtime: float,
) -> FloatArray:
    """Run a single explicit Euler step under a zero-order-held action.

    Args:
        rhs: Time-invariant derivative function ``f(x, u)``.
        state: Current state vector.
        action: Action held constant over the step.
        dtime: Integration step width [s].

    Returns:
        Updated state vector after one Euler step.
    """
    return np.asarray(state + dtime * rhs(state, action), dtype=np.float64)

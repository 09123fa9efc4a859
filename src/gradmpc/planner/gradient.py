"""Backward recursion producing the per-timestep descent direction."""

from __future__ import annotations

from enum import IntEnum

import numpy as np

from gradmpc.derivatives.cost_derivatives import CostDerivatives
from gradmpc.derivatives.model_derivatives import ModelDerivatives
from gradmpc.utils.constants import MAX_TRAJECTORY_HORIZON
from gradmpc.utils.exceptions import DimensionError


class GradientStatus(IntEnum):
    """Outcome of :meth:`GradientSolver.compute`."""

    OK = 0
    DEGENERATE = 1


class GradientSolver:
    """First-order value-gradient recursion over the horizon.

    ``Vx[T-1] = cx[T-1]``; for ``t = T-2 .. 0``:
    ``Qx = cx[t] + A[t]^T Vx[t+1]``, ``Qu = cu[t] + B[t]^T Vx[t+1]``,
    ``Vx[t] = Qx`` and ``k[t] = -Qu``. ``dV`` accumulates the first- and
    second-order expected decrease.

    Args:
        state_dim: State dimension.
        action_dim: Action dimension.
        capacity: Maximum horizon.
    """

    def __init__(
        self,
        state_dim: int,
        action_dim: int,
        capacity: int = MAX_TRAJECTORY_HORIZON,
    ) -> None:
        """Store dimensions and allocate empty buffers.

        Args:
            state_dim: State dimension.
            action_dim: Action dimension.
            capacity: Maximum horizon.
        """
        self.state_dim = state_dim
        self.action_dim = action_dim
        self.capacity = capacity
        self.reset(1)

    def reset(self, horizon: int) -> None:
        """Resize and zero the recursion buffers.

        Args:
            horizon: Number of timesteps.

        Raises:
            gradmpc.utils.exceptions.DimensionError: If ``horizon`` is outside
                ``[1, capacity]``.
        """
        if not 1 <= horizon <= self.capacity:
            msg = f"horizon must be in [1, {self.capacity}], got: {horizon}"
            raise DimensionError(msg)
        self.horizon = horizon
        self.Vx = np.zeros((horizon, self.state_dim), dtype=float)
        self.k = np.zeros((horizon - 1, self.action_dim), dtype=float)
        self.dV = np.zeros(2, dtype=float)

    def compute(
        self,
        model_derivatives: ModelDerivatives,
        cost_derivatives: CostDerivatives,
        horizon: int,
    ) -> GradientStatus:
        """Run the backward recursion.

        Args:
            model_derivatives: Dynamics Jacobians ``A``, ``B``.
            cost_derivatives: Cost derivatives ``cx``, ``cu``, ``cuu``.
            horizon: Number of timesteps.

        Returns:
            ``GradientStatus.OK``, or ``GradientStatus.DEGENERATE`` when the
            horizon is too short or the direction is identically zero.
        """
        self.reset(horizon)
        if horizon < 2:
            return GradientStatus.DEGENERATE

        A = model_derivatives.A
        B = model_derivatives.B
        cx = cost_derivatives.cx
        cu = cost_derivatives.cu
        cuu = cost_derivatives.cuu

        self.Vx[horizon - 1] = cx[horizon - 1]
        for t in range(horizon - 2, -1, -1):
            Qx = cx[t] + A[t].T @ self.Vx[t + 1]
            Qu = cu[t] + B[t].T @ self.Vx[t + 1]
            self.Vx[t] = Qx
            self.k[t] = -Qu
            self.dV[0] += float(Qu @ self.k[t])
            self.dV[1] += 0.5 * float(self.k[t] @ cuu[t] @ self.k[t])

        if not np.any(self.k):
            return GradientStatus.DEGENERATE
        return GradientStatus.OK

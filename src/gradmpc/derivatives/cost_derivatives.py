"""Gauss-Newton cost derivatives along a trajectory."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from gradmpc.derivatives.model_derivatives import ModelDerivatives
from gradmpc.simulation.trajectory import Trajectory
from gradmpc.simulation.worker_pool import WorkerPool
from gradmpc.task.norms import norm_gradient, norm_hessian, norm_value
from gradmpc.task.task import Task
from gradmpc.utils.constants import MAX_TRAJECTORY_HORIZON
from gradmpc.utils.exceptions import DimensionError


class CostDerivatives:
    """Per-timestep derivatives ``cx, cu, cxx, cuu, cxu`` of the step cost.

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
        """Resize and zero the derivative buffers.

        Args:
            horizon: Number of timesteps.

        Raises:
            gradmpc.utils.exceptions.DimensionError: If ``horizon`` is outside
                ``[1, capacity]``.
        """
        if not 1 <= horizon <= self.capacity:
            msg = f"horizon must be in [1, {self.capacity}], got: {horizon}"
            raise DimensionError(msg)
        n, m = self.state_dim, self.action_dim
        self.horizon = horizon
        self.cx = np.zeros((horizon, n), dtype=float)
        self.cu = np.zeros((horizon, m), dtype=float)
        self.cxx = np.zeros((horizon, n, n), dtype=float)
        self.cuu = np.zeros((horizon, m, m), dtype=float)
        self.cxu = np.zeros((horizon, n, m), dtype=float)

    def compute(
        self,
        trajectory: Trajectory,
        model_derivatives: ModelDerivatives,
        task: Task,
        horizon: int,
        pool: WorkerPool,
    ) -> None:
        """Differentiate the risk-shaped step cost at every timestep.

        Args:
            trajectory: Nominal trajectory providing residuals.
            model_derivatives: Linearization whose leading ``num_residual``
                measurement rows are the residual Jacobians.
            task: Cost definition.
            horizon: Number of timesteps.
            pool: Worker pool.

        Raises:
            gradmpc.utils.exceptions.DimensionError: If the measurement has
                fewer rows than the residual.
        """
        if model_derivatives.measurement_dim < task.num_residual:
            msg = (
                f"Measurement dimension {model_derivatives.measurement_dim} is smaller "
                f"than the residual dimension {task.num_residual}."
            )
            raise DimensionError(msg)
        self.reset(horizon)
        for index in range(horizon):
            pool.schedule(
                _CostDerivativeUnit(
                    derivatives=self,
                    index=index,
                    trajectory=trajectory,
                    model_derivatives=model_derivatives,
                    task=task,
                )
            )
        pool.wait_for_completions(horizon)


@dataclass
class _CostDerivativeUnit:
    """Cost derivatives of one timestep.

    Args:
        derivatives: Output buffers; only row ``index`` is written.
        index: Timestep index.
        trajectory: Nominal trajectory (read only).
        model_derivatives: Linearization (read only).
        task: Cost definition.
    """

    derivatives: CostDerivatives
    index: int
    trajectory: Trajectory
    model_derivatives: ModelDerivatives
    task: Task

    def __call__(self) -> None:
        """Fill the derivative row for this timestep."""
        task = self.task
        residual = self.trajectory.residuals[self.index]
        rows = task.num_residual
        jac_x = self.model_derivatives.C[self.index, :rows]
        jac_u = self.model_derivatives.D[self.index, :rows]

        gradient = np.zeros(rows, dtype=float)
        hessian = np.zeros((rows, rows), dtype=float)
        raw_cost = 0.0
        for term, block, parameters in zip(task.terms, task.residual_slices, task.norm_parameters):
            values = residual[block]
            gradient[block] = term.weight * norm_gradient(term.norm, values, parameters)
            hessian[block, block] = term.weight * norm_hessian(term.norm, values, parameters)
            raw_cost += term.weight * norm_value(term.norm, values, parameters)

        cx = jac_x.T @ gradient
        cu = jac_u.T @ gradient
        cxx = jac_x.T @ hessian @ jac_x
        cuu = jac_u.T @ hessian @ jac_u
        cxu = jac_x.T @ hessian @ jac_u

        # d/dC of (exp(risk*C) - 1)/risk is exp(risk*C); exact at risk = 0
        scale = float(np.exp(task.risk * raw_cost))
        cxx = scale * (cxx + task.risk * np.outer(cx, cx))
        cuu = scale * (cuu + task.risk * np.outer(cu, cu))
        cxu = scale * (cxu + task.risk * np.outer(cx, cu))

        out = self.derivatives
        out.cx[self.index] = scale * cx
        out.cu[self.index] = scale * cu
        out.cxx[self.index] = cxx
        out.cuu[self.index] = cuu
        out.cxu[self.index] = cxu

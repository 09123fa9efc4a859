"""Rollout of a control law through a simulation context."""

from __future__ import annotations

from typing import Protocol

import numpy as np

from gradmpc.simulation.model_api import SimulationContext
from gradmpc.task.task import Task
from gradmpc.utils.constants import MAX_TRAJECTORY_HORIZON
from gradmpc.utils.exceptions import DimensionError


class ControlLaw(Protocol):
    """Protocol for anything that maps ``(state, time)`` to an action."""

    def action(self, state: np.ndarray, time: float) -> np.ndarray:
        """Return the action to apply.

        Args:
            state: Current state vector.
            time: Current time.

        Returns:
            Action vector.
        """
        ...


class Trajectory:
    """Per-timestep rollout record with a hard capacity bound.

    Args:
        state_dim: State dimension.
        action_dim: Action dimension.
        sensor_dim: Sensor dimension.
        num_residual: Residual dimension.
        exogenous_dim: Exogenous signal dimension.
        capacity: Maximum horizon the trajectory accepts.
    """

    def __init__(
        self,
        state_dim: int,
        action_dim: int,
        sensor_dim: int,
        num_residual: int,
        exogenous_dim: int,
        capacity: int = MAX_TRAJECTORY_HORIZON,
    ) -> None:
        """Store dimensions and allocate an empty record.

        Args:
            state_dim: State dimension.
            action_dim: Action dimension.
            sensor_dim: Sensor dimension.
            num_residual: Residual dimension.
            exogenous_dim: Exogenous signal dimension.
            capacity: Maximum horizon the trajectory accepts.

        Raises:
            gradmpc.utils.exceptions.DimensionError: If ``capacity`` exceeds
                ``MAX_TRAJECTORY_HORIZON``.
        """
        if not 1 <= capacity <= MAX_TRAJECTORY_HORIZON:
            msg = f"capacity must be in [1, {MAX_TRAJECTORY_HORIZON}], got: {capacity}"
            raise DimensionError(msg)
        self.state_dim = state_dim
        self.action_dim = action_dim
        self.sensor_dim = sensor_dim
        self.num_residual = num_residual
        self.exogenous_dim = exogenous_dim
        self.capacity = capacity
        self.reset(1)

    def reset(self, horizon: int) -> None:
        """Resize and zero every buffer for a new horizon.

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
        self.times = np.zeros(horizon, dtype=float)
        self.states = np.zeros((horizon, self.state_dim), dtype=float)
        self.actions = np.zeros((horizon, self.action_dim), dtype=float)
        self.sensors = np.zeros((horizon, self.sensor_dim), dtype=float)
        self.residuals = np.zeros((horizon, self.num_residual), dtype=float)
        self.costs = np.zeros(horizon, dtype=float)
        self.exogenous = np.zeros((horizon, self.exogenous_dim), dtype=float)
        self.trace = np.zeros((horizon, 0), dtype=float)
        self.total_return = 0.0
        self.failure = False

    def rollout(
        self,
        policy: ControlLaw,
        task: Task,
        context: SimulationContext,
        state: np.ndarray,
        time: float,
        exogenous: np.ndarray,
        horizon: int,
        timestep: float,
    ) -> None:
        """Simulate the control law forward and record the trajectory.

        Args:
            policy: Control law queried once per step.
            task: Cost definition.
            context: Simulation context owned by the caller for this rollout.
            state: Initial state.
            time: Initial time.
            exogenous: Initial exogenous signal.
            horizon: Number of timesteps recorded.
            timestep: Simulation timestep.
        """
        self.reset(horizon)
        current_state = np.array(state, dtype=float)
        current_exogenous = np.array(exogenous, dtype=float)
        current_time = float(time)
        trace_points: list[np.ndarray] = []

        for step in range(horizon - 1):
            current_exogenous = task.transition(current_state, current_time, current_exogenous)
            action = policy.action(current_state, current_time)
            next_state, sensors = context.step(current_state, action, current_exogenous)
            self._record(
                step,
                task,
                current_time,
                current_state,
                action,
                sensors,
                current_exogenous,
                trace_points,
            )
            current_state = np.asarray(next_state, dtype=float)
            current_time += timestep

        last = horizon - 1
        action = self.actions[last - 1] if last > 0 else policy.action(current_state, current_time)
        _, sensors = context.step(current_state, action, current_exogenous)
        self._record(
            last,
            task,
            current_time,
            current_state,
            action,
            sensors,
            current_exogenous,
            trace_points,
        )

        if trace_points:
            self.trace = np.vstack(trace_points)
        self.total_return = float(np.sum(self.costs))
        self.failure = not bool(np.all(np.isfinite(self.states)))

    def _record(
        self,
        step: int,
        task: Task,
        time: float,
        state: np.ndarray,
        action: np.ndarray,
        sensors: np.ndarray,
        exogenous: np.ndarray,
        trace_points: list[np.ndarray],
    ) -> None:
        """Write one timestep into the buffers.

        Args:
            step: Timestep index.
            task: Cost definition.
            time: Timestep time.
            state: State at the timestep.
            action: Action applied at the timestep.
            sensors: Sensors at the timestep.
            exogenous: Exogenous signal at the timestep.
            trace_points: Accumulator for trace points.
        """
        self.times[step] = time
        self.states[step] = state
        self.actions[step] = action
        self.sensors[step] = sensors
        self.exogenous[step] = exogenous
        residual = task.residual(state, action, self.sensors[step])
        self.residuals[step] = residual
        self.costs[step] = task.cost_value(residual)
        point = task.trace(state, self.sensors[step])
        if point is not None:
            trace_points.append(point)

    def copy_from(self, other: Trajectory) -> None:
        """Copy another trajectory's record.

        Args:
            other: Source trajectory.

        Raises:
            gradmpc.utils.exceptions.DimensionError: If the source horizon
                exceeds this trajectory's capacity.
        """
        self.reset(other.horizon)
        self.times[:] = other.times
        self.states[:] = other.states
        self.actions[:] = other.actions
        self.sensors[:] = other.sensors
        self.residuals[:] = other.residuals
        self.costs[:] = other.costs
        self.exogenous[:] = other.exogenous
        self.trace = other.trace.copy()
        self.total_return = other.total_return
        self.failure = other.failure

"""Finite-difference Jacobians of the simulation step along a trajectory."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass

import numpy as np

from gradmpc.simulation.model_api import SimulationContext
from gradmpc.simulation.trajectory import Trajectory
from gradmpc.simulation.worker_pool import WorkerPool
from gradmpc.utils.constants import MAX_TRAJECTORY_HORIZON
from gradmpc.utils.exceptions import ConfigurationError, DimensionError

DEFAULT_FD_TOLERANCE = 1e-6
DEFAULT_FD_MODE = "forward"
VALID_FD_MODES = ("forward", "central")

MeasurementFunction = Callable[[np.ndarray, np.ndarray, np.ndarray], np.ndarray]


def _identity_measurement(state: np.ndarray, action: np.ndarray, sensors: np.ndarray) -> np.ndarray:
    """Return the sensors unchanged.

    Args:
        state: State vector.
        action: Action vector.
        sensors: Sensor vector.

    Returns:
        ``sensors``.
    """
    del state, action
    return sensors


class ModelDerivatives:
    """Per-timestep linearization ``A, B, C, D`` of the simulation step.

    ``A[t] = d x'/d x``, ``B[t] = d x'/d u``, ``C[t] = d y/d x`` and
    ``D[t] = d y/d u`` where ``y`` is the measurement vector (the sensors,
    possibly prefixed by a custom residual).

    Args:
        state_dim: State dimension.
        action_dim: Action dimension.
        measurement_dim: Measurement dimension.
        capacity: Maximum horizon.
    """

    def __init__(
        self,
        state_dim: int,
        action_dim: int,
        measurement_dim: int,
        capacity: int = MAX_TRAJECTORY_HORIZON,
    ) -> None:
        """Store dimensions and allocate an empty linearization.

        Args:
            state_dim: State dimension.
            action_dim: Action dimension.
            measurement_dim: Measurement dimension.
            capacity: Maximum horizon.
        """
        self.state_dim = state_dim
        self.action_dim = action_dim
        self.measurement_dim = measurement_dim
        self.capacity = capacity
        self.reset(1)

    def reset(self, horizon: int) -> None:
        """Resize and zero the Jacobian buffers.

        Args:
            horizon: Number of timesteps.

        Raises:
            gradmpc.utils.exceptions.DimensionError: If ``horizon`` is outside
                ``[1, capacity]``.
        """
        if not 1 <= horizon <= self.capacity:
            msg = f"horizon must be in [1, {self.capacity}], got: {horizon}"
            raise DimensionError(msg)
        n, m, s = self.state_dim, self.action_dim, self.measurement_dim
        self.horizon = horizon
        self.A = np.zeros((horizon, n, n), dtype=float)
        self.B = np.zeros((horizon, n, m), dtype=float)
        self.C = np.zeros((horizon, s, n), dtype=float)
        self.D = np.zeros((horizon, s, m), dtype=float)

    def compute(
        self,
        contexts: Sequence[SimulationContext],
        trajectory: Trajectory,
        horizon: int,
        tolerance: float,
        mode: str,
        pool: WorkerPool,
        *,
        measurement: MeasurementFunction | None = None,
    ) -> None:
        """Linearize the simulation step at every trajectory timestep.

        One unit of work per timestep is scheduled on ``pool``. Each unit
        uses ``contexts[1 + worker_index]`` so that no two concurrent units
        share a context.

        Args:
            contexts: Simulation contexts, at least ``pool.thread_count + 1``.
            trajectory: Nominal trajectory providing the linearization points.
            horizon: Number of timesteps.
            tolerance: Finite-difference perturbation size.
            mode: ``forward`` or ``central`` differences.
            pool: Worker pool.
            measurement: Optional map ``(state, action, sensors) -> y``.
                Defaults to the sensors.

        Raises:
            gradmpc.utils.exceptions.ConfigurationError: If the mode or
                tolerance is invalid, or too few contexts are supplied.
        """
        if mode not in VALID_FD_MODES:
            msg = f"fd_mode must be one of {VALID_FD_MODES}, got: {mode!r}"
            raise ConfigurationError(msg)
        if tolerance <= 0.0:
            msg = f"fd_tolerance must be positive, got: {tolerance}"
            raise ConfigurationError(msg)
        if len(contexts) < pool.thread_count + 1:
            msg = f"Need {pool.thread_count + 1} simulation contexts, got {len(contexts)}."
            raise ConfigurationError(msg)

        self.reset(horizon)
        for index in range(horizon):
            pool.schedule(
                _ModelDerivativeUnit(
                    derivatives=self,
                    index=index,
                    contexts=contexts,
                    trajectory=trajectory,
                    tolerance=tolerance,
                    mode=mode,
                    pool=pool,
                    measurement=measurement or _identity_measurement,
                )
            )
        pool.wait_for_completions(horizon)


@dataclass
class _ModelDerivativeUnit:
    """Finite-difference linearization of one timestep.

    Args:
        derivatives: Output buffers; only row ``index`` is written.
        index: Timestep index.
        contexts: Shared context table indexed by worker.
        trajectory: Nominal trajectory (read only).
        tolerance: Perturbation size.
        mode: ``forward`` or ``central``.
        pool: Pool used to resolve the worker index.
        measurement: Measurement map.
    """

    derivatives: ModelDerivatives
    index: int
    contexts: Sequence[SimulationContext]
    trajectory: Trajectory
    tolerance: float
    mode: str
    pool: WorkerPool
    measurement: MeasurementFunction

    def __call__(self) -> None:
        """Fill ``A, B, C, D`` for this timestep."""
        context = self.contexts[1 + self.pool.worker_index()]
        state = self.trajectory.states[self.index].copy()
        action = self.trajectory.actions[self.index].copy()
        exogenous = self.trajectory.exogenous[self.index].copy()

        def evaluate(x: np.ndarray, u: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
            next_state, sensors = context.step(x, u, exogenous)
            output = self.measurement(x, u, np.asarray(sensors, dtype=float))
            return np.asarray(next_state, dtype=float), np.asarray(output, dtype=float)

        base = evaluate(state, action) if self.mode == "forward" else None
        eps = self.tolerance

        for column in range(state.size):
            next_col, output_col = self._difference(
                evaluate,
                state,
                action,
                column,
                eps,
                base,
                perturb_state=True,
            )
            self.derivatives.A[self.index, :, column] = next_col
            self.derivatives.C[self.index, :, column] = output_col

        for column in range(action.size):
            next_col, output_col = self._difference(
                evaluate,
                state,
                action,
                column,
                eps,
                base,
                perturb_state=False,
            )
            self.derivatives.B[self.index, :, column] = next_col
            self.derivatives.D[self.index, :, column] = output_col

    def _difference(
        self,
        evaluate: Callable[[np.ndarray, np.ndarray], tuple[np.ndarray, np.ndarray]],
        state: np.ndarray,
        action: np.ndarray,
        column: int,
        eps: float,
        base: tuple[np.ndarray, np.ndarray] | None,
        *,
        perturb_state: bool,
    ) -> tuple[np.ndarray, np.ndarray]:
        """Difference the step along one coordinate.

        Args:
            evaluate: Step-and-measure function.
            state: Linearization state.
            action: Linearization action.
            column: Perturbed coordinate.
            eps: Perturbation size.
            base: Unperturbed outputs for forward differences.
            perturb_state: Perturb the state when ``True``, else the action.

        Returns:
            Tuple ``(d next_state, d measurement)`` for the coordinate.
        """
        target = state if perturb_state else action

        def shifted(delta: float) -> tuple[np.ndarray, np.ndarray]:
            moved = target.copy()
            moved[column] += delta
            if perturb_state:
                return evaluate(moved, action)
            return evaluate(state, moved)

        plus_next, plus_output = shifted(eps)
        if base is not None:
            return (plus_next - base[0]) / eps, (plus_output - base[1]) / eps
        minus_next, minus_output = shifted(-eps)
        return (plus_next - minus_next) / (2.0 * eps), (plus_output - minus_output) / (2.0 * eps)

"""Gradient-descent receding-horizon planner over spline policies."""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

import numpy as np

from gradmpc.derivatives.cost_derivatives import CostDerivatives
from gradmpc.derivatives.model_derivatives import ModelDerivatives
from gradmpc.planner._sync import ReadWriteLock
from gradmpc.planner.config import PlannerConfig, build_planner_config
from gradmpc.planner.diagnostics import DiagnosticsLog, PhaseTimer, PlannerDiagnostics
from gradmpc.planner.gradient import GradientSolver, GradientStatus
from gradmpc.planner.spline_mapping import SplineMapping
from gradmpc.policy.spline_policy import SplinePolicy
from gradmpc.simulation.model_api import SimulationContext, SimulationModel
from gradmpc.simulation.trajectory import Trajectory
from gradmpc.simulation.worker_pool import WorkerPool
from gradmpc.task.task import Task
from gradmpc.utils.constants import EXPECTED_DECREASE_EPS, MAX_TRAJECTORY_HORIZON
from gradmpc.utils.exceptions import ConfigurationError, DimensionError

logger = logging.getLogger(__name__)

MAX_SURPRISE = 2.0


def log_scale(maximum: float, minimum: float, count: int) -> np.ndarray:
    """Return ``count`` log-spaced values from ``maximum`` down to ``minimum``.

    Args:
        maximum: First value.
        minimum: Last value.
        count: Number of values.

    Returns:
        Log-spaced values, shape ``(count,)``. A single value equals
        ``maximum``.
    """
    if count <= 1:
        return np.full(max(count, 0), float(maximum))
    return np.exp(np.linspace(np.log(maximum), np.log(minimum), count))


def select_winner(costs: Sequence[float], best_cost: float) -> tuple[int, float]:
    """Pick the line-search winner.

    Candidates are scanned from last to first and replace the running best
    only on strict improvement, so equal costs favor the larger step. The
    last candidate wins when nothing beats ``best_cost``.

    Args:
        costs: Candidate total returns in slot order.
        best_cost: Cost to beat.

    Returns:
        Tuple ``(winner, best_cost)``.
    """
    winner = len(costs) - 1
    best = float(best_cost)
    for index in range(len(costs) - 1, -1, -1):
        if costs[index] < best:
            best = float(costs[index])
            winner = index
    return winner, best


@dataclass
class CandidateRollout:
    """One line-search rollout unit.

    Args:
        policy: Candidate policy owned by this slot.
        trajectory: Trajectory buffer owned by this slot.
        step_size: Multiplier applied to ``policy.parameter_update``.
        task: Cost definition.
        contexts: Shared context table indexed by worker.
        pool: Pool used to resolve the worker index.
        state: Initial state.
        time: Initial time.
        exogenous: Initial exogenous signal.
        horizon: Number of timesteps.
        timestep: Simulation timestep.
    """

    policy: SplinePolicy
    trajectory: Trajectory
    step_size: float
    task: Task
    contexts: Sequence[SimulationContext]
    pool: WorkerPool
    state: np.ndarray
    time: float
    exogenous: np.ndarray
    horizon: int
    timestep: float

    def __call__(self) -> None:
        """Apply the step and roll the candidate out.

        A zero step leaves the parameters untouched, so the zero-step slot
        reproduces candidate 0 even when the update is non-finite.
        """
        if self.step_size != 0.0:
            self.policy.parameters += self.step_size * self.policy.parameter_update
        context = self.contexts[1 + self.pool.worker_index()]
        self.trajectory.rollout(
            self.policy,
            self.task,
            context,
            self.state,
            self.time,
            self.exogenous,
            self.horizon,
            self.timestep,
        )


class GradientPlanner:
    """Receding-horizon planner improving a spline policy by line search.

    Each call to :meth:`optimize_policy` re-anchors a copy of the nominal
    policy at the current time, linearizes the nominal rollout, computes a
    descent direction on the knot actions, evaluates a log-spaced family of
    step sizes in parallel and commits the best candidate. Consumers read
    actions concurrently through :meth:`action_from_policy`.

    Args:
        model: Simulation model.
        task: Cost definition.
        config: Planner configuration. Built from ``overrides`` when omitted.
        overrides: Optional numeric overrides (``gradient_*`` and
            ``residual_*`` names).
        capacity: Maximum planning horizon.
    """

    def __init__(
        self,
        model: SimulationModel,
        task: Task,
        config: PlannerConfig | None = None,
        *,
        overrides: Mapping[str, float] | None = None,
        capacity: int = MAX_TRAJECTORY_HORIZON,
    ) -> None:
        """Initialize and allocate the planner.

        Args:
            model: Simulation model.
            task: Cost definition.
            config: Planner configuration.
            overrides: Optional numeric overrides.
            capacity: Maximum planning horizon.
        """
        self.initialize(model, task, config, overrides=overrides, capacity=capacity)
        self.allocate()

    def initialize(
        self,
        model: SimulationModel,
        task: Task,
        config: PlannerConfig | None = None,
        *,
        overrides: Mapping[str, float] | None = None,
        capacity: int = MAX_TRAJECTORY_HORIZON,
    ) -> None:
        """Bind the model, task and configuration.

        Args:
            model: Simulation model.
            task: Cost definition.
            config: Planner configuration.
            overrides: Optional numeric overrides.
            capacity: Maximum planning horizon.

        Raises:
            gradmpc.utils.exceptions.DimensionError: If ``capacity`` exceeds
                ``MAX_TRAJECTORY_HORIZON``.
        """
        if not 2 <= capacity <= MAX_TRAJECTORY_HORIZON:
            msg = f"capacity must be in [2, {MAX_TRAJECTORY_HORIZON}], got: {capacity}"
            raise DimensionError(msg)
        model.validate()
        task.validate(model.sensor_dim)
        if overrides:
            task.apply_overrides(overrides)

        self.model = model
        self.task = task
        self.config = config or build_planner_config(overrides=overrides)
        self.config.validate()
        self.capacity = capacity

        self.state_dim = model.state_dim
        self.action_dim = model.action_dim
        self.measurement_dim = model.sensor_dim + (
            task.num_residual if task.has_custom_residual else 0
        )
        self._contexts: list[SimulationContext] = [model.create_context()]

    def allocate(self) -> None:
        """Allocate candidate policies, trajectories and derivative buffers."""
        numerics = self.config.numerics
        runtime = self.config.runtime
        limits = self.model.action_limits if runtime.clamp_actions else None

        def new_policy() -> SplinePolicy:
            return SplinePolicy(
                self.action_dim,
                numerics.num_spline_points,
                representation=runtime.representation,
                action_limits=limits,
                compute_backend=runtime.compute_backend,
            )

        def new_trajectory() -> Trajectory:
            return Trajectory(
                self.state_dim,
                self.action_dim,
                self.model.sensor_dim,
                self.task.num_residual,
                self.model.exogenous_dim,
                capacity=self.capacity,
            )

        self.candidate_capacity = numerics.num_candidates
        self._num_candidates = numerics.num_candidates
        self.policy = new_policy()
        self.candidate_policies = [new_policy() for _ in range(self.candidate_capacity)]
        self.trajectories = [new_trajectory() for _ in range(self.candidate_capacity)]
        self.model_derivatives = ModelDerivatives(
            self.state_dim,
            self.action_dim,
            self.measurement_dim,
            capacity=self.capacity,
        )
        self.cost_derivatives = CostDerivatives(
            self.state_dim,
            self.action_dim,
            capacity=self.capacity,
        )
        self.gradient = GradientSolver(self.state_dim, self.action_dim, capacity=self.capacity)
        self.mapping = SplineMapping()
        self.improvement_steps = np.zeros(self.candidate_capacity, dtype=float)

        self._policy_lock = ReadWriteLock()
        self._state_lock = threading.Lock()
        self.reset(1)

    def reset(self, horizon: int) -> None:
        """Zero the state, policies and every buffer for a horizon.

        Args:
            horizon: Number of timesteps.
        """
        with self._state_lock:
            self.state = np.zeros(self.state_dim, dtype=float)
            self.time = 0.0
            self.exogenous = np.zeros(self.model.exogenous_dim, dtype=float)
        self.model_derivatives.reset(horizon)
        self.cost_derivatives.reset(horizon)
        self.gradient.reset(horizon)
        for policy in self.candidate_policies:
            policy.reset()
        with self._policy_lock.write():
            self.policy.reset()
        for trajectory in self.trajectories:
            trajectory.reset(horizon)
        self.improvement_steps[:] = 0.0
        self.winner = 0
        self.step_size = 0.0
        self.expected = 0.0
        self.improvement = 0.0
        self.surprise = 0.0
        self._diagnostics = PlannerDiagnostics()

    @property
    def num_candidates(self) -> int:
        """Return the active line-search candidate count.

        Returns:
            Candidate count including the zero-step candidate.
        """
        return self._num_candidates

    @num_candidates.setter
    def num_candidates(self, value: int) -> None:
        """Change the active candidate count.

        Args:
            value: New count in ``[2, candidate_capacity]``.

        Raises:
            gradmpc.utils.exceptions.ConfigurationError: If ``value`` exceeds
                the allocated capacity or is below 2.
        """
        if not 2 <= value <= self.candidate_capacity:
            msg = f"num_candidates must be in [2, {self.candidate_capacity}], got: {value}"
            raise ConfigurationError(msg)
        self._num_candidates = int(value)

    def set_representation(self, representation: str | int) -> None:
        """Switch the nominal policy's spline representation.

        Args:
            representation: Representation name or numeric code.
        """
        with self._policy_lock.write():
            self.policy.representation = representation

    def set_state(
        self,
        state: np.ndarray,
        time: float,
        exogenous: np.ndarray | None = None,
    ) -> None:
        """Set the state the next planning pass starts from.

        Args:
            state: Current state.
            time: Current time.
            exogenous: Current exogenous signal. Unchanged when omitted.

        Raises:
            gradmpc.utils.exceptions.DimensionError: If a vector has the
                wrong size.
        """
        values = np.asarray(state, dtype=float).reshape(-1)
        if values.size != self.state_dim:
            msg = f"state must have {self.state_dim} entries, got {values.size}."
            raise DimensionError(msg)
        signal = None
        if exogenous is not None:
            signal = np.asarray(exogenous, dtype=float).reshape(-1)
            if signal.size != self.model.exogenous_dim:
                msg = f"exogenous must have {self.model.exogenous_dim} entries, got {signal.size}."
                raise DimensionError(msg)
        with self._state_lock:
            self.state = values.copy()
            self.time = float(time)
            if signal is not None:
                self.exogenous = signal.copy()

    def _snapshot_state(self) -> tuple[np.ndarray, float, np.ndarray]:
        """Copy the planning start point.

        Returns:
            Tuple ``(state, time, exogenous)``.
        """
        with self._state_lock:
            return self.state.copy(), self.time, self.exogenous.copy()

    def _ensure_contexts(self, count: int) -> None:
        """Grow the context table to ``count`` entries.

        Args:
            count: Required number of contexts.
        """
        while len(self._contexts) < count:
            self._contexts.append(self.model.create_context())

    def action_from_policy(self, state: np.ndarray, time: float) -> np.ndarray:
        """Return the committed policy's action.

        Args:
            state: Current state.
            time: Current time.

        Returns:
            Action vector.
        """
        with self._policy_lock.read():
            return self.policy.action(state, time)

    def resample_policy(self, horizon: int) -> None:
        """Re-anchor candidate 0 at the current time over ``horizon``.

        Args:
            horizon: Planning horizon in timesteps.
        """
        _, time, _ = self._snapshot_state()
        self._resample_policy(horizon, time)

    def _resample_policy(self, horizon: int, time: float) -> None:
        """Re-anchor candidate 0 at ``time``.

        Args:
            horizon: Planning horizon in timesteps.
            time: First knot time.
        """
        candidate = self.candidate_policies[0]
        candidate.resample(
            time,
            horizon,
            self.model.timestep,
            self.config.numerics.timestep_power,
        )
        candidate.validate_knots()

    def nominal_trajectory(self, horizon: int) -> None:
        """Roll out candidate 0 into trajectory 0 on the calling thread.

        Args:
            horizon: Number of timesteps.
        """
        self._nominal_trajectory(horizon, self._snapshot_state())

    def _nominal_trajectory(
        self,
        horizon: int,
        start: tuple[np.ndarray, float, np.ndarray],
    ) -> None:
        """Roll out candidate 0 from a fixed start point.

        Args:
            horizon: Number of timesteps.
            start: Tuple ``(state, time, exogenous)``.
        """
        state, time, exogenous = start
        self.trajectories[0].rollout(
            self.candidate_policies[0],
            self.task,
            self._contexts[0],
            state,
            time,
            exogenous,
            horizon,
            self.model.timestep,
        )

    def rollouts(self, horizon: int, pool: WorkerPool) -> None:
        """Roll out every active candidate in parallel.

        Candidate ``i`` first applies ``improvement_steps[i]`` times its
        parameter update.

        Args:
            horizon: Number of timesteps.
            pool: Worker pool.
        """
        self._rollouts(horizon, pool, self._snapshot_state(), self.num_candidates)

    def _rollouts(
        self,
        horizon: int,
        pool: WorkerPool,
        start: tuple[np.ndarray, float, np.ndarray],
        count: int,
    ) -> None:
        """Roll out every active candidate from a fixed start point.

        Args:
            horizon: Number of timesteps.
            pool: Worker pool.
            start: Tuple ``(state, time, exogenous)``.
            count: Number of candidates to roll out.
        """
        self._ensure_contexts(pool.thread_count + 1)
        state, time, exogenous = start
        for index in range(count):
            pool.schedule(
                CandidateRollout(
                    policy=self.candidate_policies[index],
                    trajectory=self.trajectories[index],
                    step_size=float(self.improvement_steps[index]),
                    task=self.task,
                    contexts=self._contexts,
                    pool=pool,
                    state=state,
                    time=time,
                    exogenous=exogenous,
                    horizon=horizon,
                    timestep=self.model.timestep,
                )
            )
        pool.wait_for_completions(count)

    def optimize_policy(self, horizon: int, pool: WorkerPool) -> None:
        """Run one planning pass and commit the result to the nominal policy.

        Args:
            horizon: Planning horizon in timesteps.
            pool: Worker pool for derivative units and rollouts.
        """
        numerics = self.config.numerics
        timer = PhaseTimer()
        num_candidates = self.num_candidates
        self._ensure_contexts(pool.thread_count + 1)
        start = self._snapshot_state()

        with timer.measure("nominal"):
            with self._policy_lock.read():
                self.candidate_policies[0].copy_from(self.policy)
            self._resample_policy(horizon, start[1])
            self._nominal_trajectory(horizon, start)
            self.winner = 0
            c_prev = self.trajectories[0].total_return
            failed_rollouts = int(self.trajectories[0].failure)
        c_best = c_prev

        iterations = 0
        gradient_failed = False
        for _ in range(numerics.max_iterations):
            nominal = self.trajectories[0]
            candidate = self.candidate_policies[0]

            with timer.measure("model_derivatives"):
                self.model_derivatives.compute(
                    self._contexts,
                    nominal,
                    horizon,
                    numerics.fd_tolerance,
                    numerics.fd_mode,
                    pool,
                    measurement=self.task.measurement,
                )

            with timer.measure("cost_derivatives"):
                self.cost_derivatives.compute(
                    nominal,
                    self.model_derivatives,
                    self.task,
                    horizon,
                    pool,
                )

            with timer.measure("gradient"):
                status = self.gradient.compute(
                    self.model_derivatives,
                    self.cost_derivatives,
                    horizon,
                )
                if status == GradientStatus.OK:
                    self.mapping.compute(candidate, nominal.times[: horizon - 1])
                    candidate.parameter_update = self.mapping.project(self.gradient.k)

            if status != GradientStatus.OK:
                gradient_failed = True
                logger.debug(
                    "Gradient status %s at horizon %d; keeping policy.",
                    status.name,
                    horizon,
                )
                break

            with timer.measure("rollouts"):
                for index in range(1, num_candidates):
                    self.candidate_policies[index].copy_from(candidate)
                self.improvement_steps[: num_candidates - 1] = log_scale(
                    1.0,
                    numerics.min_step_size,
                    num_candidates - 1,
                )
                self.improvement_steps[num_candidates - 1] = 0.0
                self._rollouts(horizon, pool, start, num_candidates)

                costs = [self.trajectories[i].total_return for i in range(num_candidates)]
                failed_rollouts = sum(
                    int(self.trajectories[i].failure) for i in range(num_candidates)
                )
                winner, c_best = select_winner(costs, c_best)
                if winner != 0:
                    winner_policy = self.candidate_policies[winner]
                    candidate.copy_parameters_from(winner_policy.parameters, winner_policy.times)
                    self.trajectories[0].copy_from(self.trajectories[winner])
                self.winner = winner

                self.step_size = float(self.improvement_steps[winner])
                self.expected = (
                    -self.step_size * float(self.gradient.dV[0]) - EXPECTED_DECREASE_EPS
                )
                self.improvement = c_prev - c_best
                ratio = self.improvement / self.expected
                self.surprise = float(np.clip(ratio, 0.0, MAX_SURPRISE))
            iterations += 1

        with timer.measure("policy_update"):
            committed = self.candidate_policies[0]
            with self._policy_lock.write():
                self.policy.copy_parameters_from(committed.parameters, committed.times)

        self._diagnostics = PlannerDiagnostics(
            phase_seconds=dict(timer.seconds),
            step_size=self.step_size,
            improvement=self.improvement,
            expected=self.expected,
            surprise=self.surprise,
            winner=self.winner,
            total_return=self.trajectories[0].total_return,
            iterations=iterations,
            gradient_failed=gradient_failed,
            failed_rollouts=failed_rollouts,
        )
        logger.debug(
            "Planning pass: cost %.6g -> %.6g, step %.3g, winner %d, surprise %.3f, diverged %d",
            c_prev,
            c_best,
            self.step_size,
            self.winner,
            self.surprise,
            failed_rollouts,
        )

    def best_trajectory(self) -> Trajectory:
        """Return the trajectory of the committed candidate.

        Returns:
            Best trajectory of the last pass.
        """
        return self.trajectories[0]

    def traces(self) -> list[np.ndarray]:
        """Return trace points of every active candidate trajectory.

        Returns:
            One ``(horizon, trace_dim)`` array per candidate.
        """
        return [self.trajectories[index].trace.copy() for index in range(self.num_candidates)]

    @property
    def diagnostics(self) -> PlannerDiagnostics:
        """Return the snapshot of the last planning pass.

        Returns:
            Frozen diagnostics.
        """
        return self._diagnostics

    def record_diagnostics(self, log: DiagnosticsLog) -> None:
        """Append the last snapshot to a log.

        Args:
            log: Destination log.
        """
        log.append(self._diagnostics)

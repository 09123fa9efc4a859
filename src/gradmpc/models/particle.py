"""Planar damped point-mass model with an exogenous goal position."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from gradmpc.simulation.integrator import euler_step, rk4_step
from gradmpc.simulation.model_api import SimulationContext, SimulationModel
from gradmpc.task.task import CostTerm, Task
from gradmpc.utils.exceptions import ConfigurationError

DEFAULT_PARTICLE_TIMESTEP = 0.01
VALID_INTEGRATORS = ("rk4", "euler")
PARTICLE_RESIDUAL_PARAMETERS = {"goal_offset_x": 0.05, "goal_offset_y": -0.1}


@dataclass(frozen=True)
class ParticleParameters:
    """Physical and numerical parameters of the particle.

    Args:
        mass: Particle mass [kg].
        damping: Linear velocity damping [N*s/m].
        control_limit: Symmetric force bound per axis [N].
        timestep: Integration timestep [s].
        integrator: Integration scheme (``rk4`` or ``euler``).
    """

    mass: float = 1.0
    damping: float = 0.1
    control_limit: float = 1.0
    timestep: float = DEFAULT_PARTICLE_TIMESTEP
    integrator: str = "rk4"

    def validate(self) -> None:
        """Validate parameter ranges.

        Raises:
            gradmpc.utils.exceptions.ConfigurationError: If any value is out
                of range.
        """
        if self.mass <= 0.0:
            msg = f"mass must be positive, got: {self.mass}"
            raise ConfigurationError(msg)
        if self.damping < 0.0:
            msg = f"damping must be >= 0, got: {self.damping}"
            raise ConfigurationError(msg)
        if self.control_limit <= 0.0:
            msg = f"control_limit must be positive, got: {self.control_limit}"
            raise ConfigurationError(msg)
        if self.timestep <= 0.0:
            msg = f"timestep must be positive, got: {self.timestep}"
            raise ConfigurationError(msg)
        if self.integrator not in VALID_INTEGRATORS:
            msg = f"integrator must be one of {VALID_INTEGRATORS}, got: {self.integrator!r}"
            raise ConfigurationError(msg)


class ParticleContext:
    """Simulation context for :class:`ParticleModel`.

    Args:
        parameters: Particle parameters.
    """

    def __init__(self, parameters: ParticleParameters) -> None:
        """Store parameters and select the integration scheme.

        Args:
            parameters: Particle parameters.
        """
        self.parameters = parameters
        self._integrate = rk4_step if parameters.integrator == "rk4" else euler_step

    def _derivative(self, state: np.ndarray, action: np.ndarray) -> np.ndarray:
        """Evaluate ``dx/dt`` for the damped point mass.

        Args:
            state: State ``[px, py, vx, vy]``.
            action: Force ``[fx, fy]``.

        Returns:
            State derivative.
        """
        velocity = state[2:]
        accel = (action - self.parameters.damping * velocity) / self.parameters.mass
        return np.concatenate((velocity, accel))

    def step(
        self,
        state: np.ndarray,
        action: np.ndarray,
        exogenous: np.ndarray,
    ) -> tuple[np.ndarray, np.ndarray]:
        """Advance the particle by one timestep.

        Args:
            state: State ``[px, py, vx, vy]``.
            action: Force ``[fx, fy]``.
            exogenous: Goal position ``[gx, gy]``.

        Returns:
            Tuple ``(next_state, sensors)`` with sensors
            ``[px - gx, py - gy, vx, vy, px, py]`` at the current state.
        """
        state = np.asarray(state, dtype=float)
        action = np.asarray(action, dtype=float)
        sensors = np.concatenate((state[:2] - exogenous[:2], state[2:], state[:2]))
        next_state = self._integrate(self._derivative, state, action, self.parameters.timestep)
        return next_state, sensors


class ParticleModel(SimulationModel):
    """Reference model: a planar damped point mass chasing a goal.

    Args:
        parameters: Particle parameters. Defaults are used when omitted.
    """

    state_dim = 4
    action_dim = 2
    sensor_dim = 6
    exogenous_dim = 2

    def __init__(self, parameters: ParticleParameters | None = None) -> None:
        """Initialize the model.

        Args:
            parameters: Particle parameters. Defaults are used when omitted.
        """
        self.parameters = parameters or ParticleParameters()
        self.timestep = self.parameters.timestep

    @property
    def action_limits(self) -> tuple[np.ndarray, np.ndarray]:
        """Return symmetric force bounds.

        Returns:
            ``(lower, upper)`` force bounds per axis.
        """
        bound = self.parameters.control_limit
        return np.full(2, -bound), np.full(2, bound)

    def create_context(self) -> SimulationContext:
        """Create an independent particle context.

        Returns:
            New :class:`ParticleContext`.
        """
        return ParticleContext(self.parameters)

    def validate(self) -> None:
        """Validate model parameters and dimensions.

        Raises:
            gradmpc.utils.exceptions.ConfigurationError: If a parameter is out
                of range.
        """
        self.parameters.validate()
        super().validate()


def _particle_residual(
    state: np.ndarray,
    action: np.ndarray,
    sensors: np.ndarray,
    parameters: np.ndarray,
) -> np.ndarray:
    """Return goal-offset position error and velocity.

    Args:
        state: State vector.
        action: Action vector.
        sensors: Particle sensors ``[px - gx, py - gy, vx, vy, px, py]``.
        parameters: Residual parameters ``[goal_offset_x, goal_offset_y]``.

    Returns:
        Residual ``[ex, ey, vx, vy]``.
    """
    del state, action
    residual = np.array(sensors[:4], dtype=float)
    residual[:2] -= parameters[:2]
    return residual


def _particle_trace(state: np.ndarray, sensors: np.ndarray) -> np.ndarray:
    """Return the particle position lifted to 3D.

    Args:
        state: State vector.
        sensors: Sensor vector.

    Returns:
        Trace point ``[px, py, 0]``.
    """
    del sensors
    return np.array([state[0], state[1], 0.0])


def build_particle_task(
    *,
    position_weight: float = 5.0,
    velocity_weight: float = 0.1,
    risk: float = 1.0,
) -> Task:
    """Build the goal-reaching task for :class:`ParticleModel`.

    Args:
        position_weight: Weight of the position-error term.
        velocity_weight: Weight of the velocity term.
        risk: Risk parameter of the cost shaping.

    Returns:
        Task with two quadratic terms of dimension 2.
    """
    return Task(
        [
            CostTerm("position", dim=2, norm="quadratic", weight=position_weight),
            CostTerm("velocity", dim=2, norm="quadratic", weight=velocity_weight),
        ],
        risk=risk,
        residual=_particle_residual,
        residual_parameters=PARTICLE_RESIDUAL_PARAMETERS,
        trace=_particle_trace,
    )

"""Interfaces between the planner and simulation models."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Protocol

import numpy as np

from gradmpc.utils.exceptions import ConfigurationError


class SimulationContext(Protocol):
    """Protocol for a private simulation workspace.

    A context may hold mutable scratch state, so each concurrently running
    rollout or derivative unit must use its own context.
    """

    def step(
        self,
        state: np.ndarray,
        action: np.ndarray,
        exogenous: np.ndarray,
    ) -> tuple[np.ndarray, np.ndarray]:
        """Advance the simulation by one timestep.

        Args:
            state: Current state vector.
            action: Applied action vector.
            exogenous: Exogenous signal vector (e.g. goal positions).

        Returns:
            Tuple ``(next_state, sensors)`` where ``sensors`` are evaluated
            at the current state and action.
        """
        ...


class SimulationModel(ABC):
    """Nominal OOP base class for planner-compatible simulation models.

    Concrete models declare their dimensions and timestep and create
    independent contexts on demand.
    """

    state_dim: int
    action_dim: int
    sensor_dim: int
    exogenous_dim: int
    timestep: float

    @property
    def action_limits(self) -> tuple[np.ndarray, np.ndarray] | None:
        """Return action bounds used to clamp policy actions.

        Returns:
            ``(lower, upper)`` arrays, or ``None`` for an unbounded action.
        """
        return None

    @abstractmethod
    def create_context(self) -> SimulationContext:
        """Create a new independent simulation context.

        Returns:
            Fresh context object.
        """

    def validate(self) -> None:
        """Validate declared dimensions and timestep.

        Raises:
            gradmpc.utils.exceptions.ConfigurationError: If a dimension is not
                positive or the timestep is not positive.
        """
        for name in ("state_dim", "action_dim", "sensor_dim"):
            value = getattr(self, name)
            if value < 1:
                msg = f"{name} must be positive, got: {value}"
                raise ConfigurationError(msg)
        if self.exogenous_dim < 0:
            msg = f"exogenous_dim must be >= 0, got: {self.exogenous_dim}"
            raise ConfigurationError(msg)
        if self.timestep <= 0.0:
            msg = f"timestep must be positive, got: {self.timestep}"
            raise ConfigurationError(msg)
        limits = self.action_limits
        if limits is not None and np.any(np.asarray(limits[0]) > np.asarray(limits[1])):
            msg = "action_limits lower bound must not exceed upper bound."
            raise ConfigurationError(msg)

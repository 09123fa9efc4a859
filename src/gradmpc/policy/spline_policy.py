"""Spline control policy over a horizon of time knots."""

from __future__ import annotations

import numpy as np

from gradmpc.policy.representation import (
    DEFAULT_COMPUTE_BACKEND,
    DEFAULT_REPRESENTATION,
    SplineInterpolant,
    build_interpolant,
)
from gradmpc.utils.constants import (
    MAX_SPLINE_POINTS,
    MIN_RESAMPLE_TIME_SHIFT,
    MIN_SPLINE_POINTS,
)
from gradmpc.utils.exceptions import ConfigurationError, DimensionError

DEFAULT_NUM_SPLINE_POINTS = 10


class SplinePolicy:
    """Piecewise action schedule defined by knot times and knot actions.

    The policy ignores the state argument of :meth:`action`; it is an
    open-loop schedule that is re-optimized and re-anchored every planning
    pass.

    Args:
        action_dim: Action dimension ``m``.
        num_spline_points: Number of knots ``P``.
        representation: Interpolation scheme name or numeric code.
        action_limits: Optional ``(lower, upper)`` arrays used to clamp
            queried actions.
        compute_backend: Basis-weight backend (``numpy`` or ``numba``).
    """

    def __init__(
        self,
        action_dim: int,
        num_spline_points: int = DEFAULT_NUM_SPLINE_POINTS,
        *,
        representation: str | int = DEFAULT_REPRESENTATION,
        action_limits: tuple[np.ndarray, np.ndarray] | None = None,
        compute_backend: str = DEFAULT_COMPUTE_BACKEND,
    ) -> None:
        """Allocate knot buffers.

        Args:
            action_dim: Action dimension ``m``.
            num_spline_points: Number of knots ``P``.
            representation: Interpolation scheme name or numeric code.
            action_limits: Optional ``(lower, upper)`` clamp bounds.
            compute_backend: Basis-weight backend (``numpy`` or ``numba``).

        Raises:
            gradmpc.utils.exceptions.ConfigurationError: If dimensions or
                the knot count are out of range.
        """
        if action_dim < 1:
            msg = f"action_dim must be positive, got: {action_dim}"
            raise ConfigurationError(msg)
        _validate_spline_point_count(num_spline_points)

        self.action_dim = int(action_dim)
        self.num_spline_points = int(num_spline_points)
        self.compute_backend = compute_backend
        self._interpolant: SplineInterpolant = build_interpolant(
            representation,
            compute_backend=compute_backend,
        )
        self.action_limits = _normalize_limits(action_limits, self.action_dim)
        self.times = np.arange(self.num_spline_points, dtype=float)
        self.parameters = np.zeros((self.num_spline_points, self.action_dim), dtype=float)
        self.parameter_update = np.zeros_like(self.parameters)

    @property
    def representation(self) -> str:
        """Return the active representation name.

        Returns:
            One of ``zero``, ``linear`` or ``cubic``.
        """
        return self._interpolant.name

    @representation.setter
    def representation(self, value: str | int) -> None:
        """Switch the interpolation scheme.

        Args:
            value: Representation name or numeric code.
        """
        self._interpolant = build_interpolant(value, compute_backend=self.compute_backend)

    @property
    def interpolant(self) -> SplineInterpolant:
        """Return the active interpolant.

        Returns:
            Interpolant used for action queries and gradient mapping.
        """
        return self._interpolant

    @property
    def num_parameters(self) -> int:
        """Return the number of scalar knot parameters.

        Returns:
            ``P * m``.
        """
        return self.num_spline_points * self.action_dim

    def reset(self) -> None:
        """Zero the knot actions and restore a unit-spaced knot grid."""
        self.times = np.arange(self.num_spline_points, dtype=float)
        self.parameters = np.zeros((self.num_spline_points, self.action_dim), dtype=float)
        self.parameter_update = np.zeros_like(self.parameters)

    def action(self, state: np.ndarray | None, time: float) -> np.ndarray:
        """Return the policy action at a given time.

        Args:
            state: Current state. Unused by the open-loop spline schedule.
            time: Query time.

        Returns:
            Action vector, shape ``(m,)``.
        """
        del state
        action = self._interpolant.evaluate(float(time), self.times, self.parameters)
        return self._clamp(action)

    def actions(self, query_times: np.ndarray) -> np.ndarray:
        """Return policy actions at several times.

        Args:
            query_times: Query times, shape ``(q,)``.

        Returns:
            Action matrix, shape ``(q, m)``.
        """
        actions = self._interpolant.evaluate_many(query_times, self.times, self.parameters)
        return self._clamp(actions)

    def resample(
        self,
        time: float,
        horizon: int,
        timestep: float,
        timestep_power: float = 1.0,
    ) -> None:
        """Re-anchor the knot grid at ``time`` over the planning horizon.

        The new knot actions are the current interpolant evaluated at the new
        knot times, so the schedule is preserved wherever both grids overlap.

        Args:
            time: New first knot time.
            horizon: Planning horizon in timesteps.
            timestep: Simulation timestep.
            timestep_power: Knot-time warp exponent (``1`` keeps even spacing).

        Raises:
            gradmpc.utils.exceptions.ConfigurationError: If the warp exponent
                is not positive.
        """
        if timestep_power <= 0.0:
            msg = f"timestep_power must be positive, got: {timestep_power}"
            raise ConfigurationError(msg)
        last = self.num_spline_points - 1
        spacing = max((horizon - 1) * timestep / last, MIN_RESAMPLE_TIME_SHIFT)
        normalized = np.arange(self.num_spline_points, dtype=float) / last
        if timestep_power != 1.0:
            normalized = normalized**timestep_power
        new_times = float(time) + last * spacing * normalized

        new_values = self._interpolant.resample_values(new_times, self.times, self.parameters)
        self.times = new_times
        self.parameters = new_values

    def copy_from(self, other: SplinePolicy) -> None:
        """Copy knots and representation from another policy.

        The knot count follows ``other``.

        Args:
            other: Source policy.

        Raises:
            gradmpc.utils.exceptions.DimensionError: If action dimensions differ.
        """
        if other.action_dim != self.action_dim:
            msg = (
                "Cannot copy policy with action_dim "
                f"{other.action_dim} into policy with action_dim {self.action_dim}."
            )
            raise DimensionError(msg)
        self.num_spline_points = other.num_spline_points
        self.times = other.times.copy()
        self.parameters = other.parameters.copy()
        self.parameter_update = other.parameter_update.copy()
        if other.representation != self.representation:
            self.representation = other.representation
        self.action_limits = other.action_limits

    def copy_parameters_from(self, parameters: np.ndarray, times: np.ndarray) -> None:
        """Overwrite knot actions and times.

        Args:
            parameters: Knot actions, shape ``(P, m)``.
            times: Knot times, shape ``(P,)``.

        Raises:
            gradmpc.utils.exceptions.DimensionError: If shapes do not match
                the policy layout.
        """
        values = np.asarray(parameters, dtype=float)
        knot_times = np.asarray(times, dtype=float)
        expected = (self.num_spline_points, self.action_dim)
        if values.shape != expected or knot_times.shape != (self.num_spline_points,):
            msg = (
                f"Expected parameters {expected} and times ({self.num_spline_points},), "
                f"got {values.shape} and {knot_times.shape}."
            )
            raise DimensionError(msg)
        self.parameters = values.copy()
        self.times = knot_times.copy()

    def validate_knots(self) -> None:
        """Validate knot layout.

        Raises:
            gradmpc.utils.exceptions.DimensionError: If the knot count is too
                small, shapes disagree, or knot times are not strictly
                increasing.
        """
        if self.times.size < MIN_SPLINE_POINTS:
            msg = f"Spline policy needs at least {MIN_SPLINE_POINTS} knots, got {self.times.size}."
            raise DimensionError(msg)
        if self.parameters.shape != (self.times.size, self.action_dim):
            msg = (
                f"Knot actions shape {self.parameters.shape} does not match "
                f"({self.times.size}, {self.action_dim})."
            )
            raise DimensionError(msg)
        if not np.all(np.diff(self.times) > 0.0):
            msg = "Knot times must be strictly increasing."
            raise DimensionError(msg)

    def _clamp(self, actions: np.ndarray) -> np.ndarray:
        """Clamp actions to the configured limits.

        Args:
            actions: Action vector or matrix.

        Returns:
            Clamped actions, or the input when no limits are configured.
        """
        if self.action_limits is None:
            return actions
        lower, upper = self.action_limits
        return np.clip(actions, lower, upper)


def _validate_spline_point_count(num_spline_points: int) -> None:
    """Validate the knot count bounds.

    Args:
        num_spline_points: Requested knot count.

    Raises:
        gradmpc.utils.exceptions.ConfigurationError: If the count is outside
            ``[MIN_SPLINE_POINTS, MAX_SPLINE_POINTS]``.
    """
    if not MIN_SPLINE_POINTS <= num_spline_points <= MAX_SPLINE_POINTS:
        msg = (
            f"num_spline_points must be in [{MIN_SPLINE_POINTS}, {MAX_SPLINE_POINTS}], "
            f"got: {num_spline_points}"
        )
        raise ConfigurationError(msg)


def _normalize_limits(
    action_limits: tuple[np.ndarray, np.ndarray] | None,
    action_dim: int,
) -> tuple[np.ndarray, np.ndarray] | None:
    """Convert action limits into validated float arrays.

    Args:
        action_limits: Optional ``(lower, upper)`` bounds.
        action_dim: Action dimension ``m``.

    Returns:
        Normalized bounds or ``None``.

    Raises:
        gradmpc.utils.exceptions.ConfigurationError: If shapes mismatch or
            any lower bound exceeds its upper bound.
    """
    if action_limits is None:
        return None
    lower = np.asarray(action_limits[0], dtype=float).reshape(-1)
    upper = np.asarray(action_limits[1], dtype=float).reshape(-1)
    if lower.shape != (action_dim,) or upper.shape != (action_dim,):
        msg = f"action_limits must both have shape ({action_dim},)."
        raise ConfigurationError(msg)
    if np.any(lower > upper):
        msg = "action_limits lower bound must not exceed upper bound."
        raise ConfigurationError(msg)
    return lower, upper

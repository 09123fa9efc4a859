"""Chain rule from per-timestep action directions to knot parameters."""

from __future__ import annotations

import numpy as np

from gradmpc.policy.spline_policy import SplinePolicy
from gradmpc.utils.exceptions import DimensionError


class SplineMapping:
    """Linear map between knot actions and actions at trajectory times."""

    def __init__(self) -> None:
        """Initialize an empty mapping."""
        self.weights = np.zeros((0, 0), dtype=float)
        self.action_dim = 0

    def compute(self, policy: SplinePolicy, query_times: np.ndarray) -> None:
        """Build the basis weights of ``policy`` at ``query_times``.

        Args:
            policy: Policy whose knots define the mapping.
            query_times: Trajectory times ``0 .. T-2``.
        """
        self.weights = policy.interpolant.basis_weights(query_times, policy.times)
        self.action_dim = policy.action_dim

    @property
    def sensitivity(self) -> np.ndarray:
        """Return the stacked-action Jacobian ``kron(W, I_m)``.

        Returns:
            Sensitivity matrix, shape ``(q * m, P * m)``.
        """
        return np.kron(self.weights, np.eye(self.action_dim))

    def project(self, direction: np.ndarray) -> np.ndarray:
        """Map a per-timestep direction onto the knot actions.

        Args:
            direction: Descent direction, shape ``(q, m)``.

        Returns:
            Knot-action update ``W^T K``, shape ``(P, m)``.

        Raises:
            gradmpc.utils.exceptions.DimensionError: If the direction rows do
                not match the mapped query times.
        """
        values = np.asarray(direction, dtype=float)
        if values.shape != (self.weights.shape[0], self.action_dim):
            msg = (
                f"Direction shape {values.shape} does not match "
                f"({self.weights.shape[0]}, {self.action_dim})."
            )
            raise DimensionError(msg)
        return self.weights.T @ values

"""Tests for the gradient recursion and the spline chain rule."""

from __future__ import annotations

import unittest

import numpy as np

from gradmpc.derivatives import CostDerivatives, ModelDerivatives
from gradmpc.planner import GradientSolver, GradientStatus, SplineMapping
from gradmpc.policy import SplinePolicy
from gradmpc.utils.exceptions import DimensionError


def _scalar_problem(horizon: int, cx: float, cu: float) -> tuple[ModelDerivatives, CostDerivatives]:
    """Build a scalar linearization with unit dynamics.

    Args:
        horizon: Number of timesteps.
        cx: State cost gradient at every step.
        cu: Action cost gradient at every step.

    Returns:
        Tuple ``(model_derivatives, cost_derivatives)``.
    """
    model = ModelDerivatives(1, 1, 1, capacity=8)
    model.reset(horizon)
    model.A[:] = 1.0
    model.B[:] = 1.0
    cost = CostDerivatives(1, 1, capacity=8)
    cost.reset(horizon)
    cost.cx[:] = cx
    cost.cu[:] = cu
    cost.cuu[:] = 1.0
    return model, cost


class GradientSolverTests(unittest.TestCase):
    """Validate the backward value-gradient recursion."""

    def test_recursion_on_scalar_problem(self) -> None:
        """Accumulate value gradients and expected decrease backwards."""
        model, cost = _scalar_problem(3, cx=1.0, cu=0.0)
        solver = GradientSolver(1, 1, capacity=8)

        status = solver.compute(model, cost, 3)

        self.assertEqual(status, GradientStatus.OK)
        np.testing.assert_allclose(solver.Vx[:, 0], [3.0, 2.0, 1.0])
        np.testing.assert_allclose(solver.k[:, 0], [-2.0, -1.0])
        np.testing.assert_allclose(solver.dV, [-5.0, 2.5])

    def test_action_gradient_enters_direction(self) -> None:
        """Add the immediate action gradient to the propagated term."""
        model, cost = _scalar_problem(2, cx=0.0, cu=0.5)
        solver = GradientSolver(1, 1, capacity=8)

        self.assertEqual(solver.compute(model, cost, 2), GradientStatus.OK)
        np.testing.assert_allclose(solver.k[:, 0], [-0.5])
        self.assertLess(solver.dV[0], 0.0)

    def test_degenerate_cases(self) -> None:
        """Report short horizons and zero directions as degenerate."""
        solver = GradientSolver(1, 1, capacity=8)
        model, cost = _scalar_problem(1, cx=1.0, cu=1.0)
        self.assertEqual(solver.compute(model, cost, 1), GradientStatus.DEGENERATE)

        model, cost = _scalar_problem(4, cx=0.0, cu=0.0)
        self.assertEqual(solver.compute(model, cost, 4), GradientStatus.DEGENERATE)
        np.testing.assert_array_equal(solver.dV, [0.0, 0.0])

    def test_reset_rejects_horizon_beyond_capacity(self) -> None:
        """Raise when the horizon exceeds the allocated capacity."""
        with self.assertRaises(DimensionError):
            GradientSolver(2, 1, capacity=4).reset(5)


class SplineMappingTests(unittest.TestCase):
    """Validate the map from per-step directions to knot updates."""

    def test_projection_equals_transposed_sensitivity(self) -> None:
        """Match ``kron(W, I)^T vec(K)`` for every representation."""
        rng = np.random.default_rng(7)
        direction = rng.normal(size=(7, 2))
        query_times = np.linspace(-0.1, 3.2, 7)
        for representation in ("zero", "linear", "cubic"):
            with self.subTest(representation=representation):
                policy = SplinePolicy(2, 4, representation=representation)
                policy.times = np.array([0.0, 1.0, 2.0, 3.0])
                mapping = SplineMapping()
                mapping.compute(policy, query_times)

                update = mapping.project(direction)
                stacked = mapping.sensitivity.T @ direction.reshape(-1)

                self.assertEqual(mapping.sensitivity.shape, (14, 8))
                np.testing.assert_allclose(update, stacked.reshape(4, 2), atol=1e-12)

    def test_projection_rejects_wrong_shape(self) -> None:
        """Raise when the direction does not match the query times."""
        policy = SplinePolicy(1, 3)
        mapping = SplineMapping()
        mapping.compute(policy, np.array([0.0, 0.5]))
        with self.assertRaises(DimensionError):
            mapping.project(np.zeros((3, 1)))


if __name__ == "__main__":
    unittest.main()

"""Tests for spline interpolants and the spline policy."""

from __future__ import annotations

import unittest

import numpy as np

from gradmpc.policy import (
    CubicInterpolant,
    LinearInterpolant,
    SplinePolicy,
    ZeroOrderHoldInterpolant,
    build_interpolant,
    resolve_representation,
)
from gradmpc.policy.representation import find_intervals, finite_difference_slope_operator
from gradmpc.utils.exceptions import ConfigurationError, DimensionError

REPRESENTATIONS = ("zero", "linear", "cubic")


def _policy_with_knots(representation: str) -> SplinePolicy:
    """Create a two-dimensional policy with distinct knot actions.

    Args:
        representation: Representation name.

    Returns:
        Policy with knots at ``0, 0.5, 1.5, 2, 3``.
    """
    policy = SplinePolicy(2, 5, representation=representation)
    policy.times = np.array([0.0, 0.5, 1.5, 2.0, 3.0])
    policy.parameters = np.array(
        [[0.0, 1.0], [0.4, -0.2], [1.2, 0.3], [-0.5, 0.9], [0.1, 0.0]],
    )
    return policy


class IntervalSearchTests(unittest.TestCase):
    """Validate bracketing-knot lookup."""

    def test_interior_boundary_and_exact_hits(self) -> None:
        """Clamp outside queries and collapse exact knot hits."""
        knots = np.array([0.0, 1.0, 2.0, 4.0])
        lower, upper = find_intervals(np.array([-1.0, 0.0, 0.5, 2.0, 3.0, 4.0, 9.0]), knots)

        np.testing.assert_array_equal(lower, [0, 0, 0, 2, 2, 3, 3])
        np.testing.assert_array_equal(upper, [0, 0, 1, 2, 3, 3, 3])

    def test_slope_operator_matches_secants(self) -> None:
        """Use one-sided secants at the ends and averaged secants inside."""
        knots = np.array([0.0, 1.0, 3.0])
        values = np.array([0.0, 2.0, 3.0])
        slopes = finite_difference_slope_operator(knots) @ values

        np.testing.assert_allclose(slopes, [2.0, 0.5 * (2.0 + 0.5), 0.5])


class InterpolantTests(unittest.TestCase):
    """Validate interpolation schemes."""

    def test_every_representation_reproduces_knot_values(self) -> None:
        """Return each knot action exactly when queried at its knot time."""
        for representation in REPRESENTATIONS:
            with self.subTest(representation=representation):
                policy = _policy_with_knots(representation)
                np.testing.assert_array_equal(policy.actions(policy.times), policy.parameters)
                for index, time in enumerate(policy.times):
                    np.testing.assert_array_equal(
                        policy.action(None, time),
                        policy.parameters[index],
                    )

    def test_queries_outside_knots_clamp_to_boundary_values(self) -> None:
        """Hold the first and last knot values outside the knot span."""
        for representation in REPRESENTATIONS:
            with self.subTest(representation=representation):
                policy = _policy_with_knots(representation)
                np.testing.assert_allclose(policy.action(None, -2.0), policy.parameters[0])
                np.testing.assert_allclose(policy.action(None, 10.0), policy.parameters[-1])

    def test_zero_order_hold_uses_latest_knot(self) -> None:
        """Hold the value of the last knot at or before the query."""
        policy = _policy_with_knots("zero")
        np.testing.assert_array_equal(policy.action(None, 1.4), policy.parameters[1])
        np.testing.assert_array_equal(policy.action(None, 2.9), policy.parameters[3])

    def test_linear_interpolates_between_knots(self) -> None:
        """Blend bracketing knots in proportion to elapsed time."""
        policy = _policy_with_knots("linear")
        expected = 0.75 * policy.parameters[1] + 0.25 * policy.parameters[2]
        np.testing.assert_allclose(policy.action(None, 0.75), expected)

    def test_cubic_reproduces_quadratic_on_uniform_grid_interior(self) -> None:
        """Match a quadratic on interior intervals of a uniform grid."""
        knots = np.arange(6, dtype=float)
        values = (knots**2)[:, None]
        interpolant = CubicInterpolant()
        query = np.array([2.5])
        result = interpolant.evaluate_many(query, knots, values)

        self.assertAlmostEqual(float(result[0, 0]), 6.25, places=12)

    def test_basis_rows_sum_to_one(self) -> None:
        """Preserve constants for every representation."""
        knots = np.array([0.0, 0.3, 1.0, 1.7, 2.0])
        queries = np.linspace(-0.5, 2.5, 31)
        for representation in REPRESENTATIONS:
            with self.subTest(representation=representation):
                weights = build_interpolant(representation).basis_weights(queries, knots)
                np.testing.assert_allclose(weights.sum(axis=1), 1.0, atol=1e-12)

    def test_sensitivity_matrix_is_kronecker_of_basis_weights(self) -> None:
        """Expand basis weights to stacked-action sensitivities."""
        knots = np.array([0.0, 1.0, 2.0])
        queries = np.array([0.25, 1.5])
        interpolant = LinearInterpolant()
        weights = interpolant.basis_weights(queries, knots)
        sensitivity = interpolant.sensitivity_matrix(queries, knots, action_dim=3)

        self.assertEqual(sensitivity.shape, (6, 9))
        np.testing.assert_allclose(sensitivity, np.kron(weights, np.eye(3)))

    def test_representation_resolution(self) -> None:
        """Accept names and numeric codes and reject unknown tags."""
        self.assertEqual(resolve_representation(0), "zero")
        self.assertEqual(resolve_representation(1), "linear")
        self.assertEqual(resolve_representation("cubic"), "cubic")
        self.assertIsInstance(build_interpolant(0), ZeroOrderHoldInterpolant)
        with self.assertRaises(ConfigurationError):
            resolve_representation(3)
        with self.assertRaises(ConfigurationError):
            resolve_representation("quintic")
        with self.assertRaises(ConfigurationError):
            build_interpolant("cubic", compute_backend="torch")


class SplinePolicyTests(unittest.TestCase):
    """Validate spline policy state handling."""

    def test_resample_is_idempotent_for_fixed_time_and_horizon(self) -> None:
        """Leave knots unchanged when resampled twice at the same anchor."""
        for representation in REPRESENTATIONS:
            with self.subTest(representation=representation):
                policy = _policy_with_knots(representation)
                policy.resample(0.2, horizon=21, timestep=0.1)
                times = policy.times.copy()
                parameters = policy.parameters.copy()

                policy.resample(0.2, horizon=21, timestep=0.1)

                np.testing.assert_array_equal(policy.times, times)
                np.testing.assert_array_equal(policy.parameters, parameters)

    def test_resample_spacing_and_values(self) -> None:
        """Space knots over the horizon and query the old schedule."""
        policy = _policy_with_knots("linear")
        expected_times = 1.0 + np.linspace(0.0, 2.0, 5)
        expected_values = policy.actions(expected_times)

        policy.resample(1.0, horizon=21, timestep=0.1)

        np.testing.assert_allclose(policy.times, expected_times)
        np.testing.assert_allclose(policy.parameters, expected_values)

    def test_resample_power_warp_clusters_early_knots(self) -> None:
        """Warp normalized knot positions by the timestep power."""
        policy = SplinePolicy(1, 5)
        policy.resample(0.0, horizon=5, timestep=1.0, timestep_power=2.0)

        np.testing.assert_allclose(policy.times, 4.0 * (np.arange(5) / 4.0) ** 2)
        self.assertTrue(np.all(np.diff(policy.times) > 0.0))

    def test_resample_enforces_minimum_spacing(self) -> None:
        """Keep knots strictly increasing for a single-step horizon."""
        policy = SplinePolicy(1, 3)
        policy.resample(2.0, horizon=1, timestep=0.01)

        np.testing.assert_allclose(policy.times, [2.0, 2.0 + 1e-5, 2.0 + 2e-5])
        policy.validate_knots()

    def test_action_clamps_to_limits(self) -> None:
        """Clip actions to the configured bounds."""
        policy = SplinePolicy(2, 2, action_limits=(np.array([-1.0, -1.0]), np.array([1.0, 1.0])))
        policy.parameters = np.array([[3.0, -4.0], [0.5, 0.2]])

        np.testing.assert_allclose(policy.action(None, 0.0), [1.0, -1.0])

    def test_copy_from_follows_source_layout(self) -> None:
        """Copy knots, representation and knot count from the source."""
        source = _policy_with_knots("zero")
        source.parameter_update = np.ones_like(source.parameters)
        target = SplinePolicy(2, 3, representation="cubic")

        target.copy_from(source)
        source.parameters[0, 0] = 99.0

        self.assertEqual(target.representation, "zero")
        self.assertEqual(target.num_spline_points, 5)
        self.assertEqual(target.num_parameters, 10)
        np.testing.assert_array_equal(target.parameter_update, np.ones((5, 2)))
        self.assertEqual(target.parameters[0, 0], 0.0)

    def test_copy_rejects_mismatched_shapes(self) -> None:
        """Raise dimension errors for incompatible sources."""
        policy = SplinePolicy(2, 3)
        with self.assertRaises(DimensionError):
            policy.copy_from(SplinePolicy(1, 3))
        with self.assertRaises(DimensionError):
            policy.copy_parameters_from(np.zeros((4, 2)), np.arange(4.0))

    def test_validate_knots_rejects_non_increasing_times(self) -> None:
        """Reject repeated knot times."""
        policy = SplinePolicy(1, 3)
        policy.times = np.array([0.0, 1.0, 1.0])
        with self.assertRaises(DimensionError):
            policy.validate_knots()

    def test_constructor_validates_sizes(self) -> None:
        """Reject invalid dimensions and knot counts."""
        with self.assertRaises(ConfigurationError):
            SplinePolicy(0)
        with self.assertRaises(ConfigurationError):
            SplinePolicy(1, 1)
        with self.assertRaises(ConfigurationError):
            SplinePolicy(1, 33)
        with self.assertRaises(ConfigurationError):
            SplinePolicy(2, 3, action_limits=(np.array([1.0, 0.0]), np.array([0.0, 1.0])))


if __name__ == "__main__":
    unittest.main()

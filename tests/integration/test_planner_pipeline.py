"""Integration tests for end-to-end planning on the particle model."""

from __future__ import annotations

import threading
import unittest
from unittest.mock import patch

import numpy as np

from gradmpc.models import build_particle_task
from gradmpc.planner import DiagnosticsLog, GradientPlanner, GradientSolver
from gradmpc.planner.diagnostics import PLANNER_PHASES
from gradmpc.simulation import WorkerPool
from gradmpc.utils.exceptions import ConfigurationError, DimensionError
from tests.helpers import (
    PARTICLE_GOAL,
    PARTICLE_START,
    build_particle_planner,
    sample_particle_model,
)

HORIZON = 30


class PlannerPipelineTests(unittest.TestCase):
    """End-to-end checks of the planning pass."""

    def test_repeated_passes_never_increase_cost(self) -> None:
        """Reduce the nominal cost from a fixed start over several passes."""
        planner = build_particle_planner()
        log = DiagnosticsLog()
        returns: list[float] = []
        with WorkerPool(thread_count=2) as pool:
            for _ in range(6):
                planner.optimize_policy(HORIZON, pool)
                planner.record_diagnostics(log)
                returns.append(planner.best_trajectory().total_return)

        for earlier, later in zip(returns[:-1], returns[1:]):
            self.assertLessEqual(later, earlier + 1e-12)
        first = log.records[0]
        self.assertLess(returns[-1], first.total_return + first.improvement)
        self.assertEqual(len(log), 6)
        for record in log.records:
            self.assertFalse(record.gradient_failed)
            self.assertEqual(record.iterations, 1)
            self.assertGreaterEqual(record.surprise, 0.0)
            self.assertLessEqual(record.surprise, 2.0)
            self.assertGreaterEqual(record.improvement, 0.0)
            self.assertEqual(set(record.phase_seconds), set(PLANNER_PHASES))

    def test_first_pass_improves_on_zero_policy(self) -> None:
        """Beat the zero-action rollout on the first pass."""
        planner = build_particle_planner()
        with WorkerPool(thread_count=2) as pool:
            planner.optimize_policy(HORIZON, pool)

        diagnostics = planner.diagnostics
        self.assertGreater(diagnostics.improvement, 0.0)
        self.assertGreater(diagnostics.step_size, 0.0)
        self.assertNotEqual(diagnostics.winner, planner.num_candidates - 1)
        self.assertAlmostEqual(
            diagnostics.expected,
            -diagnostics.step_size * float(planner.gradient.dV[0]) - 1e-16,
        )
        self.assertGreater(np.linalg.norm(planner.policy.parameters), 0.0)

    def test_committed_policy_reproduces_best_trajectory(self) -> None:
        """Roll out the committed policy to the reported best return."""
        planner = build_particle_planner(extra_overrides={"gradient_max_iterations": 2})
        with WorkerPool(thread_count=3) as pool:
            planner.optimize_policy(HORIZON, pool)
            best = planner.best_trajectory().total_return

            planner.candidate_policies[0].copy_from(planner.policy)
            planner.nominal_trajectory(HORIZON)

        self.assertEqual(planner.diagnostics.iterations, 2)
        self.assertAlmostEqual(planner.trajectories[0].total_return, best, places=12)

    def test_zero_residual_start_reports_degenerate_gradient(self) -> None:
        """Keep the policy when the start state already satisfies the task."""
        planner = build_particle_planner()
        planner.set_state(np.array([0.05, -0.1, 0.0, 0.0]), 0.0, np.zeros(2))
        with WorkerPool(thread_count=2) as pool:
            planner.optimize_policy(HORIZON, pool)

        self.assertTrue(planner.diagnostics.gradient_failed)
        self.assertEqual(planner.diagnostics.iterations, 0)
        np.testing.assert_array_equal(planner.policy.parameters, 0.0)
        self.assertEqual(planner.best_trajectory().total_return, 0.0)

    def test_non_finite_direction_keeps_committed_policy(self) -> None:
        """Commit the unchanged policy when every stepped candidate diverges."""
        planner = build_particle_planner()
        compute_direction = GradientSolver.compute

        def corrupt_direction(solver: GradientSolver, *args: object, **kwargs: object) -> object:
            """Compute the direction, then corrupt its first entry.

            Args:
                solver: Gradient solver being patched.
                *args: Positional arguments of ``GradientSolver.compute``.
                **kwargs: Keyword arguments of ``GradientSolver.compute``.

            Returns:
                Status reported by the unpatched solver.
            """
            status = compute_direction(solver, *args, **kwargs)
            solver.k[0, 0] = np.nan
            return status

        with WorkerPool(thread_count=2) as pool:
            planner.optimize_policy(HORIZON, pool)
            committed = planner.policy.parameters.copy()
            committed_return = planner.best_trajectory().total_return

            with patch.object(GradientSolver, "compute", corrupt_direction):
                planner.optimize_policy(HORIZON, pool)
            diagnostics = planner.diagnostics
            kept_parameters = planner.policy.parameters.copy()
            action = planner.action_from_policy(PARTICLE_START, 0.0)

            planner.optimize_policy(HORIZON, pool)

        self.assertEqual(diagnostics.winner, planner.num_candidates - 1)
        self.assertEqual(diagnostics.step_size, 0.0)
        self.assertEqual(diagnostics.failed_rollouts, planner.num_candidates - 1)
        self.assertAlmostEqual(diagnostics.total_return, committed_return, places=12)
        self.assertTrue(np.all(np.isfinite(action)))
        self.assertEqual(planner.diagnostics.failed_rollouts, 0)
        self.assertTrue(np.all(np.isfinite(planner.policy.parameters)))
        self.assertLessEqual(planner.best_trajectory().total_return, committed_return + 1e-12)
        np.testing.assert_allclose(kept_parameters, committed, atol=1e-12)

    def test_every_representation_plans(self) -> None:
        """Improve the cost with zero, linear and cubic policies."""
        for code in (0, 1, 2):
            with self.subTest(representation=code):
                planner = build_particle_planner(representation=code)
                with WorkerPool(thread_count=2) as pool:
                    planner.optimize_policy(HORIZON, pool)
                    planner.optimize_policy(HORIZON, pool)
                self.assertGreaterEqual(planner.diagnostics.improvement, 0.0)
                self.assertTrue(np.all(np.isfinite(planner.policy.parameters)))

    def test_traces_and_runtime_adjustments(self) -> None:
        """Expose candidate traces and bounded runtime settings."""
        planner = build_particle_planner(num_candidates=6)
        planner.num_candidates = 4
        planner.set_representation("linear")
        with WorkerPool(thread_count=2) as pool:
            planner.optimize_policy(HORIZON, pool)

        traces = planner.traces()
        self.assertEqual(len(traces), 4)
        for trace in traces:
            self.assertEqual(trace.shape, (HORIZON, 3))
        self.assertEqual(planner.policy.representation, "linear")
        with self.assertRaises(ConfigurationError):
            planner.num_candidates = 7
        with self.assertRaises(ConfigurationError):
            planner.num_candidates = 1

    def test_lifecycle_helpers(self) -> None:
        """Run the individual pass phases through the public helpers."""
        planner = build_particle_planner()
        planner.reset(HORIZON)
        planner.set_state(PARTICLE_START, 0.5, PARTICLE_GOAL)
        planner.resample_policy(HORIZON)

        self.assertEqual(planner.candidate_policies[0].times[0], 0.5)
        planner.nominal_trajectory(HORIZON)
        self.assertEqual(planner.trajectories[0].times[0], 0.5)
        with WorkerPool(thread_count=2) as pool:
            planner.rollouts(HORIZON, pool)
        for index in range(planner.num_candidates):
            self.assertEqual(planner.trajectories[index].horizon, HORIZON)

    def test_invalid_inputs_raise(self) -> None:
        """Reject wrong state sizes and oversized horizons."""
        planner = build_particle_planner(capacity=16)
        with self.assertRaises(DimensionError):
            planner.set_state(np.zeros(3), 0.0)
        with self.assertRaises(DimensionError):
            planner.set_state(np.zeros(4), 0.0, np.zeros(3))
        with WorkerPool(thread_count=1) as pool:
            with self.assertRaises(DimensionError):
                planner.optimize_policy(17, pool)
        with self.assertRaises(DimensionError):
            GradientPlanner(sample_particle_model(), build_particle_task(), capacity=1024)

    def test_residual_overrides_reach_task(self) -> None:
        """Apply ``residual_`` overrides during planner setup."""
        planner = build_particle_planner(extra_overrides={"residual_goal_offset_x": 0.25})
        np.testing.assert_allclose(planner.task.residual_parameters, [0.25, -0.1])

    def test_actions_are_served_during_planning(self) -> None:
        """Serve finite, clamped actions while passes run concurrently."""
        planner = build_particle_planner()
        stop = threading.Event()
        failures: list[BaseException] = []

        def plan() -> None:
            """Run planning passes until stopped."""
            try:
                with WorkerPool(thread_count=2) as pool:
                    while not stop.is_set():
                        planner.optimize_policy(HORIZON, pool)
            except Exception as exc:  # noqa: BLE001
                failures.append(exc)

        worker = threading.Thread(target=plan)
        worker.start()
        try:
            for step in range(400):
                action = planner.action_from_policy(PARTICLE_START, 0.001 * step)
                self.assertEqual(action.shape, (2,))
                self.assertTrue(np.all(np.isfinite(action)))
                self.assertTrue(np.all(np.abs(action) <= 1.0))
        finally:
            stop.set()
            worker.join(timeout=30.0)

        self.assertEqual(failures, [])


if __name__ == "__main__":
    unittest.main()

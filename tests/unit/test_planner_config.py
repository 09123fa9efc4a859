"""Tests for planner configuration, overrides, locking and diagnostics."""

from __future__ import annotations

import builtins
import importlib.util
import logging
import threading
import time
import unittest
from unittest.mock import patch

import numpy as np

from gradmpc.planner import (
    DiagnosticsLog,
    NumericOverrides,
    PlannerDiagnostics,
    PlannerNumerics,
    PlannerRuntime,
    build_planner_config,
    log_scale,
    select_winner,
)
from gradmpc.planner._sync import ReadWriteLock
from gradmpc.planner.diagnostics import PLANNER_PHASES, PhaseTimer
from gradmpc.utils.exceptions import ConfigurationError
from gradmpc.utils.logging import configure_logging

NUMBA_AVAILABLE = importlib.util.find_spec("numba") is not None
PANDAS_AVAILABLE = importlib.util.find_spec("pandas") is not None


class PlannerConfigTests(unittest.TestCase):
    """Validate planner config defaults, bounds and overrides."""

    def test_defaults(self) -> None:
        """Build the documented default configuration."""
        config = build_planner_config()

        self.assertEqual(config.numerics.num_candidates, 32)
        self.assertEqual(config.numerics.num_spline_points, 10)
        self.assertEqual(config.numerics.max_iterations, 1)
        self.assertEqual(config.numerics.min_step_size, 1e-8)
        self.assertEqual(config.numerics.fd_mode, "forward")
        self.assertEqual(config.runtime.representation, "cubic")
        self.assertEqual(config.runtime.compute_backend, "numpy")
        self.assertTrue(config.runtime.clamp_actions)

    def test_overrides_take_precedence(self) -> None:
        """Read every ``gradient_*`` override."""
        config = build_planner_config(
            numerics=PlannerNumerics(num_candidates=4),
            representation="cubic",
            overrides={
                "gradient_num_trajectory": 12,
                "gradient_spline_points": 5,
                "gradient_representation": 1,
                "gradient_min_step_size": 1e-4,
                "gradient_fd_tolerance": 1e-5,
                "gradient_fd_mode": 1,
                "gradient_max_iterations": 3,
                "gradient_timestep_power": 1.5,
                "unrelated": 4.0,
            },
        )

        self.assertEqual(config.numerics.num_candidates, 12)
        self.assertEqual(config.numerics.num_spline_points, 5)
        self.assertEqual(config.runtime.representation, "linear")
        self.assertEqual(config.numerics.min_step_size, 1e-4)
        self.assertEqual(config.numerics.fd_tolerance, 1e-5)
        self.assertEqual(config.numerics.fd_mode, "central")
        self.assertEqual(config.numerics.max_iterations, 3)
        self.assertEqual(config.numerics.timestep_power, 1.5)

    def test_invalid_values_raise(self) -> None:
        """Reject out-of-range numerics and runtime settings."""
        for numerics in (
            PlannerNumerics(num_candidates=1),
            PlannerNumerics(num_candidates=129),
            PlannerNumerics(num_spline_points=1),
            PlannerNumerics(max_iterations=0),
            PlannerNumerics(min_step_size=0.0),
            PlannerNumerics(min_step_size=1.0),
            PlannerNumerics(fd_tolerance=0.0),
            PlannerNumerics(fd_mode="backward"),
            PlannerNumerics(timestep_power=0.0),
        ):
            with self.subTest(numerics=numerics):
                with self.assertRaises(ConfigurationError):
                    numerics.validate()

        with self.assertRaises(ConfigurationError):
            PlannerRuntime(representation="quintic").validate()
        with self.assertRaises(ConfigurationError):
            PlannerRuntime(compute_backend="torch").validate()
        with self.assertRaises(ConfigurationError):
            build_planner_config(overrides={"gradient_fd_mode": 2})
        with self.assertRaises(ConfigurationError):
            build_planner_config(overrides={"gradient_representation": 5})

    @unittest.skipIf(NUMBA_AVAILABLE, "Numba installed; missing-backend path not reachable")
    def test_numba_backend_requires_numba(self) -> None:
        """Explain how to install numba when it is requested but missing."""
        with self.assertRaises(ConfigurationError) as context:
            build_planner_config(compute_backend="numba")
        self.assertIn("pip install", str(context.exception))

    def test_numeric_overrides_mapping(self) -> None:
        """Expose a read-only mapping with defaults."""
        overrides = NumericOverrides({"a": 1, "b": 2.5})

        self.assertEqual(len(overrides), 2)
        self.assertEqual(sorted(overrides), ["a", "b"])
        self.assertEqual(overrides["a"], 1.0)
        self.assertEqual(overrides.number_or_default(7.0, "a"), 1.0)
        self.assertEqual(overrides.number_or_default(7.0, "missing"), 7.0)
        with self.assertRaises(ConfigurationError):
            NumericOverrides({"flag": True})
        with self.assertRaises(ConfigurationError):
            NumericOverrides({"name": "cubic"})


class LineSearchHelperTests(unittest.TestCase):
    """Validate step-size spacing and winner selection."""

    def test_log_scale(self) -> None:
        """Space values logarithmically from maximum to minimum."""
        steps = log_scale(1.0, 1e-8, 9)

        self.assertAlmostEqual(steps[0], 1.0)
        self.assertAlmostEqual(steps[-1], 1e-8)
        np.testing.assert_allclose(steps[1:] / steps[:-1], 0.1)
        np.testing.assert_array_equal(log_scale(1.0, 1e-8, 1), [1.0])

    def test_select_winner_prefers_later_slot_on_ties(self) -> None:
        """Scan from the last slot with strict improvement only."""
        self.assertEqual(select_winner([5.0, 3.0, 3.0, 7.0], 6.0), (2, 3.0))

    def test_select_winner_without_improvement(self) -> None:
        """Keep the prior cost and fall back to the last slot."""
        self.assertEqual(select_winner([5.0, 6.0, 9.0], 5.0), (2, 5.0))
        self.assertEqual(select_winner([float("nan"), 4.0], 6.0), (1, 4.0))


class ReadWriteLockTests(unittest.TestCase):
    """Validate reader/writer exclusion."""

    def test_writer_waits_for_readers(self) -> None:
        """Block the writer until the active reader leaves."""
        lock = ReadWriteLock()
        written = threading.Event()

        def write() -> None:
            """Acquire exclusive access and signal completion."""
            with lock.write():
                written.set()

        with lock.read():
            writer = threading.Thread(target=write)
            writer.start()
            time.sleep(0.05)
            self.assertFalse(written.is_set())
        writer.join(timeout=5.0)
        self.assertTrue(written.is_set())

    def test_readers_share_access(self) -> None:
        """Allow a second reader while the first holds the lock."""
        lock = ReadWriteLock()
        entered = threading.Event()

        def read() -> None:
            """Acquire shared access and signal entry."""
            with lock.read():
                entered.set()

        with lock.read():
            reader = threading.Thread(target=read)
            reader.start()
            self.assertTrue(entered.wait(timeout=5.0))
        reader.join(timeout=5.0)


class DiagnosticsTests(unittest.TestCase):
    """Validate phase timers and diagnostics history."""

    def test_phase_timer_accumulates(self) -> None:
        """Accumulate time per phase and reject unknown phases."""
        timer = PhaseTimer()
        with timer.measure("gradient"):
            time.sleep(0.001)
        with timer.measure("gradient"):
            pass

        self.assertEqual(set(timer.seconds), set(PLANNER_PHASES))
        self.assertGreater(timer.seconds["gradient"], 0.0)
        self.assertEqual(timer.seconds["nominal"], 0.0)
        with self.assertRaises(ConfigurationError):
            with timer.measure("unknown"):
                pass

    def test_total_seconds(self) -> None:
        """Sum phase durations."""
        diagnostics = PlannerDiagnostics(phase_seconds={"nominal": 0.25, "rollouts": 0.5})
        self.assertAlmostEqual(diagnostics.total_seconds, 0.75)

    @unittest.skipUnless(PANDAS_AVAILABLE, "pandas not installed")
    def test_to_dataframe(self) -> None:
        """Produce one row per pass with per-phase columns."""
        log = DiagnosticsLog()
        log.append(PlannerDiagnostics(phase_seconds={"nominal": 0.1}, winner=3))
        log.append(PlannerDiagnostics(gradient_failed=True))

        frame = log.to_dataframe()

        self.assertEqual(len(log), 2)
        self.assertEqual(len(frame), 2)
        self.assertIn("nominal_seconds", frame.columns)
        self.assertIn("policy_update_seconds", frame.columns)
        self.assertEqual(list(frame["pass_index"]), [0, 1])
        self.assertAlmostEqual(float(frame["nominal_seconds"].iloc[0]), 0.1)
        self.assertEqual(int(frame["winner"].iloc[0]), 3)

    def test_to_dataframe_without_pandas_raises(self) -> None:
        """Raise a configuration error when pandas cannot be imported."""
        real_import = builtins.__import__

        def fake_import(name: str, *args: object, **kwargs: object) -> object:
            """Fail imports of pandas and defer everything else.

            Args:
                name: Module name.
                *args: Positional import arguments.
                **kwargs: Keyword import arguments.

            Returns:
                Imported module.

            Raises:
                ModuleNotFoundError: If ``name`` is ``pandas``.
            """
            if name == "pandas":
                raise ModuleNotFoundError("No module named 'pandas'")
            return real_import(name, *args, **kwargs)

        with patch("builtins.__import__", side_effect=fake_import):
            with self.assertRaises(ConfigurationError):
                DiagnosticsLog().to_dataframe()


class LoggingSetupTests(unittest.TestCase):
    """Validate the package logging helper."""

    def test_planner_level_applies_to_package_logger(self) -> None:
        """Set the gradmpc logger level independently of the root level."""
        package_logger = logging.getLogger("gradmpc")
        previous = package_logger.level
        self.addCleanup(package_logger.setLevel, previous)

        configured = configure_logging(logging.WARNING, planner_level=logging.DEBUG)
        self.assertIs(configured, package_logger)
        self.assertEqual(package_logger.level, logging.DEBUG)
        self.assertTrue(logging.getLogger("gradmpc.planner.planner").isEnabledFor(logging.DEBUG))

        configure_logging(logging.WARNING)
        self.assertEqual(package_logger.level, logging.NOTSET)


if __name__ == "__main__":
    unittest.main()

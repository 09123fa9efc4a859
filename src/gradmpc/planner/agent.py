"""Background receding-horizon planning loop."""

from __future__ import annotations

import logging
import threading
from types import TracebackType

import numpy as np

from gradmpc.planner.diagnostics import DiagnosticsLog
from gradmpc.planner.planner import GradientPlanner
from gradmpc.simulation.worker_pool import WorkerPool
from gradmpc.utils.exceptions import ConfigurationError, PlannerError

logger = logging.getLogger(__name__)


class PlanningAgent:
    """Run planning passes on a background thread while actions are served.

    The agent thread repeatedly calls
    :meth:`GradientPlanner.optimize_policy` from the latest state set via
    :meth:`set_state`. Callers read actions at any rate via :meth:`action`.
    An exception raised by a planning pass stops the loop and is re-raised
    from :meth:`stop`.

    Args:
        planner: Planner to drive.
        pool: Worker pool used by the planner.
        horizon: Planning horizon in timesteps.
        diagnostics_log: Optional log receiving one snapshot per pass.
    """

    def __init__(
        self,
        planner: GradientPlanner,
        pool: WorkerPool,
        horizon: int,
        *,
        diagnostics_log: DiagnosticsLog | None = None,
    ) -> None:
        """Store collaborators; the thread starts in :meth:`start`.

        Args:
            planner: Planner to drive.
            pool: Worker pool used by the planner.
            horizon: Planning horizon in timesteps.
            diagnostics_log: Optional log receiving one snapshot per pass.

        Raises:
            gradmpc.utils.exceptions.ConfigurationError: If ``horizon`` is
                below 2 or above the planner capacity.
        """
        if not 2 <= horizon <= planner.capacity:
            msg = f"horizon must be in [2, {planner.capacity}], got: {horizon}"
            raise ConfigurationError(msg)
        self.planner = planner
        self.pool = pool
        self.horizon = horizon
        self.diagnostics_log = diagnostics_log
        self.pass_count = 0
        self.error: BaseException | None = None
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        """Return whether the planning thread is alive.

        Returns:
            ``True`` while the loop runs.
        """
        return self._thread is not None and self._thread.is_alive()

    def set_state(
        self,
        state: np.ndarray,
        time: float,
        exogenous: np.ndarray | None = None,
    ) -> None:
        """Publish the latest measured state to the planner.

        Args:
            state: Current state.
            time: Current time.
            exogenous: Current exogenous signal.
        """
        self.planner.set_state(state, time, exogenous)

    def action(self, state: np.ndarray, time: float) -> np.ndarray:
        """Return the action of the most recently committed policy.

        Args:
            state: Current state.
            time: Current time.

        Returns:
            Action vector.
        """
        return self.planner.action_from_policy(state, time)

    def plan_once(self) -> None:
        """Run one planning pass on the calling thread."""
        self.planner.optimize_policy(self.horizon, self.pool)
        self.pass_count += 1
        if self.diagnostics_log is not None:
            self.planner.record_diagnostics(self.diagnostics_log)

    def start(self) -> None:
        """Start the planning thread.

        Raises:
            gradmpc.utils.exceptions.PlannerError: If the loop already runs.
        """
        if self.running:
            msg = "Planning agent is already running."
            raise PlannerError(msg)
        self.error = None
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="gradmpc-planner", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        """Stop the planning thread after the current pass.

        Args:
            timeout: Optional join timeout [s].

        Raises:
            BaseException: The exception that terminated the planning loop,
                if any.
        """
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        if self.error is not None:
            error, self.error = self.error, None
            raise error

    def _run(self) -> None:
        """Plan until stopped or a pass fails."""
        logger.debug("Planning agent started (horizon %d).", self.horizon)
        try:
            while not self._stop_event.is_set():
                self.plan_once()
        except Exception as exc:
            logger.exception("Planning pass failed; stopping agent.")
            self.error = exc
        logger.debug("Planning agent stopped after %d passes.", self.pass_count)

    def __enter__(self) -> PlanningAgent:
        """Start planning for the duration of a context.

        Returns:
            This agent.
        """
        self.start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        """Stop planning.

        Args:
            exc_type: Exception type raised in the context, if any.
            exc: Exception raised in the context, if any.
            traceback: Traceback of the raised exception, if any.
        """
        self.stop()

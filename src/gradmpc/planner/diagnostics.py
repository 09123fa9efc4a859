"""Per-pass planner diagnostics and phase timers."""

from __future__ import annotations

import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from typing import Any

from gradmpc.utils.exceptions import ConfigurationError

PLANNER_PHASES = (
    "nominal",
    "model_derivatives",
    "cost_derivatives",
    "gradient",
    "rollouts",
    "policy_update",
)


@dataclass(frozen=True)
class PlannerDiagnostics:
    """Snapshot of one planning pass.

    Args:
        phase_seconds: Wall time per phase [s], keyed by
            :data:`PLANNER_PHASES`.
        step_size: Line-search step of the adopted candidate.
        improvement: ``c_prev - c_best`` of the last iteration.
        expected: Expected decrease ``-step * dV[0]`` of the last iteration.
        surprise: ``clip(improvement / expected, 0, 2)``.
        winner: Index of the last winning candidate.
        total_return: Total return of the best trajectory.
        iterations: Gradient iterations completed.
        gradient_failed: Whether the gradient recursion reported failure.
        failed_rollouts: Rollouts with non-finite states in the last line
            search, or the nominal rollout alone when no search ran.
    """

    phase_seconds: dict[str, float] = field(default_factory=dict)
    step_size: float = 0.0
    improvement: float = 0.0
    expected: float = 0.0
    surprise: float = 0.0
    winner: int = 0
    total_return: float = 0.0
    iterations: int = 0
    gradient_failed: bool = False
    failed_rollouts: int = 0

    @property
    def total_seconds(self) -> float:
        """Return summed phase wall time.

        Returns:
            Total timed duration [s].
        """
        return float(sum(self.phase_seconds.values()))


class PhaseTimer:
    """Accumulating wall-clock timer keyed by planner phase."""

    def __init__(self) -> None:
        """Start with zero time for every phase."""
        self.seconds = {phase: 0.0 for phase in PLANNER_PHASES}

    @contextmanager
    def measure(self, phase: str) -> Iterator[None]:
        """Add the wall time of the context body to ``phase``.

        Args:
            phase: Phase name from :data:`PLANNER_PHASES`.

        Returns:
            Iterator yielding ``None`` while the phase is timed.

        Raises:
            gradmpc.utils.exceptions.ConfigurationError: If ``phase`` is unknown.
        """
        if phase not in self.seconds:
            msg = f"phase must be one of {PLANNER_PHASES}, got: {phase!r}"
            raise ConfigurationError(msg)
        start = time.perf_counter()
        try:
            yield
        finally:
            self.seconds[phase] += time.perf_counter() - start


class DiagnosticsLog:
    """Append-only history of :class:`PlannerDiagnostics` snapshots."""

    def __init__(self) -> None:
        """Start with an empty history."""
        self.records: list[PlannerDiagnostics] = []

    def append(self, diagnostics: PlannerDiagnostics) -> None:
        """Record one snapshot.

        Args:
            diagnostics: Snapshot to store.
        """
        self.records.append(diagnostics)

    def __len__(self) -> int:
        """Return the number of stored snapshots.

        Returns:
            Snapshot count.
        """
        return len(self.records)

    def to_dataframe(self) -> Any:
        """Return one row per planning pass.

        Returns:
            Pandas DataFrame with scalar diagnostics and one
            ``<phase>_seconds`` column per planner phase.

        Raises:
            gradmpc.utils.exceptions.ConfigurationError: If pandas is not
                installed in the active environment.
        """
        try:
            import pandas as pd  # type: ignore[import-untyped]
        except ModuleNotFoundError as exc:
            msg = (
                "DiagnosticsLog.to_dataframe requires pandas. "
                "Install with `pip install -e '.[pandas]'`."
            )
            raise ConfigurationError(msg) from exc

        rows: list[dict[str, Any]] = []
        for index, record in enumerate(self.records):
            row = asdict(record)
            phase_seconds = row.pop("phase_seconds")
            row["pass_index"] = index
            for phase in PLANNER_PHASES:
                row[f"{phase}_seconds"] = float(phase_seconds.get(phase, 0.0))
            rows.append(row)
        return pd.DataFrame(rows)

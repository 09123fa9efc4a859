"""Benchmark per-phase planner timings across representations and backends."""

from __future__ import annotations

import argparse
import importlib.util
import json
import statistics
from dataclasses import asdict, dataclass
from pathlib import Path

import numpy as np

from gradmpc import GradientPlanner, ParticleModel, WorkerPool, build_particle_task
from gradmpc.planner import DiagnosticsLog, build_planner_config
from gradmpc.planner.diagnostics import PLANNER_PHASES

DEFAULT_WARMUP_PASSES = 2
DEFAULT_TIMED_PASSES = 10
DEFAULT_HORIZON = 50
DEFAULT_THREADS = 4
DEFAULT_OUTPUT_PATH = Path(__file__).resolve().parent / "output" / "planner_phases.json"
GOAL = np.array([0.8, -0.4])


@dataclass(frozen=True)
class PhaseBenchmarkResult:
    """Timing summary for one planner configuration.

    Args:
        case_id: Unique ``<backend>_<representation>`` identifier.
        phase_mean_ms: Mean wall time per phase [ms].
        pass_median_ms: Median total pass time [ms].
        final_return: Best total return after the timed passes.
    """

    case_id: str
    phase_mean_ms: dict[str, float]
    pass_median_ms: float
    final_return: float


def _run_case(
    backend: str,
    representation: str,
    warmup_passes: int,
    timed_passes: int,
    horizon: int,
    threads: int,
) -> PhaseBenchmarkResult:
    """Time planning passes for one backend and representation.

    Args:
        backend: Basis-weight backend.
        representation: Spline representation.
        warmup_passes: Untimed passes, including numba compilation.
        timed_passes: Timed passes.
        horizon: Planning horizon in timesteps.
        threads: Worker threads.

    Returns:
        Benchmark summary for the case.
    """
    config = build_planner_config(representation=representation, compute_backend=backend)
    planner = GradientPlanner(ParticleModel(), build_particle_task(), config)
    planner.set_state(np.zeros(planner.state_dim), 0.0, GOAL)
    log = DiagnosticsLog()

    with WorkerPool(thread_count=threads) as pool:
        for _ in range(warmup_passes):
            planner.optimize_policy(horizon, pool)
        for _ in range(timed_passes):
            planner.optimize_policy(horizon, pool)
            planner.record_diagnostics(log)

    phase_mean_ms = {
        phase: 1_000.0 * statistics.mean(record.phase_seconds[phase] for record in log.records)
        for phase in PLANNER_PHASES
    }
    return PhaseBenchmarkResult(
        case_id=f"{backend}_{representation}",
        phase_mean_ms=phase_mean_ms,
        pass_median_ms=1_000.0 * statistics.median(r.total_seconds for r in log.records),
        final_return=float(planner.best_trajectory().total_return),
    )


def benchmark_available_backends(
    warmup_passes: int = DEFAULT_WARMUP_PASSES,
    timed_passes: int = DEFAULT_TIMED_PASSES,
    horizon: int = DEFAULT_HORIZON,
    threads: int = DEFAULT_THREADS,
) -> list[PhaseBenchmarkResult]:
    """Benchmark every representation on each available backend.

    Args:
        warmup_passes: Untimed passes per case.
        timed_passes: Timed passes per case.
        horizon: Planning horizon in timesteps.
        threads: Worker threads.

    Returns:
        List of case summaries.
    """
    backends = ["numpy"]
    if importlib.util.find_spec("numba") is not None:
        backends.append("numba")

    return [
        _run_case(backend, representation, warmup_passes, timed_passes, horizon, threads)
        for backend in backends
        for representation in ("zero", "linear", "cubic")
    ]


def _print_results_table(results: list[PhaseBenchmarkResult]) -> None:
    """Print benchmark results as a markdown-style table.

    Args:
        results: Case summaries.
    """
    header = " | ".join(f"{phase} [ms]" for phase in PLANNER_PHASES)
    print(f"| Case | {header} | Pass median [ms] | Return |")
    print("| --- |" + " ---: |" * (len(PLANNER_PHASES) + 2))
    for result in results:
        phases = " | ".join(f"{result.phase_mean_ms[phase]:.2f}" for phase in PLANNER_PHASES)
        print(
            f"| {result.case_id} | {phases} | {result.pass_median_ms:.2f} | "
            f"{result.final_return:.4f} |"
        )


def _parse_args() -> argparse.Namespace:
    """Parse command-line options for the phase benchmark.

    Returns:
        Parsed command-line arguments.
    """
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--warmup-passes",
        type=int,
        default=DEFAULT_WARMUP_PASSES,
        help="Untimed passes per case (default: 2).",
    )
    parser.add_argument(
        "--timed-passes",
        type=int,
        default=DEFAULT_TIMED_PASSES,
        help="Timed passes per case (default: 10).",
    )
    parser.add_argument("--horizon", type=int, default=DEFAULT_HORIZON, help="Planning horizon.")
    parser.add_argument("--threads", type=int, default=DEFAULT_THREADS, help="Worker threads.")
    parser.add_argument(
        "--output",
        type=Path,
        default=DEFAULT_OUTPUT_PATH,
        help="JSON output path (default: scripts/output/planner_phases.json).",
    )
    return parser.parse_args()


def main() -> None:
    """Run phase benchmarks and export JSON output."""
    args = _parse_args()
    results = benchmark_available_backends(
        warmup_passes=args.warmup_passes,
        timed_passes=args.timed_passes,
        horizon=args.horizon,
        threads=args.threads,
    )
    _print_results_table(results)

    output_path = args.output
    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(json.dumps([asdict(result) for result in results], indent=2))
        print(f"\nSaved benchmark data to: {output_path}")
    except OSError as exc:
        print(f"\nWarning: could not write benchmark JSON to {output_path}: {exc}")


if __name__ == "__main__":
    main()

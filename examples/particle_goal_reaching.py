"""Drive the particle to a goal with closed-loop gradient planning."""

from __future__ import annotations

import argparse
import logging

import numpy as np

from gradmpc import (
    DiagnosticsLog,
    GradientPlanner,
    ParticleModel,
    PlanningAgent,
    WorkerPool,
    build_particle_task,
    build_planner_config,
)
from gradmpc.utils import configure_logging

DEFAULT_STEPS = 300
DEFAULT_HORIZON = 50
DEFAULT_THREADS = 2
DEFAULT_CANDIDATES = 16
DEFAULT_GOAL = (0.8, -0.4)


def _parse_args() -> argparse.Namespace:
    """Parse command-line options for the closed-loop example.

    Returns:
        Parsed command-line arguments.
    """
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--steps", type=int, default=DEFAULT_STEPS, help="Simulation steps.")
    parser.add_argument("--horizon", type=int, default=DEFAULT_HORIZON, help="Planning horizon.")
    parser.add_argument("--threads", type=int, default=DEFAULT_THREADS, help="Worker threads.")
    parser.add_argument(
        "--candidates",
        type=int,
        default=DEFAULT_CANDIDATES,
        help="Line-search candidates including the zero step.",
    )
    parser.add_argument(
        "--representation",
        choices=("zero", "linear", "cubic"),
        default="cubic",
        help="Spline policy representation (default: cubic).",
    )
    parser.add_argument(
        "--background",
        action="store_true",
        help="Plan on a background thread instead of once per control step.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log per-pass planner summaries at debug level.",
    )
    return parser.parse_args()


def run_closed_loop(
    planner: GradientPlanner,
    pool: WorkerPool,
    steps: int,
    horizon: int,
    goal: np.ndarray,
    *,
    background: bool = False,
) -> np.ndarray:
    """Simulate the particle while re-planning from each measured state.

    Args:
        planner: Configured particle planner.
        pool: Worker pool used by the planner.
        steps: Number of simulation steps.
        horizon: Planning horizon in timesteps.
        goal: Goal position.
        background: Plan on a background agent thread when ``True``.

    Returns:
        Final particle state.
    """
    plant = planner.model.create_context()
    state = np.zeros(planner.state_dim)
    time = 0.0
    planner.set_state(state, time, goal)
    agent = PlanningAgent(planner, pool, horizon)
    if background:
        agent.start()
    try:
        for _ in range(steps):
            if not background:
                agent.plan_once()
            action = agent.action(state, time)
            state, _ = plant.step(state, action, goal)
            time += planner.model.timestep
            agent.set_state(state, time, goal)
    finally:
        if background:
            agent.stop()
    return state


def main() -> None:
    """Run the closed-loop particle example and log the outcome."""
    args = _parse_args()
    configure_logging(logging.INFO, planner_level=logging.DEBUG if args.verbose else None)
    logger = logging.getLogger("particle_example")

    model = ParticleModel()
    task = build_particle_task()
    config = build_planner_config(
        representation=args.representation,
        overrides={"gradient_num_trajectory": args.candidates},
    )
    planner = GradientPlanner(model, task, config)
    goal = np.array(DEFAULT_GOAL)
    log = DiagnosticsLog()

    with WorkerPool(thread_count=args.threads) as pool:
        final_state = run_closed_loop(
            planner,
            pool,
            args.steps,
            args.horizon,
            goal,
            background=args.background,
        )
        planner.record_diagnostics(log)

    target = goal + task.residual_parameters
    logger.info("Final position: (%.3f, %.3f)", final_state[0], final_state[1])
    logger.info("Distance to target: %.4f", float(np.linalg.norm(final_state[:2] - target)))
    last = log.records[-1]
    logger.info(
        "Last pass: return %.4f | step %.3g | surprise %.3f | %.2f ms",
        last.total_return,
        last.step_size,
        last.surprise,
        last.total_seconds * 1_000.0,
    )


if __name__ == "__main__":
    main()

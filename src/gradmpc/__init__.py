"""Gradient-based receding-horizon planning over spline policies."""

from gradmpc.models import ParticleModel, build_particle_task
from gradmpc.planner import (
    DiagnosticsLog,
    GradientPlanner,
    PlannerConfig,
    PlannerNumerics,
    PlannerRuntime,
    PlanningAgent,
    build_planner_config,
)
from gradmpc.policy import SplinePolicy
from gradmpc.simulation import SimulationModel, Trajectory, WorkerPool
from gradmpc.task import CostTerm, Task

__all__ = [
    "CostTerm",
    "DiagnosticsLog",
    "GradientPlanner",
    "ParticleModel",
    "PlannerConfig",
    "PlannerNumerics",
    "PlannerRuntime",
    "PlanningAgent",
    "SimulationModel",
    "SplinePolicy",
    "Task",
    "Trajectory",
    "WorkerPool",
    "build_particle_task",
    "build_planner_config",
]

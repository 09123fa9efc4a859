"""Gradient planner, configuration and diagnostics."""

from __future__ import annotations

from gradmpc.planner.agent import PlanningAgent
from gradmpc.planner.config import (
    NumericOverrides,
    PlannerConfig,
    PlannerNumerics,
    PlannerRuntime,
    build_planner_config,
)
from gradmpc.planner.diagnostics import DiagnosticsLog, PlannerDiagnostics
from gradmpc.planner.gradient import GradientSolver, GradientStatus
from gradmpc.planner.planner import GradientPlanner, log_scale, select_winner
from gradmpc.planner.spline_mapping import SplineMapping

__all__ = [
    "DiagnosticsLog",
    "GradientPlanner",
    "GradientSolver",
    "GradientStatus",
    "NumericOverrides",
    "PlannerConfig",
    "PlannerDiagnostics",
    "PlannerNumerics",
    "PlannerRuntime",
    "PlanningAgent",
    "SplineMapping",
    "build_planner_config",
    "log_scale",
    "select_winner",
]

"""Simulation interfaces, rollouts and worker scheduling."""

from __future__ import annotations

from gradmpc.simulation.model_api import SimulationContext, SimulationModel
from gradmpc.simulation.trajectory import ControlLaw, Trajectory
from gradmpc.simulation.worker_pool import WorkerPool

__all__ = [
    "ControlLaw",
    "SimulationContext",
    "SimulationModel",
    "Trajectory",
    "WorkerPool",
]

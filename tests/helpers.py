"""Shared test helpers."""

from __future__ import annotations

from collections.abc import Mapping

import numpy as np

from gradmpc.models import ParticleModel, ParticleParameters, build_particle_task
from gradmpc.planner import GradientPlanner, build_planner_config

PARTICLE_GOAL = np.array([1.0, 0.5])
PARTICLE_START = np.zeros(4)


def sample_particle_model(integrator: str = "rk4") -> ParticleModel:
    """Create the reference particle model used across tests.

    Args:
        integrator: Integration scheme (``rk4`` or ``euler``).

    Returns:
        Particle model with default physical parameters.
    """
    return ParticleModel(ParticleParameters(integrator=integrator))


def build_particle_planner(
    *,
    num_candidates: int = 8,
    spline_points: int = 6,
    representation: int = 2,
    risk: float = 1.0,
    capacity: int = 64,
    compute_backend: str = "numpy",
    extra_overrides: Mapping[str, float] | None = None,
) -> GradientPlanner:
    """Create a particle planner with a small candidate set.

    Args:
        num_candidates: Line-search candidate count.
        spline_points: Number of policy knots.
        representation: Representation code (``0`` zero, ``1`` linear,
            ``2`` cubic).
        risk: Risk parameter of the particle task.
        capacity: Maximum planning horizon.
        compute_backend: Basis-weight backend.
        extra_overrides: Additional numeric overrides.

    Returns:
        Planner positioned at :data:`PARTICLE_START` chasing
        :data:`PARTICLE_GOAL`.
    """
    overrides = {
        "gradient_num_trajectory": float(num_candidates),
        "gradient_spline_points": float(spline_points),
        "gradient_representation": float(representation),
    }
    overrides.update(extra_overrides or {})
    planner = GradientPlanner(
        sample_particle_model(),
        build_particle_task(risk=risk),
        build_planner_config(compute_backend=compute_backend, overrides=overrides),
        overrides=overrides,
        capacity=capacity,
    )
    planner.set_state(PARTICLE_START, 0.0, PARTICLE_GOAL)
    return planner

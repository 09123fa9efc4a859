"""Reference simulation models."""

from __future__ import annotations

from gradmpc.models.particle import (
    ParticleContext,
    ParticleModel,
    ParticleParameters,
    build_particle_task,
)

__all__ = [
    "ParticleContext",
    "ParticleModel",
    "ParticleParameters",
    "build_particle_task",
]

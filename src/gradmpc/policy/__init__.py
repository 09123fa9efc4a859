"""Spline policy representations."""

from __future__ import annotations

from gradmpc.policy.representation import (
    VALID_COMPUTE_BACKENDS,
    VALID_REPRESENTATIONS,
    CubicInterpolant,
    LinearInterpolant,
    SplineInterpolant,
    ZeroOrderHoldInterpolant,
    build_interpolant,
    resolve_representation,
)
from gradmpc.policy.spline_policy import SplinePolicy

__all__ = [
    "VALID_COMPUTE_BACKENDS",
    "VALID_REPRESENTATIONS",
    "CubicInterpolant",
    "LinearInterpolant",
    "SplineInterpolant",
    "SplinePolicy",
    "ZeroOrderHoldInterpolant",
    "build_interpolant",
    "resolve_representation",
]

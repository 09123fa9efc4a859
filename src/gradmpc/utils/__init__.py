"""Utility helpers."""

from gradmpc.utils.constants import MAX_CANDIDATE_COUNT, MAX_TRAJECTORY_HORIZON, SMALL_EPS
from gradmpc.utils.logging import configure_logging

__all__ = ["MAX_CANDIDATE_COUNT", "MAX_TRAJECTORY_HORIZON", "SMALL_EPS", "configure_logging"]

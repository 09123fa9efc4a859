"""Numerical constants and hard capacity bounds used across the library."""

SMALL_EPS: float = 1e-9
EXPECTED_DECREASE_EPS: float = 1e-16
RISK_NEUTRAL_TOLERANCE: float = 1e-6
MIN_RESAMPLE_TIME_SHIFT: float = 1e-5

MAX_TRAJECTORY_HORIZON: int = 512
MAX_CANDIDATE_COUNT: int = 128
MIN_SPLINE_POINTS: int = 2
MAX_SPLINE_POINTS: int = 32

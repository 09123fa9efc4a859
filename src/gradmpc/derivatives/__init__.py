"""Model and cost derivatives along a nominal trajectory."""

from __future__ import annotations

from gradmpc.derivatives.cost_derivatives import CostDerivatives
from gradmpc.derivatives.model_derivatives import VALID_FD_MODES, ModelDerivatives

__all__ = [
    "VALID_FD_MODES",
    "CostDerivatives",
    "ModelDerivatives",
]

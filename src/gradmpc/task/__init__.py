"""Task definitions: residuals, norms and risk-shaped costs."""

from __future__ import annotations

from gradmpc.task.norms import VALID_NORMS, norm_gradient, norm_hessian, norm_value
from gradmpc.task.task import CostTerm, Task, risk_transform

__all__ = [
    "VALID_NORMS",
    "CostTerm",
    "Task",
    "norm_gradient",
    "norm_hessian",
    "norm_value",
    "risk_transform",
]

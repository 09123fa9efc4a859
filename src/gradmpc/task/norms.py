"""Norm catalog for residual penalty terms.

Each norm maps a residual group ``x`` (shape ``(d,)``) to a scalar penalty
and provides its gradient and Hessian for Gauss-Newton cost derivatives.
"""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np

from gradmpc.utils.constants import SMALL_EPS
from gradmpc.utils.exceptions import TaskDefinitionError

VALID_NORMS = (
    "quadratic",
    "l2",
    "cosh",
    "power_loss",
    "smooth_abs_loss",
    "rectify_loss",
)
NORM_PARAMETER_COUNTS = {
    "quadratic": 0,
    "l2": 1,
    "cosh": 1,
    "power_loss": 1,
    "smooth_abs_loss": 1,
    "rectify_loss": 1,
}
DEFAULT_NORM_PARAMETERS: dict[str, tuple[float, ...]] = {
    "quadratic": (),
    "l2": (0.1,),
    "cosh": (0.1,),
    "power_loss": (2.0,),
    "smooth_abs_loss": (0.1,),
    "rectify_loss": (1.0,),
}


def resolve_norm_parameters(norm: str, parameters: Sequence[float]) -> tuple[float, ...]:
    """Validate norm parameters and fill in defaults.

    Args:
        norm: Norm name.
        parameters: User-supplied norm parameters, possibly empty.

    Returns:
        Parameter tuple with exactly the count the norm expects.

    Raises:
        gradmpc.utils.exceptions.TaskDefinitionError: If the norm is unknown,
            the parameter count is wrong, or a shape parameter is not
            positive.
    """
    if norm not in VALID_NORMS:
        msg = f"norm must be one of {VALID_NORMS}, got: {norm!r}"
        raise TaskDefinitionError(msg)
    values = tuple(float(value) for value in parameters)
    if not values:
        values = DEFAULT_NORM_PARAMETERS[norm]
    expected = NORM_PARAMETER_COUNTS[norm]
    if len(values) != expected:
        msg = f"Norm {norm!r} expects {expected} parameter(s), got {len(values)}."
        raise TaskDefinitionError(msg)
    if expected and values[0] <= 0.0:
        msg = f"Norm {norm!r} parameter must be positive, got: {values[0]}"
        raise TaskDefinitionError(msg)
    return values


def norm_value(norm: str, x: np.ndarray, parameters: Sequence[float]) -> float:
    """Evaluate a norm penalty.

    Args:
        norm: Norm name.
        x: Residual group.
        parameters: Norm parameters (see ``DEFAULT_NORM_PARAMETERS``).

    Returns:
        Scalar penalty.
    """
    if norm == "quadratic":
        return float(0.5 * np.dot(x, x))
    p = parameters[0]
    if norm == "l2":
        return float(np.sqrt(np.dot(x, x) + p * p) - p)
    if norm == "cosh":
        return float(p * p * np.sum(np.cosh(x / p) - 1.0))
    if norm == "power_loss":
        return float(np.sum(np.abs(x) ** p))
    if norm == "smooth_abs_loss":
        return float(np.sum(np.sqrt(x * x + p * p) - p))
    return float(p * np.sum(np.logaddexp(0.0, x / p)))


def norm_gradient(norm: str, x: np.ndarray, parameters: Sequence[float]) -> np.ndarray:
    """Evaluate the norm gradient with respect to the residual group.

    Args:
        norm: Norm name.
        x: Residual group.
        parameters: Norm parameters.

    Returns:
        Gradient, same shape as ``x``.
    """
    if norm == "quadratic":
        return np.array(x, dtype=float)
    p = parameters[0]
    if norm == "l2":
        return x / np.sqrt(np.dot(x, x) + p * p)
    if norm == "cosh":
        return p * np.sinh(x / p)
    if norm == "power_loss":
        magnitude = np.maximum(np.abs(x), SMALL_EPS)
        return p * magnitude ** (p - 1.0) * np.sign(x)
    if norm == "smooth_abs_loss":
        return x / np.sqrt(x * x + p * p)
    return 0.5 * (1.0 + np.tanh(0.5 * x / p))


def norm_hessian(norm: str, x: np.ndarray, parameters: Sequence[float]) -> np.ndarray:
    """Evaluate the norm Hessian with respect to the residual group.

    Args:
        norm: Norm name.
        x: Residual group.
        parameters: Norm parameters.

    Returns:
        Hessian, shape ``(d, d)``.
    """
    size = x.shape[0]
    if norm == "quadratic":
        return np.eye(size)
    p = parameters[0]
    if norm == "l2":
        scale = np.sqrt(np.dot(x, x) + p * p)
        direction = x / scale
        return (np.eye(size) - np.outer(direction, direction)) / scale
    if norm == "cosh":
        return np.diag(np.cosh(x / p))
    if norm == "power_loss":
        magnitude = np.maximum(np.abs(x), SMALL_EPS)
        return np.diag(p * (p - 1.0) * magnitude ** (p - 2.0))
    if norm == "smooth_abs_loss":
        return np.diag(p * p / (x * x + p * p) ** 1.5)
    sigmoid = 0.5 * (1.0 + np.tanh(0.5 * x / p))
    return np.diag(sigmoid * (1.0 - sigmoid) / p)

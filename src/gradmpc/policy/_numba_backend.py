"""Numba-backed spline basis-weight kernel."""

from __future__ import annotations

import threading
from typing import Any

import numpy as np

from gradmpc.utils.constants import SMALL_EPS
from gradmpc.utils.exceptions import ConfigurationError

_COMPILED_BASIS_KERNEL: Any | None = None
_COMPILE_LOCK = threading.Lock()


def _require_numba() -> Any:
    """Import numba lazily and fail with a configuration-level message.

    Returns:
        Imported ``numba`` module.

    Raises:
        gradmpc.utils.exceptions.ConfigurationError: If numba is not installed.
    """
    try:
        import numba  # type: ignore[import-untyped]
    except ModuleNotFoundError as exc:
        msg = (
            "Numba backend requested but numba is not installed. "
            "Install with `pip install -e '.[numba]'`."
        )
        raise ConfigurationError(msg) from exc
    return numba


def _basis_weights_kernel(
    representation_code: int,
    query_times: np.ndarray,
    knot_times: np.ndarray,
    min_spacing: float,
) -> np.ndarray:
    """Evaluate spline basis weights with explicit loops.

    This function is compiled with ``numba.njit`` at runtime.

    Args:
        representation_code: ``0`` zero-order hold, ``1`` linear, ``2`` cubic.
        query_times: Query times, shape ``(q,)``.
        knot_times: Strictly increasing knot times, shape ``(p,)``.
        min_spacing: Lower bound applied to knot spacings.

    Returns:
        Basis-weight matrix, shape ``(q, p)``.
    """
    num_queries = query_times.shape[0]
    num_knots = knot_times.shape[0]
    last = num_knots - 1
    weights = np.zeros((num_queries, num_knots), dtype=np.float64)

    for row in range(num_queries):
        value = query_times[row]

        if value <= knot_times[0]:
            lower = 0
            upper = 0
        elif value >= knot_times[last]:
            lower = last
            upper = last
        else:
            lower = 0
            upper = last
            while upper - lower > 1:
                middle = (lower + upper) // 2
                if knot_times[middle] <= value:
                    lower = middle
                else:
                    upper = middle
            if knot_times[lower] == value:
                upper = lower

        if representation_code == 0:
            weights[row, lower] = 1.0
            continue

        span = knot_times[upper] - knot_times[lower]
        tau = 0.0
        if upper != lower:
            tau = (value - knot_times[lower]) / max(span, min_spacing)

        if representation_code == 1:
            weights[row, lower] += 1.0 - tau
            weights[row, upper] += tau
            continue

        tau2 = tau * tau
        tau3 = tau2 * tau
        c0 = 2.0 * tau3 - 3.0 * tau2 + 1.0
        c1 = tau3 - 2.0 * tau2 + tau
        c2 = -2.0 * tau3 + 3.0 * tau2
        c3 = tau3 - tau2
        weights[row, lower] += c0
        weights[row, upper] += c2

        for side in range(2):
            knot = lower if side == 0 else upper
            scale = span * (c1 if side == 0 else c3)
            if scale == 0.0:
                continue
            if knot == 0:
                h = max(knot_times[1] - knot_times[0], min_spacing)
                weights[row, 0] += -scale / h
                weights[row, 1] += scale / h
            elif knot == last:
                h = max(knot_times[last] - knot_times[last - 1], min_spacing)
                weights[row, last - 1] += -scale / h
                weights[row, last] += scale / h
            else:
                left = max(knot_times[knot] - knot_times[knot - 1], min_spacing)
                right = max(knot_times[knot + 1] - knot_times[knot], min_spacing)
                weights[row, knot - 1] += -0.5 * scale / left
                weights[row, knot] += scale * (0.5 / left - 0.5 / right)
                weights[row, knot + 1] += 0.5 * scale / right

    return weights


def _compiled_basis_kernel() -> Any:
    """Return cached ``njit``-compiled basis-weight kernel callable.

    Returns:
        Compiled numba kernel function.
    """
    global _COMPILED_BASIS_KERNEL
    with _COMPILE_LOCK:
        if _COMPILED_BASIS_KERNEL is None:
            numba = _require_numba()
            _COMPILED_BASIS_KERNEL = numba.njit(cache=False)(_basis_weights_kernel)
    return _COMPILED_BASIS_KERNEL


def basis_weights_numba(
    representation_code: int,
    query_times: np.ndarray,
    knot_times: np.ndarray,
) -> np.ndarray:
    """Compute spline basis weights with the compiled kernel.

    Args:
        representation_code: ``0`` zero-order hold, ``1`` linear, ``2`` cubic.
        query_times: Query times, shape ``(q,)``.
        knot_times: Strictly increasing knot times, shape ``(p,)``.

    Returns:
        Basis-weight matrix, shape ``(q, p)``.
    """
    kernel = _compiled_basis_kernel()
    return np.asarray(
        kernel(
            int(representation_code),
            np.ascontiguousarray(query_times, dtype=np.float64),
            np.ascontiguousarray(knot_times, dtype=np.float64),
            float(SMALL_EPS),
        ),
        dtype=float,
    )

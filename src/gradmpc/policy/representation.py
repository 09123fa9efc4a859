"""Spline interpolants mapping knot actions to actions at arbitrary times."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import ClassVar

import numpy as np

from gradmpc.utils.constants import SMALL_EPS
from gradmpc.utils.exceptions import ConfigurationError

DEFAULT_REPRESENTATION = "cubic"
VALID_REPRESENTATIONS = ("zero", "linear", "cubic")
REPRESENTATION_CODES = {"zero": 0, "linear": 1, "cubic": 2}
DEFAULT_COMPUTE_BACKEND = "numpy"
VALID_COMPUTE_BACKENDS = ("numpy", "numba")


def find_intervals(
    query_times: np.ndarray,
    knot_times: np.ndarray,
) -> tuple[np.ndarray, np.ndarray]:
    """Locate bracketing knot indices for each query time.

    Queries before the first knot or after the last knot clamp to the
    boundary knot. Queries that hit a knot exactly return that knot twice.

    Args:
        query_times: Query times, shape ``(q,)``.
        knot_times: Strictly increasing knot times, shape ``(p,)``.

    Returns:
        Tuple ``(lower, upper)`` of integer index arrays, shape ``(q,)``.
    """
    queries = np.asarray(query_times, dtype=float).reshape(-1)
    knots = np.asarray(knot_times, dtype=float)
    last = knots.size - 1

    upper = np.searchsorted(knots, queries, side="right")
    lower = np.clip(upper - 1, 0, last)
    upper = np.clip(upper, 0, last)

    collapse = (knots[lower] == queries) | (queries <= knots[0]) | (queries >= knots[last])
    upper = np.where(collapse, lower, upper)
    return lower.astype(np.int64), upper.astype(np.int64)


def finite_difference_slope_operator(knot_times: np.ndarray) -> np.ndarray:
    """Build the linear map from knot values to finite-difference knot slopes.

    Boundary knots use one-sided secants, interior knots the mean of the two
    adjacent secants.

    Args:
        knot_times: Strictly increasing knot times, shape ``(p,)``.

    Returns:
        Slope operator ``S`` with ``slopes = S @ values``, shape ``(p, p)``.
    """
    knots = np.asarray(knot_times, dtype=float)
    count = knots.size
    spacing = np.maximum(np.diff(knots), SMALL_EPS)
    operator = np.zeros((count, count), dtype=float)

    operator[0, 0] = -1.0 / spacing[0]
    operator[0, 1] = 1.0 / spacing[0]
    operator[-1, -2] = -1.0 / spacing[-1]
    operator[-1, -1] = 1.0 / spacing[-1]

    interior = np.arange(1, count - 1)
    if interior.size:
        left = spacing[interior - 1]
        right = spacing[interior]
        operator[interior, interior - 1] = -0.5 / left
        operator[interior, interior] = 0.5 / left - 0.5 / right
        operator[interior, interior + 1] = 0.5 / right
    return operator


class SplineInterpolant(ABC):
    """Interpolation scheme shared by policy evaluation and gradient mapping.

    Every scheme is linear in the knot values, so it is fully described by
    its basis-weight matrix ``W`` with ``actions = W @ knot_values``.
    """

    name: ClassVar[str]
    code: ClassVar[int]

    def __init__(self, compute_backend: str = DEFAULT_COMPUTE_BACKEND) -> None:
        """Initialize interpolant backend selection.

        Args:
            compute_backend: Basis-weight backend (``numpy`` or ``numba``).

        Raises:
            gradmpc.utils.exceptions.ConfigurationError: If the backend is
                not supported.
        """
        if compute_backend not in VALID_COMPUTE_BACKENDS:
            msg = (
                "compute_backend must be one of "
                f"{VALID_COMPUTE_BACKENDS}, got: {compute_backend!r}"
            )
            raise ConfigurationError(msg)
        self.compute_backend = compute_backend

    @abstractmethod
    def _basis_weights_numpy(
        self,
        query_times: np.ndarray,
        knot_times: np.ndarray,
    ) -> np.ndarray:
        """Compute basis weights with vectorized NumPy operations.

        Args:
            query_times: Query times, shape ``(q,)``.
            knot_times: Knot times, shape ``(p,)``.

        Returns:
            Basis-weight matrix, shape ``(q, p)``.
        """

    def basis_weights(self, query_times: np.ndarray, knot_times: np.ndarray) -> np.ndarray:
        """Return the linear map from knot values to values at query times.

        Args:
            query_times: Query times, shape ``(q,)``.
            knot_times: Knot times, shape ``(p,)``.

        Returns:
            Basis-weight matrix, shape ``(q, p)``.
        """
        queries = np.asarray(query_times, dtype=float).reshape(-1)
        knots = np.asarray(knot_times, dtype=float)
        if self.compute_backend == "numba":
            from gradmpc.policy._numba_backend import basis_weights_numba

            return basis_weights_numba(self.code, queries, knots)
        return self._basis_weights_numpy(queries, knots)

    def evaluate(
        self,
        query_time: float,
        knot_times: np.ndarray,
        knot_values: np.ndarray,
    ) -> np.ndarray:
        """Evaluate the interpolant at one time.

        Args:
            query_time: Query time.
            knot_times: Knot times, shape ``(p,)``.
            knot_values: Knot values, shape ``(p, m)``.

        Returns:
            Interpolated value, shape ``(m,)``.
        """
        weights = self.basis_weights(np.array([query_time], dtype=float), knot_times)
        return np.asarray(weights[0] @ knot_values, dtype=float)

    def evaluate_many(
        self,
        query_times: np.ndarray,
        knot_times: np.ndarray,
        knot_values: np.ndarray,
    ) -> np.ndarray:
        """Evaluate the interpolant at several times.

        Args:
            query_times: Query times, shape ``(q,)``.
            knot_times: Knot times, shape ``(p,)``.
            knot_values: Knot values, shape ``(p, m)``.

        Returns:
            Interpolated values, shape ``(q, m)``.
        """
        weights = self.basis_weights(query_times, knot_times)
        return np.asarray(weights @ knot_values, dtype=float)

    def resample_values(
        self,
        new_knot_times: np.ndarray,
        knot_times: np.ndarray,
        knot_values: np.ndarray,
    ) -> np.ndarray:
        """Query the current interpolant at a new knot grid.

        Args:
            new_knot_times: Knot times of the new grid, shape ``(p,)``.
            knot_times: Current knot times, shape ``(p,)``.
            knot_values: Current knot values, shape ``(p, m)``.

        Returns:
            Knot values for the new grid, shape ``(p, m)``.
        """
        return self.evaluate_many(new_knot_times, knot_times, knot_values)

    def sensitivity_matrix(
        self,
        query_times: np.ndarray,
        knot_times: np.ndarray,
        action_dim: int,
    ) -> np.ndarray:
        """Return the Jacobian of stacked query actions w.r.t. stacked knot actions.

        Args:
            query_times: Query times, shape ``(q,)``.
            knot_times: Knot times, shape ``(p,)``.
            action_dim: Action dimension ``m``.

        Returns:
            Sensitivity matrix, shape ``(q * m, p * m)``.
        """
        weights = self.basis_weights(query_times, knot_times)
        return np.kron(weights, np.eye(action_dim))


class ZeroOrderHoldInterpolant(SplineInterpolant):
    """Piecewise-constant hold of the latest knot at or before the query."""

    name = "zero"
    code = 0

    def _basis_weights_numpy(
        self,
        query_times: np.ndarray,
        knot_times: np.ndarray,
    ) -> np.ndarray:
        """Compute zero-order-hold basis weights.

        Args:
            query_times: Query times, shape ``(q,)``.
            knot_times: Knot times, shape ``(p,)``.

        Returns:
            Basis-weight matrix, shape ``(q, p)``.
        """
        lower, _ = find_intervals(query_times, knot_times)
        weights = np.zeros((query_times.size, knot_times.size), dtype=float)
        weights[np.arange(query_times.size), lower] = 1.0
        return weights


class LinearInterpolant(SplineInterpolant):
    """Linear interpolation between bracketing knots."""

    name = "linear"
    code = 1

    def _basis_weights_numpy(
        self,
        query_times: np.ndarray,
        knot_times: np.ndarray,
    ) -> np.ndarray:
        """Compute linear-interpolation basis weights.

        Args:
            query_times: Query times, shape ``(q,)``.
            knot_times: Knot times, shape ``(p,)``.

        Returns:
            Basis-weight matrix, shape ``(q, p)``.
        """
        lower, upper = find_intervals(query_times, knot_times)
        span = knot_times[upper] - knot_times[lower]
        tau = np.where(
            upper != lower,
            (query_times - knot_times[lower]) / np.maximum(span, SMALL_EPS),
            0.0,
        )
        rows = np.arange(query_times.size)
        weights = np.zeros((query_times.size, knot_times.size), dtype=float)
        np.add.at(weights, (rows, lower), 1.0 - tau)
        np.add.at(weights, (rows, upper), tau)
        return weights


class CubicInterpolant(SplineInterpolant):
    """Cubic Hermite interpolation with finite-difference knot slopes."""

    name = "cubic"
    code = 2

    def _basis_weights_numpy(
        self,
        query_times: np.ndarray,
        knot_times: np.ndarray,
    ) -> np.ndarray:
        """Compute cubic Hermite basis weights.

        Args:
            query_times: Query times, shape ``(q,)``.
            knot_times: Knot times, shape ``(p,)``.

        Returns:
            Basis-weight matrix, shape ``(q, p)``.
        """
        lower, upper = find_intervals(query_times, knot_times)
        span = knot_times[upper] - knot_times[lower]
        tau = np.where(
            upper != lower,
            (query_times - knot_times[lower]) / np.maximum(span, SMALL_EPS),
            0.0,
        )
        tau2 = tau * tau
        tau3 = tau2 * tau
        c0 = 2.0 * tau3 - 3.0 * tau2 + 1.0
        c1 = tau3 - 2.0 * tau2 + tau
        c2 = -2.0 * tau3 + 3.0 * tau2
        c3 = tau3 - tau2

        slopes = finite_difference_slope_operator(knot_times)
        rows = np.arange(query_times.size)
        weights = (span * c1)[:, None] * slopes[lower] + (span * c3)[:, None] * slopes[upper]
        np.add.at(weights, (rows, lower), c0)
        np.add.at(weights, (rows, upper), c2)
        return weights


_INTERPOLANT_TYPES: dict[str, type[SplineInterpolant]] = {
    "zero": ZeroOrderHoldInterpolant,
    "linear": LinearInterpolant,
    "cubic": CubicInterpolant,
}


def resolve_representation(representation: str | int) -> str:
    """Normalize a representation name or numeric code.

    Args:
        representation: Name (``zero``, ``linear``, ``cubic``) or code
            (``0``, ``1``, ``2``).

    Returns:
        Canonical representation name.

    Raises:
        gradmpc.utils.exceptions.ConfigurationError: If the identifier is not
            a known representation.
    """
    if isinstance(representation, (int, np.integer)) and not isinstance(representation, bool):
        for name, code in REPRESENTATION_CODES.items():
            if code == int(representation):
                return name
    elif representation in VALID_REPRESENTATIONS:
        return str(representation)
    msg = (
        "representation must be one of "
        f"{VALID_REPRESENTATIONS} or codes (0, 1, 2), got: {representation!r}"
    )
    raise ConfigurationError(msg)


def build_interpolant(
    representation: str | int = DEFAULT_REPRESENTATION,
    compute_backend: str = DEFAULT_COMPUTE_BACKEND,
) -> SplineInterpolant:
    """Build the interpolant for a representation tag.

    Args:
        representation: Representation name or numeric code.
        compute_backend: Basis-weight backend (``numpy`` or ``numba``).

    Returns:
        Interpolant instance.
    """
    name = resolve_representation(representation)
    return _INTERPOLANT_TYPES[name](compute_backend=compute_backend)

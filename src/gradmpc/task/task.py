"""Task definition: residuals, norm catalog and risk-shaped step cost."""

from __future__ import annotations

import math
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass

import numpy as np

from gradmpc.task.norms import norm_value, resolve_norm_parameters
from gradmpc.utils.constants import RISK_NEUTRAL_TOLERANCE
from gradmpc.utils.exceptions import TaskDefinitionError

DEFAULT_RISK = 1.0
RESIDUAL_OVERRIDE_PREFIX = "residual_"

ResidualFunction = Callable[[np.ndarray, np.ndarray, np.ndarray, np.ndarray], np.ndarray]
TransitionFunction = Callable[[np.ndarray, float, np.ndarray], np.ndarray]
TraceFunction = Callable[[np.ndarray, np.ndarray], np.ndarray]


@dataclass(frozen=True)
class CostTerm:
    """One residual group of the cost with its penalty.

    Args:
        name: Human-readable term name.
        dim: Number of residual entries in the group.
        norm: Norm name from :data:`gradmpc.task.norms.VALID_NORMS`.
        weight: Non-negative term weight.
        parameters: Norm parameters; empty selects the norm defaults.
    """

    name: str
    dim: int
    norm: str = "quadratic"
    weight: float = 1.0
    parameters: tuple[float, ...] = ()

    def validate(self) -> None:
        """Validate term layout and weight.

        Raises:
            gradmpc.utils.exceptions.TaskDefinitionError: If the dimension or
                weight is invalid, or the norm parameters are malformed.
        """
        if self.dim < 1:
            msg = f"Cost term {self.name!r} must have positive dim, got: {self.dim}"
            raise TaskDefinitionError(msg)
        if self.weight < 0.0 or not math.isfinite(self.weight):
            msg = f"Cost term {self.name!r} weight must be finite and >= 0, got: {self.weight}"
            raise TaskDefinitionError(msg)
        resolve_norm_parameters(self.norm, self.parameters)


def risk_transform(cost: float, risk: float) -> float:
    """Apply the risk-sensitive exponential shaping to a raw cost.

    Args:
        cost: Raw weighted cost ``C``.
        risk: Risk parameter. Positive is risk-averse, negative risk-seeking.

    Returns:
        ``(exp(risk * C) - 1) / risk``, or ``C`` when ``risk`` is near zero.
    """
    if abs(risk) < RISK_NEUTRAL_TOLERANCE:
        return float(cost)
    return float(np.expm1(risk * cost) / risk)


class Task:
    """Cost definition consumed by rollouts and cost derivatives.

    The residual is the leading ``num_residual`` sensor entries unless a
    custom residual function is supplied.

    Args:
        cost_terms: Ordered residual groups.
        risk: Risk parameter of the exponential cost shaping.
        residual: Optional residual function
            ``(state, action, sensors, residual_parameters) -> residual``.
        residual_parameters: Named scalar parameters passed to the residual.
        transition: Optional hook ``(state, time, exogenous) -> exogenous``
            called once per rollout step before the action is queried.
        trace: Optional function ``(state, sensors) -> point`` producing
            trace points for visualization consumers.
    """

    def __init__(
        self,
        cost_terms: Sequence[CostTerm],
        *,
        risk: float = DEFAULT_RISK,
        residual: ResidualFunction | None = None,
        residual_parameters: Mapping[str, float] | None = None,
        transition: TransitionFunction | None = None,
        trace: TraceFunction | None = None,
    ) -> None:
        """Build the task and validate the norm catalog.

        Args:
            cost_terms: Ordered residual groups.
            risk: Risk parameter.
            residual: Optional custom residual function.
            residual_parameters: Named scalar residual parameters.
            transition: Optional exogenous transition hook.
            trace: Optional trace-point function.

        Raises:
            gradmpc.utils.exceptions.TaskDefinitionError: If the catalog is
                empty or any term is invalid.
        """
        if not cost_terms:
            msg = "Task needs at least one cost term."
            raise TaskDefinitionError(msg)
        for term in cost_terms:
            term.validate()
        if not math.isfinite(risk):
            msg = f"risk must be finite, got: {risk}"
            raise TaskDefinitionError(msg)

        self.terms = tuple(cost_terms)
        self.risk = float(risk)
        self.norm_parameters = tuple(
            resolve_norm_parameters(term.norm, term.parameters) for term in self.terms
        )
        parameters = dict(residual_parameters or {})
        self.residual_parameter_names = tuple(parameters)
        self.residual_parameters = np.array(list(parameters.values()), dtype=float)
        self._residual = residual
        self._transition = transition
        self._trace = trace

        offsets = np.cumsum([0] + [term.dim for term in self.terms])
        self.residual_slices = tuple(
            slice(int(start), int(stop)) for start, stop in zip(offsets[:-1], offsets[1:])
        )

    @property
    def num_residual(self) -> int:
        """Return the total residual dimension.

        Returns:
            Sum of cost-term dimensions.
        """
        return self.residual_slices[-1].stop

    @property
    def num_norms(self) -> int:
        """Return the number of cost terms.

        Returns:
            Norm catalog length.
        """
        return len(self.terms)

    @property
    def weights(self) -> np.ndarray:
        """Return the cost-term weights.

        Returns:
            Weight vector, shape ``(num_norms,)``.
        """
        return np.array([term.weight for term in self.terms], dtype=float)

    @property
    def has_custom_residual(self) -> bool:
        """Return whether the residual is computed by a custom function.

        Returns:
            ``True`` when a residual function was supplied.
        """
        return self._residual is not None

    def validate(self, sensor_dim: int) -> None:
        """Validate the task against a model sensor layout.

        Args:
            sensor_dim: Sensor dimension of the simulation model.

        Raises:
            gradmpc.utils.exceptions.TaskDefinitionError: If the default
                residual would need more sensors than the model provides.
        """
        if self._residual is None and sensor_dim < self.num_residual:
            msg = (
                f"Task residual needs {self.num_residual} leading sensors, "
                f"model provides {sensor_dim}."
            )
            raise TaskDefinitionError(msg)

    def residual(self, state: np.ndarray, action: np.ndarray, sensors: np.ndarray) -> np.ndarray:
        """Compute the residual vector for one timestep.

        Args:
            state: State vector.
            action: Action vector.
            sensors: Sensor vector.

        Returns:
            Residual vector, shape ``(num_residual,)``.

        Raises:
            gradmpc.utils.exceptions.TaskDefinitionError: If a custom residual
                returns the wrong size.
        """
        if self._residual is None:
            return np.array(sensors[: self.num_residual], dtype=float)
        value = np.asarray(
            self._residual(state, action, sensors, self.residual_parameters),
            dtype=float,
        ).reshape(-1)
        if value.size != self.num_residual:
            msg = f"Residual function returned {value.size} entries, expected {self.num_residual}."
            raise TaskDefinitionError(msg)
        return value

    def measurement(
        self,
        state: np.ndarray,
        action: np.ndarray,
        sensors: np.ndarray,
    ) -> np.ndarray:
        """Return the differentiated output whose leading rows are the residual.

        With the default residual this is the sensor vector itself. With a
        custom residual the residual is stacked ahead of the sensors.

        Args:
            state: State vector.
            action: Action vector.
            sensors: Sensor vector.

        Returns:
            Measurement vector.
        """
        if self._residual is None:
            return sensors
        return np.concatenate((self.residual(state, action, sensors), sensors))

    def cost_terms(self, residual: np.ndarray) -> np.ndarray:
        """Return the weighted penalty of each cost term.

        Args:
            residual: Residual vector.

        Returns:
            Weighted terms, shape ``(num_norms,)``.
        """
        terms = np.empty(self.num_norms, dtype=float)
        for index, (term, block, parameters) in enumerate(
            zip(self.terms, self.residual_slices, self.norm_parameters)
        ):
            terms[index] = term.weight * norm_value(term.norm, residual[block], parameters)
        return terms

    def cost_value(self, residual: np.ndarray) -> float:
        """Return the risk-shaped scalar step cost.

        Args:
            residual: Residual vector.

        Returns:
            ``risk_transform(sum(cost_terms(residual)), risk)``.
        """
        return risk_transform(float(np.sum(self.cost_terms(residual))), self.risk)

    def transition(self, state: np.ndarray, time: float, exogenous: np.ndarray) -> np.ndarray:
        """Apply the exogenous transition hook.

        Args:
            state: Current state.
            time: Current time.
            exogenous: Current exogenous signal.

        Returns:
            Possibly updated exogenous signal.
        """
        if self._transition is None:
            return exogenous
        return np.asarray(self._transition(state, time, exogenous), dtype=float)

    def trace(self, state: np.ndarray, sensors: np.ndarray) -> np.ndarray | None:
        """Return the trace point for one timestep.

        Args:
            state: State vector.
            sensors: Sensor vector.

        Returns:
            Trace point, or ``None`` when the task defines no trace.
        """
        if self._trace is None:
            return None
        return np.asarray(self._trace(state, sensors), dtype=float).reshape(-1)

    def apply_overrides(self, overrides: Mapping[str, float]) -> None:
        """Update residual parameters from ``residual_``-prefixed overrides.

        Args:
            overrides: Numeric overrides keyed by name. Keys are matched as
                ``residual_<parameter name>``; others are ignored.
        """
        for index, name in enumerate(self.residual_parameter_names):
            key = f"{RESIDUAL_OVERRIDE_PREFIX}{name}"
            if key in overrides:
                self.residual_parameters[index] = float(overrides[key])

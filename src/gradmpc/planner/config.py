"""Planner configuration dataclasses."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass

from gradmpc.derivatives.model_derivatives import (
    DEFAULT_FD_MODE,
    DEFAULT_FD_TOLERANCE,
    VALID_FD_MODES,
)
from gradmpc.policy.representation import (
    DEFAULT_COMPUTE_BACKEND,
    DEFAULT_REPRESENTATION,
    VALID_COMPUTE_BACKENDS,
    resolve_representation,
)
from gradmpc.policy.spline_policy import DEFAULT_NUM_SPLINE_POINTS
from gradmpc.utils.constants import MAX_CANDIDATE_COUNT, MAX_SPLINE_POINTS, MIN_SPLINE_POINTS
from gradmpc.utils.exceptions import ConfigurationError

DEFAULT_NUM_CANDIDATES = 32
DEFAULT_MAX_ITERATIONS = 1
DEFAULT_MIN_STEP_SIZE = 1e-8
DEFAULT_TIMESTEP_POWER = 1.0
DEFAULT_CLAMP_ACTIONS = True

OVERRIDE_NUM_CANDIDATES = "gradient_num_trajectory"
OVERRIDE_SPLINE_POINTS = "gradient_spline_points"
OVERRIDE_REPRESENTATION = "gradient_representation"
OVERRIDE_MIN_STEP_SIZE = "gradient_min_step_size"
OVERRIDE_FD_TOLERANCE = "gradient_fd_tolerance"
OVERRIDE_FD_MODE = "gradient_fd_mode"
OVERRIDE_MAX_ITERATIONS = "gradient_max_iterations"
OVERRIDE_TIMESTEP_POWER = "gradient_timestep_power"


class NumericOverrides(Mapping[str, float]):
    """Read-only name-to-number mapping consulted for planner settings.

    Args:
        values: Numeric values keyed by setting name.
    """

    def __init__(self, values: Mapping[str, float] | None = None) -> None:
        """Copy the provided values.

        Args:
            values: Numeric values keyed by setting name.

        Raises:
            gradmpc.utils.exceptions.ConfigurationError: If any value is not
                numeric.
        """
        copied: dict[str, float] = {}
        for name, value in (values or {}).items():
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                msg = f"Override {name!r} must be numeric, got: {value!r}"
                raise ConfigurationError(msg)
            copied[str(name)] = float(value)
        self._values = copied

    def __getitem__(self, name: str) -> float:
        """Return the override value.

        Args:
            name: Setting name.

        Returns:
            Numeric value.
        """
        return self._values[name]

    def __iter__(self) -> Iterator[str]:
        """Iterate over override names.

        Returns:
            Iterator of names.
        """
        return iter(self._values)

    def __len__(self) -> int:
        """Return the number of overrides.

        Returns:
            Override count.
        """
        return len(self._values)

    def number_or_default(self, default: float, name: str) -> float:
        """Return the override for ``name`` or ``default`` when absent.

        Args:
            default: Fallback value.
            name: Setting name.

        Returns:
            Override value or ``default``.
        """
        return self._values.get(name, default)


@dataclass(frozen=True)
class PlannerNumerics:
    """Numerical controls for the gradient planner.

    Args:
        num_candidates: Number of line-search candidates, including the
            zero-step candidate.
        num_spline_points: Number of policy knots.
        max_iterations: Gradient iterations per planning pass.
        min_step_size: Smallest non-zero line-search step.
        fd_tolerance: Finite-difference perturbation size.
        fd_mode: Finite-difference scheme (``forward`` or ``central``).
        timestep_power: Knot-time warp exponent for policy resampling.
    """

    num_candidates: int = DEFAULT_NUM_CANDIDATES
    num_spline_points: int = DEFAULT_NUM_SPLINE_POINTS
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    min_step_size: float = DEFAULT_MIN_STEP_SIZE
    fd_tolerance: float = DEFAULT_FD_TOLERANCE
    fd_mode: str = DEFAULT_FD_MODE
    timestep_power: float = DEFAULT_TIMESTEP_POWER

    def validate(self) -> None:
        """Validate numerical planner settings.

        Raises:
            gradmpc.utils.exceptions.ConfigurationError: If any value violates
                its bound.
        """
        if not 2 <= self.num_candidates <= MAX_CANDIDATE_COUNT:
            msg = (
                f"num_candidates must be in [2, {MAX_CANDIDATE_COUNT}], "
                f"got: {self.num_candidates}"
            )
            raise ConfigurationError(msg)
        if not MIN_SPLINE_POINTS <= self.num_spline_points <= MAX_SPLINE_POINTS:
            msg = (
                f"num_spline_points must be in [{MIN_SPLINE_POINTS}, {MAX_SPLINE_POINTS}], "
                f"got: {self.num_spline_points}"
            )
            raise ConfigurationError(msg)
        if self.max_iterations < 1:
            msg = "max_iterations must be at least 1"
            raise ConfigurationError(msg)
        if not 0.0 < self.min_step_size < 1.0:
            msg = f"min_step_size must be in (0, 1), got: {self.min_step_size}"
            raise ConfigurationError(msg)
        if self.fd_tolerance <= 0.0:
            msg = "fd_tolerance must be positive"
            raise ConfigurationError(msg)
        if self.fd_mode not in VALID_FD_MODES:
            msg = f"fd_mode must be one of {VALID_FD_MODES}, got: {self.fd_mode!r}"
            raise ConfigurationError(msg)
        if self.timestep_power <= 0.0:
            msg = "timestep_power must be positive"
            raise ConfigurationError(msg)


@dataclass(frozen=True)
class PlannerRuntime:
    """Runtime controls for policy evaluation.

    Args:
        representation: Spline representation (``zero``, ``linear`` or
            ``cubic``).
        compute_backend: Basis-weight backend (``numpy`` or ``numba``).
        clamp_actions: Clamp policy actions to the model's action limits.
    """

    representation: str = DEFAULT_REPRESENTATION
    compute_backend: str = DEFAULT_COMPUTE_BACKEND
    clamp_actions: bool = DEFAULT_CLAMP_ACTIONS

    def validate(self) -> None:
        """Validate runtime controls.

        Raises:
            gradmpc.utils.exceptions.ConfigurationError: If the representation
                or backend is unknown, or numba is requested but missing.
        """
        resolve_representation(self.representation)
        if self.compute_backend not in VALID_COMPUTE_BACKENDS:
            msg = (
                "compute_backend must be one of "
                f"{VALID_COMPUTE_BACKENDS}, got: {self.compute_backend!r}"
            )
            raise ConfigurationError(msg)
        if not isinstance(self.clamp_actions, bool):
            msg = "clamp_actions must be a boolean"
            raise ConfigurationError(msg)
        if self.compute_backend == "numba":
            self._validate_numba_runtime()

    def _validate_numba_runtime(self) -> None:
        """Validate availability of numba runtime.

        Raises:
            gradmpc.utils.exceptions.ConfigurationError: If numba is not
                installed in the active environment.
        """
        try:
            import numba  # type: ignore[import-untyped]  # noqa: F401
        except ModuleNotFoundError as exc:
            msg = (
                "compute_backend='numba' requires Numba. "
                "Install with `pip install -e '.[numba]'` or add `numba` to your environment."
            )
            raise ConfigurationError(msg) from exc


@dataclass(frozen=True)
class PlannerConfig:
    """Top-level planner config composed of numerics and runtime.

    Args:
        numerics: Line-search, spline and finite-difference controls.
        runtime: Policy evaluation controls.
    """

    numerics: PlannerNumerics
    runtime: PlannerRuntime

    def validate(self) -> None:
        """Validate combined planner settings.

        Raises:
            gradmpc.utils.exceptions.ConfigurationError: If numerics or
                runtime settings violate their bounds.
        """
        self.numerics.validate()
        self.runtime.validate()


def build_planner_config(
    numerics: PlannerNumerics | None = None,
    representation: str = DEFAULT_REPRESENTATION,
    compute_backend: str = DEFAULT_COMPUTE_BACKEND,
    clamp_actions: bool = DEFAULT_CLAMP_ACTIONS,
    overrides: Mapping[str, float] | None = None,
) -> PlannerConfig:
    """Build a validated planner config.

    Overrides use the ``gradient_*`` names and take precedence over
    ``numerics`` and ``representation``. ``gradient_fd_mode`` is ``0`` for
    forward and ``1`` for central differences; ``gradient_representation``
    uses the codes ``0`` (zero), ``1`` (linear) and ``2`` (cubic).

    Args:
        numerics: Optional numerical settings. Defaults to
            :class:`PlannerNumerics`.
        representation: Spline representation name.
        compute_backend: Basis-weight backend (``numpy`` or ``numba``).
        clamp_actions: Clamp policy actions to model action limits.
        overrides: Optional numeric overrides.

    Returns:
        Fully validated planner configuration.

    Raises:
        gradmpc.utils.exceptions.ConfigurationError: If any assembled setting
            is invalid.
    """
    base = numerics or PlannerNumerics()
    values = overrides if isinstance(overrides, NumericOverrides) else NumericOverrides(overrides)

    fd_mode_code = values.number_or_default(VALID_FD_MODES.index(base.fd_mode), OVERRIDE_FD_MODE)
    if fd_mode_code not in (0.0, 1.0):
        msg = f"{OVERRIDE_FD_MODE} must be 0 (forward) or 1 (central), got: {fd_mode_code}"
        raise ConfigurationError(msg)

    resolved_numerics = PlannerNumerics(
        num_candidates=int(values.number_or_default(base.num_candidates, OVERRIDE_NUM_CANDIDATES)),
        num_spline_points=int(
            values.number_or_default(base.num_spline_points, OVERRIDE_SPLINE_POINTS)
        ),
        max_iterations=int(values.number_or_default(base.max_iterations, OVERRIDE_MAX_ITERATIONS)),
        min_step_size=values.number_or_default(base.min_step_size, OVERRIDE_MIN_STEP_SIZE),
        fd_tolerance=values.number_or_default(base.fd_tolerance, OVERRIDE_FD_TOLERANCE),
        fd_mode=VALID_FD_MODES[int(fd_mode_code)],
        timestep_power=values.number_or_default(base.timestep_power, OVERRIDE_TIMESTEP_POWER),
    )
    if OVERRIDE_REPRESENTATION in values:
        representation = resolve_representation(int(values[OVERRIDE_REPRESENTATION]))

    config = PlannerConfig(
        numerics=resolved_numerics,
        runtime=PlannerRuntime(
            representation=representation,
            compute_backend=compute_backend,
            clamp_actions=clamp_actions,
        ),
    )
    config.validate()
    return config

"""Custom exceptions for gradient-based receding-horizon planning."""


class PlannerError(Exception):
    """Base exception for planner errors."""


class ConfigurationError(PlannerError):
    """Raised when planner, model, or backend configuration is invalid."""


class TaskDefinitionError(PlannerError):
    """Raised when a task norm catalog or residual layout is inconsistent."""


class DimensionError(PlannerError):
    """Raised when buffer capacity, knot layout, or array shapes are violated."""

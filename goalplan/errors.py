from __future__ import annotations


class GoalPlanError(Exception):
    """Base class for every error raised by the projection engine."""


class ConfigurationError(GoalPlanError):
    """Rate tables or settings are missing or malformed."""


class AllocationError(GoalPlanError):
    """Portfolio shares are invalid or a product reference cannot be resolved."""


class ValidationError(GoalPlanError):
    """Client or goal input is outside the engine's domain."""


class NonConvergenceError(GoalPlanError):
    """The contribution search hit its iteration ceiling.

    Carries the closest contribution found so callers can still report it.
    """

    def __init__(self, message: str, best_estimate: float, iterations: int) -> None:
        super().__init__(message)
        self.best_estimate = best_estimate
        self.iterations = iterations

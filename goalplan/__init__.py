"""Goal projection and gap-resolution engine."""

from .engine import GoalResult, resolve, resolve_goal, resolve_goals, simulate
from .errors import AllocationError, ConfigurationError, GoalPlanError, NonConvergenceError, ValidationError
from .payloads import parse_client, parse_goal, parse_snapshot
from .settings import EngineOptions

__all__ = [
    "AllocationError",
    "ConfigurationError",
    "EngineOptions",
    "GoalPlanError",
    "GoalResult",
    "NonConvergenceError",
    "ValidationError",
    "parse_client",
    "parse_goal",
    "parse_snapshot",
    "resolve",
    "resolve_goal",
    "resolve_goals",
    "simulate",
]

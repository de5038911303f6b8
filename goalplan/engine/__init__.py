from .aggregate import aggregate_period, yearly_breakdown
from .allocator import BlendedYield, resolve_allocation, resolve_portfolio_yield, resolve_yield
from .cofinancing import CofinancingPlan, TaxRefundPlan, apply_cofinancing, build_cofinancing_plan
from .pension import StatePension, estimate_state_pension
from .resolver import resolve, resolve_goal, resolve_goals, search_contribution
from .results import GoalResult, PensionGap
from .simulator import Trajectory, simulate
from .tax import TaxBreakdown, calculate_tax, net_income

__all__ = [
    "BlendedYield",
    "CofinancingPlan",
    "GoalResult",
    "PensionGap",
    "StatePension",
    "TaxBreakdown",
    "TaxRefundPlan",
    "Trajectory",
    "aggregate_period",
    "apply_cofinancing",
    "build_cofinancing_plan",
    "calculate_tax",
    "estimate_state_pension",
    "net_income",
    "resolve",
    "resolve_allocation",
    "resolve_goal",
    "resolve_goals",
    "resolve_portfolio_yield",
    "resolve_yield",
    "search_contribution",
    "simulate",
    "yearly_breakdown",
]

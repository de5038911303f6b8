from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class GoalType(str, Enum):
    PENSION = "pension"
    GOS_PENSION = "gos_pension"
    PASSIVE_INCOME = "passive_income"
    INVESTMENT = "investment"
    RESERVE = "reserve"
    LIFE = "life"


INCOME_GOAL_TYPES = frozenset({GoalType.PENSION, GoalType.GOS_PENSION})


class ContributionTiming(str, Enum):
    ORDINARY = "ordinary"  # contribution at month end, after growth
    DUE = "due"  # contribution at month start, grows that month


@dataclass(frozen=True)
class Goal:
    goal_type: GoalType
    term_months: int = 0
    risk_profile: str = "balanced"
    target_amount: float | None = None
    desired_monthly_income: float | None = None
    initial_capital: float = 0.0
    monthly_replenishment: float = 0.0
    inflation_rate: float | None = None
    contribution_timing: ContributionTiming = ContributionTiming.ORDINARY
    goal_id: str | None = None
    name: str = ""

    def is_pension(self) -> bool:
        return self.goal_type in INCOME_GOAL_TYPES

    def label(self) -> str:
        return self.name or self.goal_id or self.goal_type.value

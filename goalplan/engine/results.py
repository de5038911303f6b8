from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Optional

from ..data_model import Goal
from .aggregate import yearly_breakdown
from .pension import StatePension
from .simulator import Trajectory, to_money


@dataclass(frozen=True)
class PensionGap:
    has_gap: bool
    desired_monthly_current: float
    desired_monthly_future: float
    gap_monthly_current: float
    gap_monthly_future: float


@dataclass
class GoalResult:
    goal_type: str
    label: str
    goal_id: Optional[str] = None
    projected_value: Decimal = Decimal("0.00")
    target_amount: Optional[Decimal] = None
    initial_capital: Decimal = Decimal("0.00")
    monthly_replenishment: Decimal = Decimal("0.00")
    recommended_replenishment: Decimal = Decimal("0.00")
    recommended_without_cofinancing: Decimal = Decimal("0.00")
    term_months: int = 0
    portfolio_yield_percent: float = 0.0
    has_gap: bool = False
    converged: bool = True
    degraded: bool = False
    iterations: int = 0
    state_pension: Optional[StatePension] = None
    pension_gap: Optional[PensionGap] = None
    cofinancing_yearly: Dict[int, Decimal] = field(default_factory=dict)
    tax_refund_yearly: Dict[int, Decimal] = field(default_factory=dict)
    trajectory: Optional[Trajectory] = None
    error: Optional[str] = None

    @classmethod
    def failed(cls, goal: Goal, message: str) -> "GoalResult":
        return cls(
            goal_type=goal.goal_type.value,
            label=goal.label(),
            goal_id=goal.goal_id,
            converged=False,
            error=message,
        )

    @property
    def additional_replenishment(self) -> Decimal:
        return max(self.recommended_replenishment - self.monthly_replenishment, Decimal("0.00"))

    @property
    def cofinancing_total(self) -> Decimal:
        return sum(self.cofinancing_yearly.values(), Decimal("0.00"))

    @property
    def tax_refund_total(self) -> Decimal:
        return sum(self.tax_refund_yearly.values(), Decimal("0.00"))

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "goal_id": self.goal_id,
            "goal_type": self.goal_type,
            "label": self.label,
            "error": self.error,
        }
        if self.error is not None:
            return payload

        payload["summary"] = {
            "goal_type": self.goal_type,
            "term_months": self.term_months,
            "portfolio_yield_percent": self.portfolio_yield_percent,
            "projected_value": float(self.projected_value),
            "target_amount": None if self.target_amount is None else float(self.target_amount),
            "initial_capital": float(self.initial_capital),
            "monthly_replenishment": float(self.monthly_replenishment),
            "recommended_replenishment": float(self.recommended_replenishment),
            "recommended_replenishment_without_cofinancing": float(self.recommended_without_cofinancing),
            "additional_replenishment": float(self.additional_replenishment),
            "has_gap": self.has_gap,
            "converged": self.converged,
            "degraded": self.degraded,
            "iterations": self.iterations,
        }
        if self.state_pension is not None:
            payload["state_pension"] = {
                "monthly_current": float(to_money(self.state_pension.monthly_current)),
                "monthly_future": float(to_money(self.state_pension.monthly_future)),
                "ipk_total": self.state_pension.ipk_total,
                "retirement_age": self.state_pension.retirement_age,
                "retirement_year": self.state_pension.retirement_year,
                "years_to_pension": self.state_pension.years_to_pension,
            }
        if self.pension_gap is not None:
            payload["pension_gap"] = {
                "has_gap": self.pension_gap.has_gap,
                "desired_monthly_current": float(to_money(self.pension_gap.desired_monthly_current)),
                "desired_monthly_future": float(to_money(self.pension_gap.desired_monthly_future)),
                "gap_monthly_current": float(to_money(self.pension_gap.gap_monthly_current)),
                "gap_monthly_future": float(to_money(self.pension_gap.gap_monthly_future)),
            }
        if self.cofinancing_yearly or self.tax_refund_yearly:
            payload["pds_cofinancing"] = {
                "total": float(self.cofinancing_total),
                "yearly": [{"year": year, "amount": float(amount)} for year, amount in sorted(self.cofinancing_yearly.items())],
                "tax_refund_total": float(self.tax_refund_total),
                "tax_refund_yearly": [
                    {"year": year, "amount": float(amount)} for year, amount in sorted(self.tax_refund_yearly.items())
                ],
            }
        if self.trajectory is not None:
            payload["trajectory"] = [float(to_money(value)) for value in self.trajectory.balances]
            payload["yearly_breakdown"] = yearly_breakdown(self.trajectory.to_frame())
        return payload

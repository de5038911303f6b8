"""Month-by-month capital projection.

For each month ``m`` of the term, in order:
  1. asset inflows unlocking in month ``m + 1`` are added to the balance;
  2. growth and the indexed contribution are applied per ``contribution_timing``;
  3. state co-financing / tax refunds due this calendar month are added as lumps.
"""
from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Mapping

import pandas as pd

from ..data_model import ContributionTiming
from ..errors import ValidationError
from .cofinancing import CofinancingPlan, TaxRefundPlan

CENT = Decimal("0.01")

TRAJECTORY_COLUMNS = [
    "Scenario",
    "MonthIndex",
    "YearIndex",
    "MonthInYear",
    "Contribution",
    "Inflow",
    "Cofinancing",
    "TaxRefund",
    "Growth",
    "Balance",
]


def to_money(value: float) -> Decimal:
    return Decimal(repr(float(value))).quantize(CENT, rounding=ROUND_HALF_UP)


def monthly_rate(annual_yield_percent: float) -> float:
    if annual_yield_percent <= -100.0:
        raise ValidationError(f"Annual yield must be above -100%, got {annual_yield_percent}")
    return (1.0 + annual_yield_percent / 100.0) ** (1.0 / 12.0) - 1.0


def year_index(month_index: int, start_month: int = 1) -> int:
    return (month_index + start_month - 1) // 12 + 1


def month_in_year(month_index: int, start_month: int = 1) -> int:
    return (month_index + start_month - 1) % 12 + 1


@dataclass
class Trajectory:
    scenario: str
    balances: List[float] = field(default_factory=list)
    final_balance: float = 0.0
    yearly_contributions: Dict[int, float] = field(default_factory=dict)
    cofinancing: Dict[int, float] = field(default_factory=dict)
    tax_refunds: Dict[int, float] = field(default_factory=dict)
    total_contributions: float = 0.0
    total_inflows: float = 0.0
    records: List[dict] = field(default_factory=list)

    def final_amount(self) -> Decimal:
        return to_money(self.final_balance)

    def total_cofinancing(self) -> float:
        return sum(self.cofinancing.values())

    def total_tax_refunds(self) -> float:
        return sum(self.tax_refunds.values())

    def to_frame(self) -> pd.DataFrame:
        if not self.records:
            return pd.DataFrame(columns=TRAJECTORY_COLUMNS)
        return pd.DataFrame(self.records, columns=TRAJECTORY_COLUMNS)


def simulate(
    initial_capital: float,
    monthly_contribution: float,
    term_months: int,
    annual_yield_percent: float,
    monthly_indexation_percent: float = 0.0,
    contribution_timing: ContributionTiming = ContributionTiming.ORDINARY,
    *,
    cofinancing: CofinancingPlan | None = None,
    tax_refund: TaxRefundPlan | None = None,
    inflows: Mapping[int, float] | None = None,
    start_month: int = 1,
    scenario: str = "base",
    record: bool = True,
) -> Trajectory:
    if term_months < 0:
        raise ValidationError(f"Term must be non-negative, got {term_months}")
    if not 1 <= start_month <= 12:
        raise ValidationError(f"start_month must be 1..12, got {start_month}")

    rate_m = monthly_rate(annual_yield_percent)
    index_factor = 1.0 + monthly_indexation_percent / 100.0
    due = ContributionTiming(contribution_timing) is ContributionTiming.DUE

    # Inflows are keyed by 1-based unlock month; 0 also lands in the first month.
    inflow_by_month: Dict[int, float] = defaultdict(float)
    for unlock_month, amount in (inflows or {}).items():
        index = max(unlock_month - 1, 0)
        if index < term_months:
            inflow_by_month[index] += amount

    traj = Trajectory(scenario=scenario)
    yearly: Dict[int, float] = defaultdict(float)
    balance = float(initial_capital)

    for m in range(term_months):
        year = year_index(m, start_month)
        calendar_month = month_in_year(m, start_month)
        contribution = monthly_contribution * index_factor**m
        inflow = inflow_by_month.get(m, 0.0)

        opening = balance + inflow
        if due:
            balance = (opening + contribution) * (1.0 + rate_m)
            growth = balance - opening - contribution
        else:
            growth = opening * rate_m
            balance = opening + growth + contribution
        yearly[year] += contribution

        cofin_amount = 0.0
        if cofinancing is not None and calendar_month == cofinancing.payment_month:
            cofin_amount = cofinancing.benefit_for(year, yearly)
            if cofin_amount > 0:
                traj.cofinancing[year] = cofin_amount
        refund_amount = 0.0
        if tax_refund is not None and calendar_month == tax_refund.payment_month:
            refund_amount = tax_refund.benefit_for(year, yearly)
            if refund_amount > 0:
                traj.tax_refunds[year] = refund_amount
        balance += cofin_amount + refund_amount

        traj.balances.append(balance)
        traj.total_contributions += contribution
        traj.total_inflows += inflow
        if record:
            traj.records.append(
                {
                    "Scenario": scenario,
                    "MonthIndex": m,
                    "YearIndex": year,
                    "MonthInYear": calendar_month,
                    "Contribution": contribution,
                    "Inflow": inflow,
                    "Cofinancing": cofin_amount,
                    "TaxRefund": refund_amount,
                    "Growth": growth,
                    "Balance": balance,
                }
            )

    traj.final_balance = balance
    traj.yearly_contributions = dict(yearly)
    return traj

"""State co-financing (PDS) matching and the PDS tax-deduction refund.

A year's eligible contributions are matched in the following year: the benefit for
year N is based on year N-1's total and is paid in ``COFINANCING_MONTH`` of year N.
Matching covers contribution years 1..duration_years only.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Dict, Mapping, Sequence

from ..data_model import IncomeBasis, PdsIncomeBracket, PdsSettings, TaxBracket
from ..settings import COFINANCING_MONTH, TAX_REFUND_MONTH
from .tax import CONTIGUITY_STEP, calculate_tax, deduction_refund, net_income

logger = logging.getLogger(__name__)


def find_income_bracket(monthly_income: float, brackets: Sequence[PdsIncomeBracket]) -> PdsIncomeBracket | None:
    """Bracket whose range ``[income_from, income_to + CONTIGUITY_STEP)`` holds the income.

    Stored bounds are whole numbers (``0..80_000`` then ``80_001..``), so a fractional
    income between them belongs to the lower bracket. A range never reaches past the next
    bracket's start, and ``income_to=None`` runs up to it or without limit.
    """
    ordered = sorted(brackets, key=lambda b: b.income_from)
    for position, bracket in enumerate(ordered):
        if monthly_income < bracket.income_from:
            return None
        upper = math.inf if bracket.income_to is None else bracket.income_to + CONTIGUITY_STEP
        if position + 1 < len(ordered):
            upper = min(upper, ordered[position + 1].income_from)
        if monthly_income < upper:
            return bracket
    return None


def relevant_monthly_income(
    gross_monthly_income: float,
    settings: PdsSettings,
    tax_brackets: Sequence[TaxBracket] = (),
) -> float:
    if settings.income_basis is IncomeBasis.NET:
        return net_income(gross_monthly_income * 12.0, tax_brackets) / 12.0
    return gross_monthly_income


def matching_ratio(
    gross_monthly_income: float,
    settings: PdsSettings,
    income_brackets: Sequence[PdsIncomeBracket],
    tax_brackets: Sequence[TaxBracket] = (),
) -> float | None:
    income = relevant_monthly_income(gross_monthly_income, settings, tax_brackets)
    bracket = find_income_bracket(income, income_brackets)
    if bracket is None:
        logger.info("Monthly income %.2f falls in no co-financing bracket; no match applied", income)
        return None
    return bracket.ratio()


def cofinancing_for_contribution(contribution: float, ratio: float, settings: PdsSettings) -> float:
    if contribution < settings.min_contribution_for_support_per_year or contribution <= 0:
        return 0.0
    return min(contribution * ratio, settings.max_state_cofin_amount_per_year)


@dataclass(frozen=True)
class CofinancingPlan:
    ratio: float | None
    settings: PdsSettings
    duration_years: int
    eligible_share: float = 1.0
    payment_month: int = COFINANCING_MONTH

    def benefit_for(self, year: int, yearly_contributions: Mapping[int, float]) -> float:
        """Match paid in ``year`` for the contributions of ``year - 1``."""
        source_year = year - 1
        if self.ratio is None or source_year < 1 or source_year > self.duration_years:
            return 0.0
        contribution = yearly_contributions.get(source_year, 0.0) * self.eligible_share
        return cofinancing_for_contribution(contribution, self.ratio, self.settings)


def build_cofinancing_plan(
    gross_monthly_income: float,
    settings: PdsSettings,
    income_brackets: Sequence[PdsIncomeBracket],
    tax_brackets: Sequence[TaxBracket] = (),
    eligible_share: float = 1.0,
    duration_years: int | None = None,
) -> CofinancingPlan:
    return CofinancingPlan(
        ratio=matching_ratio(gross_monthly_income, settings, income_brackets, tax_brackets),
        settings=settings,
        duration_years=settings.duration_years if duration_years is None else duration_years,
        eligible_share=eligible_share,
    )


def apply_cofinancing(
    yearly_contributions: Mapping[int, float],
    client_income: float,
    settings: PdsSettings,
    income_brackets: Sequence[PdsIncomeBracket],
    duration_years: int,
    tax_brackets: Sequence[TaxBracket] = (),
) -> Dict[int, float]:
    """Return ``{payment_year: benefit}`` for every year N in 2..duration_years+1.

    ``client_income`` is the gross average monthly income; ``yearly_contributions`` is
    keyed by contribution year index starting at 1.
    """
    plan = build_cofinancing_plan(client_income, settings, income_brackets, tax_brackets, duration_years=duration_years)
    benefits: Dict[int, float] = {}
    for year in range(2, duration_years + 2):
        if year - 1 not in yearly_contributions:
            continue
        benefits[year] = plan.benefit_for(year, yearly_contributions)
    return benefits


@dataclass(frozen=True)
class TaxRefundPlan:
    gross_annual_income: float
    base_limit: float
    eligible_share: float = 1.0
    payment_month: int = TAX_REFUND_MONTH
    marginal_rate: float = 0.0
    tax_paid: float = 0.0

    def benefit_for(self, year: int, yearly_contributions: Mapping[int, float]) -> float:
        if year < 2:
            return 0.0
        contribution = yearly_contributions.get(year - 1, 0.0) * self.eligible_share
        return deduction_refund(contribution, self.base_limit, self.marginal_rate, self.tax_paid)


def build_tax_refund_plan(
    gross_monthly_income: float,
    settings: PdsSettings,
    tax_brackets: Sequence[TaxBracket],
    eligible_share: float = 1.0,
) -> TaxRefundPlan:
    annual = gross_monthly_income * 12.0
    if annual <= 0:
        return TaxRefundPlan(gross_annual_income=0.0, base_limit=settings.deduction_base_limit, eligible_share=eligible_share)
    breakdown = calculate_tax(annual, tax_brackets)
    return TaxRefundPlan(
        gross_annual_income=annual,
        base_limit=settings.deduction_base_limit,
        eligible_share=eligible_share,
        marginal_rate=breakdown.marginal_rate,
        tax_paid=breakdown.total_tax,
    )

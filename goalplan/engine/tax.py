"""Progressive income tax over ordered brackets.

Brackets are evaluated in ``order_index`` order and must tile ``[0, inf)``. Stored
upper bounds are inclusive whole-currency values, so a one-unit step between
``income_to`` of one row and ``income_from`` of the next (``0..5_000_000`` then
``5_000_001..``) is read as contiguous. The highest bracket is open-ended.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Iterable, List, Sequence, Tuple

from ..data_model import TaxBracket
from ..errors import ConfigurationError, ValidationError

logger = logging.getLogger(__name__)

# Largest step between consecutive brackets still treated as contiguous.
CONTIGUITY_STEP = 1.0


@dataclass(frozen=True)
class TaxSlice:
    lower: float
    upper: float
    rate: float
    taxable_amount: float
    tax: float


@dataclass(frozen=True)
class TaxBreakdown:
    gross_income: float
    total_tax: float
    marginal_rate: float
    slices: Tuple[TaxSlice, ...]

    @property
    def net_income(self) -> float:
        return self.gross_income - self.total_tax


def _effective_bounds(brackets: Iterable[TaxBracket]) -> List[Tuple[float, float, float]]:
    ordered = sorted(brackets, key=lambda b: b.order_index)
    if not ordered:
        raise ConfigurationError("Tax bracket table is empty")

    bounds: List[Tuple[float, float, float]] = []
    previous_upper = 0.0
    for position, bracket in enumerate(ordered):
        if bracket.rate < 0:
            raise ConfigurationError(f"Tax bracket {bracket.order_index} has a negative rate")
        if bracket.income_to < bracket.income_from:
            raise ConfigurationError(f"Tax bracket {bracket.order_index} ends before it starts")
        step = bracket.income_from - previous_upper
        if position == 0 and bracket.income_from > CONTIGUITY_STEP:
            raise ConfigurationError(
                f"Income below {bracket.income_from:,.2f} is not covered by any tax bracket"
            )
        if position > 0 and step > CONTIGUITY_STEP:
            raise ConfigurationError(
                f"Income between {previous_upper:,.2f} and {bracket.income_from:,.2f} is not covered by any tax bracket"
            )
        if position > 0 and step < 0:
            raise ConfigurationError(
                f"Tax bracket {bracket.order_index} overlaps the previous bracket at {bracket.income_from:,.2f}"
            )
        bounds.append((previous_upper, float(bracket.income_to), float(bracket.rate)))
        previous_upper = float(bracket.income_to)

    lower, _, rate = bounds[-1]
    bounds[-1] = (lower, math.inf, rate)
    return bounds


def calculate_tax(gross_annual_income: float, brackets: Sequence[TaxBracket]) -> TaxBreakdown:
    if gross_annual_income < 0:
        raise ValidationError(f"Income must be non-negative, got {gross_annual_income}")
    bounds = _effective_bounds(brackets)

    slices: List[TaxSlice] = []
    total_tax = 0.0
    marginal_rate = bounds[0][2]
    for lower, upper, rate in bounds:
        portion = max(0.0, min(gross_annual_income, upper) - lower)
        tax = portion * rate / 100.0
        total_tax += tax
        slices.append(TaxSlice(lower=lower, upper=upper, rate=rate, taxable_amount=portion, tax=tax))
        if lower < gross_annual_income <= upper:
            marginal_rate = rate

    return TaxBreakdown(
        gross_income=gross_annual_income,
        total_tax=total_tax,
        marginal_rate=marginal_rate,
        slices=tuple(slices),
    )


def net_income(gross_annual_income: float, brackets: Sequence[TaxBracket]) -> float:
    return calculate_tax(gross_annual_income, brackets).net_income


def deduction_refund(contribution: float, base_limit: float, marginal_rate: float, tax_paid: float) -> float:
    """Refund for a year's PDS contributions, capped by the deduction base and tax paid."""
    if contribution <= 0:
        return 0.0
    base = min(contribution, base_limit)
    refund = min(base * marginal_rate / 100.0, tax_paid)
    logger.debug("PDS deduction: base %.2f at %.2f%% -> refund %.2f (tax paid %.2f)", base, marginal_rate, refund, tax_paid)
    return refund

"""Point-based (IPK) state pension estimate.

pension = fixed_payment + ipk_total * point_cost

Each contributed year earns IPK in proportion to insured contributions against the
contributions due on the salary cap, up to ``MAX_IPK_PER_YEAR``. Past years are not
known individually, so they are approximated as ``ipk_past_coef`` of the current
year's rate for every year since ``WORK_START_AGE`` unless the client's IPK is known.
The cap and the client's income are taken to grow together, so the yearly rate is
held constant until retirement.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date

from ..data_model import Client, PensionSettings, Sex
from ..settings import MAX_IPK_PER_YEAR, RETIREMENT_AGE_FEMALE, RETIREMENT_AGE_MALE, WORK_START_AGE

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StatePension:
    age: int
    retirement_age: int
    retirement_year: int
    years_to_pension: int
    years_of_work: int
    ipk_per_year: float
    ipk_past: float
    ipk_future: float
    monthly_current: float
    monthly_future: float

    @property
    def ipk_total(self) -> float:
        return self.ipk_past + self.ipk_future

    @property
    def is_retired(self) -> bool:
        return self.years_to_pension == 0


def retirement_age_for(sex: Sex) -> int:
    return RETIREMENT_AGE_FEMALE if Sex(sex) is Sex.FEMALE else RETIREMENT_AGE_MALE


def ipk_for_year(annual_income: float, settings: PensionSettings) -> float:
    if settings.salary_cap <= 0 or annual_income <= 0:
        return 0.0
    rate = settings.contribution_rate_percent / 100.0
    insured = min(annual_income, settings.salary_cap) * rate
    maximum = settings.salary_cap * rate
    if maximum <= 0:
        return 0.0
    return min(MAX_IPK_PER_YEAR, MAX_IPK_PER_YEAR * insured / maximum)


def estimate_state_pension(client: Client, pension_settings: PensionSettings, current_date: date) -> StatePension:
    age = client.age_in(current_date.year)
    retirement_age = retirement_age_for(client.sex)
    years_to_pension = max(retirement_age - age, 0)
    years_of_work = max(age - WORK_START_AGE, 0)

    ipk_year = ipk_for_year(client.annual_income(), pension_settings)
    if client.ipk_current is not None:
        ipk_past = float(client.ipk_current)
    else:
        ipk_past = ipk_year * pension_settings.ipk_past_coef * years_of_work
    ipk_future = ipk_year * years_to_pension
    ipk_total = ipk_past + ipk_future

    price_growth = (1.0 + pension_settings.inflation_rate / 100.0) ** years_to_pension
    point_growth = (1.0 + pension_settings.point_growth_rate / 100.0) ** years_to_pension
    monthly_future = pension_settings.fixed_payment * price_growth + ipk_total * pension_settings.point_cost * point_growth
    if years_to_pension == 0:
        monthly_current = monthly_future
    else:
        monthly_current = monthly_future / price_growth

    logger.debug(
        "State pension: age %s, %s years to retirement, IPK %.2f + %.2f -> %.2f/month (today %.2f)",
        age,
        years_to_pension,
        ipk_past,
        ipk_future,
        monthly_future,
        monthly_current,
    )
    return StatePension(
        age=age,
        retirement_age=retirement_age,
        retirement_year=current_date.year + years_to_pension,
        years_to_pension=years_to_pension,
        years_of_work=years_of_work,
        ipk_per_year=ipk_year,
        ipk_past=ipk_past,
        ipk_future=ipk_future,
        monthly_current=monthly_current,
        monthly_future=monthly_future,
    )

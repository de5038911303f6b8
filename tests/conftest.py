import math
from datetime import date

import pytest

from goalplan.data_model import (
    Allocation,
    Client,
    ConfigSnapshot,
    GoalType,
    PdsSettings,
    Portfolio,
    Product,
    RiskProfile,
    Sex,
    SystemSettings,
    YieldBracket,
)

from .helpers import flat_product, seed_income_brackets, seed_tax_brackets


@pytest.fixture
def products():
    return (
        Product(
            product_id="bond",
            name="Bond fund",
            yields=(
                YieldBracket(0, 60, 0, math.inf, 8.0),
                YieldBracket(61, 1200, 0, math.inf, 10.0),
            ),
        ),
        flat_product("equity", 14.0),
        flat_product("pds", 12.0, product_type="PDS"),
    )


@pytest.fixture
def balanced_profile():
    return RiskProfile(
        profile_type="balanced",
        initial_capital=(Allocation("bond", 50, 0), Allocation("equity", 50, 1)),
        top_up=(Allocation("bond", 50, 0), Allocation("equity", 50, 1)),
    )


@pytest.fixture
def pds_profile():
    return RiskProfile(
        profile_type="pds",
        initial_capital=(Allocation("equity", 100, 0),),
        top_up=(Allocation("pds", 100, 0),),
    )


@pytest.fixture
def snapshot(products, balanced_profile, pds_profile):
    portfolio = Portfolio(
        portfolio_id="core",
        name="Core",
        goal_types=(
            GoalType.INVESTMENT,
            GoalType.RESERVE,
            GoalType.PASSIVE_INCOME,
            GoalType.PENSION,
            GoalType.GOS_PENSION,
        ),
        risk_profiles=(balanced_profile, pds_profile),
    )
    return ConfigSnapshot(
        products=products,
        portfolios=(portfolio,),
        tax_brackets=seed_tax_brackets(),
        pds_settings=PdsSettings(),
        pds_income_brackets=seed_income_brackets(),
        system_settings=SystemSettings.from_mapping(
            {"inflation_rate_year": 4.0, "investment_expense_growth_monthly": 0.0}
        ),
    )


@pytest.fixture
def client():
    return Client(birth_date=date(1985, 3, 1), sex=Sex.MALE, avg_monthly_income=50_000, liquid_capital=200_000)

import json
import math
from datetime import date

import pytest

from goalplan.data_model import Bucket, ContributionTiming, Goal, GoalType, IncomeBasis, Sex
from goalplan.errors import ConfigurationError, ValidationError
from goalplan.payloads import parse_client, parse_goal, parse_snapshot, validate_goal


def test_parse_client_with_aliases_and_assets():
    client = parse_client(
        {
            "birth_date": "1990-05-20T00:00:00Z",
            "gender": "F",
            "monthly_income": "120000",
            "total_liquid_capital": 300000,
            "assets": [{"type": "deposit", "value": 50000, "unlock_month": 6, "goal_id": 7}],
        }
    )

    assert client.birth_date == date(1990, 5, 20)
    assert client.sex is Sex.FEMALE
    assert client.avg_monthly_income == 120_000
    assert client.liquid_capital == 300_000
    assert client.assets[0].goal_id == "7"
    assert client.assets[0].unlock_month == 6


def test_parse_client_rejects_negative_income():
    with pytest.raises(ValidationError):
        parse_client({"birth_date": "1990-01-01", "sex": "male", "avg_monthly_income": -1})


def test_parse_goal_accepts_replenishment_aliases():
    goal = parse_goal(
        {
            "id": 3,
            "goal_type": "INVESTMENT",
            "term_months": 60,
            "target_amount": "1000000",
            "initial_replenishment": 15000,
            "profile_type": "aggressive",
            "contribution_timing": "due",
        }
    )

    assert goal.goal_id == "3"
    assert goal.goal_type is GoalType.INVESTMENT
    assert goal.monthly_replenishment == 15_000
    assert goal.risk_profile == "aggressive"
    assert goal.contribution_timing is ContributionTiming.DUE


@pytest.mark.parametrize(
    "payload",
    [
        {"goal_type": "spaceship", "target_amount": 1},
        {"goal_type": "investment", "term_months": -1, "target_amount": 1},
        {"goal_type": "investment", "target_amount": 1, "desired_monthly_income": 1},
        {"goal_type": "reserve"},
        {"goal_type": "pension", "target_amount": 100},
    ],
)
def test_parse_goal_rejects_out_of_domain_input(payload):
    with pytest.raises(ValidationError):
        parse_goal(payload)


def test_passive_income_accepts_desired_income():
    validate_goal(Goal(goal_type=GoalType.PASSIVE_INCOME, term_months=12, desired_monthly_income=5_000))


def test_parse_snapshot_from_stored_rows():
    snapshot = parse_snapshot(
        {
            "products": [
                {
                    "id": 1,
                    "name": "PDS",
                    "product_type": "pds",
                    "lines": [{"min_term_months": 0, "max_term_months": 600, "min_amount": 0, "yield_percent": 12}],
                }
            ],
            "portfolios": [
                {
                    "id": 9,
                    "name": "Pension",
                    "classes": ["pension"],
                    "risk_profiles": [
                        {
                            "profile_type": "balanced",
                            "instruments": [
                                {"product_id": 1, "bucket_type": "INITIAL_CAPITAL", "share_percent": 100},
                                {"product_id": 1, "bucket_type": "TOP_UP", "share_percent": 100},
                            ],
                        }
                    ],
                }
            ],
            "tax_brackets": [
                {"income_from": 0, "income_to": 5000000, "rate": 13, "order_index": 0},
                {"income_from": 5000001, "income_to": None, "rate": 15, "order_index": 1},
            ],
            "pds_settings": {"max_state_cofin_amount_per_year": 36000, "income_basis": "net_after_ndfl"},
            "pds_income_brackets": [{"income_from": 150001, "income_to": None, "ratio_numerator": 1, "ratio_denominator": 4}],
            "system_settings": [
                {"key": "inflation_rate_year", "value": "5.5", "value_type": "number"},
                {
                    "key": "passive_income_yield",
                    "value": json.dumps([{"min_term_months": 0, "max_term_months": 600, "yield_percent": 9}]),
                    "value_type": "json",
                },
            ],
        }
    )

    product = snapshot.product("1")
    assert product.is_pds()
    assert product.yields[0].amount_to == math.inf
    profile = snapshot.portfolio_for(GoalType.PENSION, 120, 0).profile("Balanced")
    assert len(profile.bucket(Bucket.TOP_UP)) == 1
    assert snapshot.tax_brackets[1].income_to == math.inf
    assert snapshot.pds_settings.income_basis is IncomeBasis.NET
    assert snapshot.pds_income_brackets[0].income_to is None
    assert snapshot.inflation_rate() == 5.5
    assert snapshot.passive_income_yield_lines()[0].yield_percent == 9


def test_parse_snapshot_rejects_bad_numbers():
    with pytest.raises(ConfigurationError):
        parse_snapshot({"tax_brackets": [{"income_from": "zero", "income_to": 10, "rate": 13}]})


def test_malformed_setting_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        parse_snapshot({"system_settings": [{"key": "inflation_rate_year", "value": "abc", "value_type": "number"}]})

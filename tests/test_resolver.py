from dataclasses import replace
from datetime import date
from decimal import Decimal

import pytest

from goalplan.data_model import Asset, Client, Goal, GoalType, Sex, SystemSettings
from goalplan.engine import resolver
from goalplan.engine.pension import StatePension, estimate_state_pension
from goalplan.engine.resolver import (
    Projection,
    SearchState,
    annuity_capital,
    resolve,
    resolve_goal,
    resolve_goals,
    search_contribution,
)
from goalplan.engine.simulator import simulate
from goalplan.errors import NonConvergenceError
from goalplan.settings import EngineOptions

from .helpers import TODAY


def test_search_finds_contribution_for_flat_growth():
    outcome = search_contribution(Projection(0.0, 12, 0.0), 12_000, EngineOptions())

    assert outcome.state is SearchState.DONE
    assert outcome.contribution == pytest.approx(1_000, abs=0.1)


def test_search_raises_with_best_estimate_when_iterations_run_out():
    with pytest.raises(NonConvergenceError) as excinfo:
        search_contribution(Projection(0.0, 120, 8.0), 1_000_000, EngineOptions(max_iterations=3))

    assert excinfo.value.iterations == 3
    best = excinfo.value.best_estimate
    assert simulate(0.0, best, 120, 8.0).final_balance >= 1_000_000


def test_target_goal_with_gap_is_resolved(client, snapshot):
    goal = Goal(goal_type=GoalType.INVESTMENT, term_months=120, target_amount=1_000_000, inflation_rate=0.0)

    result = resolve(goal, client, 10.0, snapshot, TODAY)

    assert result.has_gap
    assert result.converged
    assert result.projected_value == Decimal("0.00")
    final = simulate(0.0, float(result.recommended_replenishment), 120, 10.0, start_month=TODAY.month).final_balance
    assert final == pytest.approx(1_000_000, abs=150)
    assert result.recommended_replenishment == result.recommended_without_cofinancing


def test_stated_contribution_that_already_meets_target(client, snapshot):
    goal = Goal(
        goal_type=GoalType.RESERVE,
        term_months=12,
        target_amount=100_000,
        initial_capital=150_000,
        monthly_replenishment=500,
        inflation_rate=0.0,
    )

    result = resolve(goal, client, 5.0, snapshot, TODAY)

    assert not result.has_gap
    assert result.recommended_replenishment == Decimal("500.00")
    assert result.additional_replenishment == Decimal("0.00")


def test_target_is_inflated_to_horizon(client, snapshot):
    goal = Goal(goal_type=GoalType.INVESTMENT, term_months=12, target_amount=100_000, inflation_rate=12.0)

    result = resolve(goal, client, 5.0, snapshot, TODAY)

    assert float(result.target_amount) == pytest.approx(112_000, abs=0.01)


def test_zero_term_reports_gap_without_contribution(client, snapshot):
    goal = Goal(goal_type=GoalType.INVESTMENT, term_months=0, target_amount=50_000, initial_capital=10_000)

    result = resolve(goal, client, 5.0, snapshot, TODAY)

    assert result.has_gap
    assert result.recommended_replenishment == Decimal("0.00")
    assert result.projected_value == Decimal("10000.00")


def test_non_convergence_reported_not_raised(client, snapshot):
    goal = Goal(goal_type=GoalType.INVESTMENT, term_months=120, target_amount=1_000_000, inflation_rate=0.0)

    result = resolve(goal, client, 8.0, snapshot, TODAY, EngineOptions(max_iterations=3))

    assert not result.converged
    assert result.recommended_replenishment > 0
    assert result.error is None


def test_cofinancing_lowers_recommended_contribution(client, snapshot):
    goal = Goal(
        goal_type=GoalType.INVESTMENT,
        term_months=120,
        target_amount=3_000_000,
        risk_profile="pds",
        inflation_rate=0.0,
    )

    result = resolve_goal(goal, client, snapshot, TODAY)

    assert result.converged
    assert result.recommended_replenishment < result.recommended_without_cofinancing
    assert result.cofinancing_total > 0
    assert all(amount <= Decimal("36000.00") for amount in result.cofinancing_yearly.values())
    assert "pds_cofinancing" in result.to_dict()


def test_profile_without_pds_product_gets_no_cofinancing(client, snapshot):
    goal = Goal(goal_type=GoalType.INVESTMENT, term_months=120, target_amount=3_000_000, inflation_rate=0.0)

    result = resolve_goal(goal, client, snapshot, TODAY)

    assert result.cofinancing_total == 0
    assert result.recommended_replenishment == result.recommended_without_cofinancing


def test_pension_goal_reports_state_pension_and_gap(client, snapshot):
    goal = Goal(goal_type=GoalType.PENSION, desired_monthly_income=150_000)

    result = resolve_goal(goal, client, snapshot, TODAY)

    assert result.term_months == 25 * 12
    assert result.state_pension is not None
    assert result.pension_gap.has_gap
    assert result.has_gap
    gap = result.pension_gap.gap_monthly_future
    assert gap == pytest.approx(result.pension_gap.desired_monthly_future - result.state_pension.monthly_future)
    assert float(result.target_amount) == pytest.approx(annuity_capital(gap, 12.0, 264), rel=1e-9)
    payload = result.to_dict()
    assert set(payload) >= {"summary", "state_pension", "pension_gap", "trajectory", "yearly_breakdown"}


def test_pension_goal_runs_to_retirement_whatever_its_term(client, snapshot):
    open_ended = resolve_goal(Goal(goal_type=GoalType.PENSION, desired_monthly_income=150_000), client, snapshot, TODAY)
    short = Goal(goal_type=GoalType.PENSION, term_months=120, desired_monthly_income=150_000)

    result = resolve_goal(short, client, snapshot, TODAY)

    assert result.term_months == 25 * 12
    assert result.pension_gap.desired_monthly_future == pytest.approx(150_000 * 1.04**25, rel=1e-9)
    assert result.pension_gap == open_ended.pension_gap
    assert result.target_amount == open_ended.target_amount


def test_supplied_state_pension_is_not_estimated_again(client, snapshot):
    state_pension = StatePension(
        age=50,
        retirement_age=65,
        retirement_year=2035,
        years_to_pension=10,
        years_of_work=32,
        ipk_per_year=5.0,
        ipk_past=100.0,
        ipk_future=50.0,
        monthly_current=500_000.0,
        monthly_future=1_000_000.0,
    )
    goal = Goal(goal_type=GoalType.PENSION, desired_monthly_income=150_000)

    result = resolve(goal, client, 10.0, snapshot, TODAY, state_pension=state_pension)

    assert result.state_pension is state_pension
    assert result.term_months == 120
    assert not result.pension_gap.has_gap


def test_pension_goal_estimates_state_pension_once(client, snapshot, monkeypatch):
    calls = []

    def counting_estimate(*args):
        calls.append(args)
        return estimate_state_pension(*args)

    monkeypatch.setattr(resolver, "estimate_state_pension", counting_estimate)

    resolve_goal(Goal(goal_type=GoalType.PENSION, desired_monthly_income=150_000), client, snapshot, TODAY)

    assert len(calls) == 1


def test_pension_covered_by_state_has_no_gap(client, snapshot):
    goal = Goal(goal_type=GoalType.PENSION, desired_monthly_income=1_000)

    result = resolve_goal(goal, client, snapshot, TODAY)

    assert not result.pension_gap.has_gap
    assert not result.has_gap
    assert result.target_amount == Decimal("0.00")
    assert result.recommended_replenishment == Decimal("0.00")


def test_passive_income_capitalised_at_payout_yield(client, snapshot):
    lines = [{"min_term_months": 0, "max_term_months": 1200, "min_amount": 0, "max_amount": 1e12, "yield_percent": 8}]
    snapshot = replace(snapshot, system_settings=SystemSettings.from_mapping({"passive_income_yield": lines}))
    goal = Goal(goal_type=GoalType.PASSIVE_INCOME, term_months=120, desired_monthly_income=10_000, inflation_rate=0.0)

    result = resolve_goal(goal, client, snapshot, TODAY)

    assert result.target_amount == Decimal("1500000.00")


def test_linked_assets_count_towards_goal(snapshot):
    client = Client(
        birth_date=date(1985, 3, 1),
        sex=Sex.MALE,
        avg_monthly_income=50_000,
        assets=(Asset(asset_type="deposit", amount=60_000, unlock_month=0, goal_id="g1"),),
    )
    goal = Goal(goal_type=GoalType.RESERVE, term_months=12, target_amount=50_000, inflation_rate=0.0, goal_id="g1")

    result = resolve(goal, client, 0.0, snapshot, TODAY)

    assert not result.has_gap
    assert result.projected_value == Decimal("60000.00")


@pytest.mark.parametrize("unlock_month, yield_percent, projected", [(12, 0.0, 60_000), (1, 12.0, 67_200)])
def test_linked_asset_unlock_month_counts_from_one(snapshot, unlock_month, yield_percent, projected):
    client = Client(
        birth_date=date(1985, 3, 1),
        sex=Sex.MALE,
        avg_monthly_income=50_000,
        assets=(Asset(asset_type="deposit", amount=60_000, unlock_month=unlock_month, goal_id="g1"),),
    )
    goal = Goal(goal_type=GoalType.RESERVE, term_months=12, target_amount=50_000, inflation_rate=0.0, goal_id="g1")

    result = resolve(goal, client, yield_percent, snapshot, TODAY)

    assert not result.has_gap
    assert float(result.projected_value) == pytest.approx(projected, abs=0.01)


def test_resolution_is_deterministic(client, snapshot):
    goal = Goal(goal_type=GoalType.INVESTMENT, term_months=96, target_amount=2_000_000, risk_profile="pds")

    first = resolve_goal(goal, client, snapshot, TODAY).to_dict()
    second = resolve_goal(goal, client, snapshot, TODAY).to_dict()

    assert first == second


def test_batch_isolates_failing_goals(client, snapshot):
    goals = [
        Goal(goal_type=GoalType.INVESTMENT, term_months=60, target_amount=500_000, goal_id="ok"),
        Goal(goal_type=GoalType.LIFE, term_months=60, target_amount=500_000, goal_id="no-portfolio"),
        Goal(goal_type=GoalType.INVESTMENT, term_months=-5, target_amount=500_000, goal_id="bad-term"),
        Goal(goal_type=GoalType.RESERVE, term_months=60, target_amount=100_000, risk_profile="unknown", goal_id="no-profile"),
    ]

    results = resolve_goals(client, goals, snapshot, TODAY)

    assert [r.goal_id for r in results] == ["ok", "no-portfolio", "bad-term", "no-profile"]
    assert results[0].error is None
    assert all(r.error for r in results[1:])
    assert results[1].to_dict() == {
        "goal_id": "no-portfolio",
        "goal_type": "life",
        "label": "no-portfolio",
        "error": results[1].error,
    }


def test_liquid_capital_is_shared_across_goals_in_order(client, snapshot):
    goals = [
        Goal(goal_type=GoalType.INVESTMENT, term_months=-5, target_amount=500_000, goal_id="bad-term"),
        Goal(goal_type=GoalType.INVESTMENT, term_months=12, target_amount=150_000, inflation_rate=0.0, goal_id="car"),
        Goal(goal_type=GoalType.RESERVE, term_months=12, target_amount=100_000, inflation_rate=0.0, goal_id="reserve"),
        Goal(goal_type=GoalType.RESERVE, term_months=12, target_amount=100_000, initial_capital=10_000, goal_id="own"),
        Goal(goal_type=GoalType.PENSION, desired_monthly_income=150_000, goal_id="pension"),
    ]

    results = resolve_goals(client, goals, snapshot, TODAY)

    assert results[0].error
    assert [r.initial_capital for r in results[1:]] == [
        Decimal("150000.00"),
        Decimal("50000.00"),
        Decimal("10000.00"),
        Decimal("0.00"),
    ]
    assert not results[1].has_gap

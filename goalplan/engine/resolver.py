"""Gap resolution: the contribution that brings a goal's projected capital to its target.

Every step of the search re-runs the full simulation, state co-financing included, so
threshold and cap effects of the matching programme are reflected in the answer.
Each goal is resolved twice: with PDS state support and with it switched off.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Mapping, Sequence

from ..data_model import Client, ConfigSnapshot, ContributionTiming, Goal, GoalType, PensionSettings
from ..errors import ConfigurationError, GoalPlanError, NonConvergenceError
from ..payloads import validate_client, validate_goal
from ..settings import EngineOptions
from .allocator import BlendedYield, resolve_portfolio_yield
from .cofinancing import CofinancingPlan, TaxRefundPlan, build_cofinancing_plan, build_tax_refund_plan
from .pension import StatePension, estimate_state_pension
from .results import GoalResult, PensionGap
from .simulator import Trajectory, monthly_rate, simulate, to_money

logger = logging.getLogger(__name__)

# Contributions closer than this are indistinguishable once rounded to cents.
CONTRIBUTION_RESOLUTION = 0.005


class SearchState(str, Enum):
    INIT = "init"
    SIMULATE = "simulate"
    EVALUATE = "evaluate"
    ADJUST = "adjust"
    CONVERGED = "converged"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class Projection:
    """Everything a simulation run needs except the monthly contribution."""

    initial_capital: float
    term_months: int
    annual_yield_percent: float
    monthly_indexation_percent: float = 0.0
    contribution_timing: ContributionTiming = ContributionTiming.ORDINARY
    cofinancing: CofinancingPlan | None = None
    tax_refund: TaxRefundPlan | None = None
    inflows: Mapping[int, float] | None = None
    start_month: int = 1
    scenario: str = "base"

    def run(self, monthly_contribution: float, record: bool = False) -> Trajectory:
        return simulate(
            self.initial_capital,
            monthly_contribution,
            self.term_months,
            self.annual_yield_percent,
            self.monthly_indexation_percent,
            self.contribution_timing,
            cofinancing=self.cofinancing,
            tax_refund=self.tax_refund,
            inflows=self.inflows,
            start_month=self.start_month,
            scenario=self.scenario,
            record=record,
        )

    def without_state_support(self) -> "Projection":
        return replace(self, cofinancing=None, tax_refund=None, scenario=f"{self.scenario}-no-pds")


@dataclass(frozen=True)
class SearchOutcome:
    contribution: float
    final_balance: float
    iterations: int
    state: SearchState


def search_contribution(projection: Projection, target: float, options: EngineOptions) -> SearchOutcome:
    """Smallest monthly contribution whose final balance reaches ``target``.

    Bisection over ``[0, target]``; the upper bound is doubled while it still falls
    short. Raises ``NonConvergenceError`` carrying the best contribution found when the
    iteration ceiling is hit first.
    """
    tolerance = options.tolerance_for(target)
    state = SearchState.INIT
    low, high = 0.0, max(float(target), 1.0)
    high_final = 0.0
    mid = 0.0
    trial_final = 0.0
    iterations = 0

    while True:
        if state is SearchState.INIT:
            high_final = projection.run(high).final_balance
            iterations += 1
            while high_final < target and iterations < options.max_iterations:
                low, high = high, high * 2.0
                high_final = projection.run(high).final_balance
                iterations += 1
            state = SearchState.SIMULATE if high_final >= target else SearchState.FAILED

        elif state is SearchState.SIMULATE:
            if iterations >= options.max_iterations:
                state = SearchState.FAILED
                continue
            mid = (low + high) / 2.0
            trial_final = projection.run(mid).final_balance
            iterations += 1
            state = SearchState.EVALUATE

        elif state is SearchState.EVALUATE:
            logger.debug("step %d: contribution %.4f -> %.2f (target %.2f)", iterations, mid, trial_final, target)
            if abs(trial_final - target) < tolerance:
                high, high_final = mid, trial_final
                state = SearchState.CONVERGED
            else:
                state = SearchState.ADJUST

        elif state is SearchState.ADJUST:
            if trial_final >= target:
                high, high_final = mid, trial_final
            else:
                low = mid
            if high_final - target < tolerance or high - low <= CONTRIBUTION_RESOLUTION:
                state = SearchState.CONVERGED
            else:
                state = SearchState.SIMULATE

        elif state is SearchState.CONVERGED:
            state = SearchState.DONE

        elif state is SearchState.DONE:
            return SearchOutcome(contribution=high, final_balance=high_final, iterations=iterations, state=state)

        else:
            raise NonConvergenceError(
                f"Contribution search stopped after {iterations} iterations without reaching {target:,.2f}",
                best_estimate=high,
                iterations=iterations,
            )


@dataclass
class Resolution:
    recommended: float
    has_gap: bool
    converged: bool
    iterations: int
    baseline: Trajectory


def resolve_contribution(
    projection: Projection,
    target: float,
    stated_contribution: float,
    options: EngineOptions,
) -> Resolution:
    baseline = projection.run(stated_contribution)
    if baseline.final_balance >= target or target <= 0:
        return Resolution(stated_contribution, has_gap=False, converged=True, iterations=0, baseline=baseline)
    if projection.term_months == 0:
        # No months to contribute in; nothing a contribution can change.
        return Resolution(0.0, has_gap=True, converged=True, iterations=0, baseline=baseline)
    try:
        outcome = search_contribution(projection, target, options)
    except NonConvergenceError as exc:
        logger.warning("%s; reporting best estimate %.2f", exc, exc.best_estimate)
        return Resolution(exc.best_estimate, has_gap=True, converged=False, iterations=exc.iterations, baseline=baseline)
    return Resolution(outcome.contribution, has_gap=True, converged=True, iterations=outcome.iterations, baseline=baseline)


def inflate(amount: float, annual_inflation_percent: float, term_months: int) -> float:
    return amount * (1.0 + monthly_rate(annual_inflation_percent)) ** term_months


def annuity_capital(monthly_payment: float, annual_yield_percent: float, months: float) -> float:
    """Capital that pays ``monthly_payment`` for ``months`` months at the given yield."""
    if monthly_payment <= 0 or months <= 0:
        return 0.0
    rate = monthly_rate(annual_yield_percent)
    if rate == 0:
        return monthly_payment * months
    return monthly_payment * (1.0 - (1.0 + rate) ** -months) / rate


def perpetuity_capital(monthly_income: float, payout_yield_percent: float) -> float:
    return monthly_income * 12.0 * 100.0 / payout_yield_percent


def payout_yield(snapshot: ConfigSnapshot, term_months: int, amount: float, fallback: float) -> float:
    lines = snapshot.passive_income_yield_lines()
    for line in lines:
        if line.contains(term_months, amount):
            return line.yield_percent
    if lines:
        logger.warning("No passive income yield line covers term %s; using the first line", term_months)
        return lines[0].yield_percent
    return fallback


def goal_term(goal: Goal, state_pension: StatePension | None) -> int:
    """Pension goals accumulate until retirement; every other goal runs for its own term."""
    if state_pension is None:
        return goal.term_months
    term = state_pension.years_to_pension * 12
    if goal.term_months and goal.term_months != term:
        logger.debug("Goal %s: term %s months replaced by %s months to retirement", goal.label(), goal.term_months, term)
    return term


def _goal_inflation(goal: Goal, snapshot: ConfigSnapshot) -> float:
    return goal.inflation_rate if goal.inflation_rate is not None else snapshot.inflation_rate()


def _state_pension_for(goal: Goal, client: Client, snapshot: ConfigSnapshot, current_date: date) -> StatePension | None:
    if not goal.is_pension():
        return None
    settings = PensionSettings.from_system_settings(snapshot.system_settings, goal.inflation_rate)
    return estimate_state_pension(client, settings, current_date)


def _asset_inflows(client: Client, goal: Goal) -> Dict[int, float]:
    inflows: Dict[int, float] = {}
    for asset in client.assets_for_goal(goal.goal_id):
        inflows[asset.unlock_month] = inflows.get(asset.unlock_month, 0.0) + asset.amount
    return inflows


def _liquid_capital_draw(goal: Goal, pool: float) -> float:
    if pool <= 0 or goal.initial_capital > 0 or goal.target_amount is None or goal.is_pension():
        return 0.0
    return min(pool, goal.target_amount)


def _money_map(values: Mapping[int, float]) -> Dict[int, Decimal]:
    return {year: to_money(amount) for year, amount in sorted(values.items())}


def resolve(
    goal: Goal,
    client: Client,
    portfolio_yield: BlendedYield | float,
    snapshot: ConfigSnapshot,
    current_date: date,
    options: EngineOptions | None = None,
    state_pension: StatePension | None = None,
) -> GoalResult:
    """Resolve one goal at an already blended yield.

    ``state_pension`` may be passed in when the caller has estimated it; pension goals
    otherwise estimate it here.
    """
    options = options or EngineOptions()
    validate_client(client)
    validate_goal(goal)
    if not isinstance(portfolio_yield, BlendedYield):
        portfolio_yield = BlendedYield(yield_percent=float(portfolio_yield))

    inflation = _goal_inflation(goal, snapshot)
    if state_pension is None:
        state_pension = _state_pension_for(goal, client, snapshot, current_date)
    term = goal_term(goal, state_pension)
    blended = portfolio_yield.yield_percent

    pension_gap = None
    if goal.is_pension():
        desired = goal.desired_monthly_income or 0.0
        desired_future = inflate(desired, inflation, term)
        gap_future = max(desired_future - state_pension.monthly_future, 0.0)
        pension_gap = PensionGap(
            has_gap=gap_future > 0,
            desired_monthly_current=desired,
            desired_monthly_future=desired_future,
            gap_monthly_current=max(desired - state_pension.monthly_current, 0.0),
            gap_monthly_future=gap_future,
        )
        survival = PensionSettings.from_system_settings(snapshot.system_settings).survival_period_months
        target = annuity_capital(gap_future, blended, survival)
    elif goal.goal_type is GoalType.PASSIVE_INCOME and goal.desired_monthly_income is not None:
        income_future = inflate(goal.desired_monthly_income, inflation, term)
        payout = payout_yield(snapshot, term, goal.initial_capital, blended)
        if payout > 0:
            target = perpetuity_capital(income_future, payout)
        else:
            logger.warning("Goal %s: payout yield is not positive; capitalising over the survival period", goal.label())
            survival = PensionSettings.from_system_settings(snapshot.system_settings).survival_period_months
            target = income_future * survival
    else:
        target = inflate(goal.target_amount or 0.0, inflation, term)

    supported = Projection(
        initial_capital=goal.initial_capital,
        term_months=term,
        annual_yield_percent=blended,
        monthly_indexation_percent=snapshot.monthly_indexation(),
        contribution_timing=goal.contribution_timing,
        inflows=_asset_inflows(client, goal),
        start_month=current_date.month,
        scenario=goal.label(),
    )
    if portfolio_yield.pds_share > 0:
        pds = snapshot.pds_settings
        supported = replace(
            supported,
            cofinancing=build_cofinancing_plan(
                client.avg_monthly_income,
                pds,
                snapshot.pds_income_brackets,
                snapshot.tax_brackets,
                eligible_share=portfolio_yield.pds_share,
            ),
            tax_refund=(
                build_tax_refund_plan(client.avg_monthly_income, pds, snapshot.tax_brackets, portfolio_yield.pds_share)
                if pds.tax_deduction_enabled
                else None
            ),
        )

    with_support = resolve_contribution(supported, target, goal.monthly_replenishment, options)
    without_support = resolve_contribution(supported.without_state_support(), target, goal.monthly_replenishment, options)
    final = supported.run(with_support.recommended, record=options.record_trajectory)

    has_gap = pension_gap.has_gap if pension_gap is not None else with_support.has_gap
    logger.info(
        "Goal %s: target %.2f, projected %.2f, recommended %.2f (%.2f without co-financing)",
        goal.label(),
        target,
        with_support.baseline.final_balance,
        with_support.recommended,
        without_support.recommended,
    )
    return GoalResult(
        goal_type=goal.goal_type.value,
        label=goal.label(),
        goal_id=goal.goal_id,
        projected_value=with_support.baseline.final_amount(),
        target_amount=to_money(target),
        initial_capital=to_money(goal.initial_capital),
        monthly_replenishment=to_money(goal.monthly_replenishment),
        recommended_replenishment=to_money(with_support.recommended),
        recommended_without_cofinancing=to_money(without_support.recommended),
        term_months=term,
        portfolio_yield_percent=blended,
        has_gap=has_gap,
        converged=with_support.converged and without_support.converged,
        degraded=portfolio_yield.degraded,
        iterations=with_support.iterations + without_support.iterations,
        state_pension=state_pension,
        pension_gap=pension_gap,
        cofinancing_yearly=_money_map(final.cofinancing),
        tax_refund_yearly=_money_map(final.tax_refunds),
        trajectory=final if options.record_trajectory else None,
    )


def resolve_goal(
    goal: Goal,
    client: Client,
    snapshot: ConfigSnapshot,
    current_date: date,
    options: EngineOptions | None = None,
) -> GoalResult:
    """Pick the goal's portfolio and risk profile, blend its yield, then resolve."""
    options = options or EngineOptions()
    validate_goal(goal)
    state_pension = _state_pension_for(goal, client, snapshot, current_date)
    term = goal_term(goal, state_pension)
    portfolio = snapshot.portfolio_for(goal.goal_type, term, goal.initial_capital)
    profile = portfolio.profile(goal.risk_profile)
    if profile is None:
        raise ConfigurationError(f"Portfolio {portfolio.name or portfolio.portfolio_id} has no {goal.risk_profile!r} profile")
    blended = resolve_portfolio_yield(profile, snapshot, goal.initial_capital, term, options.share_tolerance)
    return resolve(goal, client, blended, snapshot, current_date, options, state_pension=state_pension)


def resolve_goals(
    client: Client,
    goals: Sequence[Goal],
    snapshot: ConfigSnapshot,
    current_date: date,
    options: EngineOptions | None = None,
) -> List[GoalResult]:
    """Resolve goals in the given order, isolating failures.

    The client's liquid capital is a shared pool: each target-amount goal without initial
    capital of its own draws up to its target from what earlier goals left over. A goal
    that fails returns its draw to the pool.
    """
    options = options or EngineOptions()
    pool = client.liquid_capital
    results: List[GoalResult] = []
    for goal in goals:
        draw = _liquid_capital_draw(goal, pool)
        funded = replace(goal, initial_capital=draw) if draw > 0 else goal
        try:
            results.append(resolve_goal(funded, client, snapshot, current_date, options))
        except GoalPlanError as exc:
            logger.warning("Goal %s failed: %s", goal.label(), exc)
            results.append(GoalResult.failed(goal, str(exc)))
            continue
        if draw > 0:
            logger.info("Goal %s: %.2f of liquid capital allocated, %.2f left", goal.label(), draw, pool - draw)
        pool -= draw
    return results

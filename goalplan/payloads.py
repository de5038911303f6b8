"""Conversion of loosely shaped dict payloads into engine records, plus domain checks.

Parsing is lenient about field names (the aliases used by the surrounding API and the
stored configuration rows); validation is strict about values.
"""
from __future__ import annotations

import math
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Mapping

from .data_model import (
    Allocation,
    Asset,
    Bucket,
    Client,
    ConfigSnapshot,
    ContributionTiming,
    Goal,
    GoalType,
    IncomeBasis,
    PdsIncomeBracket,
    PdsSettings,
    Portfolio,
    Product,
    RiskProfile,
    Sex,
    SystemSettings,
    TaxBracket,
    YieldBracket,
)
from .errors import ConfigurationError, ValidationError

_SEX_ALIASES = {"m": Sex.MALE, "male": Sex.MALE, "f": Sex.FEMALE, "female": Sex.FEMALE}
_INCOME_BASIS_ALIASES = {
    "gross_before_tax": IncomeBasis.GROSS,
    "gross_before_ndfl": IncomeBasis.GROSS,
    "gross": IncomeBasis.GROSS,
    "net_after_tax": IncomeBasis.NET,
    "net_after_ndfl": IncomeBasis.NET,
    "net": IncomeBasis.NET,
}


def _extract_payload_value(payload: Mapping[str, Any], *keys: str, default=None):
    for key in keys:
        if key in payload and payload[key] is not None:
            return payload[key]
    return default


def _float(payload: Mapping[str, Any], *keys: str, default: float | None = 0.0) -> float | None:
    raw = _extract_payload_value(payload, *keys)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Field {keys[0]!r} is not a number: {raw!r}") from exc


def _int(payload: Mapping[str, Any], *keys: str, default: int = 0) -> int:
    value = _float(payload, *keys, default=None)
    return default if value is None else int(value)


def _parse_date(raw: Any) -> date:
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    try:
        return date.fromisoformat(str(raw)[:10])
    except ValueError as exc:
        raise ValidationError(f"Invalid date {raw!r}") from exc


def parse_goal_type(raw: Any) -> GoalType:
    value = str(raw or "").strip().lower()
    try:
        return GoalType(value)
    except ValueError as exc:
        raise ValidationError(f"Unknown goal type {raw!r}") from exc


def parse_client(payload: Mapping[str, Any]) -> Client:
    birth = _extract_payload_value(payload, "birth_date", "birthDate")
    if birth is None:
        raise ValidationError("Client birth_date is required")
    sex_raw = str(_extract_payload_value(payload, "sex", "gender", default="male")).strip().lower()
    if sex_raw not in _SEX_ALIASES:
        raise ValidationError(f"Unknown sex {sex_raw!r}")

    assets: List[Asset] = []
    for row in _extract_payload_value(payload, "assets", default=[]) or []:
        goal_id = _extract_payload_value(row, "goal_id")
        assets.append(
            Asset(
                asset_type=str(_extract_payload_value(row, "type", "asset_type", default="other")),
                amount=_float(row, "amount", "value"),
                unlock_month=_int(row, "unlock_month", "month"),
                goal_id=None if goal_id is None else str(goal_id),
            )
        )

    client = Client(
        birth_date=_parse_date(birth),
        sex=_SEX_ALIASES[sex_raw],
        avg_monthly_income=_float(payload, "avg_monthly_income", "monthly_income", "income"),
        liquid_capital=_float(payload, "liquid_capital", "total_liquid_capital"),
        assets=tuple(assets),
        ipk_current=_float(payload, "ipk_current", default=None),
    )
    validate_client(client)
    return client


def parse_goal(payload: Mapping[str, Any]) -> Goal:
    goal_id = _extract_payload_value(payload, "goal_id", "id")
    timing_raw = str(_extract_payload_value(payload, "contribution_timing", default="ordinary")).strip().lower()
    try:
        timing = ContributionTiming(timing_raw)
    except ValueError as exc:
        raise ValidationError(f"Unknown contribution timing {timing_raw!r}") from exc

    goal = Goal(
        goal_type=parse_goal_type(_extract_payload_value(payload, "goal_type", "type")),
        term_months=_int(payload, "term_months", "term"),
        risk_profile=str(_extract_payload_value(payload, "risk_profile", "profile_type", default="balanced")),
        target_amount=_float(payload, "target_amount", default=None),
        desired_monthly_income=_float(payload, "desired_monthly_income", "monthly_income", default=None),
        initial_capital=_float(payload, "initial_capital"),
        monthly_replenishment=_float(payload, "monthly_replenishment", "top_up", "initial_replenishment", "monthly_savings"),
        inflation_rate=_float(payload, "inflation_rate", default=None),
        contribution_timing=timing,
        goal_id=None if goal_id is None else str(goal_id),
        name=str(_extract_payload_value(payload, "name", default="")),
    )
    validate_goal(goal)
    return goal


def validate_client(client: Client) -> None:
    if client.avg_monthly_income < 0:
        raise ValidationError("Client income must be non-negative")
    if client.liquid_capital < 0:
        raise ValidationError("Client liquid capital must be non-negative")
    if client.ipk_current is not None and client.ipk_current < 0:
        raise ValidationError("Client IPK must be non-negative")
    for asset in client.assets:
        if asset.amount < 0 or asset.unlock_month < 0:
            raise ValidationError(f"Asset {asset.asset_type!r} has a negative amount or unlock month")


def validate_goal(goal: Goal) -> None:
    if goal.term_months < 0:
        raise ValidationError(f"Goal {goal.label()!r}: term must be non-negative")
    if goal.initial_capital < 0 or goal.monthly_replenishment < 0:
        raise ValidationError(f"Goal {goal.label()!r}: capital and replenishment must be non-negative")
    for value in (goal.target_amount, goal.desired_monthly_income, goal.inflation_rate):
        if value is not None and not math.isfinite(value):
            raise ValidationError(f"Goal {goal.label()!r}: amounts must be finite")
    has_target = goal.target_amount is not None
    has_income = goal.desired_monthly_income is not None
    if has_target and has_income:
        raise ValidationError(f"Goal {goal.label()!r}: give either a target amount or a desired monthly income")
    if goal.is_pension() and not has_income:
        raise ValidationError(f"Goal {goal.label()!r}: pension goals need a desired monthly income")
    if not goal.is_pension() and not has_target and not (goal.goal_type is GoalType.PASSIVE_INCOME and has_income):
        raise ValidationError(f"Goal {goal.label()!r}: a target amount is required")
    if (goal.target_amount or 0.0) < 0 or (goal.desired_monthly_income or 0.0) < 0:
        raise ValidationError(f"Goal {goal.label()!r}: target and income must be non-negative")


def _parse_yield_brackets(rows: Iterable[Mapping[str, Any]]) -> tuple[YieldBracket, ...]:
    brackets = []
    for row in rows or []:
        brackets.append(
            YieldBracket(
                term_from_months=_int(row, "term_from_months", "min_term_months"),
                term_to_months=_int(row, "term_to_months", "max_term_months", default=10**6),
                amount_from=_float(row, "amount_from", "min_amount"),
                amount_to=_float(row, "amount_to", "max_amount", default=math.inf),
                yield_percent=_float(row, "yield_percent"),
            )
        )
    return tuple(brackets)


def _parse_allocations(rows: Iterable[Mapping[str, Any]]) -> tuple[Allocation, ...]:
    return tuple(
        Allocation(
            product_id=str(_extract_payload_value(row, "product_id", "product")),
            share_percent=_float(row, "share_percent", "share"),
            order_index=_int(row, "order_index"),
        )
        for row in rows or []
    )


def _parse_profile(row: Mapping[str, Any]) -> RiskProfile:
    profile_type = str(_extract_payload_value(row, "profile_type", "risk_profile", "name", default=""))
    instruments = _extract_payload_value(row, "instruments")
    if instruments is not None:
        buckets: Dict[Bucket, list] = {Bucket.INITIAL_CAPITAL: [], Bucket.TOP_UP: []}
        for item in instruments:
            bucket_raw = str(_extract_payload_value(item, "bucket_type", default=Bucket.INITIAL_CAPITAL.value)).lower()
            try:
                buckets[Bucket(bucket_raw)].append(item)
            except ValueError as exc:
                raise ConfigurationError(f"Unknown bucket type {bucket_raw!r} in profile {profile_type!r}") from exc
        return RiskProfile(
            profile_type=profile_type,
            initial_capital=_parse_allocations(buckets[Bucket.INITIAL_CAPITAL]),
            top_up=_parse_allocations(buckets[Bucket.TOP_UP]),
        )
    return RiskProfile(
        profile_type=profile_type,
        initial_capital=_parse_allocations(_extract_payload_value(row, "initial_capital", default=[])),
        top_up=_parse_allocations(_extract_payload_value(row, "top_up", "initial_replenishment", default=[])),
    )


def _parse_portfolio(row: Mapping[str, Any]) -> Portfolio:
    goal_types = tuple(parse_goal_type(raw) for raw in _extract_payload_value(row, "goal_types", "classes", default=[]))
    return Portfolio(
        portfolio_id=str(_extract_payload_value(row, "portfolio_id", "id", default="")),
        name=str(_extract_payload_value(row, "name", default="")),
        goal_types=goal_types,
        risk_profiles=tuple(_parse_profile(item) for item in _extract_payload_value(row, "risk_profiles", default=[])),
        currency=str(_extract_payload_value(row, "currency", default="RUB")),
        term_from_months=_int(row, "term_from_months") if "term_from_months" in row else None,
        term_to_months=_int(row, "term_to_months") if "term_to_months" in row else None,
        amount_from=_float(row, "amount_from", default=None),
        amount_to=_float(row, "amount_to", default=None),
    )


def _parse_product(row: Mapping[str, Any]) -> Product:
    return Product(
        product_id=str(_extract_payload_value(row, "product_id", "id")),
        name=str(_extract_payload_value(row, "name", default="")),
        currency=str(_extract_payload_value(row, "currency", default="RUB")),
        product_type=str(_extract_payload_value(row, "product_type", "type", default="")),
        yields=_parse_yield_brackets(_extract_payload_value(row, "yields", "lines", default=[])),
    )


def _parse_pds_settings(row: Mapping[str, Any]) -> PdsSettings:
    defaults = PdsSettings()
    basis_raw = str(_extract_payload_value(row, "income_basis", default=defaults.income_basis.value)).lower()
    if basis_raw not in _INCOME_BASIS_ALIASES:
        raise ConfigurationError(f"Unknown PDS income basis {basis_raw!r}")
    return PdsSettings(
        max_state_cofin_amount_per_year=_float(
            row, "max_state_cofin_amount_per_year", default=defaults.max_state_cofin_amount_per_year
        ),
        min_contribution_for_support_per_year=_float(
            row, "min_contribution_for_support_per_year", default=defaults.min_contribution_for_support_per_year
        ),
        income_basis=_INCOME_BASIS_ALIASES[basis_raw],
        duration_years=_int(row, "duration_years", default=defaults.duration_years),
        tax_deduction_enabled=bool(_extract_payload_value(row, "tax_deduction_enabled", default=False)),
        deduction_base_limit=_float(row, "deduction_base_limit", default=defaults.deduction_base_limit),
    )


def parse_snapshot(payload: Mapping[str, Any]) -> ConfigSnapshot:
    try:
        tax_brackets = tuple(
            TaxBracket(
                income_from=_float(row, "income_from"),
                income_to=_float(row, "income_to", default=math.inf),
                rate=_float(row, "rate"),
                order_index=_int(row, "order_index", default=index),
            )
            for index, row in enumerate(_extract_payload_value(payload, "tax_brackets", default=[]))
        )
        income_brackets = tuple(
            PdsIncomeBracket(
                income_from=_float(row, "income_from"),
                income_to=_float(row, "income_to", default=None),
                ratio_numerator=_int(row, "ratio_numerator", default=1),
                ratio_denominator=_int(row, "ratio_denominator", default=1),
            )
            for row in _extract_payload_value(payload, "pds_income_brackets", default=[])
        )
        raw_settings = _extract_payload_value(payload, "system_settings", default=[])
        if isinstance(raw_settings, Mapping):
            system_settings = SystemSettings.from_mapping(raw_settings)
        else:
            system_settings = SystemSettings.from_rows(raw_settings)
        return ConfigSnapshot(
            products=tuple(_parse_product(row) for row in _extract_payload_value(payload, "products", default=[])),
            portfolios=tuple(_parse_portfolio(row) for row in _extract_payload_value(payload, "portfolios", default=[])),
            tax_brackets=tax_brackets,
            pds_settings=_parse_pds_settings(_extract_payload_value(payload, "pds_settings", default={})),
            pds_income_brackets=income_brackets,
            system_settings=system_settings,
        )
    except ValidationError as exc:
        raise ConfigurationError(str(exc)) from exc

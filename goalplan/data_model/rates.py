from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping, Tuple

from ..errors import ConfigurationError
from ..settings import (
    DEFAULT_COFINANCING_DURATION_YEARS,
    DEFAULT_DEDUCTION_BASE_LIMIT,
    DEFAULT_INFLATION_RATE,
    DEFAULT_MAX_STATE_COFIN_PER_YEAR,
    DEFAULT_MIN_CONTRIBUTION_FOR_SUPPORT,
    DEFAULT_MONTHLY_INDEXATION,
    DEFAULT_PENSION_VALUES,
    INDEXATION_KEY,
    INFLATION_RATE_KEY,
    PASSIVE_INCOME_YIELD_KEY,
)
from .goal import GoalType
from .portfolio import Portfolio, Product, YieldBracket


@dataclass(frozen=True)
class TaxBracket:
    income_from: float
    income_to: float
    rate: float  # percent
    order_index: int = 0


class IncomeBasis(str, Enum):
    GROSS = "gross_before_tax"
    NET = "net_after_tax"


@dataclass(frozen=True)
class PdsSettings:
    max_state_cofin_amount_per_year: float = DEFAULT_MAX_STATE_COFIN_PER_YEAR
    min_contribution_for_support_per_year: float = DEFAULT_MIN_CONTRIBUTION_FOR_SUPPORT
    income_basis: IncomeBasis = IncomeBasis.GROSS
    duration_years: int = DEFAULT_COFINANCING_DURATION_YEARS
    tax_deduction_enabled: bool = False
    deduction_base_limit: float = DEFAULT_DEDUCTION_BASE_LIMIT


@dataclass(frozen=True)
class PdsIncomeBracket:
    """Monthly income range mapped to a matching ratio.

    ``income_to`` is an inclusive whole-currency bound; ``None`` leaves the top row unbounded.
    """

    income_from: float
    income_to: float | None
    ratio_numerator: int
    ratio_denominator: int

    def ratio(self) -> float:
        if self.ratio_denominator <= 0:
            raise ConfigurationError(
                f"Co-financing bracket from {self.income_from} has a non-positive denominator"
            )
        return self.ratio_numerator / self.ratio_denominator


def _parse_setting_value(raw: Any, value_type: str) -> Any:
    if value_type == "number":
        return float(raw)
    if value_type == "json":
        return json.loads(raw) if isinstance(raw, str) else raw
    return raw


@dataclass(frozen=True)
class SettingValue:
    key: str
    value: Any
    value_type: str = "string"


@dataclass(frozen=True)
class SystemSettings:
    entries: Tuple[SettingValue, ...] = field(default_factory=tuple)
    _index: Mapping[str, SettingValue] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_index", {entry.key: entry for entry in self.entries})

    @classmethod
    def from_rows(cls, rows: Iterable[Mapping[str, Any]]) -> "SystemSettings":
        entries = []
        for row in rows:
            value_type = str(row.get("value_type", "string"))
            try:
                value = _parse_setting_value(row.get("value"), value_type)
            except (TypeError, ValueError) as exc:
                raise ConfigurationError(f"Setting {row.get('key')!r} is not a valid {value_type}") from exc
            entries.append(SettingValue(key=str(row["key"]), value=value, value_type=value_type))
        return cls(tuple(entries))

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "SystemSettings":
        entries = []
        for key, value in values.items():
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                entries.append(SettingValue(key, float(value), "number"))
            elif isinstance(value, (list, dict)):
                entries.append(SettingValue(key, value, "json"))
            else:
                entries.append(SettingValue(key, value, "string"))
        return cls(tuple(entries))

    def get(self, key: str, default: Any = None) -> Any:
        entry = self._index.get(key)
        return default if entry is None else entry.value

    def number(self, key: str, default: float) -> float:
        value = self.get(key)
        if value is None or value == "":
            return default
        try:
            return float(value)
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"Setting {key!r} is not numeric: {value!r}") from exc

    def json(self, key: str, default: Any = None) -> Any:
        value = self.get(key)
        if value is None:
            return default
        if isinstance(value, str):
            try:
                return json.loads(value)
            except json.JSONDecodeError as exc:
                raise ConfigurationError(f"Setting {key!r} is not valid JSON") from exc
        return value


@dataclass(frozen=True)
class PensionSettings:
    contribution_rate_percent: float
    fixed_payment: float
    point_cost: float
    salary_cap: float
    ipk_past_coef: float
    survival_period_months: float
    inflation_rate: float
    point_growth_rate: float

    @classmethod
    def from_system_settings(cls, settings: SystemSettings, inflation_override: float | None = None) -> "PensionSettings":
        values = {key: settings.number(key, default) for key, default in DEFAULT_PENSION_VALUES.items()}
        inflation = inflation_override
        if inflation is None:
            inflation = settings.number(INFLATION_RATE_KEY, DEFAULT_INFLATION_RATE)
        return cls(
            contribution_rate_percent=values["pension_pfr_contribution_rate_part1"],
            fixed_payment=values["pension_fixed_payment"],
            point_cost=values["pension_point_cost"],
            salary_cap=values["pension_max_salary_limit"],
            ipk_past_coef=values["pension_ipk_past_coef"],
            survival_period_months=values["pension_survival_period"],
            inflation_rate=inflation,
            point_growth_rate=settings.number("pension_point_growth_rate", inflation),
        )


@dataclass(frozen=True)
class ConfigSnapshot:
    """Read-only rate tables for a single computation."""

    products: Tuple[Product, ...] = field(default_factory=tuple)
    portfolios: Tuple[Portfolio, ...] = field(default_factory=tuple)
    tax_brackets: Tuple[TaxBracket, ...] = field(default_factory=tuple)
    pds_settings: PdsSettings = field(default_factory=PdsSettings)
    pds_income_brackets: Tuple[PdsIncomeBracket, ...] = field(default_factory=tuple)
    system_settings: SystemSettings = field(default_factory=SystemSettings)

    def product(self, product_id: str) -> Product | None:
        for product in self.products:
            if product.product_id == product_id:
                return product
        return None

    def portfolio_for(self, goal_type: GoalType, term_months: int, amount: float) -> Portfolio:
        for portfolio in self.portfolios:
            if portfolio.matches(goal_type, term_months, amount):
                return portfolio
        raise ConfigurationError(
            f"No portfolio for goal type {goal_type.value} (term {term_months} months, amount {amount:,.2f})"
        )

    def inflation_rate(self) -> float:
        return self.system_settings.number(INFLATION_RATE_KEY, DEFAULT_INFLATION_RATE)

    def monthly_indexation(self) -> float:
        return self.system_settings.number(INDEXATION_KEY, DEFAULT_MONTHLY_INDEXATION)

    def passive_income_yield_lines(self) -> Tuple[YieldBracket, ...]:
        rows = self.system_settings.json(PASSIVE_INCOME_YIELD_KEY, default=[]) or []
        lines = []
        for row in rows:
            try:
                lines.append(
                    YieldBracket(
                        term_from_months=int(row.get("min_term_months", 0)),
                        term_to_months=int(row.get("max_term_months", 0)),
                        amount_from=float(row.get("min_amount", 0.0)),
                        amount_to=float(row.get("max_amount", float("inf"))),
                        yield_percent=float(row["yield_percent"]),
                    )
                )
            except (KeyError, TypeError, ValueError, AttributeError) as exc:
                raise ConfigurationError(f"Malformed {PASSIVE_INCOME_YIELD_KEY} line: {row!r}") from exc
        return tuple(lines)

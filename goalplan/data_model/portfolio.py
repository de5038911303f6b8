from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Tuple

from .goal import GoalType

PDS_PRODUCT_TYPE = "PDS"


class Bucket(str, Enum):
    INITIAL_CAPITAL = "initial_capital"
    TOP_UP = "top_up"


@dataclass(frozen=True)
class YieldBracket:
    term_from_months: int
    term_to_months: int
    amount_from: float
    amount_to: float
    yield_percent: float

    def contains(self, term_months: int, amount: float) -> bool:
        return (
            self.term_from_months <= term_months <= self.term_to_months
            and self.amount_from <= amount <= self.amount_to
        )

    def term_distance(self, term_months: int) -> int:
        if term_months < self.term_from_months:
            return self.term_from_months - term_months
        if term_months > self.term_to_months:
            return term_months - self.term_to_months
        return 0


@dataclass(frozen=True)
class Product:
    product_id: str
    name: str
    currency: str = "RUB"
    product_type: str = ""
    yields: Tuple[YieldBracket, ...] = field(default_factory=tuple)

    def is_pds(self) -> bool:
        return self.product_type.strip().upper() == PDS_PRODUCT_TYPE


@dataclass(frozen=True)
class Allocation:
    product_id: str
    share_percent: float
    order_index: int = 0


@dataclass(frozen=True)
class RiskProfile:
    profile_type: str
    initial_capital: Tuple[Allocation, ...] = field(default_factory=tuple)
    top_up: Tuple[Allocation, ...] = field(default_factory=tuple)

    def bucket(self, bucket: Bucket) -> Tuple[Allocation, ...]:
        items = self.initial_capital if bucket is Bucket.INITIAL_CAPITAL else self.top_up
        return tuple(sorted(items, key=lambda item: item.order_index))


@dataclass(frozen=True)
class Portfolio:
    portfolio_id: str
    name: str
    goal_types: Tuple[GoalType, ...] = field(default_factory=tuple)
    risk_profiles: Tuple[RiskProfile, ...] = field(default_factory=tuple)
    currency: str = "RUB"
    term_from_months: int | None = None
    term_to_months: int | None = None
    amount_from: float | None = None
    amount_to: float | None = None

    def matches(self, goal_type: GoalType, term_months: int, amount: float) -> bool:
        if self.goal_types and goal_type not in self.goal_types:
            return False
        if self.term_from_months is not None and term_months < self.term_from_months:
            return False
        if self.term_to_months is not None and term_months > self.term_to_months:
            return False
        if self.amount_from is not None and amount < self.amount_from:
            return False
        if self.amount_to is not None and amount > self.amount_to:
            return False
        return True

    def profile(self, name: str) -> RiskProfile | None:
        wanted = name.strip().lower()
        for profile in self.risk_profiles:
            if profile.profile_type.strip().lower() == wanted:
                return profile
        return None

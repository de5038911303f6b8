from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Tuple


class Sex(str, Enum):
    MALE = "male"
    FEMALE = "female"


@dataclass(frozen=True)
class Asset:
    asset_type: str
    amount: float
    unlock_month: int = 0
    goal_id: str | None = None


@dataclass(frozen=True)
class Client:
    birth_date: date
    sex: Sex
    avg_monthly_income: float = 0.0
    liquid_capital: float = 0.0
    assets: Tuple[Asset, ...] = field(default_factory=tuple)
    ipk_current: float | None = None

    def annual_income(self) -> float:
        return self.avg_monthly_income * 12.0

    def age_in(self, year: int) -> int:
        return year - self.birth_date.year

    def assets_for_goal(self, goal_id: str | None) -> list[Asset]:
        if goal_id is None:
            return []
        return [asset for asset in self.assets if asset.goal_id == goal_id]

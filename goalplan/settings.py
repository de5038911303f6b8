"""Engine policy constants and tunable search options.

Nothing here is read implicitly by the engine: callers build an ``EngineOptions``
(directly or via ``EngineOptions.from_env()``) and pass it into every entry point.
"""
from __future__ import annotations

import os
from dataclasses import dataclass

# Co-financing for year N-1 is paid in August of year N. Treated as a fixed
# business rule pending product-owner confirmation.
COFINANCING_MONTH = 8
# PDS tax-deduction refunds for year N-1 land in April of year N.
TAX_REFUND_MONTH = 4
DEFAULT_COFINANCING_DURATION_YEARS = 10
DEFAULT_MAX_STATE_COFIN_PER_YEAR = 36000.0
DEFAULT_MIN_CONTRIBUTION_FOR_SUPPORT = 2000.0
DEFAULT_DEDUCTION_BASE_LIMIT = 400000.0

# System-setting keys and their fallbacks.
INFLATION_RATE_KEY = "inflation_rate_year"
INDEXATION_KEY = "investment_expense_growth_monthly"
PASSIVE_INCOME_YIELD_KEY = "passive_income_yield"

DEFAULT_INFLATION_RATE = 4.0
DEFAULT_MONTHLY_INDEXATION = 0.0

DEFAULT_PENSION_VALUES: dict[str, float] = {
    "pension_pfr_contribution_rate_part1": 22.0,
    "pension_fixed_payment": 8907.0,
    "pension_point_cost": 145.69,
    "pension_survival_period": 264.0,
    "pension_max_salary_limit": 2759000.0,
    "pension_ipk_past_coef": 0.6,
}

RETIREMENT_AGE_MALE = 65
RETIREMENT_AGE_FEMALE = 60
WORK_START_AGE = 18
MAX_IPK_PER_YEAR = 10.0

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class EngineOptions:
    max_iterations: int = 60
    abs_tolerance: float = 1.0
    rel_tolerance: float = 1e-4
    share_tolerance: float = 0.01
    record_trajectory: bool = True

    def tolerance_for(self, target: float) -> float:
        return max(self.abs_tolerance, abs(target) * self.rel_tolerance)

    @classmethod
    def from_env(cls) -> "EngineOptions":
        """Build options from env flags.

        Env vars:
          GOALPLAN_MAX_ITERATIONS=60       -> search iteration ceiling
          GOALPLAN_ABS_TOLERANCE=1.0       -> absolute tolerance in currency units
          GOALPLAN_REL_TOLERANCE=0.0001    -> relative tolerance against the target
          GOALPLAN_SHARE_TOLERANCE=0.01    -> allowed drift of allocation shares from 100%
          GOALPLAN_RECORD_TRAJECTORY=1     -> keep per-month records on final runs
        """
        defaults = cls()
        record_raw = os.getenv("GOALPLAN_RECORD_TRAJECTORY")
        return cls(
            max_iterations=int(os.getenv("GOALPLAN_MAX_ITERATIONS", defaults.max_iterations)),
            abs_tolerance=float(os.getenv("GOALPLAN_ABS_TOLERANCE", defaults.abs_tolerance)),
            rel_tolerance=float(os.getenv("GOALPLAN_REL_TOLERANCE", defaults.rel_tolerance)),
            share_tolerance=float(os.getenv("GOALPLAN_SHARE_TOLERANCE", defaults.share_tolerance)),
            record_trajectory=defaults.record_trajectory if record_raw is None else record_raw.lower() in _TRUTHY,
        )

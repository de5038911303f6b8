from .client import Asset, Client, Sex
from .goal import INCOME_GOAL_TYPES, ContributionTiming, Goal, GoalType
from .portfolio import (
    PDS_PRODUCT_TYPE,
    Allocation,
    Bucket,
    Portfolio,
    Product,
    RiskProfile,
    YieldBracket,
)
from .rates import (
    ConfigSnapshot,
    IncomeBasis,
    PdsIncomeBracket,
    PdsSettings,
    PensionSettings,
    SettingValue,
    SystemSettings,
    TaxBracket,
)

__all__ = [
    "INCOME_GOAL_TYPES",
    "PDS_PRODUCT_TYPE",
    "Allocation",
    "Asset",
    "Bucket",
    "Client",
    "ConfigSnapshot",
    "ContributionTiming",
    "Goal",
    "GoalType",
    "IncomeBasis",
    "PdsIncomeBracket",
    "PdsSettings",
    "PensionSettings",
    "Portfolio",
    "Product",
    "RiskProfile",
    "SettingValue",
    "Sex",
    "SystemSettings",
    "TaxBracket",
    "YieldBracket",
]

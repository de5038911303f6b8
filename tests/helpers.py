import math
from datetime import date

from goalplan.data_model import PdsIncomeBracket, Product, TaxBracket, YieldBracket

TODAY = date(2025, 6, 15)


def seed_tax_brackets():
    return (
        TaxBracket(income_from=0, income_to=5_000_000, rate=13, order_index=0),
        TaxBracket(income_from=5_000_001, income_to=99_999_999_999, rate=15, order_index=1),
    )


def seed_income_brackets():
    return (
        PdsIncomeBracket(income_from=0, income_to=80_000, ratio_numerator=1, ratio_denominator=1),
        PdsIncomeBracket(income_from=80_001, income_to=150_000, ratio_numerator=1, ratio_denominator=2),
        PdsIncomeBracket(income_from=150_001, income_to=None, ratio_numerator=1, ratio_denominator=4),
    )


def flat_product(product_id, yield_percent, product_type=""):
    return Product(
        product_id=product_id,
        name=product_id.title(),
        product_type=product_type,
        yields=(YieldBracket(0, 1200, 0, math.inf, yield_percent),),
    )

"""Blended expected yield from a risk profile's weighted product allocations."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Sequence, Tuple

from ..data_model import Allocation, Bucket, ConfigSnapshot, Product, RiskProfile, YieldBracket
from ..errors import AllocationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AllocationDetail:
    product_id: str
    share_percent: float
    yield_percent: float
    is_pds: bool = False
    fallback: bool = False


@dataclass(frozen=True)
class BlendedYield:
    yield_percent: float
    degraded: bool = False
    pds_share: float = 0.0  # fraction of the bucket routed to PDS products, 0..1
    details: Tuple[AllocationDetail, ...] = field(default_factory=tuple)


def lookup_product_yield(product: Product, term_months: int, amount: float) -> Tuple[float, bool]:
    """First bracket containing (term, amount); otherwise the closest bracket by term.

    Returns ``(yield_percent, fallback_used)``.
    """
    for bracket in product.yields:
        if bracket.contains(term_months, amount):
            return bracket.yield_percent, False
    if not product.yields:
        logger.warning("Product %s has no yield brackets; using 0%%", product.product_id)
        return 0.0, True
    closest = _closest_bracket(product.yields, term_months, amount)
    logger.warning(
        "No yield bracket of %s covers term %s / amount %.2f; falling back to %.2f%%",
        product.product_id,
        term_months,
        amount,
        closest.yield_percent,
    )
    return closest.yield_percent, True


def _closest_bracket(brackets: Sequence[YieldBracket], term_months: int, amount: float) -> YieldBracket:
    def amount_distance(bracket: YieldBracket) -> float:
        if amount < bracket.amount_from:
            return bracket.amount_from - amount
        if amount > bracket.amount_to:
            return amount - bracket.amount_to
        return 0.0

    return min(brackets, key=lambda b: (b.term_distance(term_months), amount_distance(b)))


def _check_shares(allocations: Sequence[Allocation], share_tolerance: float) -> None:
    total = sum(item.share_percent for item in allocations)
    if abs(total - 100.0) > share_tolerance:
        raise AllocationError(f"Allocation shares sum to {total:.4f}%, expected 100%")


def resolve_allocation(
    profile: RiskProfile,
    bucket: Bucket,
    amount: float,
    term_months: int,
    snapshot: ConfigSnapshot,
    share_tolerance: float = 0.01,
    strict: bool = True,
) -> BlendedYield:
    """Weighted average yield over one bucket of ``profile``.

    With ``strict`` the share check and product resolution raise ``AllocationError``.
    Without it unresolvable products are dropped and the remaining shares renormalised,
    and the result is flagged as degraded.
    """
    allocations = profile.bucket(bucket)
    if not allocations:
        return BlendedYield(yield_percent=0.0)

    degraded = False
    resolved: List[Tuple[Allocation, Product]] = []
    for item in allocations:
        product = snapshot.product(item.product_id)
        if product is None:
            if strict:
                raise AllocationError(f"Allocation references unknown product {item.product_id!r}")
            logger.warning("Dropping allocation to unknown product %s", item.product_id)
            degraded = True
            continue
        resolved.append((item, product))

    if strict:
        _check_shares(allocations, share_tolerance)

    total_share = sum(item.share_percent for item, _ in resolved)
    if total_share <= 0:
        if strict:
            raise AllocationError(f"Bucket {bucket.value} of profile {profile.profile_type} has no positive shares")
        return BlendedYield(yield_percent=0.0, degraded=True)
    if abs(total_share - 100.0) > share_tolerance:
        degraded = True

    blended = 0.0
    pds_share = 0.0
    details = []
    for item, product in resolved:
        # Each allocation is priced at the amount it actually receives.
        allocated = max(amount * item.share_percent / 100.0, 1.0)
        yield_percent, fallback = lookup_product_yield(product, term_months, allocated)
        weight = item.share_percent / total_share
        blended += yield_percent * weight
        if product.is_pds():
            pds_share += weight
        degraded = degraded or fallback
        details.append(
            AllocationDetail(
                product_id=product.product_id,
                share_percent=item.share_percent,
                yield_percent=yield_percent,
                is_pds=product.is_pds(),
                fallback=fallback,
            )
        )

    return BlendedYield(yield_percent=blended, degraded=degraded, pds_share=pds_share, details=tuple(details))


def resolve_yield(
    profile: RiskProfile,
    bucket: Bucket,
    amount: float,
    term_months: int,
    snapshot: ConfigSnapshot,
    share_tolerance: float = 0.01,
) -> float:
    return resolve_allocation(profile, bucket, amount, term_months, snapshot, share_tolerance).yield_percent


def resolve_portfolio_yield(
    profile: RiskProfile,
    snapshot: ConfigSnapshot,
    initial_capital: float,
    term_months: int,
    share_tolerance: float = 0.01,
) -> BlendedYield:
    """Yield for a goal's whole pot plus the PDS share of its contributions.

    The pot grows at the initial-capital bucket's yield (top-up if that bucket is
    empty). Contributions follow the top-up bucket, or the initial-capital bucket when
    the profile has no top-up allocations. An invalid profile is degraded rather than
    raised.
    """
    try:
        initial = resolve_allocation(profile, Bucket.INITIAL_CAPITAL, initial_capital, term_months, snapshot, share_tolerance)
        top_up = resolve_allocation(profile, Bucket.TOP_UP, initial_capital, term_months, snapshot, share_tolerance)
    except AllocationError as exc:
        logger.warning("Profile %s is invalid (%s); using a best-effort allocation", profile.profile_type, exc)
        initial = resolve_allocation(
            profile, Bucket.INITIAL_CAPITAL, initial_capital, term_months, snapshot, share_tolerance, strict=False
        )
        top_up = resolve_allocation(
            profile, Bucket.TOP_UP, initial_capital, term_months, snapshot, share_tolerance, strict=False
        )
        initial = _mark_degraded(initial)

    growth = initial if profile.bucket(Bucket.INITIAL_CAPITAL) else top_up
    contributions = top_up if profile.bucket(Bucket.TOP_UP) else initial
    return BlendedYield(
        yield_percent=growth.yield_percent,
        degraded=initial.degraded or top_up.degraded,
        pds_share=contributions.pds_share,
        details=growth.details,
    )


def _mark_degraded(result: BlendedYield) -> BlendedYield:
    return BlendedYield(
        yield_percent=result.yield_percent,
        degraded=True,
        pds_share=result.pds_share,
        details=result.details,
    )

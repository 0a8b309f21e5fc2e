"""Tier financial calculations.

Spreadsheet-style roll-ups over a deal's tiers: revenue, revenue-weighted
gross margin, gross profit, incentive cost and growth versus the previous
year. Sums use math.fsum so results do not depend on tier order.
"""

from __future__ import annotations

import math
from collections.abc import Sequence

from src.dealdesk.deals.schemas import (
    DealRead,
    DealTierCreate,
    PreviousYearFinancials,
    TierFinancialSummary,
)


class TierValidationError(ValueError):
    """Raised when a deal's tiers break the numbering invariant."""


def validate_tiers(tiers: Sequence[DealTierCreate]) -> None:
    """Require at least one tier and contiguous tier numbers starting at 1.

    Raises:
        TierValidationError: If the tier list is empty or numbers have gaps
            or duplicates.
    """
    if not tiers:
        raise TierValidationError("A deal requires at least one tier")
    numbers = sorted(t.tier_number for t in tiers)
    expected = list(range(1, len(tiers) + 1))
    if numbers != expected:
        raise TierValidationError(
            f"Tier numbers must be contiguous starting at 1, got {numbers}"
        )


def total_revenue(tiers: Sequence[DealTierCreate]) -> float:
    return math.fsum(t.annual_revenue for t in tiers)


def weighted_gross_margin(tiers: Sequence[DealTierCreate]) -> float:
    revenue = total_revenue(tiers)
    if revenue == 0:
        return 0.0
    return gross_profit(tiers) / revenue


def gross_profit(tiers: Sequence[DealTierCreate]) -> float:
    return math.fsum(t.annual_revenue * t.annual_gross_margin for t in tiers)


def incentive_cost(tiers: Sequence[DealTierCreate]) -> float:
    return math.fsum(t.incentive_value for t in tiers)


def growth_rate(current: float, previous: float) -> float:
    """Fractional change from previous to current; 0 when there is no baseline."""
    if previous == 0:
        return 0.0
    return (current - previous) / previous


def expected_tier(tiers: Sequence[DealTierCreate]) -> DealTierCreate:
    """Tier used for headline projections: tier 2 when present, else tier 1."""
    by_number = {t.tier_number: t for t in tiers}
    return by_number.get(2) or by_number.get(1) or min(tiers, key=lambda t: t.tier_number)


def calculate_tier_summary(
    tiers: Sequence[DealTierCreate],
    previous_year: PreviousYearFinancials | None = None,
) -> TierFinancialSummary:
    """Roll a deal's tiers up into a TierFinancialSummary.

    Args:
        tiers: The deal's tiers (at least one).
        previous_year: Baseline for growth figures. Defaults to the standard
            baseline (2.5M revenue, 25% margin, 35K incentive cost).

    Returns:
        TierFinancialSummary. Identical for any ordering of tiers.
    """
    validate_tiers(tiers)
    baseline = previous_year or PreviousYearFinancials()

    revenue = total_revenue(tiers)
    margin = weighted_gross_margin(tiers)
    profit = gross_profit(tiers)
    incentives = incentive_cost(tiers)
    adjusted = profit - incentives

    previous_profit = baseline.revenue * baseline.gross_margin - baseline.incentive_cost

    return TierFinancialSummary(
        tier_count=len(tiers),
        total_revenue=revenue,
        weighted_gross_margin=margin,
        gross_profit=profit,
        incentive_cost=incentives,
        adjusted_gross_profit=adjusted,
        revenue_growth_rate=growth_rate(revenue, baseline.revenue),
        gross_margin_change=margin - baseline.gross_margin,
        profit_growth_rate=growth_rate(adjusted, previous_profit),
        expected_tier_number=expected_tier(tiers).tier_number,
    )


def previous_year_baseline(deal: DealRead) -> PreviousYearFinancials:
    """Baseline from the deal's own previous year figures, else the default."""
    default = PreviousYearFinancials()
    if not deal.previous_year_revenue:
        return default
    return PreviousYearFinancials(
        revenue=deal.previous_year_revenue,
        gross_margin=deal.previous_year_margin or default.gross_margin,
    )

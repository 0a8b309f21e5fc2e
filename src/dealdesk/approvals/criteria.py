"""Standard deal criteria evaluation.

A deal is "standard" when it passes all ten fixed checks below. Standard
deals are eligible for the lighter MD-only approval path; anything else
goes to the Executive Committee.
"""

from __future__ import annotations

import structlog
from pydantic import BaseModel

from src.dealdesk.approvals.schemas import DealParameters, StandardDealEvaluation

logger = structlog.get_logger(__name__)


class StandardDealCriteria(BaseModel):
    """Fixed thresholds a standard deal must meet."""

    deal_type: str = "grow"
    sales_channels: frozenset[str] = frozenset({"independent_agency", "client_direct"})
    projected_annual_spend_min: float = 1_000_000
    projected_annual_spend_max: float = 3_000_000
    yearly_revenue_growth_rate: float = 25
    forecasted_margin: float = 30
    yearly_margin_growth_rate: float = -5
    added_value_benefits_cost: float = 100_000
    analytics_tier: str = "silver"


STANDARD_DEAL_CRITERIA = StandardDealCriteria()


def annual_value(params: DealParameters) -> float:
    """Projected annual spend: explicit value, else total value spread over the term."""
    if params.annual_value:
        return params.annual_value
    if not params.contract_term_months:
        return params.total_value
    return params.total_value / (params.contract_term_months / 12)


def _has_required_fields(params: DealParameters) -> bool:
    return not (
        not params.deal_type
        or not params.sales_channel
        or params.yearly_revenue_growth_rate is None
        or params.forecasted_margin is None
        or params.yearly_margin_growth_rate is None
    )


def get_non_standard_reasons(
    params: DealParameters,
    criteria: StandardDealCriteria = STANDARD_DEAL_CRITERIA,
) -> list[str]:
    """Return the violated criteria, in display order."""
    reasons: list[str] = []
    spend = annual_value(params)
    benefits_cost = params.added_value_benefits_cost or 0

    if not params.deal_type or params.deal_type.lower() != criteria.deal_type:
        reasons.append("Deal type is not 'Grow'")
    if not params.sales_channel or params.sales_channel not in criteria.sales_channels:
        reasons.append("Sales channel is not Independent Agency or Client Direct")
    if params.has_trade_am_implications:
        reasons.append("Has Trading & AM resource implications")
    if not (criteria.projected_annual_spend_min <= spend <= criteria.projected_annual_spend_max):
        reasons.append("Projected annual spend not between $1M-$3M")
    if (params.yearly_revenue_growth_rate or 0) < criteria.yearly_revenue_growth_rate:
        reasons.append("Yearly revenue growth rate < 25%")
    if (params.forecasted_margin or 0) < criteria.forecasted_margin:
        reasons.append("Forecasted margin < 30%")
    if (params.yearly_margin_growth_rate or 0) < criteria.yearly_margin_growth_rate:
        reasons.append("Yearly margin growth rate < -5%")
    if benefits_cost > criteria.added_value_benefits_cost:
        reasons.append("Added value benefits cost > $100K")
    if (params.analytics_tier or "").lower() != criteria.analytics_tier:
        reasons.append("Analytics solutions tier is not Silver")
    if params.requires_custom_marketing:
        reasons.append("Requires custom marketing/PR")

    return reasons


def evaluate_standard_deal(
    params: DealParameters,
    criteria: StandardDealCriteria = STANDARD_DEAL_CRITERIA,
) -> StandardDealEvaluation:
    """Check a deal against the standard deal criteria.

    Missing required fields short-circuit to non-standard; the violation
    list still reports every failing check.

    Args:
        params: Deal parameters to evaluate.
        criteria: Thresholds to evaluate against.

    Returns:
        StandardDealEvaluation with is_standard and ordered violations.
    """
    violations = get_non_standard_reasons(params, criteria)
    is_standard = _has_required_fields(params) and not violations

    logger.debug(
        "criteria.evaluated",
        is_standard=is_standard,
        violation_count=len(violations),
    )
    return StandardDealEvaluation(is_standard=is_standard, violations=violations)


def is_standard_deal(params: DealParameters) -> bool:
    return evaluate_standard_deal(params).is_standard

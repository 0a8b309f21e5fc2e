"""Approval matrix -- resolves the approver level a deal requires.

Three independent lookup tables (deal value, discount, contract term) each
yield an ApproverLevel; the resolver returns the highest of them. Deals that
fail the standard deal criteria always go to the Executive Committee.

Thresholds here are the canonical ones: 30% discount and a $500,000
MD/Executive value cutoff.
"""

from __future__ import annotations

import structlog
from pydantic import BaseModel

from src.dealdesk.approvals.criteria import evaluate_standard_deal, get_non_standard_reasons
from src.dealdesk.approvals.schemas import (
    APPROVER_LEVEL_RANK,
    ApprovalAlert,
    ApprovalRule,
    ApproverLevel,
    DealParameters,
)

logger = structlog.get_logger(__name__)

HIGH_VALUE_THRESHOLD = 500_000
HIGH_DISCOUNT_THRESHOLD = 30
EXTENDED_TERM_MONTHS = 36


# ── Lookup Tables ───────────────────────────────────────────────────────────


class ValueRange(BaseModel):
    min: float
    max: float | None
    standard_terms: ApproverLevel
    non_standard_terms: ApproverLevel
    high_discount: ApproverLevel


VALUE_RANGES: list[ValueRange] = [
    ValueRange(
        min=0,
        max=HIGH_VALUE_THRESHOLD,
        standard_terms=ApproverLevel.MD,
        non_standard_terms=ApproverLevel.EXECUTIVE,
        high_discount=ApproverLevel.EXECUTIVE,
    ),
    ValueRange(
        min=HIGH_VALUE_THRESHOLD,
        max=None,
        standard_terms=ApproverLevel.EXECUTIVE,
        non_standard_terms=ApproverLevel.EXECUTIVE,
        high_discount=ApproverLevel.EXECUTIVE,
    ),
]

# (threshold, level), checked highest first
DISCOUNT_THRESHOLDS: list[tuple[float, ApproverLevel]] = [
    (30, ApproverLevel.EXECUTIVE),
]

CONTRACT_TERM_THRESHOLDS: list[tuple[int, ApproverLevel]] = [
    (36, ApproverLevel.EXECUTIVE),
    (24, ApproverLevel.MD),
]

APPROVER_LEVELS: dict[ApproverLevel, ApprovalRule] = {
    ApproverLevel.MD: ApprovalRule(
        level=ApproverLevel.MD,
        title="Managing Director",
        description="Standard approval for deals meeting standard criteria",
        estimated_time="1-2 business days",
    ),
    ApproverLevel.EXECUTIVE: ApprovalRule(
        level=ApproverLevel.EXECUTIVE,
        title="Executive Committee",
        description=(
            "Required for non-standard deals, high-value deals, "
            "or deals with special terms"
        ),
        estimated_time="3-5 business days",
    ),
}


# ── Per-Table Lookups ───────────────────────────────────────────────────────


def is_high_discount(discount_percentage: float) -> bool:
    return discount_percentage > HIGH_DISCOUNT_THRESHOLD


def get_value_based_approver(
    value: float, has_non_standard_terms: bool, high_discount: bool
) -> ApproverLevel:
    """Level from the value table. Ranges are checked in order, so 500,000 is MD."""
    for value_range in VALUE_RANGES:
        in_range = value >= value_range.min and (
            value_range.max is None or value <= value_range.max
        )
        if not in_range:
            continue
        if high_discount:
            return value_range.high_discount
        if has_non_standard_terms:
            return value_range.non_standard_terms
        return value_range.standard_terms
    return ApproverLevel.EXECUTIVE


def get_discount_based_approver(discount_percentage: float) -> ApproverLevel:
    for threshold, level in sorted(DISCOUNT_THRESHOLDS, key=lambda t: t[0], reverse=True):
        if discount_percentage >= threshold:
            return level
    return ApproverLevel.MD


def get_contract_term_based_approver(contract_term_months: int) -> ApproverLevel:
    for months, level in sorted(CONTRACT_TERM_THRESHOLDS, key=lambda t: t[0], reverse=True):
        if contract_term_months >= months:
            return level
    return ApproverLevel.MD


def highest_level(*levels: ApproverLevel) -> ApproverLevel:
    return max(levels, key=lambda level: APPROVER_LEVEL_RANK[level])


# ── Resolver ────────────────────────────────────────────────────────────────


def resolve_approver_level(
    deal_value: float,
    discount_percentage: float = 0,
    contract_term_months: int = 0,
    has_non_standard_terms: bool = False,
    is_standard_deal: bool = True,
) -> ApproverLevel:
    """Return the highest approver level any table requires.

    Args:
        deal_value: Total deal value in USD.
        discount_percentage: Discount offered, 0-100.
        contract_term_months: Contract length in months.
        has_non_standard_terms: Whether the deal carries special terms.
        is_standard_deal: Result of the standard criteria check. A
            non-standard deal always requires Executive approval.

    Returns:
        ApproverLevel.MD or ApproverLevel.EXECUTIVE.
    """
    if not is_standard_deal:
        return ApproverLevel.EXECUTIVE

    value_level = get_value_based_approver(
        deal_value, has_non_standard_terms, is_high_discount(discount_percentage)
    )
    return highest_level(
        value_level,
        get_discount_based_approver(discount_percentage),
        get_contract_term_based_approver(contract_term_months),
    )


def determine_required_approver(params: DealParameters) -> ApproverLevel:
    """Evaluate the standard criteria and resolve the approver level for a deal."""
    evaluation = evaluate_standard_deal(params)
    level = resolve_approver_level(
        deal_value=params.total_value,
        discount_percentage=params.discount_percentage,
        contract_term_months=params.contract_term_months,
        has_non_standard_terms=params.has_non_standard_terms,
        is_standard_deal=evaluation.is_standard,
    )
    logger.info(
        "matrix.approver_resolved",
        level=level.value,
        is_standard=evaluation.is_standard,
        total_value=params.total_value,
    )
    return level


def get_approver_details(level: ApproverLevel) -> ApprovalRule:
    return APPROVER_LEVELS[level]


# ── Submission Alert ────────────────────────────────────────────────────────


def _join_reasons(reasons: list[str]) -> str:
    if len(reasons) == 1:
        return reasons[0]
    if len(reasons) == 2:
        return " and ".join(reasons)
    return f"{', '.join(reasons[:-1])}, and {reasons[-1]}"


def _format_number(value: float) -> str:
    return f"{value:,.0f}" if float(value).is_integer() else f"{value:,}"


def generate_approval_alert(params: DealParameters) -> ApprovalAlert:
    """Build the approval alert a seller sees before submitting a deal."""
    level = determine_required_approver(params)
    approver = get_approver_details(level)
    alert_level = "info" if level == ApproverLevel.MD else "warning"

    reasons = get_non_standard_reasons(params)
    if params.total_value > HIGH_VALUE_THRESHOLD:
        reasons.append(f"deal value of ${_format_number(params.total_value)}")
    if params.has_non_standard_terms:
        reasons.append("non-standard terms")
    if is_high_discount(params.discount_percentage):
        reasons.append(f"high discount of {_format_number(params.discount_percentage)}%")
    if params.contract_term_months > EXTENDED_TERM_MONTHS:
        reasons.append(f"extended contract term of {params.contract_term_months} months")

    message = f"This deal requires {approver.title} approval"
    if reasons:
        message += f" due to {_join_reasons(reasons)}. "
    else:
        message += ". "
    message += f"Estimated approval time: {approver.estimated_time}."

    return ApprovalAlert(
        message=message,
        level=alert_level,
        approver=approver,
        reasons=reasons,
    )

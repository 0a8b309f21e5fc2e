"""Department requirement mapping and approval path prediction.

Maps the incentive categories selected on a deal's tiers to the departments
that must review it. Finance and trading always review; creative, product,
solutions and marketing join when one of their incentive categories is
present. The predicted path is descriptive only -- it renders an expected
timeline, it does not drive the workflow.

generate_approval_requirements() builds the persisted requirement records
created when a deal is submitted.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from datetime import datetime, timezone

import structlog
from pydantic import BaseModel, Field

from src.dealdesk.approvals.matrix import HIGH_VALUE_THRESHOLD, get_approver_details
from src.dealdesk.approvals.schemas import (
    ApprovalPrediction,
    ApprovalRequirementCreate,
    ApprovalStage,
    ApproverLevel,
    BusinessApprovalStage,
    Department,
    DepartmentReviewStatus,
    DepartmentStage,
)

logger = structlog.get_logger(__name__)

FINANCE_AUTO_APPROVE_THRESHOLD = 100_000

CORE_DEPARTMENTS: tuple[Department, ...] = (Department.FINANCE, Department.TRADING)

# Canonical order of specialized departments in a predicted path
SPECIALIZED_ORDER: tuple[Department, ...] = (
    Department.CREATIVE,
    Department.PRODUCT,
    Department.SOLUTIONS,
    Department.MARKETING,
)

INCENTIVE_CATEGORY_DEPARTMENTS: dict[str, Department] = {
    "financial": Department.FINANCE,
    "resources": Department.FINANCE,
    "product-innovation": Department.CREATIVE,
    "technology": Department.PRODUCT,
    "analytics": Department.SOLUTIONS,
    "marketing": Department.MARKETING,
    "marketing-ld": Department.MARKETING,
}

# Display names as they appear on tiers, keyed to category ids
INCENTIVE_CATEGORY_NAMES: dict[str, str] = {
    "financial": "Financial",
    "resources": "Resources",
    "product-innovation": "Product & Innovation",
    "technology": "Technology",
    "analytics": "Analytics",
    "marketing-ld": "Marketing & L&D",
}


# ── Department Directory ────────────────────────────────────────────────────


class DepartmentInfo(BaseModel):
    department: Department
    display_name: str
    description: str
    contact_email: str
    incentive_types: list[str] = Field(default_factory=list)


DEPARTMENT_DIRECTORY: dict[Department, DepartmentInfo] = {
    Department.FINANCE: DepartmentInfo(
        department=Department.FINANCE,
        display_name="Finance Team",
        description="Reviews financial incentives and overall deal viability",
        contact_email="finance-team@company.com",
        incentive_types=["financial", "resources"],
    ),
    Department.TRADING: DepartmentInfo(
        department=Department.TRADING,
        display_name="Trading Team",
        description="Reviews margin implications and trading viability",
        contact_email="trading-team@company.com",
    ),
    Department.CREATIVE: DepartmentInfo(
        department=Department.CREATIVE,
        display_name="Creative Team",
        description="Reviews creative assets and innovation incentives",
        contact_email="creative-team@company.com",
        incentive_types=["product-innovation"],
    ),
    Department.PRODUCT: DepartmentInfo(
        department=Department.PRODUCT,
        display_name="Product Team",
        description="Reviews technology and product feature incentives",
        contact_email="product-team@company.com",
        incentive_types=["technology"],
    ),
    Department.SOLUTIONS: DepartmentInfo(
        department=Department.SOLUTIONS,
        display_name="Solutions Team",
        description="Reviews analytics and reporting incentives",
        contact_email="solutions-team@company.com",
        incentive_types=["analytics"],
    ),
    Department.MARKETING: DepartmentInfo(
        department=Department.MARKETING,
        display_name="Marketing Team",
        description="Reviews marketing support and learning incentives",
        contact_email="marketing-team@company.com",
        incentive_types=["marketing", "marketing-ld"],
    ),
}


def display_name(department: Department) -> str:
    return DEPARTMENT_DIRECTORY[department].display_name


def normalize_category(category: str) -> str:
    """Turn a tier category name ("Product & Innovation") into its id ("product-innovation")."""
    value = category.strip().lower()
    if value in INCENTIVE_CATEGORY_DEPARTMENTS:
        return value
    for category_id, name in INCENTIVE_CATEGORY_NAMES.items():
        if name.lower() == value:
            return category_id
    return re.sub(r"[^a-z0-9]+", "-", value).strip("-")


# ── Mapping ─────────────────────────────────────────────────────────────────


def map_required_departments(
    deal_value: float,
    incentive_categories: Iterable[str],
    finance_auto_approve_threshold: float = FINANCE_AUTO_APPROVE_THRESHOLD,
) -> list[DepartmentStage]:
    """Build the department review stage for a deal.

    Output is order-stable: core departments first, then specialized
    departments in canonical order, independent of input order.

    Args:
        deal_value: Total deal value in USD.
        incentive_categories: Category ids or display names from the tiers.
        finance_auto_approve_threshold: Finance auto-approves below this value.

    Returns:
        List of DepartmentStage, one per reviewing department.
    """
    categories = {normalize_category(c) for c in incentive_categories}
    mapped = {
        INCENTIVE_CATEGORY_DEPARTMENTS[c]
        for c in categories
        if c in INCENTIVE_CATEGORY_DEPARTMENTS
    }
    departments = list(CORE_DEPARTMENTS) + [d for d in SPECIALIZED_ORDER if d in mapped]

    stages: list[DepartmentStage] = []
    for department in departments:
        status = DepartmentReviewStatus.REVIEW_REQUIRED
        estimated_days = "2-3 days"

        if department == Department.FINANCE:
            reason = "Core business review"
            if deal_value < finance_auto_approve_threshold:
                status = DepartmentReviewStatus.AUTO_APPROVED
                estimated_days = "< 1 day"
        elif department == Department.TRADING:
            reason = "Margin and profitability analysis"
        elif department == Department.CREATIVE:
            reason = "Creative asset and innovation review"
        else:
            reason = f"{department.value.capitalize()} expertise required"

        stages.append(
            DepartmentStage(
                department=department,
                display_name=display_name(department),
                reason=reason,
                estimated_days=estimated_days,
                status=status,
            )
        )

    return stages


def calculate_success_rate(deal_value: float, deal_type: str, department_count: int) -> int:
    """Share of similar deals approved within the predicted timeline, 70-95."""
    rate = 85
    if deal_value > HIGH_VALUE_THRESHOLD:
        rate -= 10
    if (deal_type or "").lower() != "grow":
        rate -= 5
    if department_count > 3:
        rate -= 5
    return max(70, min(95, rate))


def predict_approval_path(
    deal_value: float,
    approver_level: ApproverLevel,
    incentive_categories: Iterable[str],
    deal_type: str = "grow",
    finance_auto_approve_threshold: float = FINANCE_AUTO_APPROVE_THRESHOLD,
) -> ApprovalPrediction:
    """Predict the two-stage approval path and overall timeline for a deal."""
    stage1 = map_required_departments(
        deal_value, incentive_categories, finance_auto_approve_threshold
    )
    approver = get_approver_details(approver_level)

    risk_requirement = (
        "Comprehensive risk assessment"
        if approver_level == ApproverLevel.EXECUTIVE
        else "Standard risk review"
    )
    stage2 = BusinessApprovalStage(
        approver=approver,
        estimated_days=approver.estimated_time,
        requirements=[
            "All department reviews completed",
            "Business case validation",
            risk_requirement,
        ],
    )

    needs_review = any(s.status == DepartmentReviewStatus.REVIEW_REQUIRED for s in stage1)
    stage1_days = 3 if needs_review else 1
    stage2_days = 2 if approver_level == ApproverLevel.MD else 4
    total_days = stage1_days + stage2_days

    return ApprovalPrediction(
        stage1=stage1,
        stage2=stage2,
        total_timeline_range=f"{total_days - 1}-{total_days + 1} business days",
        success_rate=calculate_success_rate(deal_value, deal_type, len(stage1)),
    )


# ── Requirement Generation ──────────────────────────────────────────────────


def generate_approval_requirements(
    deal_id: str,
    approver_level: ApproverLevel,
    now: datetime | None = None,
) -> list[ApprovalRequirementCreate]:
    """Create the requirement records for a newly submitted deal.

    Finance incentive review runs first; trading margin review depends on it;
    the final MD/Executive review depends on both.
    """
    created_at = now or datetime.now(timezone.utc)
    incentive_id = f"{deal_id}-incentive-finance"
    margin_id = f"{deal_id}-margin-trading"
    final_id = f"{deal_id}-final-{approver_level.value.lower()}"

    requirements = [
        ApprovalRequirementCreate(
            id=incentive_id,
            deal_id=deal_id,
            stage=ApprovalStage.INCENTIVE_REVIEW.value,
            department=Department.FINANCE,
            required_for=list(DEPARTMENT_DIRECTORY[Department.FINANCE].incentive_types),
            estimated_time="1-2 business days",
            can_run_parallel=True,
            created_at=created_at,
        ),
        ApprovalRequirementCreate(
            id=margin_id,
            deal_id=deal_id,
            stage=ApprovalStage.MARGIN_REVIEW.value,
            department=Department.TRADING,
            required_for=["margin_validation", "trading_viability"],
            estimated_time="1-2 business days",
            dependencies=[incentive_id],
            created_at=created_at,
        ),
        ApprovalRequirementCreate(
            id=final_id,
            deal_id=deal_id,
            stage=ApprovalStage.FINAL_REVIEW.value,
            department=Department.FINANCE,
            required_for=["final_approval"],
            estimated_time=get_approver_details(approver_level).estimated_time,
            dependencies=[incentive_id, margin_id],
            created_at=created_at,
        ),
    ]

    logger.info(
        "departments.requirements_generated",
        deal_id=deal_id,
        approver_level=approver_level.value,
        count=len(requirements),
    )
    return requirements

"""Pydantic schemas for approval decisions and pipeline tracking.

- Enums: ApproverLevel, Department, ApprovalStatus, ApprovalStage, DepartmentReviewStatus
- Matrix inputs/outputs: DealParameters, StandardDealEvaluation, ApprovalRule, ApprovalAlert
- Path prediction: DepartmentStage, BusinessApprovalStage, ApprovalPrediction
- Requirements: ApprovalRequirementCreate/Read
- Aggregation: StageProgress, PipelineStatus
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


# ── Enums ───────────────────────────────────────────────────────────────────


class ApproverLevel(str, Enum):
    """Organizational seniority required to approve a deal. MD < Executive."""

    MD = "MD"
    EXECUTIVE = "Executive"


# Ordering used when taking the maximum of several levels
APPROVER_LEVEL_RANK: dict[ApproverLevel, int] = {
    ApproverLevel.MD: 0,
    ApproverLevel.EXECUTIVE: 1,
}


class Department(str, Enum):
    FINANCE = "finance"
    TRADING = "trading"
    CREATIVE = "creative"
    PRODUCT = "product"
    SOLUTIONS = "solutions"
    MARKETING = "marketing"


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REVISION_REQUESTED = "revision_requested"


class ApprovalStage(str, Enum):
    INCENTIVE_REVIEW = "incentive_review"
    MARGIN_REVIEW = "margin_review"
    FINAL_REVIEW = "final_review"


class DepartmentReviewStatus(str, Enum):
    AUTO_APPROVED = "auto-approved"
    REVIEW_REQUIRED = "review-required"
    NOT_REQUIRED = "not-required"


# ── Matrix Inputs / Outputs ─────────────────────────────────────────────────


class DealParameters(BaseModel):
    """Everything the approval matrix looks at for a single deal.

    Criteria fields are optional: a missing deal type, sales channel,
    growth rate, margin or margin growth makes the deal non-standard.
    """

    total_value: float = Field(default=0, ge=0)
    annual_value: float | None = Field(default=None, ge=0)
    contract_term_months: int = Field(default=12, ge=0)
    discount_percentage: float = Field(default=0, ge=0)
    has_non_standard_terms: bool = False

    deal_type: str | None = None
    sales_channel: str | None = None
    has_trade_am_implications: bool = False
    yearly_revenue_growth_rate: float | None = None
    forecasted_margin: float | None = None
    yearly_margin_growth_rate: float | None = None
    added_value_benefits_cost: float | None = None
    analytics_tier: str | None = None
    requires_custom_marketing: bool = False


class StandardDealEvaluation(BaseModel):
    is_standard: bool
    violations: list[str] = Field(default_factory=list)


class ApprovalRule(BaseModel):
    """Static description of an approver level."""

    level: ApproverLevel
    title: str
    description: str
    estimated_time: str


class ApprovalAlert(BaseModel):
    """Alert shown to a seller when submitting a deal."""

    message: str
    level: str
    approver: ApprovalRule
    reasons: list[str] = Field(default_factory=list)


# ── Path Prediction ─────────────────────────────────────────────────────────


class DepartmentStage(BaseModel):
    department: Department
    display_name: str
    reason: str
    estimated_days: str
    status: DepartmentReviewStatus


class BusinessApprovalStage(BaseModel):
    approver: ApprovalRule
    estimated_days: str
    requirements: list[str] = Field(default_factory=list)


class ApprovalPrediction(BaseModel):
    """Predicted two-stage approval path for a deal. Descriptive only."""

    stage1: list[DepartmentStage] = Field(default_factory=list)
    stage2: BusinessApprovalStage
    total_timeline_range: str
    success_rate: int


# ── Approval Requirements ───────────────────────────────────────────────────


class ApprovalRequirementCreate(BaseModel):
    """Requirement generated at submission time.

    id is deterministic (``{deal_id}-incentive-finance``) so dependencies can
    reference requirements before they are persisted.
    """

    id: str
    deal_id: str
    stage: str
    department: Department
    status: ApprovalStatus = ApprovalStatus.PENDING
    required_for: list[str] = Field(default_factory=list)
    estimated_time: str = "1-2 business days"
    can_run_parallel: bool = False
    dependencies: list[str] = Field(default_factory=list)
    created_at: datetime


class ApprovalRequirementRead(ApprovalRequirementCreate):
    reviewer: str | None = None
    comments: str | None = None
    completed_at: datetime | None = None


# ── Aggregation ─────────────────────────────────────────────────────────────


class StageProgress(BaseModel):
    stage: str
    status: ApprovalStatus
    progress: int
    completed_count: int
    total_count: int


class PipelineStatus(BaseModel):
    """Folded view over a deal's approval requirements."""

    deal_id: str | None = None
    overall_status: ApprovalStatus = ApprovalStatus.PENDING
    percent_complete: int = 0
    current_stage: str | None = None
    stages: list[StageProgress] = Field(default_factory=list)
    next_actions: list[str] = Field(default_factory=list)
    bottlenecks: list[ApprovalRequirementRead] = Field(default_factory=list)

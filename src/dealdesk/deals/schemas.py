"""Pydantic schemas for deals -- status workflow, tiers, comments, history.

Defines all structured types for the deal lifecycle:
- Enums: DealStatus, UserRole, DealType, SalesChannel, DealStructure, DealPriority
- Tiers: DealTierCreate/Read
- Deals: DealCreate/Read/Filter
- Audit trail: StatusHistoryRead, CommentCreate/Read
- Financials: PreviousYearFinancials, TierFinancialSummary
- Scoping: ScopingRequestCreate/Read, ScopingConversion

Approval-specific types (approver levels, requirements, pipeline status)
live in src.dealdesk.approvals.schemas.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


# ── Enums ───────────────────────────────────────────────────────────────────


class DealStatus(str, Enum):
    """Workflow status of a deal."""

    DRAFT = "draft"
    SCOPING = "scoping"
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    REVISION_REQUESTED = "revision_requested"
    NEGOTIATING = "negotiating"
    APPROVED = "approved"
    LEGAL_REVIEW = "legal_review"
    CONTRACT_DRAFTING = "contract_drafting"
    CLIENT_REVIEW = "client_review"
    SIGNED = "signed"
    LOST = "lost"


class UserRole(str, Enum):
    """Role of an authenticated user."""

    SELLER = "seller"
    APPROVER = "approver"
    LEGAL = "legal"
    ADMIN = "admin"


class DealType(str, Enum):
    GROW = "grow"
    PROTECT = "protect"
    CUSTOM = "custom"


class SalesChannel(str, Enum):
    HOLDING_COMPANY = "holding_company"
    INDEPENDENT_AGENCY = "independent_agency"
    CLIENT_DIRECT = "client_direct"


class DealStructure(str, Enum):
    TIERED = "tiered"
    FLAT_COMMIT = "flat_commit"


class DealPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# ── Tier Schemas ────────────────────────────────────────────────────────────


class DealTierCreate(BaseModel):
    """Schema for one revenue/margin/incentive tier of a deal.

    annual_gross_margin is a decimal (0.355 for 35.5%).
    """

    tier_number: int = Field(ge=1)
    annual_revenue: float = Field(ge=0)
    annual_gross_margin: float = Field(ge=0, le=1)
    category_name: str = Field(min_length=1)
    sub_category_name: str = Field(min_length=1)
    incentive_option: str = Field(min_length=1)
    incentive_value: float = Field(default=0, ge=0)
    incentive_notes: str | None = None


class DealTierRead(DealTierCreate):
    """Schema for reading a persisted tier."""

    id: str
    deal_id: str
    created_at: datetime | None = None


# ── Deal Schemas ────────────────────────────────────────────────────────────


class DealCreate(BaseModel):
    """Schema for submitting a new deal (tiers included)."""

    deal_name: str = Field(min_length=1, max_length=300)
    deal_type: DealType = DealType.GROW
    sales_channel: SalesChannel
    region: str | None = None
    advertiser_name: str | None = None
    agency_name: str | None = None
    deal_structure: DealStructure = DealStructure.TIERED
    business_summary: str | None = None
    email: str | None = None

    contract_term_months: int | None = Field(default=None, ge=0)
    annual_revenue: float | None = Field(default=None, ge=0)
    annual_gross_margin: float | None = Field(default=None, ge=0, le=1)
    previous_year_revenue: float = Field(default=0, ge=0)
    previous_year_margin: float = Field(default=0, ge=0, le=1)

    # Standard deal criteria inputs
    has_trade_am_implications: bool = False
    yearly_revenue_growth_rate: float | None = None
    forecasted_margin: float | None = None
    yearly_margin_growth_rate: float | None = None
    added_value_benefits_cost: float = Field(default=0, ge=0)
    analytics_tier: str = "silver"
    requires_custom_marketing: bool = False

    discount_percentage: float = Field(default=0, ge=0, le=100)
    has_non_standard_terms: bool = False
    priority: DealPriority = DealPriority.MEDIUM

    # draft, scoping or submitted; submitted generates approval requirements
    status: DealStatus = DealStatus.SUBMITTED
    tiers: list[DealTierCreate] = Field(default_factory=list)


class DealRead(BaseModel):
    """Schema for reading a deal (includes all persisted fields)."""

    id: str
    reference_number: str
    deal_name: str
    deal_type: DealType
    sales_channel: SalesChannel
    region: str | None = None
    advertiser_name: str | None = None
    agency_name: str | None = None
    deal_structure: DealStructure = DealStructure.TIERED
    business_summary: str | None = None
    email: str | None = None
    owner_id: str | None = None

    contract_term_months: int | None = None
    annual_revenue: float | None = None
    annual_gross_margin: float | None = None
    previous_year_revenue: float = 0
    previous_year_margin: float = 0

    has_trade_am_implications: bool = False
    yearly_revenue_growth_rate: float | None = None
    forecasted_margin: float | None = None
    yearly_margin_growth_rate: float | None = None
    added_value_benefits_cost: float = 0
    analytics_tier: str = "silver"
    requires_custom_marketing: bool = False

    discount_percentage: float = 0
    has_non_standard_terms: bool = False
    priority: DealPriority = DealPriority.MEDIUM

    status: DealStatus = DealStatus.DRAFT
    revision_count: int = 0
    revision_reason: str | None = None
    last_status_change: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class DealFilter(BaseModel):
    """Optional filters for listing deals."""

    status: DealStatus | None = None
    owner_id: str | None = None


# ── Audit Trail ─────────────────────────────────────────────────────────────


class StatusHistoryRead(BaseModel):
    """One entry in a deal's status history."""

    id: str
    deal_id: str
    status: DealStatus
    previous_status: DealStatus | None = None
    changed_by: str
    comments: str | None = None
    changed_at: datetime | None = None


class CommentCreate(BaseModel):
    content: str = Field(min_length=1, max_length=5000)
    author: str
    author_role: UserRole


class CommentRead(CommentCreate):
    id: str
    deal_id: str
    created_at: datetime | None = None


# ── Financials ──────────────────────────────────────────────────────────────


class PreviousYearFinancials(BaseModel):
    """Baseline used for growth calculations when a deal has no history."""

    revenue: float = 2_500_000
    gross_margin: float = 0.25
    incentive_cost: float = 35_000


class TierFinancialSummary(BaseModel):
    """Financial roll-up of a deal's tiers."""

    tier_count: int
    total_revenue: float
    weighted_gross_margin: float
    gross_profit: float
    incentive_cost: float
    adjusted_gross_profit: float
    revenue_growth_rate: float
    gross_margin_change: float
    profit_growth_rate: float
    expected_tier_number: int


# ── Scoping Requests ────────────────────────────────────────────────────────


class ScopingRequestStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    CONVERTED = "converted"
    REJECTED = "rejected"


MIN_GROWTH_AMBITION = 1_000_000


class ScopingRequestCreate(BaseModel):
    """Early-stage growth opportunity raised before a deal is structured."""

    request_title: str = Field(min_length=1, max_length=300)
    sales_channel: SalesChannel
    email: str | None = None
    advertiser_name: str | None = None
    agency_name: str | None = None
    region: str | None = None
    deal_type: DealType | None = None
    deal_structure: DealStructure | None = None
    contract_term_months: int | None = Field(default=None, ge=0)
    term_start_date: str | None = None
    term_end_date: str | None = None
    growth_opportunity_miq: str = Field(min_length=1)
    growth_ambition: float = Field(ge=MIN_GROWTH_AMBITION)
    growth_opportunity_client: str = Field(min_length=1)
    client_asks: str | None = None
    description: str | None = None


class ScopingRequestRead(ScopingRequestCreate):
    id: str
    owner_id: str | None = None
    status: ScopingRequestStatus = ScopingRequestStatus.PENDING
    converted_deal_id: str | None = None
    converted_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ScopingConversion(BaseModel):
    """Financial structure supplied when a scoping request becomes a deal."""

    tiers: list[DealTierCreate] = Field(default_factory=list)
    status: DealStatus = DealStatus.SUBMITTED
    previous_year_revenue: float = Field(default=0, ge=0)
    previous_year_margin: float = Field(default=0, ge=0, le=1)


# ── Session Context ─────────────────────────────────────────────────────────


class CurrentUser(BaseModel):
    """The authenticated user, passed explicitly into every workflow call."""

    id: str
    email: str
    name: str | None = None
    role: UserRole

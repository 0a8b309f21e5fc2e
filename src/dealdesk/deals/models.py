"""Deal persistence models -- tables for the deal approval lifecycle.

Six SQLAlchemy models:
- DealModel: Submitted deals and their workflow status
- DealTierModel: Revenue/margin/incentive tiers (1..N per deal)
- ApprovalRequirementModel: Per-stage department approvals
- DealCommentModel: Discussion thread on a deal
- DealStatusHistoryModel: Audit trail of status changes and nudges
- DealScopingRequestModel: Opportunities raised before a deal is structured

No foreign key constraints: referential integrity is enforced by the
repository, and deals are never deleted.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSON, UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.dealdesk.core.database import Base


class DealModel(Base):
    """A sales deal moving through the approval workflow.

    reference_number is human-facing (DEAL-2026-001) and unique.
    Criteria fields mirror the standard deal checklist inputs.
    """

    __tablename__ = "deals"
    __table_args__ = (
        UniqueConstraint("reference_number", name="uq_deals_reference_number"),
        Index("ix_deals_status", "status"),
        Index("ix_deals_owner_id", "owner_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )
    reference_number: Mapped[str] = mapped_column(String(20), nullable=False)
    owner_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    deal_name: Mapped[str] = mapped_column(String(300), nullable=False)
    deal_type: Mapped[str] = mapped_column(String(20), nullable=False)
    sales_channel: Mapped[str] = mapped_column(String(30), nullable=False)
    region: Mapped[str | None] = mapped_column(String(50), nullable=True)
    advertiser_name: Mapped[str | None] = mapped_column(String(300), nullable=True)
    agency_name: Mapped[str | None] = mapped_column(String(300), nullable=True)
    deal_structure: Mapped[str] = mapped_column(String(20), nullable=False, default="tiered")
    business_summary: Mapped[str | None] = mapped_column(Text, nullable=True)

    contract_term_months: Mapped[int | None] = mapped_column(Integer, nullable=True)
    annual_revenue: Mapped[float | None] = mapped_column(Float, nullable=True)
    annual_gross_margin: Mapped[float | None] = mapped_column(Float, nullable=True)
    previous_year_revenue: Mapped[float] = mapped_column(Float, default=0.0)
    previous_year_margin: Mapped[float] = mapped_column(Float, default=0.0)

    has_trade_am_implications: Mapped[bool] = mapped_column(Boolean, default=False)
    yearly_revenue_growth_rate: Mapped[float | None] = mapped_column(Float, nullable=True)
    forecasted_margin: Mapped[float | None] = mapped_column(Float, nullable=True)
    yearly_margin_growth_rate: Mapped[float | None] = mapped_column(Float, nullable=True)
    added_value_benefits_cost: Mapped[float] = mapped_column(Float, default=0.0)
    analytics_tier: Mapped[str] = mapped_column(String(20), default="silver")
    requires_custom_marketing: Mapped[bool] = mapped_column(Boolean, default=False)

    discount_percentage: Mapped[float] = mapped_column(Float, default=0.0)
    has_non_standard_terms: Mapped[bool] = mapped_column(Boolean, default=False)
    priority: Mapped[str] = mapped_column(String(10), default="medium")

    status: Mapped[str] = mapped_column(String(30), nullable=False, default="draft")
    revision_count: Mapped[int] = mapped_column(Integer, default=0)
    revision_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_status_change: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class DealTierModel(Base):
    """One tier of a deal. annual_gross_margin is stored as a decimal (0.355)."""

    __tablename__ = "deal_tiers"
    __table_args__ = (
        UniqueConstraint("deal_id", "tier_number", name="uq_deal_tiers_deal_tier"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )
    deal_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    tier_number: Mapped[int] = mapped_column(Integer, nullable=False)
    annual_revenue: Mapped[float] = mapped_column(Float, nullable=False)
    annual_gross_margin: Mapped[float] = mapped_column(Float, nullable=False)
    category_name: Mapped[str] = mapped_column(String(100), nullable=False)
    sub_category_name: Mapped[str] = mapped_column(String(100), nullable=False)
    incentive_option: Mapped[str] = mapped_column(String(200), nullable=False)
    incentive_value: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    incentive_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class ApprovalRequirementModel(Base):
    """A (stage, department) approval a deal needs before it can be approved.

    id is the deterministic key produced at submission
    ("{deal_id}-margin-trading"); dependencies hold ids of the same form.
    """

    __tablename__ = "approval_requirements"
    __table_args__ = (Index("ix_approval_requirements_deal_id", "deal_id"),)

    id: Mapped[str] = mapped_column(String(120), primary_key=True)
    deal_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    stage: Mapped[str] = mapped_column(String(30), nullable=False)
    department: Mapped[str] = mapped_column(String(30), nullable=False)
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="pending")
    required_for: Mapped[list] = mapped_column(JSON, default=list)
    estimated_time: Mapped[str] = mapped_column(String(50), nullable=False)
    can_run_parallel: Mapped[bool] = mapped_column(Boolean, default=False)
    dependencies: Mapped[list] = mapped_column(JSON, default=list)
    reviewer: Mapped[str | None] = mapped_column(String(255), nullable=True)
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class DealCommentModel(Base):
    __tablename__ = "deal_comments"
    __table_args__ = (Index("ix_deal_comments_deal_id", "deal_id"),)

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )
    deal_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    author: Mapped[str] = mapped_column(String(255), nullable=False)
    author_role: Mapped[str] = mapped_column(String(20), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class DealStatusHistoryModel(Base):
    """Audit entry written on every status change (and for nudges)."""

    __tablename__ = "deal_status_history"
    __table_args__ = (Index("ix_deal_status_history_deal_id", "deal_id"),)

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )
    deal_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    status: Mapped[str] = mapped_column(String(30), nullable=False)
    previous_status: Mapped[str | None] = mapped_column(String(30), nullable=True)
    changed_by: Mapped[str] = mapped_column(String(255), nullable=False)
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    changed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class DealScopingRequestModel(Base):
    """A growth opportunity raised before the deal is structured.

    converted_deal_id is set once the request has been turned into a deal.
    """

    __tablename__ = "deal_scoping_requests"
    __table_args__ = (
        Index("ix_deal_scoping_requests_status", "status"),
        Index("ix_deal_scoping_requests_owner_id", "owner_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )
    owner_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    request_title: Mapped[str] = mapped_column(String(300), nullable=False)
    sales_channel: Mapped[str] = mapped_column(String(30), nullable=False)
    advertiser_name: Mapped[str | None] = mapped_column(String(300), nullable=True)
    agency_name: Mapped[str | None] = mapped_column(String(300), nullable=True)
    region: Mapped[str | None] = mapped_column(String(50), nullable=True)
    deal_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    deal_structure: Mapped[str | None] = mapped_column(String(20), nullable=True)
    contract_term_months: Mapped[int | None] = mapped_column(Integer, nullable=True)
    term_start_date: Mapped[str | None] = mapped_column(String(20), nullable=True)
    term_end_date: Mapped[str | None] = mapped_column(String(20), nullable=True)
    growth_opportunity_miq: Mapped[str] = mapped_column(Text, nullable=False)
    growth_ambition: Mapped[float] = mapped_column(Float, nullable=False)
    growth_opportunity_client: Mapped[str] = mapped_column(Text, nullable=False)
    client_asks: Mapped[str | None] = mapped_column(Text, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    converted_deal_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    converted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

"""Initial schema: users, deals, tiers, approval requirements, comments, history.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-18

No foreign key constraints (referential integrity via the repository;
deals are never deleted).
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSON, UUID

# revision identifiers, used by Alembic.
revision: str = "001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _uuid_pk() -> sa.Column:
    return sa.Column(
        "id",
        UUID(as_uuid=True),
        primary_key=True,
        server_default=sa.text("gen_random_uuid()"),
    )


def _timestamp(name: str) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), server_default=sa.func.now())


def upgrade() -> None:
    # ── users ───────────────────────────────────────────────────────────

    op.create_table(
        "users",
        _uuid_pk(),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("name", sa.String(200), nullable=True),
        sa.Column("hashed_password", sa.String(255), nullable=True),
        sa.Column("role", sa.String(50), server_default=sa.text("'seller'"), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        _timestamp("created_at"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )

    # ── deals ───────────────────────────────────────────────────────────

    op.create_table(
        "deals",
        _uuid_pk(),
        sa.Column("reference_number", sa.String(20), nullable=False),
        sa.Column("owner_id", UUID(as_uuid=True), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("deal_name", sa.String(300), nullable=False),
        sa.Column("deal_type", sa.String(20), nullable=False),
        sa.Column("sales_channel", sa.String(30), nullable=False),
        sa.Column("region", sa.String(50), nullable=True),
        sa.Column("advertiser_name", sa.String(300), nullable=True),
        sa.Column("agency_name", sa.String(300), nullable=True),
        sa.Column("deal_structure", sa.String(20), nullable=False, server_default="tiered"),
        sa.Column("business_summary", sa.Text(), nullable=True),
        sa.Column("contract_term_months", sa.Integer(), nullable=True),
        sa.Column("annual_revenue", sa.Float(), nullable=True),
        sa.Column("annual_gross_margin", sa.Float(), nullable=True),
        sa.Column("previous_year_revenue", sa.Float(), server_default="0"),
        sa.Column("previous_year_margin", sa.Float(), server_default="0"),
        sa.Column("has_trade_am_implications", sa.Boolean(), server_default=sa.text("false")),
        sa.Column("yearly_revenue_growth_rate", sa.Float(), nullable=True),
        sa.Column("forecasted_margin", sa.Float(), nullable=True),
        sa.Column("yearly_margin_growth_rate", sa.Float(), nullable=True),
        sa.Column("added_value_benefits_cost", sa.Float(), server_default="0"),
        sa.Column("analytics_tier", sa.String(20), server_default="silver"),
        sa.Column("requires_custom_marketing", sa.Boolean(), server_default=sa.text("false")),
        sa.Column("discount_percentage", sa.Float(), server_default="0"),
        sa.Column("has_non_standard_terms", sa.Boolean(), server_default=sa.text("false")),
        sa.Column("priority", sa.String(10), server_default="medium"),
        sa.Column("status", sa.String(30), nullable=False, server_default="draft"),
        sa.Column("revision_count", sa.Integer(), server_default="0"),
        sa.Column("revision_reason", sa.Text(), nullable=True),
        _timestamp("last_status_change"),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.UniqueConstraint("reference_number", name="uq_deals_reference_number"),
    )
    op.create_index("ix_deals_status", "deals", ["status"])
    op.create_index("ix_deals_owner_id", "deals", ["owner_id"])

    # ── deal_tiers ──────────────────────────────────────────────────────

    op.create_table(
        "deal_tiers",
        _uuid_pk(),
        sa.Column("deal_id", UUID(as_uuid=True), nullable=False),
        sa.Column("tier_number", sa.Integer(), nullable=False),
        sa.Column("annual_revenue", sa.Float(), nullable=False),
        sa.Column("annual_gross_margin", sa.Float(), nullable=False),
        sa.Column("category_name", sa.String(100), nullable=False),
        sa.Column("sub_category_name", sa.String(100), nullable=False),
        sa.Column("incentive_option", sa.String(200), nullable=False),
        sa.Column("incentive_value", sa.Float(), nullable=False, server_default="0"),
        sa.Column("incentive_notes", sa.Text(), nullable=True),
        _timestamp("created_at"),
        sa.UniqueConstraint("deal_id", "tier_number", name="uq_deal_tiers_deal_tier"),
    )

    # ── approval_requirements ───────────────────────────────────────────

    op.create_table(
        "approval_requirements",
        sa.Column("id", sa.String(120), primary_key=True),
        sa.Column("deal_id", UUID(as_uuid=True), nullable=False),
        sa.Column("stage", sa.String(30), nullable=False),
        sa.Column("department", sa.String(30), nullable=False),
        sa.Column("status", sa.String(30), nullable=False, server_default="pending"),
        sa.Column("required_for", JSON(), server_default=sa.text("'[]'::json")),
        sa.Column("estimated_time", sa.String(50), nullable=False),
        sa.Column("can_run_parallel", sa.Boolean(), server_default=sa.text("false")),
        sa.Column("dependencies", JSON(), server_default=sa.text("'[]'::json")),
        sa.Column("reviewer", sa.String(255), nullable=True),
        sa.Column("comments", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_approval_requirements_deal_id", "approval_requirements", ["deal_id"])

    # ── deal_comments / deal_status_history ─────────────────────────────

    op.create_table(
        "deal_comments",
        _uuid_pk(),
        sa.Column("deal_id", UUID(as_uuid=True), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("author", sa.String(255), nullable=False),
        sa.Column("author_role", sa.String(20), nullable=False),
        _timestamp("created_at"),
    )
    op.create_index("ix_deal_comments_deal_id", "deal_comments", ["deal_id"])

    op.create_table(
        "deal_status_history",
        _uuid_pk(),
        sa.Column("deal_id", UUID(as_uuid=True), nullable=False),
        sa.Column("status", sa.String(30), nullable=False),
        sa.Column("previous_status", sa.String(30), nullable=True),
        sa.Column("changed_by", sa.String(255), nullable=False),
        sa.Column("comments", sa.Text(), nullable=True),
        _timestamp("changed_at"),
    )
    op.create_index("ix_deal_status_history_deal_id", "deal_status_history", ["deal_id"])


def downgrade() -> None:
    op.drop_index("ix_deal_status_history_deal_id", table_name="deal_status_history")
    op.drop_table("deal_status_history")
    op.drop_index("ix_deal_comments_deal_id", table_name="deal_comments")
    op.drop_table("deal_comments")
    op.drop_index("ix_approval_requirements_deal_id", table_name="approval_requirements")
    op.drop_table("approval_requirements")
    op.drop_table("deal_tiers")
    op.drop_index("ix_deals_owner_id", table_name="deals")
    op.drop_index("ix_deals_status", table_name="deals")
    op.drop_table("deals")
    op.drop_table("users")

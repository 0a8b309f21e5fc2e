"""Scoping requests: opportunities raised before a deal is structured.

Revision ID: 002_scoping_requests
Revises: 001_initial_schema
Create Date: 2026-10-18
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

# revision identifiers, used by Alembic.
revision: str = "002_scoping_requests"
down_revision: Union[str, None] = "001_initial_schema"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "deal_scoping_requests",
        sa.Column(
            "id",
            UUID(as_uuid=True),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column("owner_id", UUID(as_uuid=True), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("request_title", sa.String(300), nullable=False),
        sa.Column("sales_channel", sa.String(30), nullable=False),
        sa.Column("advertiser_name", sa.String(300), nullable=True),
        sa.Column("agency_name", sa.String(300), nullable=True),
        sa.Column("region", sa.String(50), nullable=True),
        sa.Column("deal_type", sa.String(20), nullable=True),
        sa.Column("deal_structure", sa.String(20), nullable=True),
        sa.Column("contract_term_months", sa.Integer(), nullable=True),
        sa.Column("term_start_date", sa.String(20), nullable=True),
        sa.Column("term_end_date", sa.String(20), nullable=True),
        sa.Column("growth_opportunity_miq", sa.Text(), nullable=False),
        sa.Column("growth_ambition", sa.Float(), nullable=False),
        sa.Column("growth_opportunity_client", sa.Text(), nullable=False),
        sa.Column("client_asks", sa.Text(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("converted_deal_id", UUID(as_uuid=True), nullable=True),
        sa.Column("converted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(
        "ix_deal_scoping_requests_status", "deal_scoping_requests", ["status"]
    )
    op.create_index(
        "ix_deal_scoping_requests_owner_id", "deal_scoping_requests", ["owner_id"]
    )


def downgrade() -> None:
    op.drop_index("ix_deal_scoping_requests_owner_id", table_name="deal_scoping_requests")
    op.drop_index("ix_deal_scoping_requests_status", table_name="deal_scoping_requests")
    op.drop_table("deal_scoping_requests")

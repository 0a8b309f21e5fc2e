"""Deal repository -- async CRUD for deals, tiers, approvals, audit trail and
scoping requests.

Provides DealRepository with the session_factory callable pattern: every
method opens its own session via ``async for session in
self._session_factory()``. Handles conversion between SQLAlchemy models and
Pydantic read schemas via the _model_to_* helpers.

Deal ids are UUID strings. Malformed ids are treated as not found.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable
from datetime import datetime, timezone

import structlog
from sqlalchemy import case, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.dealdesk.approvals.schemas import (
    ApprovalRequirementCreate,
    ApprovalRequirementRead,
    ApprovalStage,
    ApprovalStatus,
    Department,
)
from src.dealdesk.deals.models import (
    ApprovalRequirementModel,
    DealCommentModel,
    DealModel,
    DealScopingRequestModel,
    DealStatusHistoryModel,
    DealTierModel,
)
from src.dealdesk.deals.schemas import (
    CommentCreate,
    CommentRead,
    DealCreate,
    DealFilter,
    DealRead,
    DealStatus,
    DealTierRead,
    ScopingRequestCreate,
    ScopingRequestRead,
    ScopingRequestStatus,
    StatusHistoryRead,
)

logger = structlog.get_logger(__name__)

REFERENCE_PREFIX = "DEAL"
REFERENCE_NUMBER_ATTEMPTS = 3

# Requirements generated together share created_at; keep pipeline stage order
_STAGE_ORDER = case(
    {stage.value: rank for rank, stage in enumerate(ApprovalStage)},
    value=ApprovalRequirementModel.stage,
    else_=len(ApprovalStage),
)


class ReferenceNumberConflictError(ValueError):
    """Raised when concurrent inserts keep claiming the same reference number."""


# ── Serialization Helpers ───────────────────────────────────────────────────


def _parse_uuid(value: str) -> uuid.UUID | None:
    try:
        return uuid.UUID(value)
    except (ValueError, TypeError):
        return None


def format_reference_number(year: int, sequence: int) -> str:
    """DEAL-2026-001 style reference number."""
    return f"{REFERENCE_PREFIX}-{year}-{sequence:03d}"


def _model_to_deal(model: DealModel) -> DealRead:
    """Convert DealModel to DealRead schema."""
    return DealRead(
        id=str(model.id),
        reference_number=model.reference_number,
        deal_name=model.deal_name,
        deal_type=model.deal_type,
        sales_channel=model.sales_channel,
        region=model.region,
        advertiser_name=model.advertiser_name,
        agency_name=model.agency_name,
        deal_structure=model.deal_structure,
        business_summary=model.business_summary,
        email=model.email,
        owner_id=str(model.owner_id) if model.owner_id else None,
        contract_term_months=model.contract_term_months,
        annual_revenue=model.annual_revenue,
        annual_gross_margin=model.annual_gross_margin,
        previous_year_revenue=model.previous_year_revenue or 0,
        previous_year_margin=model.previous_year_margin or 0,
        has_trade_am_implications=bool(model.has_trade_am_implications),
        yearly_revenue_growth_rate=model.yearly_revenue_growth_rate,
        forecasted_margin=model.forecasted_margin,
        yearly_margin_growth_rate=model.yearly_margin_growth_rate,
        added_value_benefits_cost=model.added_value_benefits_cost or 0,
        analytics_tier=model.analytics_tier or "silver",
        requires_custom_marketing=bool(model.requires_custom_marketing),
        discount_percentage=model.discount_percentage or 0,
        has_non_standard_terms=bool(model.has_non_standard_terms),
        priority=model.priority or "medium",
        status=model.status,
        revision_count=model.revision_count or 0,
        revision_reason=model.revision_reason,
        last_status_change=model.last_status_change,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def _model_to_tier(model: DealTierModel) -> DealTierRead:
    return DealTierRead(
        id=str(model.id),
        deal_id=str(model.deal_id),
        tier_number=model.tier_number,
        annual_revenue=model.annual_revenue,
        annual_gross_margin=model.annual_gross_margin,
        category_name=model.category_name,
        sub_category_name=model.sub_category_name,
        incentive_option=model.incentive_option,
        incentive_value=model.incentive_value,
        incentive_notes=model.incentive_notes,
        created_at=model.created_at,
    )


def _model_to_requirement(model: ApprovalRequirementModel) -> ApprovalRequirementRead:
    return ApprovalRequirementRead(
        id=model.id,
        deal_id=str(model.deal_id),
        stage=model.stage,
        department=Department(model.department),
        status=ApprovalStatus(model.status),
        required_for=list(model.required_for or []),
        estimated_time=model.estimated_time,
        can_run_parallel=bool(model.can_run_parallel),
        dependencies=list(model.dependencies or []),
        reviewer=model.reviewer,
        comments=model.comments,
        created_at=model.created_at,
        completed_at=model.completed_at,
    )


def _model_to_history(model: DealStatusHistoryModel) -> StatusHistoryRead:
    return StatusHistoryRead(
        id=str(model.id),
        deal_id=str(model.deal_id),
        status=model.status,
        previous_status=model.previous_status,
        changed_by=model.changed_by,
        comments=model.comments,
        changed_at=model.changed_at,
    )


def _model_to_comment(model: DealCommentModel) -> CommentRead:
    return CommentRead(
        id=str(model.id),
        deal_id=str(model.deal_id),
        content=model.content,
        author=model.author,
        author_role=model.author_role,
        created_at=model.created_at,
    )


def _model_to_scoping(model: DealScopingRequestModel) -> ScopingRequestRead:
    return ScopingRequestRead(
        id=str(model.id),
        owner_id=str(model.owner_id) if model.owner_id else None,
        email=model.email,
        request_title=model.request_title,
        sales_channel=model.sales_channel,
        advertiser_name=model.advertiser_name,
        agency_name=model.agency_name,
        region=model.region,
        deal_type=model.deal_type,
        deal_structure=model.deal_structure,
        contract_term_months=model.contract_term_months,
        term_start_date=model.term_start_date,
        term_end_date=model.term_end_date,
        growth_opportunity_miq=model.growth_opportunity_miq,
        growth_ambition=model.growth_ambition,
        growth_opportunity_client=model.growth_opportunity_client,
        client_asks=model.client_asks,
        description=model.description,
        status=model.status,
        converted_deal_id=str(model.converted_deal_id) if model.converted_deal_id else None,
        converted_at=model.converted_at,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


# ── Repository ──────────────────────────────────────────────────────────────


class DealRepository:
    """Async CRUD operations for deals and everything hanging off them.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    # ── Deals ───────────────────────────────────────────────────────────────

    async def _next_reference_number(self, session: AsyncSession) -> str:
        year = datetime.now(timezone.utc).year
        prefix = f"{REFERENCE_PREFIX}-{year}-"
        stmt = select(func.max(DealModel.reference_number)).where(
            DealModel.reference_number.like(f"{prefix}%")
        )
        latest = (await session.execute(stmt)).scalar_one_or_none()
        sequence = int(latest.rsplit("-", 1)[1]) + 1 if latest else 1
        return format_reference_number(year, sequence)

    async def create_deal(
        self, data: DealCreate, owner_id: str | None, changed_by: str
    ) -> DealRead:
        """Insert a deal with its tiers and an initial history entry.

        Args:
            data: DealCreate with tiers already validated.
            owner_id: Submitting user's id.
            changed_by: Identifier recorded in the status history.

        Returns:
            DealRead with all persisted fields.

        Raises:
            ReferenceNumberConflictError: Every attempt collided with a
                concurrently created deal.
        """
        async for session in self._session_factory():
            for attempt in range(1, REFERENCE_NUMBER_ATTEMPTS + 1):
                model = DealModel(
                    reference_number=await self._next_reference_number(session),
                    owner_id=_parse_uuid(owner_id) if owner_id else None,
                    **data.model_dump(mode="json", exclude={"tiers"}),
                )
                session.add(model)
                try:
                    await session.flush()
                except IntegrityError:
                    # Another deal took this number between our read and insert
                    await session.rollback()
                    logger.warning(
                        "deal.reference_number_conflict",
                        reference_number=model.reference_number,
                        attempt=attempt,
                    )
                    continue

                for tier in data.tiers:
                    session.add(DealTierModel(deal_id=model.id, **tier.model_dump()))

                session.add(
                    DealStatusHistoryModel(
                        deal_id=model.id,
                        status=model.status,
                        previous_status=None,
                        changed_by=changed_by,
                        comments="Deal created",
                    )
                )
                await session.commit()
                await session.refresh(model)
                logger.info(
                    "deal.created",
                    deal_id=str(model.id),
                    reference_number=model.reference_number,
                    status=model.status,
                )
                return _model_to_deal(model)

            raise ReferenceNumberConflictError(
                f"Could not assign a reference number after {REFERENCE_NUMBER_ATTEMPTS} attempts"
            )

    async def get_deal(self, deal_id: str) -> DealRead | None:
        deal_uuid = _parse_uuid(deal_id)
        if deal_uuid is None:
            return None
        async for session in self._session_factory():
            model = await session.get(DealModel, deal_uuid)
            if model is None:
                return None
            return _model_to_deal(model)

    async def list_deals(self, filters: DealFilter | None = None) -> list[DealRead]:
        """List deals, newest first, optionally filtered by status or owner."""
        async for session in self._session_factory():
            stmt = select(DealModel)
            if filters is not None:
                if filters.status is not None:
                    stmt = stmt.where(DealModel.status == filters.status.value)
                if filters.owner_id is not None:
                    stmt = stmt.where(DealModel.owner_id == _parse_uuid(filters.owner_id))
            stmt = stmt.order_by(DealModel.created_at.desc())
            result = await session.execute(stmt)
            return [_model_to_deal(m) for m in result.scalars().all()]

    async def update_status(
        self,
        deal_id: str,
        status: DealStatus,
        changed_by: str,
        comments: str | None = None,
        revision_reason: str | None = None,
        increment_revision: bool = False,
    ) -> DealRead:
        """Set a deal's status and append a history entry.

        Transition legality is checked by the caller (DealWorkflow).

        Raises:
            ValueError: If the deal does not exist.
        """
        deal_uuid = _parse_uuid(deal_id)
        async for session in self._session_factory():
            model = await session.get(DealModel, deal_uuid) if deal_uuid else None
            if model is None:
                raise ValueError(f"Deal not found: {deal_id}")

            previous = model.status
            model.status = status.value
            model.last_status_change = datetime.now(timezone.utc)
            if increment_revision:
                model.revision_count = (model.revision_count or 0) + 1
                model.revision_reason = revision_reason

            session.add(
                DealStatusHistoryModel(
                    deal_id=model.id,
                    status=status.value,
                    previous_status=previous,
                    changed_by=changed_by,
                    comments=comments,
                )
            )
            await session.commit()
            await session.refresh(model)
            logger.info(
                "deal.status_changed",
                deal_id=deal_id,
                previous_status=previous,
                status=status.value,
                changed_by=changed_by,
            )
            return _model_to_deal(model)

    async def count_by_status(self) -> dict[str, int]:
        async for session in self._session_factory():
            stmt = select(DealModel.status, func.count()).group_by(DealModel.status)
            result = await session.execute(stmt)
            return {status: count for status, count in result.all()}

    # ── Tiers ───────────────────────────────────────────────────────────────

    async def get_tiers(self, deal_id: str) -> list[DealTierRead]:
        deal_uuid = _parse_uuid(deal_id)
        if deal_uuid is None:
            return []
        async for session in self._session_factory():
            stmt = (
                select(DealTierModel)
                .where(DealTierModel.deal_id == deal_uuid)
                .order_by(DealTierModel.tier_number)
            )
            result = await session.execute(stmt)
            return [_model_to_tier(m) for m in result.scalars().all()]

    # ── Status History ──────────────────────────────────────────────────────

    async def add_history_entry(
        self,
        deal_id: str,
        status: DealStatus,
        changed_by: str,
        comments: str | None = None,
        previous_status: DealStatus | None = None,
    ) -> StatusHistoryRead:
        """Append a history entry without changing the deal (used for nudges)."""
        async for session in self._session_factory():
            model = DealStatusHistoryModel(
                deal_id=uuid.UUID(deal_id),
                status=status.value,
                previous_status=previous_status.value if previous_status else None,
                changed_by=changed_by,
                comments=comments,
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return _model_to_history(model)

    async def list_history(self, deal_id: str) -> list[StatusHistoryRead]:
        deal_uuid = _parse_uuid(deal_id)
        if deal_uuid is None:
            return []
        async for session in self._session_factory():
            stmt = (
                select(DealStatusHistoryModel)
                .where(DealStatusHistoryModel.deal_id == deal_uuid)
                .order_by(DealStatusHistoryModel.changed_at.desc())
            )
            result = await session.execute(stmt)
            return [_model_to_history(m) for m in result.scalars().all()]

    # ── Comments ────────────────────────────────────────────────────────────

    async def add_comment(self, deal_id: str, data: CommentCreate) -> CommentRead:
        async for session in self._session_factory():
            model = DealCommentModel(
                deal_id=uuid.UUID(deal_id),
                content=data.content,
                author=data.author,
                author_role=data.author_role.value,
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return _model_to_comment(model)

    async def list_comments(self, deal_id: str) -> list[CommentRead]:
        deal_uuid = _parse_uuid(deal_id)
        if deal_uuid is None:
            return []
        async for session in self._session_factory():
            stmt = (
                select(DealCommentModel)
                .where(DealCommentModel.deal_id == deal_uuid)
                .order_by(DealCommentModel.created_at)
            )
            result = await session.execute(stmt)
            return [_model_to_comment(m) for m in result.scalars().all()]

    # ── Approval Requirements ───────────────────────────────────────────────

    async def create_approval_requirements(
        self, requirements: list[ApprovalRequirementCreate]
    ) -> list[ApprovalRequirementRead]:
        """Persist generated requirements, skipping ids that already exist."""
        async for session in self._session_factory():
            created: list[ApprovalRequirementModel] = []
            for req in requirements:
                if await session.get(ApprovalRequirementModel, req.id) is not None:
                    continue
                model = ApprovalRequirementModel(
                    id=req.id,
                    deal_id=uuid.UUID(req.deal_id),
                    stage=req.stage,
                    department=req.department.value,
                    status=req.status.value,
                    required_for=req.required_for,
                    estimated_time=req.estimated_time,
                    can_run_parallel=req.can_run_parallel,
                    dependencies=req.dependencies,
                    created_at=req.created_at,
                )
                session.add(model)
                created.append(model)
            await session.commit()
            return [_model_to_requirement(m) for m in created]

    async def list_approval_requirements(self, deal_id: str) -> list[ApprovalRequirementRead]:
        deal_uuid = _parse_uuid(deal_id)
        if deal_uuid is None:
            return []
        async for session in self._session_factory():
            stmt = (
                select(ApprovalRequirementModel)
                .where(ApprovalRequirementModel.deal_id == deal_uuid)
                .order_by(ApprovalRequirementModel.created_at, _STAGE_ORDER)
            )
            result = await session.execute(stmt)
            return [_model_to_requirement(m) for m in result.scalars().all()]

    async def update_approval_requirement(
        self,
        requirement_id: str,
        status: ApprovalStatus,
        reviewer: str | None = None,
        comments: str | None = None,
    ) -> ApprovalRequirementRead:
        """Record a reviewer decision on a requirement.

        Raises:
            ValueError: If the requirement does not exist.
        """
        async for session in self._session_factory():
            model = await session.get(ApprovalRequirementModel, requirement_id)
            if model is None:
                raise ValueError(f"Approval requirement not found: {requirement_id}")
            model.status = status.value
            model.reviewer = reviewer
            model.comments = comments
            model.completed_at = (
                datetime.now(timezone.utc) if status == ApprovalStatus.APPROVED else None
            )
            await session.commit()
            await session.refresh(model)
            return _model_to_requirement(model)

    # ── Scoping Requests ────────────────────────────────────────────────────

    async def create_scoping_request(
        self, data: ScopingRequestCreate, owner_id: str | None
    ) -> ScopingRequestRead:
        async for session in self._session_factory():
            model = DealScopingRequestModel(
                owner_id=_parse_uuid(owner_id) if owner_id else None,
                status=ScopingRequestStatus.PENDING.value,
                **data.model_dump(mode="json"),
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            logger.info(
                "scoping_request.created",
                request_id=str(model.id),
                growth_ambition=model.growth_ambition,
            )
            return _model_to_scoping(model)

    async def get_scoping_request(self, request_id: str) -> ScopingRequestRead | None:
        request_uuid = _parse_uuid(request_id)
        if request_uuid is None:
            return None
        async for session in self._session_factory():
            model = await session.get(DealScopingRequestModel, request_uuid)
            if model is None:
                return None
            return _model_to_scoping(model)

    async def list_scoping_requests(
        self,
        status: ScopingRequestStatus | None = None,
        owner_id: str | None = None,
    ) -> list[ScopingRequestRead]:
        """List scoping requests, newest first."""
        async for session in self._session_factory():
            stmt = select(DealScopingRequestModel)
            if status is not None:
                stmt = stmt.where(DealScopingRequestModel.status == status.value)
            if owner_id is not None:
                stmt = stmt.where(DealScopingRequestModel.owner_id == _parse_uuid(owner_id))
            stmt = stmt.order_by(DealScopingRequestModel.created_at.desc())
            result = await session.execute(stmt)
            return [_model_to_scoping(m) for m in result.scalars().all()]

    async def update_scoping_request_status(
        self,
        request_id: str,
        status: ScopingRequestStatus,
        converted_deal_id: str | None = None,
    ) -> ScopingRequestRead:
        """Set a scoping request's status; conversion also records the deal.

        Raises:
            ValueError: If the request does not exist.
        """
        request_uuid = _parse_uuid(request_id)
        async for session in self._session_factory():
            model = (
                await session.get(DealScopingRequestModel, request_uuid)
                if request_uuid
                else None
            )
            if model is None:
                raise ValueError(f"Scoping request not found: {request_id}")
            model.status = status.value
            if converted_deal_id is not None:
                model.converted_deal_id = uuid.UUID(converted_deal_id)
                model.converted_at = datetime.now(timezone.utc)
            await session.commit()
            await session.refresh(model)
            logger.info(
                "scoping_request.status_changed",
                request_id=request_id,
                status=status.value,
                converted_deal_id=converted_deal_id,
            )
            return _model_to_scoping(model)

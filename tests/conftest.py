"""Shared test fixtures.

Provides:
- InMemoryDealRepository: DealRepository test double (no database)
- One CurrentUser per role
- A DealWorkflow wired to the in-memory repository
- Factories for valid DealCreate and ScopingRequestCreate payloads
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

import pytest

from src.dealdesk.approvals.schemas import (
    ApprovalRequirementCreate,
    ApprovalRequirementRead,
    ApprovalStatus,
)
from src.dealdesk.deals.repository import format_reference_number
from src.dealdesk.deals.schemas import (
    CommentCreate,
    CommentRead,
    CurrentUser,
    DealCreate,
    DealFilter,
    DealRead,
    DealStatus,
    DealTierCreate,
    DealTierRead,
    ScopingRequestCreate,
    ScopingRequestRead,
    ScopingRequestStatus,
    StatusHistoryRead,
    UserRole,
)
from src.dealdesk.deals.workflow import DealWorkflow


# ── In-Memory Test Double ────────────────────────────────────────────────────


class InMemoryDealRepository:
    """In-memory DealRepository for testing without database."""

    def __init__(self) -> None:
        self._deals: dict[str, DealRead] = {}
        self._tiers: dict[str, list[DealTierRead]] = {}
        self._history: dict[str, list[StatusHistoryRead]] = {}
        self._comments: dict[str, list[CommentRead]] = {}
        self._requirements: dict[str, ApprovalRequirementRead] = {}
        self._scoping: dict[str, ScopingRequestRead] = {}

    def _append_history(
        self,
        deal_id: str,
        status: DealStatus,
        changed_by: str,
        comments: str | None,
        previous_status: DealStatus | None,
    ) -> StatusHistoryRead:
        entry = StatusHistoryRead(
            id=str(uuid.uuid4()),
            deal_id=deal_id,
            status=status,
            previous_status=previous_status,
            changed_by=changed_by,
            comments=comments,
            changed_at=datetime.now(timezone.utc),
        )
        self._history.setdefault(deal_id, []).append(entry)
        return entry

    async def create_deal(
        self, data: DealCreate, owner_id: str | None, changed_by: str
    ) -> DealRead:
        deal_id = str(uuid.uuid4())
        now = datetime.now(timezone.utc)
        deal = DealRead(
            id=deal_id,
            reference_number=format_reference_number(now.year, len(self._deals) + 1),
            owner_id=owner_id,
            last_status_change=now,
            created_at=now,
            updated_at=now,
            **data.model_dump(exclude={"tiers"}),
        )
        self._deals[deal_id] = deal
        self._tiers[deal_id] = [
            DealTierRead(id=str(uuid.uuid4()), deal_id=deal_id, created_at=now, **t.model_dump())
            for t in data.tiers
        ]
        self._append_history(deal_id, deal.status, changed_by, "Deal created", None)
        return deal

    async def get_deal(self, deal_id: str) -> DealRead | None:
        return self._deals.get(deal_id)

    async def list_deals(self, filters: DealFilter | None = None) -> list[DealRead]:
        result = list(self._deals.values())
        if filters:
            if filters.status is not None:
                result = [d for d in result if d.status == filters.status]
            if filters.owner_id is not None:
                result = [d for d in result if d.owner_id == filters.owner_id]
        return result

    async def update_status(
        self,
        deal_id: str,
        status: DealStatus,
        changed_by: str,
        comments: str | None = None,
        revision_reason: str | None = None,
        increment_revision: bool = False,
    ) -> DealRead:
        deal = self._deals.get(deal_id)
        if deal is None:
            raise ValueError(f"Deal not found: {deal_id}")
        update: dict[str, Any] = {
            "status": status,
            "last_status_change": datetime.now(timezone.utc),
        }
        if increment_revision:
            update["revision_count"] = deal.revision_count + 1
            update["revision_reason"] = revision_reason
        updated = deal.model_copy(update=update)
        self._deals[deal_id] = updated
        self._append_history(deal_id, status, changed_by, comments, deal.status)
        return updated

    async def count_by_status(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for deal in self._deals.values():
            counts[deal.status.value] = counts.get(deal.status.value, 0) + 1
        return counts

    async def get_tiers(self, deal_id: str) -> list[DealTierRead]:
        return sorted(self._tiers.get(deal_id, []), key=lambda t: t.tier_number)

    async def add_history_entry(
        self,
        deal_id: str,
        status: DealStatus,
        changed_by: str,
        comments: str | None = None,
        previous_status: DealStatus | None = None,
    ) -> StatusHistoryRead:
        return self._append_history(deal_id, status, changed_by, comments, previous_status)

    async def list_history(self, deal_id: str) -> list[StatusHistoryRead]:
        return list(reversed(self._history.get(deal_id, [])))

    async def add_comment(self, deal_id: str, data: CommentCreate) -> CommentRead:
        comment = CommentRead(
            id=str(uuid.uuid4()),
            deal_id=deal_id,
            created_at=datetime.now(timezone.utc),
            **data.model_dump(),
        )
        self._comments.setdefault(deal_id, []).append(comment)
        return comment

    async def list_comments(self, deal_id: str) -> list[CommentRead]:
        return list(self._comments.get(deal_id, []))

    async def create_approval_requirements(
        self, requirements: list[ApprovalRequirementCreate]
    ) -> list[ApprovalRequirementRead]:
        created = []
        for req in requirements:
            if req.id in self._requirements:
                continue
            read = ApprovalRequirementRead(**req.model_dump())
            self._requirements[req.id] = read
            created.append(read)
        return created

    async def list_approval_requirements(self, deal_id: str) -> list[ApprovalRequirementRead]:
        return [r for r in self._requirements.values() if r.deal_id == deal_id]

    async def update_approval_requirement(
        self,
        requirement_id: str,
        status: ApprovalStatus,
        reviewer: str | None = None,
        comments: str | None = None,
    ) -> ApprovalRequirementRead:
        req = self._requirements.get(requirement_id)
        if req is None:
            raise ValueError(f"Approval requirement not found: {requirement_id}")
        updated = req.model_copy(update={
            "status": status,
            "reviewer": reviewer,
            "comments": comments,
            "completed_at": (
                datetime.now(timezone.utc) if status == ApprovalStatus.APPROVED else None
            ),
        })
        self._requirements[requirement_id] = updated
        return updated

    async def create_scoping_request(
        self, data: ScopingRequestCreate, owner_id: str | None
    ) -> ScopingRequestRead:
        now = datetime.now(timezone.utc)
        request = ScopingRequestRead(
            id=str(uuid.uuid4()),
            owner_id=owner_id,
            created_at=now,
            updated_at=now,
            **data.model_dump(),
        )
        self._scoping[request.id] = request
        return request

    async def get_scoping_request(self, request_id: str) -> ScopingRequestRead | None:
        return self._scoping.get(request_id)

    async def list_scoping_requests(
        self,
        status: ScopingRequestStatus | None = None,
        owner_id: str | None = None,
    ) -> list[ScopingRequestRead]:
        result = list(self._scoping.values())
        if status is not None:
            result = [r for r in result if r.status == status]
        if owner_id is not None:
            result = [r for r in result if r.owner_id == owner_id]
        return result

    async def update_scoping_request_status(
        self,
        request_id: str,
        status: ScopingRequestStatus,
        converted_deal_id: str | None = None,
    ) -> ScopingRequestRead:
        request = self._scoping.get(request_id)
        if request is None:
            raise ValueError(f"Scoping request not found: {request_id}")
        update: dict[str, Any] = {"status": status}
        if converted_deal_id is not None:
            update["converted_deal_id"] = converted_deal_id
            update["converted_at"] = datetime.now(timezone.utc)
        updated = request.model_copy(update=update)
        self._scoping[request_id] = updated
        return updated


# ── Users ────────────────────────────────────────────────────────────────────


def _user(role: UserRole) -> CurrentUser:
    return CurrentUser(
        id=str(uuid.uuid4()),
        email=f"{role.value}@company.com",
        name=f"Demo {role.value.title()}",
        role=role,
    )


@pytest.fixture
def seller() -> CurrentUser:
    return _user(UserRole.SELLER)


@pytest.fixture
def approver() -> CurrentUser:
    return _user(UserRole.APPROVER)


@pytest.fixture
def legal() -> CurrentUser:
    return _user(UserRole.LEGAL)


@pytest.fixture
def admin() -> CurrentUser:
    return _user(UserRole.ADMIN)


# ── Workflow ─────────────────────────────────────────────────────────────────


@pytest.fixture
def repo() -> InMemoryDealRepository:
    return InMemoryDealRepository()


@pytest.fixture
def workflow(repo: InMemoryDealRepository) -> DealWorkflow:
    return DealWorkflow(repository=repo)


@pytest.fixture
def make_deal() -> Callable[..., DealCreate]:
    """Factory for a valid two-tier submitted deal; keyword overrides apply."""

    def _make(**overrides: Any) -> DealCreate:
        data: dict[str, Any] = {
            "deal_name": "Acme Q3 Growth",
            "deal_type": "grow",
            "sales_channel": "client_direct",
            "advertiser_name": "Acme",
            "contract_term_months": 12,
            "previous_year_revenue": 2_500_000,
            "previous_year_margin": 0.25,
            "tiers": [
                DealTierCreate(
                    tier_number=1,
                    annual_revenue=300_000,
                    annual_gross_margin=0.30,
                    category_name="financial",
                    sub_category_name="discounts",
                    incentive_option="Volume discount",
                    incentive_value=10_000,
                ),
                DealTierCreate(
                    tier_number=2,
                    annual_revenue=400_000,
                    annual_gross_margin=0.32,
                    category_name="analytics",
                    sub_category_name="reporting",
                    incentive_option="Custom dashboard",
                    incentive_value=5_000,
                ),
            ],
        }
        data.update(overrides)
        return DealCreate(**data)

    return _make


@pytest.fixture
def make_scoping() -> Callable[..., ScopingRequestCreate]:
    """Factory for a valid scoping request; keyword overrides apply."""

    def _make(**overrides: Any) -> ScopingRequestCreate:
        data: dict[str, Any] = {
            "request_title": "Acme 2027 Expansion",
            "sales_channel": "client_direct",
            "advertiser_name": "Acme",
            "region": "west",
            "contract_term_months": 12,
            "growth_opportunity_miq": "Expand into CTV inventory",
            "growth_ambition": 1_500_000,
            "growth_opportunity_client": "Reach younger audiences",
            "client_asks": "Quarterly reporting",
        }
        data.update(overrides)
        return ScopingRequestCreate(**data)

    return _make

"""Deal workflow -- role-checked operations on top of DealRepository.

Every method takes the acting CurrentUser explicitly. Transition legality
comes from approvals.transitions; approval requirements are generated when
a deal reaches "submitted" and reset to pending when a deal is resubmitted
after a revision request.

Status changes are always explicit: approving every requirement does not
move the deal to "approved" by itself.

Exports:
    DealWorkflow: Orchestrator for deal lifecycle operations.
    DealNotFoundError, ApprovalDependencyError, RequirementClosedError,
    ScopingRequestNotFoundError, ScopingRequestClosedError: Domain errors.
"""

from __future__ import annotations

from datetime import datetime, timezone

import structlog

from src.dealdesk.approvals.departments import (
    FINANCE_AUTO_APPROVE_THRESHOLD,
    generate_approval_requirements,
    predict_approval_path,
)
from src.dealdesk.approvals.matrix import determine_required_approver, generate_approval_alert
from src.dealdesk.approvals.pipeline import (
    DEFAULT_BOTTLENECK_THRESHOLD_DAYS,
    aggregate_pipeline_status,
    follow_up_recommendations,
)
from src.dealdesk.approvals.schemas import (
    ApprovalAlert,
    ApprovalPrediction,
    ApprovalRequirementRead,
    ApprovalStatus,
    ApproverLevel,
    DealParameters,
    PipelineStatus,
)
from src.dealdesk.approvals.transitions import (
    REVISION_SOURCE_STATUSES,
    InvalidStatusTransitionError,
    Permission,
    get_allowed_transitions,
    has_permission,
    require_permission,
    validate_transition,
)
from src.dealdesk.deals.assessment import DealAssessment, DealAssessor
from src.dealdesk.deals.financials import (
    calculate_tier_summary,
    expected_tier,
    previous_year_baseline,
    validate_tiers,
)
from src.dealdesk.deals.repository import DealRepository
from src.dealdesk.deals.schemas import (
    CommentCreate,
    CommentRead,
    CurrentUser,
    DealCreate,
    DealFilter,
    DealRead,
    DealStatus,
    DealStructure,
    DealTierRead,
    DealType,
    ScopingConversion,
    ScopingRequestCreate,
    ScopingRequestRead,
    ScopingRequestStatus,
    StatusHistoryRead,
    TierFinancialSummary,
    UserRole,
)

logger = structlog.get_logger(__name__)

# Statuses a new deal may start in
INITIAL_STATUSES: frozenset[DealStatus] = frozenset({
    DealStatus.DRAFT,
    DealStatus.SCOPING,
    DealStatus.SUBMITTED,
})

# Statuses in which reviewers may record requirement decisions
REVIEWABLE_STATUSES: frozenset[DealStatus] = frozenset({
    DealStatus.SUBMITTED,
    DealStatus.UNDER_REVIEW,
    DealStatus.NEGOTIATING,
})

# Scoping requests that can still be worked on or converted
OPEN_SCOPING_STATUSES: frozenset[ScopingRequestStatus] = frozenset({
    ScopingRequestStatus.PENDING,
    ScopingRequestStatus.IN_PROGRESS,
})


class DealNotFoundError(ValueError):
    """Raised when a deal does not exist or is not visible to the user."""

    def __init__(self, deal_id: str) -> None:
        self.deal_id = deal_id
        super().__init__(f"Deal not found: {deal_id}")


class ApprovalDependencyError(ValueError):
    """Raised when approving a requirement whose dependencies are still open."""


class RequirementClosedError(ValueError):
    """Raised when a requirement is not open for a decision.

    Either the requirement was already decided or the deal is outside
    REVIEWABLE_STATUSES.
    """


class ScopingRequestNotFoundError(ValueError):
    def __init__(self, request_id: str) -> None:
        self.request_id = request_id
        super().__init__(f"Scoping request not found: {request_id}")


class ScopingRequestClosedError(ValueError):
    """Raised when a converted or rejected scoping request is changed again."""


# ── Deal Parameters ─────────────────────────────────────────────────────────


def deal_parameters(deal: DealRead, tiers: list[DealTierRead]) -> DealParameters:
    """Build approval matrix inputs from a stored deal.

    Annual value is the expected tier's revenue when the deal has tiers,
    else the deal's annual revenue. Total value spreads it over the term.
    """
    if tiers:
        annual = expected_tier(tiers).annual_revenue
    else:
        annual = deal.annual_revenue or 0.0
    term = deal.contract_term_months or 12
    return DealParameters(
        total_value=annual * term / 12,
        annual_value=annual,
        contract_term_months=term,
        discount_percentage=deal.discount_percentage,
        has_non_standard_terms=deal.has_non_standard_terms,
        deal_type=deal.deal_type.value,
        sales_channel=deal.sales_channel.value,
        has_trade_am_implications=deal.has_trade_am_implications,
        yearly_revenue_growth_rate=deal.yearly_revenue_growth_rate,
        forecasted_margin=deal.forecasted_margin,
        yearly_margin_growth_rate=deal.yearly_margin_growth_rate,
        added_value_benefits_cost=deal.added_value_benefits_cost,
        analytics_tier=deal.analytics_tier,
        requires_custom_marketing=deal.requires_custom_marketing,
    )


def scoping_to_deal(request: ScopingRequestRead, conversion: ScopingConversion) -> DealCreate:
    """Carry a scoping request's client details into a new deal.

    The request supplies the commercial context; the conversion supplies
    the tiers and the status the deal starts in.
    """
    return DealCreate(
        deal_name=request.request_title,
        deal_type=request.deal_type or DealType.GROW,
        sales_channel=request.sales_channel,
        region=request.region,
        advertiser_name=request.advertiser_name,
        agency_name=request.agency_name,
        deal_structure=request.deal_structure or DealStructure.FLAT_COMMIT,
        business_summary=request.description or request.client_asks,
        email=request.email,
        contract_term_months=request.contract_term_months,
        previous_year_revenue=conversion.previous_year_revenue,
        previous_year_margin=conversion.previous_year_margin,
        status=conversion.status,
        tiers=conversion.tiers,
    )


class DealWorkflow:
    """Role-aware deal lifecycle operations.

    Args:
        repository: DealRepository (or a compatible test double).
        bottleneck_threshold_days: Age in whole days after which a pending
            requirement counts as a bottleneck.
        finance_auto_approve_threshold: Deal value under which finance
            review is predicted to auto-approve.
    """

    def __init__(
        self,
        repository: DealRepository,
        bottleneck_threshold_days: int = DEFAULT_BOTTLENECK_THRESHOLD_DAYS,
        finance_auto_approve_threshold: float = FINANCE_AUTO_APPROVE_THRESHOLD,
    ) -> None:
        self._repo = repository
        self._bottleneck_threshold_days = bottleneck_threshold_days
        self._finance_threshold = finance_auto_approve_threshold

    # ── Lookups ─────────────────────────────────────────────────────────────

    async def get_deal(self, deal_id: str, user: CurrentUser) -> DealRead:
        """Fetch a deal the user may see. Sellers only see their own deals."""
        deal = await self._repo.get_deal(deal_id)
        if deal is None:
            raise DealNotFoundError(deal_id)
        if not has_permission(user.role, Permission.VIEW_ALL_DEALS) and deal.owner_id != user.id:
            raise DealNotFoundError(deal_id)
        return deal

    async def list_deals(
        self, user: CurrentUser, status: DealStatus | None = None
    ) -> list[DealRead]:
        filters = DealFilter(status=status)
        if not has_permission(user.role, Permission.VIEW_ALL_DEALS):
            filters.owner_id = user.id
        return await self._repo.list_deals(filters)

    async def get_tiers(self, deal_id: str, user: CurrentUser) -> list[DealTierRead]:
        await self.get_deal(deal_id, user)
        return await self._repo.get_tiers(deal_id)

    async def get_history(self, deal_id: str, user: CurrentUser) -> list[StatusHistoryRead]:
        await self.get_deal(deal_id, user)
        return await self._repo.list_history(deal_id)

    async def allowed_transitions(self, deal_id: str, user: CurrentUser) -> list[DealStatus]:
        deal = await self.get_deal(deal_id, user)
        return get_allowed_transitions(deal.status, user.role)

    async def required_approver(self, deal: DealRead) -> ApproverLevel:
        tiers = await self._repo.get_tiers(deal.id)
        return determine_required_approver(deal_parameters(deal, tiers))

    # ── Creation ────────────────────────────────────────────────────────────

    async def create_deal(self, data: DealCreate, user: CurrentUser) -> DealRead:
        """Create a deal with its tiers.

        Raises:
            PermissionDeniedError: user may not create deals.
            TierValidationError: tiers are empty or not numbered 1..N.
            InvalidStatusTransitionError: initial status is not draft,
                scoping or submitted.
        """
        require_permission(user.role, Permission.CREATE_DEAL)
        validate_tiers(data.tiers)
        if data.status not in INITIAL_STATUSES:
            raise InvalidStatusTransitionError(DealStatus.DRAFT, data.status)

        if data.email is None:
            data = data.model_copy(update={"email": user.email})
        deal = await self._repo.create_deal(data, owner_id=user.id, changed_by=user.email)

        if deal.status == DealStatus.SUBMITTED:
            await self._generate_requirements(deal)
        return deal

    async def _generate_requirements(self, deal: DealRead) -> list[ApprovalRequirementRead]:
        level = await self.required_approver(deal)
        requirements = generate_approval_requirements(deal.id, level)
        return await self._repo.create_approval_requirements(requirements)

    # ── Status Changes ──────────────────────────────────────────────────────

    async def change_status(
        self,
        deal_id: str,
        target: DealStatus,
        user: CurrentUser,
        comments: str | None = None,
    ) -> DealRead:
        """Move a deal to target status if the transition and role allow it.

        Raises:
            DealNotFoundError, InvalidStatusTransitionError,
            TransitionNotPermittedError.
        """
        require_permission(user.role, Permission.CHANGE_STATUS)
        deal = await self.get_deal(deal_id, user)
        validate_transition(deal.status, target, user.role)

        if target == DealStatus.REVISION_REQUESTED:
            updated = await self._repo.update_status(
                deal_id, target, changed_by=user.email, comments=comments,
                revision_reason=comments, increment_revision=True,
            )
        else:
            updated = await self._repo.update_status(
                deal_id, target, changed_by=user.email, comments=comments
            )

        if target == DealStatus.SUBMITTED:
            await self._generate_requirements(updated)
        elif deal.status == DealStatus.REVISION_REQUESTED and target == DealStatus.UNDER_REVIEW:
            await self._reopen_requirements(deal_id)
        return updated

    async def request_revision(
        self, deal_id: str, user: CurrentUser, reason: str
    ) -> DealRead:
        """Send a deal back to the seller from under_review, negotiating or legal_review."""
        require_permission(user.role, Permission.REQUEST_REVISION)
        deal = await self.get_deal(deal_id, user)
        if deal.status not in REVISION_SOURCE_STATUSES:
            raise InvalidStatusTransitionError(deal.status, DealStatus.REVISION_REQUESTED)
        validate_transition(deal.status, DealStatus.REVISION_REQUESTED, user.role)

        updated = await self._repo.update_status(
            deal_id,
            DealStatus.REVISION_REQUESTED,
            changed_by=user.email,
            comments=f"Revision requested: {reason}",
            revision_reason=reason,
            increment_revision=True,
        )
        logger.info(
            "deal.revision_requested",
            deal_id=deal_id,
            revision_count=updated.revision_count,
            requested_by=user.email,
        )
        return updated

    async def resubmit(
        self, deal_id: str, user: CurrentUser, comments: str | None = None
    ) -> DealRead:
        """Return a revised deal to under_review and reopen flagged requirements."""
        deal = await self.get_deal(deal_id, user)
        if deal.status != DealStatus.REVISION_REQUESTED:
            raise InvalidStatusTransitionError(deal.status, DealStatus.UNDER_REVIEW)
        return await self.change_status(
            deal_id,
            DealStatus.UNDER_REVIEW,
            user,
            comments=comments or "Resubmitted after revision",
        )

    async def _reopen_requirements(self, deal_id: str) -> None:
        for requirement in await self._repo.list_approval_requirements(deal_id):
            if requirement.status == ApprovalStatus.REVISION_REQUESTED:
                await self._repo.update_approval_requirement(
                    requirement.id, ApprovalStatus.PENDING
                )

    # ── Approvals ───────────────────────────────────────────────────────────

    async def decide_requirement(
        self,
        deal_id: str,
        requirement_id: str,
        decision: ApprovalStatus,
        user: CurrentUser,
        comments: str | None = None,
    ) -> ApprovalRequirementRead:
        """Record a reviewer decision on one of the deal's requirements.

        Raises:
            DealNotFoundError, ValueError: deal or requirement not found.
            RequirementClosedError: requirement already decided or deal not
                under review.
            ApprovalDependencyError: approving before dependencies are approved.
        """
        require_permission(user.role, Permission.APPROVE_REQUIREMENT)
        deal = await self.get_deal(deal_id, user)

        requirements = {r.id: r for r in await self._repo.list_approval_requirements(deal_id)}
        requirement = requirements.get(requirement_id)
        if requirement is None:
            raise ValueError(f"Approval requirement not found: {requirement_id}")

        if deal.status not in REVIEWABLE_STATUSES:
            raise RequirementClosedError(
                f"Requirements cannot be decided while the deal is {deal.status.value}"
            )
        if requirement.status != ApprovalStatus.PENDING:
            raise RequirementClosedError(
                f"Requirement {requirement_id} is already {requirement.status.value}"
            )

        if decision == ApprovalStatus.APPROVED:
            open_deps = [
                dep for dep in requirement.dependencies
                if dep not in requirements
                or requirements[dep].status != ApprovalStatus.APPROVED
            ]
            if open_deps:
                raise ApprovalDependencyError(
                    f"Cannot approve {requirement_id} before: {', '.join(open_deps)}"
                )

        updated = await self._repo.update_approval_requirement(
            requirement_id, decision, reviewer=user.email, comments=comments
        )
        logger.info(
            "approval.decided",
            deal_id=deal_id,
            requirement_id=requirement_id,
            decision=decision.value,
            reviewer=user.email,
        )
        return updated

    async def approval_status(
        self, deal_id: str, user: CurrentUser, now: datetime | None = None
    ) -> tuple[PipelineStatus, list[str]]:
        """Aggregate the deal's requirements and the seller follow-ups."""
        await self.get_deal(deal_id, user)
        now = now or datetime.now(timezone.utc)
        requirements = await self._repo.list_approval_requirements(deal_id)
        status = aggregate_pipeline_status(
            requirements, now=now, bottleneck_threshold_days=self._bottleneck_threshold_days
        )
        if status.deal_id is None:
            status.deal_id = deal_id
        return status, follow_up_recommendations(status, now=now)

    async def list_requirements(
        self, deal_id: str, user: CurrentUser
    ) -> list[ApprovalRequirementRead]:
        await self.get_deal(deal_id, user)
        return await self._repo.list_approval_requirements(deal_id)

    async def approval_path(self, deal_id: str, user: CurrentUser) -> ApprovalPrediction:
        deal = await self.get_deal(deal_id, user)
        tiers = await self._repo.get_tiers(deal_id)
        params = deal_parameters(deal, tiers)
        return predict_approval_path(
            deal_value=params.total_value,
            approver_level=determine_required_approver(params),
            incentive_categories=[t.category_name for t in tiers],
            deal_type=deal.deal_type.value,
            finance_auto_approve_threshold=self._finance_threshold,
        )

    async def approval_alert(self, deal_id: str, user: CurrentUser) -> ApprovalAlert:
        deal = await self.get_deal(deal_id, user)
        tiers = await self._repo.get_tiers(deal_id)
        return generate_approval_alert(deal_parameters(deal, tiers))

    # ── Collaboration ───────────────────────────────────────────────────────

    async def add_comment(self, deal_id: str, user: CurrentUser, content: str) -> CommentRead:
        require_permission(user.role, Permission.COMMENT)
        await self.get_deal(deal_id, user)
        return await self._repo.add_comment(
            deal_id,
            CommentCreate(content=content, author=user.email, author_role=user.role),
        )

    async def list_comments(self, deal_id: str, user: CurrentUser) -> list[CommentRead]:
        await self.get_deal(deal_id, user)
        return await self._repo.list_comments(deal_id)

    async def nudge(
        self,
        deal_id: str,
        user: CurrentUser,
        target_role: UserRole,
        message: str,
    ) -> StatusHistoryRead:
        """Record a reminder to another role in the deal's history."""
        require_permission(user.role, Permission.NUDGE)
        deal = await self.get_deal(deal_id, user)
        entry = await self._repo.add_history_entry(
            deal_id,
            status=deal.status,
            previous_status=deal.status,
            changed_by=user.email,
            comments=f"NUDGE from {user.email} to {target_role.value}: {message}",
        )
        logger.info(
            "deal.nudged",
            deal_id=deal_id,
            sender=user.email,
            target_role=target_role.value,
        )
        return entry

    async def status_counts(self, user: CurrentUser) -> dict[str, int]:
        if has_permission(user.role, Permission.VIEW_ALL_DEALS):
            return await self._repo.count_by_status()
        counts: dict[str, int] = {}
        for deal in await self.list_deals(user):
            counts[deal.status.value] = counts.get(deal.status.value, 0) + 1
        return counts

    # ── Scoping Requests ────────────────────────────────────────────────────

    async def create_scoping_request(
        self, data: ScopingRequestCreate, user: CurrentUser
    ) -> ScopingRequestRead:
        require_permission(user.role, Permission.CREATE_DEAL)
        if data.email is None:
            data = data.model_copy(update={"email": user.email})
        return await self._repo.create_scoping_request(data, owner_id=user.id)

    async def get_scoping_request(
        self, request_id: str, user: CurrentUser
    ) -> ScopingRequestRead:
        """Fetch a scoping request the user may see. Sellers only see their own."""
        request = await self._repo.get_scoping_request(request_id)
        if request is None:
            raise ScopingRequestNotFoundError(request_id)
        if (
            not has_permission(user.role, Permission.VIEW_ALL_DEALS)
            and request.owner_id != user.id
        ):
            raise ScopingRequestNotFoundError(request_id)
        return request

    async def list_scoping_requests(
        self, user: CurrentUser, status: ScopingRequestStatus | None = None
    ) -> list[ScopingRequestRead]:
        owner_id = None
        if not has_permission(user.role, Permission.VIEW_ALL_DEALS):
            owner_id = user.id
        return await self._repo.list_scoping_requests(status=status, owner_id=owner_id)

    async def update_scoping_status(
        self,
        request_id: str,
        status: ScopingRequestStatus,
        user: CurrentUser,
    ) -> ScopingRequestRead:
        """Move an open scoping request to in_progress, pending or rejected.

        Raises:
            ScopingRequestClosedError: request already converted or rejected,
                or the target is "converted" (only conversion sets it).
        """
        require_permission(user.role, Permission.REVIEW_SCOPING)
        request = await self.get_scoping_request(request_id, user)
        if status == ScopingRequestStatus.CONVERTED:
            raise ScopingRequestClosedError(
                "Scoping requests are marked converted only by converting them"
            )
        if request.status not in OPEN_SCOPING_STATUSES:
            raise ScopingRequestClosedError(
                f"Scoping request {request_id} is already {request.status.value}"
            )
        return await self._repo.update_scoping_request_status(request_id, status)

    async def convert_scoping_request(
        self,
        request_id: str,
        conversion: ScopingConversion,
        user: CurrentUser,
    ) -> tuple[DealRead, ScopingRequestRead]:
        """Create a deal from an open scoping request and mark it converted.

        The deal goes through create_deal, so tier validation, the initial
        status guard and requirement generation all apply.
        """
        require_permission(user.role, Permission.CREATE_DEAL)
        request = await self.get_scoping_request(request_id, user)
        if request.status not in OPEN_SCOPING_STATUSES:
            raise ScopingRequestClosedError(
                f"Scoping request {request_id} is already {request.status.value}"
            )

        deal = await self.create_deal(scoping_to_deal(request, conversion), user)
        converted = await self._repo.update_scoping_request_status(
            request_id, ScopingRequestStatus.CONVERTED, converted_deal_id=deal.id
        )
        logger.info(
            "scoping_request.converted",
            request_id=request_id,
            deal_id=deal.id,
            reference_number=deal.reference_number,
        )
        return deal, converted

    # ── Financials ──────────────────────────────────────────────────────────

    async def financial_summary(self, deal_id: str, user: CurrentUser) -> TierFinancialSummary:
        """Tier roll-up measured against the deal's previous year figures."""
        deal = await self.get_deal(deal_id, user)
        tiers = await self._repo.get_tiers(deal_id)
        return calculate_tier_summary(tiers, previous_year_baseline(deal))

    async def assess(
        self, deal_id: str, user: CurrentUser, assessor: DealAssessor
    ) -> DealAssessment:
        deal = await self.get_deal(deal_id, user)
        tiers = await self._repo.get_tiers(deal_id)
        assessment = await assessor.assess(deal, tiers)
        logger.info(
            "deal.assessed",
            deal_id=deal_id,
            source=assessment.source,
            overall_score=assessment.overall_value.score,
        )
        return assessment

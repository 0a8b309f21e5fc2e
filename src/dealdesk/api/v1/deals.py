"""REST API endpoints for the deal lifecycle.

Covers deal creation and lookup, tiers and financial summary, status
changes, revision requests, nudges, comments, and the approval pipeline of
a single deal. All endpoints require authentication; the authenticated
user is passed explicitly into every DealWorkflow call.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, Field

from src.dealdesk.api.deps import get_current_user
from src.dealdesk.approvals.schemas import (
    ApprovalAlert,
    ApprovalPrediction,
    ApprovalRequirementRead,
    ApprovalStatus,
    PipelineStatus,
)
from src.dealdesk.approvals.transitions import (
    InvalidStatusTransitionError,
    StatusInfo,
    get_status_info,
    sort_by_status_priority,
)
from src.dealdesk.deals.assessment import DealAssessment
from src.dealdesk.deals.financials import TierValidationError
from src.dealdesk.deals.schemas import (
    CommentRead,
    CurrentUser,
    DealCreate,
    DealRead,
    DealStatus,
    DealTierRead,
    StatusHistoryRead,
    TierFinancialSummary,
    UserRole,
)
from src.dealdesk.deals.repository import ReferenceNumberConflictError
from src.dealdesk.deals.workflow import (
    ApprovalDependencyError,
    DealWorkflow,
    RequirementClosedError,
    ScopingRequestClosedError,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/deals", tags=["deals"])
statuses_router = APIRouter(tags=["deals"])

_CONFLICT_ERRORS = (
    InvalidStatusTransitionError,
    ApprovalDependencyError,
    RequirementClosedError,
    ScopingRequestClosedError,
    ReferenceNumberConflictError,
)


# ── Request Schemas ──────────────────────────────────────────────────────────


class StatusChangeRequest(BaseModel):
    status: DealStatus
    comments: str | None = Field(default=None, max_length=5000)


class RevisionRequest(BaseModel):
    """Request body for sending a deal back to the seller."""

    reason: str = Field(min_length=1, max_length=5000)


class ResubmitRequest(BaseModel):
    comments: str | None = Field(default=None, max_length=5000)


class NudgeRequest(BaseModel):
    """Request body for nudging another role about a deal."""

    target_role: UserRole
    message: str = Field(min_length=1, max_length=1000)


class CommentRequest(BaseModel):
    content: str = Field(min_length=1, max_length=5000)


class DecisionRequest(BaseModel):
    """Reviewer decision on an approval requirement."""

    decision: ApprovalStatus
    comments: str | None = Field(default=None, max_length=5000)


# ── Response Schemas ─────────────────────────────────────────────────────────


class AllowedTransitionsResponse(BaseModel):
    current_status: DealStatus
    allowed: list[StatusInfo] = Field(default_factory=list)


class ApprovalStatusResponse(BaseModel):
    """Aggregated approval pipeline plus seller follow-ups."""

    pipeline: PipelineStatus
    requirements: list[ApprovalRequirementRead] = Field(default_factory=list)
    follow_ups: list[str] = Field(default_factory=list)


class ApprovalPathResponse(BaseModel):
    prediction: ApprovalPrediction
    alert: ApprovalAlert


class DealStatsResponse(BaseModel):
    total: int = 0
    by_status: dict[str, int] = Field(default_factory=dict)


# ── Dependency Injection Helpers ─────────────────────────────────────────────


def _get_deal_workflow(request: Request) -> DealWorkflow:
    """Retrieve DealWorkflow from app.state, 503 if not available."""
    workflow = getattr(request.app.state, "deal_workflow", None)
    if workflow is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Deal workflow not initialized",
        )
    return workflow


def _get_deal_assessor(request: Request) -> Any:
    assessor = getattr(request.app.state, "deal_assessor", None)
    if assessor is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Deal assessment not initialized",
        )
    return assessor


def _http_error(exc: Exception) -> HTTPException:
    """Translate a workflow error into the matching HTTPException."""
    if isinstance(exc, PermissionError):
        code = status.HTTP_403_FORBIDDEN
    elif isinstance(exc, _CONFLICT_ERRORS):
        code = status.HTTP_409_CONFLICT
    elif isinstance(exc, TierValidationError):
        code = status.HTTP_422_UNPROCESSABLE_ENTITY
    else:
        code = status.HTTP_404_NOT_FOUND
    logger.info("deal_api.request_rejected", status_code=code, error=str(exc))
    return HTTPException(status_code=code, detail=str(exc))


# ── Deal Endpoints ───────────────────────────────────────────────────────────


@router.post("", response_model=DealRead, status_code=201)
async def create_deal(
    body: DealCreate,
    request: Request,
    user: CurrentUser = Depends(get_current_user),
):
    """Create a deal with its tiers. Submitted deals get approval requirements."""
    workflow = _get_deal_workflow(request)
    try:
        return await workflow.create_deal(body, user)
    except (ValueError, PermissionError) as exc:
        raise _http_error(exc) from exc


@router.get("", response_model=list[DealRead])
async def list_deals(
    request: Request,
    status_filter: DealStatus | None = Query(default=None, alias="status"),
    user: CurrentUser = Depends(get_current_user),
):
    """List deals visible to the user, optionally filtered by status."""
    workflow = _get_deal_workflow(request)
    return await workflow.list_deals(user, status=status_filter)


@router.get("/stats", response_model=DealStatsResponse)
async def deal_stats(
    request: Request,
    user: CurrentUser = Depends(get_current_user),
):
    workflow = _get_deal_workflow(request)
    counts = await workflow.status_counts(user)
    return DealStatsResponse(total=sum(counts.values()), by_status=counts)


@router.get("/{deal_id}", response_model=DealRead)
async def get_deal(
    deal_id: str,
    request: Request,
    user: CurrentUser = Depends(get_current_user),
):
    workflow = _get_deal_workflow(request)
    try:
        return await workflow.get_deal(deal_id, user)
    except ValueError as exc:
        raise _http_error(exc) from exc


@router.get("/{deal_id}/tiers", response_model=list[DealTierRead])
async def get_tiers(
    deal_id: str,
    request: Request,
    user: CurrentUser = Depends(get_current_user),
):
    workflow = _get_deal_workflow(request)
    try:
        return await workflow.get_tiers(deal_id, user)
    except ValueError as exc:
        raise _http_error(exc) from exc


@router.get("/{deal_id}/financial-summary", response_model=TierFinancialSummary)
async def get_financial_summary(
    deal_id: str,
    request: Request,
    user: CurrentUser = Depends(get_current_user),
):
    """Tier roll-up with growth versus the previous year."""
    workflow = _get_deal_workflow(request)
    try:
        return await workflow.financial_summary(deal_id, user)
    except ValueError as exc:
        raise _http_error(exc) from exc


# ── Status Workflow ──────────────────────────────────────────────────────────


@router.put("/{deal_id}/status", response_model=DealRead)
async def change_status(
    deal_id: str,
    body: StatusChangeRequest,
    request: Request,
    user: CurrentUser = Depends(get_current_user),
):
    """Move a deal to a new status.

    Returns 409 when the transition is not in the workflow and 403 when the
    user's role may not move deals out of the current status.
    """
    workflow = _get_deal_workflow(request)
    try:
        return await workflow.change_status(deal_id, body.status, user, body.comments)
    except (ValueError, PermissionError) as exc:
        raise _http_error(exc) from exc


@router.get("/{deal_id}/allowed-transitions", response_model=AllowedTransitionsResponse)
async def allowed_transitions(
    deal_id: str,
    request: Request,
    user: CurrentUser = Depends(get_current_user),
):
    workflow = _get_deal_workflow(request)
    try:
        deal = await workflow.get_deal(deal_id, user)
        allowed = await workflow.allowed_transitions(deal_id, user)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return AllowedTransitionsResponse(
        current_status=deal.status,
        allowed=[get_status_info(s) for s in allowed],
    )


@router.get("/{deal_id}/history", response_model=list[StatusHistoryRead])
async def get_history(
    deal_id: str,
    request: Request,
    user: CurrentUser = Depends(get_current_user),
):
    workflow = _get_deal_workflow(request)
    try:
        return await workflow.get_history(deal_id, user)
    except ValueError as exc:
        raise _http_error(exc) from exc


@router.post("/{deal_id}/request-revision", response_model=DealRead)
async def request_revision(
    deal_id: str,
    body: RevisionRequest,
    request: Request,
    user: CurrentUser = Depends(get_current_user),
):
    workflow = _get_deal_workflow(request)
    try:
        return await workflow.request_revision(deal_id, user, body.reason)
    except (ValueError, PermissionError) as exc:
        raise _http_error(exc) from exc


@router.post("/{deal_id}/resubmit", response_model=DealRead)
async def resubmit(
    deal_id: str,
    body: ResubmitRequest,
    request: Request,
    user: CurrentUser = Depends(get_current_user),
):
    workflow = _get_deal_workflow(request)
    try:
        return await workflow.resubmit(deal_id, user, body.comments)
    except (ValueError, PermissionError) as exc:
        raise _http_error(exc) from exc


@router.post("/{deal_id}/nudge", response_model=StatusHistoryRead, status_code=201)
async def nudge(
    deal_id: str,
    body: NudgeRequest,
    request: Request,
    user: CurrentUser = Depends(get_current_user),
):
    workflow = _get_deal_workflow(request)
    try:
        return await workflow.nudge(deal_id, user, body.target_role, body.message)
    except (ValueError, PermissionError) as exc:
        raise _http_error(exc) from exc


# ── Comments ─────────────────────────────────────────────────────────────────


@router.get("/{deal_id}/comments", response_model=list[CommentRead])
async def list_comments(
    deal_id: str,
    request: Request,
    user: CurrentUser = Depends(get_current_user),
):
    workflow = _get_deal_workflow(request)
    try:
        return await workflow.list_comments(deal_id, user)
    except ValueError as exc:
        raise _http_error(exc) from exc


@router.post("/{deal_id}/comments", response_model=CommentRead, status_code=201)
async def add_comment(
    deal_id: str,
    body: CommentRequest,
    request: Request,
    user: CurrentUser = Depends(get_current_user),
):
    workflow = _get_deal_workflow(request)
    try:
        return await workflow.add_comment(deal_id, user, body.content)
    except (ValueError, PermissionError) as exc:
        raise _http_error(exc) from exc


# ── Approval Pipeline ────────────────────────────────────────────────────────


@router.get("/{deal_id}/approval-status", response_model=ApprovalStatusResponse)
async def approval_status(
    deal_id: str,
    request: Request,
    user: CurrentUser = Depends(get_current_user),
):
    """Stage progress, bottlenecks and follow-ups for the deal's approvals."""
    workflow = _get_deal_workflow(request)
    try:
        pipeline, follow_ups = await workflow.approval_status(deal_id, user)
    except ValueError as exc:
        raise _http_error(exc) from exc
    requirements = await workflow.list_requirements(deal_id, user)
    return ApprovalStatusResponse(
        pipeline=pipeline, requirements=requirements, follow_ups=follow_ups
    )


@router.post(
    "/{deal_id}/approvals/{requirement_id}/decision",
    response_model=ApprovalRequirementRead,
)
async def decide_requirement(
    deal_id: str,
    requirement_id: str,
    body: DecisionRequest,
    request: Request,
    user: CurrentUser = Depends(get_current_user),
):
    """Approve a requirement or flag it for revision. Does not change deal status."""
    if body.decision == ApprovalStatus.PENDING:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Decision must be approved or revision_requested",
        )
    workflow = _get_deal_workflow(request)
    try:
        return await workflow.decide_requirement(
            deal_id, requirement_id, body.decision, user, body.comments
        )
    except (ValueError, PermissionError) as exc:
        raise _http_error(exc) from exc


@router.get("/{deal_id}/approval-path", response_model=ApprovalPathResponse)
async def approval_path(
    deal_id: str,
    request: Request,
    user: CurrentUser = Depends(get_current_user),
):
    workflow = _get_deal_workflow(request)
    try:
        prediction = await workflow.approval_path(deal_id, user)
        alert = await workflow.approval_alert(deal_id, user)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return ApprovalPathResponse(prediction=prediction, alert=alert)


@router.post("/{deal_id}/assessment", response_model=DealAssessment)
async def assess_deal(
    deal_id: str,
    request: Request,
    user: CurrentUser = Depends(get_current_user),
):
    """Score the deal with the configured assessor."""
    workflow = _get_deal_workflow(request)
    assessor = _get_deal_assessor(request)
    try:
        return await workflow.assess(deal_id, user, assessor)
    except ValueError as exc:
        raise _http_error(exc) from exc


# ── Status Metadata ──────────────────────────────────────────────────────────


@statuses_router.get("/deal-statuses", response_model=list[StatusInfo])
async def list_deal_statuses():
    """All statuses with display metadata, in workflow order."""
    return [get_status_info(s) for s in sort_by_status_priority(DealStatus, key=lambda s: s)]

"""Approval matrix endpoints.

Evaluates unsaved deal parameters against the standard deal criteria and
the approval matrix, and exposes the approver levels and department
directory the matrix uses. Nothing here touches the database.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from src.dealdesk.api.deps import get_current_user
from src.dealdesk.approvals.criteria import evaluate_standard_deal
from src.dealdesk.approvals.departments import (
    DEPARTMENT_DIRECTORY,
    DepartmentInfo,
    predict_approval_path,
)
from src.dealdesk.approvals.matrix import (
    APPROVER_LEVELS,
    determine_required_approver,
    generate_approval_alert,
    get_approver_details,
)
from src.dealdesk.approvals.schemas import (
    ApprovalAlert,
    ApprovalPrediction,
    ApprovalRule,
    DealParameters,
    StandardDealEvaluation,
)
from src.dealdesk.config import get_settings
from src.dealdesk.deals.schemas import CurrentUser

router = APIRouter(prefix="/approvals", tags=["approvals"])


class EvaluateRequest(BaseModel):
    """Deal parameters plus the incentive categories on its tiers."""

    parameters: DealParameters
    incentive_categories: list[str] = Field(default_factory=list)


class EvaluateResponse(BaseModel):
    evaluation: StandardDealEvaluation
    approver: ApprovalRule
    alert: ApprovalAlert
    prediction: ApprovalPrediction


@router.post("/evaluate", response_model=EvaluateResponse)
async def evaluate(
    body: EvaluateRequest,
    user: CurrentUser = Depends(get_current_user),
):
    """Criteria result, required approver, alert and predicted path for a draft deal."""
    settings = get_settings()
    params = body.parameters
    level = determine_required_approver(params)
    return EvaluateResponse(
        evaluation=evaluate_standard_deal(params),
        approver=get_approver_details(level),
        alert=generate_approval_alert(params),
        prediction=predict_approval_path(
            deal_value=params.total_value,
            approver_level=level,
            incentive_categories=body.incentive_categories,
            deal_type=params.deal_type or "grow",
            finance_auto_approve_threshold=settings.FINANCE_AUTO_APPROVE_THRESHOLD,
        ),
    )


@router.get("/rules", response_model=list[ApprovalRule])
async def list_rules(user: CurrentUser = Depends(get_current_user)):
    return list(APPROVER_LEVELS.values())


@router.get("/departments", response_model=list[DepartmentInfo])
async def list_departments(user: CurrentUser = Depends(get_current_user)):
    return list(DEPARTMENT_DIRECTORY.values())

"""REST API endpoints for deal scoping requests.

Sellers raise a scoping request for a growth opportunity before the deal is
structured. Approvers triage it, and the seller converts it into a deal once
the tiers are known.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel

from src.dealdesk.api.deps import get_current_user
from src.dealdesk.api.v1.deals import _get_deal_workflow, _http_error
from src.dealdesk.deals.schemas import (
    CurrentUser,
    DealRead,
    ScopingConversion,
    ScopingRequestCreate,
    ScopingRequestRead,
    ScopingRequestStatus,
)

router = APIRouter(prefix="/scoping-requests", tags=["scoping"])


class ScopingStatusRequest(BaseModel):
    status: ScopingRequestStatus


class ConversionResponse(BaseModel):
    deal: DealRead
    scoping_request: ScopingRequestRead


@router.post("", response_model=ScopingRequestRead, status_code=201)
async def create_scoping_request(
    body: ScopingRequestCreate,
    request: Request,
    user: CurrentUser = Depends(get_current_user),
):
    workflow = _get_deal_workflow(request)
    try:
        return await workflow.create_scoping_request(body, user)
    except PermissionError as exc:
        raise _http_error(exc) from exc


@router.get("", response_model=list[ScopingRequestRead])
async def list_scoping_requests(
    request: Request,
    status_filter: ScopingRequestStatus | None = Query(default=None, alias="status"),
    user: CurrentUser = Depends(get_current_user),
):
    workflow = _get_deal_workflow(request)
    return await workflow.list_scoping_requests(user, status=status_filter)


@router.get("/{request_id}", response_model=ScopingRequestRead)
async def get_scoping_request(
    request_id: str,
    request: Request,
    user: CurrentUser = Depends(get_current_user),
):
    workflow = _get_deal_workflow(request)
    try:
        return await workflow.get_scoping_request(request_id, user)
    except ValueError as exc:
        raise _http_error(exc) from exc


@router.patch("/{request_id}/status", response_model=ScopingRequestRead)
async def update_scoping_status(
    request_id: str,
    body: ScopingStatusRequest,
    request: Request,
    user: CurrentUser = Depends(get_current_user),
):
    """Triage an open request. Converted and rejected requests are closed (409)."""
    workflow = _get_deal_workflow(request)
    try:
        return await workflow.update_scoping_status(request_id, body.status, user)
    except (ValueError, PermissionError) as exc:
        raise _http_error(exc) from exc


@router.post("/{request_id}/convert", response_model=ConversionResponse, status_code=201)
async def convert_scoping_request(
    request_id: str,
    body: ScopingConversion,
    request: Request,
    user: CurrentUser = Depends(get_current_user),
):
    """Create a deal from the request's details plus the supplied tiers."""
    workflow = _get_deal_workflow(request)
    try:
        deal, converted = await workflow.convert_scoping_request(request_id, body, user)
    except (ValueError, PermissionError) as exc:
        raise _http_error(exc) from exc
    return ConversionResponse(deal=deal, scoping_request=converted)

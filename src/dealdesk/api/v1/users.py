"""User administration endpoints.

Lists users and changes roles. Both endpoints need the manage_users
permission, which only admins hold.
"""

from __future__ import annotations

import uuid

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.dealdesk.api.deps import get_current_user, get_db
from src.dealdesk.approvals.transitions import (
    Permission,
    PermissionDeniedError,
    require_permission,
)
from src.dealdesk.deals.schemas import CurrentUser, UserRole
from src.dealdesk.models.user import User
from src.dealdesk.schemas.auth import RoleUpdateRequest, UserRead

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/users", tags=["users"])


def _require_manage_users(current_user: CurrentUser) -> None:
    try:
        require_permission(current_user.role, Permission.MANAGE_USERS)
    except PermissionDeniedError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc


def _to_read(user: User) -> UserRead:
    return UserRead(
        id=str(user.id),
        email=user.email,
        name=user.name,
        role=UserRole(user.role),
        is_active=bool(user.is_active),
        created_at=user.created_at,
    )


@router.get("", response_model=list[UserRead])
async def list_users(
    role: UserRole | None = Query(default=None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """List users ordered by email, optionally only those with one role."""
    _require_manage_users(current_user)
    stmt = select(User).order_by(User.email)
    if role is not None:
        stmt = stmt.where(User.role == role.value)
    result = await db.execute(stmt)
    return [_to_read(u) for u in result.scalars().all()]


@router.put("/{user_id}/role", response_model=UserRead)
async def update_user_role(
    user_id: str,
    body: RoleUpdateRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Change a user's role.

    Returns 404 for unknown users and 409 when an admin tries to drop
    their own admin role.
    """
    _require_manage_users(current_user)
    try:
        user_uuid = uuid.UUID(user_id)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    result = await db.execute(select(User).where(User.id == user_uuid))
    user = result.scalar_one_or_none()
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    if str(user.id) == current_user.id and body.role != UserRole.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Admins cannot remove their own admin role",
        )

    previous_role = user.role
    user.role = body.role.value
    await db.commit()
    await db.refresh(user)
    logger.info(
        "user.role_changed",
        user_id=user_id,
        previous_role=previous_role,
        role=user.role,
        changed_by=current_user.email,
    )
    return _to_read(user)

"""Authentication API endpoints.

Provides login, token refresh and current user info. All endpoints except
login and refresh require a valid JWT access token.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.dealdesk.api.deps import get_current_user, get_db
from src.dealdesk.approvals.transitions import ROLE_PERMISSIONS
from src.dealdesk.core.security import (
    create_access_token,
    create_refresh_token,
    verify_password,
    verify_token,
)
from src.dealdesk.deals.schemas import CurrentUser
from src.dealdesk.models.user import User
from src.dealdesk.schemas.auth import (
    LoginRequest,
    TokenRefreshRequest,
    TokenResponse,
    UserResponse,
)

router = APIRouter(prefix="/auth", tags=["auth"])


def _issue_tokens(user: User) -> TokenResponse:
    token_data = {
        "sub": str(user.id),
        "email": user.email,
        "role": user.role,
    }
    return TokenResponse(
        access_token=create_access_token(token_data),
        refresh_token=create_refresh_token(token_data),
    )


@router.post("/login", response_model=TokenResponse)
async def login(body: LoginRequest, db: AsyncSession = Depends(get_db)):
    """Authenticate a user and return JWT tokens."""
    result = await db.execute(
        select(User).where(
            User.email == body.email,
            User.is_active == True,  # noqa: E712
        )
    )
    user = result.scalar_one_or_none()

    if not user or not user.hashed_password:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )

    if not verify_password(body.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )

    return _issue_tokens(user)


@router.post("/refresh", response_model=TokenResponse)
async def refresh_token(body: TokenRefreshRequest, db: AsyncSession = Depends(get_db)):
    """Issue new tokens from a valid refresh token."""
    payload = verify_token(body.refresh_token, token_type="refresh")

    result = await db.execute(
        select(User).where(
            User.id == payload["sub"],
            User.is_active == True,  # noqa: E712
        )
    )
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive",
        )
    return _issue_tokens(user)


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: CurrentUser = Depends(get_current_user)):
    """Return the current user and the actions their role permits."""
    permissions = sorted(p.value for p in ROLE_PERMISSIONS.get(current_user.role, frozenset()))
    return UserResponse(
        id=current_user.id,
        email=current_user.email,
        name=current_user.name,
        role=current_user.role,
        permissions=permissions,
    )

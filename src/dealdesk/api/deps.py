"""FastAPI dependency injection for database sessions and authentication.

These dependencies are used in endpoint function signatures to inject
a database session and the authenticated user.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.dealdesk.core.database import get_session
from src.dealdesk.core.security import verify_token
from src.dealdesk.deals.schemas import CurrentUser, UserRole
from src.dealdesk.models.user import User


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Get a database session."""
    async for session in get_session():
        yield session


def user_to_current(user: User) -> CurrentUser:
    return CurrentUser(
        id=str(user.id),
        email=user.email,
        name=user.name,
        role=UserRole(user.role),
    )


async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> CurrentUser:
    """Extract and validate the current user from the Bearer JWT.

    Raises:
        HTTPException(401): If no valid token is provided or the user is
            missing or inactive.
    """
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = verify_token(auth_header[7:], token_type="access")

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
    return user_to_current(user)


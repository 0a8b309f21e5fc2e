"""Pydantic schemas for authentication and user administration endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, EmailStr, Field

from src.dealdesk.deals.schemas import UserRole


class LoginRequest(BaseModel):
    """Request schema for user login."""

    email: EmailStr = Field(..., description="User email address")
    password: str = Field(..., min_length=1, description="User password")


class TokenResponse(BaseModel):
    """Response schema with access and refresh tokens."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class TokenRefreshRequest(BaseModel):
    refresh_token: str = Field(..., description="Valid refresh token")


class UserResponse(BaseModel):
    """Current user info, including the actions the role may perform."""

    id: str
    email: str
    name: str | None = None
    role: UserRole
    permissions: list[str] = Field(default_factory=list)


# ── User Administration ───────────────────────────────────────────────────────


class UserRead(BaseModel):
    """A user as listed to administrators."""

    id: str
    email: str
    name: str | None = None
    role: UserRole
    is_active: bool = True
    created_at: datetime | None = None


class RoleUpdateRequest(BaseModel):
    role: UserRole

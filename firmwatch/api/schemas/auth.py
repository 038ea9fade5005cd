"""Pydantic schemas for authentication endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field

# --- Request Schemas ---


class LoginRequest(BaseModel):
    """Request schema for user login."""

    username: str = Field(..., min_length=1, max_length=64, description="Username")
    password: str = Field(..., description="User password")


# --- Response Schemas ---


class TokenResponse(BaseModel):
    """Response schema containing the JWT access token."""

    access_token: str = Field(..., description="JWT access token")
    token_type: str = Field(default="bearer", description="Token type")
    expires_in: int = Field(..., description="Access token TTL in seconds")


class UserResponse(BaseModel):
    """Response schema for user data."""

    id: str
    username: str
    full_name: str | None = None
    role: str
    firm_access: str


class LoginResponse(BaseModel):
    """Response schema for successful login."""

    message: str = "Login successful"
    user: UserResponse
    tokens: TokenResponse


class ScopeResponse(BaseModel):
    role: str
    firm_filter: str | list[str]
    capabilities: dict[str, bool]


class MeResponse(BaseModel):
    """Response schema for the current user's profile and access scope."""

    user: UserResponse
    scope: ScopeResponse

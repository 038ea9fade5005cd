"""Authentication routes - login and profile."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from firmwatch.api.deps import get_current_user, get_db_session
from firmwatch.api.schemas.auth import (
    LoginRequest,
    LoginResponse,
    MeResponse,
    ScopeResponse,
    TokenResponse,
    UserResponse,
)
from firmwatch.domain.models import User, format_firm_access
from firmwatch.domain.services import scope as scope_service
from firmwatch.domain.services.auth_service import (
    AuthService,
    InvalidCredentialsError,
    UserInactiveError,
)

logger = structlog.get_logger()
router = APIRouter(prefix="/auth", tags=["authentication"])


@router.post(
    "/login",
    response_model=LoginResponse,
    summary="User login",
    description="Authenticate user with username and password, returns a JWT access token.",
)
async def login(
    payload: LoginRequest,
    session: AsyncSession = Depends(get_db_session),
) -> LoginResponse:
    """Authenticate user and return a token."""
    service = AuthService(session)

    try:
        result = await service.login(
            username=payload.username,
            password=payload.password,
        )
    except InvalidCredentialsError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "INVALID_CREDENTIALS", "message": str(exc)},
        ) from exc
    except UserInactiveError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"code": "FORBIDDEN", "message": str(exc)},
        ) from exc

    return LoginResponse(
        user=UserResponse(**result["user"]),
        tokens=TokenResponse(**result["tokens"]),
    )


@router.get(
    "/me",
    response_model=MeResponse,
    summary="Get current user",
    description="Get the authenticated user's profile and the access scope resolved for it.",
)
async def get_me(user: User = Depends(get_current_user)) -> MeResponse:
    """Get current authenticated user's profile."""
    scope = scope_service.resolve(user)
    return MeResponse(
        user=UserResponse(
            id=user.user_id,
            username=user.username,
            full_name=user.full_name,
            role=user.role,
            firm_access=format_firm_access(user.firm_access),
        ),
        scope=ScopeResponse(**scope_service.describe(scope)),
    )

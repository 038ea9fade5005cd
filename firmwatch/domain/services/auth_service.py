"""Authentication service with password hashing and token issuing."""

from __future__ import annotations

from datetime import UTC, datetime

import structlog
from passlib.context import CryptContext
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from firmwatch.core.auth import create_access_token
from firmwatch.core.config import get_settings
from firmwatch.domain.models import FirmFilter, format_firm_access
from firmwatch.infrastructure.db.models import UserModel, UserRole, UserStatus

logger = structlog.get_logger()

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


class AuthError(Exception):
    """Base exception for authentication errors."""


class UserExistsError(AuthError):
    """Raised when a username is already taken."""


class InvalidCredentialsError(AuthError):
    """Raised when login credentials are invalid."""


class UserInactiveError(AuthError):
    """Raised when user account is inactive or suspended."""


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash."""
    return pwd_context.verify(plain_password, hashed_password)


class AuthService:
    """Service for authentication operations."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_user(
        self,
        *,
        username: str,
        password: str,
        role: str = UserRole.USER.value,
        firm_access: FirmFilter = frozenset(),
        full_name: str | None = None,
    ) -> UserModel:
        """Create a user account (used by the provisioning script)."""
        try:
            user_role = UserRole(role)
        except ValueError as exc:
            raise AuthError(f"Invalid role: {role}") from exc

        user = UserModel(
            username=username.lower(),
            hashed_password=hash_password(password),
            full_name=full_name,
            role=user_role,
            firm_access=format_firm_access(firm_access),
            status=UserStatus.ACTIVE,
        )
        try:
            self.session.add(user)
            await self.session.commit()
        except IntegrityError as exc:
            await self.session.rollback()
            await logger.awarning("user_create_duplicate", username=username)
            raise UserExistsError(f"User {username} already exists") from exc

        await logger.ainfo("user_created", user_id=user.id, role=user_role.value)
        return user

    async def login(self, *, username: str, password: str) -> dict:
        """Authenticate with username and password; returns user data and a token."""
        await logger.ainfo("login_attempt", username=username)

        stmt = select(UserModel).where(UserModel.username == username.lower())
        user = (await self.session.execute(stmt)).scalar_one_or_none()

        if user is None or not verify_password(password, user.hashed_password):
            await logger.awarning("login_failed", username=username)
            raise InvalidCredentialsError("Invalid username or password")

        if user.status != UserStatus.ACTIVE:
            await logger.awarning("login_inactive_user", username=username, status=user.status.value)
            raise UserInactiveError(f"Account is {user.status.value}")

        now = datetime.now(UTC)
        await self.session.execute(
            update(UserModel).where(UserModel.id == user.id).values(last_login_at=now)
        )
        await self.session.commit()

        settings = get_settings()
        token = create_access_token(
            subject=user.id,
            roles=[user.role.value],
            username=user.username,
        )
        await logger.ainfo("login_success", user_id=user.id)

        return {
            "user": {
                "id": user.id,
                "username": user.username,
                "full_name": user.full_name,
                "role": user.role.value,
                "firm_access": user.firm_access,
            },
            "tokens": {
                "access_token": token,
                "token_type": "bearer",
                "expires_in": settings.access_token_ttl_seconds,
            },
        }

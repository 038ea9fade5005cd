from __future__ import annotations

from collections.abc import AsyncIterator

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from firmwatch.core.auth import Role, TokenError, create_access_token, decode_access_token
from firmwatch.core.errors import FirmwatchError, NotFoundError
from firmwatch.domain.models import Scope, User
from firmwatch.domain.services import scope as scope_service
from firmwatch.domain.services.audit import AuditRecorder
from firmwatch.domain.services.scan import ScanService
from firmwatch.infrastructure.db.session import get_session_factory
from firmwatch.infrastructure.repositories.entities import EntityRepository

bearer_scheme = HTTPBearer(auto_error=False)


def get_db_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory shared by request sessions, the audit recorder and scans."""
    return get_session_factory()


async def get_db_session(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_db_session_factory),  # noqa: B008
) -> AsyncIterator[AsyncSession]:
    """Provide an async SQLAlchemy session for API handlers."""
    async with session_factory() as session:
        yield session


def get_audit_recorder(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_db_session_factory),  # noqa: B008
) -> AuditRecorder:
    return AuditRecorder(session_factory)


def get_scan_service(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_db_session_factory),  # noqa: B008
    audit: AuditRecorder = Depends(get_audit_recorder),  # noqa: B008
) -> ScanService:
    return ScanService(session_factory, audit=audit)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),  # noqa: B008
    session: AsyncSession = Depends(get_db_session),  # noqa: B008
) -> User:
    """Resolve the authenticated user from a bearer token.

    The role and firm access come from the user row loaded for this request,
    never from the token claims.
    """
    if credentials is None:
        raise _unauthorized("Missing bearer token")

    try:
        payload = decode_access_token(credentials.credentials)
    except TokenError as exc:
        raise _unauthorized(str(exc)) from exc

    user_id = payload.get("sub")
    if not user_id:
        raise _unauthorized("Token missing subject")

    try:
        user = await EntityRepository(session).get_user(user_id)
    except NotFoundError as exc:
        raise _unauthorized("User no longer exists") from exc

    if user.status != "active":
        raise _unauthorized(f"Account is {user.status}")

    return user


def get_scope(user: User = Depends(get_current_user)) -> Scope:  # noqa: B008
    return scope_service.resolve(user)


def issue_smoke_token(user_id: str, *, role: Role, username: str | None = None) -> str:
    """Generate a signed token for manual smoke testing."""
    return create_access_token(user_id, roles=[role.value], username=username)


def http_error(exc: FirmwatchError) -> HTTPException:
    """Translate a domain error into the API error body ``{code, message}``."""
    return HTTPException(status_code=exc.status_code, detail=exc.to_dict())


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"code": "UNAUTHORIZED", "message": detail},
        headers={"WWW-Authenticate": "Bearer"},
    )

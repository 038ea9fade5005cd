"""Unit tests for authentication service."""

from __future__ import annotations

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from firmwatch.core.auth import decode_access_token
from firmwatch.domain.services.auth_service import (
    AuthError,
    AuthService,
    InvalidCredentialsError,
    UserExistsError,
    UserInactiveError,
    hash_password,
    verify_password,
)
from firmwatch.infrastructure.db.models import UserModel, UserStatus
from tests.utils import SeedData


class TestPasswordHashing:
    """Tests for password hashing functions."""

    def test_hash_password_returns_bcrypt_hash(self) -> None:
        hashed = hash_password("test_password_123")

        assert hashed.startswith("$2b$")
        assert len(hashed) == 60

    def test_verify_password(self) -> None:
        hashed = hash_password("TestPassword123")

        assert verify_password("TestPassword123", hashed) is True
        assert verify_password("testpassword123", hashed) is False


class TestLogin:
    async def test_login_returns_token_for_user_row(
        self, session_factory: async_sessionmaker[AsyncSession], seed: SeedData
    ) -> None:
        async with session_factory() as session:
            result = await AuthService(session).login(username="Manager-F1", password=seed.password)

        assert result["user"]["id"] == seed.manager_f1_id
        assert result["user"]["firm_access"] == seed.firm_1
        payload = decode_access_token(result["tokens"]["access_token"])
        assert payload["sub"] == seed.manager_f1_id
        assert payload["roles"] == ["manager"]

        async with session_factory() as session:
            user = await session.get(UserModel, seed.manager_f1_id)
        assert user.last_login_at is not None

    async def test_wrong_password(
        self, session_factory: async_sessionmaker[AsyncSession], seed: SeedData
    ) -> None:
        async with session_factory() as session:
            with pytest.raises(InvalidCredentialsError):
                await AuthService(session).login(username="admin", password="nope-nope")

    async def test_unknown_user(
        self, session_factory: async_sessionmaker[AsyncSession], seed: SeedData
    ) -> None:
        async with session_factory() as session:
            with pytest.raises(InvalidCredentialsError):
                await AuthService(session).login(username="ghost", password=seed.password)

    async def test_suspended_user(
        self, session_factory: async_sessionmaker[AsyncSession], seed: SeedData
    ) -> None:
        async with session_factory() as session:
            user = await session.get(UserModel, seed.viewer_id)
            user.status = UserStatus.SUSPENDED
            await session.commit()

        async with session_factory() as session:
            with pytest.raises(UserInactiveError):
                await AuthService(session).login(username="viewer-f1", password=seed.password)


class TestCreateUser:
    async def test_create_user_stores_firm_access(
        self, session_factory: async_sessionmaker[AsyncSession], seed: SeedData
    ) -> None:
        async with session_factory() as session:
            await AuthService(session).create_user(
                username="Carol",
                password="long-enough-pw",
                role="manager",
                firm_access=frozenset({seed.firm_2, seed.firm_1}),
            )

        async with session_factory() as session:
            user = await session.scalar(select(UserModel).where(UserModel.username == "carol"))
        assert user.firm_access == f"{seed.firm_1},{seed.firm_2}"
        assert verify_password("long-enough-pw", user.hashed_password)

    async def test_duplicate_username(
        self, session_factory: async_sessionmaker[AsyncSession], seed: SeedData
    ) -> None:
        async with session_factory() as session:
            with pytest.raises(UserExistsError):
                await AuthService(session).create_user(username="admin", password="whatever-123")

    async def test_invalid_role(
        self, session_factory: async_sessionmaker[AsyncSession], seed: SeedData
    ) -> None:
        async with session_factory() as session:
            with pytest.raises(AuthError):
                await AuthService(session).create_user(
                    username="dave", password="whatever-123", role="superuser"
                )

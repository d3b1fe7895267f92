from datetime import datetime, timedelta, timezone

import pytest
from hbg_authentication import AccessToken, AnonymousUser, User
from hbg_authentication.backend import TokenAuthenticationBackend
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession


@pytest.mark.asyncio
class TestTokenBackend:
    async def test_login_with_username_issues_token(
        self, db_session: AsyncSession, test_user: User, backend: TokenAuthenticationBackend
    ) -> None:
        result = await backend.login(
            db_session, username="testuser", email=None, password="password123"
        )

        assert result.success is True
        assert result.user.id == test_user.id
        token = result.extra["token"]
        assert isinstance(token, AccessToken)
        assert token.key
        assert token.user_id == test_user.id

        stored = await db_session.scalar(
            select(AccessToken).where(AccessToken.key == token.key)
        )
        assert stored is not None

    async def test_login_with_email(
        self, db_session: AsyncSession, test_user: User, backend: TokenAuthenticationBackend
    ) -> None:
        result = await backend.login(
            db_session, username=None, email="test@example.com", password="password123"
        )
        assert result.success is True
        assert result.user.id == test_user.id

    async def test_login_sets_last_login(
        self, db_session: AsyncSession, test_user: User, backend: TokenAuthenticationBackend
    ) -> None:
        assert test_user.last_login is None
        await backend.login(
            db_session, username="testuser", email=None, password="password123"
        )
        await db_session.refresh(test_user)
        assert test_user.last_login is not None

    async def test_login_wrong_password(
        self, db_session: AsyncSession, test_user: User, backend: TokenAuthenticationBackend
    ) -> None:  # noqa: ARG002
        result = await backend.login(
            db_session, username="testuser", email=None, password="wrong"
        )
        assert result.success is False
        assert isinstance(result.user, AnonymousUser)
        assert "Invalid credentials" in result.errors

    async def test_login_inactive_user(
        self,
        db_session: AsyncSession,
        inactive_test_user: User,  # noqa: ARG002
        backend: TokenAuthenticationBackend,
    ) -> None:
        result = await backend.login(
            db_session, username="inactive", email=None, password="password123"
        )
        assert result.success is False
        assert "Account is inactive" in result.errors

    async def test_authenticate_valid_token(
        self, db_session: AsyncSession, test_user: User, backend: TokenAuthenticationBackend
    ) -> None:
        login = await backend.login(
            db_session, username="testuser", email=None, password="password123"
        )
        result = await backend.authenticate(db_session, login.extra["token"].key)

        assert result.success is True
        assert result.user.id == test_user.id

    async def test_authenticate_unknown_token(
        self, db_session: AsyncSession, backend: TokenAuthenticationBackend
    ) -> None:
        result = await backend.authenticate(db_session, "does-not-exist")
        assert result.success is False
        assert result.message == "Invalid Token"
        assert not result.user

    async def test_authenticate_empty_token(
        self, db_session: AsyncSession, backend: TokenAuthenticationBackend
    ) -> None:
        result = await backend.authenticate(db_session, "")
        assert result.success is False
        assert result.message == "Missing Token"

    async def test_authenticate_expired_token(
        self, db_session: AsyncSession, test_user: User, backend: TokenAuthenticationBackend
    ) -> None:
        token = AccessToken(
            user_id=test_user.id,
            expires_at=datetime.now(timezone.utc) - timedelta(minutes=1),
        )
        db_session.add(token)
        await db_session.commit()

        result = await backend.authenticate(db_session, token.key)
        assert result.success is False
        assert result.message == "Token Expired"

    async def test_authenticate_inactive_user(
        self,
        db_session: AsyncSession,
        inactive_test_user: User,
        backend: TokenAuthenticationBackend,
    ) -> None:
        token = AccessToken(
            user_id=inactive_test_user.id,
            expires_at=datetime.now(timezone.utc) + timedelta(days=1),
        )
        db_session.add(token)
        await db_session.commit()

        result = await backend.authenticate(db_session, token.key)
        assert result.success is False
        assert result.message == "Account Inactive"

    async def test_logout_revokes_token(
        self, db_session: AsyncSession, test_user: User, backend: TokenAuthenticationBackend
    ) -> None:  # noqa: ARG002
        login = await backend.login(
            db_session, username="testuser", email=None, password="password123"
        )
        key = login.extra["token"].key

        assert await backend.logout(db_session, key) is True
        assert (await backend.authenticate(db_session, key)).success is False
        assert await backend.logout(db_session, key) is False

    async def test_custom_expiry(
        self, db_session: AsyncSession, test_user: User
    ) -> None:  # noqa: ARG002
        backend = TokenAuthenticationBackend(expire_seconds=60)
        login = await backend.login(
            db_session, username="testuser", email=None, password="password123"
        )
        token = login.extra["token"]
        expires_at = token.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        assert expires_at - datetime.now(timezone.utc) <= timedelta(seconds=60)

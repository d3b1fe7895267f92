import logging
from datetime import datetime, timedelta, timezone
from typing import Tuple

from hbg_core.config import hbg_settings
from sqlalchemy import Select, delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import AccessToken, User
from .schemas import AnonymousUser, AuthenticationResult

logger = logging.getLogger(__name__)


class TokenAuthenticationBackend:
    """
    Bearer-token authentication against the `hbg_access_tokens` table.

    Tokens are opaque keys issued by `login` and sent back either in the
    ``Authorization: Bearer`` header or, for hub connections, as the
    ``access_token`` query parameter.
    """

    def __init__(self, expire_seconds: int | None = None):
        self.expire_seconds = (
            expire_seconds
            if expire_seconds is not None
            else hbg_settings.ACCESS_TOKEN_EXPIRE_SECONDS
        )

    async def authenticate(self, db: AsyncSession, token: str) -> AuthenticationResult:
        """Resolve a token to its user.

        Returns:
            AuthenticationResult: Always returns a result object, never None.
        """
        if not token:
            return AuthenticationResult(
                success=False,
                user=AnonymousUser(),
                message="Missing Token",
                errors=["No access token supplied"],
            )
        stmt: Select[Tuple[AccessToken, User]] = (
            select(AccessToken, User)
            .join(User, AccessToken.user_id == User.id)
            .where(AccessToken.key == token)
        )
        row = (await db.execute(stmt)).first()
        if not row:
            return AuthenticationResult(
                success=False,
                user=AnonymousUser(),
                message="Invalid Token",
                errors=["Access token does not exist"],
            )
        access_token, user = row

        if not user.is_active:
            return AuthenticationResult(
                success=False,
                user=AnonymousUser(),
                message="Account Inactive",
                errors=["User account is disabled"],
            )
        if access_token.is_expired:
            return AuthenticationResult(
                success=False,
                user=AnonymousUser(),
                message="Token Expired",
                errors=["The access token has expired"],
            )

        return AuthenticationResult(
            success=True,
            user=user,
            message="Authenticated",
            extra={"token": access_token},
        )

    async def login(
        self,
        db: AsyncSession,
        *,
        username: str | None,
        email: str | None,
        password: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> AuthenticationResult:
        user = None
        conditions = []
        if username:
            conditions.append(User.username == username)
        if email:
            conditions.append(User.email == email)
        if password and conditions:
            stmt = select(User).where(or_(*conditions)).limit(1)
            candidate = await db.scalar(stmt)
            if candidate and candidate.check_password(password):
                user = candidate
        if not user:
            return AuthenticationResult(
                success=False,
                user=AnonymousUser(),
                message="Login Failed",
                errors=["Invalid credentials"],
            )
        if not user.is_active:
            return AuthenticationResult(
                success=False,
                user=AnonymousUser(),
                message="Login Failed",
                errors=["Account is inactive"],
            )

        now = datetime.now(timezone.utc)
        access_token = AccessToken(
            user_id=user.id,
            ip_address=ip_address,
            user_agent=user_agent,
            expires_at=now + timedelta(seconds=self.expire_seconds),
        )
        user.last_login = now
        db.add(access_token)
        await db.commit()
        await db.refresh(access_token)
        logger.info("User %s logged in", user.id)

        return AuthenticationResult(
            success=True,
            user=user,
            message="Login Successful",
            extra={"token": access_token},
        )

    async def logout(self, db: AsyncSession, token: str) -> bool:
        if not token:
            return False
        result = await db.execute(delete(AccessToken).where(AccessToken.key == token))
        await db.commit()
        return bool(getattr(result, "rowcount", 0))

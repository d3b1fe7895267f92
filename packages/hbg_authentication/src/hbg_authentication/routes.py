from fastapi import APIRouter, Depends, Request
from hbg_core.exceptions import AuthenticationFailedException
from hbg_db import get_db
from sqlalchemy.ext.asyncio import AsyncSession

from .backend import TokenAuthenticationBackend
from .dependencies import get_auth_backend, require_user
from .middleware import extract_token
from .models import User
from .schemas import LoginSchema, TokenResponse, UserSchema

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _client_info(request: Request) -> tuple[str | None, str | None]:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        ip_address = forwarded.split(",")[0].strip()
    else:
        ip_address = request.client.host if request.client else None
    return ip_address, request.headers.get("user-agent")


@router.post("/login", response_model=TokenResponse)
async def login(
    payload: LoginSchema,
    request: Request,
    db: AsyncSession = Depends(get_db),
    backend: TokenAuthenticationBackend = Depends(get_auth_backend),
) -> TokenResponse:
    ip_address, user_agent = _client_info(request)
    result = await backend.login(
        db,
        username=payload.username,
        email=payload.email,
        password=payload.password,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    if not result.success:
        raise AuthenticationFailedException(result.message)
    token = result.extra["token"]
    return TokenResponse(
        access_token=token.key,
        expires_at=token.expires_at,
        user=UserSchema.model_validate(result.user),
    )


@router.post("/logout")
async def logout(
    request: Request,
    _user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
    backend: TokenAuthenticationBackend = Depends(get_auth_backend),
) -> dict[str, bool]:
    success = await backend.logout(db, extract_token(request))
    return {"success": success}


@router.get("/me", response_model=UserSchema)
async def me(user: User = Depends(require_user)) -> User:
    return user

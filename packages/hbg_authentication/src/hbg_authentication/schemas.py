from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator

from .models import User


class AnonymousUser(BaseModel):
    """Stands in for `request.state.user` when no valid token was sent."""

    id: None = None
    username: str = ""
    email: None = None
    is_staff: bool = False

    @property
    def is_authenticated(self) -> bool:
        return False

    @property
    def is_active(self) -> bool:
        return False

    @property
    def subject_id(self) -> None:
        return None

    def __bool__(self) -> bool:
        return False


class AuthenticationResult(BaseModel):
    """
    Outcome of `TokenAuthenticationBackend.authenticate` or `login`.

    `extra["token"]` holds the `AccessToken` row on success.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    success: bool
    user: User | AnonymousUser
    message: str = ""
    errors: list[str] = Field(default_factory=list)
    extra: dict[str, Any] = Field(default_factory=dict)


class UserSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    email: EmailStr | None
    is_active: bool
    is_staff: bool
    last_login: datetime | None
    created_at: datetime


class LoginSchema(BaseModel):
    """Credentials for `POST /api/auth/login`; either identifier may be used."""

    username: str | None = None
    email: str | None = None
    password: str

    @model_validator(mode="after")
    def require_identifier(self) -> "LoginSchema":
        if not self.username and not self.email:
            msg = "Provide a username or an email"
            raise ValueError(msg)
        return self


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_at: datetime
    user: UserSchema

from types import SimpleNamespace

import pytest
from fastapi import Depends, FastAPI, Request
from fastapi.testclient import TestClient
from hbg_authentication import AnonymousUser, User
from hbg_authorization import (
    IsOwner,
    auth_required,
    check_object_permissions,
    permission_dependency,
)
from hbg_core.exceptions import HbgError
from starlette.requests import HTTPConnection
from starlette.responses import JSONResponse

# receiver rows keyed by id, as the owner check sees them
RECEIVERS = {1: SimpleNamespace(id=1, user_id="7"), 2: SimpleNamespace(id=2, user_id="8")}


def make_user(**overrides) -> User:
    fields = {
        "id": 7,
        "username": "alice",
        "email": "alice@example.com",
        "is_active": True,
        "is_staff": False,
    }
    fields.update(overrides)
    return User(**fields)


def make_conn(method: str = "GET") -> HTTPConnection:
    return HTTPConnection(
        {"type": "http", "method": method, "path": "/", "headers": [], "query_string": b""}
    )


@pytest.fixture
def user() -> User:
    return make_user()


def build_app(current_user) -> FastAPI:
    """App whose requests all run as `current_user`."""
    app = FastAPI()

    @app.middleware("http")
    async def inject_user(request: Request, call_next):
        request.state.user = current_user
        return await call_next(request)

    @app.exception_handler(HbgError)
    async def _hbg_error(_request: Request, exc: HbgError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    @app.get("/private")
    def private(user=Depends(auth_required)) -> dict:
        return {"username": user.username}

    owner_only = IsOwner()

    @app.get("/receivers/{receiver_id}")
    async def receiver(
        receiver_id: int, request: Request, user=Depends(permission_dependency([owner_only]))
    ) -> dict:
        row = RECEIVERS[receiver_id]
        await check_object_permissions(request, row, user, [owner_only])
        return {"id": row.id}

    return app


@pytest.fixture
def anonymous_client():
    with TestClient(build_app(AnonymousUser())) as c:
        yield c


@pytest.fixture
def user_client(user):
    with TestClient(build_app(user)) as c:
        yield c

import pytest
from hbg_authentication import User
from hbg_authentication.backend import TokenAuthenticationBackend
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession


async def _login(db_session: AsyncSession) -> str:
    result = await TokenAuthenticationBackend().login(
        db_session, username="testuser", email=None, password="password123"
    )
    return result.extra["token"].key


@pytest.mark.asyncio
class TestTokenMiddleware:
    async def test_request_without_token(self, middleware_client: AsyncClient) -> None:
        response = await middleware_client.get("/whoami")

        assert response.status_code == 200
        assert response.json() == {"username": None, "user_id": None}

    async def test_request_with_bearer_header(
        self, middleware_client: AsyncClient, test_user: User, db_session: AsyncSession
    ) -> None:
        key = await _login(db_session)

        response = await middleware_client.get(
            "/whoami", headers={"Authorization": f"Bearer {key}"}
        )
        assert response.json() == {"username": "testuser", "user_id": test_user.id}

    async def test_invalid_token_is_anonymous(
        self, middleware_client: AsyncClient, test_user: User  # noqa: ARG002
    ) -> None:
        response = await middleware_client.get(
            "/whoami", headers={"Authorization": "Bearer nope"}
        )
        assert response.json()["user_id"] is None

    async def test_query_token_accepted_for_hub_paths(
        self, middleware_client: AsyncClient, test_user: User, db_session: AsyncSession
    ) -> None:
        key = await _login(db_session)

        response = await middleware_client.get(f"/hub/whoami?access_token={key}")
        assert response.json() == {"user_id": test_user.id}

    async def test_query_token_ignored_for_api_paths(
        self, middleware_client: AsyncClient, test_user: User, db_session: AsyncSession  # noqa: ARG002
    ) -> None:
        key = await _login(db_session)

        response = await middleware_client.get(f"/whoami?access_token={key}")
        assert response.json()["user_id"] is None

    async def test_protected_route_requires_user(
        self, middleware_client: AsyncClient
    ) -> None:
        response = await middleware_client.get("/protected")
        assert response.status_code == 401
        assert response.json() == {"detail": "Unauthorized"}

    async def test_protected_route_with_token(
        self, middleware_client: AsyncClient, test_user: User, db_session: AsyncSession
    ) -> None:
        key = await _login(db_session)

        response = await middleware_client.get(
            "/protected", headers={"Authorization": f"Bearer {key}"}
        )
        assert response.status_code == 200
        assert response.json() == {"subject_id": str(test_user.id)}

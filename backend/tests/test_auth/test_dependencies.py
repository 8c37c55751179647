"""Tests for auth dependencies: bearer token edge cases on a protected route."""

import uuid
from datetime import timedelta

import pytest
from httpx import AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession

from hostcal.auth.jwt import create_access_token
from hostcal.config import settings
from hostcal.models.user import User

pytestmark = pytest.mark.asyncio(loop_scope="session")

_PROTECTED = "/api/v1/calendar/upcoming"


class TestGetCurrentUser:
    """Exercise get_current_host and get_active_host through a calendar endpoint."""

    async def test_missing_token_rejected(self, client: AsyncClient):
        response = await client.get(_PROTECTED)
        assert response.status_code in (401, 403)

    async def test_expired_token_rejected(self, client: AsyncClient, test_user: User):
        token = create_access_token(test_user.id, expires_delta=timedelta(seconds=-1))
        response = await client.get(_PROTECTED, headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    async def test_invalid_token_format(self, client: AsyncClient):
        response = await client.get(_PROTECTED, headers={"Authorization": "Bearer not.a.valid.jwt"})
        assert response.status_code == 401

    async def test_refresh_token_type_rejected(self, client: AsyncClient, test_user: User):
        token = jwt.encode(
            {"sub": str(test_user.id), "type": "refresh"},
            settings.jwt_secret_key,
            algorithm=settings.jwt_algorithm,
        )
        response = await client.get(_PROTECTED, headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    async def test_non_uuid_subject_rejected(self, client: AsyncClient):
        token = create_access_token("not-a-uuid")
        response = await client.get(_PROTECTED, headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    async def test_nonexistent_user_rejected(self, client: AsyncClient):
        token = create_access_token(uuid.uuid4())
        response = await client.get(_PROTECTED, headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    async def test_inactive_user_forbidden(self, client: AsyncClient, db_session: AsyncSession):
        user = User(email=f"inactive-{uuid.uuid4().hex[:8]}@test.com", name="Inactive", is_active=False)
        db_session.add(user)
        await db_session.flush()

        token = create_access_token(user.id)
        response = await client.get(_PROTECTED, headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 403

    async def test_valid_token_accepted(self, client: AsyncClient, auth_headers: dict):
        response = await client.get(_PROTECTED, headers=auth_headers)
        assert response.status_code == 200

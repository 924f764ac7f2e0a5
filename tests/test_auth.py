import pytest
from httpx import AsyncClient

from app.auth.security import create_access_token, decode_access_token, issue_token
from app.core.enums import UserRole

STATUS_URL = "/api/v1/notifications/whatsapp/status"


def test_issued_token_claims() -> None:
    claims = decode_access_token(issue_token("admin-1", UserRole.ADMIN, name="Principal"))
    assert claims["sub"] == "admin-1"
    assert claims["role"] == "admin"
    assert claims["name"] == "Principal"
    assert "email" not in claims
    assert "exp" in claims


@pytest.mark.asyncio
async def test_missing_token_is_unauthorized(client: AsyncClient) -> None:
    response = await client.get(STATUS_URL)
    assert response.status_code == 401
    assert response.headers["WWW-Authenticate"] == "Bearer"


@pytest.mark.asyncio
async def test_invalid_token_is_unauthorized(client: AsyncClient) -> None:
    response = await client.get(STATUS_URL, headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_expired_token_is_unauthorized(client: AsyncClient) -> None:
    token = create_access_token(subject={"sub": "teacher-1", "role": "teacher"}, expires_minutes=-1)
    response = await client.get(STATUS_URL, headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_unknown_role_is_unauthorized(client: AsyncClient) -> None:
    token = create_access_token(subject={"sub": "someone", "role": "janitor"})
    response = await client.get(STATUS_URL, headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_token_without_subject_is_unauthorized(client: AsyncClient) -> None:
    token = create_access_token(subject={"role": "admin"})
    response = await client.get(STATUS_URL, headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_teacher_cannot_promote(client: AsyncClient, teacher_headers) -> None:
    response = await client.post("/api/v1/promotions/BCA", headers=teacher_headers)
    assert response.status_code == 403
    assert response.json()["detail"] == "Only an admin can perform this action"

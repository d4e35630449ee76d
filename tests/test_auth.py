from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from httpx import AsyncClient

from batchqc.auth.dependencies import Principal, has_permission
from batchqc.auth.jwt import AuthError, create_access_token, decode_token
from batchqc.models.permissions import RolePermission
from batchqc.services.record_service import RecordService


def _permission_row(row: RolePermission | None) -> MagicMock:
    result = MagicMock()
    result.scalar_one_or_none.return_value = row
    return result


@pytest.mark.asyncio
async def test_missing_jwt_rejected_on_protected_endpoint(auth_client: AsyncClient) -> None:
    response = await auth_client.get("/api/v1/records")
    assert response.status_code == 401
    assert response.json()["detail"]["error"] == "auth_required"


@pytest.mark.asyncio
async def test_catalog_is_public(auth_client: AsyncClient) -> None:
    response = await auth_client.get("/api/v1/catalog")
    assert response.status_code == 200


def test_jwt_create_decode_roundtrip() -> None:
    token = create_access_token("operator-1", role="preparador", name="Ana Lopez", branch="Matriz", expires_minutes=5)
    payload = decode_token(token)
    assert payload["sub"] == "operator-1"
    assert payload["role"] == "preparador"
    assert payload["branch"] == "Matriz"
    assert payload["typ"] == "access"


def test_decode_invalid_token_raises_auth_error() -> None:
    with pytest.raises(AuthError):
        decode_token("invalid.token.payload")


def test_expired_token_raises_auth_error() -> None:
    token = create_access_token("operator-1", role="preparador", expires_minutes=-1)
    with pytest.raises(AuthError) as excinfo:
        decode_token(token)
    assert excinfo.value.code == "token_expired"


@pytest.mark.asyncio
async def test_role_without_permission_row_is_forbidden(
    auth_client: AsyncClient,
    access_token: str,
    fake_db_session,
) -> None:
    fake_db_session.execute.return_value = _permission_row(None)

    response = await auth_client.get("/api/v1/records", headers={"Authorization": f"Bearer {access_token}"})
    assert response.status_code == 403
    assert response.json()["detail"]["error"] == "forbidden"


@pytest.mark.asyncio
async def test_role_with_view_permission_can_list(
    auth_client: AsyncClient,
    access_token: str,
    fake_db_session,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    fake_db_session.execute.return_value = _permission_row(
        RolePermission(role="preparador", module_key="bitacora", can_view=True, can_create=True)
    )

    async def fake_list(self: RecordService, filters, limit=None):
        return []

    monkeypatch.setattr(RecordService, "list_records", fake_list)

    headers = {"Authorization": f"Bearer {access_token}"}
    listing = await auth_client.get("/api/v1/records", headers=headers)
    assert listing.status_code == 200
    assert listing.json() == {"items": [], "count": 0}

    deletion = await auth_client.delete(
        "/api/v1/records/00000000-0000-0000-0000-000000000001", headers=headers
    )
    assert deletion.status_code == 403


@pytest.mark.asyncio
async def test_admin_bypasses_permission_table(fake_db_session) -> None:
    admin = Principal(subject="admin-1", role="admin")
    assert await has_permission(fake_db_session, admin, "delete")
    fake_db_session.execute.assert_not_awaited()

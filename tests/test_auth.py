"""Tests for login, refresh, current user and password change."""

from datetime import timedelta

import pytest
from httpx import AsyncClient

from clinihub.core.security import create_jwt, decode_jwt


@pytest.mark.asyncio
async def test_login_token_carries_numeric_tenant(client: AsyncClient, provision):
    tenant = await provision("auth-claims")
    claims = decode_jwt(tenant["token"])

    assert claims["tenantId"] == tenant["tenant_id"]
    assert isinstance(claims["tenantId"], int)
    assert claims["schema"] == f"tenant_{tenant['tenant_id']}"
    assert claims["role"] == "admin"
    assert claims["type"] == "tenant"
    assert claims["timezone"] == "America/Sao_Paulo"
    assert claims["locale"] == "pt-BR"
    assert claims["allowedApps"] == ["tq"]
    assert claims["userType"]["slug"] == "admin"
    assert claims["userType"]["hierarchyLevel"] == 100
    assert claims["platformRole"] is None
    assert claims["exp"] > claims["iat"]


@pytest.mark.asyncio
async def test_login_response_shape(client: AsyncClient, provision):
    tenant = await provision("auth-shape")
    resp = await client.post(
        "/v1/auth/login",
        json={"email": "admin@auth-shape.com", "password": "Testpass123"},
        headers={"x-tenant-id": str(tenant["tenant_id"])},
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["tokenType"] == "bearer"
    assert data["user"]["email"] == "admin@auth-shape.com"
    assert data["tenant"]["schemaName"] == f"tenant_{tenant['tenant_id']}"
    assert data["allowedApps"] == ["tq"]


@pytest.mark.asyncio
async def test_login_wrong_password(client: AsyncClient, provision):
    tenant = await provision("auth-bad-pw")
    resp = await client.post(
        "/v1/auth/login",
        json={"email": "admin@auth-bad-pw.com", "password": "Wrongpass123"},
        headers={"x-tenant-id": str(tenant["tenant_id"])},
    )
    assert resp.status_code == 401
    assert resp.json()["code"] == "INVALID_CREDENTIALS"


@pytest.mark.asyncio
async def test_login_is_scoped_to_header_tenant(client: AsyncClient, provision):
    await provision("auth-scope-a")
    b = await provision("auth-scope-b")
    resp = await client.post(
        "/v1/auth/login",
        json={"email": "admin@auth-scope-a.com", "password": "Testpass123"},
        headers={"x-tenant-id": str(b["tenant_id"])},
    )
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_login_disabled_user(client: AsyncClient, provision, add_user):
    tenant = await provision("auth-disabled")
    user = await add_user(tenant, "staff@auth-disabled.com")
    resp = await client.delete(f"/v1/users/{user['id']}", headers=tenant["headers"])
    assert resp.status_code == 204

    resp = await client.post(
        "/v1/auth/login",
        json={"email": "staff@auth-disabled.com", "password": "Testpass123"},
        headers={"x-tenant-id": str(tenant["tenant_id"])},
    )
    assert resp.status_code == 403
    assert resp.json()["code"] == "ACCOUNT_DISABLED"


@pytest.mark.asyncio
async def test_me(client: AsyncClient, provision):
    tenant = await provision("auth-me")
    resp = await client.get("/v1/auth/me", headers=tenant["headers"])
    assert resp.status_code == 200
    data = resp.json()
    assert data["user"]["id"] == tenant["admin_id"]
    assert data["userType"]["slug"] == "admin"
    assert data["tenant"]["locale"] == "pt-BR"


@pytest.mark.asyncio
async def test_me_without_token(client: AsyncClient, provision):
    tenant = await provision("auth-me-anon")
    resp = await client.get("/v1/auth/me", headers={"x-tenant-id": str(tenant["tenant_id"])})
    assert resp.status_code == 401
    assert resp.json()["code"] == "INVALID_TOKEN"


@pytest.mark.asyncio
async def test_refresh_reissues_token(client: AsyncClient, provision):
    tenant = await provision("auth-refresh")
    resp = await client.post("/v1/auth/refresh", headers=tenant["headers"])
    assert resp.status_code == 200
    claims = decode_jwt(resp.json()["accessToken"])
    assert claims["tenantId"] == tenant["tenant_id"]
    assert claims["userId"] == tenant["admin_id"]
    assert claims["allowedApps"] == ["tq"]


@pytest.mark.asyncio
async def test_refresh_rejects_garbage(client: AsyncClient, provision):
    tenant = await provision("auth-refresh-bad")
    headers = {"x-tenant-id": str(tenant["tenant_id"]), "Authorization": "Bearer not.a.jwt"}
    resp = await client.post("/v1/auth/refresh", headers=headers)
    assert resp.status_code == 401
    assert resp.json()["code"] == "INVALID_TOKEN"


@pytest.mark.asyncio
async def test_expired_token_rejected(client: AsyncClient, provision):
    tenant = await provision("auth-expired")
    claims = decode_jwt(tenant["token"])
    for key in ("iat", "exp"):
        claims.pop(key)
    expired = create_jwt(claims, expires_delta=timedelta(minutes=-5))

    headers = {"x-tenant-id": str(tenant["tenant_id"]), "Authorization": f"Bearer {expired}"}
    resp = await client.post("/v1/auth/refresh", headers=headers)
    assert resp.status_code == 401
    assert resp.json()["code"] == "TOKEN_EXPIRED"

    resp = await client.get("/v1/entitlements", headers=headers)
    assert resp.status_code == 401
    assert resp.json()["code"] == "TOKEN_EXPIRED"


@pytest.mark.asyncio
async def test_change_password(client: AsyncClient, provision):
    tenant = await provision("auth-chpw")
    url = "/v1/auth/change-password"

    resp = await client.post(url, json={"currentPassword": "Nope12345", "newPassword": "Newpass456"},
                             headers=tenant["headers"])
    assert resp.json()["code"] == "INVALID_CREDENTIALS"

    resp = await client.post(url, json={"currentPassword": "Testpass123", "newPassword": "short"},
                             headers=tenant["headers"])
    assert resp.status_code == 400
    body = resp.json()
    assert body["code"] == "PASSWORD_POLICY_VIOLATION"
    assert len(body["errors"]) >= 2

    resp = await client.post(url, json={"currentPassword": "Testpass123", "newPassword": "Testpass123"},
                             headers=tenant["headers"])
    assert resp.json()["code"] == "PASSWORD_REUSE"

    resp = await client.post(url, json={"currentPassword": "Testpass123", "newPassword": "Newpass456"},
                             headers=tenant["headers"])
    assert resp.status_code == 204

    resp = await client.post(
        "/v1/auth/login",
        json={"email": "admin@auth-chpw.com", "password": "Newpass456"},
        headers={"x-tenant-id": str(tenant["tenant_id"])},
    )
    assert resp.status_code == 200

"""Tests for tenant-admin user management."""

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_create_and_list_users(client: AsyncClient, provision, add_user):
    tenant = await provision("users-crud")
    created = await add_user(tenant, "Nurse@Users-Crud.com", role="manager")
    assert created["email"] == "nurse@users-crud.com"
    assert created["role"] == "manager"
    assert created["tenantId"] == tenant["tenant_id"]
    assert created["isActive"] is True

    resp = await client.get("/v1/users", headers=tenant["headers"])
    assert resp.status_code == 200
    emails = [u["email"] for u in resp.json()]
    assert emails == sorted(emails)
    assert "nurse@users-crud.com" in emails
    assert "admin@users-crud.com" in emails


@pytest.mark.asyncio
async def test_duplicate_email_conflict(client: AsyncClient, provision, add_user):
    tenant = await provision("users-dup")
    await add_user(tenant, "dup@users-dup.com")
    resp = await client.post(
        "/v1/users",
        json={"email": "DUP@users-dup.com", "password": "Testpass123"},
        headers=tenant["headers"],
    )
    assert resp.status_code == 409
    assert resp.json()["code"] == "CONFLICT"


@pytest.mark.asyncio
async def test_same_email_in_two_tenants(provision, add_user):
    first = await provision("users-one")
    second = await provision("users-two")
    await add_user(first, "shared@example.com")
    await add_user(second, "shared@example.com")


@pytest.mark.asyncio
async def test_weak_password_rejected(client: AsyncClient, provision):
    tenant = await provision("users-weak")
    resp = await client.post(
        "/v1/users", json={"email": "weak@users-weak.com", "password": "abc"}, headers=tenant["headers"],
    )
    assert resp.status_code == 400
    assert resp.json()["code"] == "PASSWORD_POLICY_VIOLATION"


@pytest.mark.asyncio
async def test_unknown_user_type(client: AsyncClient, provision):
    tenant = await provision("users-type")
    resp = await client.post(
        "/v1/users",
        json={"email": "x@users-type.com", "password": "Testpass123", "userType": "janitor"},
        headers=tenant["headers"],
    )
    assert resp.status_code == 400
    assert resp.json()["field"] == "userType"


@pytest.mark.asyncio
async def test_update_and_deactivate(client: AsyncClient, provision, add_user):
    tenant = await provision("users-update")
    user = await add_user(tenant, "staff@users-update.com")

    resp = await client.patch(
        f"/v1/users/{user['id']}", json={"firstName": "Ana", "role": "manager"}, headers=tenant["headers"],
    )
    assert resp.status_code == 200
    assert resp.json()["firstName"] == "Ana"
    assert resp.json()["role"] == "manager"

    resp = await client.delete(f"/v1/users/{user['id']}", headers=tenant["headers"])
    assert resp.status_code == 204
    resp = await client.get(f"/v1/users/{user['id']}", headers=tenant["headers"])
    assert resp.json()["isActive"] is False

    # Deactivated users cannot log in
    resp = await client.post(
        "/v1/auth/login",
        json={"email": "staff@users-update.com", "password": "Testpass123"},
        headers={"x-tenant-id": str(tenant["tenant_id"])},
    )
    assert resp.status_code == 403
    assert resp.json()["code"] == "ACCOUNT_DISABLED"


@pytest.mark.asyncio
async def test_admin_cannot_deactivate_self(client: AsyncClient, provision):
    tenant = await provision("users-self")
    resp = await client.delete(f"/v1/users/{tenant['admin_id']}", headers=tenant["headers"])
    assert resp.status_code == 400
    resp = await client.patch(
        f"/v1/users/{tenant['admin_id']}", json={"isActive": False}, headers=tenant["headers"],
    )
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_users_are_tenant_scoped(client: AsyncClient, provision, add_user):
    owner = await provision("users-owner")
    other = await provision("users-other")
    user = await add_user(owner, "private@users-owner.com")
    resp = await client.get(f"/v1/users/{user['id']}", headers=other["headers"])
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_non_admin_forbidden(client: AsyncClient, provision, add_user):
    tenant = await provision("users-nonadmin")
    await add_user(tenant, "ops@users-nonadmin.com")
    login = await client.post(
        "/v1/auth/login",
        json={"email": "ops@users-nonadmin.com", "password": "Testpass123"},
        headers={"x-tenant-id": str(tenant["tenant_id"])},
    )
    headers = {"x-tenant-id": str(tenant["tenant_id"]), "Authorization": f"Bearer {login.json()['accessToken']}"}
    resp = await client.get("/v1/users", headers=headers)
    assert resp.status_code == 403
    assert resp.json()["code"] == "INSUFFICIENT_ROLE"


async def _login(client: AsyncClient, tenant: dict, email: str) -> dict:
    resp = await client.post(
        "/v1/auth/login",
        json={"email": email, "password": "Testpass123"},
        headers={"x-tenant-id": str(tenant["tenant_id"])},
    )
    assert resp.status_code == 200, resp.text
    return {"x-tenant-id": str(tenant["tenant_id"]), "Authorization": f"Bearer {resp.json()['accessToken']}"}


@pytest.mark.asyncio
async def test_deactivated_user_token_rejected(client: AsyncClient, provision, add_user):
    tenant = await provision("users-gone")
    user = await add_user(tenant, "gone@users-gone.com", role="admin")
    headers = await _login(client, tenant, "gone@users-gone.com")
    assert (await client.get("/v1/users", headers=headers)).status_code == 200

    resp = await client.delete(f"/v1/users/{user['id']}", headers=tenant["headers"])
    assert resp.status_code == 204

    for path in ("/v1/entitlements", "/v1/users", "/v1/configurations/transcription-usage", "/v1/auth/me"):
        resp = await client.get(path, headers=headers)
        assert resp.status_code == 403, path
        assert resp.json()["code"] == "ACCOUNT_DISABLED"


@pytest.mark.asyncio
async def test_demoted_admin_loses_admin_routes(client: AsyncClient, provision, add_user):
    tenant = await provision("users-demoted")
    user = await add_user(tenant, "former@users-demoted.com", role="admin")
    headers = await _login(client, tenant, "former@users-demoted.com")

    resp = await client.patch(
        f"/v1/users/{user['id']}", json={"role": "operations"}, headers=tenant["headers"],
    )
    assert resp.status_code == 200

    resp = await client.get("/v1/users", headers=headers)
    assert resp.status_code == 403
    assert resp.json()["code"] == "INSUFFICIENT_ROLE"
    # Still a valid, active user for non-admin routes
    assert (await client.get("/v1/entitlements", headers=headers)).status_code == 200

"""Tests for internal-admin tenant, license, catalog and API key management."""

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_tenant_token_cannot_use_platform_routes(client: AsyncClient, provision):
    tenant = await provision("plat-denied")
    resp = await client.get("/v1/platform/tenants", headers={"Authorization": f"Bearer {tenant['token']}"})
    assert resp.status_code == 403
    assert resp.json()["code"] == "INSUFFICIENT_ROLE"

    resp = await client.get("/v1/platform/tenants")
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_platform_login_rejects_regular_admin(client: AsyncClient, provision):
    await provision("plat-regular")
    resp = await client.post(
        "/v1/platform-auth/login", json={"email": "admin@plat-regular.com", "password": "Testpass123"},
    )
    assert resp.status_code == 401
    assert resp.json()["code"] == "INVALID_CREDENTIALS"


@pytest.mark.asyncio
async def test_tenant_crud(client: AsyncClient, platform_headers: dict):
    resp = await client.post(
        "/v1/platform/tenants",
        json={"name": "Crud Clinic", "subdomain": "Plat-Crud", "timezone": "America/Manaus"},
        headers=platform_headers,
    )
    assert resp.status_code == 201
    tenant = resp.json()
    assert tenant["subdomain"] == "plat-crud"
    assert tenant["status"] == "active"
    assert tenant["schemaName"] == f"tenant_{tenant['id']}"

    resp = await client.post(
        "/v1/platform/tenants", json={"name": "Again", "subdomain": "plat-crud"}, headers=platform_headers,
    )
    assert resp.status_code == 409

    resp = await client.get(f"/v1/platform/tenants/{tenant['id']}", headers=platform_headers)
    assert resp.json()["name"] == "Crud Clinic"

    resp = await client.patch(
        f"/v1/platform/tenants/{tenant['id']}", json={"status": "suspended"}, headers=platform_headers,
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "suspended"

    # Suspended tenants no longer resolve from the header
    resp = await client.post(
        "/v1/auth/login",
        json={"email": "nobody@plat-crud.com", "password": "Testpass123"},
        headers={"x-tenant-id": str(tenant["id"])},
    )
    assert resp.status_code == 404
    assert resp.json()["code"] == "TENANT_NOT_FOUND"

    resp = await client.get("/v1/platform/tenants/999999", headers=platform_headers)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_tenant_users_and_licenses(client: AsyncClient, platform_headers: dict):
    tenant = (await client.post(
        "/v1/platform/tenants", json={"name": "Lic", "subdomain": "plat-lic"}, headers=platform_headers,
    )).json()
    base = f"/v1/platform/tenants/{tenant['id']}"

    resp = await client.post(
        f"{base}/users",
        json={"email": "boss@plat-lic.com", "password": "Testpass123", "role": "admin"},
        headers=platform_headers,
    )
    assert resp.status_code == 201
    admin = resp.json()

    resp = await client.post(
        f"{base}/licenses", json={"applicationSlug": "tq", "seatsPurchased": 2}, headers=platform_headers,
    )
    assert resp.status_code == 201
    listing = resp.json()
    assert listing["summary"] == {"apps": 1, "seatsUsed": 0}
    license_ = listing["licenses"][0]
    assert license_["slug"] == "tq"
    assert license_["seatsPurchased"] == 2
    app_id = license_["applicationId"]

    # Admin takes a seat through the tenant API
    login = await client.post(
        "/v1/auth/login",
        json={"email": "boss@plat-lic.com", "password": "Testpass123"},
        headers={"x-tenant-id": "plat-lic"},
    )
    headers = {"x-tenant-id": "plat-lic", "Authorization": f"Bearer {login.json()['accessToken']}"}
    resp = await client.post(
        f"/v1/entitlements/{app_id}/grants", json={"userId": admin["id"]}, headers=headers,
    )
    assert resp.status_code == 201

    resp = await client.get(f"{base}/licenses", headers=platform_headers)
    assert resp.json()["summary"]["seatsUsed"] == 1
    assert resp.json()["licenses"][0]["users"][0]["email"] == "boss@plat-lic.com"

    resp = await client.patch(
        f"{base}/licenses/{app_id}", json={"seatsPurchased": 0}, headers=platform_headers,
    )
    assert resp.status_code == 409
    assert resp.json()["code"] == "SEAT_LIMIT_BELOW_USAGE"

    resp = await client.patch(
        f"{base}/licenses/{app_id}", json={"status": "expired"}, headers=platform_headers,
    )
    assert resp.status_code == 400

    resp = await client.patch(
        f"{base}/licenses/{app_id}", json={"seatsPurchased": 4, "status": "suspended"}, headers=platform_headers,
    )
    assert resp.status_code == 200
    license_ = resp.json()["licenses"][0]
    assert license_["seatsPurchased"] == 4
    assert license_["status"] == "suspended"

    resp = await client.get(f"{base}/users", headers=platform_headers)
    assert [u["email"] for u in resp.json()] == ["boss@plat-lic.com"]


@pytest.mark.asyncio
async def test_suspended_license_blocks_app(client: AsyncClient, provision, platform_headers: dict):
    tenant = await provision("plat-suspend")
    apps = (await client.get("/v1/entitlements", headers=tenant["headers"])).json()
    app_id = apps["licenses"][0]["applicationId"]

    resp = await client.patch(
        f"/v1/platform/tenants/{tenant['tenant_id']}/licenses/{app_id}",
        json={"status": "suspended"},
        headers=platform_headers,
    )
    assert resp.status_code == 200

    resp = await client.post("/v1/tq/transcriptions/quota-check", headers=tenant["headers"])
    assert resp.status_code == 403
    assert resp.json()["code"] == "LICENSE_NOT_ACTIVE"


@pytest.mark.asyncio
async def test_plan_catalog_and_assignment(client: AsyncClient, provision, platform_headers: dict):
    resp = await client.get("/v1/platform/transcription-plans", headers=platform_headers)
    slugs = [p["slug"] for p in resp.json()]
    assert {"starter", "basic", "vip"} <= set(slugs)

    resp = await client.post(
        "/v1/platform/transcription-plans",
        json={"slug": "clinic-plus", "name": "Clinic Plus", "monthlyMinutesLimit": 500},
        headers=platform_headers,
    )
    assert resp.status_code == 201
    plan = resp.json()
    assert plan["sttModel"] == "nova-3"

    resp = await client.post(
        "/v1/platform/transcription-plans",
        json={"slug": "clinic-plus", "name": "Dup", "monthlyMinutesLimit": 1},
        headers=platform_headers,
    )
    assert resp.status_code == 409

    tenant = await provision("plat-assign")
    config_url = f"/v1/platform/tenants/{tenant['tenant_id']}/transcription-config"
    resp = await client.put(config_url, json={"planId": plan["id"]}, headers=platform_headers)
    assert resp.status_code == 200
    assert resp.json()["plan"]["slug"] == "clinic-plus"
    assert resp.json()["effectiveMonthlyLimit"] == 500

    usage_url = "/v1/configurations/transcription-usage"
    assert (await client.get(usage_url, headers=tenant["headers"])).json()["current"]["limit"] == 500

    # Editing the plan moves every tenant on it
    resp = await client.patch(
        f"/v1/platform/transcription-plans/{plan['id']}",
        json={"monthlyMinutesLimit": 750},
        headers=platform_headers,
    )
    assert resp.status_code == 200
    assert (await client.get(usage_url, headers=tenant["headers"])).json()["current"]["limit"] == 750

    resp = await client.get(config_url, headers=platform_headers)
    assert resp.json()["effectiveMonthlyLimit"] == 750


@pytest.mark.asyncio
async def test_assignment_honours_plan_rules(client: AsyncClient, provision, platform_headers: dict, session):
    tenant = await provision("plat-rules")
    plans = (await client.get("/v1/platform/transcription-plans", headers=platform_headers)).json()
    basic = next(p for p in plans if p["slug"] == "basic")
    resp = await client.put(
        f"/v1/platform/tenants/{tenant['tenant_id']}/transcription-config",
        json={"planId": basic["id"], "customMonthlyLimit": 9000},
        headers=platform_headers,
    )
    assert resp.status_code == 403
    assert resp.json()["code"] == "CUSTOM_LIMITS_NOT_ALLOWED"


@pytest.mark.asyncio
async def test_assignment_requires_tq_license(client: AsyncClient, platform_headers: dict):
    tenant = (await client.post(
        "/v1/platform/tenants", json={"name": "No Lic", "subdomain": "plat-nolic"}, headers=platform_headers,
    )).json()
    plans = (await client.get("/v1/platform/transcription-plans", headers=platform_headers)).json()
    resp = await client.put(
        f"/v1/platform/tenants/{tenant['id']}/transcription-config",
        json={"planId": plans[0]["id"]},
        headers=platform_headers,
    )
    assert resp.status_code == 404
    assert resp.json()["code"] == "LICENSE_NOT_FOUND"

    resp = await client.get(
        f"/v1/platform/tenants/{tenant['id']}/transcription-config", headers=platform_headers,
    )
    assert resp.json()["code"] == "TRANSCRIPTION_NOT_CONFIGURED"


@pytest.mark.asyncio
async def test_seat_pricing(client: AsyncClient, platform_headers: dict):
    apps = (await client.get("/v1/platform/applications", headers=platform_headers)).json()
    hub = next(a for a in apps if a["slug"] == "hub")
    url = f"/v1/platform/applications/{hub['id']}/pricing"

    resp = await client.post(url, json={"userType": "manager", "price": "12.50"}, headers=platform_headers)
    assert resp.status_code == 201
    created = resp.json()
    assert created["isActive"] is True

    rows = (await client.get(url, headers=platform_headers)).json()
    manager_rows = [p for p in rows if p["userTypeId"] == created["userTypeId"]]
    assert len(manager_rows) >= 2
    active = [p for p in manager_rows if p["isActive"]]
    assert [p["id"] for p in active] == [created["id"]]
    assert float(active[0]["price"]) == 12.5

    resp = await client.post(url, json={"userType": "manager", "price": "-1"}, headers=platform_headers)
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_api_key_lifecycle(client: AsyncClient, platform_headers: dict):
    resp = await client.post("/v1/platform/api-keys", json={"name": "crm"}, headers=platform_headers)
    assert resp.status_code == 201
    created = resp.json()
    raw = created["rawKey"]
    assert raw.startswith("chub_")
    assert created["keyPrefix"] == raw[:12]

    listed = (await client.get("/v1/platform/api-keys", headers=platform_headers)).json()
    assert any(k["id"] == created["id"] for k in listed)
    assert all("rawKey" not in k for k in listed)

    body = {"tenantName": "Key Clinic", "subdomain": "plat-key", "adminEmail": "a@plat-key.com"}
    resp = await client.post("/v1/provisioning/signup", json=body, headers={"x-api-key": raw})
    assert resp.status_code == 201

    resp = await client.delete(f"/v1/platform/api-keys/{created['id']}", headers=platform_headers)
    assert resp.status_code == 204
    body["subdomain"] = "plat-key-2"
    resp = await client.post("/v1/provisioning/signup", json=body, headers={"x-api-key": raw})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_updates_reject_negative_limits(client: AsyncClient, provision, platform_headers: dict):
    plans = (await client.get("/v1/platform/transcription-plans", headers=platform_headers)).json()
    starter = next(p for p in plans if p["slug"] == "starter")
    resp = await client.patch(
        f"/v1/platform/transcription-plans/{starter['id']}",
        json={"monthlyMinutesLimit": -10},
        headers=platform_headers,
    )
    assert resp.status_code == 400
    assert resp.json()["code"] == "VALIDATION_ERROR"
    assert resp.json()["field"] == "monthlyMinutesLimit"

    tenant = await provision("plat-negative")
    apps = (await client.get("/v1/entitlements", headers=tenant["headers"])).json()
    app_id = apps["licenses"][0]["applicationId"]
    resp = await client.patch(
        f"/v1/platform/tenants/{tenant['tenant_id']}/licenses/{app_id}",
        json={"seatsPurchased": -1},
        headers=platform_headers,
    )
    assert resp.status_code == 400
    assert resp.json()["code"] == "VALIDATION_ERROR"
    assert resp.json()["field"] == "seatsPurchased"


@pytest.mark.asyncio
async def test_tenant_timezone_must_be_known(client: AsyncClient, platform_headers: dict):
    resp = await client.post(
        "/v1/platform/tenants",
        json={"name": "Nowhere", "subdomain": "plat-badtz", "timezone": "Atlantis/Capital"},
        headers=platform_headers,
    )
    assert resp.status_code == 400
    assert resp.json()["field"] == "timezone"

    tenant = (await client.post(
        "/v1/platform/tenants", json={"name": "Tz", "subdomain": "plat-tz"}, headers=platform_headers,
    )).json()
    resp = await client.patch(
        f"/v1/platform/tenants/{tenant['id']}", json={"timezone": "Not/AZone"}, headers=platform_headers,
    )
    assert resp.status_code == 400
    assert resp.json()["field"] == "timezone"

    resp = await client.patch(
        f"/v1/platform/tenants/{tenant['id']}", json={"timezone": "Europe/Lisbon"}, headers=platform_headers,
    )
    assert resp.status_code == 200
    assert resp.json()["timezone"] == "Europe/Lisbon"
    assert resp.json()["locale"] == "en-US"

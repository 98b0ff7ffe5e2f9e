"""Tests for health endpoints and the public tenant lookup."""

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_system_health_reports_database(client: AsyncClient):
    resp = await client.get("/v1/system/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    assert data["database"]["status"] == "ok"
    assert data["uptime_seconds"] >= 0


@pytest.mark.asyncio
async def test_tenant_lookup(client: AsyncClient, provision, add_user):
    first = await provision("lookup-a")
    second = await provision("lookup-b")
    await add_user(first, "roaming@example.com")
    await add_user(second, "roaming@example.com")

    resp = await client.post("/v1/public/tenant-lookup", json={"email": "Roaming@Example.com"})
    assert resp.status_code == 200
    subdomains = [t["subdomain"] for t in resp.json()["tenants"]]
    assert subdomains == ["lookup-a", "lookup-b"]

    resp = await client.post("/v1/public/tenant-lookup", json={"email": "nobody@example.com"})
    assert resp.json() == {"tenants": []}

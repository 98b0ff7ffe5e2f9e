"""Concurrent grants against the last free seat."""

import asyncio

import pytest
from httpx import AsyncClient

from clinihub.core.errors import SeatLimitExceeded
from clinihub.services import licensing


@pytest.mark.asyncio
async def test_concurrent_grants_for_last_seat(client: AsyncClient, provision, add_user, test_session_factory):
    # Admin holds one of the two seats
    tenant = await provision("seat-race", seats=2)
    listing = (await client.get("/v1/entitlements", headers=tenant["headers"])).json()
    app_id = listing["licenses"][0]["applicationId"]
    u1 = await add_user(tenant, "one@seat-race.com")
    u2 = await add_user(tenant, "two@seat-race.com")

    async def _grant(user_id: int):
        async with test_session_factory() as s:
            return await licensing.grant_access(
                s, user_id=user_id, tenant_id=tenant["tenant_id"], application_id=app_id,
            )

    results = await asyncio.gather(_grant(u1["id"]), _grant(u2["id"]), return_exceptions=True)

    granted = [r for r in results if not isinstance(r, Exception)]
    rejected = [r for r in results if isinstance(r, SeatLimitExceeded)]
    assert len(granted) == 1
    assert len(rejected) == 1

    async with test_session_factory() as s:
        assert await licensing.count_active_grants(s, tenant["tenant_id"], app_id) == 2
        listing = await licensing.list_licenses(s, tenant["tenant_id"])
        assert listing.licenses[0].seats_used == 2
        license_ = await licensing.get_license(s, tenant["tenant_id"], app_id)
        assert license_.seats_used == 2

"""Shared test fixtures: in-memory async SQLite DB and an HTTPX client."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

import uuid  # noqa: E402
from collections.abc import AsyncGenerator  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import SQLModel, select  # noqa: E402

# Import all models so metadata is populated
import clinihub.models  # noqa: E402, F401
from clinihub.core import cache  # noqa: E402
from clinihub.core.database import get_session, seed_reference_data  # noqa: E402
from clinihub.core.security import generate_api_key, hash_api_key, hash_password  # noqa: E402
from clinihub.main import app  # noqa: E402
from clinihub.models.api_key import ApiKey  # noqa: E402
from clinihub.models.tenant import Tenant  # noqa: E402
from clinihub.models.user import PlatformRole, User, UserRole, UserType  # noqa: E402

PASSWORD = "Testpass123"


@pytest.fixture(scope="session")
async def engine():
    eng = create_async_engine("sqlite+aiosqlite://", echo=False, poolclass=StaticPool)
    async with eng.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    factory = sessionmaker(eng, class_=AsyncSession, expire_on_commit=False)
    async with factory() as sess:
        await seed_reference_data(sess)
    yield eng
    await eng.dispose()


@pytest.fixture(scope="session")
def test_session_factory(engine):
    """Session factory bound to the test SQLite engine."""
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(test_session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with test_session_factory() as sess:
        yield sess
        await sess.rollback()


@pytest.fixture
async def client(session) -> AsyncGenerator[AsyncClient, None]:
    """HTTPX async test client with DB session override."""

    async def _override_session():
        yield session

    app.dependency_overrides[get_session] = _override_session
    cache.clear()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
    cache.clear()


@pytest.fixture
async def api_key(session) -> str:
    """Raw provisioning API key stored (hashed) in the DB."""
    raw = generate_api_key()
    session.add(ApiKey(name=f"test-{uuid.uuid4().hex[:8]}", key_hash=hash_api_key(raw), key_prefix=raw[:12]))
    await session.commit()
    return raw


@pytest.fixture
def provision(client: AsyncClient, api_key: str):
    """Factory: sign up a tenant and log its admin in.

    Returns a dict with ``tenant_id``, ``admin_id``, ``token`` and ready-made
    ``headers`` (tenant header + bearer token).
    """

    async def _provision(subdomain: str, plan: str = "basic", seats: int = 5, **extra) -> dict:
        resp = await client.post(
            "/v1/provisioning/signup",
            json={
                "tenantName": f"{subdomain} Clinic",
                "subdomain": subdomain,
                "adminEmail": f"admin@{subdomain}.com",
                "adminPassword": PASSWORD,
                "planSlug": plan,
                "seats": seats,
                **extra,
            },
            headers={"x-api-key": api_key},
        )
        assert resp.status_code == 201, resp.text
        data = resp.json()
        tenant_id = data["tenant"]["id"]

        login = await client.post(
            "/v1/auth/login",
            json={"email": f"admin@{subdomain}.com", "password": PASSWORD},
            headers={"x-tenant-id": str(tenant_id)},
        )
        assert login.status_code == 200, login.text
        token = login.json()["accessToken"]
        return {
            "tenant_id": tenant_id,
            "admin_id": data["admin"]["id"],
            "token": token,
            "signup": data,
            "headers": {"x-tenant-id": str(tenant_id), "Authorization": f"Bearer {token}"},
        }

    return _provision


@pytest.fixture
def add_user(client: AsyncClient):
    """Factory: create a user through the tenant-admin API and return its JSON."""

    async def _add_user(tenant: dict, email: str, role: str = "operations") -> dict:
        resp = await client.post(
            "/v1/users",
            json={"email": email, "password": PASSWORD, "role": role},
            headers=tenant["headers"],
        )
        assert resp.status_code == 201, resp.text
        return resp.json()

    return _add_user


@pytest.fixture
async def platform_headers(client: AsyncClient, session: AsyncSession) -> dict:
    """Bearer headers for a freshly created internal admin."""
    suffix = uuid.uuid4().hex[:8]
    tenant = Tenant(name="Platform Ops", subdomain=f"platform-{suffix}")
    session.add(tenant)
    await session.flush()
    admin_type = (await session.execute(select(UserType).where(UserType.slug == "admin"))).scalar_one()
    email = f"ops-{suffix}@clinihub.io"
    session.add(User(
        tenant_id=tenant.id,
        user_type_id=admin_type.id,
        email=email,
        password_hash=hash_password(PASSWORD),
        role=UserRole.ADMIN,
        platform_role=PlatformRole.INTERNAL_ADMIN,
    ))
    await session.commit()

    resp = await client.post("/v1/platform-auth/login", json={"email": email, "password": PASSWORD})
    assert resp.status_code == 200, resp.text
    return {"Authorization": f"Bearer {resp.json()['accessToken']}"}

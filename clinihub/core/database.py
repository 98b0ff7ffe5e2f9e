"""Async database engine, session factory and reference-data seeding."""

import logging
from collections.abc import AsyncGenerator
from decimal import Decimal

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel, select

from clinihub.core.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()

_engine_kwargs: dict = {"echo": False}
if settings.database_url.startswith("postgresql"):
    _engine_kwargs.update(pool_size=settings.db_pool_size, max_overflow=settings.db_max_overflow)

engine = create_async_engine(settings.database_url, **_engine_kwargs)

async_session_factory = sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields an async DB session.

    A session that leaves the request without a commit is rolled back on
    close, so a failed mutation never leaves partial state behind.
    """
    async with async_session_factory() as session:
        yield session


async def init_db() -> None:
    """Create all tables and seed reference data. Use Alembic migrations in production."""
    import clinihub.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    async with async_session_factory() as session:
        await seed_reference_data(session)


# ── Tenant namespaces ─────────────────────────────────────────

def is_postgres(session: AsyncSession) -> bool:
    return session.bind is not None and session.bind.dialect.name == "postgresql"


async def create_tenant_schema(session: AsyncSession, schema_name: str) -> None:
    """Create the tenant namespace if missing. No-op outside PostgreSQL.

    ``schema_name`` must come from ``tenancy.schema_for_tenant_id``; it is
    still quoted so the identifier can never break out of the statement.
    """
    if not is_postgres(session):
        return
    await session.execute(text(f'CREATE SCHEMA IF NOT EXISTS "{schema_name}"'))
    logger.info("Created tenant schema %s", schema_name)


async def schema_exists(session: AsyncSession, schema_name: str) -> bool:
    if not is_postgres(session):
        return True
    result = await session.execute(
        text("SELECT 1 FROM information_schema.schemata WHERE schema_name = :name"),
        {"name": schema_name},
    )
    return result.scalar_one_or_none() is not None


# ── Reference data ────────────────────────────────────────────

USER_TYPES = [
    ("operations", "Operations", 10),
    ("manager", "Manager", 50),
    ("admin", "Administrator", 100),
]

APPLICATIONS = [
    ("tq", "Transcription & Quote", "Clinical transcription and quote generation"),
    ("hub", "Hub", "Tenant, user and license administration"),
]

# (application slug, user type slug) -> monthly seat price in BRL
SEAT_PRICES = {
    ("tq", "operations"): Decimal("35.00"),
    ("tq", "manager"): Decimal("55.00"),
    ("tq", "admin"): Decimal("80.00"),
    ("hub", "operations"): Decimal("0.00"),
    ("hub", "manager"): Decimal("0.00"),
    ("hub", "admin"): Decimal("0.00"),
}

TRANSCRIPTION_PLANS = [
    {
        "slug": "starter",
        "name": "Starter",
        "monthly_minutes_limit": 60,
        "allows_custom_limits": False,
        "allows_overage": False,
        "is_trial": True,
        "trial_days": 14,
        "description": "Trial plan with a small monthly allotment",
    },
    {
        "slug": "basic",
        "name": "Basic",
        "monthly_minutes_limit": 2400,
        "allows_custom_limits": False,
        "allows_overage": False,
        "description": "Fixed monthly allotment",
    },
    {
        "slug": "vip",
        "name": "VIP",
        "monthly_minutes_limit": 2400,
        "allows_custom_limits": True,
        "allows_overage": True,
        "description": "Custom limits above the plan floor and optional overage",
    },
]


async def seed_reference_data(session: AsyncSession) -> None:
    """Insert user types, applications, seat pricing and plans. Idempotent."""
    from clinihub.models.application import Application, ApplicationPricing
    from clinihub.models.transcription import TranscriptionPlan
    from clinihub.models.user import UserType

    user_types: dict[str, UserType] = {}
    for slug, name, level in USER_TYPES:
        result = await session.execute(select(UserType).where(UserType.slug == slug))
        user_type = result.scalar_one_or_none()
        if user_type is None:
            user_type = UserType(slug=slug, name=name, hierarchy_level=level)
            session.add(user_type)
            await session.flush()
        user_types[slug] = user_type

    for slug, name, description in APPLICATIONS:
        result = await session.execute(select(Application).where(Application.slug == slug))
        application = result.scalar_one_or_none()
        if application is not None:
            continue
        application = Application(slug=slug, name=name, description=description)
        session.add(application)
        await session.flush()
        for (app_slug, type_slug), price in SEAT_PRICES.items():
            if app_slug == slug:
                session.add(ApplicationPricing(
                    application_id=application.id,
                    user_type_id=user_types[type_slug].id,
                    price=price,
                ))

    for plan_data in TRANSCRIPTION_PLANS:
        result = await session.execute(
            select(TranscriptionPlan).where(TranscriptionPlan.slug == plan_data["slug"])
        )
        if result.scalar_one_or_none() is None:
            session.add(TranscriptionPlan(**plan_data))

    await session.commit()
    logger.info("Reference data seeded")

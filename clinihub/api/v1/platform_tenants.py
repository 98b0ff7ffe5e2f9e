"""Internal-admin tenant, license and plan-assignment management."""

import logging

from fastapi import APIRouter, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from clinihub.api.deps import PlatformAdmin, Session
from clinihub.api.v1.users import get_user_type
from clinihub.core.database import create_tenant_schema
from clinihub.core.errors import Conflict, NotFound, TranscriptionNotConfigured, ValidationFailed
from clinihub.core.locale import locale_for_timezone, validate_timezone
from clinihub.core.security import hash_password, validate_password
from clinihub.core.tenancy import schema_for_tenant_id, validate_identifier
from clinihub.models.base import utcnow
from clinihub.models.license import LicenseActivate, LicenseListing, LicenseUpdate
from clinihub.models.tenant import Tenant, TenantCreate, TenantRead, TenantUpdate
from clinihub.models.transcription import (
    ConfigAssign,
    ConfigRead,
    PlanSummary,
    TenantTranscriptionConfig,
    TranscriptionPlan,
)
from clinihub.models.user import User, UserCreate, UserRead
from clinihub.services import licensing, quota

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/platform/tenants", tags=["platform"])


def to_tenant_read(tenant: Tenant) -> TenantRead:
    return TenantRead(
        id=tenant.id,
        name=tenant.name,
        subdomain=tenant.subdomain,
        status=tenant.status,
        timezone=tenant.timezone,
        locale=locale_for_timezone(tenant.timezone),
        schema_name=schema_for_tenant_id(tenant.id),
        created_at=tenant.created_at,
    )


async def create_tenant(session: AsyncSession, body: TenantCreate) -> Tenant:
    """Insert a tenant and its namespace. Flushes; the caller commits."""
    identifier = validate_identifier(body.subdomain)
    subdomain = identifier.value.lower()
    if identifier.tenant_id is not None:
        raise ValidationFailed("Subdomain cannot be purely numeric", field="subdomain")
    validate_timezone(body.timezone)
    existing = await session.execute(select(Tenant).where(Tenant.subdomain == subdomain))
    if existing.scalar_one_or_none():
        raise Conflict(f"Subdomain '{subdomain}' is already taken", subdomain=subdomain)

    tenant = Tenant(name=body.name, subdomain=subdomain, timezone=body.timezone)
    session.add(tenant)
    await session.flush()
    await create_tenant_schema(session, schema_for_tenant_id(tenant.id))
    logger.info("Created tenant %s (%s)", tenant.id, subdomain)
    return tenant


async def _get_tenant_or_404(session: AsyncSession, tenant_id: int) -> Tenant:
    tenant = await session.get(Tenant, tenant_id)
    if tenant is None:
        raise NotFound("Tenant not found", tenant_id=tenant_id)
    return tenant


# ── Tenants ───────────────────────────────────────────────────

@router.get("", response_model=list[TenantRead])
async def list_tenants(_admin: PlatformAdmin, session: Session) -> list[TenantRead]:
    result = await session.execute(select(Tenant).order_by(Tenant.id))
    return [to_tenant_read(t) for t in result.scalars().all()]


@router.post("", response_model=TenantRead, status_code=status.HTTP_201_CREATED)
async def create_tenant_route(
    body: TenantCreate, _admin: PlatformAdmin, session: Session,
) -> TenantRead:
    tenant = await create_tenant(session, body)
    await session.commit()
    return to_tenant_read(tenant)


@router.get("/{tenant_id}", response_model=TenantRead)
async def get_tenant(tenant_id: int, _admin: PlatformAdmin, session: Session) -> TenantRead:
    return to_tenant_read(await _get_tenant_or_404(session, tenant_id))


@router.patch("/{tenant_id}", response_model=TenantRead)
async def update_tenant(
    tenant_id: int, body: TenantUpdate, _admin: PlatformAdmin, session: Session,
) -> TenantRead:
    if body.timezone is not None:
        validate_timezone(body.timezone)
    tenant = await _get_tenant_or_404(session, tenant_id)
    for field, value in body.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(tenant, field, value)
    tenant.updated_at = utcnow()
    session.add(tenant)
    await session.commit()
    return to_tenant_read(tenant)


# ── Tenant users ──────────────────────────────────────────────

@router.get("/{tenant_id}/users", response_model=list[UserRead])
async def list_tenant_users(
    tenant_id: int, _admin: PlatformAdmin, session: Session,
) -> list[UserRead]:
    await _get_tenant_or_404(session, tenant_id)
    result = await session.execute(
        select(User).where(User.tenant_id == tenant_id).order_by(User.email)
    )
    return [UserRead.model_validate(u) for u in result.scalars().all()]


@router.post(
    "/{tenant_id}/users", response_model=UserRead, status_code=status.HTTP_201_CREATED,
)
async def create_tenant_user(
    tenant_id: int, body: UserCreate, _admin: PlatformAdmin, session: Session,
) -> UserRead:
    await _get_tenant_or_404(session, tenant_id)
    email = body.email.lower()
    validate_password(body.password)
    existing = await session.execute(
        select(User).where(User.tenant_id == tenant_id, User.email == email)
    )
    if existing.scalar_one_or_none():
        raise Conflict("A user with this email already exists in this tenant", email=email)
    user_type = await get_user_type(session, body.user_type or str(body.role))
    user = User(
        tenant_id=tenant_id,
        user_type_id=user_type.id,
        email=email,
        password_hash=hash_password(body.password),
        first_name=body.first_name,
        last_name=body.last_name,
        role=body.role,
    )
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return UserRead.model_validate(user)


# ── Licenses ──────────────────────────────────────────────────

@router.get("/{tenant_id}/licenses", response_model=LicenseListing)
async def list_tenant_licenses(
    tenant_id: int, _admin: PlatformAdmin, session: Session,
) -> LicenseListing:
    await _get_tenant_or_404(session, tenant_id)
    return await licensing.list_licenses(session, tenant_id)


@router.post(
    "/{tenant_id}/licenses", response_model=LicenseListing, status_code=status.HTTP_201_CREATED,
)
async def activate_license(
    tenant_id: int, body: LicenseActivate, _admin: PlatformAdmin, session: Session,
) -> LicenseListing:
    await _get_tenant_or_404(session, tenant_id)
    await licensing.activate_license(
        session,
        tenant_id=tenant_id,
        application_slug=body.application_slug,
        seats_purchased=body.seats_purchased,
        expires_at=body.expires_at,
    )
    await session.commit()
    return await licensing.list_licenses(session, tenant_id)


@router.patch("/{tenant_id}/licenses/{application_id}", response_model=LicenseListing)
async def update_license(
    tenant_id: int,
    application_id: int,
    body: LicenseUpdate,
    _admin: PlatformAdmin,
    session: Session,
) -> LicenseListing:
    await licensing.update_license(
        session,
        tenant_id=tenant_id,
        application_id=application_id,
        changes=body.model_dump(exclude_unset=True),
    )
    await session.commit()
    return await licensing.list_licenses(session, tenant_id)


# ── Transcription plan assignment ─────────────────────────────

async def _config_read(session: AsyncSession, config: TenantTranscriptionConfig) -> ConfigRead:
    plan = await session.get(TranscriptionPlan, config.plan_id)
    return ConfigRead(
        tenant_id=config.tenant_id,
        plan=PlanSummary.model_validate(plan),
        custom_monthly_limit=config.custom_monthly_limit,
        overage_allowed=config.overage_allowed,
        enabled=config.enabled,
        transcription_language=config.transcription_language,
        effective_monthly_limit=quota.effective_monthly_limit(
            plan.monthly_minutes_limit, plan.allows_custom_limits, config.custom_monthly_limit,
        ),
        plan_activated_at=config.plan_activated_at,
    )


@router.get("/{tenant_id}/transcription-config", response_model=ConfigRead)
async def get_transcription_config(
    tenant_id: int, _admin: PlatformAdmin, session: Session,
) -> ConfigRead:
    result = await session.execute(
        select(TenantTranscriptionConfig).where(TenantTranscriptionConfig.tenant_id == tenant_id)
    )
    config = result.scalar_one_or_none()
    if config is None:
        raise TranscriptionNotConfigured(tenant_id=tenant_id)
    return await _config_read(session, config)


@router.put("/{tenant_id}/transcription-config", response_model=ConfigRead)
async def assign_transcription_plan(
    tenant_id: int, body: ConfigAssign, _admin: PlatformAdmin, session: Session,
) -> ConfigRead:
    config = await quota.upsert_config(
        session,
        tenant_id=tenant_id,
        plan_id=body.plan_id,
        custom_monthly_limit=body.custom_monthly_limit,
        overage_allowed=body.overage_allowed,
        enabled=body.enabled,
    )
    await session.commit()
    quota.invalidate(tenant_id)
    return await _config_read(session, config)

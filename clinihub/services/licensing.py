"""License & seat ledger.

Seats used is always the count of active grants; the ``seats_used`` column
on ``TenantApplication`` is a cache rewritten in the same transaction as the
grant or revocation that changes it.
"""

import asyncio
import logging
from collections import defaultdict
from datetime import datetime

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from clinihub.core.errors import (
    AccessAlreadyGranted,
    GrantNotFound,
    LicenseNotActive,
    LicenseNotFound,
    NotFound,
    PricingNotConfigured,
    SeatLimitBelowUsage,
    SeatLimitExceeded,
    ValidationFailed,
)
from clinihub.core.tenancy import ensure_tenant_scope
from clinihub.models.application import Application, ApplicationPricing
from clinihub.models.base import utcnow
from clinihub.models.license import (
    AccessLog,
    AppRole,
    LicenseListing,
    LicenseRead,
    LicenseStatus,
    LicenseSummary,
    LicenseUser,
    PricingSnapshot,
    TenantApplication,
    UserApplicationAccess,
)
from clinihub.models.user import User

logger = logging.getLogger(__name__)

# Serializes count-then-insert per (tenant, application) within this process.
# The row lock taken below does the same across processes on PostgreSQL.
_seat_locks: defaultdict[tuple[int, int], asyncio.Lock] = defaultdict(asyncio.Lock)


def effective_license_status(
    status: LicenseStatus, expires_at: datetime | None, now: datetime | None = None,
) -> LicenseStatus:
    """Read-time status: an active license past its expiry is expired."""
    now = now or utcnow()
    if status == LicenseStatus.ACTIVE and expires_at is not None and expires_at <= now:
        return LicenseStatus.EXPIRED
    return status


async def count_active_grants(session: AsyncSession, tenant_id: int, application_id: int) -> int:
    stmt = select(func.count()).select_from(UserApplicationAccess).where(
        UserApplicationAccess.tenant_id == tenant_id,
        UserApplicationAccess.application_id == application_id,
        UserApplicationAccess.is_active.is_(True),  # type: ignore[union-attr]
    )
    result = await session.execute(stmt)
    return result.scalar_one()


async def get_license(
    session: AsyncSession, tenant_id: int, application_id: int, *, for_update: bool = False,
) -> TenantApplication | None:
    stmt = select(TenantApplication).where(
        TenantApplication.tenant_id == tenant_id,
        TenantApplication.application_id == application_id,
    )
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_application_by_slug(session: AsyncSession, slug: str) -> Application:
    result = await session.execute(select(Application).where(Application.slug == slug))
    application = result.scalar_one_or_none()
    if application is None:
        raise NotFound(f"Application '{slug}' not found", application=slug)
    return application


async def list_licenses(session: AsyncSession, tenant_id: int) -> LicenseListing:
    ensure_tenant_scope(tenant_id)
    now = utcnow()
    stmt = (
        select(TenantApplication, Application)
        .join(Application, Application.id == TenantApplication.application_id)
        .where(TenantApplication.tenant_id == tenant_id)
        .order_by(Application.slug)
    )
    rows = (await session.execute(stmt)).all()

    grants_stmt = (
        select(UserApplicationAccess, User.email)
        .join(User, User.id == UserApplicationAccess.user_id)
        .where(
            UserApplicationAccess.tenant_id == tenant_id,
            UserApplicationAccess.is_active.is_(True),  # type: ignore[union-attr]
        )
        .order_by(UserApplicationAccess.granted_at)
    )
    users_by_app: dict[int, list[LicenseUser]] = defaultdict(list)
    for grant, email in (await session.execute(grants_stmt)).all():
        users_by_app[grant.application_id].append(
            LicenseUser(email=email, role=grant.role_in_app, granted_at=grant.granted_at)
        )

    licenses = []
    for license_, application in rows:
        users = users_by_app.get(application.id, [])
        licenses.append(LicenseRead(
            application_id=application.id,
            slug=application.slug,
            name=application.name,
            status=effective_license_status(license_.status, license_.expires_at, now),
            activated_at=license_.activated_at,
            expires_at=license_.expires_at,
            seats_used=len(users),
            seats_purchased=license_.seats_purchased,
            users=users,
        ))

    return LicenseListing(
        licenses=licenses,
        summary=LicenseSummary(
            apps=len(licenses),
            seats_used=sum(lic.seats_used for lic in licenses),
        ),
    )


async def current_pricing(
    session: AsyncSession, application_id: int, user_type_id: int,
) -> PricingSnapshot:
    """Most recent active price for (application, user type)."""
    stmt = (
        select(ApplicationPricing)
        .where(
            ApplicationPricing.application_id == application_id,
            ApplicationPricing.user_type_id == user_type_id,
            ApplicationPricing.is_active.is_(True),  # type: ignore[union-attr]
            ApplicationPricing.valid_from <= utcnow(),
        )
        .order_by(ApplicationPricing.valid_from.desc())  # type: ignore[union-attr]
        .limit(1)
    )
    pricing = (await session.execute(stmt)).scalar_one_or_none()
    if pricing is None:
        raise PricingNotConfigured(application_id=application_id, user_type_id=user_type_id)
    return PricingSnapshot(
        price=pricing.price,
        currency=pricing.currency,
        user_type_id=user_type_id,
        billing_cycle=str(pricing.billing_cycle),
    )


async def grant_access(
    session: AsyncSession,
    *,
    user_id: int,
    tenant_id: int,
    application_id: int,
    role_in_app: AppRole = AppRole.USER,
    pricing_snapshot: PricingSnapshot | None = None,
    granted_by: int | None = None,
    commit: bool = True,
) -> UserApplicationAccess:
    """Grant one seat of an application to a user.

    The capacity check and the write are serialized per (tenant,
    application): at capacity the call raises ``SeatLimitExceeded`` and
    writes nothing.
    """
    ensure_tenant_scope(tenant_id)
    async with _seat_locks[(tenant_id, application_id)]:
        license_ = await get_license(session, tenant_id, application_id, for_update=True)
        if license_ is None:
            raise LicenseNotFound(application_id=application_id)
        status = effective_license_status(license_.status, license_.expires_at)
        if status != LicenseStatus.ACTIVE:
            raise LicenseNotActive(application_id=application_id, status=status.value)

        user = await session.get(User, user_id)
        if user is None or user.tenant_id != tenant_id:
            raise NotFound("User not found in this tenant", user_id=user_id)

        existing = (await session.execute(
            select(UserApplicationAccess).where(
                UserApplicationAccess.tenant_id == tenant_id,
                UserApplicationAccess.user_id == user_id,
                UserApplicationAccess.application_id == application_id,
            ).execution_options(populate_existing=True)
        )).scalar_one_or_none()
        if existing is not None and existing.is_active:
            raise AccessAlreadyGranted(user_id=user_id, application_id=application_id)

        seats_used = await count_active_grants(session, tenant_id, application_id)
        if seats_used >= license_.seats_purchased:
            logger.info(
                "Seat limit reached for tenant %s app %s (%s/%s)",
                tenant_id, application_id, seats_used, license_.seats_purchased,
            )
            raise SeatLimitExceeded(
                seats_used=seats_used, seats_purchased=license_.seats_purchased,
            )

        snapshot = pricing_snapshot or await current_pricing(
            session, application_id, user.user_type_id,
        )

        now = utcnow()
        grant = existing or UserApplicationAccess(
            tenant_id=tenant_id, user_id=user_id, application_id=application_id,
        )
        grant.role_in_app = role_in_app
        grant.is_active = True
        grant.price_snapshot = snapshot.price
        grant.currency_snapshot = snapshot.currency
        grant.user_type_id_snapshot = snapshot.user_type_id or user.user_type_id
        grant.granted_cycle = snapshot.billing_cycle
        grant.granted_at = now
        grant.granted_by = granted_by
        grant.revoked_at = None
        grant.updated_at = now
        session.add(grant)

        license_.seats_used = seats_used + 1
        license_.updated_at = now
        session.add(license_)
        session.add(AccessLog(
            tenant_id=tenant_id, user_id=user_id, application_id=application_id,
            action="granted", actor_id=granted_by,
        ))

        if commit:
            await session.commit()
        else:
            await session.flush()

    logger.info("Granted app %s to user %s in tenant %s", application_id, user_id, tenant_id)
    return grant


async def revoke_access(
    session: AsyncSession,
    *,
    user_id: int,
    tenant_id: int,
    application_id: int,
    revoked_by: int | None = None,
) -> UserApplicationAccess:
    """Deactivate a grant; the pricing snapshot is kept for billing history."""
    ensure_tenant_scope(tenant_id)
    async with _seat_locks[(tenant_id, application_id)]:
        license_ = await get_license(session, tenant_id, application_id, for_update=True)
        grant = (await session.execute(
            select(UserApplicationAccess).where(
                UserApplicationAccess.tenant_id == tenant_id,
                UserApplicationAccess.user_id == user_id,
                UserApplicationAccess.application_id == application_id,
                UserApplicationAccess.is_active.is_(True),  # type: ignore[union-attr]
            ).execution_options(populate_existing=True)
        )).scalar_one_or_none()
        if grant is None:
            raise GrantNotFound(user_id=user_id, application_id=application_id)

        now = utcnow()
        grant.is_active = False
        grant.revoked_at = now
        grant.updated_at = now
        session.add(grant)
        await session.flush()

        if license_ is not None:
            license_.seats_used = await count_active_grants(session, tenant_id, application_id)
            license_.updated_at = now
            session.add(license_)
        session.add(AccessLog(
            tenant_id=tenant_id, user_id=user_id, application_id=application_id,
            action="revoked", actor_id=revoked_by,
        ))
        await session.commit()

    logger.info("Revoked app %s from user %s in tenant %s", application_id, user_id, tenant_id)
    return grant


async def allowed_app_slugs(session: AsyncSession, tenant_id: int, user_id: int) -> list[str]:
    """Slugs of applications the user holds an active grant for under a usable license."""
    now = utcnow()
    stmt = (
        select(Application.slug, TenantApplication.status, TenantApplication.expires_at)
        .join(UserApplicationAccess, UserApplicationAccess.application_id == Application.id)
        .join(
            TenantApplication,
            (TenantApplication.application_id == Application.id)
            & (TenantApplication.tenant_id == UserApplicationAccess.tenant_id),
        )
        .where(
            UserApplicationAccess.tenant_id == tenant_id,
            UserApplicationAccess.user_id == user_id,
            UserApplicationAccess.is_active.is_(True),  # type: ignore[union-attr]
        )
        .order_by(Application.slug)
    )
    rows = (await session.execute(stmt)).all()
    return [
        slug for slug, status, expires_at in rows
        if effective_license_status(status, expires_at, now) == LicenseStatus.ACTIVE
    ]


async def find_active_grant(
    session: AsyncSession, tenant_id: int, user_id: int, application_id: int,
) -> UserApplicationAccess | None:
    result = await session.execute(
        select(UserApplicationAccess).where(
            UserApplicationAccess.tenant_id == tenant_id,
            UserApplicationAccess.user_id == user_id,
            UserApplicationAccess.application_id == application_id,
            UserApplicationAccess.is_active.is_(True),  # type: ignore[union-attr]
        )
    )
    return result.scalar_one_or_none()


# ── Platform administration ───────────────────────────────────

async def activate_license(
    session: AsyncSession,
    *,
    tenant_id: int,
    application_slug: str,
    seats_purchased: int = 1,
    expires_at: datetime | None = None,
) -> TenantApplication:
    """Create or reactivate a license. Flushes; the caller commits."""
    if seats_purchased < 0:
        raise ValidationFailed("seatsPurchased cannot be negative", field="seatsPurchased")
    application = await get_application_by_slug(session, application_slug)
    license_ = await get_license(session, tenant_id, application.id)
    now = utcnow()
    if license_ is None:
        license_ = TenantApplication(
            tenant_id=tenant_id,
            application_id=application.id,
            seats_purchased=seats_purchased,
            expires_at=expires_at,
            activated_at=now,
        )
    else:
        used = await count_active_grants(session, tenant_id, application.id)
        if seats_purchased < used:
            raise SeatLimitBelowUsage(seats_used=used, seats_purchased=seats_purchased)
        license_.status = LicenseStatus.ACTIVE
        license_.seats_purchased = seats_purchased
        license_.expires_at = expires_at
        license_.activated_at = now
        license_.updated_at = now
    session.add(license_)
    await session.flush()
    logger.info("Activated license %s for tenant %s (%s seats)", application_slug, tenant_id, seats_purchased)
    return license_


async def update_license(
    session: AsyncSession,
    *,
    tenant_id: int,
    application_id: int,
    changes: dict,
) -> TenantApplication:
    """Apply a partial update; only keys present in ``changes`` are touched."""
    license_ = await get_license(session, tenant_id, application_id, for_update=True)
    if license_ is None:
        raise LicenseNotFound(application_id=application_id)

    if "seats_purchased" in changes and changes["seats_purchased"] is not None:
        seats = changes["seats_purchased"]
        if seats < 0:
            raise ValidationFailed("seatsPurchased cannot be negative", field="seatsPurchased")
        used = await count_active_grants(session, tenant_id, application_id)
        if seats < used:
            raise SeatLimitBelowUsage(seats_used=used, seats_purchased=seats)
        license_.seats_purchased = seats
    if changes.get("status") is not None:
        if changes["status"] == LicenseStatus.EXPIRED:
            raise ValidationFailed("Expired is derived from expiresAt and cannot be set", field="status")
        license_.status = changes["status"]
    if "expires_at" in changes:
        license_.expires_at = changes["expires_at"]

    license_.updated_at = utcnow()
    session.add(license_)
    await session.flush()
    return license_

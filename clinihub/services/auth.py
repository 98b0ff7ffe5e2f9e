"""Session token issuance, refresh and password changes."""

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from clinihub.core.errors import (
    AccountDisabled,
    InvalidCredentials,
    InvalidToken,
    MissingTenantContext,
    PasswordReuse,
    TenantNotFound,
)
from clinihub.core.locale import locale_for_timezone
from clinihub.core.security import (
    create_jwt,
    decode_jwt,
    hash_password,
    validate_password,
    verify_password,
)
from clinihub.core.tenancy import TenantContext, schema_for_tenant_id
from clinihub.models.base import utcnow
from clinihub.models.tenant import Tenant, TenantStatus
from clinihub.models.user import PlatformRole, User, UserType
from clinihub.services.licensing import allowed_app_slugs

logger = logging.getLogger(__name__)

TOKEN_TYPE_TENANT = "tenant"
TOKEN_TYPE_PLATFORM = "platform"


async def build_token_payload(
    session: AsyncSession, user: User, tenant: Tenant, token_type: str = TOKEN_TYPE_TENANT,
) -> dict[str, Any]:
    user_type = await session.get(UserType, user.user_type_id)
    return {
        "userId": user.id,
        "tenantId": int(tenant.id),
        "email": user.email,
        "role": str(user.role),
        "schema": schema_for_tenant_id(tenant.id),
        "timezone": tenant.timezone,
        "locale": locale_for_timezone(tenant.timezone),
        "allowedApps": await allowed_app_slugs(session, tenant.id, user.id),
        "userType": {
            "id": user_type.id,
            "slug": user_type.slug,
            "hierarchyLevel": user_type.hierarchy_level,
        } if user_type is not None else None,
        "platformRole": str(user.platform_role) if user.platform_role else None,
        "type": token_type,
    }


async def _issue(
    session: AsyncSession, user: User, tenant: Tenant, token_type: str,
) -> tuple[str, dict[str, Any]]:
    payload = await build_token_payload(session, user, tenant, token_type)
    return create_jwt(payload), payload


async def login(
    session: AsyncSession, tenant: TenantContext | None, email: str, password: str,
) -> tuple[str, dict[str, Any], User]:
    if tenant is None:
        raise MissingTenantContext()
    result = await session.execute(
        select(User).where(User.tenant_id == tenant.id, User.email == email.lower())
    )
    user = result.scalar_one_or_none()
    if user is None or not verify_password(password, user.password_hash):
        logger.info("Failed login for %s on tenant %s", email, tenant.id)
        raise InvalidCredentials()
    if not user.is_active:
        raise AccountDisabled()

    user.last_login_at = utcnow()
    session.add(user)
    await session.commit()

    tenant_row = await session.get(Tenant, tenant.id)
    token, payload = await _issue(session, user, tenant_row, TOKEN_TYPE_TENANT)
    return token, payload, user


async def platform_login(
    session: AsyncSession, email: str, password: str,
) -> tuple[str, dict[str, Any], User]:
    """Login for internal admins; no tenant header, token type ``platform``."""
    result = await session.execute(
        select(User).where(
            User.email == email.lower(),
            User.platform_role == PlatformRole.INTERNAL_ADMIN,
        )
    )
    user = result.scalars().first()
    if user is None or not verify_password(password, user.password_hash):
        logger.info("Failed platform login for %s", email)
        raise InvalidCredentials()
    if not user.is_active:
        raise AccountDisabled()

    user.last_login_at = utcnow()
    session.add(user)
    await session.commit()

    tenant = await session.get(Tenant, user.tenant_id)
    token, payload = await _issue(session, user, tenant, TOKEN_TYPE_PLATFORM)
    return token, payload, user


async def refresh(session: AsyncSession, token: str) -> tuple[str, dict[str, Any]]:
    """Verify ``token`` and re-issue it with current entitlements and fresh times."""
    claims = decode_jwt(token)
    try:
        user_id = int(claims["userId"])
        tenant_id = int(claims["tenantId"])
    except (KeyError, TypeError, ValueError) as exc:
        raise InvalidToken("Malformed token payload") from exc

    user = await session.get(User, user_id)
    if user is None or user.tenant_id != tenant_id:
        raise InvalidToken("Token subject no longer exists")
    if not user.is_active:
        raise AccountDisabled()
    tenant = await session.get(Tenant, tenant_id)
    if tenant is None or tenant.status != TenantStatus.ACTIVE:
        raise TenantNotFound(identifier=str(tenant_id))

    return await _issue(session, user, tenant, claims.get("type", TOKEN_TYPE_TENANT))


async def change_password(
    session: AsyncSession, user: User, current_password: str, new_password: str,
) -> None:
    if not verify_password(current_password, user.password_hash):
        raise InvalidCredentials("Current password is incorrect")
    validate_password(new_password)
    if new_password == current_password:
        raise PasswordReuse()
    user.password_hash = hash_password(new_password)
    user.updated_at = utcnow()
    session.add(user)
    await session.commit()
    logger.info("User %s changed password", user.id)

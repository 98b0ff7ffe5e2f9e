"""FastAPI dependencies for tenant resolution, authentication and access guards."""

import logging
from collections.abc import AsyncGenerator
from typing import Annotated, Any

from fastapi import Depends, Header, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from clinihub.core.config import get_settings
from clinihub.core.database import get_session
from clinihub.core.errors import (
    AccountDisabled,
    ApplicationAccessDenied,
    InsufficientRole,
    InvalidToken,
    LicenseNotActive,
    LicenseNotFound,
    MissingTenantContext,
    TenantMismatch,
)
from clinihub.core.security import decode_jwt, hash_api_key
from clinihub.core.tenancy import (
    TenantContext,
    bind_search_path,
    current_tenant,
    resolve_tenant,
    unbind_search_path,
)
from clinihub.models.api_key import ApiKey
from clinihub.models.base import utcnow
from clinihub.models.license import LicenseStatus, UserApplicationAccess
from clinihub.models.user import PlatformRole, User, UserRole
from clinihub.services import licensing

logger = logging.getLogger(__name__)

settings = get_settings()

bearer_scheme = HTTPBearer(auto_error=False)

Session = Annotated[AsyncSession, Depends(get_session)]


# ── Tenant context ────────────────────────────────────────────

async def get_tenant_context(
    request: Request, session: Session,
) -> AsyncGenerator[TenantContext, None]:
    """Resolve the tenant header and scope this request to it.

    The tenant is bound to a context variable and the session's transactions
    run with the tenant schema on the search path, both only until the
    request finishes.
    """
    raw = request.headers.get(settings.tenant_header_name)
    if raw is None or not raw.strip():
        raise MissingTenantContext(header=settings.tenant_header_name)

    tenant = await resolve_tenant(session, raw)
    current_tenant.set(tenant)
    request.state.tenant = tenant
    listener = await bind_search_path(session, tenant.schema)
    try:
        yield tenant
    finally:
        unbind_search_path(session, listener)
        current_tenant.set(None)


CurrentTenant = Annotated[TenantContext, Depends(get_tenant_context)]


# ── Authentication ────────────────────────────────────────────

class AuthContext:
    """Identity carried by a verified session token."""

    __slots__ = (
        "user_id", "tenant_id", "email", "role", "platform_role",
        "token_type", "allowed_apps", "timezone", "locale", "claims",
    )

    def __init__(self, claims: dict[str, Any]) -> None:
        try:
            self.user_id = int(claims["userId"])
            self.tenant_id = int(claims["tenantId"])
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidToken("Malformed token payload") from exc
        self.email: str = claims.get("email", "")
        self.role: str = claims.get("role", "")
        self.platform_role: str | None = claims.get("platformRole")
        self.token_type: str = claims.get("type", "tenant")
        self.allowed_apps: list[str] = claims.get("allowedApps") or []
        self.timezone: str | None = claims.get("timezone")
        self.locale: str | None = claims.get("locale")
        self.claims = claims


def _decode_bearer(credentials: HTTPAuthorizationCredentials | None) -> AuthContext:
    if credentials is None or not credentials.credentials:
        raise InvalidToken("Missing bearer token")
    return AuthContext(decode_jwt(credentials.credentials))


async def _load_subject(session: AsyncSession, auth: AuthContext) -> User:
    """Reload the token's user; role and platform role come from the row, not the claims."""
    user = await session.get(User, auth.user_id)
    if user is None or user.tenant_id != auth.tenant_id:
        raise InvalidToken("Token subject no longer exists")
    if not user.is_active:
        logger.info("Rejected token of deactivated user %s", user.id)
        raise AccountDisabled()
    auth.role = str(user.role)
    auth.platform_role = str(user.platform_role) if user.platform_role else None
    return user


async def get_auth_context(
    tenant: CurrentTenant,
    session: Session,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> AuthContext:
    """Verified token whose tenant matches the header tenant and whose user is still active."""
    auth = _decode_bearer(credentials)
    if auth.tenant_id != tenant.id:
        logger.warning(
            "Token tenant %s does not match request tenant %s", auth.tenant_id, tenant.id,
        )
        raise TenantMismatch(token_tenant_id=auth.tenant_id, request_tenant_id=tenant.id)
    await _load_subject(session, auth)
    return auth


Auth = Annotated[AuthContext, Depends(get_auth_context)]


async def get_current_user(auth: Auth, session: Session) -> User:
    return await _load_subject(session, auth)


CurrentUser = Annotated[User, Depends(get_current_user)]


async def require_admin(auth: Auth) -> AuthContext:
    if auth.role != UserRole.ADMIN:
        raise InsufficientRole(required="admin")
    return auth


TenantAdmin = Annotated[AuthContext, Depends(require_admin)]


async def require_platform_admin(
    session: Session,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> AuthContext:
    auth = _decode_bearer(credentials)
    if auth.token_type != "platform":
        raise InsufficientRole("Platform administrator role required", required="internal_admin")
    await _load_subject(session, auth)
    if auth.platform_role != PlatformRole.INTERNAL_ADMIN:
        raise InsufficientRole("Platform administrator role required", required="internal_admin")
    return auth


PlatformAdmin = Annotated[AuthContext, Depends(require_platform_admin)]


# ── Application access ────────────────────────────────────────

def require_app_access(slug: str, roles: tuple[str, ...] | None = None):
    """Dependency factory: tenant license, then user grant, then in-app role."""

    async def _guard(auth: Auth, session: Session) -> UserApplicationAccess:
        application = await licensing.get_application_by_slug(session, slug)
        license_ = await licensing.get_license(session, auth.tenant_id, application.id)
        if license_ is None:
            raise LicenseNotFound(application=slug)
        status = licensing.effective_license_status(license_.status, license_.expires_at)
        if status != LicenseStatus.ACTIVE:
            raise LicenseNotActive(application=slug, status=status.value)

        grant = await licensing.find_active_grant(
            session, auth.tenant_id, auth.user_id, application.id,
        )
        if grant is None:
            raise ApplicationAccessDenied(application=slug)
        if roles is not None and grant.role_in_app not in roles:
            raise InsufficientRole(application=slug, required=list(roles))
        return grant

    return _guard


# ── Provisioning API key ──────────────────────────────────────

async def require_provisioning_key(
    session: Session,
    x_api_key: Annotated[str | None, Header()] = None,
) -> ApiKey:
    if not x_api_key:
        raise InvalidToken("Missing API key")
    result = await session.execute(
        select(ApiKey).where(
            ApiKey.key_hash == hash_api_key(x_api_key),
            ApiKey.is_active.is_(True),  # type: ignore[union-attr]
        )
    )
    api_key = result.scalar_one_or_none()
    if api_key is None:
        raise InvalidToken("Invalid or revoked API key")
    if api_key.expires_at and api_key.expires_at < utcnow():
        raise InvalidToken("API key has expired")
    if api_key.scope != "provisioning":
        raise InsufficientRole("API key scope does not allow provisioning", scope=api_key.scope)

    api_key.last_used_at = utcnow()
    session.add(api_key)
    await session.flush()
    return api_key


ProvisioningKey = Annotated[ApiKey, Depends(require_provisioning_key)]

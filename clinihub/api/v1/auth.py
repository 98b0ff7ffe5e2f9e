"""Tenant login, token refresh, current user and password change."""

from typing import Annotated, Any

from fastapi import APIRouter, Depends, status
from fastapi.security import HTTPAuthorizationCredentials
from pydantic import EmailStr

from clinihub.api.deps import Auth, CurrentTenant, CurrentUser, Session, bearer_scheme
from clinihub.core.config import get_settings
from clinihub.core.errors import InvalidToken, TenantMismatch
from clinihub.core.locale import locale_for_timezone
from clinihub.core.tenancy import TenantContext, schema_for_tenant_id
from clinihub.models.base import ApiModel
from clinihub.models.tenant import Tenant
from clinihub.models.user import UserRead, UserType, UserTypeRead
from clinihub.services import auth as auth_service

router = APIRouter(prefix="/auth", tags=["auth"])

settings = get_settings()


# ── Schemas ──────────────────────────────────────────────────

class LoginRequest(ApiModel):
    email: EmailStr
    password: str


class TenantInfo(ApiModel):
    id: int
    name: str
    subdomain: str
    schema_name: str
    timezone: str
    locale: str


class TokenResponse(ApiModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    tenant_id: int
    allowed_apps: list[str]


class LoginResponse(TokenResponse):
    user: UserRead
    tenant: TenantInfo


class MeResponse(ApiModel):
    user: UserRead
    user_type: UserTypeRead | None
    tenant: TenantInfo
    allowed_apps: list[str]


class ChangePasswordRequest(ApiModel):
    current_password: str
    new_password: str


def tenant_info(tenant: TenantContext | Tenant) -> TenantInfo:
    return TenantInfo(
        id=tenant.id,
        name=tenant.name,
        subdomain=tenant.subdomain,
        schema_name=schema_for_tenant_id(tenant.id),
        timezone=tenant.timezone,
        locale=locale_for_timezone(tenant.timezone),
    )


def token_response(token: str, payload: dict[str, Any]) -> dict[str, Any]:
    return {
        "access_token": token,
        "expires_in": settings.jwt_expire_minutes * 60,
        "tenant_id": payload["tenantId"],
        "allowed_apps": payload["allowedApps"],
    }


# ── Routes ───────────────────────────────────────────────────

@router.post("/login", response_model=LoginResponse)
async def login(body: LoginRequest, tenant: CurrentTenant, session: Session) -> LoginResponse:
    """Authenticate with email + password within the header tenant."""
    token, payload, user = await auth_service.login(session, tenant, body.email, body.password)
    return LoginResponse(
        **token_response(token, payload),
        user=UserRead.model_validate(user),
        tenant=tenant_info(tenant),
    )


@router.post("/refresh", response_model=TokenResponse)
async def refresh(
    tenant: CurrentTenant,
    session: Session,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> TokenResponse:
    """Re-issue a valid token with fresh entitlements and expiry."""
    if credentials is None:
        raise InvalidToken("Missing bearer token")
    token, payload = await auth_service.refresh(session, credentials.credentials)
    if payload["tenantId"] != tenant.id:
        raise TenantMismatch(token_tenant_id=payload["tenantId"], request_tenant_id=tenant.id)
    return TokenResponse(**token_response(token, payload))


@router.get("/me", response_model=MeResponse)
async def get_me(
    auth: Auth, user: CurrentUser, tenant: CurrentTenant, session: Session,
) -> MeResponse:
    """Return the current user, their type and their tenant."""
    user_type = await session.get(UserType, user.user_type_id)
    return MeResponse(
        user=UserRead.model_validate(user),
        user_type=UserTypeRead.model_validate(user_type) if user_type else None,
        tenant=tenant_info(tenant),
        allowed_apps=auth.allowed_apps,
    )


@router.post("/change-password", status_code=status.HTTP_204_NO_CONTENT)
async def change_password(
    body: ChangePasswordRequest, user: CurrentUser, session: Session,
) -> None:
    await auth_service.change_password(session, user, body.current_password, body.new_password)

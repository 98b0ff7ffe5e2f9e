"""Machine-to-machine tenant signup, authenticated with a platform API key."""

import logging

from fastapi import APIRouter, status
from pydantic import EmailStr, Field
from sqlmodel import select

from clinihub.api.deps import ProvisioningKey, Session
from clinihub.api.v1.platform_tenants import create_tenant, to_tenant_read
from clinihub.api.v1.users import get_user_type
from clinihub.core.errors import NotFound
from clinihub.core.security import generate_temporary_password, hash_password, validate_password
from clinihub.core.tenancy import schema_for_tenant_id
from clinihub.models.base import ApiModel
from clinihub.models.license import AppRole
from clinihub.models.tenant import TenantCreate, TenantRead
from clinihub.models.transcription import TranscriptionPlan
from clinihub.models.user import User, UserRead, UserRole
from clinihub.services import licensing, quota

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/provisioning", tags=["provisioning"])


class SignupRequest(ApiModel):
    """Everything needed to create a working tenant in one call."""

    tenant_name: str = Field(max_length=255)
    subdomain: str = Field(max_length=50)
    timezone: str = "America/Sao_Paulo"
    admin_email: EmailStr
    admin_password: str | None = None
    admin_first_name: str = ""
    admin_last_name: str = ""
    plan_slug: str = "starter"
    seats: int = Field(default=5, ge=1)


class SignupResponse(ApiModel):
    tenant: TenantRead
    admin: UserRead
    schema_name: str
    plan: str
    temporary_password: str | None = Field(default=None, description="Shown once")


@router.post("/signup", response_model=SignupResponse, status_code=status.HTTP_201_CREATED)
async def signup(body: SignupRequest, api_key: ProvisioningKey, session: Session) -> SignupResponse:
    """Create tenant, namespace, admin user, TQ license, plan config and admin seat.

    Everything commits together; any failure leaves nothing behind.
    """
    result = await session.execute(
        select(TranscriptionPlan).where(
            TranscriptionPlan.slug == body.plan_slug,
            TranscriptionPlan.is_active.is_(True),  # type: ignore[union-attr]
        )
    )
    plan = result.scalar_one_or_none()
    if plan is None:
        raise NotFound(f"Transcription plan '{body.plan_slug}' not found", plan=body.plan_slug)

    temporary_password = None
    password = body.admin_password
    if password is None:
        password = temporary_password = generate_temporary_password()
    else:
        validate_password(password)

    tenant = await create_tenant(
        session,
        TenantCreate(name=body.tenant_name, subdomain=body.subdomain, timezone=body.timezone),
    )

    admin_type = await get_user_type(session, "admin")
    admin = User(
        tenant_id=tenant.id,
        user_type_id=admin_type.id,
        email=body.admin_email.lower(),
        password_hash=hash_password(password),
        first_name=body.admin_first_name,
        last_name=body.admin_last_name,
        role=UserRole.ADMIN,
    )
    session.add(admin)
    await session.flush()

    license_ = await licensing.activate_license(
        session, tenant_id=tenant.id, application_slug="tq", seats_purchased=body.seats,
    )
    await quota.upsert_config(session, tenant_id=tenant.id, plan_id=plan.id)
    # Commits the whole signup
    await licensing.grant_access(
        session,
        user_id=admin.id,
        tenant_id=tenant.id,
        application_id=license_.application_id,
        role_in_app=AppRole.ADMIN,
    )
    quota.invalidate(tenant.id)
    logger.info(
        "Provisioned tenant %s (%s) on plan %s via key %s",
        tenant.id, tenant.subdomain, plan.slug, api_key.key_prefix,
    )

    return SignupResponse(
        tenant=to_tenant_read(tenant),
        admin=UserRead.model_validate(admin),
        schema_name=schema_for_tenant_id(tenant.id),
        plan=plan.slug,
        temporary_password=temporary_password,
    )

"""Tenant license listing and seat grants."""

from fastapi import APIRouter, status

from clinihub.api.deps import Auth, Session, TenantAdmin
from clinihub.models.license import GrantCreate, GrantRead, LicenseListing
from clinihub.services import licensing

router = APIRouter(prefix="/entitlements", tags=["entitlements"])


@router.get("", response_model=LicenseListing)
async def list_licenses(auth: Auth, session: Session) -> LicenseListing:
    return await licensing.list_licenses(session, auth.tenant_id)


@router.post(
    "/{application_id}/grants",
    response_model=GrantRead,
    status_code=status.HTTP_201_CREATED,
)
async def grant_access(
    application_id: int, body: GrantCreate, auth: TenantAdmin, session: Session,
) -> GrantRead:
    grant = await licensing.grant_access(
        session,
        user_id=body.user_id,
        tenant_id=auth.tenant_id,
        application_id=application_id,
        role_in_app=body.role_in_app,
        granted_by=auth.user_id,
    )
    return GrantRead.model_validate(grant)


@router.delete(
    "/{application_id}/grants/{user_id}",
    response_model=GrantRead,
)
async def revoke_access(
    application_id: int, user_id: int, auth: TenantAdmin, session: Session,
) -> GrantRead:
    grant = await licensing.revoke_access(
        session,
        user_id=user_id,
        tenant_id=auth.tenant_id,
        application_id=application_id,
        revoked_by=auth.user_id,
    )
    return GrantRead.model_validate(grant)

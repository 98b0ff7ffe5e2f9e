"""Unauthenticated pre-login lookups."""

from fastapi import APIRouter
from pydantic import EmailStr
from sqlmodel import select

from clinihub.api.deps import Session
from clinihub.models.base import ApiModel
from clinihub.models.tenant import Tenant, TenantStatus
from clinihub.models.user import User

router = APIRouter(prefix="/public", tags=["public"])


class TenantLookupRequest(ApiModel):
    email: EmailStr


class TenantOption(ApiModel):
    id: int
    name: str
    subdomain: str


class TenantLookupResponse(ApiModel):
    tenants: list[TenantOption]


@router.post("/tenant-lookup", response_model=TenantLookupResponse)
async def tenant_lookup(body: TenantLookupRequest, session: Session) -> TenantLookupResponse:
    """Tenants where ``email`` has an active account, for the login picker."""
    stmt = (
        select(Tenant)
        .join(User, User.tenant_id == Tenant.id)
        .where(
            User.email == body.email.lower(),
            User.is_active.is_(True),  # type: ignore[union-attr]
            Tenant.status == TenantStatus.ACTIVE,
        )
        .order_by(Tenant.name)
    )
    result = await session.execute(stmt)
    return TenantLookupResponse(
        tenants=[TenantOption.model_validate(t) for t in result.scalars().all()],
    )

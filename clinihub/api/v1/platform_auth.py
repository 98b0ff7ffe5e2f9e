"""Internal-admin login; exempt from the tenant header."""

from fastapi import APIRouter

from clinihub.api.deps import Session
from clinihub.api.v1.auth import LoginRequest, LoginResponse, tenant_info, token_response
from clinihub.models.tenant import Tenant
from clinihub.models.user import UserRead
from clinihub.services import auth as auth_service

router = APIRouter(prefix="/platform-auth", tags=["platform"])


@router.post("/login", response_model=LoginResponse)
async def platform_login(body: LoginRequest, session: Session) -> LoginResponse:
    token, payload, user = await auth_service.platform_login(session, body.email, body.password)
    tenant = await session.get(Tenant, user.tenant_id)
    return LoginResponse(
        **token_response(token, payload),
        user=UserRead.model_validate(user),
        tenant=tenant_info(tenant),
    )

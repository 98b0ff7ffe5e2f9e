"""Tenant-admin transcription usage and settings."""

from typing import Annotated

from fastapi import APIRouter, Query

from clinihub.api.deps import Session, TenantAdmin
from clinihub.models.transcription import ConfigUpdate, UsageRecordPage, UsageReport
from clinihub.services import quota

router = APIRouter(prefix="/configurations", tags=["configurations"])


@router.get("/transcription-usage", response_model=UsageReport)
async def get_transcription_usage(auth: TenantAdmin, session: Session) -> UsageReport:
    return await quota.get_usage(session, auth.tenant_id)


@router.get("/transcription-usage/details", response_model=UsageRecordPage)
async def list_transcription_usage(
    auth: TenantAdmin,
    session: Session,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> UsageRecordPage:
    return await quota.list_usage_records(session, auth.tenant_id, limit=limit, offset=offset)


@router.put("/transcription-config", response_model=UsageReport)
async def update_transcription_config(
    body: ConfigUpdate, auth: TenantAdmin, session: Session,
) -> UsageReport:
    """Change custom limit, overage or language; the plan decides what is allowed."""
    return await quota.update_config(session, auth.tenant_id, body.model_dump(exclude_unset=True))

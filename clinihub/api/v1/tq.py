"""TQ product endpoints that consume the transcription quota."""

from typing import Annotated

from fastapi import APIRouter, Depends, status

from clinihub.api.deps import Auth, Session, require_app_access
from clinihub.models.license import UserApplicationAccess
from clinihub.models.transcription import QuotaCheck, UsageRecordCreate, UsageRecordRead
from clinihub.services import quota

router = APIRouter(prefix="/tq", tags=["tq"])

TqAccess = Annotated[UserApplicationAccess, Depends(require_app_access("tq"))]


@router.post("/transcriptions/quota-check", response_model=QuotaCheck)
async def quota_check(auth: Auth, _grant: TqAccess, session: Session) -> QuotaCheck:
    """Call before starting a recording; 429 when the month is used up."""
    return await quota.check_quota(session, auth.tenant_id)


@router.post(
    "/transcriptions/usage",
    response_model=UsageRecordRead,
    status_code=status.HTTP_201_CREATED,
)
async def record_transcription_usage(
    body: UsageRecordCreate, auth: Auth, _grant: TqAccess, session: Session,
) -> UsageRecordRead:
    row = await quota.record_usage(
        session,
        auth.tenant_id,
        body.audio_duration_seconds,
        body.model,
        transcription_id=body.transcription_id,
        detected_language=body.detected_language,
        provider_request_id=body.provider_request_id,
    )
    return UsageRecordRead.model_validate(row)

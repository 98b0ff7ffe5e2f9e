"""Provisioning API keys for internal admins."""

from fastapi import APIRouter, status
from sqlmodel import select

from clinihub.api.deps import PlatformAdmin, Session
from clinihub.core.errors import NotFound
from clinihub.core.security import generate_api_key, hash_api_key
from clinihub.models.api_key import ApiKey, ApiKeyCreate, ApiKeyCreated, ApiKeyRead
from clinihub.models.base import utcnow

router = APIRouter(prefix="/platform/api-keys", tags=["platform"])


@router.post("", response_model=ApiKeyCreated, status_code=status.HTTP_201_CREATED)
async def create_api_key(
    body: ApiKeyCreate, admin: PlatformAdmin, session: Session,
) -> ApiKeyCreated:
    """Create a key. The raw value is returned once and never stored."""
    raw_key = generate_api_key()
    api_key = ApiKey(
        name=body.name,
        key_hash=hash_api_key(raw_key),
        key_prefix=raw_key[:12],
        scope=body.scope,
        created_by=admin.user_id,
        expires_at=body.expires_at,
    )
    session.add(api_key)
    await session.commit()
    await session.refresh(api_key)
    return ApiKeyCreated(**ApiKeyRead.model_validate(api_key).model_dump(), raw_key=raw_key)


@router.get("", response_model=list[ApiKeyRead])
async def list_api_keys(_admin: PlatformAdmin, session: Session) -> list[ApiKeyRead]:
    result = await session.execute(
        select(ApiKey).order_by(ApiKey.created_at.desc())  # type: ignore[union-attr]
    )
    return [ApiKeyRead.model_validate(k) for k in result.scalars().all()]


@router.delete("/{key_id}", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_api_key(key_id: int, _admin: PlatformAdmin, session: Session) -> None:
    api_key = await session.get(ApiKey, key_id)
    if api_key is None:
        raise NotFound("API key not found", key_id=key_id)
    api_key.is_active = False
    api_key.updated_at = utcnow()
    session.add(api_key)
    await session.commit()

"""Tenant-admin user management."""

from fastapi import APIRouter, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from clinihub.api.deps import Session, TenantAdmin
from clinihub.core.errors import Conflict, NotFound, ValidationFailed
from clinihub.core.security import hash_password, validate_password
from clinihub.models.base import utcnow
from clinihub.models.user import User, UserCreate, UserRead, UserType, UserUpdate

router = APIRouter(prefix="/users", tags=["users"])


@router.post("", response_model=UserRead, status_code=status.HTTP_201_CREATED)
async def create_user(body: UserCreate, auth: TenantAdmin, session: Session) -> UserRead:
    email = body.email.lower()
    validate_password(body.password)

    # Check email uniqueness within tenant
    stmt = select(User).where(User.tenant_id == auth.tenant_id, User.email == email)
    if (await session.execute(stmt)).scalar_one_or_none():
        raise Conflict("A user with this email already exists in this tenant", email=email)

    user_type = await get_user_type(session, body.user_type or str(body.role))
    user = User(
        tenant_id=auth.tenant_id,
        user_type_id=user_type.id,
        email=email,
        password_hash=hash_password(body.password),
        first_name=body.first_name,
        last_name=body.last_name,
        role=body.role,
    )
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return UserRead.model_validate(user)


@router.get("", response_model=list[UserRead])
async def list_users(auth: TenantAdmin, session: Session) -> list[UserRead]:
    stmt = (
        select(User)
        .where(User.tenant_id == auth.tenant_id)
        .order_by(User.email.asc())  # type: ignore[union-attr]
    )
    result = await session.execute(stmt)
    return [UserRead.model_validate(u) for u in result.scalars().all()]


@router.get("/{user_id}", response_model=UserRead)
async def get_user(user_id: int, auth: TenantAdmin, session: Session) -> UserRead:
    return UserRead.model_validate(await _get_or_404(user_id, auth.tenant_id, session))


@router.patch("/{user_id}", response_model=UserRead)
async def update_user(
    user_id: int, body: UserUpdate, auth: TenantAdmin, session: Session,
) -> UserRead:
    user = await _get_or_404(user_id, auth.tenant_id, session)

    update_data = body.model_dump(exclude_unset=True)
    if user.id == auth.user_id and update_data.get("is_active") is False:
        raise ValidationFailed("Administrators cannot deactivate themselves", field="isActive")
    for field, value in update_data.items():
        if value is not None:
            setattr(user, field, value)

    user.updated_at = utcnow()
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return UserRead.model_validate(user)


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def deactivate_user(user_id: int, auth: TenantAdmin, session: Session) -> None:
    user = await _get_or_404(user_id, auth.tenant_id, session)
    if user.id == auth.user_id:
        raise ValidationFailed("Administrators cannot deactivate themselves")
    user.is_active = False
    user.updated_at = utcnow()
    session.add(user)
    await session.commit()


# ── Internal helpers ──────────────────────────────────────────

async def get_user_type(session: AsyncSession, slug: str) -> UserType:
    result = await session.execute(select(UserType).where(UserType.slug == slug))
    user_type = result.scalar_one_or_none()
    if user_type is None:
        raise ValidationFailed(f"Unknown user type '{slug}'", field="userType")
    return user_type


async def _get_or_404(user_id: int, tenant_id: int, session: AsyncSession) -> User:
    stmt = select(User).where(User.id == user_id, User.tenant_id == tenant_id)
    user = (await session.execute(stmt)).scalar_one_or_none()
    if user is None:
        raise NotFound("User not found", user_id=user_id)
    return user

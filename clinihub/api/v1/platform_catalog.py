"""Internal-admin application catalog, seat pricing and transcription plans."""

from fastapi import APIRouter, status
from sqlmodel import select

from clinihub.api.deps import PlatformAdmin, Session
from clinihub.api.v1.users import get_user_type
from clinihub.core.errors import Conflict, NotFound, ValidationFailed
from clinihub.models.application import (
    Application,
    ApplicationCreate,
    ApplicationPricing,
    ApplicationRead,
    PricingCreate,
    PricingRead,
)
from clinihub.models.base import utcnow
from clinihub.models.transcription import PlanCreate, PlanRead, PlanUpdate, TranscriptionPlan
from clinihub.services import quota

router = APIRouter(prefix="/platform", tags=["platform"])


# ── Applications ──────────────────────────────────────────────

@router.get("/applications", response_model=list[ApplicationRead])
async def list_applications(_admin: PlatformAdmin, session: Session) -> list[ApplicationRead]:
    result = await session.execute(select(Application).order_by(Application.slug))
    return [ApplicationRead.model_validate(a) for a in result.scalars().all()]


@router.post(
    "/applications", response_model=ApplicationRead, status_code=status.HTTP_201_CREATED,
)
async def create_application(
    body: ApplicationCreate, _admin: PlatformAdmin, session: Session,
) -> ApplicationRead:
    existing = await session.execute(select(Application).where(Application.slug == body.slug))
    if existing.scalar_one_or_none():
        raise Conflict(f"Application '{body.slug}' already exists", slug=body.slug)
    application = Application(slug=body.slug, name=body.name, description=body.description)
    session.add(application)
    await session.commit()
    await session.refresh(application)
    return ApplicationRead.model_validate(application)


@router.get("/applications/{application_id}/pricing", response_model=list[PricingRead])
async def list_pricing(
    application_id: int, _admin: PlatformAdmin, session: Session,
) -> list[PricingRead]:
    result = await session.execute(
        select(ApplicationPricing)
        .where(ApplicationPricing.application_id == application_id)
        .order_by(ApplicationPricing.valid_from.desc())  # type: ignore[union-attr]
    )
    return [PricingRead.model_validate(p) for p in result.scalars().all()]


@router.post(
    "/applications/{application_id}/pricing",
    response_model=PricingRead,
    status_code=status.HTTP_201_CREATED,
)
async def set_pricing(
    application_id: int, body: PricingCreate, _admin: PlatformAdmin, session: Session,
) -> PricingRead:
    """Publish a new price; older rows for the same user type are retired.

    Existing grants keep the price they were granted at.
    """
    if body.price < 0:
        raise ValidationFailed("Price cannot be negative", field="price")
    if await session.get(Application, application_id) is None:
        raise NotFound("Application not found", application_id=application_id)
    user_type = await get_user_type(session, body.user_type)

    current = await session.execute(
        select(ApplicationPricing).where(
            ApplicationPricing.application_id == application_id,
            ApplicationPricing.user_type_id == user_type.id,
            ApplicationPricing.is_active.is_(True),  # type: ignore[union-attr]
        )
    )
    now = utcnow()
    for old in current.scalars().all():
        old.is_active = False
        old.updated_at = now
        session.add(old)

    pricing = ApplicationPricing(
        application_id=application_id,
        user_type_id=user_type.id,
        price=body.price,
        currency=body.currency,
        billing_cycle=body.billing_cycle,
        valid_from=now,
    )
    session.add(pricing)
    await session.commit()
    await session.refresh(pricing)
    return PricingRead.model_validate(pricing)


# ── Transcription plans ───────────────────────────────────────

@router.get("/transcription-plans", response_model=list[PlanRead])
async def list_plans(_admin: PlatformAdmin, session: Session) -> list[PlanRead]:
    result = await session.execute(
        select(TranscriptionPlan).order_by(TranscriptionPlan.monthly_minutes_limit, TranscriptionPlan.id)
    )
    return [PlanRead.model_validate(p) for p in result.scalars().all()]


@router.post(
    "/transcription-plans", response_model=PlanRead, status_code=status.HTTP_201_CREATED,
)
async def create_plan(body: PlanCreate, _admin: PlatformAdmin, session: Session) -> PlanRead:
    if body.monthly_minutes_limit < 0:
        raise ValidationFailed("monthlyMinutesLimit cannot be negative", field="monthlyMinutesLimit")
    existing = await session.execute(
        select(TranscriptionPlan).where(TranscriptionPlan.slug == body.slug)
    )
    if existing.scalar_one_or_none():
        raise Conflict(f"Plan '{body.slug}' already exists", slug=body.slug)
    plan = TranscriptionPlan(**body.model_dump())
    session.add(plan)
    await session.commit()
    await session.refresh(plan)
    return PlanRead.model_validate(plan)


@router.patch("/transcription-plans/{plan_id}", response_model=PlanRead)
async def update_plan(
    plan_id: int, body: PlanUpdate, _admin: PlatformAdmin, session: Session,
) -> PlanRead:
    if body.monthly_minutes_limit is not None and body.monthly_minutes_limit < 0:
        raise ValidationFailed("monthlyMinutesLimit cannot be negative", field="monthlyMinutesLimit")
    plan = await session.get(TranscriptionPlan, plan_id)
    if plan is None:
        raise NotFound("Transcription plan not found", plan_id=plan_id)
    for field, value in body.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(plan, field, value)
    plan.updated_at = utcnow()
    session.add(plan)
    await session.commit()
    # A plan change moves the limit of every tenant on it
    quota.invalidate()
    return PlanRead.model_validate(plan)

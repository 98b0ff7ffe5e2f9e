"""Transcription quota engine.

Usage is an append-only ledger of recordings; monthly figures are always
sums over those rows. The plan + config pair that determines a tenant's
limit is cached per tenant and dropped on every mutation.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import StrEnum
from typing import Any

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from clinihub.core import cache, policy
from clinihub.core.config import get_settings
from clinihub.core.errors import (
    LicenseNotFound,
    NotFound,
    QuotaExceeded,
    TranscriptionNotConfigured,
    ValidationFailed,
)
from clinihub.core.locale import locale_for_timezone
from clinihub.core.pricing import DEFAULT_STT_MODEL, calc_cost
from clinihub.core.tenancy import ensure_tenant_scope
from clinihub.models.base import utcnow
from clinihub.models.tenant import Tenant
from clinihub.models.transcription import (
    ConfigSummary,
    CurrentUsage,
    MonthlyUsage,
    PlanSummary,
    QuotaCheck,
    TenantTranscriptionConfig,
    TenantTranscriptionUsage,
    TranscriptionPlan,
    UsageRecordPage,
    UsageRecordRead,
    UsageReport,
)
from clinihub.services.licensing import get_application_by_slug, get_license

logger = logging.getLogger(__name__)

settings = get_settings()

CACHE_NAMESPACE = "quota"
HISTORY_MONTHS = 6
NEAR_LIMIT_THRESHOLD = 0.9


class UsageState(StrEnum):
    UNDER_LIMIT = "under_limit"
    NEAR_LIMIT = "near_limit"
    AT_OR_OVER_LIMIT = "at_or_over_limit"


@dataclass(frozen=True)
class QuotaSettings:
    """Snapshot of a tenant's plan + config, safe to share through the cache."""

    config_id: int
    plan_id: int
    plan_slug: str
    plan_name: str
    plan_minimum: int
    allows_custom_limits: bool
    allows_overage: bool
    stt_model: str
    custom_monthly_limit: int | None
    overage_override: bool
    enabled: bool
    transcription_language: str | None

    @property
    def monthly_limit(self) -> int:
        return effective_monthly_limit(
            self.plan_minimum, self.allows_custom_limits, self.custom_monthly_limit,
        )

    @property
    def overage_allowed(self) -> bool:
        return self.allows_overage and self.overage_override


# ── Pure derivations ──────────────────────────────────────────

def minutes_rounded(audio_duration_seconds: float) -> int:
    if audio_duration_seconds < 0:
        raise ValidationFailed(
            "Audio duration cannot be negative", field="audioDurationSeconds",
        )
    return math.ceil(audio_duration_seconds / 60)


def effective_monthly_limit(
    plan_minimum: int, allows_custom_limits: bool, custom_monthly_limit: int | None,
) -> int:
    if allows_custom_limits and custom_monthly_limit is not None:
        return custom_monthly_limit
    return plan_minimum


def percent_used(used: int, limit: int) -> float:
    if limit <= 0:
        return 0.0
    return round(used / limit, 4)


def usage_state(used: int, limit: int) -> UsageState:
    if used >= limit:
        return UsageState.AT_OR_OVER_LIMIT
    if limit > 0 and used / limit >= NEAR_LIMIT_THRESHOLD:
        return UsageState.NEAR_LIMIT
    return UsageState.UNDER_LIMIT


def month_key(moment: datetime) -> str:
    return moment.strftime("%Y-%m")


def previous_months(moment: datetime, count: int) -> list[str]:
    """``count`` month keys ending with ``moment``'s month, newest first."""
    year, month = moment.year, moment.month
    keys = []
    for _ in range(count):
        keys.append(f"{year:04d}-{month:02d}")
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return keys


# ── Settings lookup ───────────────────────────────────────────

async def load_settings(session: AsyncSession, tenant_id: int) -> QuotaSettings | None:
    key = (CACHE_NAMESPACE, tenant_id)
    cached = cache.get(key, ttl=settings.quota_cache_ttl)
    if cached is not None:
        return cached

    observed = cache.generation(key)
    stmt = (
        select(TenantTranscriptionConfig, TranscriptionPlan)
        .join(TranscriptionPlan, TranscriptionPlan.id == TenantTranscriptionConfig.plan_id)
        .where(TenantTranscriptionConfig.tenant_id == tenant_id)
        .execution_options(populate_existing=True)
    )
    row = (await session.execute(stmt)).first()
    if row is None:
        return None
    config, plan = row
    snapshot = QuotaSettings(
        config_id=config.id,
        plan_id=plan.id,
        plan_slug=plan.slug,
        plan_name=plan.name,
        plan_minimum=plan.monthly_minutes_limit,
        allows_custom_limits=plan.allows_custom_limits,
        allows_overage=plan.allows_overage,
        stt_model=plan.stt_model,
        custom_monthly_limit=config.custom_monthly_limit,
        overage_override=config.overage_allowed,
        enabled=config.enabled,
        transcription_language=config.transcription_language,
    )
    # A config or plan change committed during the query leaves this snapshot uncached
    cache.put(key, snapshot, observed)
    return snapshot


async def require_settings(session: AsyncSession, tenant_id: int) -> QuotaSettings:
    quota = await load_settings(session, tenant_id)
    if quota is None or not quota.enabled:
        raise TranscriptionNotConfigured(tenant_id=tenant_id)
    return quota


def invalidate(tenant_id: int | None = None) -> None:
    if tenant_id is None:
        cache.invalidate_namespace(CACHE_NAMESPACE)
    else:
        cache.invalidate((CACHE_NAMESPACE, tenant_id))


# ── Aggregates ────────────────────────────────────────────────

async def _monthly_totals(
    session: AsyncSession, tenant_id: int, months: list[str],
) -> dict[str, tuple[int, int, float]]:
    """month -> (minutes, recordings, cost) for the given months."""
    stmt = (
        select(
            TenantTranscriptionUsage.usage_month,
            func.coalesce(func.sum(TenantTranscriptionUsage.minutes_rounded), 0),
            func.count(TenantTranscriptionUsage.id),
            func.coalesce(func.sum(TenantTranscriptionUsage.cost_usd), 0.0),
        )
        .where(
            TenantTranscriptionUsage.tenant_id == tenant_id,
            TenantTranscriptionUsage.usage_month.in_(months),  # type: ignore[attr-defined]
        )
        .group_by(TenantTranscriptionUsage.usage_month)
    )
    rows = (await session.execute(stmt)).all()
    return {month: (int(minutes), int(count), float(cost)) for month, minutes, count, cost in rows}


async def minutes_used(session: AsyncSession, tenant_id: int, month: str) -> int:
    totals = await _monthly_totals(session, tenant_id, [month])
    return totals.get(month, (0, 0, 0.0))[0]


# ── Operations ────────────────────────────────────────────────

async def get_usage(session: AsyncSession, tenant_id: int) -> UsageReport:
    ensure_tenant_scope(tenant_id)
    quota = await require_settings(session, tenant_id)
    limit = quota.monthly_limit
    months = previous_months(utcnow(), HISTORY_MONTHS)
    totals = await _monthly_totals(session, tenant_id, months)

    used, count, cost = totals.get(months[0], (0, 0, 0.0))
    current = CurrentUsage(
        month=months[0],
        minutes_used=used,
        limit=limit,
        remaining=max(0, limit - used),
        percent_used=percent_used(used, limit),
        overage=max(0, used - limit),
        overage_allowed=quota.overage_allowed,
        state=usage_state(used, limit),
        transcription_count=count,
        total_cost_usd=round(cost, 4),
    )
    history = []
    for month in months:
        m_used, m_count, m_cost = totals.get(month, (0, 0, 0.0))
        history.append(MonthlyUsage(
            month=month,
            minutes_used=m_used,
            transcription_count=m_count,
            total_cost_usd=round(m_cost, 4),
            limit=limit,
            overage=max(0, m_used - limit),
        ))

    return UsageReport(
        current=current,
        history=history,
        plan=PlanSummary(
            slug=quota.plan_slug,
            name=quota.plan_name,
            allows_custom_limits=quota.allows_custom_limits,
            allows_overage=quota.allows_overage,
        ),
        config=ConfigSummary(
            custom_monthly_limit=quota.custom_monthly_limit,
            transcription_language=quota.transcription_language,
            overage_allowed=quota.overage_override,
            enabled=quota.enabled,
        ),
    )


async def record_usage(
    session: AsyncSession,
    tenant_id: int,
    audio_duration_seconds: float,
    model: str | None = None,
    *,
    transcription_id: str | None = None,
    detected_language: str | None = None,
    provider_request_id: str | None = None,
) -> TenantTranscriptionUsage:
    """Append one usage row. Never enforces the limit; see ``check_quota``."""
    ensure_tenant_scope(tenant_id)
    minutes = minutes_rounded(audio_duration_seconds)
    if model is None:
        quota = await load_settings(session, tenant_id)
        model = quota.stt_model if quota is not None else DEFAULT_STT_MODEL
    now = utcnow()
    row = TenantTranscriptionUsage(
        tenant_id=tenant_id,
        transcription_id=transcription_id,
        audio_duration_seconds=audio_duration_seconds,
        minutes_rounded=minutes,
        stt_model=model,
        detected_language=detected_language,
        provider_request_id=provider_request_id,
        cost_usd=calc_cost(model, audio_duration_seconds),
        usage_month=month_key(now),
        usage_date=now,
    )
    session.add(row)
    await session.commit()
    await session.refresh(row)
    logger.info(
        "Recorded %s min (%ss, %s) for tenant %s",
        minutes, audio_duration_seconds, model, tenant_id,
    )
    return row


async def check_quota(session: AsyncSession, tenant_id: int) -> QuotaCheck:
    ensure_tenant_scope(tenant_id)
    quota = await require_settings(session, tenant_id)
    limit = quota.monthly_limit
    used = await minutes_used(session, tenant_id, month_key(utcnow()))
    exceeded = used >= limit
    if exceeded and not quota.overage_allowed:
        logger.info("Quota exceeded for tenant %s (%s/%s min)", tenant_id, used, limit)
        raise QuotaExceeded(minutes_used=used, limit=limit, overage_allowed=False)
    return QuotaCheck(
        allowed=True,
        limit=limit,
        minutes_used=used,
        remaining=max(0, limit - used),
        overage_allowed=quota.overage_allowed,
        has_exceeded=exceeded,
    )


async def update_config(
    session: AsyncSession, tenant_id: int, changes: dict[str, Any],
) -> UsageReport:
    """Apply tenant-admin changes after every field passes the plan policy."""
    ensure_tenant_scope(tenant_id)
    config = (await session.execute(
        select(TenantTranscriptionConfig).where(TenantTranscriptionConfig.tenant_id == tenant_id)
    )).scalar_one_or_none()
    if config is None:
        raise TranscriptionNotConfigured(tenant_id=tenant_id)
    plan = await session.get(TranscriptionPlan, config.plan_id)
    if plan is None:
        raise TranscriptionNotConfigured(tenant_id=tenant_id)

    policy.check_all(plan, changes)

    for name, value in changes.items():
        setattr(config, name, value)
    config.updated_at = utcnow()
    session.add(config)
    await session.commit()
    invalidate(tenant_id)
    logger.info("Tenant %s updated transcription config: %s", tenant_id, sorted(changes))
    return await get_usage(session, tenant_id)


async def list_usage_records(
    session: AsyncSession, tenant_id: int, *, limit: int = 50, offset: int = 0,
) -> UsageRecordPage:
    ensure_tenant_scope(tenant_id)
    await require_settings(session, tenant_id)
    total = (await session.execute(
        select(func.count()).select_from(TenantTranscriptionUsage)
        .where(TenantTranscriptionUsage.tenant_id == tenant_id)
    )).scalar_one()
    rows = (await session.execute(
        select(TenantTranscriptionUsage)
        .where(TenantTranscriptionUsage.tenant_id == tenant_id)
        .order_by(
            TenantTranscriptionUsage.usage_date.desc(),  # type: ignore[attr-defined]
            TenantTranscriptionUsage.id.desc(),  # type: ignore[union-attr]
        )
        .offset(offset)
        .limit(limit)
    )).scalars().all()
    return UsageRecordPage(
        data=[UsageRecordRead.model_validate(r) for r in rows],
        total=total,
        limit=limit,
        offset=offset,
    )


# ── Platform administration ───────────────────────────────────

async def upsert_config(
    session: AsyncSession,
    *,
    tenant_id: int,
    plan_id: int,
    custom_monthly_limit: int | None = None,
    overage_allowed: bool = False,
    enabled: bool = True,
) -> TenantTranscriptionConfig:
    """Assign a plan to a tenant. Flushes; the caller commits.

    The tenant needs a TQ license. The transcription language follows the
    tenant timezone, and trial plans set the TQ license to expire after the
    trial period.
    """
    tenant = await session.get(Tenant, tenant_id)
    if tenant is None:
        raise NotFound("Tenant not found", tenant_id=tenant_id)
    plan = await session.get(TranscriptionPlan, plan_id)
    if plan is None or not plan.is_active:
        raise NotFound("Transcription plan not found", plan_id=plan_id)

    tq = await get_application_by_slug(session, "tq")
    license_ = await get_license(session, tenant_id, tq.id)
    if license_ is None:
        raise LicenseNotFound("Tenant needs a TQ license before a plan can be assigned")

    # Platform admins set the plan, but custom values still honour its rules
    changes: dict[str, Any] = {"overage_allowed": overage_allowed}
    if custom_monthly_limit is not None:
        changes["custom_monthly_limit"] = custom_monthly_limit
    policy.check_all(plan, changes)

    now = utcnow()
    config = (await session.execute(
        select(TenantTranscriptionConfig).where(TenantTranscriptionConfig.tenant_id == tenant_id)
    )).scalar_one_or_none()
    if config is None:
        config = TenantTranscriptionConfig(tenant_id=tenant_id, plan_id=plan.id)
    config.plan_id = plan.id
    config.custom_monthly_limit = custom_monthly_limit if plan.allows_custom_limits else None
    config.overage_allowed = overage_allowed
    config.enabled = enabled
    config.transcription_language = locale_for_timezone(tenant.timezone)
    config.plan_activated_at = now
    config.updated_at = now
    session.add(config)

    if plan.is_trial and plan.trial_days:
        license_.expires_at = now + timedelta(days=plan.trial_days)
        license_.updated_at = now
        session.add(license_)

    await session.flush()
    invalidate(tenant_id)
    logger.info("Assigned plan %s to tenant %s", plan.slug, tenant_id)
    return config

"""Transcription plan, per-tenant config and usage models."""

from datetime import datetime

from sqlmodel import Field, SQLModel

from clinihub.models.base import ApiModel, TimestampMixin, utcnow


class TranscriptionPlan(TimestampMixin, SQLModel, table=True):
    __tablename__ = "transcription_plans"

    id: int | None = Field(default=None, primary_key=True)
    slug: str = Field(max_length=50, unique=True, nullable=False, index=True)
    name: str = Field(max_length=100, nullable=False)
    # Plan floor; custom limits may never go below it
    monthly_minutes_limit: int = Field(nullable=False)
    allows_custom_limits: bool = Field(default=False)
    allows_overage: bool = Field(default=False)
    stt_model: str = Field(default="nova-3", max_length=50)
    cost_per_minute_usd: float = Field(default=0.0043)
    is_trial: bool = Field(default=False)
    trial_days: int | None = Field(default=None)
    is_active: bool = Field(default=True)
    description: str = Field(default="", max_length=1000)


class TenantTranscriptionConfig(TimestampMixin, SQLModel, table=True):
    __tablename__ = "tenant_transcription_config"

    id: int | None = Field(default=None, primary_key=True)
    tenant_id: int = Field(foreign_key="tenants.id", unique=True, nullable=False)
    plan_id: int = Field(foreign_key="transcription_plans.id", nullable=False)
    custom_monthly_limit: int | None = Field(default=None)
    overage_allowed: bool = Field(default=False)
    enabled: bool = Field(default=True)
    transcription_language: str | None = Field(default=None, max_length=10)
    plan_activated_at: datetime = Field(default_factory=utcnow, nullable=False)


class TenantTranscriptionUsage(SQLModel, table=True):
    """One immutable row per recording event."""

    __tablename__ = "tenant_transcription_usage"

    id: int | None = Field(default=None, primary_key=True)
    tenant_id: int = Field(foreign_key="tenants.id", nullable=False, index=True)
    transcription_id: str | None = Field(default=None, max_length=64)
    audio_duration_seconds: float = Field(nullable=False)
    minutes_rounded: int = Field(nullable=False)
    stt_model: str = Field(max_length=50, nullable=False)
    detected_language: str | None = Field(default=None, max_length=10)
    provider_request_id: str | None = Field(default=None, max_length=255)
    cost_usd: float = Field(default=0.0)
    # "YYYY-MM", the aggregation key for monthly totals
    usage_month: str = Field(max_length=7, nullable=False, index=True)
    usage_date: datetime = Field(default_factory=utcnow, nullable=False)


# ── API schemas ───────────────────────────────────────────────

class PlanCreate(ApiModel):
    slug: str
    name: str
    monthly_minutes_limit: int
    allows_custom_limits: bool = False
    allows_overage: bool = False
    stt_model: str = "nova-3"
    cost_per_minute_usd: float = 0.0043
    is_trial: bool = False
    trial_days: int | None = None
    description: str = ""


class PlanUpdate(ApiModel):
    name: str | None = None
    monthly_minutes_limit: int | None = None
    allows_custom_limits: bool | None = None
    allows_overage: bool | None = None
    stt_model: str | None = None
    cost_per_minute_usd: float | None = None
    is_active: bool | None = None
    description: str | None = None


class PlanRead(ApiModel):
    id: int
    slug: str
    name: str
    monthly_minutes_limit: int
    allows_custom_limits: bool
    allows_overage: bool
    stt_model: str
    cost_per_minute_usd: float
    is_trial: bool
    trial_days: int | None
    is_active: bool


class PlanSummary(ApiModel):
    slug: str
    name: str
    allows_custom_limits: bool
    allows_overage: bool


class ConfigSummary(ApiModel):
    custom_monthly_limit: int | None
    transcription_language: str | None
    overage_allowed: bool
    enabled: bool


class ConfigUpdate(ApiModel):
    """Tenant-admin changes; only the fields actually sent are applied."""

    custom_monthly_limit: int | None = None
    overage_allowed: bool | None = None
    transcription_language: str | None = None


class ConfigAssign(ApiModel):
    """Platform-admin plan assignment (upsert)."""

    plan_id: int
    custom_monthly_limit: int | None = None
    overage_allowed: bool = False
    enabled: bool = True


class ConfigRead(ApiModel):
    tenant_id: int
    plan: PlanSummary
    custom_monthly_limit: int | None
    overage_allowed: bool
    enabled: bool
    transcription_language: str | None
    effective_monthly_limit: int
    plan_activated_at: datetime


class CurrentUsage(ApiModel):
    month: str
    minutes_used: int
    limit: int
    remaining: int
    percent_used: float
    overage: int
    overage_allowed: bool
    state: str
    transcription_count: int
    total_cost_usd: float


class MonthlyUsage(ApiModel):
    month: str
    minutes_used: int
    transcription_count: int
    total_cost_usd: float
    limit: int
    overage: int


class UsageReport(ApiModel):
    current: CurrentUsage
    history: list[MonthlyUsage]
    plan: PlanSummary
    config: ConfigSummary


class UsageRecordCreate(ApiModel):
    audio_duration_seconds: float
    model: str | None = None
    transcription_id: str | None = None
    detected_language: str | None = None
    provider_request_id: str | None = None


class UsageRecordRead(ApiModel):
    id: int
    transcription_id: str | None
    audio_duration_seconds: float
    minutes_rounded: int
    stt_model: str
    detected_language: str | None
    cost_usd: float
    usage_month: str
    usage_date: datetime


class UsageRecordPage(ApiModel):
    data: list[UsageRecordRead]
    total: int
    limit: int
    offset: int


class QuotaCheck(ApiModel):
    allowed: bool
    limit: int
    minutes_used: int
    remaining: int
    overage_allowed: bool
    has_exceeded: bool

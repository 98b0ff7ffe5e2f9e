"""Tenant model: the top-level isolation boundary."""

from datetime import datetime
from enum import StrEnum

from sqlmodel import Field, SQLModel

from clinihub.models.base import ApiModel, TimestampMixin


class TenantStatus(StrEnum):
    ACTIVE = "active"
    SUSPENDED = "suspended"


class Tenant(TimestampMixin, SQLModel, table=True):
    __tablename__ = "tenants"

    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(max_length=255, nullable=False)
    # Human-facing identifier; never used in trust-bearing fields
    subdomain: str = Field(max_length=50, unique=True, nullable=False, index=True)
    status: TenantStatus = Field(default=TenantStatus.ACTIVE)
    timezone: str = Field(default="America/Sao_Paulo", max_length=64)


# ── API schemas ───────────────────────────────────────────────

class TenantCreate(ApiModel):
    name: str
    subdomain: str
    timezone: str = "America/Sao_Paulo"


class TenantUpdate(ApiModel):
    name: str | None = None
    status: TenantStatus | None = None
    timezone: str | None = None


class TenantRead(ApiModel):
    id: int
    name: str
    subdomain: str
    status: TenantStatus
    timezone: str
    locale: str
    schema_name: str
    created_at: datetime

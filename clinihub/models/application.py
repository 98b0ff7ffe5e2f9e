"""Application and per-user-type pricing models."""

from datetime import datetime
from decimal import Decimal
from enum import StrEnum

from sqlmodel import Field, SQLModel

from clinihub.models.base import ApiModel, TimestampMixin, utcnow


class ApplicationStatus(StrEnum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class BillingCycle(StrEnum):
    MONTHLY = "monthly"
    YEARLY = "yearly"


class Application(TimestampMixin, SQLModel, table=True):
    __tablename__ = "applications"

    id: int | None = Field(default=None, primary_key=True)
    slug: str = Field(max_length=50, unique=True, nullable=False, index=True)
    name: str = Field(max_length=255, nullable=False)
    description: str = Field(default="", max_length=1000)
    status: ApplicationStatus = Field(default=ApplicationStatus.ACTIVE)


class ApplicationPricing(TimestampMixin, SQLModel, table=True):
    """Price of one seat of an application for one user type."""

    __tablename__ = "application_pricing"

    id: int | None = Field(default=None, primary_key=True)
    application_id: int = Field(foreign_key="applications.id", nullable=False, index=True)
    user_type_id: int = Field(foreign_key="user_types.id", nullable=False)
    price: Decimal = Field(default=Decimal("0"), max_digits=10, decimal_places=2)
    currency: str = Field(default="BRL", max_length=3)
    billing_cycle: BillingCycle = Field(default=BillingCycle.MONTHLY)
    is_active: bool = Field(default=True)
    valid_from: datetime = Field(default_factory=utcnow, nullable=False)


# ── API schemas ───────────────────────────────────────────────

class ApplicationCreate(ApiModel):
    slug: str
    name: str
    description: str = ""


class ApplicationRead(ApiModel):
    id: int
    slug: str
    name: str
    description: str
    status: ApplicationStatus


class PricingCreate(ApiModel):
    user_type: str  # slug
    price: Decimal
    currency: str = "BRL"
    billing_cycle: BillingCycle = BillingCycle.MONTHLY


class PricingRead(ApiModel):
    id: int
    application_id: int
    user_type_id: int
    price: Decimal
    currency: str
    billing_cycle: BillingCycle
    is_active: bool
    valid_from: datetime

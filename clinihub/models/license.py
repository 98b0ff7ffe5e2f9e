"""License (tenant × application) and user-access grant models."""

from datetime import datetime
from decimal import Decimal
from enum import StrEnum

from sqlmodel import Field, SQLModel, UniqueConstraint

from clinihub.models.base import ApiModel, TimestampMixin, utcnow


class LicenseStatus(StrEnum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    # Computed at read time from expires_at, never stored
    EXPIRED = "expired"


class AppRole(StrEnum):
    USER = "user"
    ADMIN = "admin"
    MANAGER = "manager"
    OPERATIONS = "operations"


class TenantApplication(TimestampMixin, SQLModel, table=True):
    __tablename__ = "tenant_applications"
    __table_args__ = (
        UniqueConstraint("tenant_id", "application_id", name="uq_tenant_applications_pair"),
    )

    id: int | None = Field(default=None, primary_key=True)
    tenant_id: int = Field(foreign_key="tenants.id", nullable=False, index=True)
    application_id: int = Field(foreign_key="applications.id", nullable=False, index=True)
    status: LicenseStatus = Field(default=LicenseStatus.ACTIVE)
    seats_purchased: int = Field(default=1, ge=0)
    # Cache of the active-grant count, rewritten in the grant/revoke transaction
    seats_used: int = Field(default=0)
    activated_at: datetime = Field(default_factory=utcnow, nullable=False)
    expires_at: datetime | None = Field(default=None)


class UserApplicationAccess(TimestampMixin, SQLModel, table=True):
    __tablename__ = "user_application_access"
    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "user_id", "application_id", name="uq_user_application_access_triple",
        ),
    )

    id: int | None = Field(default=None, primary_key=True)
    tenant_id: int = Field(foreign_key="tenants.id", nullable=False, index=True)
    user_id: int = Field(foreign_key="users.id", nullable=False, index=True)
    application_id: int = Field(foreign_key="applications.id", nullable=False, index=True)
    role_in_app: AppRole = Field(default=AppRole.USER)
    is_active: bool = Field(default=True)

    # Billing snapshot taken at grant time
    price_snapshot: Decimal = Field(default=Decimal("0"), max_digits=10, decimal_places=2)
    currency_snapshot: str = Field(default="BRL", max_length=3)
    user_type_id_snapshot: int | None = Field(default=None, foreign_key="user_types.id")
    granted_cycle: str | None = Field(default=None, max_length=20)

    granted_at: datetime = Field(default_factory=utcnow, nullable=False)
    granted_by: int | None = Field(default=None, foreign_key="users.id")
    revoked_at: datetime | None = Field(default=None)


class AccessLog(SQLModel, table=True):
    """Append-only audit trail of grant / revoke decisions."""

    __tablename__ = "access_logs"

    id: int | None = Field(default=None, primary_key=True)
    tenant_id: int = Field(foreign_key="tenants.id", nullable=False, index=True)
    user_id: int = Field(foreign_key="users.id", nullable=False)
    application_id: int = Field(foreign_key="applications.id", nullable=False)
    action: str = Field(max_length=20, nullable=False)
    reason: str = Field(default="", max_length=255)
    actor_id: int | None = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow, nullable=False)


# ── API schemas ───────────────────────────────────────────────

class PricingSnapshot(ApiModel):
    price: Decimal
    currency: str
    user_type_id: int | None = None
    billing_cycle: str | None = None


class LicenseUser(ApiModel):
    email: str
    role: AppRole
    granted_at: datetime


class LicenseRead(ApiModel):
    application_id: int
    slug: str
    name: str
    status: LicenseStatus
    activated_at: datetime
    expires_at: datetime | None
    seats_used: int
    seats_purchased: int
    users: list[LicenseUser]


class LicenseSummary(ApiModel):
    apps: int
    seats_used: int


class LicenseListing(ApiModel):
    licenses: list[LicenseRead]
    summary: LicenseSummary


class LicenseActivate(ApiModel):
    application_slug: str
    seats_purchased: int = 1
    expires_at: datetime | None = None


class LicenseUpdate(ApiModel):
    seats_purchased: int | None = None
    status: LicenseStatus | None = None
    expires_at: datetime | None = None


class GrantCreate(ApiModel):
    user_id: int
    role_in_app: AppRole = AppRole.USER


class GrantRead(ApiModel):
    id: int
    tenant_id: int
    user_id: int
    application_id: int
    role_in_app: AppRole
    is_active: bool
    price_snapshot: Decimal
    currency_snapshot: str
    user_type_id_snapshot: int | None
    granted_cycle: str | None
    granted_at: datetime
    revoked_at: datetime | None

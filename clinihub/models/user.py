"""Users and user types. Every user belongs to one tenant."""

from datetime import datetime
from enum import StrEnum

from pydantic import EmailStr
from sqlmodel import Field, SQLModel, UniqueConstraint

from clinihub.models.base import ApiModel, TimestampMixin


class UserRole(StrEnum):
    ADMIN = "admin"
    MANAGER = "manager"
    OPERATIONS = "operations"


class PlatformRole(StrEnum):
    INTERNAL_ADMIN = "internal_admin"


class UserType(TimestampMixin, SQLModel, table=True):
    """Billing tier of a user; pricing is defined per (application, user type)."""

    __tablename__ = "user_types"

    id: int | None = Field(default=None, primary_key=True)
    slug: str = Field(max_length=50, unique=True, nullable=False)
    name: str = Field(max_length=100, nullable=False)
    hierarchy_level: int = Field(default=0)


class User(TimestampMixin, SQLModel, table=True):
    __tablename__ = "users"
    __table_args__ = (UniqueConstraint("tenant_id", "email", name="uq_users_tenant_email"),)

    id: int | None = Field(default=None, primary_key=True)
    tenant_id: int = Field(foreign_key="tenants.id", nullable=False, index=True)
    user_type_id: int = Field(foreign_key="user_types.id", nullable=False)
    email: str = Field(max_length=320, nullable=False, index=True)
    password_hash: str = Field(nullable=False)
    first_name: str = Field(default="", max_length=100)
    last_name: str = Field(default="", max_length=100)
    role: UserRole = Field(default=UserRole.OPERATIONS)
    platform_role: PlatformRole | None = Field(default=None)
    is_active: bool = Field(default=True)
    last_login_at: datetime | None = Field(default=None)


# ── API schemas ───────────────────────────────────────────────

class UserTypeRead(ApiModel):
    id: int
    slug: str
    hierarchy_level: int


class UserCreate(ApiModel):
    email: EmailStr
    password: str
    first_name: str = ""
    last_name: str = ""
    role: UserRole = UserRole.OPERATIONS
    user_type: str | None = None  # slug; defaults to the role's slug


class UserUpdate(ApiModel):
    first_name: str | None = None
    last_name: str | None = None
    role: UserRole | None = None
    is_active: bool | None = None


class UserRead(ApiModel):
    id: int
    tenant_id: int
    email: str
    first_name: str
    last_name: str
    role: UserRole
    platform_role: PlatformRole | None
    is_active: bool

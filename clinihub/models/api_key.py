"""Hashed API keys for machine-to-machine provisioning."""

from datetime import datetime

from sqlmodel import Field, SQLModel

from clinihub.models.base import ApiModel, TimestampMixin


class ApiKey(TimestampMixin, SQLModel, table=True):
    __tablename__ = "api_keys"

    id: int | None = Field(default=None, primary_key=True)

    # Human-readable label, e.g. "billing-webhook-prod"
    name: str = Field(max_length=100, nullable=False)

    # SHA-256 of the raw key; the raw value is shown once at creation
    key_hash: str = Field(nullable=False, unique=True, index=True)

    # Prefix stored for identification (e.g. "chub_Ab3xY")
    key_prefix: str = Field(max_length=12, nullable=False)

    scope: str = Field(default="provisioning", max_length=50)
    created_by: int | None = Field(default=None, foreign_key="users.id")
    is_active: bool = Field(default=True)
    expires_at: datetime | None = Field(default=None)
    last_used_at: datetime | None = Field(default=None)


# ── API schemas ───────────────────────────────────────────────

class ApiKeyCreate(ApiModel):
    name: str
    scope: str = "provisioning"
    expires_at: datetime | None = None


class ApiKeyRead(ApiModel):
    """Listing view; never includes the raw key."""
    id: int
    name: str
    key_prefix: str
    scope: str
    is_active: bool
    expires_at: datetime | None
    last_used_at: datetime | None
    created_at: datetime


class ApiKeyCreated(ApiKeyRead):
    """Creation response, the only place the raw key appears."""
    raw_key: str

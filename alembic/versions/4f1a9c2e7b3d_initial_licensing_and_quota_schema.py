"""initial tenants, licensing and transcription quota schema

Revision ID: 4f1a9c2e7b3d
Revises: 
Create Date: 2026-10-17 09:12:41.208114

"""
from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '4f1a9c2e7b3d'
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

# Enum columns store member names, matching the SQLModel mapping
tenant_status = sa.Enum("ACTIVE", "SUSPENDED", name="tenantstatus")
user_role = sa.Enum("ADMIN", "MANAGER", "OPERATIONS", name="userrole")
platform_role = sa.Enum("INTERNAL_ADMIN", name="platformrole")
application_status = sa.Enum("ACTIVE", "INACTIVE", name="applicationstatus")
billing_cycle = sa.Enum("MONTHLY", "YEARLY", name="billingcycle")
license_status = sa.Enum("ACTIVE", "SUSPENDED", "EXPIRED", name="licensestatus")
app_role = sa.Enum("USER", "ADMIN", "MANAGER", "OPERATIONS", name="approle")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "tenants",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("subdomain", sa.String(50), nullable=False),
        sa.Column("status", tenant_status, nullable=False, server_default="ACTIVE"),
        sa.Column("timezone", sa.String(64), nullable=False, server_default="America/Sao_Paulo"),
        *_timestamps(),
    )
    op.create_index("ix_tenants_subdomain", "tenants", ["subdomain"], unique=True)

    op.create_table(
        "user_types",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("slug", sa.String(50), nullable=False, unique=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("hierarchy_level", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
    )

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("user_type_id", sa.Integer(), sa.ForeignKey("user_types.id"), nullable=False),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("password_hash", sa.String(), nullable=False),
        sa.Column("first_name", sa.String(100), nullable=False, server_default=""),
        sa.Column("last_name", sa.String(100), nullable=False, server_default=""),
        sa.Column("role", user_role, nullable=False, server_default="OPERATIONS"),
        sa.Column("platform_role", platform_role, nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_login_at", sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "email", name="uq_users_tenant_email"),
    )
    op.create_index("ix_users_tenant_id", "users", ["tenant_id"])
    op.create_index("ix_users_email", "users", ["email"])

    op.create_table(
        "applications",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("slug", sa.String(50), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.String(1000), nullable=False, server_default=""),
        sa.Column("status", application_status, nullable=False, server_default="ACTIVE"),
        *_timestamps(),
    )
    op.create_index("ix_applications_slug", "applications", ["slug"], unique=True)

    op.create_table(
        "application_pricing",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("application_id", sa.Integer(), sa.ForeignKey("applications.id"), nullable=False),
        sa.Column("user_type_id", sa.Integer(), sa.ForeignKey("user_types.id"), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="BRL"),
        sa.Column("billing_cycle", billing_cycle, nullable=False, server_default="MONTHLY"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("valid_from", sa.DateTime(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("price >= 0", name="ck_application_pricing_price"),
    )
    op.create_index("ix_application_pricing_application_id", "application_pricing", ["application_id"])

    op.create_table(
        "tenant_applications",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("application_id", sa.Integer(), sa.ForeignKey("applications.id"), nullable=False),
        sa.Column("status", license_status, nullable=False, server_default="ACTIVE"),
        sa.Column("seats_purchased", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("seats_used", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("activated_at", sa.DateTime(), nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "application_id", name="uq_tenant_applications_pair"),
        sa.CheckConstraint("seats_purchased >= 0", name="ck_tenant_applications_seats"),
    )
    op.create_index("ix_tenant_applications_tenant_id", "tenant_applications", ["tenant_id"])
    op.create_index("ix_tenant_applications_application_id", "tenant_applications", ["application_id"])

    op.create_table(
        "user_application_access",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("application_id", sa.Integer(), sa.ForeignKey("applications.id"), nullable=False),
        sa.Column("role_in_app", app_role, nullable=False, server_default="USER"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("price_snapshot", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("currency_snapshot", sa.String(3), nullable=False, server_default="BRL"),
        sa.Column("user_type_id_snapshot", sa.Integer(), sa.ForeignKey("user_types.id"), nullable=True),
        sa.Column("granted_cycle", sa.String(20), nullable=True),
        sa.Column("granted_at", sa.DateTime(), nullable=False),
        sa.Column("granted_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("revoked_at", sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint(
            "tenant_id", "user_id", "application_id", name="uq_user_application_access_triple",
        ),
    )
    op.create_index("ix_user_application_access_tenant_id", "user_application_access", ["tenant_id"])
    op.create_index("ix_user_application_access_user_id", "user_application_access", ["user_id"])
    op.create_index(
        "ix_user_application_access_application_id", "user_application_access", ["application_id"],
    )

    op.create_table(
        "access_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("application_id", sa.Integer(), sa.ForeignKey("applications.id"), nullable=False),
        sa.Column("action", sa.String(20), nullable=False),
        sa.Column("reason", sa.String(255), nullable=False, server_default=""),
        sa.Column("actor_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_access_logs_tenant_id", "access_logs", ["tenant_id"])

    op.create_table(
        "transcription_plans",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("slug", sa.String(50), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("monthly_minutes_limit", sa.Integer(), nullable=False),
        sa.Column("allows_custom_limits", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("allows_overage", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("stt_model", sa.String(50), nullable=False, server_default="nova-3"),
        sa.Column("cost_per_minute_usd", sa.Float(), nullable=False, server_default="0.0043"),
        sa.Column("is_trial", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("trial_days", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("description", sa.String(1000), nullable=False, server_default=""),
        *_timestamps(),
    )
    op.create_index("ix_transcription_plans_slug", "transcription_plans", ["slug"], unique=True)

    op.create_table(
        "tenant_transcription_config",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id"), nullable=False, unique=True),
        sa.Column("plan_id", sa.Integer(), sa.ForeignKey("transcription_plans.id"), nullable=False),
        sa.Column("custom_monthly_limit", sa.Integer(), nullable=True),
        sa.Column("overage_allowed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("transcription_language", sa.String(10), nullable=True),
        sa.Column("plan_activated_at", sa.DateTime(), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "tenant_transcription_usage",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("transcription_id", sa.String(64), nullable=True),
        sa.Column("audio_duration_seconds", sa.Float(), nullable=False),
        sa.Column("minutes_rounded", sa.Integer(), nullable=False),
        sa.Column("stt_model", sa.String(50), nullable=False),
        sa.Column("detected_language", sa.String(10), nullable=True),
        sa.Column("provider_request_id", sa.String(255), nullable=True),
        sa.Column("cost_usd", sa.Float(), nullable=False, server_default="0"),
        sa.Column("usage_month", sa.String(7), nullable=False),
        sa.Column("usage_date", sa.DateTime(), nullable=False),
        sa.CheckConstraint("audio_duration_seconds >= 0", name="ck_usage_duration"),
    )
    op.create_index("ix_tenant_transcription_usage_tenant_id", "tenant_transcription_usage", ["tenant_id"])
    op.create_index(
        "ix_tenant_transcription_usage_usage_month", "tenant_transcription_usage", ["usage_month"],
    )

    op.create_table(
        "api_keys",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("key_hash", sa.String(), nullable=False),
        sa.Column("key_prefix", sa.String(12), nullable=False),
        sa.Column("scope", sa.String(50), nullable=False, server_default="provisioning"),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("expires_at", sa.DateTime(), nullable=True),
        sa.Column("last_used_at", sa.DateTime(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_api_keys_key_hash", "api_keys", ["key_hash"], unique=True)


def downgrade() -> None:
    op.drop_table("api_keys")
    op.drop_table("tenant_transcription_usage")
    op.drop_table("tenant_transcription_config")
    op.drop_table("transcription_plans")
    op.drop_table("access_logs")
    op.drop_table("user_application_access")
    op.drop_table("tenant_applications")
    op.drop_table("application_pricing")
    op.drop_table("applications")
    op.drop_table("users")
    op.drop_table("user_types")
    op.drop_table("tenants")
    for enum in (
        app_role, license_status, billing_cycle, application_status,
        platform_role, user_role, tenant_status,
    ):
        enum.drop(op.get_bind(), checkfirst=True)

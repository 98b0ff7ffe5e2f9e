"""Tenant identity resolution and per-request tenant context.

A tenant identifier arrives either as a positive integer (the tenant id,
the only form trusted by sessions, ledgers and quotas) or as a slug (the
subdomain, human-facing only). Both are validated before anything derives a
namespace from them.
"""

import logging
import re
from contextvars import ContextVar
from dataclasses import dataclass
from enum import StrEnum

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from clinihub.core.config import get_settings
from clinihub.core.database import is_postgres, schema_exists
from clinihub.core.errors import InvalidTenantIdentifier, TenantMismatch, TenantNotFound
from clinihub.core.locale import locale_for_timezone
from clinihub.models.tenant import Tenant, TenantStatus

logger = logging.getLogger(__name__)

settings = get_settings()

_SLUG_RE = re.compile(r"^[A-Za-z0-9_-]+$")
SLUG_MIN_LENGTH = 2
SLUG_MAX_LENGTH = 50

EXEMPT_PREFIXES = (
    "/health",
    "/docs",
    "/redoc",
    "/openapi.json",
    "/v1/system",
    "/v1/platform-auth",
    "/v1/platform",
    "/v1/provisioning",
    "/v1/public",
)


class IdentifierFormat(StrEnum):
    NUMERIC = "numeric"
    SLUG = "slug"


@dataclass(frozen=True)
class TenantIdentifier:
    value: str
    format: IdentifierFormat

    @property
    def tenant_id(self) -> int | None:
        return int(self.value) if self.format is IdentifierFormat.NUMERIC else None


@dataclass(frozen=True)
class TenantContext:
    """Resolved tenant, bound to one request."""

    id: int
    subdomain: str
    name: str
    schema: str
    timezone: str
    locale: str
    source_format: IdentifierFormat


def validate_identifier(raw: str | int | None) -> TenantIdentifier:
    """Classify ``raw`` as numeric or slug; reject everything else."""
    if raw is None:
        raise InvalidTenantIdentifier("Tenant identifier is empty")
    value = str(raw).strip()
    if value.isascii() and value.isdigit():
        if int(value) <= 0:
            raise InvalidTenantIdentifier("Tenant id must be a positive integer", value=value)
        return TenantIdentifier(str(int(value)), IdentifierFormat.NUMERIC)
    if not SLUG_MIN_LENGTH <= len(value) <= SLUG_MAX_LENGTH or not _SLUG_RE.match(value):
        raise InvalidTenantIdentifier(
            "Tenant identifier must be a positive integer or a slug of "
            f"{SLUG_MIN_LENGTH}-{SLUG_MAX_LENGTH} letters, digits, '-' or '_'",
        )
    return TenantIdentifier(value, IdentifierFormat.SLUG)


def derive_namespace(identifier: TenantIdentifier) -> str:
    """Schema name for a canonical (numeric) tenant identifier.

    Slugs are resolved to their tenant id first, so a slug never names a
    schema of its own.
    """
    if identifier.format is not IdentifierFormat.NUMERIC:
        raise InvalidTenantIdentifier(
            "Only numeric tenant identifiers map to a schema", value=identifier.value,
        )
    return f"{settings.tenant_schema_prefix}{identifier.value}"


def schema_for_tenant_id(tenant_id: int) -> str:
    if isinstance(tenant_id, bool) or not isinstance(tenant_id, int) or tenant_id <= 0:
        raise InvalidTenantIdentifier("Tenant id must be a positive integer", value=str(tenant_id))
    return derive_namespace(TenantIdentifier(str(tenant_id), IdentifierFormat.NUMERIC))


def build_context(tenant: Tenant, source_format: IdentifierFormat) -> TenantContext:
    return TenantContext(
        id=tenant.id,
        subdomain=tenant.subdomain,
        name=tenant.name,
        schema=schema_for_tenant_id(tenant.id),
        timezone=tenant.timezone,
        locale=locale_for_timezone(tenant.timezone),
        source_format=source_format,
    )


async def resolve_tenant(session: AsyncSession, raw: str | int | None) -> TenantContext:
    """Resolve a raw header value to an active tenant."""
    identifier = validate_identifier(raw)
    stmt = select(Tenant).where(Tenant.status == TenantStatus.ACTIVE)
    if identifier.format is IdentifierFormat.NUMERIC:
        stmt = stmt.where(Tenant.id == identifier.tenant_id)
    else:
        stmt = stmt.where(Tenant.subdomain == identifier.value.lower())
    result = await session.execute(stmt)
    tenant = result.scalar_one_or_none()
    if tenant is None:
        logger.info("Tenant %s (%s) not found or inactive", identifier.value, identifier.format)
        raise TenantNotFound(identifier=identifier.value)

    context = build_context(tenant, identifier.format)
    if settings.validate_tenant_schema:
        if not await schema_exists(session, context.schema):
            logger.warning("Tenant %s has no schema %s", context.id, context.schema)
            raise TenantNotFound("Tenant namespace does not exist", identifier=identifier.value)
    return context


# ── Request routing ───────────────────────────────────────────

def is_tenant_scoped_path(path: str) -> bool:
    for prefix in EXEMPT_PREFIXES:
        if path == prefix or path.startswith(prefix + "/"):
            return False
    return path.startswith("/v1/")


# ── Request-bound context ─────────────────────────────────────

current_tenant: ContextVar[TenantContext | None] = ContextVar("current_tenant", default=None)


def ensure_tenant_scope(tenant_id: int) -> None:
    """Refuse to operate on a tenant other than the one bound to the request."""
    bound = current_tenant.get()
    if bound is not None and bound.id != tenant_id:
        logger.warning("Cross-tenant access blocked: bound=%s requested=%s", bound.id, tenant_id)
        raise TenantMismatch(bound_tenant_id=bound.id, requested_tenant_id=tenant_id)


async def bind_search_path(session: AsyncSession, schema: str):
    """Scope every transaction on ``session`` to ``schema``; returns the listener."""

    def _set_search_path(_session, _transaction, connection) -> None:
        if connection.dialect.name == "postgresql":
            connection.execute(text(f'SET LOCAL search_path TO "{schema}", public'))

    event.listen(session.sync_session, "after_begin", _set_search_path)
    if session.in_transaction() and is_postgres(session):
        # The tenant lookup already opened a transaction; scope it as well
        await session.execute(text(f'SET LOCAL search_path TO "{schema}", public'))
    return _set_search_path


def unbind_search_path(session: AsyncSession, listener) -> None:
    if event.contains(session.sync_session, "after_begin", listener):
        event.remove(session.sync_session, "after_begin", listener)

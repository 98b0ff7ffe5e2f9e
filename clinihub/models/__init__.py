"""Import all models so SQLModel.metadata picks them up."""

from clinihub.models.api_key import ApiKey, ApiKeyCreate, ApiKeyCreated, ApiKeyRead
from clinihub.models.application import (
    Application,
    ApplicationCreate,
    ApplicationPricing,
    ApplicationRead,
    ApplicationStatus,
    BillingCycle,
    PricingCreate,
    PricingRead,
)
from clinihub.models.license import (
    AccessLog,
    AppRole,
    GrantCreate,
    GrantRead,
    LicenseListing,
    LicenseRead,
    LicenseStatus,
    PricingSnapshot,
    TenantApplication,
    UserApplicationAccess,
)
from clinihub.models.tenant import Tenant, TenantCreate, TenantRead, TenantStatus, TenantUpdate
from clinihub.models.transcription import (
    ConfigRead,
    ConfigUpdate,
    PlanRead,
    TenantTranscriptionConfig,
    TenantTranscriptionUsage,
    TranscriptionPlan,
    UsageReport,
)
from clinihub.models.user import (
    PlatformRole,
    User,
    UserCreate,
    UserRead,
    UserRole,
    UserType,
    UserTypeRead,
)

__all__ = [
    "AccessLog",
    "ApiKey",
    "ApiKeyCreate",
    "ApiKeyCreated",
    "ApiKeyRead",
    "AppRole",
    "Application",
    "ApplicationCreate",
    "ApplicationPricing",
    "ApplicationRead",
    "ApplicationStatus",
    "BillingCycle",
    "ConfigRead",
    "ConfigUpdate",
    "GrantCreate",
    "GrantRead",
    "LicenseListing",
    "LicenseRead",
    "LicenseStatus",
    "PlanRead",
    "PlatformRole",
    "PricingCreate",
    "PricingRead",
    "PricingSnapshot",
    "Tenant",
    "TenantApplication",
    "TenantCreate",
    "TenantRead",
    "TenantStatus",
    "TenantTranscriptionConfig",
    "TenantTranscriptionUsage",
    "TenantUpdate",
    "TranscriptionPlan",
    "UsageReport",
    "User",
    "UserApplicationAccess",
    "UserCreate",
    "UserRead",
    "UserRole",
    "UserType",
    "UserTypeRead",
]

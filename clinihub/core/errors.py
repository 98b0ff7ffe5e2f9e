"""Domain error taxonomy.

Every failure the core can surface to a caller is a ``HubError`` subclass
carrying its HTTP status, a stable machine-readable code and optional
details. ``clinihub.main`` maps them to JSON with a single exception handler, so
routes and services raise and never translate.
"""

from typing import Any

from fastapi import status
from pydantic.alias_generators import to_camel


class HubError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "INTERNAL_ERROR"
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None, **details: Any) -> None:
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        body = {to_camel(k) if "_" in k else k: v for k, v in self.details.items()}
        return {"detail": self.message, "code": self.code, **body}


# ── Generic ───────────────────────────────────────────────────

class ValidationFailed(HubError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "VALIDATION_ERROR"
    default_message = "Invalid request"


class NotFound(HubError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"
    default_message = "Resource not found"


class Conflict(HubError):
    status_code = status.HTTP_409_CONFLICT
    code = "CONFLICT"
    default_message = "Resource already exists"


class InsufficientRole(HubError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "INSUFFICIENT_ROLE"
    default_message = "Insufficient role for this operation"


# ── Tenant resolution ─────────────────────────────────────────

class InvalidTenantIdentifier(HubError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "INVALID_TENANT_ID"
    default_message = "Invalid tenant identifier"


class TenantNotFound(HubError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "TENANT_NOT_FOUND"
    default_message = "Tenant not found"


class MissingTenantContext(HubError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "MISSING_TENANT_CONTEXT"
    default_message = "Tenant context is required"


class TenantMismatch(HubError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "TENANT_MISMATCH"
    default_message = "Credentials do not belong to the requested tenant"


# ── Licensing ─────────────────────────────────────────────────

class LicenseNotFound(HubError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "LICENSE_NOT_FOUND"
    default_message = "Tenant has no license for this application"


class LicenseNotActive(HubError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "LICENSE_NOT_ACTIVE"
    default_message = "Tenant license for this application is not active"


class SeatLimitExceeded(HubError):
    status_code = status.HTTP_409_CONFLICT
    code = "SEAT_LIMIT_EXCEEDED"
    default_message = "All purchased seats for this application are in use"


class SeatLimitBelowUsage(HubError):
    status_code = status.HTTP_409_CONFLICT
    code = "SEAT_LIMIT_BELOW_USAGE"
    default_message = "Seat limit cannot be lower than the seats in use"


class AccessAlreadyGranted(HubError):
    status_code = status.HTTP_409_CONFLICT
    code = "ACCESS_ALREADY_GRANTED"
    default_message = "User already has access to this application"


class GrantNotFound(HubError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "GRANT_NOT_FOUND"
    default_message = "User has no active access to this application"


class PricingNotConfigured(HubError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "PRICING_NOT_CONFIGURED"
    default_message = "Application pricing not configured for this user type"


class ApplicationAccessDenied(HubError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "APPLICATION_ACCESS_DENIED"
    default_message = "User not allowed to access this application"


# ── Transcription quota ───────────────────────────────────────

class TranscriptionNotConfigured(HubError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "TRANSCRIPTION_NOT_CONFIGURED"
    default_message = "Transcription service not configured for your account"


class CustomLimitsNotAllowed(HubError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "CUSTOM_LIMITS_NOT_ALLOWED"
    default_message = "Your current plan does not allow custom limits"


class OverageNotAllowed(HubError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "OVERAGE_NOT_ALLOWED"
    default_message = "Your current plan does not allow overage"


class CustomLimitBelowPlanMinimum(HubError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "CUSTOM_LIMIT_BELOW_PLAN_MINIMUM"
    default_message = "Custom limit cannot be below the plan minimum"


class InvalidTranscriptionLanguage(HubError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "INVALID_TRANSCRIPTION_LANGUAGE"
    default_message = "Unsupported transcription language"


class QuotaExceeded(HubError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    code = "TRANSCRIPTION_QUOTA_EXCEEDED"
    default_message = "Monthly transcription quota exceeded"


# ── Auth ──────────────────────────────────────────────────────

class InvalidCredentials(HubError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "INVALID_CREDENTIALS"
    default_message = "Invalid email or password"


class TokenExpired(HubError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "TOKEN_EXPIRED"
    default_message = "Token has expired"


class InvalidToken(HubError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "INVALID_TOKEN"
    default_message = "Invalid token"


class AccountDisabled(HubError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "ACCOUNT_DISABLED"
    default_message = "Account is disabled"


class PasswordPolicyViolation(HubError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "PASSWORD_POLICY_VIOLATION"
    default_message = "Password does not meet the password policy"


class PasswordReuse(HubError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "PASSWORD_REUSE"
    default_message = "New password must be different from the current password"

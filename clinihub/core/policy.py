"""Plan capability gating for tenant transcription settings.

``can_mutate`` is the only place that decides whether a plan lets a tenant
change a field. Callers evaluate every requested field first and write only
when all of them are allowed.
"""

from dataclasses import dataclass, field
from typing import Any

from clinihub.core.errors import (
    CustomLimitBelowPlanMinimum,
    CustomLimitsNotAllowed,
    HubError,
    InvalidTranscriptionLanguage,
    OverageNotAllowed,
    ValidationFailed,
)
from clinihub.models.transcription import TranscriptionPlan

SUPPORTED_LANGUAGES = ("pt-BR", "en-US")

MUTABLE_FIELDS = ("custom_monthly_limit", "overage_allowed", "transcription_language")


@dataclass(frozen=True)
class Allowed:
    allowed: bool = True


@dataclass(frozen=True)
class Denied:
    reason: str
    error: type[HubError]
    details: dict[str, Any] = field(default_factory=dict)
    allowed: bool = False

    def to_error(self) -> HubError:
        return self.error(self.reason, **self.details)


Decision = Allowed | Denied


def can_mutate(plan: TranscriptionPlan, field_name: str, value: Any) -> Decision:
    if field_name == "custom_monthly_limit":
        if not plan.allows_custom_limits:
            return Denied(
                f"Plan '{plan.slug}' does not allow custom monthly limits",
                CustomLimitsNotAllowed,
                {"field": "customMonthlyLimit", "plan": plan.slug},
            )
        # Clearing the custom limit falls back to the plan allotment
        if value is None:
            return Allowed()
        if isinstance(value, bool) or not isinstance(value, int):
            return Denied(
                "Custom monthly limit must be an integer",
                ValidationFailed,
                {"field": "customMonthlyLimit"},
            )
        if value < plan.monthly_minutes_limit:
            return Denied(
                f"Custom limit cannot be below the plan minimum of "
                f"{plan.monthly_minutes_limit} minutes",
                CustomLimitBelowPlanMinimum,
                {"field": "customMonthlyLimit", "minimum": plan.monthly_minutes_limit},
            )
        return Allowed()

    if field_name == "overage_allowed":
        if not isinstance(value, bool):
            return Denied("overageAllowed must be a boolean", ValidationFailed, {"field": "overageAllowed"})
        if value and not plan.allows_overage:
            return Denied(
                f"Plan '{plan.slug}' does not allow overage",
                OverageNotAllowed,
                {"field": "overageAllowed", "plan": plan.slug},
            )
        return Allowed()

    if field_name == "transcription_language":
        if value not in SUPPORTED_LANGUAGES:
            return Denied(
                f"Transcription language must be one of {', '.join(SUPPORTED_LANGUAGES)}",
                InvalidTranscriptionLanguage,
                {"field": "transcriptionLanguage", "supported": list(SUPPORTED_LANGUAGES)},
            )
        return Allowed()

    return Denied(f"Field '{field_name}' cannot be changed", ValidationFailed, {"field": field_name})


def check_all(plan: TranscriptionPlan, changes: dict[str, Any]) -> None:
    """Raise the first denial among ``changes``; nothing is written by this function."""
    if not changes:
        raise ValidationFailed(
            "At least one field must be provided",
            fields=["customMonthlyLimit", "overageAllowed", "transcriptionLanguage"],
        )
    for name, value in changes.items():
        decision = can_mutate(plan, name, value)
        if isinstance(decision, Denied):
            raise decision.to_error()

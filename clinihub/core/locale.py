"""Locale derivation from a tenant's IANA timezone."""

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from clinihub.core.errors import ValidationFailed

DEFAULT_LOCALE = "pt-BR"
FALLBACK_LOCALE = "en-US"

BRAZILIAN_TIMEZONES = frozenset({
    "America/Sao_Paulo",
    "America/Rio_Branco",
    "America/Manaus",
    "America/Cuiaba",
    "America/Campo_Grande",
    "America/Belem",
    "America/Fortaleza",
    "America/Recife",
    "America/Araguaina",
    "America/Maceio",
    "America/Bahia",
    "America/Santarem",
    "America/Porto_Velho",
    "America/Boa_Vista",
    "America/Eirunepe",
    "America/Noronha",
    "Brazil/East",
    "Brazil/West",
    "Brazil/Acre",
    "Brazil/DeNoronha",
})


def locale_for_timezone(tz: str | None) -> str:
    """Brazilian zones (and a missing zone) map to pt-BR, anything else to en-US."""
    if not tz:
        return DEFAULT_LOCALE
    return DEFAULT_LOCALE if tz in BRAZILIAN_TIMEZONES else FALLBACK_LOCALE


def validate_timezone(tz: str) -> str:
    """Return ``tz`` if it names an IANA zone known to this host."""
    try:
        ZoneInfo(tz)
    except (ZoneInfoNotFoundError, ValueError, OSError):
        raise ValidationFailed(f"Unknown timezone '{tz}'", field="timezone") from None
    return tz

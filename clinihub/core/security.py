"""Security utilities: password hashing, API key hashing, and JWT helpers."""

import hashlib
import re
import secrets
import string
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext

from clinihub.core.config import get_settings
from clinihub.core.errors import InvalidToken, PasswordPolicyViolation, TokenExpired

settings = get_settings()

# ── Password hashing (Argon2) ────────────────────────────────

pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")

PASSWORD_MIN_LENGTH = 8


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


def password_policy_errors(password: str) -> list[str]:
    """Return every policy rule the password breaks (empty when valid)."""
    errors = []
    if len(password) < PASSWORD_MIN_LENGTH:
        errors.append(f"Password must be at least {PASSWORD_MIN_LENGTH} characters")
    if not re.search(r"[A-Z]", password):
        errors.append("Password must contain an uppercase letter")
    if not re.search(r"[a-z]", password):
        errors.append("Password must contain a lowercase letter")
    if not re.search(r"\d", password):
        errors.append("Password must contain a number")
    return errors


def validate_password(password: str) -> None:
    errors = password_policy_errors(password)
    if errors:
        raise PasswordPolicyViolation("; ".join(errors), errors=errors)


def generate_temporary_password(length: int = 12) -> str:
    """Random password that always satisfies the password policy."""
    alphabet = string.ascii_letters + string.digits + "!@#$%"
    while True:
        candidate = "".join(secrets.choice(alphabet) for _ in range(length))
        if not password_policy_errors(candidate):
            return candidate


# ── API key hashing (SHA-256, deterministic for lookups) ──────

API_KEY_PREFIX = "chub_"


def hash_api_key(raw_key: str) -> str:
    """One-way SHA-256 hash for API key storage.

    Keys are looked up by hash on every provisioning call, so the hash must
    be deterministic. The raw key carries 256 bits of entropy.
    """
    return hashlib.sha256(raw_key.encode()).hexdigest()


def generate_api_key() -> str:
    """Generate a cryptographically secure 256-bit API key."""
    return API_KEY_PREFIX + secrets.token_urlsafe(32)


# ── JWT ───────────────────────────────────────────────────────

def create_jwt(claims: dict[str, Any], expires_delta: timedelta | None = None) -> str:
    """Sign ``claims`` with fresh ``iat`` / ``exp`` values."""
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.jwt_expire_minutes))
    payload = {
        **claims,
        "iat": int(now.timestamp()),
        "exp": int(expire.timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_jwt(token: str) -> dict[str, Any]:
    """Decode and verify a JWT.

    Raises ``TokenExpired`` for a well-formed but expired token and
    ``InvalidToken`` for anything else that fails verification.
    """
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except ExpiredSignatureError as exc:
        raise TokenExpired() from exc
    except JWTError as exc:
        raise InvalidToken() from exc

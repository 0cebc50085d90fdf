"""Security utilities: password hashing, API tokens and JWTs."""

import hashlib
import secrets
from datetime import datetime, timedelta, timezone

from jose import jwt
from passlib.context import CryptContext

from plansync.core.config import get_settings

settings = get_settings()

# ── Password hashing (Argon2) ────────────────────────────────

pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


# ── API token hashing (SHA-256, deterministic for lookups) ────

def hash_api_token(raw_token: str) -> str:
    """One-way SHA-256 hash for API token storage.

    Tokens are looked up by hash on every request, so the hash must be
    deterministic. The raw token carries 256 bits of entropy.
    """
    return hashlib.sha256(raw_token.encode()).hexdigest()


def generate_api_token() -> str:
    """Generate a cryptographically secure 256-bit API token."""
    return secrets.token_urlsafe(32)


# ── JWT ───────────────────────────────────────────────────────

def create_jwt(
    subject: str,
    tenant_id: str,
    role: str = "member",
    expires_delta: timedelta | None = None,
) -> str:
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.jwt_expire_minutes)
    )
    payload = {
        "sub": subject,
        "tid": tenant_id,
        "role": role,
        "exp": expire,
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_jwt(token: str) -> dict:
    """Decode and verify a JWT. Raises jose.JWTError on failure."""
    return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])

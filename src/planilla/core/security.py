"""Credential issuing and verification.

Access tokens are HS256 JWTs signed with ``JWT_SECRET_KEY``. Passwords are
stored as salted PBKDF2-SHA256 digests in the form
``pbkdf2_sha256$<iterations>$<salt>$<digest>``.
"""

import base64
import hashlib
import hmac
import secrets
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt

from planilla.config.settings import Settings
from planilla.core.exceptions import AuthenticationError
from planilla.core.roles import TenantRole
from planilla.utils.exceptions import ConfigurationError

PASSWORD_HASH_ITERATIONS = 260_000
_HASH_SCHEME = "pbkdf2_sha256"


def _signing_key(settings: Settings) -> str:
    if settings.JWT_SECRET_KEY is None:
        raise ConfigurationError("JWT_SECRET_KEY is not configured")
    return settings.JWT_SECRET_KEY.get_secret_value()


def create_access_token(
    settings: Settings,
    *,
    user_id: str,
    email: str,
    tenant_id: int,
    role: TenantRole,
    plan: str,
    now: datetime | None = None,
) -> tuple[str, datetime]:
    """Issue a signed credential for one tenant membership.

    Returns:
        Tuple of (encoded token, expiry time)
    """
    issued_at = now or datetime.now(UTC)
    expires_at = issued_at + timedelta(minutes=settings.access_token_ttl_minutes)

    claims: dict[str, Any] = {
        "sub": user_id,
        "email": email,
        "tenant_id": str(tenant_id),
        "tenant_role": role.label,
        "plan": plan,
        "iss": settings.JWT_ISSUER,
        "aud": settings.JWT_AUDIENCE,
        "iat": issued_at,
        "exp": expires_at,
    }
    token = jwt.encode(claims, _signing_key(settings), algorithm=settings.JWT_ALGORITHM)
    return token, expires_at


def decode_access_token(settings: Settings, token: str) -> dict[str, Any]:
    """Verify a credential and return its claims.

    Raises:
        AuthenticationError: If the signature, issuer, audience or expiry is invalid
    """
    try:
        return jwt.decode(
            token,
            _signing_key(settings),
            algorithms=[settings.JWT_ALGORITHM],
            audience=settings.JWT_AUDIENCE,
            issuer=settings.JWT_ISSUER,
            options={"require": ["exp", "iat", "sub"]},
        )
    except jwt.ExpiredSignatureError as e:
        raise AuthenticationError("Token expired") from e
    except jwt.PyJWTError as e:
        raise AuthenticationError("Invalid token") from e


def hash_password(password: str, *, iterations: int = PASSWORD_HASH_ITERATIONS) -> str:
    """Hash a password with a fresh random salt."""
    salt = secrets.token_bytes(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations)
    return "$".join(
        [
            _HASH_SCHEME,
            str(iterations),
            base64.b64encode(salt).decode("ascii"),
            base64.b64encode(digest).decode("ascii"),
        ]
    )


def verify_password(password: str, encoded: str) -> bool:
    """Check a password against a stored hash in constant time."""
    try:
        scheme, iterations, salt_b64, digest_b64 = encoded.split("$")
        if scheme != _HASH_SCHEME:
            return False
        salt = base64.b64decode(salt_b64)
        expected = base64.b64decode(digest_b64)
        rounds = int(iterations)
    except ValueError:
        return False

    candidate = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, rounds)
    return hmac.compare_digest(candidate, expected)


def generate_invitation_token() -> str:
    """Opaque, unguessable, URL-safe invitation token."""
    return secrets.token_urlsafe(32)

"""
JWT access token verification.

Tokens are issued by the identity service; this module only verifies them
(RS256 public key on disk, or an HS256 shared secret for local setups).
``create_access_token`` mints tokens for development and tests.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import jwt

from focusgarden.config import get_settings

_private_key: str | None = None
_public_key: str | None = None


def _uses_shared_secret() -> bool:
    return get_settings().jwt_algorithm.upper().startswith("HS")


def _signing_key() -> str:
    """Key used to sign tokens (private key file or shared secret)."""
    global _private_key  # noqa: PLW0603
    settings = get_settings()
    if _uses_shared_secret():
        return settings.jwt_secret
    if _private_key is None:
        _private_key = Path(settings.jwt_private_key_path).read_text()
    return _private_key


def _verification_key() -> str:
    """Key used to verify tokens (public key file or shared secret)."""
    global _public_key  # noqa: PLW0603
    settings = get_settings()
    if _uses_shared_secret():
        return settings.jwt_secret
    if _public_key is None:
        _public_key = Path(settings.jwt_public_key_path).read_text()
    return _public_key


def reset_keys() -> None:
    """Reset cached keys (useful for testing)."""
    global _private_key, _public_key  # noqa: PLW0603
    _private_key = None
    _public_key = None


def create_access_token(user_id: int, expires_minutes: int | None = None) -> str:
    """Create a short-lived access token for ``user_id``."""
    settings = get_settings()
    now = datetime.now(timezone.utc)
    minutes = settings.jwt_access_token_expire_minutes if expires_minutes is None else expires_minutes
    payload: dict[str, Any] = {
        "sub": str(user_id),
        "iat": now,
        "exp": now + timedelta(minutes=minutes),
        "iss": settings.jwt_issuer,
        "type": "access",
    }
    return jwt.encode(payload, _signing_key(), algorithm=settings.jwt_algorithm)


def verify_token(token: str, expected_type: str = "access") -> dict[str, Any]:
    """
    Decode and verify a token.

    Raises:
        jwt.InvalidTokenError: On a bad signature, expiry, issuer or token type.
    """
    settings = get_settings()
    payload: dict[str, Any] = jwt.decode(
        token,
        _verification_key(),
        algorithms=[settings.jwt_algorithm],
        issuer=settings.jwt_issuer,
        options={"require": ["sub", "exp", "iss"]},
    )
    if payload.get("type") != expected_type:
        msg = f"Expected {expected_type} token, got {payload.get('type')}"
        raise jwt.InvalidTokenError(msg)
    return payload

"""
Core security module — JWT access-token verification.

Senders are authenticated by the identity service, which signs access
tokens with its RSA private key. This service holds the public key and
turns verified claims into a ``Principal``; the private key is only
present locally (tests, ``scripts/dev_credentials.py``) so that
``create_access_token`` can mint tokens. Without key files the module
falls back to HS256 with ``SECRET_KEY``.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path

import jwt
from fastapi import HTTPException, status

from app.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Principal:
    """Authenticated sender, as asserted by the identity service."""
    user_id: str
    name: str | None = None
    phone: str | None = None


# ---------------------------------------------------------------------------
# Keys
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TokenKeys:
    verify_key: str | bytes
    signing_key: str | bytes | None
    algorithm: str

    @classmethod
    def from_settings(cls) -> "TokenKeys":
        public_path = Path(settings.JWT_PUBLIC_KEY_PATH)
        private_path = Path(settings.JWT_PRIVATE_KEY_PATH)

        if not public_path.exists():
            logger.warning(
                "JWT public key %s not found, verifying with HS256/SECRET_KEY. "
                "Run 'python scripts/dev_credentials.py keys' to generate keys.",
                public_path,
            )
            return cls(settings.SECRET_KEY, settings.SECRET_KEY, "HS256")

        signing_key = private_path.read_bytes() if private_path.exists() else None
        logger.info(
            "Loaded JWT public key (%s)%s",
            settings.JWT_ALGORITHM, ", signing enabled" if signing_key else "",
        )
        return cls(public_path.read_bytes(), signing_key, settings.JWT_ALGORITHM)


_keys = TokenKeys.from_settings()


def configure_keys(
    *, private_key: str | bytes | None, public_key: str | bytes, algorithm: str = "RS256"
) -> None:
    """Replace the active keys (used in tests)."""
    global _keys
    _keys = TokenKeys(public_key, private_key, algorithm)


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


def create_access_token(user_id: str, name: str | None = None, phone: str | None = None) -> str:
    """Mint an access token the way the identity service does (dev/test only)."""
    if _keys.signing_key is None:
        raise RuntimeError("No signing key configured; only verification is available")
    issued_at = datetime.now(timezone.utc)
    claims = {
        "sub": str(user_id),
        "name": name,
        "phone": phone,
        "type": "access",
        "iat": issued_at,
        "exp": issued_at + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    }
    return jwt.encode(claims, _keys.signing_key, algorithm=_keys.algorithm)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def decode_token(token: str) -> dict:
    """Verify signature and expiry; any failure is a 401."""
    try:
        return jwt.decode(token, _keys.verify_key, algorithms=[_keys.algorithm])
    except jwt.ExpiredSignatureError:
        raise _unauthorized("Token has expired")
    except jwt.InvalidTokenError:
        raise _unauthorized("Invalid token")


def verify_access_token(token: str) -> Principal:
    claims = decode_token(token)
    if claims.get("type") != "access":
        raise _unauthorized("Expected access token")
    if not claims.get("sub"):
        raise _unauthorized("Token has no subject")
    return Principal(user_id=claims["sub"], name=claims.get("name"), phone=claims.get("phone"))

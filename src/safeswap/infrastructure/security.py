"""Session token signing and secret generation.

Session tokens are HS256 JWTs (PyJWT) asserting {userId, sessionId, email}.
The signature only proves the claims were issued by us; whether the session
is still alive is decided by the sessions table.
"""

from __future__ import annotations

import secrets
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime

import jwt

from safeswap.config import get_settings
from safeswap.domain.exceptions import InvalidSessionError, InvalidTokenError

CODE_DIGITS = 6


@dataclass(frozen=True)
class TokenClaims:
    """Decoded, signature-checked session token claims."""

    user_id: uuid.UUID
    session_id: uuid.UUID
    email: str


def generate_code() -> str:
    """Return a uniformly random 6-digit numeric code (leading zeros kept)."""
    return f"{secrets.randbelow(10**CODE_DIGITS):0{CODE_DIGITS}d}"


def generate_session_token() -> str:
    """Return a 64 hex character opaque session secret."""
    return secrets.token_hex(32)


def create_token(
    user_id: uuid.UUID,
    session_id: uuid.UUID,
    email: str,
    expires_at: datetime,
) -> str:
    """Sign a session token that expires together with its session row."""
    settings = get_settings()
    payload = {
        "userId": str(user_id),
        "sessionId": str(session_id),
        "email": email,
        "iat": datetime.now(UTC),
        "exp": expires_at,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str, verify_exp: bool = True) -> TokenClaims:
    """Verify a session token's signature and parse its claims.

    Logout passes verify_exp=False so a token that outlived its session can
    still identify the row to delete.

    Raises:
        InvalidSessionError: The signature is valid but the token has expired.
        InvalidTokenError: Bad signature, malformed token, or missing claims.
    """
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["exp", "userId", "sessionId"], "verify_exp": verify_exp},
        )
    except jwt.ExpiredSignatureError as e:
        raise InvalidSessionError() from e
    except jwt.PyJWTError as e:
        raise InvalidTokenError() from e

    try:
        return TokenClaims(
            user_id=uuid.UUID(payload["userId"]),
            session_id=uuid.UUID(payload["sessionId"]),
            email=str(payload.get("email", "")),
        )
    except (TypeError, ValueError) as e:
        raise InvalidTokenError("Token claims are malformed") from e

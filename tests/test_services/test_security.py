"""Tests for session token signing and secret generation."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta

import jwt
import pytest

from safeswap.config import get_settings
from safeswap.domain.exceptions import InvalidSessionError, InvalidTokenError
from safeswap.infrastructure.security import (
    create_token,
    decode_token,
    generate_code,
    generate_session_token,
)

USER_ID = uuid.uuid4()
SESSION_ID = uuid.uuid4()


class TestSecrets:
    def test_code_is_six_digits(self) -> None:
        for _ in range(50):
            code = generate_code()
            assert len(code) == 6
            assert code.isdigit()

    def test_session_token_is_64_hex(self) -> None:
        token = generate_session_token()
        assert len(token) == 64
        int(token, 16)


class TestTokens:
    def test_claims_survive_signing(self) -> None:
        token = create_token(
            USER_ID, SESSION_ID, "bob@example.com", datetime.now(UTC) + timedelta(days=7)
        )
        claims = decode_token(token)
        assert claims.user_id == USER_ID
        assert claims.session_id == SESSION_ID
        assert claims.email == "bob@example.com"

    def test_expired_token_is_an_invalid_session(self) -> None:
        token = create_token(USER_ID, SESSION_ID, "bob@example.com", datetime.now(UTC) - timedelta(seconds=5))
        with pytest.raises(InvalidSessionError):
            decode_token(token)

        # Logout still needs to know which session it was.
        assert decode_token(token, verify_exp=False).session_id == SESSION_ID

    def test_wrong_signature(self) -> None:
        token = jwt.encode(
            {"userId": str(USER_ID), "sessionId": str(SESSION_ID), "exp": datetime.now(UTC) + timedelta(hours=1)},
            "some-other-secret-that-is-long-enough",
            algorithm="HS256",
        )
        with pytest.raises(InvalidTokenError):
            decode_token(token)

    def test_missing_claims(self) -> None:
        settings = get_settings()
        token = jwt.encode(
            {"userId": str(USER_ID), "exp": datetime.now(UTC) + timedelta(hours=1)},
            settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
        )
        with pytest.raises(InvalidTokenError):
            decode_token(token)

    def test_malformed_ids(self) -> None:
        settings = get_settings()
        token = jwt.encode(
            {"userId": "nope", "sessionId": "nope", "exp": datetime.now(UTC) + timedelta(hours=1)},
            settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
        )
        with pytest.raises(InvalidTokenError, match="malformed"):
            decode_token(token)

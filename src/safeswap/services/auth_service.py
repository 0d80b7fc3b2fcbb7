"""Auth Service — passwordless, code-based sign-in and session management.

Flow:
    1. request_code   -> user (created if new) receives a 6-digit code.
    2. verify_code    -> the code buys exactly one session; a signed token is
                         returned for the client to present from then on.
    3. verify_token   -> every authenticated request resolves its token to the
                         live user row (not to the token's claims).
    4. logout         -> deletes the session; the token dies with it.

The code is a short-lived, low-entropy secret a human types in. It is never
itself a credential: only the session row it creates is.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError

from safeswap.config import Settings, get_settings
from safeswap.domain.enums import CodePurpose
from safeswap.domain.exceptions import (
    ConflictError,
    InvalidCodeError,
    InvalidInputError,
    InvalidSessionError,
    InvalidTokenError,
    NotAuthenticatedError,
    UserNotFoundError,
)
from safeswap.domain.lifecycle import is_valid_wallet_address
from safeswap.infrastructure.database.orm_models import AuthSession, User, VerificationCode
from safeswap.infrastructure.database.repositories import (
    SessionRepository,
    UserRepository,
    VerificationCodeRepository,
)
from safeswap.infrastructure.security import (
    create_token,
    decode_token,
    generate_code,
    generate_session_token,
)
from safeswap.logging_config import get_logger
from safeswap.services.effects import DeferredEffects
from safeswap.services.notification_service import NotificationService

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


def normalize_email(email: str) -> str:
    return email.strip().lower()


@dataclass(frozen=True)
class IssuedCode:
    user: User
    code: str
    purpose: CodePurpose
    is_new_user: bool
    expires_at: datetime


@dataclass(frozen=True)
class AuthResult:
    token: str
    user: User
    session_expires_at: datetime
    newly_verified: bool


class AuthService:
    """Issues codes, starts and ends sessions, authenticates tokens."""

    def __init__(
        self,
        session: AsyncSession,
        effects: DeferredEffects | None = None,
        notifier: NotificationService | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._session = session
        self._settings = settings or get_settings()
        self._user_repo = UserRepository(session)
        self._code_repo = VerificationCodeRepository(session)
        self._session_repo = SessionRepository(session)
        self.effects = effects if effects is not None else DeferredEffects()
        self._notifier = notifier or NotificationService(self._settings)

    # ------------------------------------------------------------------
    # Codes
    # ------------------------------------------------------------------

    async def request_code(
        self,
        email: str,
        purpose: CodePurpose | None = None,
    ) -> IssuedCode:
        """Issue a fresh code, invalidating any unused code of the same purpose.

        When no purpose is given, an unverified user gets an
        EMAIL_VERIFICATION code and a verified one a LOGIN code.
        """
        email = normalize_email(email)
        if not email:
            raise InvalidInputError("Email is required", field="email")

        user = await self._user_repo.get_by_email(email)
        is_new_user = user is None
        if user is None:
            user = await self._user_repo.create(User(email=email, is_verified=False))
            logger.info("auth.user_created", user_id=str(user.id))

        if purpose is None:
            purpose = CodePurpose.LOGIN if user.is_verified else CodePurpose.EMAIL_VERIFICATION

        invalidated = await self._code_repo.invalidate_unused(user.id, purpose)

        code = generate_code()
        expires_at = datetime.now(UTC) + timedelta(
            minutes=self._settings.verification_code_ttl_minutes
        )
        await self._code_repo.create(
            VerificationCode(
                user_id=user.id,
                code=code,
                purpose=purpose.value,
                expires_at=expires_at,
            )
        )

        self.effects.add("send_login_code", self._notifier.send_login_code, email, code, user.name)

        logger.info(
            "auth.code_issued",
            user_id=str(user.id),
            purpose=purpose.value,
            invalidated=invalidated,
        )
        return IssuedCode(
            user=user,
            code=code,
            purpose=purpose,
            is_new_user=is_new_user,
            expires_at=expires_at,
        )

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def verify_code(
        self,
        email: str,
        code: str,
        display_name: str | None = None,
    ) -> AuthResult:
        """Exchange a valid code for a new session and its signed token."""
        email = normalize_email(email)
        user = await self._user_repo.get_by_email(email)
        if user is None:
            raise UserNotFoundError(email)

        record = await self._code_repo.find_active(user.id, code.strip())
        if record is None:
            logger.info("auth.code_rejected", user_id=str(user.id))
            raise InvalidCodeError()

        # Conditional UPDATE: a concurrent verification of the same code loses here.
        if not await self._code_repo.mark_used(record.id):
            logger.info("auth.code_race_lost", user_id=str(user.id))
            raise InvalidCodeError()

        newly_verified = False
        if record.purpose == CodePurpose.EMAIL_VERIFICATION.value:
            newly_verified = not user.is_verified
            user.is_verified = True
            if display_name and display_name.strip():
                user.name = display_name.strip()

        expires_at = datetime.now(UTC) + timedelta(days=self._settings.session_ttl_days)
        auth_session = await self._session_repo.create(
            AuthSession(
                user_id=user.id,
                token=generate_session_token(),
                expires_at=expires_at,
            )
        )
        token = create_token(user.id, auth_session.id, user.email, expires_at)

        if newly_verified:
            self.effects.add(
                "send_welcome_email", self._notifier.send_welcome_email, user.email, user.name
            )

        logger.info(
            "auth.session_started",
            user_id=str(user.id),
            session_id=str(auth_session.id),
            newly_verified=newly_verified,
        )
        return AuthResult(
            token=token,
            user=user,
            session_expires_at=expires_at,
            newly_verified=newly_verified,
        )

    async def verify_token(self, token: str | None) -> User:
        """Resolve a bearer token to its live user.

        Raises:
            NotAuthenticatedError: No token was presented.
            InvalidTokenError: The token is forged or malformed.
            InvalidSessionError: The session is gone or has expired.
        """
        if not token:
            raise NotAuthenticatedError()

        claims = decode_token(token)
        user = await self._user_repo.get_by_session(claims.session_id)
        if user is None or user.id != claims.user_id:
            raise InvalidSessionError()
        return user

    async def logout(self, token: str | None) -> bool:
        """Delete the token's session. Never raises; returns whether a row went away."""
        if not token:
            return False
        try:
            claims = decode_token(token, verify_exp=False)
        except (InvalidTokenError, InvalidSessionError):
            return False

        deleted = await self._session_repo.delete(claims.session_id)
        logger.info(
            "auth.logged_out",
            user_id=str(claims.user_id),
            session_id=str(claims.session_id),
            deleted=deleted,
        )
        return deleted

    # ------------------------------------------------------------------
    # Account
    # ------------------------------------------------------------------

    async def link_wallet(self, user_id: uuid.UUID, wallet_address: str) -> User:
        """Overwrite the user's linked wallet.

        Raises:
            InvalidInputError: Malformed address.
            ConflictError: Another user already linked this address.
        """
        wallet_address = wallet_address.strip()
        if not is_valid_wallet_address(wallet_address):
            raise InvalidInputError("Invalid wallet address format", field="wallet_address")

        user = await self._user_repo.get_by_id(user_id)
        if user is None:
            raise UserNotFoundError(str(user_id))

        user.wallet_address = wallet_address
        try:
            await self._session.flush()
        except IntegrityError as e:
            raise ConflictError("Wallet address is already linked to another account") from e

        logger.info("auth.wallet_linked", user_id=str(user_id), wallet=wallet_address)
        return user

    async def purge_expired(self) -> dict[str, int]:
        """Delete expired sessions and codes. Maintenance only; lookups never need it."""
        sessions = await self._session_repo.delete_expired()
        codes = await self._code_repo.delete_expired()
        logger.info("auth.purged_expired", sessions=sessions, codes=codes)
        return {"sessions": sessions, "codes": codes}

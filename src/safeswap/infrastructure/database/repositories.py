"""Repository classes for database access.

Repositories encapsulate all SQL queries and provide a clean interface
to the service layer. They accept an AsyncSession and never manage
their own transactions (that's the caller's responsibility).

Expiry checks are always expressed in SQL (`expires_at > now`) rather than
compared in Python, so they behave the same on PostgreSQL and SQLite.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import delete, or_, select, update

from safeswap.infrastructure.database.orm_models import (
    AuthSession,
    Escrow,
    EscrowEvent,
    Message,
    User,
    VerificationCode,
)

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from safeswap.domain.enums import CodePurpose, EscrowStatus, EventType


def _utcnow() -> datetime:
    return datetime.now(UTC)


class UserRepository:
    """Data access for users."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, user: User) -> User:
        """Insert a new user."""
        self._session.add(user)
        await self._session.flush()
        return user

    async def get_by_id(self, user_id: uuid.UUID) -> User | None:
        result = await self._session.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def get_by_email(self, email: str) -> User | None:
        """Fetch a user by their (already normalized) email."""
        result = await self._session.execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()

    async def get_by_session(self, session_id: uuid.UUID) -> User | None:
        """Fetch the owner of a session, only if that session is still live."""
        result = await self._session.execute(
            select(User)
            .join(AuthSession, AuthSession.user_id == User.id)
            .where(AuthSession.id == session_id, AuthSession.expires_at > _utcnow())
        )
        return result.scalar_one_or_none()


class VerificationCodeRepository:
    """Data access for one-time verification codes."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def invalidate_unused(self, user_id: uuid.UUID, purpose: CodePurpose) -> int:
        """Mark every unused code of a purpose as used. Returns the count."""
        result = await self._session.execute(
            update(VerificationCode)
            .where(
                VerificationCode.user_id == user_id,
                VerificationCode.purpose == purpose.value,
                VerificationCode.used.is_(False),
            )
            .values(used=True)
        )
        return result.rowcount

    async def create(self, code: VerificationCode) -> VerificationCode:
        self._session.add(code)
        await self._session.flush()
        return code

    async def find_active(self, user_id: uuid.UUID, code: str) -> VerificationCode | None:
        """Fetch the newest unused, unexpired code matching the value."""
        result = await self._session.execute(
            select(VerificationCode)
            .where(
                VerificationCode.user_id == user_id,
                VerificationCode.code == code,
                VerificationCode.used.is_(False),
                VerificationCode.expires_at > _utcnow(),
            )
            .order_by(VerificationCode.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def mark_used(self, code_id: uuid.UUID) -> bool:
        """Consume a code. Returns False when another request consumed it first."""
        result = await self._session.execute(
            update(VerificationCode)
            .where(VerificationCode.id == code_id, VerificationCode.used.is_(False))
            .values(used=True)
        )
        return result.rowcount == 1

    async def delete_expired(self) -> int:
        result = await self._session.execute(
            delete(VerificationCode).where(VerificationCode.expires_at <= _utcnow())
        )
        return result.rowcount


class SessionRepository:
    """Data access for server-side auth sessions."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, auth_session: AuthSession) -> AuthSession:
        self._session.add(auth_session)
        await self._session.flush()
        return auth_session

    async def get_active(self, session_id: uuid.UUID) -> AuthSession | None:
        """Fetch a session only if it has not expired."""
        result = await self._session.execute(
            select(AuthSession).where(
                AuthSession.id == session_id,
                AuthSession.expires_at > _utcnow(),
            )
        )
        return result.scalar_one_or_none()

    async def delete(self, session_id: uuid.UUID) -> bool:
        """Delete a session. Returns False if it was already gone."""
        result = await self._session.execute(
            delete(AuthSession).where(AuthSession.id == session_id)
        )
        return result.rowcount > 0

    async def delete_expired(self) -> int:
        result = await self._session.execute(
            delete(AuthSession).where(AuthSession.expires_at <= _utcnow())
        )
        return result.rowcount


class EscrowRepository:
    """Data access for escrows."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, escrow: Escrow) -> Escrow:
        """Insert a new escrow."""
        self._session.add(escrow)
        await self._session.flush()
        await self._session.refresh(escrow, attribute_names=["creator", "recipient"])
        return escrow

    async def get_by_id(self, escrow_id: uuid.UUID) -> Escrow | None:
        """Fetch an escrow by its UUID."""
        result = await self._session.execute(select(Escrow).where(Escrow.id == escrow_id))
        return result.scalar_one_or_none()

    async def get_for_update(self, escrow_id: uuid.UUID) -> Escrow | None:
        """Fetch an escrow with a row lock for the rest of the transaction.

        populate_existing discards any stale copy already in the identity map,
        so the flags read here are the ones the lock protects.
        """
        result = await self._session.execute(
            select(Escrow)
            .where(Escrow.id == escrow_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_for_participant(self, user_id: uuid.UUID, email: str) -> list[Escrow]:
        """Escrows the user created, is bound to, or was invited to by email."""
        result = await self._session.execute(
            select(Escrow)
            .where(
                or_(
                    Escrow.creator_id == user_id,
                    Escrow.recipient_id == user_id,
                    Escrow.recipient_email == email,
                )
            )
            .order_by(Escrow.created_at.desc())
        )
        return list(result.scalars().all())

    async def save(self, escrow: Escrow) -> Escrow:
        """Flush pending changes and reload the party relationships."""
        await self._session.flush()
        await self._session.refresh(escrow, attribute_names=["creator", "recipient"])
        return escrow


class MessageRepository:
    """Data access for escrow messages (append-only)."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, message: Message) -> Message:
        self._session.add(message)
        await self._session.flush()
        await self._session.refresh(message, attribute_names=["sender"])
        return message

    async def get_by_escrow(self, escrow_id: uuid.UUID) -> list[Message]:
        """Fetch all messages for an escrow, oldest first."""
        result = await self._session.execute(
            select(Message)
            .where(Message.escrow_id == escrow_id)
            .order_by(Message.created_at.asc())
        )
        return list(result.scalars().all())


class EventRepository:
    """Data access for the append-only audit event log."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def record(
        self,
        escrow_id: uuid.UUID,
        event_type: EventType,
        old_status: EscrowStatus | None,
        new_status: EscrowStatus,
        actor: str = "SYSTEM",
        metadata: dict | None = None,
    ) -> EscrowEvent:
        """Append a new audit event. This is the ONLY write operation allowed."""
        evt = EscrowEvent(
            escrow_id=escrow_id,
            event_type=event_type.value,
            old_status=old_status.value if old_status else None,
            new_status=new_status.value,
            actor=actor,
            metadata_json=metadata,
        )
        self._session.add(evt)
        await self._session.flush()
        return evt

    async def get_by_escrow(self, escrow_id: uuid.UUID) -> list[EscrowEvent]:
        """Fetch all events for an escrow in chronological order."""
        result = await self._session.execute(
            select(EscrowEvent)
            .where(EscrowEvent.escrow_id == escrow_id)
            .order_by(EscrowEvent.created_at.asc())
        )
        return list(result.scalars().all())

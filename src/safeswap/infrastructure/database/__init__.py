"""Database infrastructure — engine, ORM models, and repositories."""

from safeswap.infrastructure.database.engine import (
    close_db,
    get_async_session,
    get_session_factory,
    init_db,
)
from safeswap.infrastructure.database.orm_models import (
    AuthSession,
    Base,
    Escrow,
    EscrowEvent,
    Message,
    User,
    VerificationCode,
)
from safeswap.infrastructure.database.repositories import (
    EscrowRepository,
    EventRepository,
    MessageRepository,
    SessionRepository,
    UserRepository,
    VerificationCodeRepository,
)

__all__ = [
    "AuthSession",
    "Base",
    "Escrow",
    "EscrowEvent",
    "Message",
    "User",
    "VerificationCode",
    "EscrowRepository",
    "EventRepository",
    "MessageRepository",
    "SessionRepository",
    "UserRepository",
    "VerificationCodeRepository",
    "get_async_session",
    "get_session_factory",
    "init_db",
    "close_db",
]

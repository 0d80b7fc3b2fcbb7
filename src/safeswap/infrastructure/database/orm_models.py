"""SQLAlchemy 2.0 ORM models for SafeSwap.

Six tables:
    1. users               — Identity anchor, created on first code request.
    2. verification_codes  — Short-lived, single-use login / verification codes.
    3. sessions            — Server-side records backing bearer tokens.
    4. escrows             — Held-funds agreements between creator and recipient.
    5. messages            — Append-only notes on an escrow.
    6. escrow_events       — Append-only audit log of every escrow mutation.

Design decisions:
    - UUIDs as primary keys (no sequential leakage).
    - Token amounts as canonical decimal strings (no floating point, no
      per-token precision limits).
    - Escrow.version is an optimistic-lock counter: every UPDATE is a
      compare-and-swap on (id, version).
    - CHECK constraints on status and code purpose to reject invalid enum values
      at DB level.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    event,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def _utcnow() -> datetime:
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# Helper: auto-set updated_at on flush
# ---------------------------------------------------------------------------
def _set_updated_at(mapper, connection, target):  # noqa: ANN001
    """SQLAlchemy event listener that updates `updated_at` before flush."""
    if hasattr(target, "updated_at"):
        target.updated_at = _utcnow()


# ---------------------------------------------------------------------------
# 1. users
# ---------------------------------------------------------------------------
class User(Base):
    """A person identified by email, optionally linked to a wallet."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(
        String(320),
        nullable=False,
        unique=True,
        comment="Lowercased email address",
    )
    wallet_address: Mapped[str | None] = mapped_column(
        String(42),
        nullable=True,
        unique=True,
        default=None,
        comment="Linked EVM wallet address",
    )
    name: Mapped[str | None] = mapped_column(String(100), nullable=True, default=None)
    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email} verified={self.is_verified}>"


# ---------------------------------------------------------------------------
# 2. verification_codes
# ---------------------------------------------------------------------------
class VerificationCode(Base):
    """A one-time numeric code bound to a user and a purpose."""

    __tablename__ = "verification_codes"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    code: Mapped[str] = mapped_column(String(6), nullable=False)
    purpose: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="CodePurpose value (LOGIN or EMAIL_VERIFICATION)",
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    used: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (
        CheckConstraint(
            "purpose IN ('LOGIN', 'EMAIL_VERIFICATION')",
            name="ck_code_valid_purpose",
        ),
        Index("idx_code_user_purpose", "user_id", "purpose", "used"),
    )

    def __repr__(self) -> str:
        return f"<VerificationCode user={self.user_id} purpose={self.purpose} used={self.used}>"


# ---------------------------------------------------------------------------
# 3. sessions
# ---------------------------------------------------------------------------
class AuthSession(Base):
    """Server-side session record. A signed token is only valid while this row
    exists and has not expired."""

    __tablename__ = "sessions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    token: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (
        Index("idx_session_user", "user_id"),
        Index("idx_session_expires_at", "expires_at"),
    )

    def __repr__(self) -> str:
        return f"<AuthSession id={self.id} user={self.user_id}>"


# ---------------------------------------------------------------------------
# 4. escrows
# ---------------------------------------------------------------------------
class Escrow(Base):
    """A held-funds agreement between a creator and an email-invited recipient."""

    __tablename__ = "escrows"

    # --- Primary Key ---
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # --- Token & Terms ---
    token_address: Mapped[str] = mapped_column(String(42), nullable=False)
    token_symbol: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[str] = mapped_column(
        String(78),
        nullable=False,
        comment="Canonical decimal string, e.g. '100' or '0.25'",
    )
    description: Mapped[str] = mapped_column(Text, nullable=False)
    terms: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)

    # --- Creator (seller) ---
    creator_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id"),
        nullable=False,
    )
    creator_wallet: Mapped[str | None] = mapped_column(String(42), nullable=True, default=None)

    # --- Recipient (buyer) ---
    recipient_email: Mapped[str] = mapped_column(
        String(320),
        nullable=False,
        comment="Lowercased email the escrow was sent to",
    )
    recipient_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("users.id"),
        nullable=True,
        default=None,
        comment="Bound lazily when the invited email first authenticates",
    )
    recipient_wallet: Mapped[str | None] = mapped_column(String(42), nullable=True, default=None)

    # --- Confirmation & Dispute ---
    buyer_confirmed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    seller_confirmed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    disputed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    dispute_reason: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)

    # --- Status (derived, state-machine guarded) ---
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="PENDING",
        comment="Projection of the flags above (see domain.lifecycle.derive_status)",
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, default=None
    )

    # --- Chain audit fields ---
    funding_tx_hash: Mapped[str | None] = mapped_column(
        String(66),
        nullable=True,
        default=None,
        comment="Transaction hash of the creator's on-chain funding",
    )
    settlement_tx_hash: Mapped[str | None] = mapped_column(
        String(66),
        nullable=True,
        default=None,
        comment="Transaction hash of the (simulated) settlement transfer",
    )

    # --- Optimistic lock ---
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    # --- Timestamps ---
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    # --- Relationships ---
    creator: Mapped[User] = relationship("User", foreign_keys=[creator_id], lazy="selectin")
    recipient: Mapped[User | None] = relationship(
        "User", foreign_keys=[recipient_id], lazy="selectin"
    )

    __mapper_args__ = {"version_id_col": version}

    # --- Table Constraints & Indexes ---
    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING', 'ACTIVE', 'COMPLETED', 'DISPUTED', "
            "'CANCELLED', 'EXPIRED')",
            name="ck_escrow_valid_status",
        ),
        Index("idx_escrow_status", "status"),
        Index("idx_escrow_creator", "creator_id"),
        Index("idx_escrow_recipient", "recipient_id"),
        Index("idx_escrow_recipient_email", "recipient_email"),
        Index("idx_escrow_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Escrow id={self.id} status={self.status} "
            f"amount={self.amount} {self.token_symbol}>"
        )


# ---------------------------------------------------------------------------
# 5. messages
# ---------------------------------------------------------------------------
class Message(Base):
    """A note one party leaves on an escrow. Never edited after creation."""

    __tablename__ = "messages"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    escrow_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("escrows.id"),
        nullable=False,
    )
    sender_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id"),
        nullable=False,
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    sender: Mapped[User] = relationship("User", lazy="selectin")

    __table_args__ = (Index("idx_message_escrow_created", "escrow_id", "created_at"),)

    def __repr__(self) -> str:
        return f"<Message id={self.id} escrow={self.escrow_id} sender={self.sender_id}>"


# ---------------------------------------------------------------------------
# 6. escrow_events (Append-Only Audit Log)
# ---------------------------------------------------------------------------
class EscrowEvent(Base):
    """Immutable audit record of every change to an escrow.

    This table is APPEND-ONLY. No UPDATE or DELETE operations are permitted
    at the application level.
    """

    __tablename__ = "escrow_events"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    escrow_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("escrows.id"),
        nullable=False,
    )
    event_type: Mapped[str] = mapped_column(
        String(40),
        nullable=False,
        comment="EventType enum value (e.g., ESCROW_CREATED, DISPUTE_RAISED)",
    )
    old_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    new_status: Mapped[str] = mapped_column(String(20), nullable=False)
    actor: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        default="SYSTEM",
        comment="User id that triggered the event, or SYSTEM",
    )
    metadata_json: Mapped[dict | None] = mapped_column(
        "metadata",
        JSON().with_variant(JSONB(), "postgresql"),
        nullable=True,
        default=None,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (
        Index("idx_event_escrow", "escrow_id"),
        Index("idx_event_type", "event_type"),
        Index("idx_event_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<EscrowEvent id={self.id} type={self.event_type} "
            f"{self.old_status}->{self.new_status}>"
        )


# ---------------------------------------------------------------------------
# Register the auto-update listener for updated_at
# ---------------------------------------------------------------------------
event.listen(User, "before_update", _set_updated_at)
event.listen(Escrow, "before_update", _set_updated_at)

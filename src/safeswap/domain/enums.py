"""Domain enumerations for SafeSwap.

These enums define the canonical states and types used throughout the system.
They are framework-agnostic (no SQLAlchemy, no FastAPI imports).
"""

import enum


class EscrowStatus(enum.StrEnum):
    """Lifecycle states of an escrow.

    The persisted value is always the one `derive_status` computes from the
    confirmation flags, the dispute flag and wallet presence. Transitions are
    guarded by EscrowStateMachine (see domain/state_machine.py).
    """

    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    DISPUTED = "DISPUTED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"


class CodePurpose(enum.StrEnum):
    """What a one-time verification code is good for."""

    LOGIN = "LOGIN"
    EMAIL_VERIFICATION = "EMAIL_VERIFICATION"


class PartyRole(enum.StrEnum):
    """The role a caller holds on an escrow.

    By convention the creator is the seller and the recipient is the buyer.
    """

    CREATOR = "CREATOR"
    RECIPIENT = "RECIPIENT"


class EventType(enum.StrEnum):
    """Types of audit events recorded in the escrow_events table.

    Every mutation of an escrow produces exactly one event.
    """

    ESCROW_CREATED = "ESCROW_CREATED"
    RECIPIENT_BOUND = "RECIPIENT_BOUND"
    WALLET_SET = "WALLET_SET"
    CONFIRMATION_RECORDED = "CONFIRMATION_RECORDED"
    ESCROW_COMPLETED = "ESCROW_COMPLETED"
    DISPUTE_RAISED = "DISPUTE_RAISED"
    SETTLEMENT_RECORDED = "SETTLEMENT_RECORDED"

"""Domain layer — pure business logic with zero framework dependencies."""

from safeswap.domain.enums import (
    CodePurpose,
    EscrowStatus,
    EventType,
    PartyRole,
)
from safeswap.domain.exceptions import (
    EscrowNotFoundError,
    ForbiddenError,
    InvalidStateTransitionError,
    SafeSwapError,
)
from safeswap.domain.lifecycle import (
    Caller,
    ConfirmationPlan,
    PartyResolution,
    derive_status,
    plan_confirmation,
    resolve_party,
)
from safeswap.domain.state_machine import (
    EscrowStateMachine,
    validate_transition,
)

__all__ = [
    "CodePurpose",
    "EscrowStatus",
    "EventType",
    "PartyRole",
    "EscrowNotFoundError",
    "ForbiddenError",
    "InvalidStateTransitionError",
    "SafeSwapError",
    "Caller",
    "ConfirmationPlan",
    "PartyResolution",
    "derive_status",
    "plan_confirmation",
    "resolve_party",
    "EscrowStateMachine",
    "validate_transition",
]

"""Escrow State Machine Guard.

Uses python-statemachine to enforce legal status transitions at the domain
level. Whatever the service computes, an illegal move (e.g. COMPLETED ->
ACTIVE) raises TransitionNotAllowed before the row is written.

Transition table:
    PENDING   -> ACTIVE      (record_confirmation)
    ACTIVE    -> ACTIVE      (record_confirmation)
    PENDING   -> COMPLETED   (complete)
    ACTIVE    -> COMPLETED   (complete)
    PENDING   -> DISPUTED    (raise_dispute)
    ACTIVE    -> DISPUTED    (raise_dispute)
    PENDING   -> CANCELLED   (cancel)        administrative only
    PENDING   -> EXPIRED     (expire)        administrative only
    ACTIVE    -> EXPIRED     (expire)        administrative only

COMPLETED, DISPUTED, CANCELLED and EXPIRED are final. Dispute resolution
happens outside this service.
"""

from __future__ import annotations

from statemachine import State, StateMachine


class EscrowStateMachine(StateMachine):
    """State machine that guards escrow lifecycle transitions.

    Usage:
        sm = EscrowStateMachine(current_status="PENDING")
        sm.record_confirmation()  # transitions to ACTIVE
        sm.status                 # "ACTIVE"
    """

    # --- States ---
    PENDING = State("PENDING", initial=True)
    ACTIVE = State("ACTIVE")
    COMPLETED = State("COMPLETED", final=True)
    DISPUTED = State("DISPUTED", final=True)
    CANCELLED = State("CANCELLED", final=True)
    EXPIRED = State("EXPIRED", final=True)

    # --- Events / Transitions ---

    # Confirmation
    record_confirmation = PENDING.to(ACTIVE) | ACTIVE.to.itself()
    complete = PENDING.to(COMPLETED) | ACTIVE.to(COMPLETED)

    # Disputes
    raise_dispute = PENDING.to(DISPUTED) | ACTIVE.to(DISPUTED)

    # Administrative
    cancel = PENDING.to(CANCELLED)
    expire = PENDING.to(EXPIRED) | ACTIVE.to(EXPIRED)

    def __init__(self, current_status: str = "PENDING") -> None:
        """Initialize the state machine at a given status.

        Args:
            current_status: The current EscrowStatus value (e.g., "ACTIVE").
        """
        valid_values = {s.value for s in self.states}
        if current_status not in valid_values:
            valid = ", ".join(sorted(valid_values))
            raise ValueError(
                f"Unknown status '{current_status}'. Valid states: {valid}"
            )
        super().__init__(start_value=current_status)

    @property
    def status(self) -> str:
        """Return the current state value as a string (matches EscrowStatus enum)."""
        return str(self.current_state.value)

    def get_allowed_events(self) -> list[str]:
        """Return a list of event names that can fire from the current state."""
        # From 2.3 `name` is humanized ("Record confirmation"); `id` keeps the identifier.
        return [getattr(event, "id", None) or event.name for event in self.allowed_events]


def validate_transition(current_status: str, event_name: str) -> str:
    """Validate a state transition and return the new status.

    Args:
        current_status: Current EscrowStatus value.
        event_name: The event to fire (e.g., "complete").

    Returns:
        The new status string after the transition.

    Raises:
        TransitionNotAllowed: If the transition is illegal.
        ValueError: If the status or event name is invalid.
    """
    sm = EscrowStateMachine(current_status=current_status)

    event_method = getattr(sm, event_name, None)
    if event_method is None or not callable(event_method):
        raise ValueError(
            f"Unknown event '{event_name}'. "
            f"Allowed events from {current_status}: {sm.get_allowed_events()}"
        )

    event_method()
    return sm.status

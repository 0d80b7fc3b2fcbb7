"""Domain exceptions for SafeSwap.

These exceptions are framework-agnostic and represent business rule violations.
They are caught and translated to HTTP responses by the API layer's middleware.
Every subclass carries a stable machine-readable `code`.
"""


class SafeSwapError(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str, code: str = "SAFESWAP_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(self.message)


# --- Authentication Errors ---


class NotAuthenticatedError(SafeSwapError):
    """Raised when a request carries no session token at all."""

    def __init__(self) -> None:
        super().__init__(message="Not authenticated", code="NOT_AUTHENTICATED")


class InvalidTokenError(SafeSwapError):
    """Raised when a session token fails signature checks or cannot be parsed."""

    def __init__(self, message: str = "Invalid token") -> None:
        super().__init__(message=message, code="INVALID_TOKEN")


class InvalidSessionError(SafeSwapError):
    """Raised when a well-signed token points at a missing or expired session."""

    def __init__(self) -> None:
        super().__init__(message="Session is invalid or has expired", code="INVALID_SESSION")


class InvalidCodeError(SafeSwapError):
    """Raised when a verification code is wrong, used, or expired."""

    def __init__(self) -> None:
        super().__init__(
            message="Invalid or expired code. Please request a new one.",
            code="INVALID_CODE",
        )


class UserNotFoundError(SafeSwapError):
    """Raised when no user exists for an email or id."""

    def __init__(self, identifier: str) -> None:
        super().__init__(
            message=f"User not found: {identifier}",
            code="USER_NOT_FOUND",
        )
        self.identifier = identifier


class ConflictError(SafeSwapError):
    """Raised when a write collides with a unique constraint (e.g. wallet address)."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="CONFLICT")


# --- Escrow Errors ---


class EscrowNotFoundError(SafeSwapError):
    """Raised when an escrow ID does not exist."""

    def __init__(self, escrow_id: str) -> None:
        super().__init__(
            message=f"Escrow not found: {escrow_id}",
            code="ESCROW_NOT_FOUND",
        )
        self.escrow_id = escrow_id


class ForbiddenError(SafeSwapError):
    """Raised when the caller is neither the creator nor the recipient."""

    def __init__(self, escrow_id: str) -> None:
        super().__init__(
            message=f"Not a party to escrow {escrow_id}",
            code="FORBIDDEN",
        )
        self.escrow_id = escrow_id


class InvalidInputError(SafeSwapError):
    """Raised for malformed input the schema layer could not catch."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message=message, code="VALIDATION_ERROR")
        self.field = field


class AlreadyCompletedError(SafeSwapError):
    """Raised when acting on an escrow that has already completed."""

    def __init__(self, escrow_id: str) -> None:
        super().__init__(
            message=f"Escrow already completed: {escrow_id}",
            code="ALREADY_COMPLETED",
        )


class AlreadyDisputedError(SafeSwapError):
    """Raised when disputing an escrow that is already disputed."""

    def __init__(self, escrow_id: str) -> None:
        super().__init__(
            message=f"Escrow already disputed: {escrow_id}",
            code="ALREADY_DISPUTED",
        )


class EscrowDisputedError(SafeSwapError):
    """Raised when confirming an escrow that is under dispute."""

    def __init__(self, escrow_id: str) -> None:
        super().__init__(
            message=f"Cannot confirm disputed escrow: {escrow_id}",
            code="DISPUTED",
        )


class MissingWalletError(SafeSwapError):
    """Raised when both parties would be confirmed but a wallet is not set.

    The confirmation is rejected as a whole; nothing is persisted.
    """

    def __init__(self, escrow_id: str, missing: list[str]) -> None:
        super().__init__(
            message=(
                f"Both parties must set a wallet before escrow {escrow_id} "
                f"can complete (missing: {', '.join(missing)})"
            ),
            code="MISSING_WALLET",
        )
        self.missing = missing


# --- State Machine Errors ---


class InvalidStateTransitionError(SafeSwapError):
    """Raised when an attempted state transition is not allowed.

    Example: CANCELLED -> COMPLETED.
    """

    def __init__(self, current_state: str, attempted_event: str) -> None:
        super().__init__(
            message=f"Invalid state transition: {attempted_event} from {current_state}",
            code="INVALID_STATE_TRANSITION",
        )
        self.current_state = current_state
        self.attempted_event = attempted_event


class ConcurrentUpdateError(SafeSwapError):
    """Raised when another request changed the escrow row first."""

    def __init__(self, escrow_id: str) -> None:
        super().__init__(
            message=f"Escrow {escrow_id} was modified concurrently, retry the request",
            code="CONCURRENT_UPDATE",
        )


# --- Collaborator Errors ---


class ChainUnavailableError(SafeSwapError):
    """Raised when the JSON-RPC endpoint fails or returns an error."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="CHAIN_UNAVAILABLE")


# --- Idempotency Errors ---


class DuplicateOperationError(SafeSwapError):
    """Raised when a duplicate idempotency key is detected."""

    def __init__(self, idempotency_key: str) -> None:
        super().__init__(
            message=f"Duplicate operation detected for key: {idempotency_key}",
            code="DUPLICATE_OPERATION",
        )

"""Escrow lifecycle rules as pure functions.

Nothing here touches the database. The service layer loads an escrow, asks
these functions what the caller may do and what the row should look like
afterwards, then writes exactly that.

    resolve_party      -> who is the caller on this escrow (and must we bind them?)
    derive_status      -> the only way a status value is ever computed
    plan_confirmation  -> next flags + status for a confirm, or the reason it is refused
    check_disputable   -> whether a dispute may be raised
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Protocol

from safeswap.domain.enums import EscrowStatus, PartyRole
from safeswap.domain.exceptions import (
    AlreadyCompletedError,
    AlreadyDisputedError,
    EscrowDisputedError,
    ForbiddenError,
    InvalidInputError,
    InvalidStateTransitionError,
    MissingWalletError,
)

if TYPE_CHECKING:
    import uuid

WALLET_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")
TX_HASH_RE = re.compile(r"^0x[a-fA-F0-9]{64}$")

DEFAULT_DISPUTE_REASON = "Dispute raised by user"


def is_valid_wallet_address(address: str | None) -> bool:
    """Return True for a 0x-prefixed, 40 hex character EVM address."""
    return bool(address) and WALLET_ADDRESS_RE.match(address) is not None


def canonical_amount(raw: str | Decimal | int) -> str:
    """Parse a positive token amount into its canonical decimal string.

    "100.00" -> "100", "0.250" -> "0.25". Floats never enter the calculation.

    Raises:
        InvalidInputError: Not a number, not finite, or not greater than zero.
    """
    try:
        value = Decimal(str(raw).strip())
    except InvalidOperation as e:
        raise InvalidInputError("Amount must be a decimal number", field="amount") from e
    if not value.is_finite() or value <= 0:
        raise InvalidInputError("Amount must be greater than zero", field="amount")
    return format(value.normalize(), "f")


class EscrowView(Protocol):
    """The escrow fields the lifecycle rules read. The ORM model satisfies it."""

    id: uuid.UUID
    status: str
    creator_id: uuid.UUID
    recipient_id: uuid.UUID | None
    recipient_email: str
    creator_wallet: str | None
    recipient_wallet: str | None
    buyer_confirmed: bool
    seller_confirmed: bool
    disputed: bool


@dataclass(frozen=True)
class Caller:
    """An authenticated identity as far as escrow rules are concerned."""

    user_id: uuid.UUID
    email: str


@dataclass(frozen=True)
class PartyResolution:
    """Outcome of role resolution.

    Attributes:
        roles: Every role the caller holds. Both roles at once is possible when
            a creator invites their own email.
        bind_recipient: True when the caller matched by email on an escrow with
            no bound recipient, so recipient_id must be set to the caller.
    """

    roles: frozenset[PartyRole]
    bind_recipient: bool = False

    @property
    def is_creator(self) -> bool:
        return PartyRole.CREATOR in self.roles

    @property
    def is_recipient(self) -> bool:
        return PartyRole.RECIPIENT in self.roles

    @property
    def primary_role(self) -> PartyRole:
        """Creator wins when the caller holds both roles."""
        return PartyRole.CREATOR if self.is_creator else PartyRole.RECIPIENT


def resolve_party(escrow: EscrowView, caller: Caller) -> PartyResolution:
    """Resolve the caller's roles on an escrow.

    Raises:
        ForbiddenError: If the caller holds no role.
    """
    roles: set[PartyRole] = set()
    bind_recipient = False

    if escrow.creator_id == caller.user_id:
        roles.add(PartyRole.CREATOR)

    if escrow.recipient_id is not None:
        if escrow.recipient_id == caller.user_id:
            roles.add(PartyRole.RECIPIENT)
    elif escrow.recipient_email == caller.email.strip().lower():
        roles.add(PartyRole.RECIPIENT)
        bind_recipient = True

    if not roles:
        raise ForbiddenError(str(escrow.id))

    return PartyResolution(roles=frozenset(roles), bind_recipient=bind_recipient)


def missing_wallets(creator_wallet: str | None, recipient_wallet: str | None) -> list[str]:
    """Name the parties whose wallet is still unset."""
    missing = []
    if not creator_wallet:
        missing.append("creator")
    if not recipient_wallet:
        missing.append("recipient")
    return missing


def derive_status(
    buyer_confirmed: bool,
    seller_confirmed: bool,
    disputed: bool,
    wallets_present: bool,
) -> EscrowStatus:
    """Compute the status an escrow must have for the given flags."""
    if disputed:
        return EscrowStatus.DISPUTED
    if buyer_confirmed and seller_confirmed and wallets_present:
        return EscrowStatus.COMPLETED
    if buyer_confirmed or seller_confirmed:
        return EscrowStatus.ACTIVE
    return EscrowStatus.PENDING


@dataclass(frozen=True)
class ConfirmationPlan:
    """What a confirm call will write."""

    buyer_confirmed: bool
    seller_confirmed: bool
    status: EscrowStatus
    event: str

    @property
    def completed(self) -> bool:
        return self.status == EscrowStatus.COMPLETED


def _reject_closed(escrow: EscrowView, event: str) -> None:
    status = EscrowStatus(escrow.status)
    if status in (EscrowStatus.CANCELLED, EscrowStatus.EXPIRED):
        raise InvalidStateTransitionError(status.value, event)


def plan_confirmation(escrow: EscrowView, resolution: PartyResolution) -> ConfirmationPlan:
    """Plan the effect of a confirmation by the resolved caller.

    Re-confirming is idempotent: a flag is only ever set, never toggled, and
    the other party's flag is left as it is.

    Raises:
        AlreadyCompletedError: The escrow is COMPLETED.
        EscrowDisputedError: The escrow is DISPUTED.
        InvalidStateTransitionError: The escrow is CANCELLED or EXPIRED.
        MissingWalletError: Both flags would be set but a wallet is absent.
    """
    status = EscrowStatus(escrow.status)
    if status == EscrowStatus.COMPLETED:
        raise AlreadyCompletedError(str(escrow.id))
    if status == EscrowStatus.DISPUTED:
        raise EscrowDisputedError(str(escrow.id))
    _reject_closed(escrow, "record_confirmation")

    buyer = escrow.buyer_confirmed or resolution.is_recipient
    seller = escrow.seller_confirmed or resolution.is_creator
    missing = missing_wallets(escrow.creator_wallet, escrow.recipient_wallet)

    if buyer and seller and missing:
        raise MissingWalletError(str(escrow.id), missing)

    next_status = derive_status(buyer, seller, escrow.disputed, wallets_present=not missing)
    event = "complete" if next_status == EscrowStatus.COMPLETED else "record_confirmation"
    return ConfirmationPlan(
        buyer_confirmed=buyer,
        seller_confirmed=seller,
        status=next_status,
        event=event,
    )


def check_wallet_editable(escrow: EscrowView) -> None:
    """Raise unless wallets may still change. Terminal escrows keep their wallets."""
    status = EscrowStatus(escrow.status)
    if status == EscrowStatus.COMPLETED:
        raise AlreadyCompletedError(str(escrow.id))
    if status == EscrowStatus.DISPUTED:
        raise EscrowDisputedError(str(escrow.id))
    _reject_closed(escrow, "set_wallet")


def check_disputable(escrow: EscrowView) -> None:
    """Raise unless a dispute may be raised on the escrow."""
    status = EscrowStatus(escrow.status)
    if status == EscrowStatus.COMPLETED:
        raise AlreadyCompletedError(str(escrow.id))
    if status == EscrowStatus.DISPUTED:
        raise AlreadyDisputedError(str(escrow.id))
    _reject_closed(escrow, "raise_dispute")

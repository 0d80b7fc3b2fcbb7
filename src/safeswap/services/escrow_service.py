"""Escrow Service — core business logic for the escrow lifecycle.

This is the application layer that coordinates between:
    - Domain rules (role resolution, confirmation planning, status derivation)
    - Domain state machine (transition guard)
    - Repositories (data access)
    - Event log (audit trail)
    - Deferred effects (emails, settlement) that run after commit

Both REST routes and MCP tools call into this service, ensuring a single
source of truth for all business rules.

Every operation that names an escrow goes through `_authorize` first. It is
the only place a recipient gets bound to an account.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy.orm.exc import StaleDataError
from statemachine.exceptions import TransitionNotAllowed

from safeswap.domain.enums import EscrowStatus, EventType, PartyRole
from safeswap.domain.exceptions import (
    AlreadyCompletedError,
    AlreadyDisputedError,
    ConcurrentUpdateError,
    EscrowDisputedError,
    EscrowNotFoundError,
    InvalidInputError,
    InvalidStateTransitionError,
)
from safeswap.domain.lifecycle import (
    DEFAULT_DISPUTE_REASON,
    TX_HASH_RE,
    Caller,
    PartyResolution,
    canonical_amount,
    check_disputable,
    check_wallet_editable,
    derive_status,
    is_valid_wallet_address,
    missing_wallets,
    plan_confirmation,
    resolve_party,
)
from safeswap.domain.state_machine import EscrowStateMachine, validate_transition
from safeswap.infrastructure.database.orm_models import Escrow, Message
from safeswap.infrastructure.database.repositories import (
    EscrowRepository,
    EventRepository,
    MessageRepository,
)
from safeswap.logging_config import get_logger
from safeswap.orchestration.completion_flow import run_completion_workflow
from safeswap.services.effects import DeferredEffects
from safeswap.services.notification_service import NotificationService
from safeswap.services.settlement_service import SettlementService

if TYPE_CHECKING:
    import uuid
    from collections.abc import AsyncIterator

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from safeswap.infrastructure.database.orm_models import EscrowEvent, User

logger = get_logger(__name__)

MAX_MESSAGE_LENGTH = 5000

# Guard rejections after which a lazy binding is still committed.
# MissingWalletError is absent: that rejection stores nothing at all.
BINDING_SURVIVES = (
    AlreadyCompletedError,
    AlreadyDisputedError,
    EscrowDisputedError,
    InvalidStateTransitionError,
)


@dataclass(frozen=True)
class EscrowStats:
    total: int
    active: int
    completed: int
    disputed: int
    total_value: Decimal


@dataclass(frozen=True)
class EscrowDetail:
    escrow: Escrow
    messages: list[Message] = field(default_factory=list)
    roles: frozenset[PartyRole] = frozenset()


def compute_stats(escrows: list[Escrow]) -> EscrowStats:
    """Dashboard counters. total_value sums completed amounts exactly."""
    completed = [e for e in escrows if e.status == EscrowStatus.COMPLETED.value]
    return EscrowStats(
        total=len(escrows),
        active=sum(
            1 for e in escrows if e.status in (EscrowStatus.PENDING.value, EscrowStatus.ACTIVE.value)
        ),
        completed=len(completed),
        disputed=sum(1 for e in escrows if e.status == EscrowStatus.DISPUTED.value),
        total_value=sum((Decimal(e.amount) for e in completed), Decimal(0)),
    )


class EscrowService:
    """Manages the escrow lifecycle."""

    def __init__(
        self,
        session: AsyncSession,
        effects: DeferredEffects | None = None,
        notifier: NotificationService | None = None,
        settlement: SettlementService | None = None,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
    ) -> None:
        self._session = session
        self._escrow_repo = EscrowRepository(session)
        self._message_repo = MessageRepository(session)
        self._event_repo = EventRepository(session)
        self.effects = effects if effects is not None else DeferredEffects()
        self._notifier = notifier or NotificationService()
        self._settlement = settlement or SettlementService()
        self._session_factory = session_factory

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_escrow(
        self,
        creator: User,
        token_address: str,
        token_symbol: str,
        amount: str | Decimal,
        recipient_email: str,
        description: str,
        terms: str | None = None,
        funding_tx_hash: str | None = None,
    ) -> Escrow:
        """Create a new escrow in PENDING state with nothing confirmed or bound."""
        required = {
            "token_address": token_address,
            "token_symbol": token_symbol,
            "amount": amount,
            "recipient_email": recipient_email,
            "description": description,
        }
        for name, value in required.items():
            if value is None or not str(value).strip():
                raise InvalidInputError(f"{name} is required", field=name)

        token_address = token_address.strip()
        if not is_valid_wallet_address(token_address):
            raise InvalidInputError("Invalid token address format", field="token_address")

        recipient_email = recipient_email.strip().lower()
        if "@" not in recipient_email:
            raise InvalidInputError("Invalid recipient email", field="recipient_email")

        if funding_tx_hash is not None:
            funding_tx_hash = funding_tx_hash.strip() or None
        if funding_tx_hash and not TX_HASH_RE.match(funding_tx_hash):
            raise InvalidInputError("Invalid transaction hash format", field="funding_tx_hash")

        escrow = Escrow(
            token_address=token_address,
            token_symbol=token_symbol.strip(),
            amount=canonical_amount(amount),
            description=description.strip(),
            terms=terms.strip() if terms and terms.strip() else None,
            creator_id=creator.id,
            recipient_email=recipient_email,
            buyer_confirmed=False,
            seller_confirmed=False,
            disputed=False,
            status=EscrowStatus.PENDING.value,
            funding_tx_hash=funding_tx_hash,
        )
        escrow = await self._escrow_repo.create(escrow)

        await self._event_repo.record(
            escrow_id=escrow.id,
            event_type=EventType.ESCROW_CREATED,
            old_status=None,
            new_status=EscrowStatus.PENDING,
            actor=str(creator.id),
            metadata={
                "amount": escrow.amount,
                "token_symbol": escrow.token_symbol,
                "recipient_email": recipient_email,
                "funding_tx_hash": funding_tx_hash,
            },
        )

        self.effects.add(
            "send_escrow_created_email",
            self._notifier.send_escrow_created_email,
            creator.email,
            escrow,
        )
        self.effects.add(
            "send_escrow_received_email",
            self._notifier.send_escrow_received_email,
            recipient_email,
            escrow,
            creator.email,
        )

        logger.info(
            "escrow.created",
            escrow_id=str(escrow.id),
            amount=escrow.amount,
            token=escrow.token_symbol,
        )
        return escrow

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_escrow(self, escrow_id: uuid.UUID, caller: User) -> Escrow:
        escrow, _ = await self._authorize(escrow_id, caller)
        return escrow

    async def get_escrow_detail(self, escrow_id: uuid.UUID, caller: User) -> EscrowDetail:
        """The escrow, its messages (oldest first) and the caller's roles."""
        escrow, resolution = await self._authorize(escrow_id, caller)
        messages = await self._message_repo.get_by_escrow(escrow.id)
        return EscrowDetail(escrow=escrow, messages=messages, roles=resolution.roles)

    async def list_escrows(self, caller: User) -> tuple[list[Escrow], EscrowStats]:
        """Escrows the caller created or was invited to, newest first."""
        escrows = await self._escrow_repo.list_for_participant(caller.id, caller.email)
        return escrows, compute_stats(escrows)

    async def get_status(self, escrow_id: uuid.UUID, caller: User) -> dict[str, Any]:
        """Status with confirmation flags and the events allowed next."""
        escrow, resolution = await self._authorize(escrow_id, caller)
        sm = EscrowStateMachine(current_status=escrow.status)
        return {
            "escrow_id": str(escrow.id),
            "status": escrow.status,
            "buyer_confirmed": escrow.buyer_confirmed,
            "seller_confirmed": escrow.seller_confirmed,
            "disputed": escrow.disputed,
            "missing_wallets": missing_wallets(escrow.creator_wallet, escrow.recipient_wallet),
            "allowed_events": sm.get_allowed_events(),
            "roles": sorted(role.value for role in resolution.roles),
        }

    async def get_events(self, escrow_id: uuid.UUID, caller: User) -> list[EscrowEvent]:
        """Audit trail, oldest first."""
        escrow, _ = await self._authorize(escrow_id, caller)
        return await self._event_repo.get_by_escrow(escrow.id)

    # ------------------------------------------------------------------
    # Confirmation
    # ------------------------------------------------------------------

    async def confirm(self, escrow_id: uuid.UUID, caller: User) -> Escrow:
        """Record the caller's confirmation; complete when both sides are in.

        A rejected confirmation raises before anything of its own is written.
        MissingWalletError rolls back the whole call, recipient binding
        included; the other status rejections keep the binding.
        """
        escrow, resolution = await self._authorize(escrow_id, caller, lock=True)
        old_status = EscrowStatus(escrow.status)

        async with self._binding_survives_rejection(resolution):
            plan = plan_confirmation(escrow, resolution)
            self._fire_transition(escrow, plan.event)

        escrow.buyer_confirmed = plan.buyer_confirmed
        escrow.seller_confirmed = plan.seller_confirmed
        escrow.status = plan.status.value
        if plan.completed:
            escrow.completed_at = datetime.now(UTC)
        await self._save(escrow)

        role = resolution.primary_role
        await self._event_repo.record(
            escrow_id=escrow.id,
            event_type=EventType.ESCROW_COMPLETED if plan.completed else EventType.CONFIRMATION_RECORDED,
            old_status=old_status,
            new_status=plan.status,
            actor=str(caller.id),
            metadata={
                "role": role.value,
                "buyer_confirmed": plan.buyer_confirmed,
                "seller_confirmed": plan.seller_confirmed,
            },
        )

        if plan.completed:
            self._queue_completion(escrow, role)

        logger.info(
            "escrow.confirmed",
            escrow_id=str(escrow.id),
            role=role.value,
            status=escrow.status,
        )
        return escrow

    # ------------------------------------------------------------------
    # Disputes
    # ------------------------------------------------------------------

    async def dispute(
        self,
        escrow_id: uuid.UUID,
        caller: User,
        reason: str | None = None,
    ) -> Escrow:
        """Raise a dispute. Terminal in this service; resolution happens elsewhere."""
        escrow, resolution = await self._authorize(escrow_id, caller, lock=True)
        old_status = EscrowStatus(escrow.status)

        async with self._binding_survives_rejection(resolution):
            check_disputable(escrow)
            self._fire_transition(escrow, "raise_dispute")

        escrow.disputed = True
        escrow.dispute_reason = (reason or "").strip() or DEFAULT_DISPUTE_REASON
        escrow.status = derive_status(
            escrow.buyer_confirmed,
            escrow.seller_confirmed,
            disputed=True,
            wallets_present=not missing_wallets(escrow.creator_wallet, escrow.recipient_wallet),
        ).value
        await self._save(escrow)

        await self._event_repo.record(
            escrow_id=escrow.id,
            event_type=EventType.DISPUTE_RAISED,
            old_status=old_status,
            new_status=EscrowStatus(escrow.status),
            actor=str(caller.id),
            metadata={"reason": escrow.dispute_reason, "role": resolution.primary_role.value},
        )

        logger.info("escrow.dispute_raised", escrow_id=str(escrow.id), by=str(caller.id))
        return escrow

    # ------------------------------------------------------------------
    # Wallets
    # ------------------------------------------------------------------

    async def set_wallet(
        self,
        escrow_id: uuid.UUID,
        caller: User,
        wallet_address: str,
    ) -> Escrow:
        """Write the caller's payout/refund wallet for every role they hold."""
        wallet_address = (wallet_address or "").strip()
        if not is_valid_wallet_address(wallet_address):
            raise InvalidInputError("Invalid wallet address format", field="wallet_address")

        escrow, resolution = await self._authorize(escrow_id, caller, lock=True)
        async with self._binding_survives_rejection(resolution):
            check_wallet_editable(escrow)

        if resolution.is_creator:
            escrow.creator_wallet = wallet_address
        if resolution.is_recipient:
            escrow.recipient_wallet = wallet_address
        await self._save(escrow)

        status = EscrowStatus(escrow.status)
        await self._event_repo.record(
            escrow_id=escrow.id,
            event_type=EventType.WALLET_SET,
            old_status=status,
            new_status=status,
            actor=str(caller.id),
            metadata={
                "roles": sorted(role.value for role in resolution.roles),
                "wallet": wallet_address,
            },
        )

        logger.info(
            "escrow.wallet_set",
            escrow_id=str(escrow.id),
            roles=sorted(role.value for role in resolution.roles),
        )
        return escrow

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def post_message(self, escrow_id: uuid.UUID, caller: User, content: str) -> Message:
        """Append a message. Allowed in every status."""
        content = (content or "").strip()
        if not content:
            raise InvalidInputError("Message content is required", field="content")
        if len(content) > MAX_MESSAGE_LENGTH:
            raise InvalidInputError(
                f"Message must be at most {MAX_MESSAGE_LENGTH} characters", field="content"
            )

        escrow, _ = await self._authorize(escrow_id, caller)
        message = await self._message_repo.create(
            Message(escrow_id=escrow.id, sender_id=caller.id, content=content)
        )
        logger.info("escrow.message_posted", escrow_id=str(escrow.id), message_id=str(message.id))
        return message

    async def list_messages(self, escrow_id: uuid.UUID, caller: User) -> list[Message]:
        escrow, _ = await self._authorize(escrow_id, caller)
        return await self._message_repo.get_by_escrow(escrow.id)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _get_escrow_or_raise(self, escrow_id: uuid.UUID, lock: bool = False) -> Escrow:
        if lock:
            escrow = await self._escrow_repo.get_for_update(escrow_id)
        else:
            escrow = await self._escrow_repo.get_by_id(escrow_id)
        if escrow is None:
            raise EscrowNotFoundError(str(escrow_id))
        return escrow

    async def _authorize(
        self,
        escrow_id: uuid.UUID,
        caller: User,
        lock: bool = False,
    ) -> tuple[Escrow, PartyResolution]:
        """Load the escrow, resolve the caller's roles and bind them if invited.

        Raises:
            EscrowNotFoundError: No such escrow.
            ForbiddenError: The caller is not a party.
        """
        escrow = await self._get_escrow_or_raise(escrow_id, lock=lock)
        resolution = resolve_party(escrow, Caller(user_id=caller.id, email=caller.email))

        if resolution.bind_recipient:
            escrow.recipient_id = caller.id
            await self._save(escrow)
            status = EscrowStatus(escrow.status)
            await self._event_repo.record(
                escrow_id=escrow.id,
                event_type=EventType.RECIPIENT_BOUND,
                old_status=status,
                new_status=status,
                actor=str(caller.id),
                metadata={"recipient_email": escrow.recipient_email},
            )
            logger.info("escrow.recipient_bound", escrow_id=str(escrow.id), user_id=str(caller.id))

        return escrow, resolution

    async def _save(self, escrow: Escrow) -> None:
        """Flush the escrow; a lost compare-and-swap on `version` becomes a 409."""
        # Read before the flush: a failed flush leaves attributes unreadable.
        escrow_id = str(escrow.id)
        try:
            await self._escrow_repo.save(escrow)
        except StaleDataError as err:
            logger.warning("escrow.concurrent_update", escrow_id=escrow_id)
            raise ConcurrentUpdateError(escrow_id) from err

    @asynccontextmanager
    async def _binding_survives_rejection(self, resolution: PartyResolution) -> AsyncIterator[None]:
        """Commit a fresh recipient binding when the guarded checks reject the action.

        Only wraps checks that run before the action writes anything, so the
        commit carries the binding and its RECIPIENT_BOUND event alone.
        """
        try:
            yield
        except BINDING_SURVIVES as exc:
            if resolution.bind_recipient:
                await self._session.commit()
                logger.info("escrow.binding_kept", rejected=exc.code)
            raise

    def _fire_transition(self, escrow: Escrow, event_name: str) -> str:
        """Validate a state machine transition and return the target status.

        Raises InvalidStateTransitionError if the transition is illegal.
        """
        try:
            return validate_transition(escrow.status, event_name)
        except (TransitionNotAllowed, ValueError) as err:
            raise InvalidStateTransitionError(escrow.status, event_name) from err

    def _queue_completion(self, escrow: Escrow, confirmer_role: PartyRole) -> None:
        """Queue settlement and the completion emails for after commit."""
        self.effects.add(
            "completion_workflow",
            run_completion_workflow,
            str(escrow.id),
            session_factory=self._session_factory,
            settlement=self._settlement,
        )
        recipients = [escrow.creator.email, escrow.recipient_email]
        for email in dict.fromkeys(recipients):
            self.effects.add(
                "send_escrow_confirmation_email",
                self._notifier.send_escrow_confirmation_email,
                email,
                escrow,
                confirmer_role.value,
                True,
                None,
            )

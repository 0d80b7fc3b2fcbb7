"""Completion Workflow — settles an escrow after both parties confirmed.

Runs as a deferred effect once the confirming request has committed:

    load (locked) -> check still COMPLETED and unsettled -> transfer -> record hash

It opens its own session because the request session is already closed by
the time background tasks run. The transfer hash is stored once and never
re-evaluated; a second run finds it and skips.

Usage:
    from safeswap.orchestration.completion_flow import run_completion_workflow

    state = await run_completion_workflow(escrow_id="...")
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, TypedDict

from safeswap.domain.enums import EscrowStatus, EventType
from safeswap.infrastructure.database.engine import get_session_factory
from safeswap.infrastructure.database.repositories import EscrowRepository, EventRepository
from safeswap.logging_config import get_logger
from safeswap.services.settlement_service import SettlementService

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = get_logger(__name__)


class CompletionWorkflowState(TypedDict, total=False):
    """State carried through the completion workflow."""

    escrow_id: str
    settlement_tx_hash: str
    final_status: str
    skipped: str
    error: str


async def run_completion_workflow(
    escrow_id: str,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    settlement: SettlementService | None = None,
) -> CompletionWorkflowState:
    """Settle a completed escrow and record the transfer hash.

    Never raises: failures are logged and reported in the returned state, so
    the committed completion stands regardless.

    Args:
        escrow_id: UUID string of the escrow.
        session_factory: Session factory to open the workflow's own session.
        settlement: Settlement collaborator (simulated transfer by default).

    Returns:
        CompletionWorkflowState with the final status and the settlement hash.
    """
    factory = session_factory or get_session_factory()
    settlement_svc = settlement or SettlementService()

    state: CompletionWorkflowState = {
        "escrow_id": escrow_id,
        "settlement_tx_hash": "",
        "final_status": "",
        "skipped": "",
        "error": "",
    }

    try:
        async with factory() as session:
            escrow_repo = EscrowRepository(session)
            event_repo = EventRepository(session)

            # --- Node 1: Load and check ---
            escrow = await escrow_repo.get_for_update(uuid.UUID(escrow_id))
            if escrow is None:
                logger.warning("workflow.escrow_missing", escrow_id=escrow_id)
                state["skipped"] = "not_found"
                return state

            state["final_status"] = escrow.status
            if escrow.status != EscrowStatus.COMPLETED.value:
                logger.info("workflow.skipped", escrow_id=escrow_id, reason="not_completed")
                state["skipped"] = "not_completed"
                return state
            if escrow.settlement_tx_hash:
                logger.info("workflow.skipped", escrow_id=escrow_id, reason="already_settled")
                state["skipped"] = "already_settled"
                state["settlement_tx_hash"] = escrow.settlement_tx_hash
                return state

            # --- Node 2: Settle ---
            logger.info("workflow.settle", escrow_id=escrow_id)
            receipt = await settlement_svc.simulate_token_transfer(
                from_wallet=escrow.creator_wallet or "",
                to_wallet=escrow.recipient_wallet or "",
                token_address=escrow.token_address,
                amount=escrow.amount,
            )

            # --- Node 3: Record ---
            escrow.settlement_tx_hash = receipt.transaction_hash
            await escrow_repo.save(escrow)
            await event_repo.record(
                escrow_id=escrow.id,
                event_type=EventType.SETTLEMENT_RECORDED,
                old_status=EscrowStatus.COMPLETED,
                new_status=EscrowStatus.COMPLETED,
                actor="SYSTEM",
                metadata={
                    "tx_hash": receipt.transaction_hash,
                    "simulated": receipt.simulated,
                },
            )
            await session.commit()

            state["settlement_tx_hash"] = receipt.transaction_hash
            logger.info(
                "settlement.recorded",
                escrow_id=escrow_id,
                tx_hash=receipt.transaction_hash,
            )

    except Exception as exc:
        logger.exception("workflow.error", escrow_id=escrow_id)
        state["error"] = str(exc)
        state["final_status"] = "ERROR"

    return state

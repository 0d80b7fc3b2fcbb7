"""Escrow REST API routes.

These endpoints provide the HTTP interface for creating escrows, confirming,
disputing, setting wallets, messaging and checking status. The MCP tools in
mcp_server/tools.py call the same service layer, ensuring consistency.

Routes:
    GET    /api/v1/escrows                 — List the caller's escrows + stats
    POST   /api/v1/escrows                 — Create a new escrow
    GET    /api/v1/escrows/{id}            — Escrow details with messages
    GET    /api/v1/escrows/{id}/status     — Lightweight status check
    GET    /api/v1/escrows/{id}/events     — Audit trail
    POST   /api/v1/escrows/{id}/confirm    — Confirm as creator or recipient
    POST   /api/v1/escrows/{id}/dispute    — Raise a dispute
    POST   /api/v1/escrows/{id}/wallet     — Set the caller's wallet
    GET    /api/v1/escrows/{id}/messages   — List messages
    POST   /api/v1/escrows/{id}/messages   — Post a message

Mutating routes commit explicitly and only then schedule side effects
(emails, settlement) as background tasks.
"""

from __future__ import annotations

import uuid

import redis.asyncio as aioredis
from fastapi import APIRouter, BackgroundTasks, Body, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from safeswap.api.deps import (
    commit_and_defer,
    get_current_user,
    get_db_session,
    get_escrow_service,
    get_redis_client,
)
from safeswap.domain.exceptions import DuplicateOperationError
from safeswap.infrastructure.database.orm_models import User
from safeswap.infrastructure.redis_client import claim_idempotency, release_idempotency
from safeswap.logging_config import get_logger
from safeswap.schemas.escrow import (
    CreateEscrowRequest,
    EscrowDetailResponse,
    EscrowEventResponse,
    EscrowListResponse,
    EscrowResponse,
    EscrowStatsResponse,
    EscrowStatusResponse,
    MessageResponse,
    PostMessageRequest,
    RaiseDisputeRequest,
    SetWalletRequest,
)
from safeswap.services.escrow_service import EscrowService

router = APIRouter(prefix="/api/v1/escrows", tags=["Escrow"])
logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# List / Create
# ---------------------------------------------------------------------------


@router.get(
    "",
    response_model=EscrowListResponse,
    summary="List my escrows",
)
async def list_escrows(
    user: User = Depends(get_current_user),
    svc: EscrowService = Depends(get_escrow_service),
) -> EscrowListResponse:
    """Escrows created by, bound to, or addressed to the caller, newest first."""
    escrows, stats = await svc.list_escrows(user)
    return EscrowListResponse(
        escrows=[EscrowResponse.model_validate(e) for e in escrows],
        stats=EscrowStatsResponse(
            total=stats.total,
            active=stats.active,
            completed=stats.completed,
            disputed=stats.disputed,
            total_value=stats.total_value,
        ),
    )


@router.post(
    "",
    response_model=EscrowResponse,
    status_code=201,
    summary="Create a new escrow",
)
async def create_escrow(
    request: CreateEscrowRequest,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
    svc: EscrowService = Depends(get_escrow_service),
    session: AsyncSession = Depends(get_db_session),
    redis: aioredis.Redis | None = Depends(get_redis_client),
) -> EscrowResponse:
    """Create a new escrow in PENDING state and notify both parties."""
    idem_key = f"escrow:create:{user.id}:{request.idempotency_key}" if request.idempotency_key else None
    if idem_key and not await claim_idempotency(redis, idem_key):
        raise DuplicateOperationError(request.idempotency_key)

    try:
        escrow = await svc.create_escrow(
            creator=user,
            token_address=request.token_address,
            token_symbol=request.token_symbol,
            amount=request.amount,
            recipient_email=request.recipient_email,
            description=request.description,
            terms=request.terms,
            funding_tx_hash=request.funding_tx_hash,
        )
        await commit_and_defer(session, svc.effects, background_tasks)
    except Exception:
        if idem_key:
            await release_idempotency(redis, idem_key)
        raise

    return EscrowResponse.model_validate(escrow)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


@router.get(
    "/{escrow_id}",
    response_model=EscrowDetailResponse,
    summary="Get escrow details",
)
async def get_escrow(
    escrow_id: uuid.UUID,
    user: User = Depends(get_current_user),
    svc: EscrowService = Depends(get_escrow_service),
) -> EscrowDetailResponse:
    """Escrow with messages. Binds the invited recipient on first view."""
    detail = await svc.get_escrow_detail(escrow_id, user)
    return EscrowDetailResponse(
        escrow=EscrowResponse.model_validate(detail.escrow),
        messages=[MessageResponse.model_validate(m) for m in detail.messages],
        roles=sorted(role.value for role in detail.roles),
    )


@router.get(
    "/{escrow_id}/status",
    response_model=EscrowStatusResponse,
    summary="Get escrow status",
)
async def get_escrow_status(
    escrow_id: uuid.UUID,
    user: User = Depends(get_current_user),
    svc: EscrowService = Depends(get_escrow_service),
) -> EscrowStatusResponse:
    """Status, confirmation flags, missing wallets and allowed next events."""
    status = await svc.get_status(escrow_id, user)
    return EscrowStatusResponse(**status)


@router.get(
    "/{escrow_id}/events",
    response_model=list[EscrowEventResponse],
    summary="Get audit trail",
)
async def get_escrow_events(
    escrow_id: uuid.UUID,
    user: User = Depends(get_current_user),
    svc: EscrowService = Depends(get_escrow_service),
) -> list[EscrowEventResponse]:
    """Every recorded change to the escrow, oldest first."""
    events = await svc.get_events(escrow_id, user)
    return [EscrowEventResponse.model_validate(e) for e in events]


# ---------------------------------------------------------------------------
# Confirm / Dispute / Wallet
# ---------------------------------------------------------------------------


@router.post(
    "/{escrow_id}/confirm",
    response_model=EscrowResponse,
    summary="Confirm the escrow",
)
async def confirm_escrow(
    escrow_id: uuid.UUID,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
    svc: EscrowService = Depends(get_escrow_service),
    session: AsyncSession = Depends(get_db_session),
) -> EscrowResponse:
    """Set the caller's confirmation. Completes and settles once both sides confirmed."""
    escrow = await svc.confirm(escrow_id, user)
    await commit_and_defer(session, svc.effects, background_tasks)
    return EscrowResponse.model_validate(escrow)


@router.post(
    "/{escrow_id}/dispute",
    response_model=EscrowResponse,
    summary="Raise a dispute",
)
async def dispute_escrow(
    escrow_id: uuid.UUID,
    background_tasks: BackgroundTasks,
    request: RaiseDisputeRequest | None = Body(default=None),
    user: User = Depends(get_current_user),
    svc: EscrowService = Depends(get_escrow_service),
    session: AsyncSession = Depends(get_db_session),
) -> EscrowResponse:
    """Mark the escrow DISPUTED. The request body is optional."""
    escrow = await svc.dispute(escrow_id, user, request.reason if request else None)
    await commit_and_defer(session, svc.effects, background_tasks)
    return EscrowResponse.model_validate(escrow)


@router.post(
    "/{escrow_id}/wallet",
    response_model=EscrowResponse,
    summary="Set the caller's wallet",
)
async def set_escrow_wallet(
    escrow_id: uuid.UUID,
    request: SetWalletRequest,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
    svc: EscrowService = Depends(get_escrow_service),
    session: AsyncSession = Depends(get_db_session),
) -> EscrowResponse:
    """Write creator_wallet and/or recipient_wallet depending on the caller's roles."""
    escrow = await svc.set_wallet(escrow_id, user, request.wallet_address)
    await commit_and_defer(session, svc.effects, background_tasks)
    return EscrowResponse.model_validate(escrow)


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


@router.get(
    "/{escrow_id}/messages",
    response_model=list[MessageResponse],
    summary="List messages",
)
async def list_messages(
    escrow_id: uuid.UUID,
    user: User = Depends(get_current_user),
    svc: EscrowService = Depends(get_escrow_service),
) -> list[MessageResponse]:
    messages = await svc.list_messages(escrow_id, user)
    return [MessageResponse.model_validate(m) for m in messages]


@router.post(
    "/{escrow_id}/messages",
    response_model=MessageResponse,
    status_code=201,
    summary="Post a message",
)
async def post_message(
    escrow_id: uuid.UUID,
    request: PostMessageRequest,
    user: User = Depends(get_current_user),
    svc: EscrowService = Depends(get_escrow_service),
) -> MessageResponse:
    message = await svc.post_message(escrow_id, user, request.content)
    return MessageResponse.model_validate(message)

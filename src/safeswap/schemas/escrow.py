"""Pydantic schemas for the Escrow API.

These schemas define the request/response shapes for the REST API and
MCP tools. They are separate from the ORM models to maintain clean
boundaries between the API and database layers.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, EmailStr, Field

# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------


class CreateEscrowRequest(BaseModel):
    """Request body for creating a new escrow."""

    token_address: str = Field(
        ...,
        min_length=42,
        max_length=42,
        description="ERC-20 contract address, or the zero address for native ETH",
        examples=["0x1c7D4B196Cb0C7B01d743Fbc6116a902379C7238"],
    )
    token_symbol: str = Field(..., min_length=1, max_length=20, examples=["USDC"])
    amount: str = Field(
        ...,
        min_length=1,
        max_length=78,
        description="Positive decimal amount as a string (never a float)",
        examples=["100", "0.25"],
    )
    recipient_email: EmailStr = Field(..., examples=["bob@example.com"])
    description: str = Field(..., min_length=1, max_length=5000)
    terms: str | None = Field(default=None, max_length=10_000)
    funding_tx_hash: str | None = Field(
        default=None,
        min_length=66,
        max_length=66,
        description="Hash of the creator's on-chain funding transaction, if already sent",
    )
    idempotency_key: str | None = Field(
        default=None,
        max_length=128,
        description="Optional idempotency key to prevent duplicate escrow creation",
    )


class SetWalletRequest(BaseModel):
    """Request body for setting the caller's wallet on an escrow."""

    wallet_address: str = Field(
        ...,
        description="EVM wallet address (0x-prefixed, 42 chars)",
        examples=["0x742d35Cc6634C0532925a3b844Bc9e7595f2bD18"],
    )


class RaiseDisputeRequest(BaseModel):
    """Request body for raising a dispute."""

    reason: str | None = Field(
        default=None,
        max_length=2000,
        description="Why the escrow is disputed. A default text is stored when omitted.",
    )


class PostMessageRequest(BaseModel):
    content: str = Field(..., min_length=1, max_length=5000)


class WalletBalanceRequest(BaseModel):
    """Request body for an on-chain balance lookup."""

    wallet_address: str = Field(..., min_length=42, max_length=42)
    token_address: str = Field(..., min_length=42, max_length=42)
    amount: str | None = Field(
        default=None,
        description="When given, also report whether the balance covers it",
    )


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------


class PartySummary(BaseModel):
    """The slice of a user shown on an escrow."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    email: str
    name: str | None = None


class EscrowResponse(BaseModel):
    """Response schema for an escrow."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    token_address: str
    token_symbol: str
    amount: str
    description: str
    terms: str | None
    status: str
    creator_id: uuid.UUID
    creator_wallet: str | None
    recipient_email: str
    recipient_id: uuid.UUID | None
    recipient_wallet: str | None
    buyer_confirmed: bool
    seller_confirmed: bool
    disputed: bool
    dispute_reason: str | None
    funding_tx_hash: str | None
    settlement_tx_hash: str | None
    completed_at: datetime | None
    created_at: datetime
    updated_at: datetime
    creator: PartySummary | None = None
    recipient: PartySummary | None = None


class MessageResponse(BaseModel):
    """Response schema for an escrow message."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    escrow_id: uuid.UUID
    sender_id: uuid.UUID
    content: str
    created_at: datetime
    sender: PartySummary | None = None


class EscrowDetailResponse(BaseModel):
    escrow: EscrowResponse
    messages: list[MessageResponse]
    roles: list[str] = Field(description="The caller's roles on this escrow")


class EscrowStatsResponse(BaseModel):
    total: int
    active: int
    completed: int
    disputed: int
    total_value: Decimal


class EscrowListResponse(BaseModel):
    escrows: list[EscrowResponse]
    stats: EscrowStatsResponse


class EscrowEventResponse(BaseModel):
    """Response schema for an audit event."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    escrow_id: uuid.UUID
    event_type: str
    old_status: str | None
    new_status: str
    actor: str
    metadata: dict | None = Field(default=None, validation_alias="metadata_json")
    created_at: datetime


class EscrowStatusResponse(BaseModel):
    """Lightweight status check response."""

    escrow_id: uuid.UUID
    status: str
    buyer_confirmed: bool
    seller_confirmed: bool
    disputed: bool
    missing_wallets: list[str]
    allowed_events: list[str] = Field(
        description="State machine events that can fire from the current status"
    )
    roles: list[str]


class TokenInfoResponse(BaseModel):
    symbol: str
    decimals: int
    name: str | None = None


class BalanceCheckResponse(BaseModel):
    has_sufficient_balance: bool
    current_balance: str
    required_amount: str
    shortfall: str


class WalletBalanceResponse(BaseModel):
    wallet_address: str
    token_address: str
    balance: str
    token_info: TokenInfoResponse
    balance_check: BalanceCheckResponse | None = None


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str = "0.1.0"
    database: str = "unknown"
    redis: str = "unknown"

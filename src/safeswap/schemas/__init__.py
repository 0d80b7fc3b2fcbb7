"""Pydantic API schemas."""

from safeswap.schemas.auth import (
    LinkWalletRequest,
    LoginRequest,
    LoginResponse,
    LogoutResponse,
    MeResponse,
    SendCodeRequest,
    SendCodeResponse,
    UserPublic,
)
from safeswap.schemas.escrow import (
    CreateEscrowRequest,
    EscrowDetailResponse,
    EscrowEventResponse,
    EscrowListResponse,
    EscrowResponse,
    EscrowStatsResponse,
    EscrowStatusResponse,
    HealthResponse,
    MessageResponse,
    PartySummary,
    PostMessageRequest,
    RaiseDisputeRequest,
    SetWalletRequest,
    WalletBalanceRequest,
    WalletBalanceResponse,
)

__all__ = [
    "LinkWalletRequest",
    "LoginRequest",
    "LoginResponse",
    "LogoutResponse",
    "MeResponse",
    "SendCodeRequest",
    "SendCodeResponse",
    "UserPublic",
    "CreateEscrowRequest",
    "EscrowDetailResponse",
    "EscrowEventResponse",
    "EscrowListResponse",
    "EscrowResponse",
    "EscrowStatsResponse",
    "EscrowStatusResponse",
    "HealthResponse",
    "MessageResponse",
    "PartySummary",
    "PostMessageRequest",
    "RaiseDisputeRequest",
    "SetWalletRequest",
    "WalletBalanceRequest",
    "WalletBalanceResponse",
]

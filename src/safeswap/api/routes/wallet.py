"""Wallet REST API routes.

Routes:
    POST   /api/v1/wallet/balance  — On-chain token balance (and sufficiency) lookup
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from safeswap.api.deps import get_chain_client, get_current_user
from safeswap.domain.exceptions import InvalidInputError
from safeswap.domain.lifecycle import canonical_amount, is_valid_wallet_address
from safeswap.infrastructure.chain_client import ChainClient
from safeswap.infrastructure.database.orm_models import User
from safeswap.logging_config import get_logger
from safeswap.schemas.escrow import (
    BalanceCheckResponse,
    TokenInfoResponse,
    WalletBalanceRequest,
    WalletBalanceResponse,
)

router = APIRouter(prefix="/api/v1/wallet", tags=["Wallet"])
logger = get_logger(__name__)


@router.post(
    "/balance",
    response_model=WalletBalanceResponse,
    summary="Check a token balance",
)
async def wallet_balance(
    request: WalletBalanceRequest,
    user: User = Depends(get_current_user),
    chain: ChainClient = Depends(get_chain_client),
) -> WalletBalanceResponse:
    """Look up a wallet's balance of a token; the zero address means native ETH."""
    if not is_valid_wallet_address(request.wallet_address):
        raise InvalidInputError("Invalid wallet address format", field="wallet_address")
    if not is_valid_wallet_address(request.token_address):
        raise InvalidInputError("Invalid token address format", field="token_address")

    balance = await chain.get_token_balance(request.token_address, request.wallet_address)
    info = await chain.get_token_info(request.token_address)

    balance_check = None
    if request.amount:
        check = await chain.check_sufficient_balance(
            request.token_address,
            request.wallet_address,
            canonical_amount(request.amount),
        )
        balance_check = BalanceCheckResponse(
            has_sufficient_balance=check.has_sufficient_balance,
            current_balance=check.current_balance,
            required_amount=check.required_amount,
            shortfall=check.shortfall,
        )

    logger.info("wallet.balance_checked", user_id=str(user.id), token=request.token_address)
    return WalletBalanceResponse(
        wallet_address=request.wallet_address,
        token_address=request.token_address,
        balance=balance,
        token_info=TokenInfoResponse(symbol=info.symbol, decimals=info.decimals, name=info.name),
        balance_check=balance_check,
    )

"""Settlement Service — releases escrowed tokens to the recipient.

Settlement is simulated: no transaction is broadcast. The service returns a
random 32-byte transaction hash that the completion workflow stores on the
escrow as an audit field.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass

from safeswap.logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class TransferReceipt:
    transaction_hash: str
    from_wallet: str
    to_wallet: str
    token_address: str
    amount: str
    simulated: bool = True


class SettlementService:
    """Moves funds from the creator's side of an escrow to the recipient."""

    async def simulate_token_transfer(
        self,
        from_wallet: str,
        to_wallet: str,
        token_address: str,
        amount: str,
    ) -> TransferReceipt:
        """Simulate an on-chain token transfer and return its receipt."""
        if not from_wallet or not to_wallet:
            raise ValueError("Both wallets are required to settle an escrow")

        tx_hash = "0x" + secrets.token_hex(32)
        logger.info(
            "settlement.transfer_simulated",
            tx_hash=tx_hash,
            from_wallet=from_wallet,
            to_wallet=to_wallet,
            token=token_address,
            amount=amount,
        )
        return TransferReceipt(
            transaction_hash=tx_hash,
            from_wallet=from_wallet,
            to_wallet=to_wallet,
            token_address=token_address,
            amount=amount,
        )

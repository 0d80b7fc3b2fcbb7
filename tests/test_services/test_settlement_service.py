"""Tests for the simulated settlement transfer."""

from __future__ import annotations

import re

import pytest

from safeswap.services.settlement_service import SettlementService

TX_HASH = re.compile(r"^0x[0-9a-f]{64}$")


class TestSimulateTokenTransfer:
    @pytest.mark.asyncio
    async def test_returns_receipt_with_hash(self) -> None:
        receipt = await SettlementService().simulate_token_transfer(
            from_wallet="0x" + "a1" * 20,
            to_wallet="0x" + "b2" * 20,
            token_address="0x1c7D4B196Cb0C7B01d743Fbc6116a902379C7238",
            amount="100",
        )
        assert TX_HASH.match(receipt.transaction_hash)
        assert receipt.simulated is True
        assert receipt.amount == "100"

    @pytest.mark.asyncio
    async def test_hashes_are_unique(self) -> None:
        svc = SettlementService()
        args = ("0x" + "a1" * 20, "0x" + "b2" * 20, "0x" + "00" * 20, "1")
        first = await svc.simulate_token_transfer(*args)
        second = await svc.simulate_token_transfer(*args)
        assert first.transaction_hash != second.transaction_hash

    @pytest.mark.asyncio
    async def test_requires_both_wallets(self) -> None:
        with pytest.raises(ValueError, match="wallets"):
            await SettlementService().simulate_token_transfer("", "0x" + "b2" * 20, "0x" + "00" * 20, "1")

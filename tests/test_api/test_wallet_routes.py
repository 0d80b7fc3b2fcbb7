"""Tests for the wallet balance route and the health check."""

from __future__ import annotations

import pytest

from safeswap.domain.exceptions import ChainUnavailableError
from safeswap.infrastructure.chain_client import BalanceCheck, TokenInfo

USDC = "0x1c7D4B196Cb0C7B01d743Fbc6116a902379C7238"
WALLET = "0x742d35Cc6634C0532925a3b844Bc9e7595f2bD18"


class TestWalletBalance:
    @pytest.mark.asyncio
    async def test_balance_with_sufficiency(self, api_client, sign_in, chain_client) -> None:
        headers = await sign_in("alice@example.com")
        chain_client.get_token_balance.return_value = "40"
        chain_client.get_token_info.return_value = TokenInfo(symbol="USDC", decimals=6)
        chain_client.check_sufficient_balance.return_value = BalanceCheck(
            has_sufficient_balance=False,
            current_balance="40",
            required_amount="100",
            shortfall="60",
        )

        response = await api_client.post(
            "/api/v1/wallet/balance",
            json={"wallet_address": WALLET, "token_address": USDC, "amount": "100.00"},
            headers=headers,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["balance"] == "40"
        assert body["token_info"] == {"symbol": "USDC", "decimals": 6, "name": None}
        assert body["balance_check"]["has_sufficient_balance"] is False
        assert body["balance_check"]["shortfall"] == "60"
        chain_client.check_sufficient_balance.assert_awaited_once_with(USDC, WALLET, "100")

    @pytest.mark.asyncio
    async def test_balance_only(self, api_client, sign_in, chain_client) -> None:
        headers = await sign_in("alice@example.com")
        chain_client.get_token_balance.return_value = "1.5"
        chain_client.get_token_info.return_value = TokenInfo(symbol="USDC", decimals=6)

        response = await api_client.post(
            "/api/v1/wallet/balance",
            json={"wallet_address": WALLET, "token_address": USDC},
            headers=headers,
        )

        assert response.status_code == 200
        assert response.json()["balance_check"] is None
        chain_client.check_sufficient_balance.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rpc_failure_is_bad_gateway(self, api_client, sign_in, chain_client) -> None:
        headers = await sign_in("alice@example.com")
        chain_client.get_token_balance.side_effect = ChainUnavailableError("RPC call eth_call failed")

        response = await api_client.post(
            "/api/v1/wallet/balance",
            json={"wallet_address": WALLET, "token_address": USDC},
            headers=headers,
        )

        assert response.status_code == 502
        assert response.json()["error"] == "CHAIN_UNAVAILABLE"

    @pytest.mark.asyncio
    async def test_invalid_address(self, api_client, sign_in, chain_client) -> None:
        headers = await sign_in("alice@example.com")

        response = await api_client.post(
            "/api/v1/wallet/balance",
            json={"wallet_address": "0x" + "zz" * 20, "token_address": USDC},
            headers=headers,
        )

        assert response.status_code == 400
        assert response.json()["field"] == "wallet_address"
        chain_client.get_token_balance.assert_not_awaited()


class TestHealth:
    @pytest.mark.asyncio
    async def test_health_reports_dependencies(self, api_client) -> None:
        response = await api_client.get("/health")

        assert response.status_code == 200
        body = response.json()
        # Redis is overridden away in tests: degraded, not down.
        assert body["status"] == "degraded"
        assert body["database"] == "healthy"
        assert body["redis"] == "unavailable"
        assert response.headers["X-Request-ID"]

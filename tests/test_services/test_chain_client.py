"""Tests for the JSON-RPC chain client using httpx's mock transport."""

from __future__ import annotations

import json

import httpx
import pytest

from safeswap.domain.exceptions import ChainUnavailableError
from safeswap.infrastructure.chain_client import (
    SELECTOR_BALANCE_OF,
    SELECTOR_DECIMALS,
    SELECTOR_SYMBOL,
    ZERO_ADDRESS,
    ChainClient,
    format_units,
)

TOKEN = "0x1c7D4B196Cb0C7B01d743Fbc6116a902379C7238"
WALLET = "0x742d35Cc6634C0532925a3b844Bc9e7595f2bD18"


def _uint(value: int) -> str:
    return "0x" + format(value, "064x")


def _abi_string(text: str) -> str:
    raw = text.encode()
    padded = raw.ljust(((len(raw) + 31) // 32) * 32, b"\x00")
    return "0x" + (
        (32).to_bytes(32, "big") + len(raw).to_bytes(32, "big") + padded
    ).hex()


def _client(handler) -> ChainClient:
    transport = httpx.MockTransport(handler)
    return ChainClient(rpc_url="https://rpc.test", http_client=httpx.AsyncClient(transport=transport))


def _erc20_handler(balance: int, decimals: int = 6, symbol: str = "USDC"):
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        seen.append(payload)
        if payload["method"] == "eth_getBalance":
            result = _uint(balance)
        else:
            data = payload["params"][0]["data"]
            if data.startswith(SELECTOR_BALANCE_OF):
                result = _uint(balance)
            elif data == SELECTOR_DECIMALS:
                result = _uint(decimals)
            elif data == SELECTOR_SYMBOL:
                result = _abi_string(symbol)
            else:
                return httpx.Response(200, json={"jsonrpc": "2.0", "id": payload["id"], "error": {"message": "bad selector"}})
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": payload["id"], "result": result})

    return handler, seen


class TestFormatUnits:
    @pytest.mark.parametrize(
        ("raw", "decimals", "expected"),
        [
            (1_500_000, 6, "1.5"),
            (100_000_000, 6, "100"),
            (0, 18, "0"),
            (1, 18, "0.000000000000000001"),
        ],
    )
    def test_format(self, raw: int, decimals: int, expected: str) -> None:
        assert format_units(raw, decimals) == expected


class TestTokenCalls:
    @pytest.mark.asyncio
    async def test_erc20_balance(self) -> None:
        handler, seen = _erc20_handler(balance=2_500_000)
        client = _client(handler)

        assert await client.get_token_balance(TOKEN, WALLET) == "2.5"
        data = seen[0]["params"][0]["data"]
        assert data.startswith(SELECTOR_BALANCE_OF)
        assert data.endswith(WALLET.lower().removeprefix("0x"))
        await client.aclose()

    @pytest.mark.asyncio
    async def test_eth_balance_for_zero_address(self) -> None:
        handler, seen = _erc20_handler(balance=3 * 10**17)
        client = _client(handler)

        assert await client.get_token_balance(ZERO_ADDRESS, WALLET) == "0.3"
        assert seen[0]["method"] == "eth_getBalance"
        await client.aclose()

    @pytest.mark.asyncio
    async def test_token_info(self) -> None:
        handler, _ = _erc20_handler(balance=0, decimals=6, symbol="USDC")
        client = _client(handler)

        info = await client.get_token_info(TOKEN)
        assert (info.symbol, info.decimals) == ("USDC", 6)

        eth = await client.get_token_info(ZERO_ADDRESS)
        assert (eth.symbol, eth.decimals) == ("ETH", 18)
        await client.aclose()

    @pytest.mark.asyncio
    async def test_sufficient_balance(self) -> None:
        handler, _ = _erc20_handler(balance=40_000_000)
        client = _client(handler)

        short = await client.check_sufficient_balance(TOKEN, WALLET, "100")
        assert short.has_sufficient_balance is False
        assert short.current_balance == "40"
        assert short.shortfall == "60"

        enough = await client.check_sufficient_balance(TOKEN, WALLET, "40")
        assert enough.has_sufficient_balance is True
        assert enough.shortfall == "0"
        await client.aclose()


class TestFailures:
    @pytest.mark.asyncio
    async def test_rpc_error_body(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "error": {"code": -32000, "message": "header not found"}})

        client = _client(handler)
        with pytest.raises(ChainUnavailableError, match="header not found"):
            await client.get_eth_balance(WALLET)
        await client.aclose()

    @pytest.mark.asyncio
    async def test_http_error_status(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, text="unavailable")

        client = _client(handler)
        with pytest.raises(ChainUnavailableError):
            await client.get_eth_balance(WALLET)
        await client.aclose()

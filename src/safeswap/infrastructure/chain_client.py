"""Read-only Ethereum JSON-RPC client for token balance lookups.

Talks plain JSON-RPC over httpx. Only three calls are needed:
    eth_getBalance  -> native ETH balance
    eth_call        -> ERC-20 balanceOf / decimals / symbol

The zero address stands for native ETH (18 decimals), matching how escrows
record ETH deposits. Transient transport failures are retried with
exponential backoff.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from itertools import count
from typing import Any

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from safeswap.config import get_settings
from safeswap.domain.exceptions import ChainUnavailableError
from safeswap.logging_config import get_logger

logger = get_logger(__name__)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
ETH_DECIMALS = 18

# ERC-20 function selectors (first 4 bytes of keccak256 of the signature)
SELECTOR_BALANCE_OF = "0x70a08231"
SELECTOR_DECIMALS = "0x313ce567"
SELECTOR_SYMBOL = "0x95d89b41"


@dataclass(frozen=True)
class TokenInfo:
    symbol: str
    decimals: int
    name: str | None = None


@dataclass(frozen=True)
class BalanceCheck:
    has_sufficient_balance: bool
    current_balance: str
    required_amount: str
    shortfall: str


def format_units(raw: int, decimals: int) -> str:
    """Convert an integer base-unit amount into a canonical decimal string."""
    value = Decimal(raw).scaleb(-decimals)
    text = format(value.normalize(), "f")
    return text if text != "-0" else "0"


def _encode_address_arg(address: str) -> str:
    return address.lower().removeprefix("0x").rjust(64, "0")


def _decode_uint(result: str) -> int:
    data = result.removeprefix("0x")
    return int(data, 16) if data else 0


def _decode_string(result: str) -> str:
    """Decode an ABI-encoded string return value (or a bytes32 fallback)."""
    data = bytes.fromhex(result.removeprefix("0x"))
    if len(data) == 32:
        # Some older tokens return bytes32 instead of string.
        return data.rstrip(b"\x00").decode("utf-8", errors="replace")
    if len(data) < 64:
        return ""
    offset = int.from_bytes(data[0:32], "big")
    length = int.from_bytes(data[offset : offset + 32], "big")
    start = offset + 32
    return data[start : start + length].decode("utf-8", errors="replace")


class ChainClient:
    """Async JSON-RPC client. One instance is shared per application."""

    def __init__(
        self,
        rpc_url: str | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        settings = get_settings()
        self._rpc_url = rpc_url or settings.rpc_url
        self._client = http_client or httpx.AsyncClient(timeout=settings.rpc_timeout_seconds)
        self._ids = count(1)

    async def aclose(self) -> None:
        await self._client.aclose()

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        reraise=True,
    )
    async def _post(self, payload: dict[str, Any]) -> dict[str, Any]:
        response = await self._client.post(self._rpc_url, json=payload)
        response.raise_for_status()
        return response.json()

    async def _rpc(self, method: str, params: list[Any]) -> Any:
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            body = await self._post(payload)
        except httpx.HTTPError as e:
            logger.error("chain.rpc_failed", method=method, error=str(e))
            raise ChainUnavailableError(f"RPC call {method} failed: {e}") from e

        if body.get("error"):
            error = body["error"]
            message = error.get("message", "unknown error") if isinstance(error, dict) else str(error)
            logger.warning("chain.rpc_error", method=method, error=message)
            raise ChainUnavailableError(f"RPC call {method} returned an error: {message}")
        return body.get("result")

    async def _eth_call(self, to: str, data: str) -> str:
        return await self._rpc("eth_call", [{"to": to, "data": data}, "latest"])

    async def get_eth_balance(self, wallet: str) -> str:
        result = await self._rpc("eth_getBalance", [wallet, "latest"])
        return format_units(_decode_uint(result), ETH_DECIMALS)

    async def get_token_info(self, token_address: str) -> TokenInfo:
        """Return symbol and decimals for a token (ETH for the zero address)."""
        if token_address.lower() == ZERO_ADDRESS:
            return TokenInfo(symbol="ETH", decimals=ETH_DECIMALS, name="Ethereum")

        symbol_raw = await self._eth_call(token_address, SELECTOR_SYMBOL)
        decimals_raw = await self._eth_call(token_address, SELECTOR_DECIMALS)
        return TokenInfo(symbol=_decode_string(symbol_raw), decimals=_decode_uint(decimals_raw))

    async def get_token_balance(self, token_address: str, wallet: str) -> str:
        """Return the wallet's balance of a token as a decimal string."""
        if token_address.lower() == ZERO_ADDRESS:
            return await self.get_eth_balance(wallet)

        balance_raw = await self._eth_call(
            token_address, SELECTOR_BALANCE_OF + _encode_address_arg(wallet)
        )
        decimals_raw = await self._eth_call(token_address, SELECTOR_DECIMALS)
        return format_units(_decode_uint(balance_raw), _decode_uint(decimals_raw))

    async def check_sufficient_balance(
        self, token_address: str, wallet: str, amount: str
    ) -> BalanceCheck:
        """Compare a wallet balance against a required amount, exactly."""
        balance = await self.get_token_balance(token_address, wallet)
        current = Decimal(balance)
        required = Decimal(amount)
        shortfall = required - current if required > current else Decimal(0)
        logger.debug(
            "chain.balance_checked",
            token=token_address,
            wallet=wallet,
            balance=balance,
            required=amount,
        )
        return BalanceCheck(
            has_sufficient_balance=current >= required,
            current_balance=balance,
            required_amount=amount,
            shortfall=format(shortfall.normalize(), "f"),
        )

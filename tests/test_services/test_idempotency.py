"""Tests for Redis-backed idempotency keys."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
import redis.asyncio as aioredis

from safeswap.infrastructure.redis_client import claim_idempotency, release_idempotency


class TestClaimIdempotency:
    @pytest.mark.asyncio
    async def test_first_claim_wins(self) -> None:
        redis = AsyncMock()
        redis.set.return_value = True

        assert await claim_idempotency(redis, "escrow:create:u1:k1") is True
        redis.set.assert_awaited_once()
        args, kwargs = redis.set.await_args
        assert args[0] == "idempotency:escrow:create:u1:k1"
        assert kwargs["nx"] is True
        assert kwargs["ex"] > 0

    @pytest.mark.asyncio
    async def test_duplicate_claim_loses(self) -> None:
        redis = AsyncMock()
        redis.set.return_value = None
        assert await claim_idempotency(redis, "k") is False

    @pytest.mark.asyncio
    async def test_no_redis_means_no_check(self) -> None:
        assert await claim_idempotency(None, "k") is True

    @pytest.mark.asyncio
    async def test_redis_error_means_no_check(self) -> None:
        redis = AsyncMock()
        redis.set.side_effect = aioredis.ConnectionError("refused")
        assert await claim_idempotency(redis, "k") is True


class TestReleaseIdempotency:
    @pytest.mark.asyncio
    async def test_release_deletes_key(self) -> None:
        redis = AsyncMock()
        await release_idempotency(redis, "k")
        redis.delete.assert_awaited_once_with("idempotency:k")

    @pytest.mark.asyncio
    async def test_release_swallows_redis_errors(self) -> None:
        redis = AsyncMock()
        redis.delete.side_effect = aioredis.ConnectionError("refused")
        await release_idempotency(redis, "k")

"""Tests for the deferred side-effect queue."""

from __future__ import annotations

import pytest

from safeswap.services.effects import DeferredEffects


class TestDeferredEffects:
    @pytest.mark.asyncio
    async def test_runs_in_order_with_arguments(self) -> None:
        calls: list[tuple] = []

        async def record(*args, **kwargs):
            calls.append((args, kwargs))
            return True

        effects = DeferredEffects()
        effects.add("first", record, 1, flag=True)
        effects.add("second", record, 2)

        assert effects.names == ["first", "second"]
        assert await effects.run() == 2
        assert calls == [((1,), {"flag": True}), ((2,), {})]

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_the_rest(self) -> None:
        ran: list[str] = []

        async def boom():
            raise RuntimeError("smtp down")

        async def ok():
            ran.append("ok")

        async def unsuccessful():
            return False

        effects = DeferredEffects()
        effects.add("boom", boom)
        effects.add("unsuccessful", unsuccessful)
        effects.add("ok", ok)

        assert await effects.run() == 1
        assert ran == ["ok"]

    @pytest.mark.asyncio
    async def test_queue_is_drained(self) -> None:
        async def noop():
            return None

        effects = DeferredEffects()
        effects.add("noop", noop)
        await effects.run()

        assert len(effects) == 0
        assert await effects.run() == 0

    def test_clear(self) -> None:
        async def noop():
            return None

        effects = DeferredEffects()
        effects.add("noop", noop)
        effects.clear()
        assert effects.names == []

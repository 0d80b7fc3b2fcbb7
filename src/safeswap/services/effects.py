"""Deferred side effects.

Services queue emails and the completion workflow here while the request's
transaction is still open. The route commits first and only then hands
`run` to FastAPI's BackgroundTasks, so an effect never observes (or outlives)
a rolled-back transition.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

from safeswap.logging_config import get_logger

logger = get_logger(__name__)


class DeferredEffects:
    """An ordered queue of best-effort async callables."""

    def __init__(self) -> None:
        self._queue: list[tuple[str, Callable[..., Awaitable[Any]], tuple, dict]] = []

    def add(self, name: str, func: Callable[..., Awaitable[Any]], *args: Any, **kwargs: Any) -> None:
        self._queue.append((name, func, args, kwargs))

    @property
    def names(self) -> list[str]:
        return [name for name, _, _, _ in self._queue]

    def clear(self) -> None:
        self._queue.clear()

    def __len__(self) -> int:
        return len(self._queue)

    async def run(self) -> int:
        """Run every queued effect in order. Returns how many succeeded.

        A failing effect is logged and skipped; the rest still run.
        """
        queue, self._queue = self._queue, []
        succeeded = 0
        for name, func, args, kwargs in queue:
            try:
                result = await func(*args, **kwargs)
            except Exception:
                logger.exception("effects.failed", effect=name)
                continue
            if result is False:
                logger.warning("effects.unsuccessful", effect=name)
                continue
            succeeded += 1
        logger.debug("effects.completed", total=len(queue), succeeded=succeeded)
        return succeeded

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]


class Debouncer:
    """Runs only the most recent callback after a quiet period.

    A schedule can be cancelled until its quiet period ends. Once the callback
    has started it runs to completion.
    """

    def __init__(self, delay_seconds: float = 0.3, *, sleep: Sleep = asyncio.sleep):
        self.delay_seconds = delay_seconds
        self._sleep = sleep
        self._waiting: asyncio.Task | None = None
        self._running: set[asyncio.Task] = set()

    @property
    def pending(self) -> bool:
        return self._waiting is not None and not self._waiting.done()

    def schedule(self, callback: Callable[[], Awaitable[Any]]) -> None:
        self.cancel()
        task = asyncio.create_task(self._fire(callback))
        self._waiting = task
        self._running.add(task)
        task.add_done_callback(self._running.discard)

    def cancel(self) -> bool:
        """Cancel the waiting schedule; returns True if one was cancelled."""
        task = self._waiting
        self._waiting = None
        if task is None or task.done():
            return False
        task.cancel()
        return True

    async def _fire(self, callback: Callable[[], Awaitable[Any]]) -> None:
        await self._sleep(self.delay_seconds)
        if self._waiting is not asyncio.current_task():
            return
        self._waiting = None
        try:
            await callback()
        except Exception as exc:
            logger.exception("Debounced callback failed: %s", exc)

    async def aclose(self) -> None:
        """Cancel the waiting schedule and wait for a started callback."""
        self.cancel()
        if self._running:
            await asyncio.gather(*self._running, return_exceptions=True)

"""
Countdown window during which a confirmed deletion can still be undone.
Holds at most one pending deletion; starting another replaces it.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, TypeVar

from subtracker.core.exceptions import UndoNotAvailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_UNDO_WINDOW_SECONDS = 10


class UndoState(str, Enum):
    IDLE = "idle"
    PENDING_UNDO = "pending_undo"
    RESTORING = "restoring"


@dataclass(eq=False)
class PendingDeletion(Generic[T]):
    item: T
    countdown: int
    task: asyncio.Task | None = field(default=None, repr=False)


class UndoTimer(Generic[T]):
    def __init__(
        self,
        window_seconds: int = DEFAULT_UNDO_WINDOW_SECONDS,
        *,
        tick_seconds: float = 1.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        on_change: Callable[[], None] | None = None,
        on_expire: Callable[[T], None] | None = None,
    ):
        self.window_seconds = window_seconds
        self.tick_seconds = tick_seconds
        self._sleep = sleep
        self._on_change = on_change
        self._on_expire = on_expire
        self._state = UndoState.IDLE
        self._pending: PendingDeletion[T] | None = None

    @property
    def state(self) -> UndoState:
        return self._state

    @property
    def pending(self) -> PendingDeletion[T] | None:
        return self._pending

    @property
    def countdown(self) -> int | None:
        return self._pending.countdown if self._pending else None

    def start(self, item: T) -> PendingDeletion[T]:
        if self._pending is not None:
            logger.debug("Replacing pending deletion %r", self._pending.item)
        self._clear()
        pending = PendingDeletion(item=item, countdown=self.window_seconds)
        self._pending = pending
        self._state = UndoState.PENDING_UNDO
        pending.task = asyncio.create_task(self._run_countdown(pending))
        self._changed()
        return pending

    def begin_restore(self) -> PendingDeletion[T]:
        pending = self._pending
        if pending is None or self._state is not UndoState.PENDING_UNDO:
            raise UndoNotAvailableError("Nothing to undo")
        self._cancel_task(pending)
        self._state = UndoState.RESTORING
        self._changed()
        return pending

    def complete(self, pending: PendingDeletion[T]) -> None:
        """Finish a restore; ignored when ``pending`` was already replaced."""
        if self._pending is pending:
            self._clear()
            self._changed()

    def dismiss(self) -> None:
        if self._pending is None:
            return
        self._clear()
        self._changed()

    def holds(self, pending: PendingDeletion[T]) -> bool:
        return self._pending is pending

    async def _run_countdown(self, pending: PendingDeletion[T]) -> None:
        while pending.countdown > 0:
            await self._sleep(self.tick_seconds)
            if self._pending is not pending or self._state is not UndoState.PENDING_UNDO:
                return
            pending.countdown -= 1
            self._changed()
        pending.task = None
        self._clear()
        self._changed()
        if self._on_expire is not None:
            self._on_expire(pending.item)

    def _clear(self) -> None:
        if self._pending is not None:
            self._cancel_task(self._pending)
        self._pending = None
        self._state = UndoState.IDLE

    @staticmethod
    def _cancel_task(pending: PendingDeletion[T]) -> None:
        task = pending.task
        pending.task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change()

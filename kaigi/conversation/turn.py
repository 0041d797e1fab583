"""Exclusive speaking floor shared by all agents."""

from __future__ import annotations

import asyncio
import contextlib
from typing import Protocol

from .shutdown import ShutdownSignal


class TurnCancelledError(Exception):
    """Raised when shutdown fires before the floor could be acquired."""


class TurnProvider(Protocol):
    """Read-only view of the conversation's turn counters."""

    def get_current_turn(self) -> int: ...

    def get_max_turns(self) -> int: ...


class TurnArbiter:
    """Single-slot floor: at most one holder at any instant.

    Acquisition puts a token into a queue of size one and races that against
    the shutdown signal; release takes the token back out.
    """

    def __init__(self) -> None:
        self._slot: asyncio.Queue = asyncio.Queue(maxsize=1)

    @property
    def held(self) -> bool:
        return self._slot.full()

    async def acquire(self, shutdown: ShutdownSignal) -> None:
        if shutdown.is_cancelled:
            raise TurnCancelledError("shutdown already requested")

        put_task = asyncio.ensure_future(self._slot.put(None))
        stop_task = asyncio.ensure_future(shutdown.wait())
        try:
            done, _ = await asyncio.wait(
                {put_task, stop_task},
                return_when=asyncio.FIRST_COMPLETED,
            )
        except BaseException:
            stop_task.cancel()
            if _succeeded(put_task):
                self.release()
            else:
                put_task.cancel()
            raise

        stop_task.cancel()
        if not put_task.done():
            put_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await put_task

        acquired = _succeeded(put_task)
        if acquired and stop_task in done:
            # Shutdown and grant landed together; give the floor back.
            self.release()
            acquired = False
        if not acquired:
            raise TurnCancelledError("shutdown requested while waiting for the floor")

    def release(self) -> None:
        """Give the floor back. Without a holder this does nothing."""
        with contextlib.suppress(asyncio.QueueEmpty):
            self._slot.get_nowait()


def _succeeded(task: asyncio.Future) -> bool:
    return task.done() and not task.cancelled() and task.exception() is None

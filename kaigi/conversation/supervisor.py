"""Turn-count supervisor that ends the conversation."""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Callable, Optional

from .bus import MessageBus
from .messages import Message, MessageKind

logger = logging.getLogger(__name__)

ShutdownCallback = Callable[[str], Any]

REASON_MAX_TURNS = "max_turns_reached"
REASON_ERROR = "error_message"


class Supervisor:
    """Counts non-system messages and requests shutdown once.

    Shutdown fires when the counter reaches ``max_turns`` or as soon as an
    error message is observed. Also serves as the turn provider agents read
    from when building prompts.
    """

    def __init__(self, max_turns: int, bus: MessageBus, on_shutdown: ShutdownCallback):
        self._max_turns = int(max_turns)
        self._bus = bus
        self._on_shutdown = on_shutdown
        self._turn_count = 0
        self._lock = threading.Lock()
        self._shutting_down = False
        self._task: Optional[asyncio.Task] = None

    def get_current_turn(self) -> int:
        with self._lock:
            return self._turn_count

    def get_max_turns(self) -> int:
        return self._max_turns

    @property
    def shutting_down(self) -> bool:
        with self._lock:
            return self._shutting_down

    def start(self) -> asyncio.Task:
        """Subscribe now and consume on a background task."""
        if self._task is not None:
            return self._task
        subscription = self._bus.subscribe()
        self._task = asyncio.create_task(self._consume(subscription), name="supervisor")
        return self._task

    async def wait(self) -> None:
        if self._task is not None:
            await self._task

    async def _consume(self, subscription) -> None:
        async for message in subscription:
            reason = self.observe(message)
            if reason is not None:
                self._on_shutdown(reason)
                return
        logger.debug("[SUPERVISOR] Bus closed, stopping")

    def observe(self, message: Message) -> Optional[str]:
        """Account for one message. Returns a shutdown reason the first time one applies."""
        if message.is_system():
            return None

        with self._lock:
            if self._shutting_down:
                return None
            self._turn_count += 1
            count = self._turn_count

            reason: Optional[str] = None
            if message.kind == MessageKind.ERROR:
                reason = REASON_ERROR
            elif count >= self._max_turns:
                reason = REASON_MAX_TURNS
            if reason is not None:
                self._shutting_down = True

        logger.info(f"[SUPERVISOR] Turn {count}/{self._max_turns}")
        if reason == REASON_ERROR:
            logger.warning(f"[SUPERVISOR] Error message observed: {message.text}. Shutting down...")
        elif reason == REASON_MAX_TURNS:
            logger.info("[SUPERVISOR] Reached max turns. Shutting down...")
        return reason

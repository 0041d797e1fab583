"""logging.Handler that mirrors log records onto the conversation bus."""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Optional

from .bus import BusClosedError, MessageBus
from .messages import Message, MessageKind


class BusLogHandler(logging.Handler):
    """Publishes each record as a Log-kind message.

    Records emitted off the event loop thread are handed to the loop. Records
    arriving after the bus has closed are discarded.
    """

    def __init__(
        self,
        bus: MessageBus,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        level: int = logging.INFO,
    ):
        super().__init__(level=level)
        self.bus = bus
        self.loop = loop or asyncio.get_running_loop()
        self._loop_thread = threading.get_ident()
        self._local = threading.local()
        self.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))

    def emit(self, record: logging.LogRecord) -> None:
        # Publishing can itself log (e.g. drop notices); don't feed those back.
        if getattr(self._local, "emitting", False):
            return
        self._local.emitting = True
        try:
            message = Message(kind=MessageKind.LOG, text=self.format(record))
            if threading.get_ident() == self._loop_thread:
                self._publish(message)
            elif not self.loop.is_closed():
                self.loop.call_soon_threadsafe(self._publish, message)
        except Exception:
            self.handleError(record)
        finally:
            self._local.emitting = False

    def _publish(self, message: Message) -> None:
        try:
            self.bus.broadcast(message)
        except BusClosedError:
            pass

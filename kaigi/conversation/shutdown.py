"""Process-wide cooperative shutdown signal."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

logger = logging.getLogger(__name__)


class ShutdownSignal:
    """Awaitable cancellation token shared by every conversation component.

    The first call to ``cancel`` wins and records the reason; later calls are
    ignored. Must be created and used on the running event loop.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: Optional[str] = None) -> bool:
        """Mark the signal as fired. Returns True only for the first call."""
        if self._event.is_set():
            return False
        self.reason = str(reason or "cancelled").strip() or "cancelled"
        self._event.set()
        logger.info(f"Shutdown requested (reason={self.reason})")
        return True

    async def wait(self) -> None:
        await self._event.wait()

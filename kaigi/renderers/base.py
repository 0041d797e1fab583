"""
Renderer Base Class

Renderers are passive bus subscribers that turn the conversation into some
output (terminal, files). They read until the bus is closed and are
finalized once every participant has stopped.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional, Sequence

from kaigi.conversation.bus import MessageBus, Subscription
from kaigi.conversation.messages import Message
from kaigi.personas.models import Persona

logger = logging.getLogger(__name__)


class Renderer(ABC):
    """Abstract base class for transcript renderers."""

    name = "renderer"

    def __init__(self):
        self._task: Optional[asyncio.Task] = None

    def start(self, bus: MessageBus) -> asyncio.Task:
        """Subscribe now and render on a background task."""
        if self._task is not None:
            return self._task
        subscription = bus.subscribe()
        self._task = asyncio.create_task(self._run(subscription), name=f"renderer:{self.name}")
        return self._task

    async def wait(self) -> None:
        if self._task is not None:
            await self._task

    async def _run(self, subscription: Subscription) -> None:
        try:
            async for message in subscription:
                await self.consume(message)
            await self.on_closed()
        except Exception as e:
            logger.error(f"Renderer {self.name} failed: {e}", exc_info=True)

    @abstractmethod
    async def consume(self, message: Message) -> None:
        """Handle one message as it arrives."""
        pass

    async def on_closed(self) -> None:
        """Called once after the bus has been closed and drained."""

    async def finalize(self, personas: Sequence[Persona]) -> None:
        """Called after the conversation with every participant, relationships included."""

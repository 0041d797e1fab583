"""Terminal renderer that types utterances out character by character."""

import asyncio
import sys
from typing import Optional, TextIO

from kaigi.conversation.messages import Message, MessageKind

from .base import Renderer


class ConsoleRenderer(Renderer):
    name = "console"

    def __init__(self, typing_delay: float = 0.05, stream: Optional[TextIO] = None):
        super().__init__()
        self.typing_delay = max(0.0, float(typing_delay))
        self.stream = stream or sys.stdout

    def _write(self, text: str) -> None:
        self.stream.write(text)
        self.stream.flush()

    async def consume(self, message: Message) -> None:
        if message.kind in (MessageKind.SYSTEM, MessageKind.END):
            self._write(f"[System] {message.text}\n")
            return
        if message.kind == MessageKind.LOG:
            self._write(f"[Log] {message.text}\n")
            return
        if message.speaker is None:
            self._write(f"[{message.kind.value.capitalize()}] {message.text}\n")
            return

        self._write(f"{message.speaker.display_name}: ")
        if self.typing_delay <= 0:
            self._write(message.text)
        else:
            for char in message.text:
                self._write(char)
                await asyncio.sleep(self.typing_delay)
        self._write("\n")

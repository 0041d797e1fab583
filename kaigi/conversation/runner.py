"""Wires one conversation together and drives it to a clean shutdown."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from typing import List, Optional, Sequence

from kaigi.llm.base import GenerationBackend
from kaigi.personas.models import Persona
from kaigi.renderers.base import Renderer
from kaigi.topics.models import Topic

from .agent import DEFAULT_TICK_SECONDS, DEFAULT_WINDOW_SIZE, Agent
from .bus import DEFAULT_SUBSCRIBER_BUFFER, BusClosedError, MessageBus
from .log_handler import BusLogHandler
from .messages import Message, MessageKind
from .shutdown import ShutdownSignal
from .supervisor import Supervisor
from .turn import TurnArbiter

logger = logging.getLogger(__name__)

REASON_SIGNAL = "signal"


def announcement_text(personas: Sequence[Persona]) -> str:
    names = [p.display_name for p in personas]
    if not names:
        return "Nobody has joined today's chat."
    if len(names) == 1:
        joined = names[0]
    else:
        joined = ", ".join(names[:-1]) + f" and {names[-1]}"
    return f"Today's chat members are {joined}."


class ConversationRunner:
    """Runs a single conversation between the given personas.

    Renderers and the supervisor subscribe before any agent starts so they
    see the whole transcript. ``run`` returns the shutdown reason.
    """

    def __init__(
        self,
        *,
        personas: Sequence[Persona],
        backend: GenerationBackend,
        max_turns: int,
        topics: Sequence[Topic] = (),
        renderers: Sequence[Renderer] = (),
        tick_seconds: float = DEFAULT_TICK_SECONDS,
        window_size: int = DEFAULT_WINDOW_SIZE,
        subscriber_buffer: int = DEFAULT_SUBSCRIBER_BUFFER,
        bus_log: bool = False,
        handle_signals: bool = True,
    ):
        self.personas = list(personas)
        self.backend = backend
        self.max_turns = int(max_turns)
        self.topics = list(topics)
        self.renderers = list(renderers)
        self.tick_seconds = tick_seconds
        self.window_size = window_size
        self.subscriber_buffer = subscriber_buffer
        self.bus_log = bus_log
        self.handle_signals = handle_signals

        self.bus: Optional[MessageBus] = None
        self.supervisor: Optional[Supervisor] = None
        self.agents: List[Agent] = []

    async def run(self) -> str:
        loop = asyncio.get_running_loop()
        shutdown = ShutdownSignal()
        bus = MessageBus(self.subscriber_buffer)
        arbiter = TurnArbiter()
        self.bus = bus

        installed_signals = self._install_signal_handlers(loop, shutdown) if self.handle_signals else []
        log_handler: Optional[BusLogHandler] = None
        try:
            for renderer in self.renderers:
                renderer.start(bus)

            supervisor = Supervisor(self.max_turns, bus, on_shutdown=shutdown.cancel)
            supervisor.start()
            self.supervisor = supervisor

            if self.bus_log:
                log_handler = BusLogHandler(bus, loop)
                logging.getLogger("kaigi").addHandler(log_handler)

            self.agents = [
                Agent(
                    agent_id=f"cha-{persona.persona_id}",
                    persona=persona,
                    backend=self.backend,
                    bus=bus,
                    arbiter=arbiter,
                    turn_provider=supervisor,
                    shutdown=shutdown,
                    topics=self.topics,
                    window_size=self.window_size,
                    tick_seconds=self.tick_seconds,
                )
                for persona in self.personas
            ]
            for agent in self.agents:
                agent.start()
            logger.info(f"Started {len(self.agents)} agents (max turns: {self.max_turns})")

            meta = {"topic": self.topics[0].title} if self.topics else {}
            bus.broadcast(Message.system(announcement_text(self.personas), **meta))

            await shutdown.wait()
            logger.info(f"Shutting down conversation (reason={shutdown.reason})")
            await self._shutdown(bus, supervisor)
        finally:
            if log_handler is not None:
                logging.getLogger("kaigi").removeHandler(log_handler)
            for sig in installed_signals:
                loop.remove_signal_handler(sig)

        return shutdown.reason or ""

    async def _shutdown(self, bus: MessageBus, supervisor: Supervisor) -> None:
        for agent in self.agents:
            agent.end()

        tasks = [agent.task for agent in self.agents if agent.task is not None]
        for task in tasks:
            task.cancel()
        results = await asyncio.gather(*tasks, return_exceptions=True)
        for agent, result in zip(self.agents, results):
            if isinstance(result, Exception):
                logger.error(f"Agent {agent.agent_id} exited with error: {result}")

        try:
            bus.broadcast(Message(kind=MessageKind.END, text="The chat has ended."))
        except BusClosedError:
            pass
        bus.close()

        await supervisor.wait()
        for renderer in self.renderers:
            await renderer.wait()
        for renderer in self.renderers:
            try:
                await renderer.finalize(self.personas)
            except OSError as e:
                logger.error(f"Failed to finalize renderer {renderer.name}: {e}")

    @staticmethod
    def _install_signal_handlers(loop: asyncio.AbstractEventLoop, shutdown: ShutdownSignal) -> List[int]:
        installed = []
        for sig in (signal.SIGINT, signal.SIGTERM):
            # Not available on every platform (e.g. Windows event loops).
            with contextlib.suppress(NotImplementedError, RuntimeError):
                loop.add_signal_handler(sig, shutdown.cancel, REASON_SIGNAL)
                installed.append(sig)
        return installed

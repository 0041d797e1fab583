"""One simulated participant: rolling context, rate limiting and the speaking step."""

from __future__ import annotations

import asyncio
import logging
import random
from collections import deque
from datetime import datetime, timedelta
from typing import Callable, Deque, List, Optional, Sequence

from kaigi.llm.base import GenerateInput, GenerationBackend, UpdateRelationshipInput
from kaigi.personas.models import Persona
from kaigi.topics.models import Topic

from .bus import BusClosedError, MessageBus, Subscription
from .log_utils import build_window_preview_for_log, truncate_log_text
from .messages import Message, MessageKind, utc_now
from .shutdown import ShutdownSignal
from .turn import TurnArbiter, TurnCancelledError, TurnProvider

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_SIZE = 10
DEFAULT_TICK_SECONDS = 1.0
STARTUP_JITTER_MS = 5000


class Agent:
    """Drives one persona through the conversation.

    Inbound messages only ever touch the rolling window. Speaking happens on
    timer ticks, once the persona's minimum gap has elapsed and the floor has
    been won.
    """

    def __init__(
        self,
        *,
        agent_id: str,
        persona: Persona,
        backend: GenerationBackend,
        bus: MessageBus,
        arbiter: TurnArbiter,
        turn_provider: TurnProvider,
        shutdown: ShutdownSignal,
        topics: Sequence[Topic] = (),
        window_size: int = DEFAULT_WINDOW_SIZE,
        tick_seconds: float = DEFAULT_TICK_SECONDS,
        last_spoke_at: Optional[datetime] = None,
        clock: Callable[[], datetime] = utc_now,
        rng: Optional[random.Random] = None,
    ):
        self.agent_id = agent_id
        self.persona = persona
        self.backend = backend
        self.bus = bus
        self.arbiter = arbiter
        self.turn_provider = turn_provider
        self.shutdown = shutdown
        self.topics = tuple(topics)
        self.tick_seconds = float(tick_seconds)
        self._clock = clock

        if last_spoke_at is None:
            jitter_ms = (rng or random).randrange(STARTUP_JITTER_MS)
            last_spoke_at = (
                clock()
                - timedelta(seconds=persona.min_gap_seconds)
                - timedelta(milliseconds=jitter_ms)
            )

        self._lock = asyncio.Lock()
        self._window: Deque[Message] = deque(maxlen=max(1, int(window_size)))
        self._last_spoke_at = last_spoke_at
        self._stopped = False
        self._task: Optional[asyncio.Task] = None

    @property
    def stopped(self) -> bool:
        return self._stopped

    @property
    def last_spoke_at(self) -> datetime:
        return self._last_spoke_at

    @property
    def task(self) -> Optional[asyncio.Task]:
        return self._task

    def start(self) -> asyncio.Task:
        """Subscribe to the bus and run the decision loop on its own task."""
        if self._task is not None:
            return self._task
        subscription = self.bus.subscribe()
        self._task = asyncio.create_task(self._run(subscription), name=self.agent_id)
        return self._task

    def end(self) -> None:
        """Stop taking new turns."""
        self._stopped = True

    async def remember(self, message: Message) -> None:
        """Append to the rolling window, evicting the oldest entry when full."""
        if message.kind == MessageKind.LOG:
            return
        async with self._lock:
            self._window.append(message)

    async def window_snapshot(self) -> List[Message]:
        async with self._lock:
            return list(self._window)

    async def _run(self, subscription: Subscription) -> None:
        loop = asyncio.get_running_loop()
        next_message = asyncio.ensure_future(subscription.get())
        stop_wait = asyncio.ensure_future(self.shutdown.wait())
        next_tick = loop.time() + self.tick_seconds
        try:
            while True:
                if loop.time() >= next_tick:
                    await self.try_to_talk()
                    next_tick = loop.time() + self.tick_seconds

                done, _ = await asyncio.wait(
                    {next_message, stop_wait},
                    timeout=max(0.0, next_tick - loop.time()),
                    return_when=asyncio.FIRST_COMPLETED,
                )
                if stop_wait in done:
                    logger.debug(f"Agent {self.agent_id}: shutdown observed, leaving loop")
                    return
                if next_message in done:
                    message = next_message.result()
                    if message is None:
                        logger.debug(f"Agent {self.agent_id}: bus closed, leaving loop")
                        return
                    await self.remember(message)
                    next_message = asyncio.ensure_future(subscription.get())
        finally:
            next_message.cancel()
            stop_wait.cancel()

    async def try_to_talk(self) -> None:
        """One decision step: rate limit, relationship refresh, floor, generate, publish."""
        if self._stopped:
            return

        async with self._lock:
            elapsed = (self._clock() - self._last_spoke_at).total_seconds()
            if elapsed < self.persona.min_gap_seconds:
                return
            window = list(self._window)
            since = self._last_spoke_at

        await self._refresh_relationships(window, since)

        try:
            await self.arbiter.acquire(self.shutdown)
        except TurnCancelledError:
            logger.debug(f"Agent {self.agent_id}: floor acquisition cancelled")
            return

        try:
            await self._speak()
        finally:
            self.arbiter.release()

    async def _refresh_relationships(self, window: List[Message], since: datetime) -> None:
        for index, message in enumerate(window):
            if message.at <= since or message.kind != MessageKind.UTTERANCE:
                continue
            peer = message.speaker
            if peer is None or peer.persona_id == self.persona.persona_id:
                continue

            request = UpdateRelationshipInput(
                persona=self.persona,
                target_persona=peer,
                recent_messages=tuple(window[: index + 1]),
                current_relationship=self.persona.relationship_with(peer.persona_id).model_copy(),
            )
            try:
                updated = await self.backend.update_relationship(request)
            except Exception as e:
                logger.warning(
                    f"Agent {self.agent_id}: relationship update towards {peer.persona_id} failed: {e}"
                )
                continue

            self.persona.relationships[peer.persona_id] = updated.model_copy(
                update={"target_persona_id": peer.persona_id}
            )
            logger.debug(
                f"Agent {self.agent_id}: relationship towards {peer.persona_id} "
                f"-> affinity={updated.affinity}"
            )

    async def _speak(self) -> None:
        async with self._lock:
            snapshot = tuple(self._window)

        request = GenerateInput(
            agent_id=self.agent_id,
            persona=self.persona,
            recent_messages=snapshot,
            current_turn=self.turn_provider.get_current_turn(),
            max_turns=self.turn_provider.get_max_turns(),
            topics=self.topics,
            relationships=self.persona.relationships_snapshot(),
        )
        logger.debug(
            f"Agent {self.agent_id}: generating with window="
            f"{build_window_preview_for_log(snapshot)}"
        )

        try:
            text = await self.backend.generate(request)
        except Exception as e:
            logger.error(f"Agent {self.agent_id}: LLM error: {e}")
            self._publish(Message.error(self.persona, f"LLM error: {e}"))
            return

        now = self._clock()
        async with self._lock:
            self._last_spoke_at = now
        logger.debug(f"Agent {self.agent_id}: said {truncate_log_text(text, 200)!r}")
        self._publish(Message.utterance(self.persona, text, at=now))

    def _publish(self, message: Message) -> None:
        try:
            self.bus.broadcast(message)
        except BusClosedError as e:
            logger.warning(f"Agent {self.agent_id}: broadcast failed: {e}")

"""Unit tests for the agent decision step and loop."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from kaigi.conversation.agent import Agent
from kaigi.conversation.bus import MessageBus
from kaigi.conversation.messages import Message, MessageKind
from kaigi.conversation.shutdown import ShutdownSignal
from kaigi.conversation.supervisor import Supervisor
from kaigi.conversation.turn import TurnArbiter

NOW = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def _build_agent(persona, backend, *, bus=None, last_spoke_at=None, clock=None, **kwargs):
    bus = bus or MessageBus()
    shutdown = kwargs.pop("shutdown", None) or ShutdownSignal()
    supervisor = Supervisor(20, bus, on_shutdown=shutdown.cancel)
    return Agent(
        agent_id=f"cha-{persona.persona_id}",
        persona=persona,
        backend=backend,
        bus=bus,
        arbiter=kwargs.pop("arbiter", None) or TurnArbiter(),
        turn_provider=supervisor,
        shutdown=shutdown,
        last_spoke_at=last_spoke_at or NOW - timedelta(hours=1),
        clock=clock or (lambda: NOW),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_min_gap_blocks_generation(persona_factory, fake_backend):
    persona = persona_factory("alice", min_gap_seconds=30)
    agent = _build_agent(persona, fake_backend, last_spoke_at=NOW - timedelta(seconds=10))

    await agent.try_to_talk()

    assert fake_backend.generate_calls == []
    assert agent.last_spoke_at == NOW - timedelta(seconds=10)


@pytest.mark.asyncio
async def test_generation_after_min_gap_elapsed(persona_factory, fake_backend):
    persona = persona_factory("alice", min_gap_seconds=30)
    bus = MessageBus()
    subscription = bus.subscribe()
    agent = _build_agent(persona, fake_backend, bus=bus, last_spoke_at=NOW - timedelta(seconds=31))

    await agent.try_to_talk()

    assert len(fake_backend.generate_calls) == 1
    assert agent.last_spoke_at == NOW
    published = await subscription.get()
    assert published.kind == MessageKind.UTTERANCE
    assert published.text == "hello from Alice"
    assert published.speaker is persona


@pytest.mark.asyncio
async def test_window_keeps_ten_newest_in_order(persona_factory, fake_backend):
    bob = persona_factory("bob")
    agent = _build_agent(persona_factory("alice"), fake_backend)

    for index in range(11):
        await agent.remember(Message.utterance(bob, f"m{index}"))

    window = await agent.window_snapshot()
    assert [m.text for m in window] == [f"m{index}" for index in range(1, 11)]


@pytest.mark.asyncio
async def test_log_messages_stay_out_of_the_window(persona_factory, fake_backend):
    agent = _build_agent(persona_factory("alice"), fake_backend)
    await agent.remember(Message(kind=MessageKind.LOG, text="[INFO] noise"))
    await agent.remember(Message.system("welcome"))
    assert [m.text for m in await agent.window_snapshot()] == ["welcome"]


@pytest.mark.asyncio
async def test_generate_receives_window_turns_and_topics(persona_factory, fake_backend):
    from kaigi.topics.models import Topic

    alice = persona_factory("alice")
    bob = persona_factory("bob")
    topic = Topic(title="Rainy season", summary="It rains", source_url="https://example.com/rain")
    agent = _build_agent(alice, fake_backend, topics=[topic])
    await agent.remember(Message.system("welcome"))
    await agent.remember(Message.utterance(bob, "hi", at=NOW - timedelta(hours=2)))

    await agent.try_to_talk()

    request = fake_backend.generate_calls[0]
    assert request.agent_id == "cha-alice"
    assert [m.text for m in request.recent_messages] == ["welcome", "hi"]
    assert request.current_turn == 0
    assert request.max_turns == 20
    assert list(request.topics) == [topic]


@pytest.mark.asyncio
async def test_relationships_updated_for_new_peer_utterances(persona_factory, fake_backend):
    alice = persona_factory("alice")
    bob = persona_factory("bob")
    carol = persona_factory("carol")
    last_spoke = NOW - timedelta(minutes=5)
    agent = _build_agent(alice, fake_backend, last_spoke_at=last_spoke)

    await agent.remember(Message.utterance(bob, "old news", at=last_spoke - timedelta(seconds=1)))
    await agent.remember(Message.system("welcome"))
    await agent.remember(Message.utterance(alice, "my own line", at=NOW - timedelta(minutes=1)))
    await agent.remember(Message.utterance(bob, "fresh", at=NOW - timedelta(seconds=30)))
    await agent.remember(Message.utterance(carol, "also fresh", at=NOW - timedelta(seconds=20)))

    await agent.try_to_talk()

    targets = [call.target_persona.persona_id for call in fake_backend.relationship_calls]
    assert targets == ["bob", "carol"]
    # The slice handed to the backend ends with the evaluated message.
    assert fake_backend.relationship_calls[0].recent_messages[-1].text == "fresh"
    assert alice.relationships["bob"].affinity == 10
    assert alice.relationships["carol"].affinity == 10
    assert fake_backend.generate_calls[0].relationships["bob"].affinity == 10


@pytest.mark.asyncio
async def test_relationship_failure_is_only_logged(persona_factory, backend_factory):
    from kaigi.llm.base import RelationshipUpdateError

    backend = backend_factory(fail_relationship=RelationshipUpdateError("bad json"))
    alice = persona_factory("alice")
    agent = _build_agent(alice, backend)
    await agent.remember(Message.utterance(persona_factory("bob"), "hey", at=NOW))

    await agent.try_to_talk()

    assert alice.relationships == {}
    assert len(backend.generate_calls) == 1


@pytest.mark.asyncio
async def test_generation_failure_publishes_error_and_releases_floor(persona_factory, failing_backend):
    bus = MessageBus()
    subscription = bus.subscribe()
    arbiter = TurnArbiter()
    persona = persona_factory("alice")
    last_spoke = NOW - timedelta(hours=1)
    agent = _build_agent(persona, failing_backend, bus=bus, arbiter=arbiter, last_spoke_at=last_spoke)

    await agent.try_to_talk()

    published = await subscription.get()
    assert published.kind == MessageKind.ERROR
    assert published.text == "LLM error: quota exceeded"
    assert published.speaker is persona
    assert not arbiter.held
    assert agent.last_spoke_at == last_spoke


@pytest.mark.asyncio
async def test_stopped_agent_never_speaks(persona_factory, fake_backend):
    agent = _build_agent(persona_factory("alice"), fake_backend)
    agent.end()
    await agent.try_to_talk()
    assert agent.stopped
    assert fake_backend.generate_calls == []


@pytest.mark.asyncio
async def test_cancelled_shutdown_skips_generation(persona_factory, fake_backend):
    shutdown = ShutdownSignal()
    shutdown.cancel("test")
    agent = _build_agent(persona_factory("alice"), fake_backend, shutdown=shutdown)
    await agent.try_to_talk()
    assert fake_backend.generate_calls == []


def test_default_last_spoke_is_at_least_min_gap_in_the_past(persona_factory, fake_backend):
    import random

    persona = persona_factory("alice", min_gap_seconds=12)
    agent = Agent(
        agent_id="cha-alice",
        persona=persona,
        backend=fake_backend,
        bus=MessageBus(),
        arbiter=TurnArbiter(),
        turn_provider=Supervisor(5, MessageBus(), on_shutdown=lambda reason: None),
        shutdown=ShutdownSignal(),
        clock=lambda: NOW,
        rng=random.Random(7),
    )
    gap = NOW - agent.last_spoke_at
    assert timedelta(seconds=12) <= gap < timedelta(seconds=17)


@pytest.mark.asyncio
async def test_loop_speaks_on_tick_and_exits_on_shutdown(persona_factory, fake_backend):
    bus = MessageBus()
    listener = bus.subscribe()
    shutdown = ShutdownSignal()
    persona = persona_factory("alice", min_gap_seconds=0)
    agent = Agent(
        agent_id="cha-alice",
        persona=persona,
        backend=fake_backend,
        bus=bus,
        arbiter=TurnArbiter(),
        turn_provider=Supervisor(5, bus, on_shutdown=shutdown.cancel),
        shutdown=shutdown,
        tick_seconds=0.01,
    )
    task = agent.start()

    first = await asyncio.wait_for(listener.get(), timeout=2)
    assert first.kind == MessageKind.UTTERANCE
    assert first.speaker is persona

    shutdown.cancel("test")
    await asyncio.wait_for(task, timeout=2)
    assert task.done()

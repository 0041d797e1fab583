"""Unit tests for the Gemini backend with a mocked chat model."""

from unittest.mock import AsyncMock, Mock, patch

import pytest
from langchain_core.messages import SystemMessage

from kaigi.conversation.messages import Message
from kaigi.llm.base import GenerateInput, GenerationError, RelationshipUpdateError, UpdateRelationshipInput
from kaigi.llm.gemini import GeminiBackend, _extract_json_payload, _parse_content_blocks
from kaigi.personas.models import Relationship


def _backend_with(content=None, error=None):
    llm = Mock()
    if error is not None:
        llm.ainvoke = AsyncMock(side_effect=error)
    else:
        response = Mock()
        response.content = content
        llm.ainvoke = AsyncMock(return_value=response)
    backend = GeminiBackend(project="proj", location="us-central1")
    return backend, llm


@pytest.mark.asyncio
async def test_generate_flattens_reply_and_passes_stop_sequences(persona_factory):
    alice = persona_factory("alice", "Alice")
    backend, llm = _backend_with("Sure,\nlet's   talk.\n")
    request = GenerateInput(
        agent_id="cha-alice",
        persona=alice,
        recent_messages=(Message.utterance(persona_factory("bob", "Bob"), "Hi!"),),
    )

    with patch.object(backend, "create_llm", return_value=llm) as create_llm:
        text = await backend.generate(request)

    assert text == "Sure, let's talk."
    create_llm.assert_called_once_with(0.3)
    sent, = llm.ainvoke.call_args.args
    assert isinstance(sent[0], SystemMessage)
    assert sent[1].content == "Hi!(Bob)"
    assert llm.ainvoke.call_args.kwargs["stop"] == ["(Alice)", "()"]


@pytest.mark.asyncio
async def test_generate_with_empty_window_still_sends_a_turn(persona_factory):
    backend, llm = _backend_with("Hello everyone")
    request = GenerateInput(agent_id="a", persona=persona_factory("alice"), recent_messages=())

    with patch.object(backend, "create_llm", return_value=llm):
        await backend.generate(request)

    sent, = llm.ainvoke.call_args.args
    assert len(sent) == 2


@pytest.mark.asyncio
async def test_generate_empty_output_is_an_error(persona_factory):
    backend, llm = _backend_with("   \n ")
    request = GenerateInput(agent_id="a", persona=persona_factory("alice"), recent_messages=())

    with patch.object(backend, "create_llm", return_value=llm):
        with pytest.raises(GenerationError, match="empty"):
            await backend.generate(request)


@pytest.mark.asyncio
async def test_generate_wraps_provider_failures(persona_factory):
    backend, llm = _backend_with(error=RuntimeError("429 quota"))
    request = GenerateInput(agent_id="a", persona=persona_factory("alice"), recent_messages=())

    with patch.object(backend, "create_llm", return_value=llm):
        with pytest.raises(GenerationError, match="429 quota"):
            await backend.generate(request)


@pytest.mark.asyncio
async def test_llm_is_reused_per_temperature(persona_factory):
    backend, llm = _backend_with("ok")
    request = GenerateInput(agent_id="a", persona=persona_factory("alice"), recent_messages=())

    with patch.object(backend, "create_llm", return_value=llm) as create_llm:
        await backend.generate(request)
        await backend.generate(request)

    assert create_llm.call_count == 1


def _relationship_request(persona_factory):
    return UpdateRelationshipInput(
        persona=persona_factory("alice", "Alice"),
        target_persona=persona_factory("bob", "Bob"),
        recent_messages=(Message.utterance(persona_factory("bob", "Bob"), "You're wrong."),),
        current_relationship=Relationship(target_persona_id="bob", affinity=10),
    )


@pytest.mark.asyncio
async def test_update_relationship_parses_fenced_json(persona_factory):
    backend, llm = _backend_with('```json\n{"affinity": 250, "impression": "  stubborn  "}\n```')

    with patch.object(backend, "create_llm", return_value=llm) as create_llm:
        relationship = await backend.update_relationship(_relationship_request(persona_factory))

    create_llm.assert_called_once_with(0.1)
    assert relationship.target_persona_id == "bob"
    assert relationship.affinity == 100
    assert relationship.impression == "stubborn"


@pytest.mark.asyncio
async def test_update_relationship_rejects_non_json(persona_factory):
    backend, llm = _backend_with("I think they are nice.")

    with patch.object(backend, "create_llm", return_value=llm):
        with pytest.raises(RelationshipUpdateError):
            await backend.update_relationship(_relationship_request(persona_factory))


@pytest.mark.asyncio
async def test_update_relationship_wraps_provider_failures(persona_factory):
    backend, llm = _backend_with(error=TimeoutError("deadline"))

    with patch.object(backend, "create_llm", return_value=llm):
        with pytest.raises(RelationshipUpdateError, match="deadline"):
            await backend.update_relationship(_relationship_request(persona_factory))


@pytest.mark.asyncio
async def test_interactions_are_logged(persona_factory):
    backend, llm = _backend_with("Hello")
    backend.llm_logger = Mock()
    request = GenerateInput(agent_id="cha-alice", persona=persona_factory("alice"), recent_messages=())

    with patch.object(backend, "create_llm", return_value=llm):
        await backend.generate(request)

    kwargs = backend.llm_logger.log_interaction.call_args.kwargs
    assert kwargs["agent_id"] == "cha-alice"
    assert kwargs["purpose"] == "generate"
    assert kwargs["response_text"] == "Hello"


def test_parse_content_blocks_skips_thinking():
    blocks = [
        {"type": "thinking", "thinking": "hmm", "text": "hidden"},
        {"type": "text", "text": "Hello "},
        "there",
    ]
    assert _parse_content_blocks(blocks) == "Hello there"
    assert _parse_content_blocks("plain") == "plain"
    assert _parse_content_blocks(None) == ""


def test_extract_json_payload_variants():
    assert _extract_json_payload('{"affinity": 1}') == {"affinity": 1}
    assert _extract_json_payload('Result: {"affinity": 2} done') == {"affinity": 2}
    assert _extract_json_payload("[1, 2]") is None
    assert _extract_json_payload("") is None

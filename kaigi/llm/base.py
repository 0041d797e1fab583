"""
Generation Backend Contract

Abstract interface the conversation core uses to produce utterances and to
re-evaluate relationships. Both calls may be slow and may fail; the core
never retries them.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Mapping, Sequence

from kaigi.conversation.messages import Message
from kaigi.personas.models import Persona, Relationship
from kaigi.topics.models import Topic


class GenerationError(Exception):
    """Backend call failed or returned unusable output."""


class RelationshipUpdateError(GenerationError):
    """Relationship re-evaluation failed. Callers only log this."""


@dataclass(frozen=True)
class GenerateInput:
    """Everything the backend sees when asked for the next utterance."""

    agent_id: str
    persona: Persona
    recent_messages: Sequence[Message]
    current_turn: int = 0
    max_turns: int = 0
    topics: Sequence[Topic] = ()
    relationships: Mapping[str, Relationship] = field(default_factory=dict)


@dataclass(frozen=True)
class UpdateRelationshipInput:
    """Conversation slice ending with the peer message to evaluate."""

    persona: Persona
    target_persona: Persona
    recent_messages: Sequence[Message]
    current_relationship: Relationship


class GenerationBackend(ABC):
    """
    Abstract base class for generation backends.

    Implementations wrap a concrete LLM provider and translate conversation
    state into prompts.
    """

    @abstractmethod
    async def generate(self, request: GenerateInput) -> str:
        """
        Produce the next utterance for a persona.

        Args:
            request: Persona, recent window, turn counters, topics and a
                read-only relationship snapshot

        Returns:
            Single-line dialogue text

        Raises:
            GenerationError: On provider failure or empty output
        """
        pass

    @abstractmethod
    async def update_relationship(self, request: UpdateRelationshipInput) -> Relationship:
        """
        Re-evaluate how a persona feels about a peer after the peer's last message.

        Raises:
            RelationshipUpdateError: On provider failure or unparseable output
        """
        pass

"""Message types published on the conversation bus."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional

from kaigi.personas.models import Persona


class MessageKind(str, Enum):
    """Tagged variant of a bus message."""
    SYSTEM = "system"
    UTTERANCE = "utterance"
    ERROR = "error"
    END = "end"
    TURN_CHANGED = "turn_changed"
    LOG = "log"


# Kinds that carry no speaker and never count as a conversation turn.
SPEAKERLESS_KINDS = frozenset({MessageKind.SYSTEM, MessageKind.LOG})


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, eq=False)
class Message:
    """An immutable fact published on the bus."""

    kind: MessageKind
    text: str
    speaker: Optional[Persona] = None
    at: datetime = field(default_factory=utc_now)
    meta: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "meta", MappingProxyType(dict(self.meta)))

    @property
    def speaker_id(self) -> Optional[str]:
        return self.speaker.persona_id if self.speaker is not None else None

    def is_system(self) -> bool:
        """True for bookkeeping messages that are not part of the conversation."""
        return self.kind in SPEAKERLESS_KINDS

    def is_from(self, persona_id: str) -> bool:
        return self.speaker_id == persona_id

    @classmethod
    def system(cls, text: str, **meta: str) -> "Message":
        return cls(kind=MessageKind.SYSTEM, text=text, meta=meta)

    @classmethod
    def utterance(cls, speaker: Persona, text: str, at: Optional[datetime] = None) -> "Message":
        return cls(kind=MessageKind.UTTERANCE, text=text, speaker=speaker, at=at or utc_now())

    @classmethod
    def error(cls, speaker: Optional[Persona], text: str) -> "Message":
        return cls(kind=MessageKind.ERROR, text=text, speaker=speaker)

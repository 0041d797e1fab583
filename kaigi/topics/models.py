"""Topic records used as conversation starters."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List


@dataclass(frozen=True)
class Topic:
    """A source-agnostic conversation starter."""

    title: str
    summary: str = ""
    source_url: str = ""


class TopicFetchError(Exception):
    """Raised when a topic source cannot be read or parsed."""


class TopicFetcher(ABC):
    """Produces an ordered list of topics from some external source."""

    @abstractmethod
    async def fetch(self) -> List[Topic]:
        raise NotImplementedError

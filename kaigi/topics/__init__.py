"""Conversation starter topics."""

from .models import Topic, TopicFetchError, TopicFetcher
from .rss import RSSTopicFetcher

__all__ = ["Topic", "TopicFetchError", "TopicFetcher", "RSSTopicFetcher"]

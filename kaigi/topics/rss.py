"""RSS/Atom feed topic fetcher."""

from __future__ import annotations

import html
import logging
import re
import xml.etree.ElementTree as ET
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import List, Optional, Tuple

import httpx

from .models import Topic, TopicFetchError, TopicFetcher

logger = logging.getLogger(__name__)

SUMMARY_MAX_CHARS = 200
HTML_TAG_PATTERN = re.compile(r"<[^>]*>")
ATOM_NS = "{http://www.w3.org/2005/Atom}"


def strip_html(text: str) -> str:
    return html.unescape(HTML_TAG_PATTERN.sub("", text or "")).strip()


def truncate(text: str, max_chars: int) -> str:
    if len(text) > max_chars:
        return text[:max_chars]
    return text


def _parse_date(value: Optional[str]) -> Optional[datetime]:
    value = (value or "").strip()
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_feed(xml_body: str) -> List[Tuple[Optional[datetime], Topic]]:
    """Parse RSS 2.0 items or Atom entries into (published, topic) pairs, in feed order."""
    try:
        root = ET.fromstring(xml_body)
    except ET.ParseError as e:
        raise TopicFetchError(f"invalid feed XML: {e}") from e

    entries: List[Tuple[Optional[datetime], Topic]] = []
    for item in root.iter("item"):
        title = (item.findtext("title") or "").strip()
        if not title:
            continue
        entries.append((
            _parse_date(item.findtext("pubDate")),
            Topic(
                title=title,
                summary=truncate(strip_html(item.findtext("description") or ""), SUMMARY_MAX_CHARS),
                source_url=(item.findtext("link") or "").strip(),
            ),
        ))

    for entry in root.iter(f"{ATOM_NS}entry"):
        title = (entry.findtext(f"{ATOM_NS}title") or "").strip()
        if not title:
            continue
        link = entry.find(f"{ATOM_NS}link")
        summary = entry.findtext(f"{ATOM_NS}summary") or entry.findtext(f"{ATOM_NS}content") or ""
        published = entry.findtext(f"{ATOM_NS}published") or entry.findtext(f"{ATOM_NS}updated")
        entries.append((
            _parse_date(published),
            Topic(
                title=title,
                summary=truncate(strip_html(summary), SUMMARY_MAX_CHARS),
                source_url=(link.get("href", "") if link is not None else "").strip(),
            ),
        ))
    return entries


def newest_first(entries: List[Tuple[Optional[datetime], Topic]]) -> List[Topic]:
    """Dated entries newest first, undated ones after them in feed order."""
    dated = [(published, topic) for published, topic in entries if published is not None]
    undated = [topic for published, topic in entries if published is None]
    dated.sort(key=lambda pair: pair[0], reverse=True)
    return [topic for _, topic in dated] + undated


class RSSTopicFetcher(TopicFetcher):
    """Reads conversation starters from an RSS or Atom feed.

    ``limit`` <= 0 keeps every item.
    """

    def __init__(
        self,
        url: str,
        limit: int = 1,
        timeout_seconds: float = 10.0,
        user_agent: str = "kaigi/0.1",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.limit = limit
        self.timeout_seconds = timeout_seconds
        self.user_agent = user_agent
        self._transport = transport

    async def fetch(self) -> List[Topic]:
        logger.info(f"[RSS] Fetching {self.url}")
        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout_seconds),
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                response = await client.get(self.url, headers={"User-Agent": self.user_agent})
                response.raise_for_status()
        except httpx.TimeoutException as e:
            raise TopicFetchError(f"timed out fetching feed {self.url}") from e
        except httpx.HTTPStatusError as e:
            raise TopicFetchError(f"failed to fetch feed {self.url}: HTTP {e.response.status_code}") from e
        except httpx.RequestError as e:
            raise TopicFetchError(f"failed to fetch feed {self.url}: {e}") from e

        topics = newest_first(parse_feed(response.text))
        if self.limit > 0:
            topics = topics[: self.limit]
        logger.info(f"[RSS] {len(topics)} topic(s) from {self.url}")
        return topics

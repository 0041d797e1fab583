"""Shared log/text helpers for the conversation loop."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from .messages import Message


def truncate_log_text(text: Optional[str], max_chars: int = 1600) -> str:
    """Trim text for debug logs while preserving head and tail context."""
    content = (text or "").replace("\r", "")
    if len(content) <= max_chars:
        return content
    head = int(max_chars * 0.7)
    tail = max_chars - head
    return f"{content[:head]}\n...[truncated]...\n{content[-tail:]}"


def build_window_preview_for_log(
    messages: Sequence[Message],
    *,
    max_messages: int = 10,
    max_chars: int = 120,
) -> List[Dict[str, Any]]:
    """Build a compact view of an agent window for debugging."""
    preview: List[Dict[str, Any]] = []
    for msg in list(messages)[-max_messages:]:
        preview.append(
            {
                "kind": msg.kind.value,
                "speaker": msg.speaker.display_name if msg.speaker else None,
                "at": msg.at.isoformat(),
                "text": truncate_log_text(msg.text, max_chars),
            }
        )
    return preview

"""Hugo-style markdown transcript renderer."""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence
from zoneinfo import ZoneInfo

import aiofiles

from kaigi.conversation.messages import Message, MessageKind
from kaigi.paths import ensure_dir
from kaigi.personas.models import Persona
from kaigi.topics.models import Topic

from .base import Renderer

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Kaigi Log"
SLUG_FORMAT = "%Y%m%d-%H%M%S"


def _toml_string(value: str) -> str:
    return json.dumps(value, ensure_ascii=False)


class MarkdownRenderer(Renderer):
    """Collects the transcript and writes one page per conversation.

    The file name is fixed when the renderer is created. Nothing is written
    when the transcript contains an error message or has fewer than two
    messages; ``finalize`` then has nothing to append to.
    """

    name = "markdown"

    def __init__(
        self,
        output_dir: Path,
        topics: Sequence[Topic] = (),
        timezone: str = "Asia/Tokyo",
        now: Optional[Callable[[ZoneInfo], datetime]] = None,
    ):
        super().__init__()
        self.output_dir = Path(output_dir)
        self.topics = list(topics)
        self.zone = ZoneInfo(timezone)
        self._now = now or (lambda zone: datetime.now(zone))
        self.file_path = self.output_dir / f"{self._now(self.zone).strftime(SLUG_FORMAT)}.md"
        self.written = False
        self._inbox: List[Message] = []

    async def consume(self, message: Message) -> None:
        if message.kind == MessageKind.LOG:
            return
        self._inbox.append(message)

    async def on_closed(self) -> None:
        if any(msg.kind == MessageKind.ERROR for msg in self._inbox):
            logger.info("Error message detected, skipping markdown generation.")
            return
        if len(self._inbox) < 2:
            logger.info(f"Only {len(self._inbox)} message(s) collected, skipping markdown generation.")
            return

        content = self.render(self._inbox)
        ensure_dir(self.output_dir)
        async with aiofiles.open(self.file_path, "w", encoding="utf-8") as f:
            await f.write(content)
        self.written = True
        logger.info(f"Markdown transcript written to {self.file_path}")

    def render(self, inbox: Sequence[Message]) -> str:
        title = self.topics[0].title if self.topics else DEFAULT_TITLE

        participants: Dict[str, Persona] = {}
        conversation: List[str] = []
        announcement = ""
        for msg in inbox:
            if msg.kind == MessageKind.UTTERANCE and msg.speaker is not None:
                participants.setdefault(msg.speaker.display_name, msg.speaker)
                conversation.append(f"**{msg.speaker.display_name}**: {msg.text}\n\n")
            elif msg.kind == MessageKind.SYSTEM:
                announcement = f"> {msg.text}\n"

        cast = sorted(participants.values(), key=lambda p: p.display_name)

        body: List[str] = []
        if announcement:
            body.append(announcement)
            body.append("\n---\n\n")

        body.append("## Cast\n\n")
        for persona in cast:
            body.append(f"- **{persona.display_name}:** {persona.tagline}\n")
        body.append("\n---\n\n")

        body.append("## Today's Chat\n\n")
        body.extend(conversation)

        if self.topics:
            body.append("---\n\n")
            body.append("## Today's Topics\n\n")
            for topic in self.topics:
                body.append(f"- [{topic.title}]({topic.source_url})\n")
            body.append("\n")

        tags = ", ".join(_toml_string(p.display_name) for p in cast)
        date = self._now(self.zone).isoformat(timespec="seconds")
        return (
            "+++\n"
            f"title = {_toml_string(title)}\n"
            f"date = {_toml_string(date)}\n"
            f"tags = [{tags}]\n"
            "+++\n\n"
            f"{''.join(body)}"
        )

    async def finalize(self, personas: Sequence[Persona]) -> None:
        if not self.written:
            logger.info("Markdown file not written, skipping epilogue.")
            return

        names = {p.persona_id: p.display_name for p in personas}
        lines: List[str] = ["\n---\n\n## Final Relationships\n\n"]
        for persona in sorted(personas, key=lambda p: p.display_name):
            lines.append(f"### {persona.display_name}'s view\n")
            known = [
                (names[target_id], rel)
                for target_id, rel in persona.relationships.items()
                if target_id in names
            ]
            if not known:
                lines.append("- (formed no relationships)\n")
            for target_name, rel in sorted(known, key=lambda pair: pair[0]):
                lines.append(
                    f"- **Towards {target_name}:** affinity `{rel.affinity}` (impression: {rel.impression})\n"
                )
            lines.append("\n")

        async with aiofiles.open(self.file_path, "a", encoding="utf-8") as f:
            await f.write("".join(lines))
        logger.info(f"Epilogue appended to {self.file_path}")

"""Command line entry point."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from dotenv import load_dotenv

from .config import Settings
from .conversation.runner import ConversationRunner
from .llm.gemini import GeminiBackend
from .logging_config import setup_logging
from .personas.models import Persona
from .personas.pool import PersonaPool
from .personas.relationship_store import RelationshipStore
from .renderers.base import Renderer
from .renderers.console import ConsoleRenderer
from .renderers.markdown import MarkdownRenderer
from .topics.models import Topic, TopicFetchError
from .topics.rss import RSSTopicFetcher
from .utils.llm_logger import get_llm_logger

logger = logging.getLogger(__name__)

KNOWN_RENDERERS = ("console", "markdown")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="kaigi", description="Run a multi-persona chat.")
    parser.add_argument("--turns", type=int, help="Maximum number of turns (default: 20)")
    parser.add_argument("--chas", type=int, help="Number of randomly picked participants (default: 3)")
    parser.add_argument("--personas", help="Comma separated persona ids; overrides --chas")
    parser.add_argument("--renderers", help="Comma separated renderers: console,markdown")
    parser.add_argument("--rss-url", help="RSS/Atom feed used for conversation topics")
    parser.add_argument("--rss-limit", type=int, help="Number of feed items used as topics (default: 1)")
    parser.add_argument("--output", help="Markdown output directory")
    parser.add_argument("--data-dir", help="Directory for relationship state")
    parser.add_argument("--personas-file", help="Personas YAML file")
    parser.add_argument("--model", help="Gemini model name")
    parser.add_argument("--language", help="Reply language")
    parser.add_argument("--tick", type=float, help="Agent decision interval in seconds")
    parser.add_argument("--log-level", help="Logging level")
    parser.add_argument("--bus-log", action="store_true", default=None, help="Mirror log records onto the chat bus")
    return parser


def load_settings(argv: Optional[Sequence[str]] = None) -> Settings:
    """Environment/.env settings with command line overrides applied."""
    args = build_parser().parse_args(argv)
    overrides = {
        "turns": args.turns,
        "chas": args.chas,
        "personas": args.personas,
        "renderers": args.renderers,
        "rss_url": args.rss_url,
        "rss_limit": args.rss_limit,
        "output_dir": args.output,
        "data_dir": args.data_dir,
        "personas_path": args.personas_file,
        "model": args.model,
        "reply_language": args.language,
        "tick_seconds": args.tick,
        "log_level": args.log_level,
        "bus_log": args.bus_log,
    }
    return Settings(**{key: value for key, value in overrides.items() if value is not None})


def select_personas(pool: PersonaPool, settings: Settings) -> List[Persona]:
    if settings.personas:
        return [pool.get_by_id(persona_id) for persona_id in settings.personas]
    return pool.get_random_n(settings.chas)


def build_renderers(settings: Settings, topics: Sequence[Topic]) -> List[Renderer]:
    renderers: List[Renderer] = []
    for name in settings.renderers:
        if name == "console":
            renderers.append(ConsoleRenderer(typing_delay=settings.typing_delay))
        elif name == "markdown":
            renderers.append(MarkdownRenderer(settings.output_dir, topics, timezone=settings.timezone))
        else:
            raise ValueError(f"Unknown renderer '{name}' (expected one of: {', '.join(KNOWN_RENDERERS)})")
    return renderers


async def fetch_topics(settings: Settings) -> List[Topic]:
    if not settings.rss_url:
        return []
    fetcher = RSSTopicFetcher(settings.rss_url, settings.rss_limit, settings.rss_timeout_seconds)
    return await fetcher.fetch()


async def run(settings: Settings) -> str:
    topics = await fetch_topics(settings)
    for topic in topics:
        logger.info(f"Topic: {topic.title} ({topic.source_url})")

    pool = PersonaPool.load(settings.personas_path)
    personas = select_personas(pool, settings)

    store = RelationshipStore(Path(settings.data_dir))
    for persona in personas:
        await store.load(persona)

    backend = GeminiBackend(
        project=settings.project_id,
        location=settings.location,
        model=settings.model,
        language=settings.reply_language,
        llm_logger=get_llm_logger(str(settings.log_dir)),
    )
    runner = ConversationRunner(
        personas=personas,
        backend=backend,
        max_turns=settings.turns,
        topics=topics,
        renderers=build_renderers(settings, topics),
        tick_seconds=settings.tick_seconds,
        window_size=settings.window_size,
        subscriber_buffer=settings.subscriber_buffer,
        bus_log=settings.bus_log,
    )
    reason = await runner.run()

    for persona in personas:
        try:
            await store.save(persona)
        except OSError as e:
            logger.error(f"Failed to save relationships for {persona.persona_id}: {e}")
    return reason


def main(argv: Optional[Sequence[str]] = None) -> int:
    load_dotenv()
    try:
        settings = load_settings(argv)
    except ValueError as e:
        # pydantic's ValidationError is a ValueError
        setup_logging()
        logger.error(f"Invalid configuration: {e}")
        return 1
    setup_logging(settings.log_level, settings.log_dir)

    missing = settings.missing_credentials()
    if missing:
        logger.error(f"Missing required environment variable(s): {', '.join(missing)}")
        return 2

    try:
        reason = asyncio.run(run(settings))
    except (TopicFetchError, ValueError, OSError) as e:
        logger.error(f"Failed to start conversation: {e}")
        return 1

    logger.info(f"Conversation finished (reason={reason})")
    return 0


if __name__ == "__main__":
    sys.exit(main())

"""Relationship persistence: one YAML file per persona."""

import logging
from pathlib import Path

import aiofiles
import yaml

from ..paths import ensure_dir, relationships_dir
from .models import Persona, Relationship

logger = logging.getLogger(__name__)


class RelationshipStore:
    """Loads and saves each persona's relationship map.

    Files live at ``<data_dir>/relationships/<persona_id>.yaml`` and hold a
    YAML list of relationship records.
    """

    def __init__(self, data_dir: Path):
        self.data_dir = Path(data_dir)

    def path_for(self, persona: Persona) -> Path:
        return relationships_dir(self.data_dir) / f"{persona.persona_id}.yaml"

    async def load(self, persona: Persona) -> None:
        """Replace the persona's relationship map with the stored one.

        A missing file is not an error and leaves the map empty.
        """
        persona.relationships = {}
        path = self.path_for(persona)
        if not path.exists():
            return

        async with aiofiles.open(path, "r", encoding="utf-8") as f:
            content = await f.read()
        try:
            records = yaml.safe_load(content) or []
        except yaml.YAMLError as e:
            raise ValueError(f"failed to parse relationship file {path}: {e}") from e

        for record in records:
            relationship = Relationship(**record)
            persona.relationships[relationship.target_persona_id] = relationship
        logger.info(f"Loaded {len(persona.relationships)} relationships for {persona.persona_id}")

    async def save(self, persona: Persona) -> None:
        """Write the persona's relationships. An empty map writes nothing."""
        if not persona.relationships:
            return

        records = [
            rel.model_dump()
            for _, rel in sorted(persona.relationships.items())
        ]
        path = self.path_for(persona)
        ensure_dir(path.parent)
        content = yaml.safe_dump(records, allow_unicode=True, sort_keys=False)
        async with aiofiles.open(path, "w", encoding="utf-8") as f:
            await f.write(content)
        logger.info(f"Saved {len(records)} relationships for {persona.persona_id} to {path}")

"""Persona pool loaded from YAML."""

import logging
import random
from pathlib import Path
from typing import List, Optional

import yaml

from ..paths import default_personas_path, local_personas_path, resolve_layered_read_path
from .models import Persona, PersonasConfig

logger = logging.getLogger(__name__)


class PersonaPool:
    """Read-only collection of the personas available for a run."""

    def __init__(self, personas: List[Persona]):
        self.personas = list(personas)

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "PersonaPool":
        """
        Load personas from YAML.

        Args:
            path: Explicit personas file. Defaults to the local override
                (config/local/personas.yaml) or the packaged defaults.
        """
        if path is None:
            path = resolve_layered_read_path(
                local_path=local_personas_path(),
                defaults_path=default_personas_path(),
            )
        path = Path(path)
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"failed to parse personas file {path}: {e}") from e

        config = PersonasConfig(**data)
        logger.info(f"Loaded {len(config.personas)} personas from {path}")
        return cls(config.personas)

    def get_all(self) -> List[Persona]:
        return list(self.personas)

    def get_by_id(self, persona_id: str) -> Persona:
        for persona in self.personas:
            if persona.persona_id == persona_id:
                return persona
        raise ValueError(f"Persona '{persona_id}' not found")

    def get_random_n(self, n: int, rng: Optional[random.Random] = None) -> List[Persona]:
        """Pick ``n`` distinct personas; ``n`` outside 1..size means all of them."""
        if not self.personas:
            raise ValueError("No personas available")
        if n <= 0 or n > len(self.personas):
            n = len(self.personas)
        return (rng or random).sample(self.personas, n)

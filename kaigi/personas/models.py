"""
Persona data models

Defines Pydantic models for conversation participants and the private
per-peer relationship state each participant accumulates.
"""
from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field, field_validator

AFFINITY_MIN = -100
AFFINITY_MAX = 100


class Relationship(BaseModel):
    """One persona's private view of one peer."""
    target_persona_id: str = Field(..., description="Persona ID of the peer this entry describes")
    affinity: int = Field(default=0, description="Affinity score (-100 hate .. 100 love, 0 neutral)")
    impression: str = Field(default="", description="Free-text impression of the peer")

    @field_validator("affinity", mode="before")
    @classmethod
    def clamp_affinity(cls, value):
        try:
            score = int(value)
        except (TypeError, ValueError):
            return 0
        return max(AFFINITY_MIN, min(AFFINITY_MAX, score))


class Persona(BaseModel):
    """Static traits of one speaker plus its mutable relationship map.

    The relationship map is written only by the agent that represents this
    persona; everything else reads snapshots.
    """
    model_config = ConfigDict(extra="ignore")

    persona_id: str = Field(..., description="Persona unique identifier")
    display_name: str = Field(..., description="Name shown in transcripts")
    gender: str = Field(default="unspecified", description="Gender hint for speech style")
    tagline: str = Field(default="", description="Primary personality summary")
    style_tag: str = Field(default="", description="General speech style")
    catchphrases: List[str] = Field(default_factory=list, description="Optional catchphrases")
    default_max_chars: int = Field(default=80, gt=0, description="Target reply length in characters")
    min_gap_seconds: int = Field(default=10, ge=0, description="Minimum seconds between two utterances")
    relationships: Dict[str, Relationship] = Field(default_factory=dict, exclude=True)

    def relationship_with(self, peer_id: str) -> Relationship:
        """Return the current entry for a peer, or a neutral one if none exists yet."""
        existing = self.relationships.get(peer_id)
        if existing is not None:
            return existing
        return Relationship(target_persona_id=peer_id)

    def relationships_snapshot(self) -> Dict[str, Relationship]:
        """Detached copy of the relationship map for readers."""
        return {peer_id: rel.model_copy() for peer_id, rel in self.relationships.items()}


class PersonasConfig(BaseModel):
    """Complete personas file"""
    personas: List[Persona] = Field(default_factory=list)

"""Personas, their relationships and where they are stored."""

from .models import Persona, PersonasConfig, Relationship
from .pool import PersonaPool
from .relationship_store import RelationshipStore

__all__ = [
    "Persona",
    "PersonasConfig",
    "Relationship",
    "PersonaPool",
    "RelationshipStore",
]

"""Shared pytest fixtures for all tests."""

import asyncio
import pytest
import shutil
import uuid
from pathlib import Path
from typing import Callable, List, Optional

from kaigi.llm.base import (
    GenerateInput,
    GenerationBackend,
    GenerationError,
    UpdateRelationshipInput,
)
from kaigi.personas.models import Persona, Relationship


def _create_workspace_temp_dir(kind: str) -> Path:
    """Create a temporary directory under repository-local .pytest_work."""
    repo_root = Path(__file__).resolve().parents[1]
    root_dir = repo_root / ".pytest_work" / kind
    root_dir.mkdir(parents=True, exist_ok=True)
    temp_dir = root_dir / f"{kind}_{uuid.uuid4().hex[:8]}"
    temp_dir.mkdir(parents=True, exist_ok=True)
    return temp_dir


@pytest.fixture
def tmp_path():
    """Workspace-local replacement for pytest's tmp_path fixture."""
    temp_dir = _create_workspace_temp_dir("tmp_path")
    yield temp_dir
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def temp_data_dir():
    """Create temporary directory for relationship files."""
    temp_dir = _create_workspace_temp_dir("data")
    yield temp_dir
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def temp_output_dir():
    """Create temporary directory for rendered transcripts."""
    temp_dir = _create_workspace_temp_dir("output")
    yield temp_dir
    shutil.rmtree(temp_dir, ignore_errors=True)


def make_persona(persona_id: str, display_name: Optional[str] = None, **kwargs) -> Persona:
    return Persona(
        persona_id=persona_id,
        display_name=display_name or persona_id.capitalize(),
        tagline=kwargs.pop("tagline", f"{persona_id} tagline"),
        style_tag=kwargs.pop("style_tag", "plain"),
        **kwargs,
    )


@pytest.fixture
def persona_factory():
    return make_persona


@pytest.fixture
def sample_personas() -> List[Persona]:
    """Three personas with no rate limit."""
    return [
        make_persona("alice", "Alice", min_gap_seconds=0),
        make_persona("bob", "Bob", min_gap_seconds=0),
        make_persona("carol", "Carol", min_gap_seconds=0),
    ]


class FakeBackend(GenerationBackend):
    """Scripted backend that records every call."""

    def __init__(
        self,
        reply: Optional[Callable[[GenerateInput], str]] = None,
        fail_generate: Optional[Exception] = None,
        fail_relationship: Optional[Exception] = None,
        affinity_step: int = 10,
        delay: float = 0.0,
    ):
        self.reply = reply or (lambda request: f"hello from {request.persona.display_name}")
        self.fail_generate = fail_generate
        self.fail_relationship = fail_relationship
        self.affinity_step = affinity_step
        self.delay = delay
        self.generate_calls: List[GenerateInput] = []
        self.relationship_calls: List[UpdateRelationshipInput] = []

    async def generate(self, request: GenerateInput) -> str:
        self.generate_calls.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_generate is not None:
            raise self.fail_generate
        return self.reply(request)

    async def update_relationship(self, request: UpdateRelationshipInput) -> Relationship:
        self.relationship_calls.append(request)
        if self.fail_relationship is not None:
            raise self.fail_relationship
        current = request.current_relationship
        return Relationship(
            target_persona_id=request.target_persona.persona_id,
            affinity=current.affinity + self.affinity_step,
            impression=f"seen {len(self.relationship_calls)} times",
        )


@pytest.fixture
def backend_factory():
    return FakeBackend


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
def failing_backend():
    return FakeBackend(fail_generate=GenerationError("quota exceeded"))

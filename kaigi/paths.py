"""
Path helpers for repository layout.

Layout:
- kaigi/resources/: packaged default data (personas)
- config/local/: instance-specific overrides (gitignored)
- data/: relationship state written between runs
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Iterable, Optional


@lru_cache(maxsize=1)
def repo_root() -> Path:
    # This file lives at kaigi/paths.py -> parents: kaigi/ -> repo root
    return Path(__file__).resolve().parents[1]


def resources_dir() -> Path:
    return Path(__file__).resolve().parent / "resources"


def default_personas_path() -> Path:
    return resources_dir() / "personas.yaml"


def config_local_dir() -> Path:
    return repo_root() / "config" / "local"


def local_personas_path() -> Path:
    return config_local_dir() / "personas.yaml"


def relationships_dir(data_dir: Path) -> Path:
    return Path(data_dir) / "relationships"


def first_existing(paths: Iterable[Path]) -> Optional[Path]:
    for path in paths:
        try:
            if path.exists():
                return path
        except OSError:
            continue
    return None


def ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def resolve_layered_read_path(
    *,
    local_path: Path,
    defaults_path: Optional[Path] = None,
) -> Path:
    """
    Pick an existing file to read, preferring local overrides.
    Falls back to defaults.
    """
    candidates: list[Path] = [local_path]
    if defaults_path is not None:
        candidates.append(defaults_path)

    existing = first_existing(candidates)
    return existing or local_path

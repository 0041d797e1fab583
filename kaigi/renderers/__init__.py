"""Transcript renderers."""

from .base import Renderer
from .console import ConsoleRenderer
from .markdown import MarkdownRenderer

__all__ = ["Renderer", "ConsoleRenderer", "MarkdownRenderer"]

"""Kaigi: persona chat simulation on an in-process message bus."""

__version__ = "0.1.0"

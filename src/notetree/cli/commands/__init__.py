"""CLI commands for notetree."""

from . import notes, git

__all__ = ["notes", "git"]

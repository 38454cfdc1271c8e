"""Synchronization of the note root with a remote git repository."""

from notetree.sync.git_service import GitResult, GitService

__all__ = ["GitResult", "GitService"]

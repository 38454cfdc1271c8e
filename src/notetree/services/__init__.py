"""Core services for the note tree."""

from notetree.services.exceptions import (
    InvalidOperationError,
    InvalidPathError,
    NodeAlreadyExistsError,
    NodeNotFoundError,
    NoteTreeError,
    StorageFailureError,
)

__all__ = [
    "InvalidOperationError",
    "InvalidPathError",
    "NodeAlreadyExistsError",
    "NodeNotFoundError",
    "NoteTreeError",
    "StorageFailureError",
]

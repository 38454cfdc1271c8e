"""Exceptions raised by the note tree core.

Every exception carries an ErrorKind so the workspace boundary can turn it into
an OperationResult without inspecting the class.
"""

from notetree.schemas.tree import ErrorKind


class NoteTreeError(Exception):
    """Base exception for note tree operations."""

    kind: ErrorKind = ErrorKind.STORAGE_FAILURE

    def __init__(self, message: str, path: str | None = None):
        super().__init__(message)
        self.message = message
        self.path = path


class InvalidPathError(NoteTreeError):
    """Raised when a path or name is malformed or escapes the root."""

    kind = ErrorKind.INVALID_PATH


class NodeNotFoundError(NoteTreeError):
    """Raised when the target of an operation has no node."""

    kind = ErrorKind.NOT_FOUND


class NodeAlreadyExistsError(NoteTreeError):
    """Raised when a create, rename or move would collide with an existing node."""

    kind = ErrorKind.ALREADY_EXISTS


class InvalidOperationError(NoteTreeError):
    """Raised for structurally illegal operations (e.g. moving a folder into itself)."""

    kind = ErrorKind.INVALID_OPERATION


class StorageFailureError(NoteTreeError):
    """Raised when the underlying storage fails in a way not classified above."""

    kind = ErrorKind.STORAGE_FAILURE

"""Response schemas returned by the workspace boundary."""

from typing import Optional

from pydantic import BaseModel, Field

from notetree.schemas.tree import ErrorKind


class OperationResult(BaseModel):
    """Outcome of a mutation, reported as a value instead of an exception.

    Example Response:
    {
        "success": false,
        "path": "work/todo.md",
        "error_kind": "already_exists",
        "message": "Node already exists: work/todo.md"
    }
    """

    success: bool
    path: Optional[str] = Field(default=None, description="Canonical path affected")
    error_kind: Optional[ErrorKind] = None
    message: str = ""
    content: Optional[str] = Field(default=None, description="Note text, set by reads only")

    @classmethod
    def ok(
        cls, path: Optional[str], message: str = "", content: Optional[str] = None
    ) -> "OperationResult":
        return cls(success=True, path=path, message=message, content=content)

    @classmethod
    def failed(
        cls, error_kind: ErrorKind, message: str, path: Optional[str] = None
    ) -> "OperationResult":
        return cls(success=False, path=path, error_kind=error_kind, message=message)

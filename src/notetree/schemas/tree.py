"""Schemas for the in-memory note tree."""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class NodeKind(str, Enum):
    """Kind of entry a node mirrors."""

    LEAF = "leaf"  # a note file
    CONTAINER = "container"  # a directory


class SortPolicy(str, Enum):
    """Ordering applied by the view projection."""

    NAME_ASC = "name_asc"
    NAME_DESC = "name_desc"
    MODIFIED_ASC = "modified_asc"
    MODIFIED_DESC = "modified_desc"
    CREATED_ASC = "created_asc"
    CREATED_DESC = "created_desc"


class ErrorKind(str, Enum):
    """Failure taxonomy reported at the workspace boundary."""

    INVALID_PATH = "invalid_path"
    NOT_FOUND = "not_found"
    ALREADY_EXISTS = "already_exists"
    INVALID_OPERATION = "invalid_operation"
    STORAGE_FAILURE = "storage_failure"


class TreeNode(BaseModel):
    """One file or directory under the root.

    The root node has an empty name and an empty path. Leaves have
    ``children=None``; containers always have a list.
    """

    name: str
    path: str  # canonical relative path, no leading or trailing slash
    kind: NodeKind
    modified_at: int = 0  # epoch milliseconds
    created_at: int = 0  # epoch milliseconds
    children: Optional[List["TreeNode"]] = Field(default=None)

    @property
    def is_container(self) -> bool:
        return self.kind == NodeKind.CONTAINER

    @property
    def has_children(self) -> bool:
        return bool(self.children)

    def child(self, name: str) -> Optional["TreeNode"]:
        """Return the direct child with ``name``, if any."""
        for node in self.children or []:
            if node.name == name:
                return node
        return None


# Support for recursive model
TreeNode.model_rebuild()

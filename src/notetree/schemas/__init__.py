"""Schema exports.

Import everything from notetree.schemas rather than individual modules.
"""

from notetree.schemas.tree import (
    ErrorKind,
    NodeKind,
    SortPolicy,
    TreeNode,
)
from notetree.schemas.response import OperationResult

__all__ = [
    "ErrorKind",
    "NodeKind",
    "SortPolicy",
    "TreeNode",
    "OperationResult",
]

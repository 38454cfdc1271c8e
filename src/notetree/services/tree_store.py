"""In-memory tree of the notes under a single root.

The store exclusively owns its tree. Readers get deep copies (``snapshot``,
``find``); only ``rebuild`` and the ``apply_*`` patches write it, and the
mutation service only calls the patches through the sync gate.

Siblings are always kept in scan order (name ascending, codepoint order), so a
patched tree has the same shape a fresh ``rebuild`` would produce.
"""

import bisect
import fnmatch
from typing import Iterator, List, Optional, Sequence

from loguru import logger

from notetree import paths
from notetree.schemas.tree import NodeKind, TreeNode
from notetree.services.exceptions import (
    InvalidOperationError,
    InvalidPathError,
    NodeAlreadyExistsError,
    NodeNotFoundError,
    StorageFailureError,
)
from notetree.services.file_service import FileMetadata, Storage

DEFAULT_IGNORE_PATTERNS = (".git",)


def _name_key(node: TreeNode) -> str:
    return node.name


def _empty_root() -> TreeNode:
    return TreeNode(name="", path=paths.ROOT_PATH, kind=NodeKind.CONTAINER, children=[])


def _rewrite_paths(node: TreeNode, path: str) -> None:
    """Set ``node.path`` and rewrite every descendant path below it."""
    node.path = path
    for child in node.children or []:
        _rewrite_paths(child, paths.join(path, child.name))


class TreeStore:
    """Hierarchical view of the note root, rebuilt from storage on demand."""

    def __init__(self, storage: Storage, ignore_patterns: Sequence[str] = DEFAULT_IGNORE_PATTERNS):
        self.storage = storage
        self.ignore_patterns = list(ignore_patterns)
        self._root: TreeNode = _empty_root()
        # Set when physical I/O succeeded but the in-memory patch did not
        self.stale = False

    def is_ignored(self, name: str) -> bool:
        return any(fnmatch.fnmatch(name, pattern) for pattern in self.ignore_patterns)

    # --- Full scan ---

    async def rebuild(self) -> TreeNode:
        """Scan the whole root and replace the tree in a single assignment.

        A subtree that cannot be read is kept as an empty container and the
        failure is logged; the scan as a whole never fails because of it.

        Returns:
            A snapshot of the new tree
        """
        logger.debug("Rebuilding note tree from storage")
        root = _empty_root()
        try:
            metadata = await self.storage.stat(paths.ROOT_PATH)
            root.modified_at = metadata.modified_at
            root.created_at = metadata.created_at
        except OSError as e:
            logger.warning(f"Could not stat note root: {e}")

        root.children = await self._scan_children(paths.ROOT_PATH)
        self._root = root
        self.stale = False

        logger.info(f"Note tree rebuilt: nodes={self.count()}")
        return self.snapshot()

    async def _scan_children(self, path: str) -> List[TreeNode]:
        try:
            entries = await self.storage.list_children(path)
        except OSError as e:
            logger.warning(f"Failed to read directory, treating as empty: path={path!r}, error={e}")
            return []

        children: List[TreeNode] = []
        for name, kind in entries:
            if self.is_ignored(name):
                logger.trace(f"Ignoring entry: {name}")
                continue

            try:
                child_path = paths.join(path, name)
            except InvalidPathError as e:
                # legal on disk (e.g. a backslash on POSIX) but not addressable
                logger.warning(f"Skipping entry with invalid name: parent={path!r}, {e.message}")
                continue

            try:
                metadata = await self.storage.stat(child_path)
            except FileNotFoundError:
                # Removed between listing and stat
                logger.debug(f"Entry vanished during scan: {child_path}")
                continue
            except OSError as e:
                logger.warning(f"Failed to stat entry: path={child_path}, error={e}")
                metadata = FileMetadata(modified_at=0, created_at=0)

            node = TreeNode(
                name=name,
                path=child_path,
                kind=kind,
                modified_at=metadata.modified_at,
                created_at=metadata.created_at,
            )
            if kind == NodeKind.CONTAINER:
                node.children = await self._scan_children(child_path)
            children.append(node)

        children.sort(key=_name_key)
        return children

    # --- Read access ---

    def _find(self, path: str) -> Optional[TreeNode]:
        node = self._root
        for segment in paths.split(path):
            if node.kind != NodeKind.CONTAINER:
                return None
            found = node.child(segment)
            if found is None:
                return None
            node = found
        return node

    def _require(self, path: str) -> TreeNode:
        node = self._find(path)
        if node is None:
            raise NodeNotFoundError(f"Node not found: {path}", path=path)
        return node

    def _require_container(self, path: str) -> TreeNode:
        node = self._require(path)
        if node.kind != NodeKind.CONTAINER:
            raise InvalidOperationError(f"Not a folder: {path}", path=path)
        return node

    def find(self, path: str) -> Optional[TreeNode]:
        """Return a copy of the node at ``path``, or None."""
        node = self._find(path)
        return node.model_copy(deep=True) if node is not None else None

    def exists(self, path: str) -> bool:
        return self._find(path) is not None

    def kind_of(self, path: str) -> Optional[NodeKind]:
        node = self._find(path)
        return node.kind if node is not None else None

    def snapshot(self) -> TreeNode:
        """Deep copy of the whole tree."""
        return self._root.model_copy(deep=True)

    def walk(self) -> Iterator[TreeNode]:
        """Depth-first, pre-order iteration over a snapshot (root excluded)."""
        stack = list(reversed(self.snapshot().children or []))
        while stack:
            node = stack.pop()
            yield node
            if node.children:
                stack.extend(reversed(node.children))

    def count(self) -> int:
        return sum(1 for _ in self.walk())

    # --- In-memory patches (physical operation already succeeded) ---

    def _children_of(self, parent: TreeNode) -> List[TreeNode]:
        if parent.children is None:
            self.stale = True
            raise StorageFailureError(f"Folder has no child list: {parent.path}", path=parent.path)
        return parent.children

    def _insert(self, parent: TreeNode, node: TreeNode) -> None:
        children = self._children_of(parent)
        if parent.child(node.name) is not None:
            raise NodeAlreadyExistsError(f"Node already exists: {node.path}", path=node.path)
        bisect.insort(children, node, key=_name_key)

    def _detach(self, path: str) -> TreeNode:
        node = self._require(path)
        parent = self._require_container(paths.parent_of(path))
        children = self._children_of(parent)
        index = next(i for i, child in enumerate(children) if child is node)
        del children[index]
        return node

    def apply_create(self, node: TreeNode) -> None:
        """Insert a new node under its parent."""
        parent = self._require_container(paths.parent_of(node.path))
        node = node.model_copy(deep=True)
        if node.kind == NodeKind.CONTAINER and node.children is None:
            node.children = []
        self._insert(parent, node)

    def apply_rename(self, path: str, new_name: str) -> str:
        """Rename a node in place and rewrite its subtree paths.

        Returns:
            The node's new path
        """
        parent_path = paths.parent_of(path)
        parent = self._require_container(parent_path)
        new_path = paths.join(parent_path, new_name)
        if new_name != paths.name_of(path) and parent.child(new_name) is not None:
            raise NodeAlreadyExistsError(f"Node already exists: {new_path}", path=new_path)

        node = self._detach(path)
        node.name = new_name
        _rewrite_paths(node, new_path)
        self._insert(parent, node)
        return new_path

    def apply_move(self, source_path: str, target_container_path: str) -> str:
        """Re-parent a node and rewrite its subtree paths.

        Returns:
            The node's new path
        """
        if source_path == target_container_path or paths.is_ancestor_of(
            source_path, target_container_path
        ):
            raise InvalidOperationError(
                f"Cannot move {source_path} into itself", path=source_path
            )
        target = self._require_container(target_container_path)
        name = paths.name_of(source_path)
        new_path = paths.join(target_container_path, name)
        if target.child(name) is not None:
            raise NodeAlreadyExistsError(f"Node already exists: {new_path}", path=new_path)

        node = self._detach(source_path)
        _rewrite_paths(node, new_path)
        self._insert(target, node)
        return new_path

    def apply_delete(self, path: str) -> TreeNode:
        """Remove a node and its whole subtree.

        Returns:
            The removed node
        """
        if path == paths.ROOT_PATH:
            raise InvalidOperationError("Cannot delete the note root", path=path)
        return self._detach(path)

    def apply_metadata(self, path: str, metadata: FileMetadata) -> None:
        """Refresh a node's timestamps after a physical change."""
        node = self._require(path)
        node.modified_at = metadata.modified_at
        node.created_at = metadata.created_at

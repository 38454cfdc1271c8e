"""Structural operations on the note tree.

Each operation validates first (no I/O), then performs the physical change
through storage, then patches the tree store. A failed validation leaves both
storage and the tree untouched. Completed physical I/O is never rolled back: if
the tree patch fails afterwards, the inconsistency is logged, the store is
flagged stale and the caller gets a StorageFailureError so it can rebuild.

These methods are not safe to interleave; callers run them through the sync gate.
"""

from typing import Iterable, List, Optional

from loguru import logger

from notetree import paths
from notetree.schemas.tree import NodeKind, TreeNode
from notetree.services.exceptions import (
    InvalidOperationError,
    InvalidPathError,
    NodeAlreadyExistsError,
    NodeNotFoundError,
    NoteTreeError,
    StorageFailureError,
)
from notetree.services.file_service import FileMetadata, Storage
from notetree.services.tree_store import TreeStore


class MutationService:
    """Applies create, rename, move and delete to storage and the tree store."""

    def __init__(
        self,
        tree_store: TreeStore,
        storage: Storage,
        note_extension: str = paths.DEFAULT_NOTE_EXTENSION,
        new_note_heading: bool = False,
    ):
        self.tree_store = tree_store
        self.storage = storage
        self.note_extension = note_extension
        self.new_note_heading = new_note_heading

    # --- Validation helpers (pure) ---

    def _canonical(self, raw: paths.RawPath) -> str:
        return paths.normalize(raw)

    def _check_name(self, name: str) -> str:
        paths.validate_name(name)
        if self.tree_store.is_ignored(name):
            raise InvalidPathError(f"Name is reserved: {name}", path=name)
        return name

    def _require_node(self, path: str) -> NodeKind:
        kind = self.tree_store.kind_of(path)
        if kind is None:
            raise NodeNotFoundError(f"Node not found: {path}", path=path)
        return kind

    def _missing_containers(self, parent_path: str, segments: List[str]) -> List[str]:
        """Paths of intermediate folders that do not exist yet, outermost first."""
        missing: List[str] = []
        current = parent_path
        for segment in segments:
            current = paths.join(current, segment)
            kind = self.tree_store.kind_of(current)
            if kind is None:
                missing.append(current)
            elif kind == NodeKind.LEAF:
                raise InvalidOperationError(f"Not a folder: {current}", path=current)
            elif missing:  # pragma: no cover
                # an existing node below a missing one would mean a broken tree
                raise StorageFailureError(f"Tree is inconsistent at {current}", path=current)
        return missing

    def _initial_content(self, path: str) -> bytes:
        if not self.new_note_heading:
            return b""
        stem = paths.name_of(path)
        if paths.has_extension(stem):
            stem = stem.rsplit(".", 1)[0]
        return f"# {stem}\n\n".encode("utf-8")

    # --- I/O helpers ---

    async def _stat(self, path: str) -> FileMetadata:
        try:
            return await self.storage.stat(path)
        except OSError as e:
            logger.warning(f"Failed to stat after write: path={path}, error={e}")
            return FileMetadata(modified_at=0, created_at=0)

    async def _node_for(self, path: str, kind: NodeKind) -> TreeNode:
        metadata = await self._stat(path)
        return TreeNode(
            name=paths.name_of(path),
            path=path,
            kind=kind,
            modified_at=metadata.modified_at,
            created_at=metadata.created_at,
            children=[] if kind == NodeKind.CONTAINER else None,
        )

    async def _refresh_metadata(self, affected: Iterable[str]) -> None:
        for path in dict.fromkeys(affected):
            if self.tree_store.exists(path):
                self.tree_store.apply_metadata(path, await self._stat(path))

    def _inconsistent(self, operation: str, path: str, error: Exception) -> StorageFailureError:
        self.tree_store.stale = True
        logger.error(
            f"Tree inconsistent after {operation}: path={path}, error={error}. "
            "Storage was changed but the tree was not patched; a rebuild is required."
        )
        return StorageFailureError(
            f"{operation} of {path} reached storage but the tree could not be updated: {error}",
            path=path,
        )

    def _result(self, path: str) -> TreeNode:
        node = self.tree_store.find(path)
        if node is None:  # pragma: no cover
            raise StorageFailureError(f"Node missing after update: {path}", path=path)
        return node

    # --- Operations ---

    async def create(self, parent_path: str, name: str, kind: NodeKind) -> TreeNode:
        """Create an empty note or folder named ``name`` inside ``parent_path``.

        ``name`` may contain nested segments (``"ideas/todo"``); missing
        intermediate folders are created. Leaf names get the note extension when
        they have none.

        Raises:
            InvalidPathError: If any segment is malformed or reserved
            NodeNotFoundError: If the parent folder does not exist
            InvalidOperationError: If the parent or an intermediate segment is a note
            NodeAlreadyExistsError: If the final path already exists
            StorageFailureError: If storage fails
        """
        parent_path = self._canonical(parent_path)
        if not name:
            raise InvalidPathError("Name must not be empty", path=name)
        segments = paths.split(self._canonical(name))
        for segment in segments:
            self._check_name(segment)
        if kind == NodeKind.LEAF:
            segments[-1] = paths.with_default_extension(segments[-1], kind, self.note_extension)

        parent_kind = self._require_node(parent_path)
        if parent_kind != NodeKind.CONTAINER:
            raise InvalidOperationError(f"Not a folder: {parent_path}", path=parent_path)

        missing = self._missing_containers(parent_path, segments[:-1])
        container = parent_path
        for segment in segments[:-1]:
            container = paths.join(container, segment)
        target = paths.join(container, segments[-1])
        if self.tree_store.exists(target):
            raise NodeAlreadyExistsError(f"Node already exists: {target}", path=target)

        logger.debug(f"Creating {kind.value}: {target}")
        done: List[str] = []
        try:
            for folder in missing:
                await self.storage.make_container(folder)
                done.append(folder)
            if kind == NodeKind.CONTAINER:
                await self.storage.make_container(target)
            else:
                await self.storage.write_all(target, self._initial_content(target), exclusive=True)
        except OSError as e:
            if done:
                raise self._inconsistent("create", target, e) from e
            if isinstance(e, FileExistsError):
                raise NodeAlreadyExistsError(f"Already exists on disk: {target}", path=target) from e
            raise StorageFailureError(f"Failed to create {target}: {e}", path=target) from e

        try:
            for folder in missing:
                self.tree_store.apply_create(await self._node_for(folder, NodeKind.CONTAINER))
            self.tree_store.apply_create(await self._node_for(target, kind))
            await self._refresh_metadata([parent_path])
        except NoteTreeError as e:
            raise self._inconsistent("create", target, e) from e

        logger.info(f"Created {kind.value}: {target}")
        return self._result(target)

    async def rename(self, path: str, new_name: str) -> TreeNode:
        """Rename a node within its folder, rewriting every descendant path.

        A leaf keeps the note extension rule: a new name without an extension
        gets the default one.

        Raises:
            NodeNotFoundError: If ``path`` has no node
            InvalidPathError: If ``new_name`` is malformed or reserved
            InvalidOperationError: If ``path`` is the root
            NodeAlreadyExistsError: If a sibling already uses the new name
            StorageFailureError: If storage fails
        """
        path = self._canonical(path)
        if path == paths.ROOT_PATH:
            raise InvalidOperationError("Cannot rename the note root", path=path)
        kind = self._require_node(path)
        self._check_name(new_name)
        new_name = paths.with_default_extension(new_name, kind, self.note_extension)

        old_name = paths.name_of(path)
        if new_name == old_name:
            return self._result(path)

        parent_path = paths.parent_of(path)
        new_path = paths.join(parent_path, new_name)
        if self.tree_store.exists(new_path):
            raise NodeAlreadyExistsError(f"Node already exists: {new_path}", path=new_path)
        # the tree may be stale; never let rename() overwrite an untracked entry
        if new_name.casefold() != old_name.casefold() and await self.storage.exists(new_path):
            raise NodeAlreadyExistsError(f"Already exists on disk: {new_path}", path=new_path)

        try:
            await self.storage.rename(path, new_path)
        except OSError as e:
            raise StorageFailureError(f"Failed to rename {path}: {e}", path=path) from e

        try:
            self.tree_store.apply_rename(path, new_name)
            await self._refresh_metadata([new_path, parent_path])
        except NoteTreeError as e:
            raise self._inconsistent("rename", path, e) from e

        logger.info(f"Renamed: {path} -> {new_path}")
        return self._result(new_path)

    async def move(self, source_path: str, target_container_path: str) -> TreeNode:
        """Move a node (and its subtree) into another folder.

        Raises:
            NodeNotFoundError: If the source or the target is absent
            InvalidOperationError: If the target is the source, one of its
                descendants, or a note; or if the source is the root
            NodeAlreadyExistsError: If the target already holds the source's name
            StorageFailureError: If storage fails
        """
        source_path = self._canonical(source_path)
        target_container_path = self._canonical(target_container_path)
        if source_path == paths.ROOT_PATH:
            raise InvalidOperationError("Cannot move the note root", path=source_path)
        self._require_node(source_path)

        if target_container_path == source_path or paths.is_ancestor_of(
            source_path, target_container_path
        ):
            raise InvalidOperationError(
                f"Cannot move {source_path} into itself or one of its descendants",
                path=source_path,
            )

        target_kind = self._require_node(target_container_path)
        if target_kind != NodeKind.CONTAINER:
            raise InvalidOperationError(
                f"Move target is not a folder: {target_container_path}",
                path=target_container_path,
            )

        old_parent = paths.parent_of(source_path)
        if old_parent == target_container_path:
            return self._result(source_path)

        new_path = paths.join(target_container_path, paths.name_of(source_path))
        if self.tree_store.exists(new_path) or await self.storage.exists(new_path):
            raise NodeAlreadyExistsError(f"Node already exists: {new_path}", path=new_path)

        try:
            await self.storage.rename(source_path, new_path)
        except OSError as e:
            raise StorageFailureError(f"Failed to move {source_path}: {e}", path=source_path) from e

        try:
            self.tree_store.apply_move(source_path, target_container_path)
            await self._refresh_metadata([new_path, old_parent, target_container_path])
        except NoteTreeError as e:
            raise self._inconsistent("move", source_path, e) from e

        logger.info(f"Moved: {source_path} -> {new_path}")
        return self._result(new_path)

    async def delete(self, path: str) -> TreeNode:
        """Delete a node and everything below it.

        Returns:
            The removed node, with its subtree as it was before deletion

        Raises:
            NodeNotFoundError: If ``path`` has no node
            InvalidOperationError: If ``path`` is the root
            StorageFailureError: If storage fails
        """
        path = self._canonical(path)
        if path == paths.ROOT_PATH:
            raise InvalidOperationError("Cannot delete the note root", path=path)
        kind = self._require_node(path)

        try:
            await self.storage.remove_recursive(path)
        except OSError as e:
            if kind == NodeKind.CONTAINER:
                # a recursive removal may have deleted part of the subtree
                raise self._inconsistent("delete", path, e) from e
            raise StorageFailureError(f"Failed to delete {path}: {e}", path=path) from e

        try:
            removed = self.tree_store.apply_delete(path)
            await self._refresh_metadata([paths.parent_of(path)])
        except NoteTreeError as e:
            raise self._inconsistent("delete", path, e) from e

        logger.info(f"Deleted {kind.value}: {path}")
        return removed

    async def save(self, path: str, content: bytes) -> TreeNode:
        """Write note content, creating the note (and missing folders) if needed.

        Raises:
            InvalidPathError: If ``path`` is malformed or the root
            InvalidOperationError: If ``path`` or one of its parents is the wrong kind
            StorageFailureError: If storage fails
        """
        path = self._canonical(path)
        if path == paths.ROOT_PATH:
            raise InvalidPathError("Cannot write to the note root", path=path)
        segments = paths.split(path)
        for segment in segments:
            self._check_name(segment)

        kind = self.tree_store.kind_of(path)
        if kind == NodeKind.CONTAINER:
            raise InvalidOperationError(f"Is a folder: {path}", path=path)
        missing = self._missing_containers(paths.ROOT_PATH, segments[:-1])

        done: List[str] = []
        try:
            for folder in missing:
                await self.storage.make_container(folder)
                done.append(folder)
            await self.storage.write_all(path, content)
        except OSError as e:
            if done:
                raise self._inconsistent("save", path, e) from e
            raise StorageFailureError(f"Failed to write {path}: {e}", path=path) from e

        try:
            for folder in missing:
                self.tree_store.apply_create(await self._node_for(folder, NodeKind.CONTAINER))
            if kind is None:
                self.tree_store.apply_create(await self._node_for(path, NodeKind.LEAF))
            await self._refresh_metadata([path, paths.parent_of(path)])
        except NoteTreeError as e:
            raise self._inconsistent("save", path, e) from e

        logger.info(f"Saved note: path={path}, bytes={len(content)}, new={kind is None}")
        return self._result(path)

    async def read(self, path: str) -> Optional[bytes]:
        """Read a note's bytes, or None when the path is not a note in the tree."""
        path = self._canonical(path)
        if self.tree_store.kind_of(path) != NodeKind.LEAF:
            return None
        try:
            return await self.storage.read_all(path)
        except FileNotFoundError:
            logger.warning(f"Note in tree but missing on disk: {path}")
            return None
        except OSError as e:
            raise StorageFailureError(f"Failed to read {path}: {e}", path=path) from e

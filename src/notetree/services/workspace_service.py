"""Workspace service: the boundary between clients and the note tree core.

Wires storage, tree store, mutation service, sync gate, view projection and git
together for one note root. Every mutation goes through the root's sync gate
and comes back as an OperationResult; no core exception crosses this boundary.
"""

from pathlib import Path
from typing import Awaitable, Callable, Optional, Sequence, Union
from urllib.parse import unquote

from loguru import logger

from notetree import paths
from notetree.config import ConfigManager, NoteTreeConfig
from notetree.schemas.response import OperationResult
from notetree.schemas.tree import ErrorKind, NodeKind, SortPolicy, TreeNode
from notetree.services.exceptions import NoteTreeError
from notetree.services.file_service import FileService
from notetree.services.mutation_service import MutationService
from notetree.services.projection import project
from notetree.services.sync_gate import SyncGate, get_gate
from notetree.services.tree_store import TreeStore
from notetree.sync.git_service import GitResult, GitService


class WorkspaceService:
    """All operations a client can perform on one note root."""

    def __init__(
        self,
        app_config: NoteTreeConfig,
        file_service: Optional[FileService] = None,
        git_service: Optional[GitService] = None,
    ):
        self.app_config = app_config
        self.root: Path = app_config.home_path
        self.file_service = file_service or FileService(self.root)
        self.tree_store = TreeStore(self.file_service, app_config.ignore_patterns)
        self.mutation_service = MutationService(
            self.tree_store,
            self.file_service,
            note_extension=app_config.note_extension,
            new_note_heading=app_config.new_note_heading,
        )
        self.git_service = git_service or GitService(
            self.root,
            executable=app_config.git_executable,
            remote_name=app_config.git_remote_name,
            branch=app_config.git_branch,
            timeout=app_config.git_timeout,
            remote_url=app_config.git_remote_url,
        )
        self._loaded = False

    @property
    def gate(self) -> SyncGate:
        return get_gate(self.root)

    # --- Tree reads ---

    async def _ensure_loaded(self) -> None:
        """Rebuild on first use or after an inconsistency. Call only inside the gate."""
        if not self._loaded or self.tree_store.stale:
            if self.tree_store.stale:
                logger.warning("Tree flagged stale, rebuilding before next operation")
            await self.tree_store.rebuild()
            self._loaded = True

    async def refresh(self) -> TreeNode:
        """Rescan the note root, picking up out-of-process changes."""

        async def _rebuild() -> TreeNode:
            snapshot = await self.tree_store.rebuild()
            self._loaded = True
            return snapshot

        return await self.gate.run(_rebuild, "rebuild")

    async def get_tree(
        self, sort: Optional[SortPolicy] = None, query: Optional[str] = None
    ) -> TreeNode:
        """Return the projected view of the tree.

        Args:
            sort: Sort policy, defaults to the configured one
            query: Optional case-insensitive name filter
        """
        if not self._loaded or self.tree_store.stale:
            await self.gate.run(self._ensure_loaded, "load")
        return project(self.tree_store.snapshot(), sort or self.app_config.default_sort, query)

    async def find(self, path: str) -> Optional[TreeNode]:
        if not self._loaded:
            await self.gate.run(self._ensure_loaded, "load")
        try:
            return self.tree_store.find(paths.normalize(path))
        except NoteTreeError:
            return None

    # --- Mutations ---

    async def _mutate(
        self,
        label: str,
        target: Optional[str],
        operation: Callable[[], Awaitable[TreeNode]],
        message: Callable[[TreeNode], str],
    ) -> OperationResult:
        async def _run() -> TreeNode:
            await self._ensure_loaded()
            return await operation()

        try:
            node = await self.gate.run(_run, label)
        except NoteTreeError as e:
            logger.warning(f"{label} failed: kind={e.kind.value}, path={e.path or target}, {e.message}")
            return OperationResult.failed(e.kind, e.message, e.path or target)
        except OSError as e:
            logger.error(f"{label} failed with unclassified storage error: path={target}, error={e}")
            return OperationResult.failed(ErrorKind.STORAGE_FAILURE, str(e), target)
        return OperationResult.ok(node.path, message(node))

    async def create(self, parent_path: str, name: str, kind: NodeKind) -> OperationResult:
        return await self._mutate(
            "create",
            name,
            lambda: self.mutation_service.create(parent_path, name, kind),
            lambda node: f"Created {node.path}",
        )

    async def rename(self, path: str, new_name: str) -> OperationResult:
        return await self._mutate(
            "rename",
            path,
            lambda: self.mutation_service.rename(path, new_name),
            lambda node: f"Renamed {path} to {node.path}",
        )

    async def move(self, source_path: str, target_container_path: str) -> OperationResult:
        return await self._mutate(
            "move",
            source_path,
            lambda: self.mutation_service.move(source_path, target_container_path),
            lambda node: f"Moved {source_path} to {node.path}",
        )

    async def delete(self, path: str) -> OperationResult:
        return await self._mutate(
            "delete",
            path,
            lambda: self.mutation_service.delete(path),
            lambda node: f"Deleted {node.path}",
        )

    # --- Note content ---

    def _slug_to_path(self, slug: Union[str, Sequence[str]]) -> str:
        if isinstance(slug, str):
            segments = [unquote(segment) for segment in slug.split(paths.SEPARATOR)]
            if slug == "":
                segments = []
        else:
            segments = [unquote(segment) for segment in slug]
        return paths.normalize(segments)

    async def read_note(self, slug: Union[str, Sequence[str]]) -> OperationResult:
        """Resolve a path-addressed slug to a note and read it.

        ``["work", "todo"]``, ``"work/todo"`` and ``"work/todo.md"`` all resolve
        to ``work/todo.md``. Segments are percent-decoded.
        """
        try:
            path = self._slug_to_path(slug)
        except NoteTreeError as e:
            return OperationResult.failed(e.kind, e.message, e.path)

        if not self._loaded:
            await self.gate.run(self._ensure_loaded, "load")

        candidates = dict.fromkeys(
            [path, paths.with_default_extension(path, NodeKind.LEAF, self.app_config.note_extension)]
        )
        for candidate in candidates:
            if self.tree_store.kind_of(candidate) != NodeKind.LEAF:
                continue
            try:
                data = await self.mutation_service.read(candidate)
            except NoteTreeError as e:
                return OperationResult.failed(e.kind, e.message, candidate)
            if data is not None:
                return OperationResult.ok(candidate, content=data.decode("utf-8", errors="replace"))

        return OperationResult.failed(ErrorKind.NOT_FOUND, f"Note not found: {path}", path)

    async def save_note(self, path: str, content: str) -> OperationResult:
        """Write a note's text, creating it (and missing folders) when new."""
        try:
            target = paths.with_default_extension(
                paths.normalize(path), NodeKind.LEAF, self.app_config.note_extension
            )
        except NoteTreeError as e:
            return OperationResult.failed(e.kind, e.message, e.path)

        try:
            data = content.encode("utf-8")
        except UnicodeEncodeError as e:
            logger.warning(f"save failed: path={target}, content is not valid UTF-8: {e}")
            return OperationResult.failed(
                ErrorKind.INVALID_OPERATION, f"Content cannot be encoded as UTF-8: {e.reason}", target
            )

        return await self._mutate(
            "save",
            target,
            lambda: self.mutation_service.save(target, data),
            lambda node: f"Saved {node.path}",
        )

    # --- Git ---

    async def _git(
        self, label: str, command: Callable[[], Awaitable[GitResult]], rebuild: bool = False
    ) -> OperationResult:
        async def _run() -> GitResult:
            result = await command()
            if rebuild:
                # the working tree may have changed out of band
                await self.tree_store.rebuild()
                self._loaded = True
            return result

        result = await self.gate.run(_run, label)
        if result.success:
            return OperationResult.ok(None, result.message)
        return OperationResult.failed(ErrorKind.STORAGE_FAILURE, result.message)

    async def configure_remote(self, url: str) -> OperationResult:
        return await self._git("git remote", lambda: self.git_service.configure_remote(url))

    async def git_commit(self, message: Optional[str] = None) -> OperationResult:
        commit_message = message or self.app_config.default_commit_message

        async def _commit() -> GitResult:
            staged = await self.git_service.stage_all()
            if not staged.success:
                return staged
            return await self.git_service.commit(commit_message)

        return await self._git("git commit", _commit)

    async def git_push(self) -> OperationResult:
        return await self._git("git push", self.git_service.push)

    async def git_pull(self) -> OperationResult:
        return await self._git("git pull", self.git_service.pull, rebuild=True)

    async def git_sync(self, message: Optional[str] = None) -> OperationResult:
        commit_message = message or self.app_config.default_commit_message
        return await self._git(
            "git sync", lambda: self.git_service.sync(commit_message), rebuild=True
        )


def get_workspace_service(app_config: Optional[NoteTreeConfig] = None) -> WorkspaceService:
    """Build a workspace service from the given (or the saved) configuration."""
    config = app_config or ConfigManager().config
    return WorkspaceService(config)

"""Tests for the workspace boundary."""

import asyncio
from pathlib import Path
from typing import List

import pytest

from notetree.config import NoteTreeConfig
from notetree.schemas.response import OperationResult
from notetree.schemas.tree import ErrorKind, NodeKind, SortPolicy, TreeNode
from notetree.services.tree_store import TreeStore
from notetree.services.workspace_service import WorkspaceService, get_workspace_service
from notetree.sync.git_service import GitResult


def all_paths(node: TreeNode) -> List[str]:
    result = []
    for child in node.children or []:
        result.append(child.path)
        result.extend(all_paths(child))
    return result


class FakeGitService:
    """Records git calls; pulls drop a new note into the root."""

    def __init__(self, root: Path, succeed: bool = True):
        self.root = root
        self.succeed = succeed
        self.calls: List[str] = []

    def _result(self, name: str) -> GitResult:
        self.calls.append(name)
        if self.succeed:
            return GitResult(True, f"{name} ok")
        return GitResult(False, f"{name} failed: remote rejected")

    async def configure_remote(self, url: str) -> GitResult:
        return self._result(f"remote {url}")

    async def stage_all(self) -> GitResult:
        return self._result("stage")

    async def commit(self, message: str) -> GitResult:
        return self._result(f"commit {message}")

    async def push(self) -> GitResult:
        return self._result("push")

    async def pull(self) -> GitResult:
        (self.root / "pulled.md").write_text("from remote\n")
        return self._result("pull")

    async def sync(self, message: str) -> GitResult:
        (self.root / "pulled.md").write_text("from remote\n")
        return self._result(f"sync {message}")


@pytest.fixture
def fake_git(note_root: Path) -> FakeGitService:
    return FakeGitService(note_root)


@pytest.fixture
def workspace(app_config: NoteTreeConfig, sample_notes: Path, fake_git) -> WorkspaceService:
    return WorkspaceService(app_config, git_service=fake_git)


@pytest.mark.asyncio
async def test_get_tree(workspace: WorkspaceService):
    tree = await workspace.get_tree()

    assert [child.name for child in tree.children] == ["Archive", "notes", "work", "zebra.md"]


@pytest.mark.asyncio
async def test_get_tree_with_sort_and_filter(workspace: WorkspaceService):
    tree = await workspace.get_tree(SortPolicy.NAME_DESC, "todo")

    assert all_paths(tree) == ["work", "work/todo.md"]


@pytest.mark.asyncio
async def test_get_tree_uses_configured_sort(app_config: NoteTreeConfig, sample_notes: Path):
    config = NoteTreeConfig(**{**app_config.model_dump(), "default_sort": SortPolicy.NAME_DESC})
    workspace = WorkspaceService(config)

    tree = await workspace.get_tree()

    assert [child.name for child in tree.children] == ["work", "notes", "Archive", "zebra.md"]


@pytest.mark.asyncio
async def test_create_returns_result(workspace: WorkspaceService, sample_notes: Path):
    result = await workspace.create("work", "ideas", NodeKind.LEAF)

    assert result == OperationResult(
        success=True, path="work/ideas.md", message="Created work/ideas.md"
    )
    assert (sample_notes / "work" / "ideas.md").exists()


@pytest.mark.asyncio
async def test_failures_are_values(workspace: WorkspaceService):
    result = await workspace.create("work", "todo", NodeKind.LEAF)
    assert not result.success
    assert result.error_kind == ErrorKind.ALREADY_EXISTS
    assert result.path == "work/todo.md"

    result = await workspace.rename("missing.md", "x")
    assert result.error_kind == ErrorKind.NOT_FOUND

    result = await workspace.move("notes", "notes/a")
    assert result.error_kind == ErrorKind.INVALID_OPERATION

    result = await workspace.delete("../outside")
    assert result.error_kind == ErrorKind.INVALID_PATH
    assert result.message


@pytest.mark.asyncio
async def test_move_and_delete(workspace: WorkspaceService, sample_notes: Path):
    moved = await workspace.move("notes/a", "Archive")
    assert moved.success
    assert moved.path == "Archive/a"

    deleted = await workspace.delete("Archive")
    assert deleted.success
    assert deleted.message == "Deleted Archive"
    assert not (sample_notes / "Archive").exists()
    assert await workspace.find("Archive/a/b.md") is None


@pytest.mark.asyncio
async def test_concurrent_rename_then_delete(workspace: WorkspaceService):
    renamed, deleted = await asyncio.gather(
        workspace.rename("zebra.md", "horse"),
        workspace.delete("zebra.md"),
    )

    assert renamed.success
    assert renamed.path == "horse.md"
    assert not deleted.success
    assert deleted.error_kind == ErrorKind.NOT_FOUND

    tree = await workspace.get_tree()
    paths = all_paths(tree)
    assert paths.count("horse.md") == 1
    assert "zebra.md" not in paths


@pytest.mark.asyncio
async def test_concurrent_delete_then_rename(workspace: WorkspaceService):
    deleted, renamed = await asyncio.gather(
        workspace.delete("zebra.md"),
        workspace.rename("zebra.md", "horse"),
    )

    assert deleted.success
    assert renamed.error_kind == ErrorKind.NOT_FOUND
    assert await workspace.find("horse.md") is None
    assert await workspace.find("zebra.md") is None


@pytest.mark.asyncio
async def test_concurrent_operations_match_rebuild(workspace: WorkspaceService):
    await asyncio.gather(
        workspace.create("", "inbox", NodeKind.CONTAINER),
        workspace.move("work", "inbox"),
        workspace.rename("inbox/work/todo.md", "done"),
        workspace.delete("notes/a"),
        workspace.create("notes", "fresh", NodeKind.LEAF),
    )

    patched = all_paths(workspace.tree_store.snapshot())
    rebuilt = all_paths(await TreeStore(workspace.file_service).rebuild())

    assert patched == rebuilt
    assert "inbox/work/done.md" in patched


@pytest.mark.asyncio
async def test_refresh_picks_up_external_changes(
    workspace: WorkspaceService, sample_notes: Path
):
    await workspace.get_tree()
    (sample_notes / "external.md").write_text("")

    assert await workspace.find("external.md") is None
    await workspace.refresh()
    assert await workspace.find("external.md") is not None


@pytest.mark.asyncio
async def test_stale_tree_is_rebuilt_before_next_operation(
    workspace: WorkspaceService, sample_notes: Path
):
    await workspace.get_tree()
    (sample_notes / "external.md").write_text("")
    workspace.tree_store.stale = True

    result = await workspace.rename("external.md", "seen")

    assert result.success
    assert not workspace.tree_store.stale


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "slug",
    ["work/todo", "work/todo.md", ["work", "todo"], ["work", "todo.md"]],
)
async def test_read_note_slugs(workspace: WorkspaceService, slug):
    result = await workspace.read_note(slug)

    assert result.success
    assert result.path == "work/todo.md"
    assert result.content == "- [ ] write tests\n"


@pytest.mark.asyncio
async def test_read_note_percent_decoded(workspace: WorkspaceService, sample_notes: Path):
    (sample_notes / "work" / "Weekly Review.md").write_text("# Weekly\n")
    await workspace.refresh()

    result = await workspace.read_note("work/Weekly%20Review")

    assert result.success
    assert result.path == "work/Weekly Review.md"


@pytest.mark.asyncio
async def test_read_note_failures(workspace: WorkspaceService):
    assert (await workspace.read_note("work")).error_kind == ErrorKind.NOT_FOUND
    assert (await workspace.read_note("missing")).error_kind == ErrorKind.NOT_FOUND
    assert (await workspace.read_note("a/../b")).error_kind == ErrorKind.INVALID_PATH


@pytest.mark.asyncio
async def test_save_note(workspace: WorkspaceService, sample_notes: Path):
    result = await workspace.save_note("journal/today", "# Today\n")

    assert result.success
    assert result.path == "journal/today.md"
    assert (sample_notes / "journal" / "today.md").read_text() == "# Today\n"
    assert (await workspace.read_note("journal/today")).content == "# Today\n"

    result = await workspace.save_note("zebra.md/inside", "nope")
    assert result.error_kind == ErrorKind.INVALID_OPERATION


@pytest.mark.asyncio
async def test_git_commit_stages_first(workspace: WorkspaceService, fake_git: FakeGitService):
    result = await workspace.git_commit()

    assert result.success
    assert fake_git.calls == ["stage", "commit Update notes"]


@pytest.mark.asyncio
async def test_git_pull_rebuilds_tree(workspace: WorkspaceService, fake_git: FakeGitService):
    await workspace.get_tree()

    result = await workspace.git_pull()

    assert result.success
    assert await workspace.find("pulled.md") is not None


@pytest.mark.asyncio
async def test_git_sync(workspace: WorkspaceService, fake_git: FakeGitService):
    result = await workspace.git_sync("Weekly review")

    assert result.success
    assert fake_git.calls == ["sync Weekly review"]
    assert await workspace.find("pulled.md") is not None


@pytest.mark.asyncio
async def test_git_failure_is_a_value(workspace: WorkspaceService, fake_git: FakeGitService):
    fake_git.succeed = False

    result = await workspace.git_push()

    assert not result.success
    assert result.error_kind == ErrorKind.STORAGE_FAILURE
    assert "remote rejected" in result.message


@pytest.mark.asyncio
async def test_get_workspace_service(app_config: NoteTreeConfig):
    workspace = get_workspace_service(app_config)

    assert workspace.root == app_config.home_path
    assert workspace.gate is workspace.gate


@pytest.mark.asyncio
async def test_save_note_with_unencodable_content(
    workspace: WorkspaceService, sample_notes: Path
):
    result = await workspace.save_note("broken", "bad \udcff")

    assert not result.success
    assert result.error_kind == ErrorKind.INVALID_OPERATION
    assert result.path == "broken.md"
    assert not (sample_notes / "broken.md").exists()


@pytest.mark.asyncio
async def test_odd_names_on_disk_do_not_break_the_workspace(
    workspace: WorkspaceService, sample_notes: Path
):
    (sample_notes / "work" / "a\\b.md").write_text("")
    (sample_notes / "   ").write_text("")

    tree = await workspace.get_tree()
    assert [child.name for child in tree.children] == ["Archive", "notes", "work", "zebra.md"]

    result = await workspace.create("", "fresh", NodeKind.LEAF)
    assert result.success
    assert result.path == "fresh.md"


def test_saved_remote_reaches_git_service(app_config: NoteTreeConfig, sample_notes: Path):
    url = "git@example.com:me/notes.git"
    config = NoteTreeConfig(**{**app_config.model_dump(), "git_remote_url": url})

    workspace = WorkspaceService(config)

    assert workspace.git_service.remote_url == url

"""Tests for the in-memory tree store."""

from pathlib import Path
from typing import List, Tuple

import pytest

from notetree.schemas.tree import NodeKind, TreeNode
from notetree.services.exceptions import (
    InvalidOperationError,
    NodeAlreadyExistsError,
    NodeNotFoundError,
    StorageFailureError,
)
from notetree.services.file_service import FileService
from notetree.services.tree_store import TreeStore


def shape(node: TreeNode) -> List[Tuple[str, NodeKind]]:
    """Flatten a tree into (path, kind) pairs, ignoring timestamps."""
    result = []
    for child in node.children or []:
        result.append((child.path, child.kind))
        result.extend(shape(child))
    return result


class UnreadableFileService(FileService):
    """File service that fails to list one directory."""

    def __init__(self, base_path: Path, unreadable: str):
        super().__init__(base_path)
        self.unreadable = unreadable

    async def list_children(self, path: str):
        if path == self.unreadable:
            raise PermissionError(f"Permission denied: {path}")
        return await super().list_children(path)


@pytest.mark.asyncio
async def test_rebuild_empty_root(tree_store: TreeStore):
    tree = await tree_store.rebuild()

    assert tree.path == ""
    assert tree.kind == NodeKind.CONTAINER
    assert tree.children == []
    assert tree_store.count() == 0


@pytest.mark.asyncio
async def test_rebuild(tree_store: TreeStore, sample_notes: Path):
    tree = await tree_store.rebuild()

    # siblings in codepoint order
    assert shape(tree) == [
        ("Archive", NodeKind.CONTAINER),
        ("notes", NodeKind.CONTAINER),
        ("notes/a", NodeKind.CONTAINER),
        ("notes/a/b.md", NodeKind.LEAF),
        ("work", NodeKind.CONTAINER),
        ("work/plans.md", NodeKind.LEAF),
        ("work/todo.md", NodeKind.LEAF),
        ("zebra.md", NodeKind.LEAF),
    ]

    todo = tree_store.find("work/todo.md")
    assert todo is not None
    assert todo.children is None
    assert todo.modified_at > 0
    assert todo.created_at > 0
    assert tree_store.find("Archive").children == []


@pytest.mark.asyncio
async def test_rebuild_skips_ignored_entries(tree_store: TreeStore, sample_notes: Path):
    (sample_notes / ".git").mkdir()
    (sample_notes / ".git" / "HEAD").write_text("ref: refs/heads/main\n")

    await tree_store.rebuild()

    assert tree_store.find(".git") is None
    assert tree_store.count() == 8


@pytest.mark.asyncio
async def test_rebuild_skips_symlinks(tree_store: TreeStore, sample_notes: Path, tmp_path: Path):
    outside = tmp_path / "outside"
    outside.mkdir()
    (sample_notes / "escape").symlink_to(outside, target_is_directory=True)

    await tree_store.rebuild()

    assert tree_store.find("escape") is None


@pytest.mark.asyncio
async def test_rebuild_treats_unreadable_subtree_as_empty(sample_notes: Path):
    store = TreeStore(UnreadableFileService(sample_notes, unreadable="work"))

    tree = await store.rebuild()

    work = store.find("work")
    assert work is not None
    assert work.kind == NodeKind.CONTAINER
    assert work.children == []
    # the rest of the scan is unaffected
    assert store.exists("notes/a/b.md")
    assert store.exists("zebra.md")
    assert ("work/todo.md", NodeKind.LEAF) not in shape(tree)


@pytest.mark.asyncio
async def test_rebuild_picks_up_external_changes(loaded_store: TreeStore, sample_notes: Path):
    (sample_notes / "work" / "new.md").write_text("")
    (sample_notes / "zebra.md").unlink()

    await loaded_store.rebuild()

    assert loaded_store.exists("work/new.md")
    assert not loaded_store.exists("zebra.md")


@pytest.mark.asyncio
async def test_readers_get_copies(loaded_store: TreeStore):
    snapshot = loaded_store.snapshot()
    snapshot.children.clear()

    found = loaded_store.find("work")
    found.children.clear()
    found.name = "changed"

    assert loaded_store.count() == 8
    assert loaded_store.find("work").name == "work"
    assert len(loaded_store.find("work").children) == 2


@pytest.mark.asyncio
async def test_find_and_kind_of(loaded_store: TreeStore):
    assert loaded_store.find("") is not None
    assert loaded_store.find("missing") is None
    # below a leaf
    assert loaded_store.find("zebra.md/x") is None
    assert loaded_store.kind_of("work") == NodeKind.CONTAINER
    assert loaded_store.kind_of("work/todo.md") == NodeKind.LEAF
    assert loaded_store.kind_of("nope") is None


@pytest.mark.asyncio
async def test_walk_is_preorder(loaded_store: TreeStore):
    walked = [node.path for node in loaded_store.walk()]

    assert walked == [
        "Archive",
        "notes",
        "notes/a",
        "notes/a/b.md",
        "work",
        "work/plans.md",
        "work/todo.md",
        "zebra.md",
    ]


@pytest.mark.asyncio
async def test_apply_create(loaded_store: TreeStore):
    loaded_store.apply_create(TreeNode(name="m.md", path="work/m.md", kind=NodeKind.LEAF))
    loaded_store.apply_create(TreeNode(name="inbox", path="inbox", kind=NodeKind.CONTAINER))

    assert [c.name for c in loaded_store.find("work").children] == ["m.md", "plans.md", "todo.md"]
    assert loaded_store.find("inbox").children == []

    with pytest.raises(NodeAlreadyExistsError):
        loaded_store.apply_create(TreeNode(name="todo.md", path="work/todo.md", kind=NodeKind.LEAF))
    with pytest.raises(NodeNotFoundError):
        loaded_store.apply_create(TreeNode(name="x.md", path="nope/x.md", kind=NodeKind.LEAF))
    with pytest.raises(InvalidOperationError):
        loaded_store.apply_create(TreeNode(name="x.md", path="zebra.md/x.md", kind=NodeKind.LEAF))


@pytest.mark.asyncio
async def test_apply_rename_rewrites_descendants(loaded_store: TreeStore):
    new_path = loaded_store.apply_rename("notes", "journal")

    assert new_path == "journal"
    assert loaded_store.find("notes") is None
    assert loaded_store.find("journal/a").path == "journal/a"
    assert loaded_store.find("journal/a/b.md").path == "journal/a/b.md"

    with pytest.raises(NodeAlreadyExistsError):
        loaded_store.apply_rename("journal", "work")


@pytest.mark.asyncio
async def test_apply_move(loaded_store: TreeStore):
    new_path = loaded_store.apply_move("notes/a", "Archive")

    assert new_path == "Archive/a"
    assert loaded_store.find("Archive/a/b.md").path == "Archive/a/b.md"
    assert loaded_store.find("notes").children == []

    with pytest.raises(InvalidOperationError):
        loaded_store.apply_move("Archive", "Archive/a")
    with pytest.raises(InvalidOperationError):
        loaded_store.apply_move("work", "zebra.md")


@pytest.mark.asyncio
async def test_apply_delete(loaded_store: TreeStore):
    removed = loaded_store.apply_delete("notes")

    assert removed.path == "notes"
    assert removed.child("a").child("b.md") is not None
    assert not loaded_store.exists("notes")
    assert not loaded_store.exists("notes/a/b.md")
    assert loaded_store.count() == 5

    with pytest.raises(InvalidOperationError):
        loaded_store.apply_delete("")
    with pytest.raises(NodeNotFoundError):
        loaded_store.apply_delete("notes")


@pytest.mark.asyncio
async def test_patches_match_rebuild(loaded_store: TreeStore, file_service: FileService):
    """Physical operations plus patches give the same tree as one rebuild."""
    root = file_service.base_path

    (root / "notes" / "a").rename(root / "Archive" / "a")
    loaded_store.apply_move("notes/a", "Archive")

    (root / "work").rename(root / "Work Items")
    loaded_store.apply_rename("work", "Work Items")

    (root / "Work Items" / "ideas.md").write_text("")
    loaded_store.apply_create(
        TreeNode(name="ideas.md", path="Work Items/ideas.md", kind=NodeKind.LEAF)
    )

    (root / "zebra.md").unlink()
    loaded_store.apply_delete("zebra.md")

    patched = shape(loaded_store.snapshot())
    rebuilt = shape(await TreeStore(file_service).rebuild())

    assert patched == rebuilt


@pytest.mark.asyncio
@pytest.mark.parametrize("bad_name", ["a\\b.md", "   "])
async def test_rebuild_skips_names_that_are_not_addressable(
    tree_store: TreeStore, sample_notes: Path, bad_name: str
):
    (sample_notes / "work" / bad_name).write_text("")
    (sample_notes / bad_name).write_text("")

    tree = await tree_store.rebuild()

    assert tree_store.count() == 8
    assert [child.name for child in tree.children] == ["Archive", "notes", "work", "zebra.md"]
    assert [child.name for child in tree_store.find("work").children] == ["plans.md", "todo.md"]


@pytest.mark.asyncio
async def test_patch_on_folder_without_child_list_fails(loaded_store: TreeStore):
    loaded_store._find("Archive").children = None

    with pytest.raises(StorageFailureError):
        loaded_store.apply_create(TreeNode(name="x.md", path="Archive/x.md", kind=NodeKind.LEAF))

    assert loaded_store.stale

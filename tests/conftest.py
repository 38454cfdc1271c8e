"""Common test fixtures."""

import os
from pathlib import Path

import pytest
import pytest_asyncio

from notetree import config as config_module
from notetree.config import NoteTreeConfig
from notetree.services.file_service import FileService
from notetree.services.tree_store import TreeStore
from notetree.services.workspace_service import WorkspaceService


@pytest.fixture
def config_home(tmp_path, monkeypatch) -> Path:
    # Patch HOME environment variable for the duration of the test
    monkeypatch.setenv("HOME", str(tmp_path))
    # On Windows, also set USERPROFILE
    if os.name == "nt":
        monkeypatch.setenv("USERPROFILE", str(tmp_path))
    monkeypatch.setenv("NOTETREE_HOME", str(tmp_path / "notes"))
    monkeypatch.delenv("NOTETREE_CONFIG_DIR", raising=False)
    monkeypatch.delenv("NOTETREE_CLI_HOME", raising=False)
    # Invalidate config cache to ensure clean state for each test
    monkeypatch.setattr(config_module, "_CONFIG_CACHE", None)
    return tmp_path


@pytest.fixture
def app_config(config_home) -> NoteTreeConfig:
    return NoteTreeConfig(env="test", home=str(config_home / "notes"))


@pytest.fixture
def note_root(app_config) -> Path:
    return app_config.home_path.resolve()


@pytest.fixture
def sample_notes(note_root) -> Path:
    """Write a small set of notes.

    /
    ├── Archive/
    ├── notes/
    │   └── a/
    │       └── b.md
    ├── work/
    │   ├── plans.md
    │   └── todo.md
    └── zebra.md
    """
    (note_root / "Archive").mkdir()
    (note_root / "notes" / "a").mkdir(parents=True)
    (note_root / "notes" / "a" / "b.md").write_text("# b\n")
    (note_root / "work").mkdir()
    (note_root / "work" / "plans.md").write_text("# Plans\n")
    (note_root / "work" / "todo.md").write_text("- [ ] write tests\n")
    (note_root / "zebra.md").write_text("stripes\n")
    return note_root


@pytest.fixture
def file_service(note_root) -> FileService:
    return FileService(note_root)


@pytest.fixture
def tree_store(file_service) -> TreeStore:
    return TreeStore(file_service)


@pytest_asyncio.fixture
async def loaded_store(tree_store, sample_notes) -> TreeStore:
    await tree_store.rebuild()
    return tree_store


@pytest.fixture
def workspace_service(app_config) -> WorkspaceService:
    return WorkspaceService(app_config)

"""Storage collaborator for the note tree.

The core only talks to storage through the ``Storage`` protocol. ``FileService``
is the local filesystem implementation; every path it accepts is a canonical
relative path and is resolved under the root before any I/O happens.
"""

import asyncio
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import List, Protocol, Tuple

import aiofiles
import aiofiles.os
from loguru import logger

from notetree import paths
from notetree.schemas.tree import NodeKind


@dataclass(frozen=True)
class FileMetadata:
    """Timestamps for one storage entry, in epoch milliseconds."""

    modified_at: int
    created_at: int


class Storage(Protocol):
    """Byte-oriented hierarchical store used by the tree core."""

    async def list_children(self, path: str) -> List[Tuple[str, NodeKind]]: ...

    async def stat(self, path: str) -> FileMetadata: ...

    async def read_all(self, path: str) -> bytes: ...

    async def write_all(self, path: str, data: bytes, exclusive: bool = False) -> None: ...

    async def make_container(self, path: str, recursive: bool = False) -> None: ...

    async def rename(self, old_path: str, new_path: str) -> None: ...

    async def remove_recursive(self, path: str) -> None: ...

    async def exists(self, path: str) -> bool: ...

    async def is_container(self, path: str) -> bool: ...


def _to_millis(seconds: float) -> int:
    return int(seconds * 1000)


class FileService:
    """Local filesystem storage rooted at ``base_path``."""

    def __init__(self, base_path: Path):
        self.base_path = base_path.resolve()

    def full_path(self, path: str) -> Path:
        """Absolute location of a canonical path, guaranteed to stay under the root."""
        return paths.resolve(self.base_path, path)

    async def list_children(self, path: str) -> List[Tuple[str, NodeKind]]:
        """List direct children as (name, kind) pairs.

        Symlinks and special files are skipped so the tree never leaves the root.

        Raises:
            FileNotFoundError: If ``path`` does not exist
            NotADirectoryError: If ``path`` is a file
        """
        entries = await aiofiles.os.scandir(self.full_path(path))

        children: List[Tuple[str, NodeKind]] = []
        for entry in entries:
            if entry.is_dir(follow_symlinks=False):
                children.append((entry.name, NodeKind.CONTAINER))
            elif entry.is_file(follow_symlinks=False):
                children.append((entry.name, NodeKind.LEAF))
            else:
                logger.trace(f"Skipping non-regular entry: {entry.path}")
        return children

    async def stat(self, path: str) -> FileMetadata:
        stat_info = await aiofiles.os.stat(self.full_path(path))
        # st_birthtime only exists on macOS/BSD (and Windows on 3.12+)
        created = getattr(stat_info, "st_birthtime", None) or stat_info.st_ctime
        return FileMetadata(
            modified_at=_to_millis(stat_info.st_mtime),
            created_at=_to_millis(created),
        )

    async def read_all(self, path: str) -> bytes:
        """Read a file's bytes.

        Raises:
            FileNotFoundError: If the file is absent
        """
        async with aiofiles.open(self.full_path(path), mode="rb") as f:
            return await f.read()

    async def write_all(self, path: str, data: bytes, exclusive: bool = False) -> None:
        """Write ``data`` to a file, replacing it unless ``exclusive`` is set.

        Raises:
            FileExistsError: If ``exclusive`` and the file already exists
        """
        mode = "xb" if exclusive else "wb"
        async with aiofiles.open(self.full_path(path), mode=mode) as f:
            await f.write(data)
        logger.debug(f"Wrote file: path={path}, bytes={len(data)}")

    async def make_container(self, path: str, recursive: bool = False) -> None:
        full_path = self.full_path(path)
        if recursive:
            await aiofiles.os.makedirs(full_path, exist_ok=True)
        else:
            await aiofiles.os.mkdir(full_path)
        logger.debug(f"Created directory: path={path}, recursive={recursive}")

    async def rename(self, old_path: str, new_path: str) -> None:
        await aiofiles.os.rename(self.full_path(old_path), self.full_path(new_path))
        logger.debug(f"Renamed: {old_path} -> {new_path}")

    async def remove_recursive(self, path: str) -> None:
        """Remove a file or a whole directory tree. Absent entries are a no-op."""
        full_path = self.full_path(path)
        if full_path == self.base_path:
            raise PermissionError("Refusing to remove the note root")

        if await aiofiles.os.path.isdir(full_path) and not await aiofiles.os.path.islink(
            full_path
        ):
            await asyncio.to_thread(shutil.rmtree, full_path)
        else:
            try:
                await aiofiles.os.remove(full_path)
            except FileNotFoundError:
                logger.debug(f"Remove skipped, entry already absent: {path}")
                return
        logger.debug(f"Removed: {path}")

    async def exists(self, path: str) -> bool:
        return await aiofiles.os.path.exists(self.full_path(path))

    async def is_container(self, path: str) -> bool:
        return await aiofiles.os.path.isdir(self.full_path(path))

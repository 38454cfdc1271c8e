"""Canonical relative paths under a single note root.

A canonical path is a slash-joined sequence of validated segments with no
leading or trailing separator. The root itself is the empty string. Every
path is validated here before a node is built or an operation touches storage.
"""

import re
from pathlib import Path, PurePosixPath
from typing import Sequence, Union

from notetree.schemas.tree import NodeKind
from notetree.services.exceptions import InvalidPathError

SEPARATOR = "/"
DEFAULT_NOTE_EXTENSION = ".md"
ROOT_PATH = ""

_DRIVE_PATTERN = re.compile(r"^[A-Za-z]:")
_RESERVED_SEGMENTS = {".", ".."}

RawPath = Union[str, Sequence[str]]


def validate_name(name: str) -> str:
    """Validate a single path segment and return it unchanged.

    Raises:
        InvalidPathError: If the segment is empty, blank, a dot segment, or
            contains a separator or NUL character.
    """
    if not isinstance(name, str) or not name or not name.strip():
        raise InvalidPathError("Name must not be empty", path=name)
    if name in _RESERVED_SEGMENTS:
        raise InvalidPathError(f"Name must not be '{name}'", path=name)
    if SEPARATOR in name or "\\" in name:
        raise InvalidPathError(f"Name must not contain a path separator: {name}", path=name)
    if "\x00" in name:
        raise InvalidPathError("Name must not contain NUL characters", path=name)
    return name


def is_absolute(raw: str) -> bool:
    return raw.startswith(SEPARATOR) or raw.startswith("\\") or bool(_DRIVE_PATTERN.match(raw))


def normalize(raw: RawPath) -> str:
    """Canonicalize a raw path string or a sequence of segments.

    ``"a/b.md"`` and ``["a", "b.md"]`` both normalize to ``"a/b.md"``. The
    empty string (or an empty sequence) is the root path.

    Raises:
        InvalidPathError: On empty segments, separators inside segments,
            ``.``/``..`` segments or absolute forms.
    """
    if isinstance(raw, str):
        if raw == ROOT_PATH:
            return ROOT_PATH
        if is_absolute(raw):
            raise InvalidPathError(f"Path must be relative to the root: {raw}", path=raw)
        segments = raw.split(SEPARATOR)
    else:
        segments = list(raw)
        if segments and isinstance(segments[0], str) and is_absolute(segments[0]):
            raise InvalidPathError(
                f"Path must be relative to the root: {segments[0]}", path=segments[0]
            )

    for segment in segments:
        try:
            validate_name(segment)
        except InvalidPathError as e:
            joined = SEPARATOR.join(str(s) for s in segments)
            raise InvalidPathError(f"Invalid path '{joined}': {e.message}", path=joined) from e

    return SEPARATOR.join(segments)


def join(parent_path: str, name: str) -> str:
    """Compose the canonical path of ``name`` inside ``parent_path``."""
    validate_name(name)
    if parent_path == ROOT_PATH:
        return name
    return f"{parent_path}{SEPARATOR}{name}"


def split(path: str) -> list[str]:
    if path == ROOT_PATH:
        return []
    return path.split(SEPARATOR)


def parent_of(path: str) -> str:
    """Return the parent path (the root for top-level entries)."""
    head, _, _ = path.rpartition(SEPARATOR)
    return head


def name_of(path: str) -> str:
    return path.rpartition(SEPARATOR)[2]


def is_ancestor_of(ancestor: str, descendant: str) -> bool:
    """Check whether ``ancestor`` is a strict prefix of ``descendant`` at a segment boundary.

    ``is_ancestor_of("notes", "notes/a.md")`` is true while
    ``is_ancestor_of("notes", "notes-old/a.md")`` is not.
    """
    if ancestor == descendant:
        return False
    if ancestor == ROOT_PATH:
        return True
    return descendant.startswith(f"{ancestor}{SEPARATOR}")


def rebase(path: str, old_prefix: str, new_prefix: str) -> str:
    """Replace ``old_prefix`` with ``new_prefix`` at the start of ``path``."""
    if path == old_prefix:
        return new_prefix
    if not is_ancestor_of(old_prefix, path):
        raise InvalidPathError(f"{path} is not under {old_prefix}", path=path)
    remainder = path[len(old_prefix) + 1 :] if old_prefix else path
    return f"{new_prefix}{SEPARATOR}{remainder}" if new_prefix else remainder


def has_extension(name: str) -> bool:
    # PurePosixPath(".gitignore").suffix is "", so dot-files count as extensionless
    return bool(PurePosixPath(name).suffix)


def with_default_extension(
    path: str, kind: NodeKind, extension: str = DEFAULT_NOTE_EXTENSION
) -> str:
    """Append the note extension to leaf paths whose final segment has none."""
    if kind != NodeKind.LEAF or path == ROOT_PATH:
        return path
    if has_extension(name_of(path)):
        return path
    return f"{path}{extension}"


def resolve(root: Path, path: str) -> Path:
    """Return the absolute filesystem path for a canonical path under ``root``.

    Raises:
        InvalidPathError: If the resolved location is outside the root, for
            example through a symlink.
    """
    base = root.resolve()
    full_path = (base / path).resolve() if path else base
    if full_path != base and base not in full_path.parents:
        raise InvalidPathError(f"Path escapes the note root: {path}", path=path)
    return full_path

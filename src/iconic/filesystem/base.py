"""Filesystem capability interface shared by the scanner and the operation engine."""

from __future__ import annotations

import abc
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import List, Literal, Optional


@dataclass(frozen=True, slots=True)
class DirEntry:
    """A single child of a listed directory.

    Attributes:
        name: Entry name without any directory component.
        path: Root-relative POSIX path of the entry.
        kind: Either ``"file"`` or ``"directory"``.
        size: Byte size for files, ``0`` for directories.
        modified: Modification time in epoch milliseconds.
    """

    name: str
    path: str
    kind: Literal["file", "directory"]
    size: int = 0
    modified: int = 0


class FileSystemProvider(abc.ABC):
    """Asynchronous, root-scoped filesystem operations.

    Every path argument is a root-relative POSIX string; ``""`` denotes the
    root itself. Implementations raise :class:`OSError` subclasses on failure.
    """

    @property
    @abc.abstractmethod
    def root_name(self) -> str:
        """Human-readable name of the root folder."""

    @abc.abstractmethod
    async def list_dir(self, path: str = "") -> List[DirEntry]:
        """Return the direct children of ``path``."""

    @abc.abstractmethod
    async def stat(self, path: str) -> DirEntry:
        """Return metadata for ``path``."""

    @abc.abstractmethod
    async def exists(self, path: str) -> bool:
        """Return whether ``path`` exists."""

    @abc.abstractmethod
    async def read_bytes(self, path: str, limit: Optional[int] = None) -> bytes:
        """Read a file, or only its first ``limit`` bytes."""

    @abc.abstractmethod
    async def write_bytes(self, path: str, data: bytes) -> None:
        """Create or overwrite a file. The parent directory must exist."""

    @abc.abstractmethod
    async def delete_file(self, path: str) -> None:
        """Delete a single file."""

    @abc.abstractmethod
    async def make_dirs(self, path: str) -> None:
        """Create ``path`` and any missing parents; existing folders are fine."""

    @abc.abstractmethod
    async def remove_dir(self, path: str, *, recursive: bool = False) -> None:
        """Remove a directory, optionally with everything inside it."""

    async def copy_file(self, source: str, destination: str) -> None:
        """Copy ``source`` to ``destination``, overwriting it."""
        await self.write_bytes(destination, await self.read_bytes(source))


def join(*parts: str) -> str:
    """Join root-relative path fragments, ignoring empty ones."""
    cleaned = [part.strip("/") for part in parts if part and part.strip("/")]
    return "/".join(cleaned)


def parent_of(path: str) -> str:
    """Return the root-relative parent folder of ``path`` (``""`` for top level)."""
    parent = str(PurePosixPath(path).parent)
    return "" if parent == "." else parent


def split_name(filename: str) -> tuple[str, str]:
    """Split ``filename`` into base name and extension (extension keeps its dot)."""
    dot = filename.rfind(".")
    if dot <= 0:
        return filename, ""
    return filename[:dot], filename[dot:]


__all__ = ["DirEntry", "FileSystemProvider", "join", "parent_of", "split_name"]

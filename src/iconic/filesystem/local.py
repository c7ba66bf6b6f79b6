"""Local-disk implementation of the filesystem provider."""

from __future__ import annotations

import asyncio
import os
import shutil
from pathlib import Path
from typing import List, Optional

from .base import DirEntry, FileSystemProvider, join


class LocalFileSystem(FileSystemProvider):
    """Provider backed by a directory on the local disk.

    Blocking calls run in worker threads so the event loop stays responsive.
    """

    def __init__(self, root: Path) -> None:
        self._root = root.expanduser().resolve()

    @property
    def root(self) -> Path:
        """Absolute path of the managed folder."""
        return self._root

    @property
    def root_name(self) -> str:
        return self._root.name

    def resolve(self, path: str) -> Path:
        """Return the absolute path for a root-relative ``path``.

        Raises:
            PermissionError: If the path escapes the root folder.
        """
        candidate = (self._root / path).resolve() if path else self._root
        if candidate != self._root and self._root not in candidate.parents:
            raise PermissionError(f"Path {path!r} is outside {self._root}")
        return candidate

    async def list_dir(self, path: str = "") -> List[DirEntry]:
        return await asyncio.to_thread(self._list_dir, path)

    async def stat(self, path: str) -> DirEntry:
        return await asyncio.to_thread(self._stat, path)

    async def exists(self, path: str) -> bool:
        return await asyncio.to_thread(self.resolve(path).exists)

    async def read_bytes(self, path: str, limit: Optional[int] = None) -> bytes:
        return await asyncio.to_thread(self._read, path, limit)

    async def write_bytes(self, path: str, data: bytes) -> None:
        await asyncio.to_thread(self.resolve(path).write_bytes, data)

    async def copy_file(self, source: str, destination: str) -> None:
        await asyncio.to_thread(shutil.copy2, self.resolve(source), self.resolve(destination))

    async def delete_file(self, path: str) -> None:
        await asyncio.to_thread(self.resolve(path).unlink)

    async def make_dirs(self, path: str) -> None:
        await asyncio.to_thread(self.resolve(path).mkdir, parents=True, exist_ok=True)

    async def remove_dir(self, path: str, *, recursive: bool = False) -> None:
        target = self.resolve(path)
        if target == self._root:
            raise PermissionError("Refusing to remove the library root.")
        if recursive:
            await asyncio.to_thread(shutil.rmtree, target)
        else:
            await asyncio.to_thread(target.rmdir)

    def _list_dir(self, path: str) -> List[DirEntry]:
        directory = self.resolve(path)
        entries: List[DirEntry] = []
        with os.scandir(directory) as iterator:
            for item in sorted(iterator, key=lambda entry: entry.name):
                if item.is_symlink():
                    continue
                relative = join(path, item.name)
                if item.is_dir():
                    entries.append(DirEntry(name=item.name, path=relative, kind="directory"))
                elif item.is_file():
                    info = item.stat()
                    entries.append(
                        DirEntry(
                            name=item.name,
                            path=relative,
                            kind="file",
                            size=info.st_size,
                            modified=int(info.st_mtime * 1000),
                        )
                    )
        return entries

    def _stat(self, path: str) -> DirEntry:
        target = self.resolve(path)
        info = target.stat()
        kind = "directory" if target.is_dir() else "file"
        return DirEntry(
            name=target.name,
            path=path,
            kind=kind,
            size=info.st_size if kind == "file" else 0,
            modified=int(info.st_mtime * 1000),
        )

    def _read(self, path: str, limit: Optional[int]) -> bytes:
        with self.resolve(path).open("rb") as handle:
            return handle.read() if limit is None else handle.read(limit)


__all__ = ["LocalFileSystem"]

"""Recursive file discovery."""

from __future__ import annotations

import logging
from typing import Iterable, List

from iconic.filesystem import FileSystemProvider

from .models import ScannedFile

LOGGER = logging.getLogger(__name__)

STATE_FILENAME = ".iconic-state.json"
UNDO_FILENAME = ".iconic-undo.json"
RESERVED_ROOT_FILES = frozenset({STATE_FILENAME, UNDO_FILENAME})


class FileScanner:
    """Walk a library root and return every file below it."""

    def __init__(self, provider: FileSystemProvider, *, reserved: Iterable[str] = RESERVED_ROOT_FILES):
        self.provider = provider
        self.reserved = frozenset(reserved)

    async def scan(self) -> List[ScannedFile]:
        """Return a flat list of files; unreadable folders are skipped with a warning."""
        files: List[ScannedFile] = []
        await self._walk("", files)
        return files

    async def _walk(self, directory: str, files: List[ScannedFile]) -> None:
        try:
            entries = await self.provider.list_dir(directory)
        except OSError as exc:
            LOGGER.warning("Skipping unreadable directory %r: %s", directory or "/", exc)
            return

        for entry in entries:
            if entry.kind == "directory":
                await self._walk(entry.path, files)
                continue
            if not directory and entry.name in self.reserved:
                continue
            files.append(
                ScannedFile(
                    path=entry.path,
                    name=entry.name,
                    parent=directory,
                    size=entry.size,
                    modified=entry.modified,
                )
            )


__all__ = ["FileScanner", "STATE_FILENAME", "UNDO_FILENAME", "RESERVED_ROOT_FILES"]

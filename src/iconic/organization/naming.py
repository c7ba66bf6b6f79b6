"""Collision-free file naming inside a destination folder."""

from __future__ import annotations

from typing import AbstractSet, Iterable

from iconic.filesystem import FileSystemProvider, join, split_name
from iconic.state.models import now_ms

MAX_NAME_ATTEMPTS = 1000


async def unique_filename(
    provider: FileSystemProvider,
    directory: str,
    filename: str,
    *,
    planned: AbstractSet[str] = frozenset(),
    max_attempts: int = MAX_NAME_ATTEMPTS,
    siblings: Iterable[str] = (),
) -> str:
    """Return a name for ``filename`` that is free inside ``directory``.

    The name itself is used when free, then ``base_2.ext``, ``base_3.ext`` and so
    on. Once ``max_attempts`` is reached the name falls back to
    ``base_<epoch-ms>.ext``.

    Args:
        provider: Filesystem provider used to check for existing files.
        directory: Root-relative destination folder.
        filename: Desired file name.
        planned: Root-relative paths already claimed by earlier steps of the
            same operation (used when nothing is written, as in a dry run).
        max_attempts: Upper bound of the numbered suffix.
        siblings: Extensions of side files that will share the chosen base
            name; a base is free only when every one of them is free too.

    Returns:
        str: The chosen file name, without the directory.
    """

    base, extension = split_name(filename)
    extensions = [extension, *(ext for ext in siblings if ext != extension)]

    async def taken(stem: str) -> bool:
        for ext in extensions:
            path = join(directory, f"{stem}{ext}")
            if path in planned or await provider.exists(path):
                return True
        return False

    if not await taken(base):
        return filename

    for counter in range(2, max_attempts):
        candidate = f"{base}_{counter}"
        if not await taken(candidate):
            return f"{candidate}{extension}"
    return f"{base}_{now_ms()}{extension}"


__all__ = ["MAX_NAME_ATTEMPTS", "unique_filename"]

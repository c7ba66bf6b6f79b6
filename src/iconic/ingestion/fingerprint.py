"""Cheap content fingerprints and normalized bundle identities."""

from __future__ import annotations

import asyncio
import logging
import re
from typing import TYPE_CHECKING, Callable, List, Optional, Sequence

if TYPE_CHECKING:
    from iconic.filesystem import FileSystemProvider

    from .models import Bundle

LOGGER = logging.getLogger(__name__)

EMPTY_FINGERPRINT = "empty"
READ_ERROR_FINGERPRINT = "read-error-0"
SENTINEL_FINGERPRINTS = frozenset({EMPTY_FINGERPRINT, READ_ERROR_FINGERPRINT})

PREFIX_BYTES = 4096
_SEED = 5381
_MASK = 0xFFFFFFFF

_COPY_SUFFIX = re.compile(r"(\s*\(\d+\)$)|(_\d+$)|(\s+copy$)", re.IGNORECASE)
_PLATFORM_TOKEN = re.compile(r"[_\-\s]?(x64|x86|vst[23]?|\d{1,2}bit)", re.IGNORECASE)
_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]")


def normalize_identity(name: str) -> str:
    """Return the canonical identity key for a bundle name.

    ``"Serum (2)"``, ``"Serum_x64"`` and ``"serum copy"`` all map to ``"serum"``.
    """
    key = _COPY_SUFFIX.sub("", name)
    key = _PLATFORM_TOKEN.sub("", key)
    key = _NON_ALNUM.sub("", key).lower()
    # Removing separators can glue a new token together ("x-64" -> "x64").
    while True:
        stripped = _PLATFORM_TOKEN.sub("", key)
        if stripped == key:
            return key
        key = stripped


def rolling_hash(data: bytes) -> int:
    """Return the 32-bit ``hash * 33 + byte`` hash of ``data``."""
    value = _SEED
    for byte in data:
        value = (value * 33 + byte) & _MASK
    return value


async def quick_fingerprint(provider: "FileSystemProvider", path: str, size: int) -> str:
    """Fingerprint a file from its size and the first 4 KiB of content."""
    if size == 0:
        return EMPTY_FINGERPRINT
    try:
        prefix = await provider.read_bytes(path, limit=PREFIX_BYTES)
    except OSError as exc:
        LOGGER.warning("Could not read %s for fingerprinting: %s", path, exc)
        return READ_ERROR_FINGERPRINT
    return f"{size}-{rolling_hash(prefix)}"


async def fingerprint_bundles(
    provider: "FileSystemProvider",
    bundles: Sequence["Bundle"],
    *,
    chunk_size: int = 20,
    on_progress: Optional[Callable[[int, int], None]] = None,
) -> List["Bundle"]:
    """Return copies of ``bundles`` with ``content_hash`` filled in.

    Reads inside a chunk run concurrently; each chunk completes before the next
    starts. Output order matches input order.
    """
    total = len(bundles)
    processed: List["Bundle"] = []
    for start in range(0, total, chunk_size):
        chunk = bundles[start : start + chunk_size]
        hashes = await asyncio.gather(
            *(quick_fingerprint(provider, bundle.path, bundle.file_size) for bundle in chunk)
        )
        processed.extend(
            bundle.evolve(content_hash=value) for bundle, value in zip(chunk, hashes)
        )
        if on_progress is not None:
            on_progress(len(processed), total)
    return processed


__all__ = [
    "EMPTY_FINGERPRINT",
    "READ_ERROR_FINGERPRINT",
    "SENTINEL_FINGERPRINTS",
    "normalize_identity",
    "rolling_hash",
    "quick_fingerprint",
    "fingerprint_bundles",
]

"""Shared fixtures and fakes for the Iconic test-suite."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

import pytest

from iconic.classification import OracleError


class FakeOracle:
    """Scripted classification backend.

    ``answers`` maps a bundle name to its tags. Names missing from it are left
    unclassified on the strict pass; ``relaxed_answers`` is consulted on the
    relaxed retry pass.
    """

    def __init__(
        self,
        answers: Optional[Dict[str, List[str]]] = None,
        *,
        relaxed_answers: Optional[Dict[str, List[str]]] = None,
        fail_batches: Sequence[int] = (),
        suggestions: Optional[List[str]] = None,
        on_call: Optional[Callable[[int], None]] = None,
    ) -> None:
        self.answers = answers or {}
        self.relaxed_answers = relaxed_answers or {}
        self.fail_batches = set(fail_batches)
        self.suggestions = suggestions
        self.on_call = on_call
        self.calls: List[dict] = []

    async def categorize(self, names, categories, *, multi_tag, relaxed):
        index = len(self.calls)
        self.calls.append(
            {"names": list(names), "multi_tag": multi_tag, "relaxed": relaxed}
        )
        if self.on_call is not None:
            self.on_call(index)
        if index in self.fail_batches:
            raise OracleError("backend unavailable")
        source = self.relaxed_answers if relaxed else self.answers
        return {name: list(source[name]) for name in names if name in source}

    async def suggest_categories(self, sample_names, categories):
        self.calls.append({"names": list(sample_names), "suggest": True})
        return list(self.suggestions or categories)


class RecordingSleep:
    """Awaitable replacement for ``asyncio.sleep`` that returns immediately."""

    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def write_file(root: Path, relative: str, content: bytes = b"data", *, mtime: Optional[float] = None) -> Path:
    """Create ``relative`` below ``root`` with ``content``.

    Args:
        root: Library folder.
        relative: POSIX path of the file inside ``root``.
        content: File contents.
        mtime: Optional modification time (epoch seconds).

    Returns:
        Path: The written file.
    """
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path


def relative_files(root: Path) -> List[str]:
    """Return every file below ``root`` as sorted POSIX paths."""
    return sorted(path.relative_to(root).as_posix() for path in root.rglob("*") if path.is_file())


@pytest.fixture
def library_root(tmp_path: Path) -> Path:
    root = tmp_path / "presets"
    root.mkdir()
    return root


@pytest.fixture
def no_sleep() -> RecordingSleep:
    return RecordingSleep()

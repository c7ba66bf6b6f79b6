"""State repository tests."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest

from iconic.filesystem import LocalFileSystem
from iconic.state import (
    LearnedRule,
    MissingStateError,
    MoveRecord,
    PersistedBundle,
    PersistedState,
    StateError,
    StateRepository,
    UndoManifest,
)


def _state() -> PersistedState:
    """Return a sample working-set snapshot.

    Returns:
        PersistedState: Snapshot with one bundle and one learned rule.
    """
    return PersistedState(
        categories=["Synth", "Bass"],
        plugins=[PersistedBundle(id="Serum.fst", name="Serum", tags=["Synth"], category="Synth")],
        manual_overrides={"serum": LearnedRule(tags=["Synth"], count=2)},
    )


def test_save_and_load_round_trip(tmp_path: Path) -> None:
    """Ensure save followed by load returns the same snapshot.

    Args:
        tmp_path: Temporary directory provided by pytest.
    """
    repo = StateRepository(LocalFileSystem(tmp_path))

    asyncio.run(repo.save_state(_state()))
    loaded = asyncio.run(repo.load_state())

    assert loaded.categories == ["Synth", "Bass"]
    assert loaded.plugins[0].tags == ["Synth"]
    assert loaded.manual_overrides["serum"].count == 2
    assert loaded.timestamp > 0


def test_state_file_uses_camel_case_keys(tmp_path: Path) -> None:
    repo = StateRepository(LocalFileSystem(tmp_path))

    asyncio.run(repo.save_state(_state()))

    data = json.loads((tmp_path / ".iconic-state.json").read_text(encoding="utf-8"))
    assert set(data) == {"timestamp", "categories", "plugins", "manualOverrides"}
    assert data["plugins"][0]["isDuplicate"] is None
    assert data["manualOverrides"]["serum"] == {"tags": ["Synth"], "count": 2}


def test_legacy_rule_lists_are_migrated(tmp_path: Path) -> None:
    """Ensure rules stored as bare tag lists load with a count of one.

    Args:
        tmp_path: Temporary directory provided by pytest.
    """
    payload = {
        "timestamp": 1,
        "categories": ["Synth"],
        "plugins": [{"id": "a.fst", "name": "a", "tags": ["Synth"], "category": "Synth"}],
        "manualOverrides": {"serum": ["Synth", "Bass"]},
    }
    (tmp_path / ".iconic-state.json").write_text(json.dumps(payload), encoding="utf-8")

    loaded = asyncio.run(StateRepository(LocalFileSystem(tmp_path)).load_state())

    assert loaded.manual_overrides["serum"] == LearnedRule(tags=["Synth", "Bass"], count=1)
    assert loaded.plugins[0].is_duplicate is None


def test_load_missing_state_raises(tmp_path: Path) -> None:
    repo = StateRepository(LocalFileSystem(tmp_path))

    with pytest.raises(MissingStateError):
        asyncio.run(repo.load_state())


def test_corrupt_state_raises_state_error(tmp_path: Path) -> None:
    (tmp_path / ".iconic-state.json").write_text("{not json", encoding="utf-8")
    repo = StateRepository(LocalFileSystem(tmp_path))

    with pytest.raises(StateError):
        asyncio.run(repo.load_state())


def test_manifest_lifecycle(tmp_path: Path) -> None:
    """Ensure the undo manifest can be saved, detected, loaded and deleted.

    Args:
        tmp_path: Temporary directory provided by pytest.
    """
    repo = StateRepository(LocalFileSystem(tmp_path))
    manifest = UndoManifest(
        moves=[MoveRecord(filename="Serum.fst", original_path="Serum.fst", new_path="Synth/Serum.fst")]
    )

    assert asyncio.run(repo.has_manifest()) is False
    asyncio.run(repo.save_manifest(manifest))
    assert asyncio.run(repo.has_manifest()) is True

    raw = json.loads((tmp_path / ".iconic-undo.json").read_text(encoding="utf-8"))
    assert raw["moves"][0] == {
        "filename": "Serum.fst",
        "originalPath": "Serum.fst",
        "newPath": "Synth/Serum.fst",
    }

    loaded = asyncio.run(repo.load_manifest())
    assert loaded.moves[0].new_path == "Synth/Serum.fst"

    asyncio.run(repo.delete_manifest())
    assert not (tmp_path / ".iconic-undo.json").exists()
    # Deleting twice is harmless.
    asyncio.run(repo.delete_manifest())

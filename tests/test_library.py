"""Library controller tests: restore, edits, learning, analysis and relocation."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest
from conftest import FakeOracle, RecordingSleep, relative_files, write_file

from iconic.classification import MissingCredentialError
from iconic.config import IconicConfig, resolve_with_precedence
from iconic.ingestion import BundleStatus
from iconic.library import (
    AutoSaver,
    BundleNameError,
    CategoryError,
    Library,
    UnknownBundleError,
    ValidationError,
)
from iconic.organization import MissingManifestError


def _config(**overrides) -> IconicConfig:
    base = {"categories.defaults": ["Synth", "Bass", "Mastering"], "analysis.cooldown_seconds": 0}
    base.update(overrides)
    return resolve_with_precedence(defaults=IconicConfig(), cli_overrides=base)


def _populate(root: Path) -> None:
    write_file(root, "Serum.fst", b"serum")
    write_file(root, "Serum.png", b"img")
    write_file(root, "Vital.fst", b"vital")
    write_file(root, "Pro-Q 3.fst", b"proq")
    write_file(root, "notes.txt", b"text")


def _open(root: Path, config: IconicConfig | None = None, **kwargs) -> Library:
    library = Library(root, config or _config(), sleep=RecordingSleep(), **kwargs)
    asyncio.run(library.open())
    return library


def test_open_scans_and_flags_duplicates(library_root: Path) -> None:
    _populate(library_root)
    write_file(library_root, "Old/Serum (2).fst", b"serum", mtime=1_000_000)

    library = _open(library_root)

    names = sorted((bundle.name, bundle.is_duplicate) for bundle in library.collection)
    assert names == [("Pro-Q 3", False), ("Serum", False), ("Serum (2)", True), ("Vital", False)]
    assert [leftover.name for leftover in library.leftovers] == ["notes.txt"]
    status = asyncio.run(library.status())
    assert (status.bundles, status.duplicates, status.leftovers) == (4, 1, 1)
    assert status.by_category == {"Uncategorized": 4}
    assert status.undo_available is False


def test_tags_and_rules_survive_a_reopen(library_root: Path) -> None:
    _populate(library_root)
    library = _open(library_root)
    serum = library.resolve(["Serum"])[0]

    library.quick_tag([serum.id], "synth")
    library.toggle_tag([serum.id], "Bass")
    asyncio.run(library.flush())

    data = json.loads((library_root / ".iconic-state.json").read_text(encoding="utf-8"))
    assert data["manualOverrides"]["serum"] == {"tags": ["Bass", "Synth"], "count": 1}

    reopened = _open(library_root)
    restored = reopened.resolve(["Serum"])[0]
    assert restored.tags == ["Bass", "Synth"]
    assert restored.category == "Bass"
    assert restored.status is BundleStatus.CATEGORIZED
    assert reopened.memory.lookup("Serum").tags == ["Bass", "Synth"]


def test_legacy_state_is_migrated_on_open(library_root: Path) -> None:
    _populate(library_root)
    legacy = {
        "timestamp": 1,
        "categories": ["Synth", "Bad/Name", "Bass"],
        "plugins": [{"id": "x", "name": "Vital", "tags": ["Synth"], "category": "Synth"}],
        "manualOverrides": {"vital": ["Synth"]},
    }
    (library_root / ".iconic-state.json").write_text(json.dumps(legacy), encoding="utf-8")

    library = _open(library_root)

    assert library.categories.to_list() == ["Synth", "Bass"]
    assert library.resolve(["Vital"])[0].tags == ["Synth"]
    assert library.memory.lookup("Vital").count == 1


def test_corrupt_state_is_ignored(library_root: Path) -> None:
    _populate(library_root)
    (library_root / ".iconic-state.json").write_text("{oops", encoding="utf-8")

    library = _open(library_root)

    assert len(library.collection) == 3
    assert library.categories.to_list() == ["Synth", "Bass", "Mastering"]


def test_repeated_corrections_skip_the_oracle(library_root: Path) -> None:
    _populate(library_root)
    oracle = FakeOracle({"Vital": ["Synth"], "Pro-Q 3": ["Mastering"]})
    library = _open(library_root, oracle=oracle)
    serum = library.resolve(["Serum"])[0]
    library.set_tags([serum.id], ["Bass"])
    library.set_tags([serum.id], [])
    library.set_tags([serum.id], ["Bass"])
    library.set_tags([serum.id], ["Bass"])
    # Start from an untagged Serum; the learned rule alone must tag it.
    library.collection.replace([library.resolve(["Serum"])[0].evolve(tags=[], category=None)])

    report = asyncio.run(library.analyze())

    assert report.memory_hits == 1
    assert [call["names"] for call in oracle.calls] == [["Pro-Q 3", "Vital"]]
    assert library.resolve(["Serum"])[0].tags == ["Bass"]
    assert library.resolve(["Pro-Q 3"])[0].category == "Mastering"


def test_rename_category_cascades_and_learns(library_root: Path) -> None:
    _populate(library_root)
    library = _open(library_root)
    serum = library.resolve(["Serum"])[0]
    library.set_tags([serum.id], ["Synth", "Bass"])

    renamed = library.rename_category("synth", "Lead")

    assert renamed == "Lead"
    assert library.categories.to_list() == ["Lead", "Bass", "Mastering"]
    updated = library.resolve(["Serum"])[0]
    assert updated.tags == ["Lead", "Bass"]
    assert updated.category == "Lead"
    assert library.memory.lookup("Serum").tags == ["Lead", "Bass"]


def test_invalid_input_is_rejected_without_changes(library_root: Path) -> None:
    _populate(library_root)
    library = _open(library_root)
    serum = library.resolve(["Serum"])[0]

    with pytest.raises(CategoryError):
        library.add_category("  ")
    with pytest.raises(CategoryError):
        library.add_category("BASS")
    with pytest.raises(CategoryError):
        library.add_category("FX: Reverb")
    with pytest.raises(CategoryError):
        library.rename_category("Synth", "bass")
    with pytest.raises(BundleNameError):
        library.rename_bundle(serum.id, "Serum/2")
    with pytest.raises(ValidationError):
        library.quick_tag([serum.id], "Unknown")
    with pytest.raises(UnknownBundleError):
        library.resolve(["Nope"])

    assert library.categories.to_list() == ["Synth", "Bass", "Mastering"]
    assert library.resolve(["Serum"])[0] == serum


def test_removing_categories_strips_tags(library_root: Path) -> None:
    _populate(library_root)
    library = _open(library_root)
    serum = library.resolve(["Serum"])[0]
    vital = library.resolve(["Vital"])[0]
    library.set_tags([serum.id], ["Synth", "Bass"])
    library.set_tags([vital.id], ["Bass"])

    library.remove_category("Synth")
    assert library.resolve(["Serum"])[0].tags == ["Bass"]

    library.apply_profile("orchestral")
    assert library.categories.to_list()[0] == "Strings"
    assert all(not bundle.tags for bundle in library.collection)
    assert library.resolve(["Vital"])[0].status is BundleStatus.PENDING

    with pytest.raises(CategoryError):
        library.apply_profile("missing")


def test_suggest_categories_can_apply(library_root: Path) -> None:
    _populate(library_root)
    suggester = FakeOracle(suggestions=["Synth", "Equalizer"])
    library = _open(library_root, suggester=suggester)

    preview = asyncio.run(library.suggest_categories())
    assert preview == ["Synth", "Equalizer"]
    assert library.categories.to_list() == ["Synth", "Bass", "Mastering"]

    asyncio.run(library.suggest_categories(apply=True))
    assert library.categories.to_list() == ["Synth", "Equalizer"]


def test_analysis_requires_a_credential(library_root: Path) -> None:
    _populate(library_root)
    library = _open(library_root)

    with pytest.raises(MissingCredentialError):
        asyncio.run(library.analyze())


def test_organize_rescan_and_undo(library_root: Path) -> None:
    _populate(library_root)
    library = _open(library_root, _config(**{"organization.multi_tag": False}))
    serum = library.resolve(["Serum"])[0]
    library.set_tags([serum.id], ["Synth", "Bass"])

    async def organize():
        await library.organize()
        await library.flush()

    asyncio.run(organize())

    assert relative_files(library_root) == [
        ".iconic-state.json",
        ".iconic-undo.json",
        "Synth/Serum.fst",
        "Synth/Serum.png",
        "Uncategorized/Pro-Q 3.fst",
        "Uncategorized/Vital.fst",
        "_Unused_Assets/notes.txt",
    ]
    moved = library.resolve(["Serum"])[0]
    assert moved.path == "Synth/Serum.fst"
    assert moved.tags == ["Synth", "Bass"]
    assert moved.status is BundleStatus.MOVED
    assert asyncio.run(library.has_undo())

    # Organizing again is a no-op.
    again = asyncio.run(library.organize())
    assert again.moved == 0 and again.manifest.moves == []

    asyncio.run(library.undo())
    assert "Serum.fst" in relative_files(library_root)
    assert library.resolve(["Serum"])[0].path == "Serum.fst"
    with pytest.raises(MissingManifestError):
        asyncio.run(library.undo())


def test_renamed_bundle_is_applied_on_organize(library_root: Path) -> None:
    write_file(library_root, "serum_v2_final.fst", b"serum")
    library = _open(library_root)
    bundle = library.collection.values()[0]
    library.rename_bundle(bundle.id, "Serum")
    library.quick_tag([bundle.id], "Synth")

    asyncio.run(library.organize())

    files = [name for name in relative_files(library_root) if name != ".iconic-state.json"]
    assert files == [".iconic-undo.json", "Synth/Serum.fst"]


def test_duplicate_flag_survives_reopen(library_root: Path) -> None:
    _populate(library_root)
    library = _open(library_root)
    vital = library.resolve(["Vital"])[0]

    library.toggle_duplicate(vital.id)
    asyncio.run(library.flush())

    reopened = _open(library_root)
    assert reopened.resolve(["Vital"])[0].is_duplicate is True


def test_autosave_coalesces_bursts() -> None:
    saves = []

    async def save():
        saves.append(1)

    async def short_sleep(delay):
        await asyncio.sleep(0)

    async def scenario():
        saver = AutoSaver(save, delay=5, sleep=short_sleep)
        for _ in range(5):
            saver.schedule()
        assert saver.dirty
        for _ in range(5):
            await asyncio.sleep(0)
        return saver

    saver = asyncio.run(scenario())

    assert len(saves) == 1
    assert saver.saves == 1
    assert not saver.dirty


def test_autosave_outside_loop_waits_for_flush() -> None:
    saves = []

    async def save():
        saves.append(1)

    saver = AutoSaver(save)
    saver.schedule()
    assert saves == [] and saver.dirty

    asyncio.run(saver.flush())
    assert saves == [1]
    asyncio.run(saver.flush())
    assert saves == [1]


def test_empty_library_does_not_write_state(library_root: Path) -> None:
    library = _open(library_root)

    asyncio.run(library.flush())

    assert not (library_root / ".iconic-state.json").exists()


def test_duplicate_flag_is_not_inherited_by_a_moved_namesake(library_root: Path) -> None:
    write_file(library_root, "A/Serum.fst", b"serum", mtime=1_000_000)
    write_file(library_root, "B/Serum.fst", b"serum")
    library = _open(library_root)
    asyncio.run(library.save())
    saved = json.loads((library_root / ".iconic-state.json").read_text(encoding="utf-8"))
    assert {entry["id"]: entry["isDuplicate"] for entry in saved["plugins"]} == {
        "A/Serum.fst": True,
        "B/Serum.fst": False,
    }

    # Outside the tool: the old copy is deleted and the survivor moves folders.
    (library_root / "A" / "Serum.fst").unlink()
    (library_root / "Keep").mkdir()
    (library_root / "B" / "Serum.fst").rename(library_root / "Keep" / "Serum.fst")

    reopened = _open(library_root)
    assert [(b.id, b.is_duplicate) for b in reopened.collection] == [("Keep/Serum.fst", False)]

    summary = asyncio.run(reopened.organize())
    assert summary.deleted_duplicates == 0
    assert (library_root / "Uncategorized" / "Serum.fst").read_bytes() == b"serum"

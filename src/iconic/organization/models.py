"""Result models for duplicate resolution and relocation."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from iconic.state.models import UndoManifest


class DuplicatePatch(BaseModel):
    """Duplicate-resolution outcome for one bundle.

    Attributes:
        id: Identifier of the affected bundle.
        is_duplicate: New duplicate flag.
        name: Replacement display name for a renamed survivor, otherwise ``None``.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    is_duplicate: bool
    name: Optional[str] = None


class OperationSummary(BaseModel):
    """Counts and details reported by organize, flatten and revert.

    Attributes:
        operation: Name of the operation that produced the summary.
        dry_run: Whether the filesystem was left untouched.
        moved: Bundles whose source files were relocated.
        copies: Main-file copies written (one per destination).
        deleted_duplicates: Duplicate bundles deleted from disk.
        leftovers_relocated: Non-bundle files moved to the unused-assets folder.
        restored: Files copied back by a revert.
        skipped: Items left where they were.
        failures: Human-readable descriptions of per-file failures.
        pruned: Directories removed by the empty-directory sweep.
        manifest: Undo manifest written, or the would-be manifest for a dry run.
    """

    operation: str
    dry_run: bool = False
    moved: int = 0
    copies: int = 0
    deleted_duplicates: int = 0
    leftovers_relocated: int = 0
    restored: int = 0
    skipped: int = 0
    failures: List[str] = Field(default_factory=list)
    pruned: List[str] = Field(default_factory=list)
    manifest: UndoManifest = Field(default_factory=UndoManifest)


__all__ = ["DuplicatePatch", "OperationSummary"]

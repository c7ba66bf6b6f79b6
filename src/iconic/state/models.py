"""Persisted sidecar formats for a managed library folder."""

from __future__ import annotations

import time
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def now_ms() -> int:
    """Current time in epoch milliseconds."""
    return int(time.time() * 1000)


class SidecarModel(BaseModel):
    """Base for models stored as camelCase JSON next to the library."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class LearnedRule(SidecarModel):
    """Tags a user repeatedly applied to one normalized bundle name.

    Attributes:
        tags: Tags to apply, primary first.
        count: How many times this exact tag set was applied in a row.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    tags: List[str] = Field(default_factory=list)
    count: int = 1


class PersistedBundle(SidecarModel):
    """Per-bundle snapshot restored onto freshly scanned bundles by name."""

    id: str
    name: str
    tags: List[str] = Field(default_factory=list)
    category: Optional[str] = None
    is_duplicate: Optional[bool] = Field(default=None, alias="isDuplicate")


class PersistedState(SidecarModel):
    """Contents of ``.iconic-state.json``."""

    timestamp: int = Field(default_factory=now_ms)
    categories: List[str] = Field(default_factory=list)
    plugins: List[PersistedBundle] = Field(default_factory=list)
    manual_overrides: Dict[str, LearnedRule] = Field(
        default_factory=dict, alias="manualOverrides"
    )

    @field_validator("manual_overrides", mode="before")
    @classmethod
    def _migrate_legacy_rules(cls, value):
        # Older files stored a bare tag list per key.
        if not isinstance(value, dict):
            return {}
        return {
            key: {"tags": rule, "count": 1} if isinstance(rule, list) else rule
            for key, rule in value.items()
        }


class MoveRecord(SidecarModel):
    """One relocated file.

    Attributes:
        filename: Name of the file before it was moved.
        original_path: Root-relative path before the move.
        new_path: Root-relative path after the move.
    """

    filename: str
    original_path: str = Field(alias="originalPath")
    new_path: str = Field(alias="newPath")


class UndoManifest(SidecarModel):
    """Contents of ``.iconic-undo.json``; describes the last relocation."""

    timestamp: int = Field(default_factory=now_ms)
    moves: List[MoveRecord] = Field(default_factory=list)


__all__ = [
    "LearnedRule",
    "MoveRecord",
    "PersistedBundle",
    "PersistedState",
    "UndoManifest",
    "now_ms",
]

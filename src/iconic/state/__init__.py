"""Sidecar persistence for a managed library folder."""

from __future__ import annotations

import json

from pydantic import BaseModel, ValidationError

from iconic.filesystem import FileSystemProvider
from iconic.ingestion.discovery import STATE_FILENAME, UNDO_FILENAME

from .errors import MissingStateError, StateError
from .models import (
    LearnedRule,
    MoveRecord,
    PersistedBundle,
    PersistedState,
    UndoManifest,
    now_ms,
)


class StateRepository:
    """Read and write ``.iconic-state.json`` and ``.iconic-undo.json`` at the library root."""

    def __init__(
        self,
        provider: FileSystemProvider,
        *,
        state_filename: str = STATE_FILENAME,
        undo_filename: str = UNDO_FILENAME,
    ) -> None:
        """Bind the repository to a library root.

        Args:
            provider: Filesystem provider rooted at the library folder.
            state_filename: Name of the working-set snapshot file.
            undo_filename: Name of the undo manifest file.
        """
        self._provider = provider
        self._state_filename = state_filename
        self._undo_filename = undo_filename

    @property
    def state_filename(self) -> str:
        return self._state_filename

    @property
    def undo_filename(self) -> str:
        return self._undo_filename

    async def load_state(self) -> PersistedState:
        """Load the saved working set.

        Returns:
            PersistedState: Snapshot with legacy rule entries migrated.

        Raises:
            MissingStateError: If no state file is present.
            StateError: If the stored data cannot be parsed.
        """
        return await self._load(self._state_filename, PersistedState)

    async def save_state(self, state: PersistedState) -> None:
        """Persist the working set, stamping the current time."""
        state.timestamp = now_ms()
        await self._save(self._state_filename, state)

    async def load_manifest(self) -> UndoManifest:
        """Load the undo manifest of the last relocation.

        Raises:
            MissingStateError: If no manifest is present.
            StateError: If the manifest cannot be parsed.
        """
        return await self._load(self._undo_filename, UndoManifest)

    async def save_manifest(self, manifest: UndoManifest) -> None:
        """Persist ``manifest``, replacing any previous one."""
        await self._save(self._undo_filename, manifest)

    async def has_manifest(self) -> bool:
        """Return whether an undo manifest is available."""
        return await self._provider.exists(self._undo_filename)

    async def delete_manifest(self) -> None:
        """Remove the undo manifest if it exists."""
        if await self._provider.exists(self._undo_filename):
            await self._provider.delete_file(self._undo_filename)

    async def _load(self, filename: str, model: type[BaseModel]):
        if not await self._provider.exists(filename):
            raise MissingStateError(f"No {filename} found in {self._provider.root_name}")
        try:
            raw = await self._provider.read_bytes(filename)
            data = json.loads(raw.decode("utf-8"))
            return model.model_validate(data)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError, ValidationError) as exc:
            raise StateError(f"Invalid {filename} data: {exc}") from exc

    async def _save(self, filename: str, payload: BaseModel) -> None:
        text = json.dumps(payload.model_dump(mode="json", by_alias=True), indent=2)
        try:
            await self._provider.write_bytes(filename, text.encode("utf-8"))
        except OSError as exc:
            raise StateError(f"Could not write {filename}: {exc}") from exc


__all__ = [
    "StateRepository",
    "LearnedRule",
    "MoveRecord",
    "PersistedBundle",
    "PersistedState",
    "UndoManifest",
    "StateError",
    "MissingStateError",
    "now_ms",
]

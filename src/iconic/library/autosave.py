"""Trailing-edge debounced persistence."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from iconic.state import StateError

LOGGER = logging.getLogger(__name__)


class AutoSaver:
    """Coalesce bursts of mutations into a single delayed save.

    Every :meth:`schedule` call re-arms one timer task; the save runs once the
    collection has been quiet for ``delay`` seconds. Outside a running event
    loop the saver only remembers that a write is pending for :meth:`flush`.
    """

    def __init__(
        self,
        save: Callable[[], Awaitable[None]],
        *,
        delay: float = 2.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._save = save
        self.delay = delay
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None
        self._dirty = False
        self.saves = 0

    @property
    def dirty(self) -> bool:
        """Whether a mutation has not been written yet."""
        return self._dirty

    def schedule(self) -> None:
        """Mark the state dirty and restart the debounce timer."""
        self._dirty = True
        self._cancel()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._task = loop.create_task(self._delayed())

    async def flush(self) -> None:
        """Write pending changes now.

        Raises:
            StateError: If the write fails.
        """
        self._cancel()
        if self._dirty:
            await self._write()

    async def _delayed(self) -> None:
        await self._sleep(self.delay)
        try:
            await self._write()
        except StateError as exc:
            LOGGER.error("Auto-save failed: %s", exc)

    async def _write(self) -> None:
        self._dirty = False
        try:
            await self._save()
        except StateError:
            self._dirty = True
            raise
        self.saves += 1

    def _cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None


__all__ = ["AutoSaver"]

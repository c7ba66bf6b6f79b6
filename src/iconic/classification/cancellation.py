"""Cooperative cancellation shared by long-running operations."""

from __future__ import annotations


class CancellationToken:
    """Flag checked at every suspension point of a run."""

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True


__all__ = ["CancellationToken"]

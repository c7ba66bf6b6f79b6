"""Batched classification runs with cooldowns, retries and cancellation."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import (
    Awaitable,
    Callable,
    Iterable,
    List,
    Optional,
    Protocol,
    Sequence,
)

from iconic.config.models import AnalysisSettings
from iconic.ingestion.models import Bundle, BundleStatus

from .cancellation import CancellationToken
from .errors import AnalysisInProgressError, MissingCredentialError, OracleError
from .memory import RuleMemory
from .oracle import ClassificationOracle

LOGGER = logging.getLogger(__name__)


class AnalysisState(str, Enum):
    """Lifecycle of the orchestrator."""

    IDLE = "idle"
    RUNNING = "running"
    STOPPING = "stopping"


class BundleStore(Protocol):
    """Owned bundle container the orchestrator reads from and patches by id."""

    def get(self, bundle_id: str) -> Optional[Bundle]:
        ...

    def values(self) -> List[Bundle]:
        ...

    def replace(self, bundles: Iterable[Bundle]) -> None:
        ...


@dataclass
class AnalysisReport:
    """Outcome of one analysis run.

    Attributes:
        targets: Bundles considered by the run.
        memory_hits: Bundles tagged from learned rules without an oracle call.
        categorized: Bundles tagged by the oracle (first pass or retry).
        retried: Bundles sent to the relaxed retry pass.
        errors: Bundles whose batch failed.
        reset: Bundles returned to ``pending`` after an unsuccessful retry.
        cancelled: Whether the run was stopped before completing.
    """

    targets: int = 0
    memory_hits: int = 0
    categorized: int = 0
    retried: int = 0
    errors: int = 0
    reset: int = 0
    cancelled: bool = False


class AnalysisOrchestrator:
    """Drive the memory pass, oracle batches and relaxed retry pass."""

    def __init__(
        self,
        oracle: Optional[ClassificationOracle],
        memory: RuleMemory,
        *,
        settings: Optional[AnalysisSettings] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_status: Optional[Callable[[Optional[str]], None]] = None,
    ) -> None:
        """Create an orchestrator.

        Args:
            oracle: Classification backend; ``None`` when no credential is configured.
            memory: Rule memory consulted before the oracle.
            settings: Batch size and cooldown configuration.
            sleep: Awaitable used for cooldown ticks.
            on_status: Callback receiving short status strings (``None`` clears).
        """

        self.oracle = oracle
        self.memory = memory
        self.settings = settings or AnalysisSettings()
        self._sleep = sleep
        self._on_status = on_status
        self._state = AnalysisState.IDLE
        self._token: Optional[CancellationToken] = None
        self.status_text: Optional[str] = None

    @property
    def state(self) -> AnalysisState:
        return self._state

    def stop(self) -> None:
        """Cancel the running analysis and return to idle immediately."""
        if self._token is not None:
            self._token.cancel()
        if self._state is not AnalysisState.IDLE:
            LOGGER.warning("Analysis stopped by user.")
        self._state = AnalysisState.IDLE
        self._set_status(None)

    async def run(
        self,
        store: BundleStore,
        categories: Sequence[str],
        *,
        selection: Optional[Iterable[str]] = None,
        multi_tag: bool = True,
        token: Optional[CancellationToken] = None,
    ) -> AnalysisReport:
        """Classify the selected bundles (or all bundles) in ``store``.

        Args:
            store: Bundle container patched in place by id.
            categories: Allowed categories sent to the oracle.
            selection: Bundle ids to analyze; every bundle when empty or ``None``.
            multi_tag: Allow the oracle to assign several categories.
            token: Cancellation token for this run; a fresh one is created otherwise.

        Returns:
            AnalysisReport: Counts describing what the run changed.

        Raises:
            MissingCredentialError: If no oracle is configured.
            AnalysisInProgressError: If another run is active.
        """

        if self.oracle is None:
            raise MissingCredentialError("Cannot analyze without an oracle API key.")
        if self._state is not AnalysisState.IDLE:
            raise AnalysisInProgressError("An analysis is already running.")

        token = token or CancellationToken()
        self._token = token
        self._state = AnalysisState.RUNNING
        selected = set(selection or ())
        target_ids = [
            bundle.id for bundle in store.values() if not selected or bundle.id in selected
        ]
        report = AnalysisReport(targets=len(target_ids))
        LOGGER.info("Starting analysis of %d bundles.", report.targets)

        try:
            pending = self._apply_memory(store, target_ids, report)
            if pending:
                retry = await self._first_pass(store, pending, categories, multi_tag, token, report)
                if retry and not token.cancelled:
                    report.retried = len(retry)
                    LOGGER.warning("Retrying %d bundles with relaxed rules.", len(retry))
                    await self._retry_pass(store, retry, categories, multi_tag, token, report)
            elif not report.memory_hits:
                LOGGER.warning("No unique, unclassified bundles found to analyze.")
        finally:
            report.cancelled = token.cancelled
            # A newer run may own the store once stop() has returned to idle.
            if self._token is token:
                if token.cancelled:
                    if self._state is AnalysisState.RUNNING:
                        self._state = AnalysisState.STOPPING
                    self._release_analyzing(store)
                self._set_status(None)
                self._token = None
                self._state = AnalysisState.IDLE

        LOGGER.info(
            "Analysis %s: %d from memory, %d categorized, %d errors, %d reset.",
            "cancelled" if report.cancelled else "complete",
            report.memory_hits,
            report.categorized,
            report.errors,
            report.reset,
        )
        return report

    # ------------------------------------------------------------------ #
    # Passes                                                             #
    # ------------------------------------------------------------------ #

    def _apply_memory(
        self, store: BundleStore, target_ids: Sequence[str], report: AnalysisReport
    ) -> List[str]:
        updates: List[Bundle] = []
        pending: List[str] = []
        for bundle_id in target_ids:
            bundle = store.get(bundle_id)
            if bundle is None or bundle.is_duplicate:
                continue
            rule = self.memory.lookup(bundle.name)
            if self.memory.is_strong(rule):
                updates.append(
                    bundle.evolve(
                        tags=list(rule.tags),
                        category=rule.tags[0],
                        status=BundleStatus.CATEGORIZED,
                    )
                )
            elif not bundle.tags:
                pending.append(bundle_id)

        report.memory_hits = len(updates)
        if updates:
            store.replace(updates)
            LOGGER.info(
                "Applied %d learned preferences (confidence >= %d).",
                len(updates),
                self.memory.threshold,
            )
        if pending:
            store.replace(
                store.get(bundle_id).evolve(status=BundleStatus.ANALYZING)
                for bundle_id in pending
            )
        return pending

    async def _first_pass(
        self,
        store: BundleStore,
        pending: List[str],
        categories: Sequence[str],
        multi_tag: bool,
        token: CancellationToken,
        report: AnalysisReport,
    ) -> List[str]:
        retry: List[str] = []
        total = len(pending)
        for index, chunk in enumerate(self._batches(pending)):
            if token.cancelled:
                break
            if index and not await self._cooldown("Cooldown", token):
                break
            if token.cancelled:
                break

            done = index * self.settings.batch_size + len(chunk)
            self._set_status(f"Processing {done} of {total}")
            names = self._names(store, chunk)
            try:
                results = await self.oracle.categorize(
                    names, categories, multi_tag=multi_tag, relaxed=False
                )
            except OracleError as exc:
                LOGGER.error("Batch of %d failed: %s", len(chunk), exc)
                if not token.cancelled:
                    self._mark_error(store, chunk, report)
                continue
            if token.cancelled:
                break

            updates: List[Bundle] = []
            for bundle_id in chunk:
                bundle = store.get(bundle_id)
                if bundle is None:
                    continue
                tags = results.get(bundle.name)
                if tags:
                    updates.append(self._categorized(bundle, tags))
                else:
                    retry.append(bundle_id)
            report.categorized += len(updates)
            store.replace(updates)
        return retry

    async def _retry_pass(
        self,
        store: BundleStore,
        retry: List[str],
        categories: Sequence[str],
        multi_tag: bool,
        token: CancellationToken,
        report: AnalysisReport,
    ) -> None:
        for chunk in self._batches(retry):
            if token.cancelled:
                break
            if not await self._cooldown("Retry Cooldown", token):
                break

            self._set_status("Retrying...")
            names = self._names(store, chunk)
            try:
                results = await self.oracle.categorize(
                    names, categories, multi_tag=multi_tag, relaxed=True
                )
            except OracleError as exc:
                LOGGER.error("Retry batch of %d failed: %s", len(chunk), exc)
                if not token.cancelled:
                    self._mark_error(store, chunk, report)
                continue
            if token.cancelled:
                break

            updates: List[Bundle] = []
            for bundle_id in chunk:
                bundle = store.get(bundle_id)
                if bundle is None:
                    continue
                tags = results.get(bundle.name)
                if tags:
                    report.categorized += 1
                    updates.append(self._categorized(bundle, tags))
                else:
                    report.reset += 1
                    updates.append(
                        bundle.evolve(status=BundleStatus.PENDING, category=None, tags=[])
                    )
            store.replace(updates)

    # ------------------------------------------------------------------ #
    # Helpers                                                            #
    # ------------------------------------------------------------------ #

    async def _cooldown(self, label: str, token: CancellationToken) -> bool:
        """Wait between batches in short ticks; ``False`` when cancelled."""
        tick = self.settings.cooldown_tick_seconds
        ticks = round(self.settings.cooldown_seconds / tick)
        per_second = max(1, round(1 / tick))
        for remaining in range(ticks, 0, -1):
            if token.cancelled:
                return False
            if remaining % per_second == 0:
                self._set_status(f"{label} ({remaining // per_second}s)")
            await self._sleep(tick)
        return not token.cancelled

    def _batches(self, ids: List[str]):
        size = self.settings.batch_size
        for start in range(0, len(ids), size):
            yield ids[start : start + size]

    @staticmethod
    def _names(store: BundleStore, chunk: Sequence[str]) -> List[str]:
        names = []
        for bundle_id in chunk:
            bundle = store.get(bundle_id)
            if bundle is not None:
                names.append(bundle.name)
        return names

    @staticmethod
    def _categorized(bundle: Bundle, tags: Sequence[str]) -> Bundle:
        return bundle.evolve(
            tags=list(tags), category=tags[0], status=BundleStatus.CATEGORIZED
        )

    @staticmethod
    def _mark_error(store: BundleStore, chunk: Sequence[str], report: AnalysisReport) -> None:
        updates = []
        for bundle_id in chunk:
            bundle = store.get(bundle_id)
            if bundle is not None:
                updates.append(bundle.evolve(status=BundleStatus.ERROR))
        report.errors += len(updates)
        store.replace(updates)

    @staticmethod
    def _release_analyzing(store: BundleStore) -> None:
        store.replace(
            bundle.evolve(status=BundleStatus.PENDING)
            for bundle in store.values()
            if bundle.status is BundleStatus.ANALYZING
        )

    def _set_status(self, text: Optional[str]) -> None:
        self.status_text = text
        if self._on_status is not None:
            self._on_status(text)


__all__ = [
    "AnalysisOrchestrator",
    "AnalysisReport",
    "AnalysisState",
    "BundleStore",
]

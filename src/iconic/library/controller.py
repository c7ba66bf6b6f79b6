"""End-to-end controller for one managed library folder."""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from iconic.classification import (
    AnalysisOrchestrator,
    AnalysisReport,
    CategorySuggester,
    ClassificationOracle,
    MissingCredentialError,
    RuleMemory,
)
from iconic.classification.engine import DSPyOracle
from iconic.config.models import IconicConfig
from iconic.filesystem import FileSystemProvider, LocalFileSystem
from iconic.ingestion import Bundle, BundleStatus, IngestionPipeline, LeftoverFile
from iconic.ingestion.enrichment import EnrichmentReport, ImageEnricher, enrich_missing_images
from iconic.organization import (
    FileOperationEngine,
    OperationSummary,
    apply_duplicate_patches,
    resolve_duplicates,
)
from iconic.state import (
    MissingStateError,
    PersistedBundle,
    PersistedState,
    StateError,
    StateRepository,
)

from .autosave import AutoSaver
from .categories import CategoryList, validate_bundle_name, validate_name
from .collection import BundleCollection
from .errors import CategoryError, LibraryError, UnknownBundleError

LOGGER = logging.getLogger(__name__)


@dataclass
class LibraryStatus:
    """Snapshot of a library for status reporting.

    Attributes:
        root: Name of the library folder.
        bundles: Number of bundles in the working set.
        leftovers: Number of files that are not part of a bundle.
        duplicates: Bundles flagged as duplicates.
        by_status: Bundle counts per status.
        by_category: Bundle counts per primary category (``Uncategorized`` for none).
        categories: Current category list.
        rules: Number of learned rules.
        strong_rules: Rules confident enough to bypass the oracle.
        undo_available: Whether an undo manifest exists.
    """

    root: str
    bundles: int = 0
    leftovers: int = 0
    duplicates: int = 0
    by_status: Dict[str, int] = field(default_factory=dict)
    by_category: Dict[str, int] = field(default_factory=dict)
    categories: List[str] = field(default_factory=list)
    rules: int = 0
    strong_rules: int = 0
    undo_available: bool = False


class Library:
    """Own the bundle working set of a folder and drive every operation on it.

    Typical flow: :meth:`open` (scan, fingerprint, restore saved state, resolve
    duplicates), then user edits or :meth:`analyze`, then :meth:`organize`,
    which relocates files and re-scans. Mutations are auto-saved after a quiet
    period; call :meth:`flush` (or :meth:`close`) before exiting.
    """

    def __init__(
        self,
        root: Union[Path, str, FileSystemProvider],
        config: Optional[IconicConfig] = None,
        *,
        oracle: Optional[ClassificationOracle] = None,
        suggester: Optional[CategorySuggester] = None,
        enricher: Optional[ImageEnricher] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_status: Optional[Callable[[Optional[str]], None]] = None,
    ) -> None:
        """Bind a controller to ``root``.

        Args:
            root: Folder path or filesystem provider of the library.
            config: Resolved configuration; defaults are used when omitted.
            oracle: Classification backend. Built from ``config.oracle`` on first
                use when omitted.
            suggester: Category-suggestion backend; defaults to the same backend.
            enricher: Optional image source used when ``download_images`` is set.
            sleep: Awaitable used for cooldowns and debouncing.
            on_status: Receives short analysis status strings.
        """

        if isinstance(root, FileSystemProvider):
            self.provider = root
        else:
            self.provider = LocalFileSystem(Path(root))
        self.config = config or IconicConfig()
        self._oracle = oracle
        self._suggester = suggester
        self.enricher = enricher

        options = self.config.organization
        self.repository = StateRepository(self.provider)
        self.pipeline = IngestionPipeline(
            self.provider,
            self.config.bundles,
            chunk_size=options.fingerprint_chunk_size,
        )
        self.engine = FileOperationEngine(
            self.provider,
            self.repository,
            unused_assets_dir=options.unused_assets_dir,
            uncategorized_label=options.uncategorized_label,
            max_name_attempts=options.max_name_attempts,
        )
        self.autosaver = AutoSaver(
            self.save, delay=options.autosave_delay_seconds, sleep=sleep
        )
        self.collection = BundleCollection(on_change=self.autosaver.schedule)
        self.leftovers: List[LeftoverFile] = []
        self.categories = CategoryList(self.config.categories.defaults)
        self.memory = RuleMemory(threshold=self.config.analysis.confidence_threshold)
        self._sleep = sleep
        self._on_status = on_status
        self._orchestrator: Optional[AnalysisOrchestrator] = None
        self.last_summary: Optional[OperationSummary] = None

    # ------------------------------------------------------------------ #
    # Loading                                                            #
    # ------------------------------------------------------------------ #

    async def open(
        self,
        *,
        restore: bool = True,
        on_progress: Optional[Callable[[int, int], None]] = None,
    ) -> List[Bundle]:
        """Scan the folder, restore saved state and resolve duplicates.

        Args:
            restore: Merge ``.iconic-state.json`` onto the scanned bundles.
            on_progress: Receives ``(done, total)`` while fingerprinting.

        Returns:
            List[Bundle]: The working set after duplicate resolution.
        """

        result = await self.pipeline.run(on_progress=on_progress)
        bundles = result.bundles
        self.leftovers = list(result.leftovers)

        pinned: Dict[str, bool] = {}
        if restore:
            bundles, pinned = await self._restore(bundles)
        if self.config.organization.download_images and self.enricher is not None:
            bundles = await self._enrich(bundles)

        bundles = apply_duplicate_patches(bundles, resolve_duplicates(bundles))
        # Flags saved for the very same file override detection.
        bundles = [
            bundle.evolve(is_duplicate=pinned[bundle.id])
            if bundle.id in pinned and bundle.is_duplicate != pinned[bundle.id]
            else bundle
            for bundle in bundles
        ]
        self.collection.reset(bundles)
        return self.collection.values()

    async def _restore(
        self, bundles: List[Bundle]
    ) -> Tuple[List[Bundle], Dict[str, bool]]:
        """Merge the saved snapshot onto scanned bundles.

        Entries are matched by id (the file has not moved since the save), which
        also restores a renamed display name, and otherwise by the first entry
        with the same name. A name match restores tags only; its duplicate
        flag belonged to another file.

        Returns:
            Tuple[List[Bundle], Dict[str, bool]]: Merged bundles and the saved
            duplicate flags of id-matched bundles.
        """
        try:
            state = await self.repository.load_state()
        except MissingStateError:
            return bundles, {}
        except StateError as exc:
            LOGGER.warning("Ignoring saved state: %s", exc)
            return bundles, {}

        if state.categories:
            names = []
            for name in state.categories:
                try:
                    validate_name(name)
                except CategoryError:
                    LOGGER.warning("Dropping invalid saved category %r.", name)
                    continue
                names.append(name)
            self.categories = CategoryList(names)
        self.memory = RuleMemory.from_snapshot(
            state.manual_overrides, threshold=self.config.analysis.confidence_threshold
        )

        by_id: Dict[str, PersistedBundle] = {}
        by_name: Dict[str, PersistedBundle] = {}
        for entry in state.plugins:
            by_id.setdefault(entry.id, entry)
            by_name.setdefault(entry.name, entry)

        merged: List[Bundle] = []
        pinned: Dict[str, bool] = {}
        for bundle in bundles:
            entry = by_id.get(bundle.id)
            if entry is not None:
                bundle = bundle.evolve(name=entry.name or bundle.name)
                if entry.is_duplicate is not None:
                    pinned[bundle.id] = entry.is_duplicate
            else:
                entry = by_name.get(bundle.name)
            merged.append(self._merge_saved(bundle, entry))
        LOGGER.info("Restored previous categorization state.")
        return merged, pinned

    @staticmethod
    def _merge_saved(bundle: Bundle, entry: Optional[PersistedBundle]) -> Bundle:
        if entry is None:
            return bundle
        changes: Dict[str, object] = {
            "tags": list(entry.tags),
            "category": entry.category or None,
            "status": BundleStatus.CATEGORIZED if entry.tags else BundleStatus.PENDING,
        }
        return bundle.evolve(**changes)

    async def _enrich(self, bundles: List[Bundle]) -> List[Bundle]:
        report = await self.enrich_images(bundles)
        updated = {bundle.id: bundle for bundle in report.bundles}
        return [updated.get(bundle.id, bundle) for bundle in bundles]

    async def enrich_images(self, bundles: Optional[Sequence[Bundle]] = None) -> EnrichmentReport:
        """Fetch missing preview images through the configured enricher.

        Raises:
            LibraryError: If no enricher is configured.
        """
        if self.enricher is None:
            raise LibraryError("No image enricher is configured.")
        report = await enrich_missing_images(
            self.provider,
            self.collection.values() if bundles is None else bundles,
            self.enricher,
        )
        self.collection.replace(report.bundles)
        LOGGER.info(
            "Image enrichment: %d added, %d failed, %d already present.",
            report.successful,
            report.failed,
            report.skipped,
        )
        return report

    async def rescan(self, *, moved: Iterable[str] = ()) -> List[Bundle]:
        """Re-scan after a relocation, carrying tags over by bundle name.

        Args:
            moved: Names of bundles relocated by the last operation; their
                fresh snapshots get the ``moved`` status.
        """

        previous: Dict[str, Bundle] = {}
        for bundle in self.collection.values():
            previous.setdefault(bundle.name, bundle)
        moved_names = set(moved)

        result = await self.pipeline.run()
        bundles = []
        for bundle in result.bundles:
            before = previous.get(bundle.name)
            if before is not None and before.tags:
                status = (
                    BundleStatus.MOVED if bundle.name in moved_names else BundleStatus.CATEGORIZED
                )
                bundle = bundle.evolve(tags=before.tags, category=before.category, status=status)
            bundles.append(bundle)

        self.leftovers = list(result.leftovers)
        bundles = apply_duplicate_patches(bundles, resolve_duplicates(bundles))
        self.collection.reset(bundles)
        return self.collection.values()

    # ------------------------------------------------------------------ #
    # Analysis                                                           #
    # ------------------------------------------------------------------ #

    @property
    def orchestrator(self) -> AnalysisOrchestrator:
        if self._orchestrator is None:
            self._orchestrator = AnalysisOrchestrator(
                self._oracle,
                self.memory,
                settings=self.config.analysis,
                sleep=self._sleep,
                on_status=self._on_status,
            )
        return self._orchestrator

    async def analyze(self, selection: Optional[Iterable[str]] = None) -> AnalysisReport:
        """Classify bundles; organize afterwards when ``auto_execute`` is set.

        Args:
            selection: Bundle ids to analyze, or ``None`` for the whole set.

        Raises:
            MissingCredentialError: If no oracle is available.
        """

        orchestrator = self.orchestrator
        orchestrator.oracle = self._ensure_oracle()
        orchestrator.memory = self.memory
        report = await orchestrator.run(
            self.collection,
            self.categories.to_list(),
            selection=selection,
            multi_tag=self.config.organization.multi_tag,
        )
        if not report.cancelled and self.config.analysis.auto_execute:
            self.last_summary = await self.organize()
        return report

    def stop_analysis(self) -> None:
        """Stop a running analysis; results arriving later are discarded."""
        if self._orchestrator is not None:
            self._orchestrator.stop()

    async def suggest_categories(self, *, apply: bool = False) -> List[str]:
        """Ask the oracle for a refined category list based on bundle names."""
        suggester = self._suggester or self._ensure_oracle()
        names = [bundle.name for bundle in self.collection.values()]
        suggestions = await suggester.suggest_categories(names, self.categories.to_list())
        if apply:
            self.set_categories(suggestions)
        return suggestions

    def _ensure_oracle(self):
        if self._oracle is None:
            if not self.config.oracle.has_credential:
                raise MissingCredentialError(
                    "Cannot analyze without an API key; set `oracle.api_key` first."
                )
            self._oracle = DSPyOracle(self.config.oracle, sleep=self._sleep)
        return self._oracle

    # ------------------------------------------------------------------ #
    # Relocation                                                         #
    # ------------------------------------------------------------------ #

    async def organize(
        self,
        *,
        multi_tag: Optional[bool] = None,
        deduplicate: Optional[bool] = None,
        dry_run: Optional[bool] = None,
    ) -> OperationSummary:
        """Move bundles into category folders, then re-scan."""
        options = self.config.organization
        dry_run = options.dry_run if dry_run is None else dry_run
        bundles = self.collection.values()
        summary = await self.engine.organize(
            bundles,
            self.leftovers,
            multi_tag=options.multi_tag if multi_tag is None else multi_tag,
            deduplicate=options.deduplicate if deduplicate is None else deduplicate,
            dry_run=dry_run,
        )
        if not dry_run:
            await self.rescan(moved=self._moved_names(bundles, summary))
        self.last_summary = summary
        return summary

    async def flatten(self, *, dry_run: bool = False) -> OperationSummary:
        """Move every nested bundle to the root, then re-scan."""
        bundles = self.collection.values()
        summary = await self.engine.flatten(bundles, self.leftovers, dry_run=dry_run)
        if not dry_run:
            await self.rescan(moved=self._moved_names(bundles, summary))
        self.last_summary = summary
        return summary

    async def undo(self, *, dry_run: bool = False) -> OperationSummary:
        """Revert the last relocation, then re-scan.

        Raises:
            MissingManifestError: If there is nothing to undo.
        """
        summary = await self.engine.revert(dry_run=dry_run)
        if not dry_run:
            await self.rescan()
        self.last_summary = summary
        return summary

    async def has_undo(self) -> bool:
        return await self.repository.has_manifest()

    @staticmethod
    def _moved_names(bundles: Sequence[Bundle], summary: OperationSummary) -> List[str]:
        sources = {record.original_path for record in summary.manifest.moves}
        return [bundle.name for bundle in bundles if bundle.path in sources]

    # ------------------------------------------------------------------ #
    # User edits                                                         #
    # ------------------------------------------------------------------ #

    def resolve(self, refs: Iterable[str]) -> List[Bundle]:
        """Look bundles up by id or exact display name.

        Raises:
            UnknownBundleError: If a reference matches nothing.
        """
        found: Dict[str, Bundle] = {}
        for ref in refs:
            bundle = self.collection.get(ref)
            matches = [bundle] if bundle is not None else self.collection.find_by_name(ref)
            if not matches:
                raise UnknownBundleError(f"No bundle named {ref!r}.")
            for match in matches:
                found.setdefault(match.id, match)
        return list(found.values())

    def drop_to_category(self, ids: Iterable[str], category: str) -> List[Bundle]:
        """Prepend ``category`` to every bundle lacking it and make it primary."""
        return self._prepend(ids, category, categorize=False)

    def quick_tag(self, ids: Iterable[str], category: str) -> List[Bundle]:
        """Like :meth:`drop_to_category`, also marking the bundles categorized."""
        return self._prepend(ids, category, categorize=True)

    def toggle_tag(self, ids: Iterable[str], category: str) -> List[Bundle]:
        """Remove ``category`` if every bundle has it, otherwise add it as primary."""
        category = self._known_category(category)
        bundles = self._bundles(ids)
        updates: List[Bundle] = []
        if bundles and all(category in bundle.tags for bundle in bundles):
            for bundle in bundles:
                tags = [tag for tag in bundle.tags if tag != category]
                updates.append(
                    bundle.evolve(tags=tags, category=tags[0] if tags else None)
                )
        else:
            for bundle in bundles:
                if category not in bundle.tags:
                    updates.append(
                        bundle.evolve(tags=[category, *bundle.tags], category=category)
                    )
        return self._commit_tags(updates)

    def set_tags(self, ids: Iterable[str], tags: Sequence[str]) -> List[Bundle]:
        """Bulk edit: replace the tags of every bundle; the first tag becomes primary."""
        tags = list(dict.fromkeys(self._known_category(tag) for tag in tags))
        updates = [
            bundle.evolve(
                tags=tags,
                category=tags[0] if tags else None,
                status=BundleStatus.CATEGORIZED if tags else BundleStatus.PENDING,
            )
            for bundle in self._bundles(ids)
        ]
        return self._commit_tags(updates)

    def rename_bundle(self, bundle_id: str, new_name: str) -> Bundle:
        """Change a bundle's display name (used as the file name on organize).

        Raises:
            BundleNameError: If the name is empty or contains invalid characters.
        """
        cleaned = validate_bundle_name(new_name)
        bundle = self._bundles([bundle_id])[0]
        updated = bundle.evolve(name=cleaned)
        self.collection.replace([updated])
        return updated

    def set_duplicate(self, ids: Iterable[str], flag: bool) -> List[Bundle]:
        updates = [bundle.evolve(is_duplicate=flag) for bundle in self._bundles(ids)]
        self.collection.replace(updates)
        return updates

    def toggle_duplicate(self, bundle_id: str) -> Bundle:
        bundle = self._bundles([bundle_id])[0]
        return self.set_duplicate([bundle_id], not bundle.is_duplicate)[0]

    def forget_rule(self, key: str) -> bool:
        removed = self.memory.forget(key)
        if removed:
            LOGGER.info("Forgot rule for %r.", key)
            self.autosaver.schedule()
        return removed

    # ------------------------------------------------------------------ #
    # Categories                                                         #
    # ------------------------------------------------------------------ #

    def add_category(self, name: str) -> str:
        added = self.categories.add(name)
        self.autosaver.schedule()
        return added

    def rename_category(self, old: str, new: str) -> str:
        """Rename a category and cascade it into every tagged bundle.

        Each affected bundle's new tag set is recorded as a user correction.

        Raises:
            CategoryError: If ``old`` is unknown or ``new`` is invalid or taken.
        """
        current = self.categories.find(old)
        renamed = self.categories.rename(old, new)
        if current == renamed:
            return renamed

        updates: List[Bundle] = []
        for bundle in self.collection.values():
            if current not in bundle.tags:
                continue
            tags = [renamed if tag == current else tag for tag in bundle.tags]
            category = renamed if bundle.category == current else bundle.category
            updates.append(bundle.evolve(tags=tags, category=category))
        self._commit_tags(updates)
        self.autosaver.schedule()
        LOGGER.info("Renamed category %r to %r.", current, renamed)
        return renamed

    def remove_category(self, name: str) -> str:
        """Remove a category and strip it from every bundle."""
        removed = self.categories.remove(name)
        self._strip_unknown_tags()
        self.autosaver.schedule()
        return removed

    def set_categories(self, names: Iterable[str]) -> List[str]:
        """Replace the category list; tags outside the new list are stripped."""
        self.categories = CategoryList(names)
        self._strip_unknown_tags()
        self.autosaver.schedule()
        return self.categories.to_list()

    def apply_profile(self, profile: str) -> List[str]:
        """Replace the category list with a configured profile.

        Raises:
            CategoryError: If the profile is not configured.
        """
        profiles = self.config.categories.profiles
        if profile not in profiles:
            raise CategoryError(
                f"Unknown profile {profile!r}; available: {', '.join(sorted(profiles))}."
            )
        return self.set_categories(profiles[profile])

    # ------------------------------------------------------------------ #
    # Persistence & reporting                                            #
    # ------------------------------------------------------------------ #

    async def save(self) -> None:
        """Write ``.iconic-state.json`` now."""
        if not len(self.collection):
            return
        state = PersistedState(
            categories=self.categories.to_list(),
            plugins=[
                PersistedBundle(
                    id=bundle.id,
                    name=bundle.name,
                    tags=list(bundle.tags),
                    category=bundle.category,
                    is_duplicate=bundle.is_duplicate,
                )
                for bundle in self.collection.values()
            ],
            manual_overrides=self.memory.snapshot(),
        )
        await self.repository.save_state(state)

    async def flush(self) -> None:
        await self.autosaver.flush()

    async def close(self) -> None:
        self.stop_analysis()
        await self.flush()

    async def status(self) -> LibraryStatus:
        bundles = self.collection.values()
        uncategorized = self.config.organization.uncategorized_label
        return LibraryStatus(
            root=self.provider.root_name,
            bundles=len(bundles),
            leftovers=len(self.leftovers),
            duplicates=sum(1 for bundle in bundles if bundle.is_duplicate),
            by_status=dict(Counter(bundle.status.value for bundle in bundles)),
            by_category=dict(Counter(bundle.category or uncategorized for bundle in bundles)),
            categories=self.categories.to_list(),
            rules=len(self.memory),
            strong_rules=sum(1 for _, rule in self.memory.items() if self.memory.is_strong(rule)),
            undo_available=await self.has_undo(),
        )

    # ------------------------------------------------------------------ #
    # Helpers                                                            #
    # ------------------------------------------------------------------ #

    def _bundles(self, ids: Iterable[str]) -> List[Bundle]:
        bundles = []
        for bundle_id in ids:
            bundle = self.collection.get(bundle_id)
            if bundle is None:
                raise UnknownBundleError(f"No bundle with id {bundle_id!r}.")
            bundles.append(bundle)
        return bundles

    def _known_category(self, name: str) -> str:
        if name == self.config.organization.uncategorized_label:
            return name
        known = self.categories.find(name)
        if known is None:
            raise CategoryError(f"Unknown category {name!r}.")
        return known

    def _prepend(self, ids: Iterable[str], category: str, *, categorize: bool) -> List[Bundle]:
        category = self._known_category(category)
        updates = []
        for bundle in self._bundles(ids):
            if category in bundle.tags:
                continue
            changes: Dict[str, object] = {"tags": [category, *bundle.tags], "category": category}
            if categorize:
                changes["status"] = BundleStatus.CATEGORIZED
            updates.append(bundle.evolve(**changes))
        return self._commit_tags(updates)

    def _commit_tags(self, updates: List[Bundle]) -> List[Bundle]:
        for bundle in updates:
            self.memory.record_correction(bundle.name, bundle.tags)
        self.collection.replace(updates)
        return updates

    def _strip_unknown_tags(self) -> None:
        updates = []
        for bundle in self.collection.values():
            tags = [tag for tag in bundle.tags if tag in self.categories]
            if tags == bundle.tags:
                continue
            updates.append(
                bundle.evolve(
                    tags=tags,
                    category=tags[0] if tags else None,
                    status=BundleStatus.CATEGORIZED if tags else BundleStatus.PENDING,
                )
            )
        self.collection.replace(updates)


__all__ = ["Library", "LibraryStatus"]

"""Executor for organize, flatten and revert operations."""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence

from iconic.filesystem import FileSystemProvider, join, parent_of, split_name
from iconic.ingestion.models import Bundle, LeftoverFile
from iconic.state import MissingStateError, StateError, StateRepository
from iconic.state.models import MoveRecord, UndoManifest

from .errors import MissingManifestError
from .models import OperationSummary
from .naming import MAX_NAME_ATTEMPTS, unique_filename

LOGGER = logging.getLogger(__name__)

# Files that do not make a directory "non-empty" when pruning.
MARKER_FILES = frozenset(
    {
        ".iconic-state.json",
        ".iconic-undo.json",
        ".ds_store",
        "desktop.ini",
        "thumbs.db",
        ".gitignore",
    }
)


class FileOperationEngine:
    """Relocate bundles on disk and record every move for undo."""

    def __init__(
        self,
        provider: FileSystemProvider,
        repository: Optional[StateRepository] = None,
        *,
        unused_assets_dir: str = "_Unused_Assets",
        uncategorized_label: str = "Uncategorized",
        max_name_attempts: int = MAX_NAME_ATTEMPTS,
    ) -> None:
        self.provider = provider
        self.repository = repository or StateRepository(provider)
        self.unused_assets_dir = unused_assets_dir
        self.uncategorized_label = uncategorized_label
        self.max_name_attempts = max_name_attempts

    async def organize(
        self,
        bundles: Sequence[Bundle],
        leftovers: Sequence[LeftoverFile],
        *,
        multi_tag: bool = True,
        deduplicate: bool = True,
        dry_run: bool = False,
    ) -> OperationSummary:
        """Move every bundle into its category folders.

        Args:
            bundles: Bundles to relocate.
            leftovers: Files that are not part of a bundle.
            multi_tag: Copy into every tag folder instead of only the first.
            deduplicate: Delete bundles flagged as duplicates.
            dry_run: Plan the operation without touching the filesystem.

        Returns:
            OperationSummary: Counts, failures and the undo manifest.
        """

        summary = OperationSummary(operation="organize", dry_run=dry_run)
        planned: set[str] = set()

        for bundle in bundles:
            if deduplicate and bundle.is_duplicate:
                await self._delete_duplicate(bundle, summary, dry_run)
                continue
            categories = bundle.tags or [self.uncategorized_label]
            destinations = categories if multi_tag else categories[:1]
            await self._relocate_bundle(bundle, destinations, summary, planned, dry_run)

        await self._relocate_leftovers(
            leftovers,
            summary,
            planned,
            dry_run,
            skip=lambda leftover: leftover.parent == self.unused_assets_dir,
        )
        return await self._finish(summary, dry_run)

    async def flatten(
        self,
        bundles: Sequence[Bundle],
        leftovers: Sequence[LeftoverFile],
        *,
        dry_run: bool = False,
    ) -> OperationSummary:
        """Move nested bundles to the root and leftovers to the unused-assets folder."""

        summary = OperationSummary(operation="flatten", dry_run=dry_run)
        planned: set[str] = set()

        for bundle in bundles:
            if not bundle.parent:
                summary.skipped += 1
                continue
            await self._relocate_bundle(bundle, [""], summary, planned, dry_run)

        await self._relocate_leftovers(
            leftovers,
            summary,
            planned,
            dry_run,
            skip=lambda leftover: not leftover.parent
            or leftover.parent == self.unused_assets_dir,
        )
        return await self._finish(summary, dry_run)

    async def revert(self, *, dry_run: bool = False) -> OperationSummary:
        """Undo the last organize or flatten using the stored manifest.

        Raises:
            MissingManifestError: If no manifest is stored or it cannot be read.
        """

        try:
            manifest = await self.repository.load_manifest()
        except MissingStateError as exc:
            raise MissingManifestError("No undo record found.") from exc
        except StateError as exc:
            raise MissingManifestError(str(exc)) from exc

        summary = OperationSummary(operation="revert", dry_run=dry_run, manifest=manifest)
        LOGGER.info("Restoring %d files to their original locations.", len(manifest.moves))

        for record in manifest.moves:
            try:
                if not await self.provider.exists(record.new_path):
                    summary.skipped += 1
                    continue
                if not dry_run:
                    await self.provider.make_dirs(parent_of(record.original_path))
                    await self.provider.copy_file(record.new_path, record.original_path)
                    await self.provider.delete_file(record.new_path)
                summary.restored += 1
            except OSError as exc:
                self._fail(summary, record.filename, f"revert failed: {exc}")

        if not dry_run:
            summary.pruned = await self.prune_empty_directories()
            await self.repository.delete_manifest()
        return summary

    async def prune_empty_directories(self) -> List[str]:
        """Remove directories that hold nothing but marker files.

        Returns:
            List[str]: Root-relative paths of removed directories.
        """

        removed: List[str] = []
        await self._prune("", removed)
        if removed:
            LOGGER.info("Removed %d empty directories.", len(removed))
        return removed

    # ------------------------------------------------------------------ #
    # Helpers                                                            #
    # ------------------------------------------------------------------ #

    async def _relocate_bundle(
        self,
        bundle: Bundle,
        destinations: Iterable[str],
        summary: OperationSummary,
        planned: set[str],
        dry_run: bool,
    ) -> None:
        extension = split_name(bundle.filename)[1]
        desired = f"{bundle.name}{extension}"
        in_place = False
        complete = True
        written = 0

        for destination in destinations:
            if join(destination, desired) == bundle.path:
                in_place = True
                continue
            try:
                if not dry_run:
                    await self.provider.make_dirs(destination)
                target_name = await unique_filename(
                    self.provider,
                    destination,
                    desired,
                    planned=planned,
                    max_attempts=self.max_name_attempts,
                    siblings=[split_name(asset.filename)[1] for asset in bundle.assets],
                )
                target = join(destination, target_name)
                if not dry_run:
                    await self.provider.copy_file(bundle.path, target)
            except OSError as exc:
                complete = False
                self._fail(summary, bundle.name, f"could not copy to {destination or 'root'}: {exc}")
                continue

            planned.add(target)
            summary.copies += 1
            written += 1
            summary.manifest.moves.append(
                MoveRecord(filename=bundle.filename, original_path=bundle.path, new_path=target)
            )
            target_base = split_name(target_name)[0]
            for asset in bundle.assets:
                asset_target = join(destination, f"{target_base}{split_name(asset.filename)[1]}")
                try:
                    if not dry_run:
                        await self.provider.copy_file(asset.path, asset_target)
                except OSError as exc:
                    complete = False
                    self._fail(summary, bundle.name, f"could not copy {asset.filename}: {exc}")
                    continue
                planned.add(asset_target)
                summary.manifest.moves.append(
                    MoveRecord(
                        filename=asset.filename,
                        original_path=asset.path,
                        new_path=asset_target,
                    )
                )

        if in_place and not written:
            summary.skipped += 1
        if in_place or not complete or not written:
            return

        if not dry_run:
            try:
                await self.provider.delete_file(bundle.path)
            except OSError as exc:
                self._fail(summary, bundle.name, f"could not remove source: {exc}")
                return
            for asset in bundle.assets:
                try:
                    await self.provider.delete_file(asset.path)
                except OSError as exc:
                    LOGGER.warning("Could not remove %s of %s: %s", asset.filename, bundle.name, exc)
        summary.moved += 1

    async def _delete_duplicate(
        self, bundle: Bundle, summary: OperationSummary, dry_run: bool
    ) -> None:
        LOGGER.info("Deleting duplicate: %s", bundle.filename)
        if not dry_run:
            try:
                await self.provider.delete_file(bundle.path)
            except OSError as exc:
                self._fail(summary, bundle.name, f"could not delete duplicate: {exc}")
                return
            for asset in bundle.assets:
                try:
                    await self.provider.delete_file(asset.path)
                except OSError as exc:
                    LOGGER.warning("Could not remove %s of %s: %s", asset.filename, bundle.name, exc)
        summary.deleted_duplicates += 1

    async def _relocate_leftovers(
        self,
        leftovers: Sequence[LeftoverFile],
        summary: OperationSummary,
        planned: set[str],
        dry_run: bool,
        *,
        skip,
    ) -> None:
        pending = []
        for leftover in leftovers:
            if skip(leftover):
                summary.skipped += 1
            else:
                pending.append(leftover)
        if not pending:
            return

        LOGGER.info("Moving %d leftover files to %s.", len(pending), self.unused_assets_dir)
        if not dry_run:
            try:
                await self.provider.make_dirs(self.unused_assets_dir)
            except OSError as exc:
                self._fail(summary, self.unused_assets_dir, f"could not create folder: {exc}")
                return

        for leftover in pending:
            try:
                target_name = await unique_filename(
                    self.provider,
                    self.unused_assets_dir,
                    leftover.name,
                    planned=planned,
                    max_attempts=self.max_name_attempts,
                )
                target = join(self.unused_assets_dir, target_name)
                if not dry_run:
                    await self.provider.copy_file(leftover.path, target)
            except OSError as exc:
                self._fail(summary, leftover.name, f"could not move leftover: {exc}")
                continue

            planned.add(target)
            summary.manifest.moves.append(
                MoveRecord(filename=leftover.name, original_path=leftover.path, new_path=target)
            )
            summary.leftovers_relocated += 1
            if not dry_run:
                try:
                    await self.provider.delete_file(leftover.path)
                except OSError as exc:
                    self._fail(summary, leftover.name, f"could not remove source: {exc}")

    async def _finish(self, summary: OperationSummary, dry_run: bool) -> OperationSummary:
        if dry_run:
            return summary
        try:
            if summary.manifest.moves:
                await self.repository.save_manifest(summary.manifest)
            elif summary.deleted_duplicates:
                # The older record no longer describes the folder.
                await self.repository.delete_manifest()
        except (StateError, OSError) as exc:
            self._fail(summary, self.repository.undo_filename, str(exc))
        summary.pruned = await self.prune_empty_directories()
        LOGGER.info(
            "%s complete: %d moved, %d copies, %d duplicates deleted, %d leftovers, %d failures.",
            summary.operation.capitalize(),
            summary.moved,
            summary.copies,
            summary.deleted_duplicates,
            summary.leftovers_relocated,
            len(summary.failures),
        )
        return summary

    async def _prune(self, path: str, removed: List[str]) -> bool:
        try:
            entries = await self.provider.list_dir(path)
        except OSError:
            return False

        has_content = False
        for entry in entries:
            if entry.kind == "file":
                if entry.name.lower() not in MARKER_FILES:
                    has_content = True
                continue
            if await self._prune(entry.path, removed):
                try:
                    await self.provider.remove_dir(entry.path, recursive=True)
                    removed.append(entry.path)
                except OSError:
                    has_content = True
            else:
                has_content = True
        return not has_content

    @staticmethod
    def _fail(summary: OperationSummary, name: str, message: str) -> None:
        LOGGER.error("%s: %s", name, message)
        summary.failures.append(f"{name}: {message}")


__all__ = ["FileOperationEngine", "MARKER_FILES"]

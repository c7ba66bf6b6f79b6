"""High-level ingestion: scan, rebuild bundles, fingerprint."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from iconic.config.models import BundleFormats
from iconic.filesystem import FileSystemProvider

from .bundles import reconstruct_bundles
from .discovery import FileScanner
from .fingerprint import fingerprint_bundles
from .models import ScanResult

LOGGER = logging.getLogger(__name__)


class IngestionPipeline:
    """Coordinate discovery, bundle reconstruction and fingerprinting."""

    def __init__(
        self,
        provider: FileSystemProvider,
        formats: BundleFormats | None = None,
        *,
        chunk_size: int = 20,
    ) -> None:
        self.provider = provider
        self.formats = formats or BundleFormats()
        self.chunk_size = chunk_size
        self.scanner = FileScanner(provider)

    async def run(
        self, on_progress: Optional[Callable[[int, int], None]] = None
    ) -> ScanResult:
        """Scan the provider root and return fingerprinted bundles plus leftovers."""
        files = await self.scanner.scan()
        result = reconstruct_bundles(files, self.formats)
        LOGGER.info(
            "Found %d bundles and %d other files in %s.",
            len(result.bundles),
            len(result.leftovers),
            self.provider.root_name,
        )
        bundles = await fingerprint_bundles(
            self.provider,
            result.bundles,
            chunk_size=self.chunk_size,
            on_progress=on_progress,
        )
        return ScanResult(bundles=bundles, leftovers=result.leftovers)


__all__ = ["IngestionPipeline"]

"""Pluggable, best-effort image enrichment for bundles without a picture."""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Protocol, Sequence

from PIL import Image, UnidentifiedImageError

from iconic.filesystem import FileSystemProvider, join

from .models import Asset, Bundle

LOGGER = logging.getLogger(__name__)


class ImageEnricher(Protocol):
    """Source of preview images for bundles."""

    async def fetch(self, bundle: Bundle) -> Optional[bytes]:
        """Return encoded image bytes for ``bundle`` or ``None`` when nothing was found."""


@dataclass(slots=True)
class EnrichmentReport:
    """Outcome of an enrichment pass.

    Attributes:
        successful: Bundles that received a new image sidecar.
        failed: Bundles for which no usable image was produced.
        skipped: Bundles that already had an image.
        bundles: Updated snapshots for the bundles that gained an image.
    """

    successful: int = 0
    failed: int = 0
    skipped: int = 0
    bundles: List[Bundle] = field(default_factory=list)


def to_png(data: bytes) -> bytes:
    """Validate ``data`` as an image and re-encode it as PNG.

    Raises:
        ValueError: If ``data`` is not a readable image.
    """
    try:
        with Image.open(io.BytesIO(data)) as probe:
            probe.verify()
        with Image.open(io.BytesIO(data)) as image:
            buffer = io.BytesIO()
            image.save(buffer, format="PNG")
    except (UnidentifiedImageError, OSError, SyntaxError) as exc:
        raise ValueError(f"Not a usable image: {exc}") from exc
    return buffer.getvalue()


async def enrich_missing_images(
    provider: FileSystemProvider,
    bundles: Sequence[Bundle],
    enricher: ImageEnricher,
) -> EnrichmentReport:
    """Ask ``enricher`` for an image for every bundle that lacks one."""
    report = EnrichmentReport()
    for bundle in bundles:
        if bundle.has_image:
            report.skipped += 1
            continue
        try:
            payload = await enricher.fetch(bundle)
            if not payload:
                LOGGER.info("No image found for %s.", bundle.name)
                report.failed += 1
                continue
            png = to_png(payload)
            filename = f"{bundle.filename.rsplit('.', 1)[0]}.png"
            target = join(bundle.parent, filename)
            await provider.write_bytes(target, png)
        except (OSError, ValueError) as exc:
            LOGGER.warning("Image enrichment failed for %s: %s", bundle.name, exc)
            report.failed += 1
            continue

        asset = Asset(filename=filename, type="image", path=target)
        report.bundles.append(bundle.evolve(assets=[*bundle.assets, asset]))
        report.successful += 1
    return report


__all__ = ["EnrichmentReport", "ImageEnricher", "enrich_missing_images", "to_png"]

"""Image enrichment tests."""

from __future__ import annotations

import asyncio
import io
from pathlib import Path

import pytest
from conftest import RecordingSleep, write_file
from PIL import Image

from iconic.config import IconicConfig, resolve_with_precedence
from iconic.filesystem import LocalFileSystem
from iconic.ingestion import IngestionPipeline
from iconic.ingestion.enrichment import enrich_missing_images, to_png
from iconic.library import Library, LibraryError


def _jpeg_bytes() -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (4, 4), color=(200, 30, 30)).save(buffer, format="JPEG")
    return buffer.getvalue()


class _Enricher:
    def __init__(self, payloads):
        self.payloads = payloads
        self.requested = []

    async def fetch(self, bundle):
        self.requested.append(bundle.name)
        return self.payloads.get(bundle.name)


def test_to_png_reencodes_and_rejects_garbage() -> None:
    png = to_png(_jpeg_bytes())

    assert png.startswith(b"\x89PNG")
    with pytest.raises(ValueError):
        to_png(b"definitely not an image")


def test_enrich_missing_images_reports_outcomes(library_root: Path) -> None:
    write_file(library_root, "Synth/Serum.fst", b"serum")
    write_file(library_root, "Synth/Serum.png", b"existing")
    write_file(library_root, "Synth/Vital.fst", b"vital")
    write_file(library_root, "Synth/Massive.fst", b"massive")
    write_file(library_root, "Synth/Sylenth.fst", b"sylenth")
    provider = LocalFileSystem(library_root)
    bundles = asyncio.run(IngestionPipeline(provider).run()).bundles
    enricher = _Enricher({"Vital": _jpeg_bytes(), "Massive": b"garbage"})

    report = asyncio.run(enrich_missing_images(provider, bundles, enricher))

    assert (report.successful, report.failed, report.skipped) == (1, 2, 1)
    assert "Serum" not in enricher.requested
    assert (library_root / "Synth" / "Vital.png").read_bytes().startswith(b"\x89PNG")
    assert not (library_root / "Synth" / "Massive.png").exists()
    updated = report.bundles[0]
    assert updated.name == "Vital" and updated.has_image
    assert updated.assets[0].path == "Synth/Vital.png"


def test_library_runs_enrichment_on_open(library_root: Path) -> None:
    write_file(library_root, "Vital.fst", b"vital")
    config = resolve_with_precedence(
        defaults=IconicConfig(), cli_overrides={"organization.download_images": True}
    )
    library = Library(
        library_root,
        config,
        enricher=_Enricher({"Vital": _jpeg_bytes()}),
        sleep=RecordingSleep(),
    )

    asyncio.run(library.open())

    assert library.resolve(["Vital"])[0].has_image
    assert (library_root / "Vital.png").exists()


def test_enrich_images_requires_an_enricher(library_root: Path) -> None:
    library = Library(library_root, IconicConfig(), sleep=RecordingSleep())

    with pytest.raises(LibraryError):
        asyncio.run(library.enrich_images())

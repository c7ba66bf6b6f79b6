"""Rebuild bundles from a flat list of scanned files."""

from __future__ import annotations

from typing import Dict, Iterable, List, Tuple

from iconic.config.models import BundleFormats
from iconic.filesystem import split_name

from .models import Asset, Bundle, LeftoverFile, ScannedFile, ScanResult

_Key = Tuple[str, str]


def reconstruct_bundles(files: Iterable[ScannedFile], formats: BundleFormats) -> ScanResult:
    """Group files into bundles keyed by ``(parent folder, base name)``.

    Main files seed bundles. Sidecars attach to the bundle sharing their key no
    matter which came first in ``files``; sidecars without a bundle, and every
    other extension, become leftovers.
    """
    mains: Dict[_Key, Bundle] = {}
    candidates: Dict[_Key, List[ScannedFile]] = {}
    leftovers: List[LeftoverFile] = []

    for scanned in files:
        stem, extension = split_name(scanned.name)
        extension = extension.lower()
        key = (scanned.parent, stem)

        if extension == formats.main_extension:
            mains[key] = Bundle(
                id=scanned.path,
                name=stem,
                filename=scanned.name,
                path=scanned.path,
                parent=scanned.parent,
                file_size=scanned.size,
                date_modified=scanned.modified,
            )
        elif extension in formats.image_extensions or extension in formats.info_extensions:
            candidates.setdefault(key, []).append(scanned)
        else:
            leftovers.append(_leftover(scanned))

    bundles: List[Bundle] = []
    for key, bundle in mains.items():
        sidecars = candidates.pop(key, [])
        if sidecars:
            bundle = bundle.evolve(assets=[_asset(item, formats) for item in sidecars])
        bundles.append(bundle)

    for orphans in candidates.values():
        leftovers.extend(_leftover(item) for item in orphans)

    return ScanResult(bundles=bundles, leftovers=leftovers)


def _asset(scanned: ScannedFile, formats: BundleFormats) -> Asset:
    extension = split_name(scanned.name)[1].lower()
    kind = "image" if extension in formats.image_extensions else "info"
    return Asset(filename=scanned.name, type=kind, path=scanned.path)


def _leftover(scanned: ScannedFile) -> LeftoverFile:
    return LeftoverFile(path=scanned.path, name=scanned.name, parent=scanned.parent)


__all__ = ["reconstruct_bundles"]

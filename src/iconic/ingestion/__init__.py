"""Scanning, bundle reconstruction and fingerprinting."""

from .bundles import reconstruct_bundles
from .discovery import FileScanner
from .fingerprint import fingerprint_bundles, normalize_identity, quick_fingerprint
from .models import Asset, Bundle, BundleStatus, LeftoverFile, ScannedFile, ScanResult
from .pipeline import IngestionPipeline

__all__ = [
    "Asset",
    "Bundle",
    "BundleStatus",
    "FileScanner",
    "IngestionPipeline",
    "LeftoverFile",
    "ScanResult",
    "ScannedFile",
    "fingerprint_bundles",
    "normalize_identity",
    "quick_fingerprint",
    "reconstruct_bundles",
]

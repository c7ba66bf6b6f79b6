"""Duplicate resolution and on-disk relocation of bundles."""

from .duplicates import apply_duplicate_patches, best_name, resolve_duplicates
from .errors import MissingManifestError, OrganizationError
from .executor import MARKER_FILES, FileOperationEngine
from .models import DuplicatePatch, OperationSummary
from .naming import MAX_NAME_ATTEMPTS, unique_filename

__all__ = [
    "DuplicatePatch",
    "FileOperationEngine",
    "MARKER_FILES",
    "MAX_NAME_ATTEMPTS",
    "MissingManifestError",
    "OperationSummary",
    "OrganizationError",
    "apply_duplicate_patches",
    "best_name",
    "resolve_duplicates",
    "unique_filename",
]

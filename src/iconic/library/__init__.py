"""Library controller: owned bundle collection, categories, edits and auto-save."""

from .autosave import AutoSaver
from .categories import CategoryList, validate_bundle_name, validate_name
from .collection import BundleCollection
from .controller import Library, LibraryStatus
from .errors import (
    BundleNameError,
    CategoryError,
    LibraryError,
    UnknownBundleError,
    ValidationError,
)

__all__ = [
    "AutoSaver",
    "BundleCollection",
    "BundleNameError",
    "CategoryError",
    "CategoryList",
    "Library",
    "LibraryError",
    "LibraryStatus",
    "UnknownBundleError",
    "ValidationError",
    "validate_bundle_name",
    "validate_name",
]

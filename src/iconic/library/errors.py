"""Errors raised by library-level operations."""


class LibraryError(Exception):
    """Base exception for library controller failures."""


class ValidationError(LibraryError, ValueError):
    """Raised when user input is rejected; nothing is mutated."""


class CategoryError(ValidationError):
    """Raised for empty, invalid or duplicate category names."""


class BundleNameError(ValidationError):
    """Raised for empty or invalid bundle display names."""


class UnknownBundleError(LibraryError, KeyError):
    """Raised when a bundle reference matches nothing in the collection."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "Unknown bundle"

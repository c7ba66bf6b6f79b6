"""Errors raised by relocation operations."""


class OrganizationError(Exception):
    """Base exception for file operation failures."""


class MissingManifestError(OrganizationError):
    """Raised when a revert is requested but no undo manifest exists."""

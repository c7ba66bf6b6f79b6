"""Filesystem providers used by the scanner and operation engine."""

from .base import DirEntry, FileSystemProvider, join, parent_of, split_name
from .local import LocalFileSystem

__all__ = [
    "DirEntry",
    "FileSystemProvider",
    "LocalFileSystem",
    "join",
    "parent_of",
    "split_name",
]

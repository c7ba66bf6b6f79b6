"""The ordered, case-insensitively unique category list."""

from __future__ import annotations

import re
from typing import Iterable, Iterator, List, Optional

from .errors import BundleNameError, CategoryError

# Characters that are invalid in file and folder names on common platforms.
INVALID_NAME_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')


def validate_name(
    value: str,
    *,
    error: type[Exception] = CategoryError,
    kind: str = "category",
) -> str:
    """Return ``value`` stripped, or raise ``error`` if it cannot name a folder or file."""
    cleaned = (value or "").strip()
    if not cleaned:
        raise error(f"The {kind} name must not be empty.")
    if INVALID_NAME_CHARS.search(cleaned):
        raise error(
            f"Invalid {kind} name {cleaned!r}: "
            '<>:"/\\|?* and control characters are not allowed.'
        )
    return cleaned


def validate_bundle_name(value: str) -> str:
    return validate_name(value, error=BundleNameError, kind="bundle")


class CategoryList:
    """Categories in display order; lookups ignore case."""

    def __init__(self, names: Iterable[str] = ()) -> None:
        self._names: List[str] = []
        for name in names:
            cleaned = validate_name(name)
            if self.find(cleaned) is None:
                self._names.append(cleaned)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._names))

    def __len__(self) -> int:
        return len(self._names)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.find(name) is not None

    def to_list(self) -> List[str]:
        return list(self._names)

    def find(self, name: str) -> Optional[str]:
        """Return the stored spelling of ``name`` or ``None``."""
        lowered = name.strip().lower()
        for existing in self._names:
            if existing.lower() == lowered:
                return existing
        return None

    def add(self, name: str) -> str:
        """Append a category.

        Raises:
            CategoryError: If the name is invalid or already present.
        """
        cleaned = validate_name(name)
        if self.find(cleaned) is not None:
            raise CategoryError(f"Category {cleaned!r} already exists.")
        self._names.append(cleaned)
        return cleaned

    def rename(self, old: str, new: str) -> str:
        """Rename ``old`` in place, keeping its position.

        Raises:
            CategoryError: If ``old`` is unknown or ``new`` is invalid or taken.
        """
        current = self.find(old)
        if current is None:
            raise CategoryError(f"Unknown category {old!r}.")
        cleaned = validate_name(new)
        clash = self.find(cleaned)
        if clash is not None and clash != current:
            raise CategoryError(f"Category {cleaned!r} already exists.")
        self._names[self._names.index(current)] = cleaned
        return cleaned

    def remove(self, name: str) -> str:
        current = self.find(name)
        if current is None:
            raise CategoryError(f"Unknown category {name!r}.")
        self._names.remove(current)
        return current


__all__ = ["CategoryList", "INVALID_NAME_CHARS", "validate_bundle_name", "validate_name"]

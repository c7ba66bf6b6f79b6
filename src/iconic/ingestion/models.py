"""Data models produced by scanning a preset library."""

from __future__ import annotations

from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .fingerprint import normalize_identity


class BundleStatus(str, Enum):
    """Lifecycle of a bundle through analysis and relocation."""

    PENDING = "pending"
    ANALYZING = "analyzing"
    CATEGORIZED = "categorized"
    ERROR = "error"
    MOVED = "moved"


class ScannedFile(BaseModel):
    """A file discovered below the library root.

    Attributes:
        path: Root-relative POSIX path; also the handle used for later I/O.
        name: File name including extension.
        parent: Root-relative path of the containing folder (``""`` at top level).
        size: Size in bytes.
        modified: Modification time in epoch milliseconds.
    """

    model_config = ConfigDict(frozen=True)

    path: str
    name: str
    parent: str = ""
    size: int = 0
    modified: int = 0


class Asset(BaseModel):
    """A sidecar file that travels with a bundle."""

    model_config = ConfigDict(frozen=True)

    filename: str
    type: Literal["info", "image"]
    path: str


class LeftoverFile(BaseModel):
    """A scanned file that is not part of any bundle."""

    model_config = ConfigDict(frozen=True)

    path: str
    name: str
    parent: str = ""


class Bundle(BaseModel):
    """The organizable unit: a main preset file plus its sidecars.

    ``id`` is the root-relative path of the main file when it was discovered and
    never changes. Instances are immutable; updates go through :meth:`evolve`.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    normalized_name: str = ""
    filename: str
    path: str
    parent: str = ""
    category: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    assets: List[Asset] = Field(default_factory=list)
    status: BundleStatus = BundleStatus.PENDING
    is_duplicate: bool = False
    content_hash: str = ""
    file_size: int = 0
    date_modified: int = 0

    @model_validator(mode="before")
    @classmethod
    def _derive(cls, data):
        if isinstance(data, dict):
            data = dict(data)
            name = data.get("name", "")
            data["normalized_name"] = normalize_identity(name)
            tags = data.get("tags")
            if tags:
                data["tags"] = list(dict.fromkeys(tags))
        return data

    @property
    def has_image(self) -> bool:
        """Whether an image sidecar is attached."""
        return any(asset.type == "image" for asset in self.assets)

    def evolve(self, **changes) -> "Bundle":
        """Return a copy with ``changes`` applied and derived fields recomputed."""
        data = self.model_dump()
        data.update(changes)
        return Bundle.model_validate(data)


class ScanResult(BaseModel):
    """Bundles and leftovers reconstructed from one scan."""

    bundles: List[Bundle] = Field(default_factory=list)
    leftovers: List[LeftoverFile] = Field(default_factory=list)


__all__ = [
    "Asset",
    "Bundle",
    "BundleStatus",
    "LeftoverFile",
    "ScanResult",
    "ScannedFile",
]

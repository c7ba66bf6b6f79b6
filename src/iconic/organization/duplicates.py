"""Content- and identity-based duplicate resolution."""

from __future__ import annotations

import logging
import re
from typing import Callable, Dict, Iterable, List, Sequence

from iconic.ingestion.fingerprint import SENTINEL_FINGERPRINTS
from iconic.ingestion.models import Bundle

from .models import DuplicatePatch

LOGGER = logging.getLogger(__name__)

_NUMBERED_SUFFIX = re.compile(r"[(_]\d+\)?$")


def resolve_duplicates(bundles: Sequence[Bundle]) -> List[DuplicatePatch]:
    """Pick one survivor per duplicate group and flag the rest.

    Bundles are first grouped by content fingerprint (sentinels excluded), then
    the bundles not already handled are grouped by normalized identity. In each
    group of two or more the most recently modified bundle survives and takes
    the cleanest display name found in the group.

    Args:
        bundles: Fingerprinted bundles in scan order.

    Returns:
        List[DuplicatePatch]: One patch per bundle that belongs to a group.
    """

    patches: List[DuplicatePatch] = []
    handled: set[str] = set()

    by_content = _group(
        bundles,
        lambda bundle: ""
        if bundle.content_hash in SENTINEL_FINGERPRINTS
        else bundle.content_hash,
    )
    patches.extend(_resolve_groups(by_content.values(), handled))

    remaining = [bundle for bundle in bundles if bundle.id not in handled]
    by_identity = _group(remaining, lambda bundle: bundle.normalized_name)
    patches.extend(_resolve_groups(by_identity.values(), handled))

    flagged = sum(1 for patch in patches if patch.is_duplicate)
    if flagged:
        LOGGER.info("Flagged %d duplicates across %d bundles.", flagged, len(bundles))
    return patches


def apply_duplicate_patches(
    bundles: Iterable[Bundle], patches: Iterable[DuplicatePatch]
) -> List[Bundle]:
    """Return ``bundles`` with ``patches`` applied by id."""
    by_id = {patch.id: patch for patch in patches}
    updated: List[Bundle] = []
    for bundle in bundles:
        patch = by_id.get(bundle.id)
        if patch is None:
            updated.append(bundle)
            continue
        changes: Dict[str, object] = {"is_duplicate": patch.is_duplicate}
        if patch.name:
            changes["name"] = patch.name
        updated.append(bundle.evolve(**changes))
    return updated


def best_name(group: Sequence[Bundle]) -> str:
    """Shortest name once a trailing ``(N)``/``_N`` is ignored, then shortest overall."""
    ranked = sorted(
        group,
        key=lambda bundle: (len(_NUMBERED_SUFFIX.sub("", bundle.name)), len(bundle.name)),
    )
    return ranked[0].name


def _group(
    bundles: Iterable[Bundle], key: Callable[[Bundle], str]
) -> Dict[str, List[Bundle]]:
    groups: Dict[str, List[Bundle]] = {}
    for bundle in bundles:
        value = key(bundle)
        if value:
            groups.setdefault(value, []).append(bundle)
    return groups


def _resolve_groups(
    groups: Iterable[List[Bundle]], handled: set[str]
) -> List[DuplicatePatch]:
    patches: List[DuplicatePatch] = []
    for group in groups:
        if len(group) < 2:
            continue
        survivor = sorted(group, key=lambda bundle: -bundle.date_modified)[0]
        name = best_name(group)
        patches.append(
            DuplicatePatch(
                id=survivor.id,
                is_duplicate=False,
                name=name if name != survivor.name else None,
            )
        )
        handled.add(survivor.id)
        for bundle in group:
            if bundle.id != survivor.id:
                patches.append(DuplicatePatch(id=bundle.id, is_duplicate=True))
                handled.add(bundle.id)
    return patches


__all__ = ["apply_duplicate_patches", "best_name", "resolve_duplicates"]

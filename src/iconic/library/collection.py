"""Id-keyed container owning the in-memory bundle snapshots."""

from __future__ import annotations

from typing import Callable, Dict, Iterable, Iterator, List, Optional

from iconic.ingestion.models import Bundle


class BundleCollection:
    """Ordered bundles keyed by id; updates replace whole entries.

    ``on_change`` is invoked after every mutation that changed at least one entry.
    """

    def __init__(
        self,
        bundles: Iterable[Bundle] = (),
        *,
        on_change: Optional[Callable[[], None]] = None,
    ) -> None:
        self._items: Dict[str, Bundle] = {bundle.id: bundle for bundle in bundles}
        self.on_change = on_change

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[Bundle]:
        return iter(list(self._items.values()))

    def __contains__(self, bundle_id: object) -> bool:
        return bundle_id in self._items

    def get(self, bundle_id: str) -> Optional[Bundle]:
        return self._items.get(bundle_id)

    def values(self) -> List[Bundle]:
        return list(self._items.values())

    def find_by_name(self, name: str) -> List[Bundle]:
        """Bundles whose display name equals ``name`` exactly."""
        return [bundle for bundle in self._items.values() if bundle.name == name]

    def replace(self, bundles: Iterable[Bundle]) -> int:
        """Swap in new snapshots for known ids; unknown ids are ignored.

        Returns:
            int: Number of entries that changed.
        """
        changed = 0
        for bundle in bundles:
            current = self._items.get(bundle.id)
            if current is None or current == bundle:
                continue
            self._items[bundle.id] = bundle
            changed += 1
        if changed:
            self._notify()
        return changed

    def reset(self, bundles: Iterable[Bundle]) -> None:
        """Replace the whole working set, e.g. after a re-scan."""
        self._items = {bundle.id: bundle for bundle in bundles}
        self._notify()

    def _notify(self) -> None:
        if self.on_change is not None:
            self.on_change()


__all__ = ["BundleCollection"]

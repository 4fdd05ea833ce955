"""Editable working copy of an ordered collection.

The admin console never splices a baseline list in place. It clones the
baseline into a WorkingCollection, applies explicit edits, and hands the
frozen result to the diff engine. The baseline is never mutated.

Edits:
    - move: drag an item to a new position
    - remove: drop an item (persisted ones are deleted on reconcile)
    - replace_content: swap an item's binary content
    - append: add new items at the end
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from toonshelf.collection.models import Item, ItemState, OrderedCollection, PendingPayload, Scope

logger = logging.getLogger(__name__)

__all__ = ["WorkingCollection"]


class WorkingCollection:
    """Mutable list of items cloned from a baseline.

    Example:
        >>> working = WorkingCollection.from_baseline(baseline)
        >>> working.move("img-3", 0)
        >>> working.remove("img-2")
        >>> working.append(PendingPayload(data, "image/png", "page-4.png"))
        >>> change_set = diff(baseline, working.snapshot())

    """

    def __init__(self, scope: Scope, items: Iterable[Item] = ()) -> None:
        self._scope = scope
        self._items: list[Item] = list(items)

    @classmethod
    def from_baseline(cls, baseline: OrderedCollection) -> WorkingCollection:
        return cls(baseline.scope, baseline.items)

    @property
    def scope(self) -> Scope:
        return self._scope

    @property
    def keys(self) -> list[str]:
        return [i.key for i in self._items]

    def __len__(self) -> int:
        return len(self._items)

    def _index(self, key: str) -> int:
        for idx, item in enumerate(self._items):
            if item.key == key:
                return idx
        raise KeyError(f"No item {key!r} in working collection for {self._scope}")

    def get(self, key: str) -> Item:
        return self._items[self._index(key)]

    def move(self, key: str, new_index: int) -> None:
        """Move an item so it ends up at new_index (clamped to the list)."""
        old_index = self._index(key)
        item = self._items.pop(old_index)
        new_index = max(0, min(new_index, len(self._items)))
        self._items.insert(new_index, item)
        logger.debug("Moved %s: %d -> %d", key, old_index, new_index)

    def remove(self, key: str) -> Item:
        """Drop an item from the list and return it."""
        return self._items.pop(self._index(key))

    def replace_content(self, key: str, payload: PendingPayload) -> None:
        """Attach new content to an item.

        Persisted items become REPLACED; a NEW item just swaps its pending
        payload and stays NEW.
        """
        idx = self._index(key)
        item = self._items[idx]
        if item.state is ItemState.REMOVED:
            raise ValueError(f"Cannot replace content of removed item {key!r}")
        state = ItemState.NEW if item.state is ItemState.NEW else ItemState.REPLACED
        self._items[idx] = item.with_changes(pending=payload, state=state)

    def append(self, payload: PendingPayload, **attributes: object) -> Item:
        """Append a new item carrying content to upload; returns it."""
        item = Item(id=None, pending=payload, state=ItemState.NEW, attributes=attributes)
        self._items.append(item)
        return item

    def extend(self, payloads: Iterable[PendingPayload]) -> list[Item]:
        return [self.append(p) for p in payloads]

    def snapshot(self) -> OrderedCollection:
        """Freeze the current list for diffing."""
        return OrderedCollection(scope=self._scope, items=tuple(self._items))

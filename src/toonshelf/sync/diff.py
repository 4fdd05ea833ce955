"""Diff engine: classify a working collection against its baseline.

The diff is a pure function. It reads two OrderedCollection snapshots and
returns a ChangeSet of four disjoint lists:

- to_delete: baseline items whose id is gone from the working list (or
  still present but flagged REMOVED)
- to_create: working items flagged NEW
- to_replace: working items flagged REPLACED
- to_reorder: EXISTING working items whose position changed

The final order of every surviving working item is its zero-based index
among the surviving items, so orders are dense and unique by
construction. Items needing no write are not listed.

Public API:
    - PlannedItem: One classified item with its target order
    - ChangeSet: Classified diff result
    - diff: Main entry point
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from toonshelf.collection.models import Item, ItemState, OrderedCollection, Scope
from toonshelf.core.exceptions import ChangeSetError

logger = logging.getLogger(__name__)

__all__ = ["PlannedItem", "ChangeSet", "diff"]


@dataclass(frozen=True)
class PlannedItem:
    """A classified item and what reconciliation must write for it.

    Attributes:
        item: Working item (baseline item for deletions).
        order: Final position; -1 for deletions.
        previous: Baseline counterpart (None for creations). Its content_ref
            is the blob a replacement supersedes.

    """

    item: Item
    order: int
    previous: Item | None = None

    @property
    def key(self) -> str:
        return self.item.key

    def __repr__(self) -> str:
        return f"PlannedItem({self.key!r}, order={self.order})"


@dataclass(frozen=True)
class ChangeSet:
    """Classified difference between a baseline and a working collection.

    Examples:
        >>> change_set = diff(baseline, working)
        >>> change_set.summary()
        'ChangeSet(Comics/c1/Episodes/e1/Images): 1 create, 0 replace, 2 reorder, 1 delete'

    """

    scope: Scope
    baseline: OrderedCollection
    to_create: tuple[PlannedItem, ...] = ()
    to_replace: tuple[PlannedItem, ...] = ()
    to_reorder: tuple[PlannedItem, ...] = ()
    to_delete: tuple[PlannedItem, ...] = ()
    final_size: int = 0

    @property
    def is_empty(self) -> bool:
        return not (self.to_create or self.to_replace or self.to_reorder or self.to_delete)

    @property
    def uploads(self) -> tuple[PlannedItem, ...]:
        """Items whose content must be written, replacements first."""
        return self.to_replace + self.to_create

    def summary(self) -> str:
        return (
            f"ChangeSet({self.scope}): {len(self.to_create)} create, "
            f"{len(self.to_replace)} replace, {len(self.to_reorder)} reorder, "
            f"{len(self.to_delete)} delete"
        )


def _check_scopes(baseline: OrderedCollection, working: OrderedCollection) -> None:
    if baseline.scope != working.scope:
        raise ChangeSetError(f"Working collection for {working.scope} diffed against baseline of {baseline.scope}")


def _index_baseline(baseline: OrderedCollection) -> dict[str, Item]:
    index: dict[str, Item] = {}
    for item in baseline.items:
        if item.id is None:
            raise ChangeSetError(f"Baseline of {baseline.scope} holds an unpersisted item {item.key!r}")
        if item.id in index:
            raise ChangeSetError(f"Baseline of {baseline.scope} holds id {item.id!r} twice")
        index[item.id] = item
    return index


def _validate_item(item: Item, known: dict[str, Item], scope: Scope) -> None:
    if item.state is ItemState.NEW:
        if item.id is not None:
            raise ChangeSetError(f"New item {item.key!r} in {scope} already has a store id; mark it replaced instead")
        if item.pending is None:
            raise ChangeSetError(f"New item {item.key!r} in {scope} has no content to upload")
        return
    if item.id is None or item.id not in known:
        raise ChangeSetError(f"Item {item.key!r} in {scope} is not part of the baseline; reload before editing")
    if item.state is ItemState.REPLACED and item.pending is None:
        raise ChangeSetError(f"Replaced item {item.key!r} in {scope} has no content to upload")


def diff(baseline: OrderedCollection, working: OrderedCollection) -> ChangeSet:
    """Classify every change between baseline and working list.

    Args:
        baseline: Last confirmed persisted snapshot of the scope.
        working: Edited list; position in ``working.items`` is the new order.

    Returns:
        ChangeSet with deterministic contents: deletions in baseline order,
        everything else in working-list order.

    Raises:
        ChangeSetError: If the working list repeats an item, references an
            item not in the baseline, flags a stored item as NEW, lacks
            content for a NEW/REPLACED item, or belongs to another scope.

    Example:
        >>> # baseline [1:0, 2:1, 3:2]; working [3, 1, X(new)]
        >>> cs = diff(baseline, working)
        >>> [p.key for p in cs.to_delete], [(p.key, p.order) for p in cs.to_reorder]
        (['2'], [('3', 0), ('1', 1)])

    """
    _check_scopes(baseline, working)
    known = _index_baseline(baseline)
    scope = baseline.scope

    seen: set[str] = set()
    survivors: list[Item] = []
    for item in working.items:
        if item.key in seen:
            raise ChangeSetError(f"Item {item.key!r} appears twice in working collection for {scope}")
        seen.add(item.key)
        if item.state is ItemState.REMOVED:
            continue
        _validate_item(item, known, scope)
        survivors.append(item)

    surviving_ids = {item.id for item in survivors if item.id is not None}

    to_delete = tuple(PlannedItem(item=b, order=-1, previous=b) for b in baseline.items if b.id not in surviving_ids)

    to_create: list[PlannedItem] = []
    to_replace: list[PlannedItem] = []
    to_reorder: list[PlannedItem] = []

    for order, item in enumerate(survivors):
        if item.state is ItemState.NEW:
            to_create.append(PlannedItem(item=item, order=order))
            continue

        previous = known[item.id]  # type: ignore[index]
        if item.state is ItemState.REPLACED:
            to_replace.append(PlannedItem(item=item, order=order, previous=previous))
        elif previous.order != order:
            to_reorder.append(PlannedItem(item=item, order=order, previous=previous))

    change_set = ChangeSet(
        scope=scope,
        baseline=baseline,
        to_create=tuple(to_create),
        to_replace=tuple(to_replace),
        to_reorder=tuple(to_reorder),
        to_delete=to_delete,
        final_size=len(survivors),
    )
    logger.debug("%s", change_set.summary())
    return change_set

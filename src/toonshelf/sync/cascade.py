"""Cascading deletion of an item and everything beneath it.

Deleting a title must not leave episodes, images or comments behind, and
must never remove the parent record while children still exist. The
deleter walks the scope tree depth-first and empties the deepest scopes
first, each one through the Reconciler with an empty working list (which
deletes the children's blobs and records in one batch per scope). The
item itself goes last, removed from its own scope's ordered collection so
the remaining siblings are re-densified in the same batch.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from toonshelf.collection.models import OrderedCollection, Scope
from toonshelf.collection.working import WorkingCollection
from toonshelf.core.exceptions import ChangeSetError
from toonshelf.sync.diff import diff
from toonshelf.sync.reconciler import ReconciliationResult, Reconciler

logger = logging.getLogger(__name__)

__all__ = ["CascadeReport", "CascadeDeleter"]


@dataclass
class CascadeReport:
    """What a cascading delete removed.

    Attributes:
        deleted: scope path -> number of records deleted there.
        stale_refs: Blobs whose deletion failed (left for an orphan sweep).

    """

    deleted: dict[str, int] = field(default_factory=dict)
    stale_refs: list[str] = field(default_factory=list)

    def record(self, result: ReconciliationResult) -> None:
        count = len(result.change_set.to_delete)
        if count:
            path = result.change_set.scope.path
            self.deleted[path] = self.deleted.get(path, 0) + count
        self.stale_refs.extend(result.stale_refs)

    @property
    def total(self) -> int:
        return sum(self.deleted.values())

    def summary(self) -> str:
        return f"Cascade delete: {self.total} records in {len(self.deleted)} scopes, {len(self.stale_refs)} stale blobs"


class CascadeDeleter:
    """Bottom-up deletion built on the Reconciler."""

    def __init__(self, reconciler: Reconciler) -> None:
        self._reconciler = reconciler

    async def delete_item(self, scope: Scope, item_id: str) -> CascadeReport:
        """Delete one item of ``scope`` with all of its descendants.

        Holds the parent scope's commit slot for the whole cascade so no
        edit of the siblings can interleave.

        Returns:
            CascadeReport of everything removed.

        Raises:
            ChangeSetError: If the item does not exist in the scope.
            ConcurrentEditRejected: If any affected scope has a commit in flight.
            ReconcileError: If a child scope could not be emptied; the
                parent record is left in place.

        """
        reconciler = self._reconciler
        async with reconciler.registry.hold(scope) as token:
            baseline = await reconciler.load(scope)
            if item_id not in baseline:
                raise ChangeSetError(f"No item {item_id!r} in {scope}")

            report = CascadeReport()
            await self._clear_children(scope, item_id, report)

            working = WorkingCollection.from_baseline(baseline)
            working.remove(item_id)
            result = await reconciler.reconcile(scope, diff(baseline, working.snapshot()), token=token)
            report.record(result)

        logger.info("%s (root %s/%s)", report.summary(), scope, item_id)
        return report

    async def _clear_children(self, scope: Scope, item_id: str, report: CascadeReport) -> None:
        for child_scope in scope.child_scopes(item_id):
            children = await self._reconciler.load(child_scope)
            for child in children:
                assert child.id is not None
                await self._clear_children(child_scope, child.id, report)
            if not children.items:
                continue
            logger.debug("Emptying %s (%d records)", child_scope, len(children))
            result = await self._reconciler.commit(children, OrderedCollection.empty(child_scope))
            report.record(result)

"""Ordered collections: data model, working copies and read-side navigation.

Usage:
    from toonshelf.collection import OrderedCollection, Scope, WorkingCollection, locate

    baseline = OrderedCollection.from_records(scope, records)
    working = WorkingCollection.from_baseline(baseline)
    neighbors = locate(baseline, "ep-2")
"""

from toonshelf.collection.models import (
    DocumentRecord,
    Item,
    ItemState,
    OrderedCollection,
    OrderingKey,
    PendingPayload,
    Scope,
)
from toonshelf.collection.navigator import Neighbors, first_id, locate
from toonshelf.collection.working import WorkingCollection

__all__ = [
    "DocumentRecord",
    "Item",
    "ItemState",
    "OrderedCollection",
    "OrderingKey",
    "PendingPayload",
    "Scope",
    "WorkingCollection",
    "Neighbors",
    "locate",
    "first_id",
]

"""Reconciliation engine: diff, in-flight guard, reconciler and cascading delete."""

from toonshelf.sync.cascade import CascadeDeleter, CascadeReport
from toonshelf.sync.diff import ChangeSet, PlannedItem, diff
from toonshelf.sync.inflight import InFlightRegistry, InFlightToken
from toonshelf.sync.reconciler import Reconciler, ReconciliationResult, blob_key

__all__ = [
    "CascadeDeleter",
    "CascadeReport",
    "ChangeSet",
    "PlannedItem",
    "diff",
    "InFlightRegistry",
    "InFlightToken",
    "Reconciler",
    "ReconciliationResult",
    "blob_key",
]

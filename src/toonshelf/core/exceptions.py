"""Exception hierarchy for toonshelf.

All errors raised by the package derive from ToonshelfError so callers can
catch package failures with a single handler. Reconciliation failures form
their own branch under ReconcileError:

    ToonshelfError
    ├── ConfigError
    ├── StoreError                  (raised by store adapters)
    ├── ChangeSetError              (working list cannot be diffed)
    └── ReconcileError
        ├── BlobWriteFailure        (abort, nothing persisted)
        ├── BlobDeleteFailure       (logged only, orphan accepted)
        ├── MetadataCommitFailure   (batch rejected, uploads orphaned)
        ├── ConcurrentEditRejected  (scope already has a commit in flight)
        └── ReconcileCancelled      (caller abandoned the commit)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from toonshelf.collection.models import Scope

__all__ = [
    "ToonshelfError",
    "ConfigError",
    "StoreError",
    "ChangeSetError",
    "ReconcileError",
    "BlobWriteFailure",
    "BlobDeleteFailure",
    "MetadataCommitFailure",
    "ConcurrentEditRejected",
    "ReconcileCancelled",
]


class ToonshelfError(Exception):
    """Base exception for all toonshelf errors."""


class ConfigError(ToonshelfError):
    """Configuration file missing, unreadable or invalid."""


class StoreError(ToonshelfError):
    """A blob or metadata store operation failed.

    Attributes:
        operation: Adapter operation name ("put", "delete", "commit_batch", ...).
        target: Key, content reference or scope path the operation addressed.

    """

    def __init__(self, message: str, *, operation: str = "", target: str = "") -> None:
        super().__init__(message)
        self.operation = operation
        self.target = target


class ChangeSetError(ToonshelfError):
    """Working collection is inconsistent with its baseline."""


class ReconcileError(ToonshelfError):
    """Base class for reconciliation failures.

    Attributes:
        scope: Scope the failed reconciliation addressed (None if unknown).

    """

    def __init__(self, message: str, *, scope: Scope | None = None) -> None:
        super().__init__(message)
        self.scope = scope


class BlobWriteFailure(ReconcileError):
    """New content could not be stored; no metadata change was committed.

    Attributes:
        item_key: Key of the item whose upload failed.

    """

    def __init__(self, message: str, *, scope: Scope | None = None, item_key: str = "") -> None:
        super().__init__(message, scope=scope)
        self.item_key = item_key


class BlobDeleteFailure(ReconcileError):
    """Stale content could not be removed.

    Never raised out of a reconciliation: the reconciler logs it and reports
    the content reference in ReconciliationResult.stale_refs.

    Attributes:
        content_ref: Reference of the blob that survived.

    """

    def __init__(self, message: str, *, scope: Scope | None = None, content_ref: str = "") -> None:
        super().__init__(message, scope=scope)
        self.content_ref = content_ref


class MetadataCommitFailure(ReconcileError):
    """The atomic metadata batch was rejected.

    Attributes:
        orphaned_refs: Blobs uploaded by this call that nothing references.

    """

    def __init__(
        self,
        message: str,
        *,
        scope: Scope | None = None,
        orphaned_refs: tuple[str, ...] = (),
    ) -> None:
        super().__init__(message, scope=scope)
        self.orphaned_refs = orphaned_refs


class ConcurrentEditRejected(ReconcileError):
    """A commit was attempted while another one is in flight for the scope."""


class ReconcileCancelled(ReconcileError):
    """The caller abandoned the commit before any blob was deleted.

    Attributes:
        orphaned_refs: Blobs already uploaded by this call that nothing references.

    """

    def __init__(
        self,
        message: str,
        *,
        scope: Scope | None = None,
        orphaned_refs: tuple[str, ...] = (),
    ) -> None:
        super().__init__(message, scope=scope)
        self.orphaned_refs = orphaned_refs

"""Reconciler: apply a ChangeSet to the blob and metadata stores.

The two stores share no transaction, so the sequence is biased toward
never letting metadata point at missing or stale content:

1. Upload content for every REPLACED and NEW item (concurrently). Any
   failure aborts before a single metadata operation is issued; the old
   content stays authoritative.
2. Stage metadata: deletions, replacements (new content ref + order),
   creations (content ref + order), reorders (order only). Cancellation
   is checked for the last time here.
3. Delete blobs of removed items and blobs superseded by replacements.
   From the first delete on, the commit always runs. Failures are logged
   and reported in ``stale_refs``, never raised: an unreferenced blob is
   harmless, a record without its blob is not. With
   ``blob_cleanup="after_commit"`` this step moves after step 4.
4. Commit the staged operations as one atomic batch. A rejected batch
   fails the whole call; blobs uploaded in step 1 are then orphaned and
   listed on the MetadataCommitFailure.
5. Re-read the scope so the returned baseline is exactly what is durable.

Public API:
    - ReconciliationResult: New baseline plus cleanup report
    - Reconciler: Executes change-sets; ``commit`` is the one-call entry
      point for an edit session
    - blob_key: Object path for an uploaded payload
"""

from __future__ import annotations

import asyncio
import logging
import re
import secrets
import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from toonshelf.collection.models import (
    FIELD_CONTENT_REF,
    FIELD_CREATED_AT,
    FIELD_ORDER,
    OrderedCollection,
    Scope,
)
from toonshelf.core.async_utils import gather_settled
from toonshelf.core.config.models import ReconcileConfig
from toonshelf.core.exceptions import (
    BlobDeleteFailure,
    BlobWriteFailure,
    ChangeSetError,
    ConcurrentEditRejected,
    MetadataCommitFailure,
    ReconcileCancelled,
    StoreError,
)
from toonshelf.stores.base import BatchOp, BlobStore, CreateOp, DeleteOp, MetadataStore, UpdateOp
from toonshelf.sync.diff import ChangeSet, PlannedItem, diff
from toonshelf.sync.inflight import InFlightRegistry, InFlightToken

logger = logging.getLogger(__name__)

__all__ = ["ReconciliationResult", "Reconciler", "blob_key"]

_UNSAFE_FILENAME = re.compile(r"[^\w.\-]+")


def blob_key(scope: Scope, item_id: str | None, filename: str, *, now: float | None = None) -> str:
    """Build the object path for an upload.

    ``{prefix}/{epoch millis}_{random}_{filename}``; the random part keeps
    same-named files uploaded in the same millisecond apart.

    Example:
        >>> blob_key(Scope.images("c1", "e1"), None, "page 1.png", now=1700000000.0)
        'comics/c1/e1/1700000000000_9f2c1a7e_page_1.png'

    """
    millis = int((time.time() if now is None else now) * 1000)
    safe_name = _UNSAFE_FILENAME.sub("_", filename).strip("_") or "blob"
    return f"{scope.blob_prefix_for(item_id)}/{millis}_{secrets.token_hex(4)}_{safe_name}"


@dataclass(frozen=True)
class ReconciliationResult:
    """Outcome of a successful reconciliation.

    Attributes:
        baseline: Re-fetched persisted collection; the caller's new baseline.
        change_set: The change-set that was applied.
        uploaded_refs: Content references written by this call.
        stale_refs: Blobs that should have been deleted but survived.

    """

    baseline: OrderedCollection
    change_set: ChangeSet
    uploaded_refs: tuple[str, ...] = ()
    stale_refs: tuple[str, ...] = ()

    def summary(self) -> str:
        cs = self.change_set
        return (
            f"Reconciled {cs.scope}: {len(cs.to_create)} created, {len(cs.to_replace)} replaced, "
            f"{len(cs.to_reorder)} reordered, {len(cs.to_delete)} deleted, "
            f"{len(self.stale_refs)} stale blobs"
        )


class Reconciler:
    """Executes change-sets against a blob store and a metadata store.

    Example:
        >>> reconciler = Reconciler(blobs, metadata)
        >>> baseline = await reconciler.load(scope)
        >>> working = WorkingCollection.from_baseline(baseline)
        >>> working.move("img-3", 0)
        >>> result = await reconciler.commit(baseline, working.snapshot())
        >>> baseline = result.baseline

    """

    def __init__(
        self,
        blobs: BlobStore,
        metadata: MetadataStore,
        *,
        config: ReconcileConfig | None = None,
        registry: InFlightRegistry | None = None,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._blobs = blobs
        self._metadata = metadata
        self._config = config or ReconcileConfig()
        self.registry = registry or InFlightRegistry()
        self._clock = clock

    async def load(self, scope: Scope) -> OrderedCollection:
        """Fetch the persisted collection of a scope as a baseline."""
        records = await self._metadata.list_by_scope(scope)
        return OrderedCollection.from_records(scope, records)

    async def commit(self, baseline: OrderedCollection, working: OrderedCollection) -> ReconciliationResult:
        """Diff and reconcile one edit session while holding the scope's slot.

        Raises:
            ConcurrentEditRejected: If a commit is already in flight for the scope.
            ChangeSetError: If the working list is inconsistent.
            ReconcileError: Any failure from reconcile().

        """
        async with self.registry.hold(baseline.scope) as token:
            change_set = diff(baseline, working)
            return await self.reconcile(baseline.scope, change_set, token=token)

    async def reconcile(
        self,
        scope: Scope,
        change_set: ChangeSet,
        *,
        token: InFlightToken,
    ) -> ReconciliationResult:
        """Apply a change-set.

        Args:
            scope: Scope being written.
            change_set: Output of diff() for this scope.
            token: The scope's in-flight token from ``self.registry``.

        Returns:
            ReconciliationResult whose baseline was re-read from the store.
            An empty change-set returns its own baseline without touching
            either store.

        Raises:
            ChangeSetError: If the change-set belongs to another scope.
            ConcurrentEditRejected: If the token does not hold the scope.
            BlobWriteFailure: If any upload failed (nothing committed).
            ReconcileCancelled: If the token was cancelled before any blob
                was deleted. Cancelling later has no effect on this call.
            MetadataCommitFailure: If the batch was rejected.

        """
        if change_set.scope != scope:
            raise ChangeSetError(f"Change-set for {change_set.scope} cannot be applied to {scope}")
        if token.scope != scope or not self.registry.owns(token):
            raise ConcurrentEditRejected(
                f"Token #{token.serial} does not hold the commit slot for {scope}",
                scope=scope,
            )

        if change_set.is_empty:
            logger.debug("Nothing to reconcile for %s", scope)
            return ReconciliationResult(baseline=change_set.baseline, change_set=change_set)

        self._ensure_active(token, scope, ())
        eager = self._config.blob_cleanup == "eager"

        uploaded = await self._upload_all(scope, change_set.uploads)
        uploaded_refs = tuple(uploaded.values())

        obsolete = self._obsolete_refs(change_set, uploaded)
        ops = self._stage(change_set, uploaded)
        self._ensure_active(token, scope, uploaded_refs)

        # Point of no return: once a blob is deleted the commit must run,
        # even if the awaiting task is cancelled.
        if eager and obsolete:
            stale = await asyncio.shield(self._delete_then_commit(scope, ops, obsolete, uploaded_refs))
        else:
            await self._commit(scope, ops, uploaded_refs)
            stale = await self._delete_blobs(scope, obsolete)

        baseline = await self.load(scope)
        result = ReconciliationResult(
            baseline=baseline,
            change_set=change_set,
            uploaded_refs=uploaded_refs,
            stale_refs=tuple(stale),
        )
        logger.info("%s", result.summary())
        return result

    async def _delete_then_commit(
        self,
        scope: Scope,
        ops: list[BatchOp],
        obsolete: list[str],
        uploaded_refs: tuple[str, ...],
    ) -> list[str]:
        stale = await self._delete_blobs(scope, obsolete)
        await self._commit(scope, ops, uploaded_refs)
        return stale

    async def _commit(self, scope: Scope, ops: list[BatchOp], uploaded_refs: tuple[str, ...]) -> None:
        try:
            await self._metadata.commit_batch(scope, ops)
        except StoreError as e:
            logger.error(
                "Metadata commit for %s rejected (%d ops): %s; %d uploaded blobs orphaned",
                scope,
                len(ops),
                e,
                len(uploaded_refs),
            )
            for ref in uploaded_refs:
                logger.warning("Orphaned blob: %s", ref)
            raise MetadataCommitFailure(
                f"Metadata commit for {scope} failed: {e}",
                scope=scope,
                orphaned_refs=uploaded_refs,
            ) from e

    def _ensure_active(self, token: InFlightToken, scope: Scope, uploaded_refs: tuple[str, ...]) -> None:
        if token.cancelled:
            for ref in uploaded_refs:
                logger.warning("Orphaned blob after cancellation: %s", ref)
            raise ReconcileCancelled(
                f"Commit #{token.serial} for {scope} was cancelled",
                scope=scope,
                orphaned_refs=uploaded_refs,
            )
        if token.released:
            raise ConcurrentEditRejected(f"Token #{token.serial} for {scope} was released mid-commit", scope=scope)

    async def _upload_all(self, scope: Scope, planned: Sequence[PlannedItem]) -> dict[str, str]:
        """Upload every pending payload; all settle before failures are judged.

        Returns:
            item key -> new content reference.

        Raises:
            BlobWriteFailure: If any upload failed. Successful uploads of the
                aborted call are discarded best-effort first.

        """
        if not planned:
            return {}

        async def _upload(p: PlannedItem) -> str:
            payload = p.item.pending
            assert payload is not None  # diff() guarantees content for uploads
            key = blob_key(scope, p.item.id, payload.filename)
            return await self._blobs.put(scope, key, payload.data, payload.content_type)

        results = await gather_settled((_upload(p) for p in planned), limit=self._config.max_concurrency)

        uploaded: dict[str, str] = {}
        failures: list[tuple[PlannedItem, BaseException]] = []
        for p, outcome in zip(planned, results, strict=True):
            if isinstance(outcome, BaseException):
                failures.append((p, outcome))
            else:
                uploaded[p.key] = outcome

        if not failures:
            return uploaded

        for p, error in failures:
            logger.error("Upload for %s in %s failed: %s", p.key, scope, error)
        if uploaded and self._config.discard_failed_uploads:
            leftovers = await self._delete_blobs(scope, uploaded.values())
            if leftovers:
                logger.warning("%d blobs from aborted commit for %s could not be discarded", len(leftovers), scope)

        first_item, first_error = failures[0]
        if not isinstance(first_error, Exception):
            raise first_error
        raise BlobWriteFailure(
            f"Upload of {len(failures)} item(s) to {scope} failed; nothing was committed",
            scope=scope,
            item_key=first_item.key,
        ) from first_error

    @staticmethod
    def _obsolete_refs(change_set: ChangeSet, uploaded: dict[str, str]) -> list[str]:
        refs: list[str] = []
        for p in change_set.to_delete:
            if p.item.content_ref:
                refs.append(p.item.content_ref)
        for p in change_set.to_replace:
            old = p.previous.content_ref if p.previous else None
            if old and old != uploaded.get(p.key):
                refs.append(old)
        return refs

    async def _delete_blobs(self, scope: Scope, refs: Iterable[str]) -> list[str]:
        """Delete blobs best-effort; returns the refs that survived."""
        refs = list(refs)
        if not refs:
            return []
        results = await gather_settled((self._blobs.delete(ref) for ref in refs), limit=self._config.max_concurrency)
        stale: list[str] = []
        for ref, outcome in zip(refs, results, strict=True):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                failure = BlobDeleteFailure(f"Could not delete {ref}: {outcome}", scope=scope, content_ref=ref)
                logger.warning("%s", failure)
                stale.append(ref)
        return stale

    def _stage(self, change_set: ChangeSet, uploaded: dict[str, str]) -> list[BatchOp]:
        ops: list[BatchOp] = []
        for p in change_set.to_delete:
            assert p.item.id is not None
            ops.append(DeleteOp(p.item.id))
        for p in change_set.to_replace:
            assert p.item.id is not None
            ops.append(UpdateOp(p.item.id, {FIELD_ORDER: p.order, FIELD_CONTENT_REF: uploaded[p.key]}))
        for p in change_set.to_create:
            data: dict[str, Any] = dict(p.item.attributes)
            data[FIELD_ORDER] = p.order
            data[FIELD_CONTENT_REF] = uploaded[p.key]
            data[FIELD_CREATED_AT] = (p.item.created_at or self._clock()).isoformat()
            ops.append(CreateOp(data))
        for p in change_set.to_reorder:
            assert p.item.id is not None
            ops.append(UpdateOp(p.item.id, {FIELD_ORDER: p.order}))
        return ops

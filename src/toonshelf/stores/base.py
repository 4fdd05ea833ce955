"""Store adapter contracts.

Two independent backends hold a scope's state:

- BlobStore: binary content under hierarchical keys. Operations are not
  transactional; delete is best-effort.
- MetadataStore: one document per item, grouped by scope. commit_batch is
  atomic: every operation applies or none does, in one round trip.

Adapters raise StoreError on failure and own their request timeouts and
retries.
"""

from __future__ import annotations

import secrets
import string
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping, MutableMapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from toonshelf.collection.models import DocumentRecord, Scope
from toonshelf.core.exceptions import StoreError

__all__ = [
    "BlobStore",
    "MetadataStore",
    "CreateOp",
    "UpdateOp",
    "DeleteOp",
    "BatchOp",
    "apply_batch",
    "new_document_id",
]


@dataclass(frozen=True)
class CreateOp:
    """Create a document; the store assigns its id."""

    data: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class UpdateOp:
    """Merge fields into an existing document."""

    id: str
    data: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class DeleteOp:
    """Delete an existing document."""

    id: str


BatchOp = CreateOp | UpdateOp | DeleteOp


_ID_ALPHABET = string.ascii_letters + string.digits


def new_document_id() -> str:
    """20-character alphanumeric id in the style of auto-generated document ids."""
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(20))


def apply_batch(
    documents: MutableMapping[str, dict[str, Any]],
    ops: Sequence[BatchOp],
    *,
    scope: Scope,
    id_factory: Callable[[], str] = new_document_id,
) -> list[str]:
    """Validate and apply a batch to a scope's documents, all or nothing.

    Every operation is checked before anything is written, so a rejected
    batch leaves ``documents`` untouched.

    Args:
        documents: id -> document data for one scope (mutated on success).
        ops: Operations in submission order.
        scope: Scope being written (for error messages).
        id_factory: Generates ids for CreateOp.

    Returns:
        Ids of created documents, in CreateOp order.

    Raises:
        StoreError: If an update/delete targets a missing document or one
            document is addressed twice.

    """
    touched: set[str] = set()
    for op in ops:
        if isinstance(op, CreateOp):
            continue
        if op.id not in documents:
            raise StoreError(
                f"Document {op.id!r} does not exist in {scope}",
                operation="commit_batch",
                target=scope.path,
            )
        if op.id in touched:
            raise StoreError(
                f"Document {op.id!r} addressed twice in one batch",
                operation="commit_batch",
                target=scope.path,
            )
        touched.add(op.id)

    staged = {doc_id: dict(data) for doc_id, data in documents.items()}
    created: list[str] = []
    for op in ops:
        if isinstance(op, CreateOp):
            doc_id = id_factory()
            while doc_id in staged:
                doc_id = id_factory()
            staged[doc_id] = dict(op.data)
            created.append(doc_id)
        elif isinstance(op, UpdateOp):
            staged[op.id].update(op.data)
        else:
            del staged[op.id]

    documents.clear()
    documents.update(staged)
    return created


class BlobStore(ABC):
    """Binary content store."""

    @abstractmethod
    async def put(self, scope: Scope, key: str, data: bytes, content_type: str) -> str:
        """Store content at ``key`` and return its content reference.

        ``key`` is the full object path, built by the caller from
        Scope.blob_prefix_for(); ``scope`` is passed for logging and
        adapter-side namespacing.

        Raises:
            StoreError: If the content could not be stored.

        """

    @abstractmethod
    async def delete(self, content_ref: str) -> None:
        """Delete the content behind a reference.

        Raises:
            StoreError: If the content could not be deleted.

        """

    async def aclose(self) -> None:  # noqa: B027
        """Release adapter resources."""


class MetadataStore(ABC):
    """Document-per-item metadata store."""

    @abstractmethod
    async def list_by_scope(self, scope: Scope) -> list[DocumentRecord]:
        """Return every document in the scope, in no particular order."""

    @abstractmethod
    async def commit_batch(self, scope: Scope, ops: Sequence[BatchOp]) -> list[str]:
        """Apply operations atomically.

        Returns:
            Ids assigned to CreateOp documents, in order.

        Raises:
            StoreError: If the batch was rejected; nothing was applied.

        """

    async def aclose(self) -> None:  # noqa: B027
        """Release adapter resources."""

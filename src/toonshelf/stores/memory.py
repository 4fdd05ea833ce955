"""In-process store adapters.

Back the "memory" storage backend (dry runs) and the test suite. Both
honour the same contracts as the durable adapters, including the
all-or-nothing batch.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Any

from toonshelf.collection.models import DocumentRecord, Scope
from toonshelf.core.exceptions import StoreError
from toonshelf.stores.base import BatchOp, BlobStore, MetadataStore, apply_batch

logger = logging.getLogger(__name__)

__all__ = ["MemoryBlobStore", "MemoryMetadataStore", "MEMORY_REF_PREFIX"]

MEMORY_REF_PREFIX = "mem://"


class MemoryBlobStore(BlobStore):
    """Blob store keeping content in a dict keyed by object path."""

    def __init__(self) -> None:
        self.objects: dict[str, tuple[bytes, str]] = {}

    async def put(self, scope: Scope, key: str, data: bytes, content_type: str) -> str:
        await asyncio.sleep(0)
        self.objects[key] = (bytes(data), content_type)
        logger.debug("Stored %d bytes at %s (%s)", len(data), key, scope)
        return f"{MEMORY_REF_PREFIX}{key}"

    async def delete(self, content_ref: str) -> None:
        await asyncio.sleep(0)
        if not content_ref.startswith(MEMORY_REF_PREFIX):
            raise StoreError(f"Not a memory reference: {content_ref}", operation="delete", target=content_ref)
        key = content_ref[len(MEMORY_REF_PREFIX) :]
        if self.objects.pop(key, None) is None:
            raise StoreError(f"Object not found: {key}", operation="delete", target=content_ref)

    def read(self, content_ref: str) -> bytes:
        """Return stored bytes for a reference (tests and previews)."""
        return self.objects[content_ref[len(MEMORY_REF_PREFIX) :]][0]


class MemoryMetadataStore(MetadataStore):
    """Metadata store keeping documents per scope path."""

    def __init__(self) -> None:
        self.scopes: dict[str, dict[str, dict[str, Any]]] = {}
        self._lock = asyncio.Lock()

    async def list_by_scope(self, scope: Scope) -> list[DocumentRecord]:
        docs = self.scopes.get(scope.path, {})
        return [DocumentRecord(id=doc_id, data=dict(data)) for doc_id, data in docs.items()]

    async def commit_batch(self, scope: Scope, ops: Sequence[BatchOp]) -> list[str]:
        async with self._lock:
            docs = self.scopes.setdefault(scope.path, {})
            created = apply_batch(docs, ops, scope=scope)
            if not docs:
                del self.scopes[scope.path]
        logger.debug("Committed %d operations to %s", len(ops), scope)
        return created

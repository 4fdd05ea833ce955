"""Pytest configuration and fixtures for toonshelf tests."""

from collections.abc import Callable, Sequence
from typing import Any

import pytest

from toonshelf.collection.models import DocumentRecord, Scope
from toonshelf.core.exceptions import StoreError
from toonshelf.stores.base import BatchOp
from toonshelf.stores.memory import MEMORY_REF_PREFIX, MemoryBlobStore, MemoryMetadataStore


@pytest.fixture(autouse=True)
def reset_and_load_default_config(request):
    """Reset config singleton and load defaults for tests.

    Tests that need NO config (e.g., testing config loading itself) can use:
        @pytest.mark.no_auto_config
    """
    from toonshelf.core.config import _reset_config, load_config

    _reset_config()
    if not request.node.get_closest_marker("no_auto_config"):
        load_config({"storage": {"backend": "memory"}})
    yield
    _reset_config()


class RecordingBlobStore(MemoryBlobStore):
    """Memory blob store that logs calls into a shared list and can fail on demand.

    fail_put: substrings; a put whose key contains one raises StoreError.
    fail_delete: content refs whose delete raises StoreError.
    """

    def __init__(self, calls: list[tuple[str, str]]) -> None:
        super().__init__()
        self.calls = calls
        self.fail_put: set[str] = set()
        self.fail_delete: set[str] = set()

    async def put(self, scope: Scope, key: str, data: bytes, content_type: str) -> str:
        self.calls.append(("put", key))
        if any(marker in key for marker in self.fail_put):
            raise StoreError(f"injected put failure for {key}", operation="put", target=key)
        return await super().put(scope, key, data, content_type)

    async def delete(self, content_ref: str) -> None:
        self.calls.append(("delete", content_ref))
        if content_ref in self.fail_delete:
            raise StoreError(f"injected delete failure for {content_ref}", operation="delete", target=content_ref)
        await super().delete(content_ref)


class RecordingMetadataStore(MemoryMetadataStore):
    """Memory metadata store that logs calls and can reject batches."""

    def __init__(self, calls: list[tuple[str, str]]) -> None:
        super().__init__()
        self.calls = calls
        self.fail_commit = False
        self.batches: list[list[BatchOp]] = []

    async def list_by_scope(self, scope: Scope) -> list[DocumentRecord]:
        self.calls.append(("list", scope.path))
        return await super().list_by_scope(scope)

    async def commit_batch(self, scope: Scope, ops: Sequence[BatchOp]) -> list[str]:
        self.calls.append(("commit", scope.path))
        self.batches.append(list(ops))
        if self.fail_commit:
            raise StoreError("injected commit failure", operation="commit_batch", target=scope.path)
        return await super().commit_batch(scope, ops)


@pytest.fixture
def calls() -> list[tuple[str, str]]:
    """Ordered log of every store call made through the recording doubles."""
    return []


@pytest.fixture
def blobs(calls) -> RecordingBlobStore:
    return RecordingBlobStore(calls)


@pytest.fixture
def metadata(calls) -> RecordingMetadataStore:
    return RecordingMetadataStore(calls)


@pytest.fixture
def seed(blobs, metadata) -> Callable[..., None]:
    """Seed a scope with persisted items directly, bypassing the call log.

    seed(scope, ["1", "2", "3"]) stores one blob per id and documents with
    dense orders in list order. Extra fields go in ``fields={id: {...}}``.
    """

    def _seed(scope: Scope, ids: Sequence[str], fields: dict[str, dict[str, Any]] | None = None) -> None:
        docs = metadata.scopes.setdefault(scope.path, {})
        for order, item_id in enumerate(ids):
            key = f"{scope.blob_prefix}/{item_id}.png"
            blobs.objects[key] = (f"old-{item_id}".encode(), "image/png")
            docs[item_id] = {"order": order, "contentRef": f"{MEMORY_REF_PREFIX}{key}"}
            docs[item_id].update((fields or {}).get(item_id, {}))

    return _seed

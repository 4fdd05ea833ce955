"""Filesystem store adapters for the "local" backend.

Layout under the configured root:

    {root}/blobs/comics/{comic}/{episode}/{millis}_{token}_{name}
    {root}/documents/Comics/{comic}/Episodes/{episode}/Images.yaml

Each scope's documents live in one YAML file, so a batch is made atomic by
writing the whole file to a temp path and renaming it over the original,
under an exclusive lock on a sidecar lock file. Blocking file I/O runs in
the default executor.
"""

from __future__ import annotations

import asyncio
import fcntl
import logging
import os
from collections.abc import Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import Any
from urllib.parse import unquote, urlparse

import yaml

from toonshelf.collection.models import DocumentRecord, Scope
from toonshelf.core.exceptions import StoreError
from toonshelf.stores.base import BatchOp, BlobStore, MetadataStore, apply_batch

logger = logging.getLogger(__name__)

__all__ = ["LocalBlobStore", "LocalMetadataStore"]


def _atomic_write_bytes(path: Path, data: bytes) -> None:
    temp_path = path.with_name(path.name + ".tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(temp_path, "wb") as f:
            f.write(data)
        os.replace(temp_path, path)
    except OSError:
        if temp_path.exists():
            temp_path.unlink()
        raise


class LocalBlobStore(BlobStore):
    """Blob store writing content files under ``{root}/blobs``.

    Content references are ``file://`` URIs of the stored files.
    """

    def __init__(self, root: Path) -> None:
        self._root = (root / "blobs").resolve()

    def _path_for_key(self, key: str) -> Path:
        path = (self._root / key).resolve()
        if not path.is_relative_to(self._root):
            raise StoreError(f"Key escapes blob root: {key}", operation="put", target=key)
        return path

    def _path_for_ref(self, content_ref: str) -> Path:
        parsed = urlparse(content_ref)
        if parsed.scheme != "file":
            raise StoreError(f"Not a local file reference: {content_ref}", operation="delete", target=content_ref)
        path = Path(unquote(parsed.path)).resolve()
        if not path.is_relative_to(self._root):
            raise StoreError(f"Reference outside blob root: {content_ref}", operation="delete", target=content_ref)
        return path

    async def put(self, scope: Scope, key: str, data: bytes, content_type: str) -> str:
        path = self._path_for_key(key)
        try:
            await asyncio.to_thread(_atomic_write_bytes, path, data)
        except OSError as e:
            raise StoreError(f"Failed to write {path}: {e}", operation="put", target=key) from e
        logger.debug("Stored %d bytes (%s) at %s for %s", len(data), content_type, path, scope)
        return path.as_uri()

    async def delete(self, content_ref: str) -> None:
        path = self._path_for_ref(content_ref)
        try:
            await asyncio.to_thread(path.unlink)
        except FileNotFoundError as e:
            raise StoreError(f"Blob not found: {path}", operation="delete", target=content_ref) from e
        except OSError as e:
            raise StoreError(f"Failed to delete {path}: {e}", operation="delete", target=content_ref) from e

    def read(self, content_ref: str) -> bytes:
        """Return stored bytes for a reference."""
        return self._path_for_ref(content_ref).read_bytes()


def _to_yaml_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return value


class LocalMetadataStore(MetadataStore):
    """YAML document store, one file per scope under ``{root}/documents``."""

    def __init__(self, root: Path) -> None:
        self._root = root / "documents"

    def _scope_file(self, scope: Scope) -> Path:
        return self._root.joinpath(*scope.segments[:-1], f"{scope.collection}.yaml")

    def _read_documents(self, path: Path) -> dict[str, dict[str, Any]]:
        try:
            with open(path, encoding="utf-8") as f:
                loaded = yaml.safe_load(f)
        except FileNotFoundError:
            return {}
        except yaml.YAMLError as e:
            raise StoreError(f"Invalid YAML in {path}: {e}", operation="read", target=str(path)) from e

        if loaded is None:
            return {}
        documents = loaded.get("documents") if isinstance(loaded, dict) else None
        if not isinstance(documents, dict):
            raise StoreError(f"Malformed document file: {path}", operation="read", target=str(path))
        return {str(k): dict(v or {}) for k, v in documents.items()}

    def _write_documents(self, path: Path, documents: dict[str, dict[str, Any]]) -> None:
        payload = {
            "updated_at": datetime.now(UTC).isoformat(),
            "documents": {
                doc_id: {k: _to_yaml_value(v) for k, v in data.items()} for doc_id, data in documents.items()
            },
        }
        text = yaml.dump(payload, default_flow_style=False, sort_keys=False, allow_unicode=True, width=120)
        _atomic_write_bytes(path, text.encode("utf-8"))

    def _list_sync(self, scope: Scope) -> list[DocumentRecord]:
        documents = self._read_documents(self._scope_file(scope))
        return [DocumentRecord(id=doc_id, data=data) for doc_id, data in documents.items()]

    def _commit_sync(self, scope: Scope, ops: Sequence[BatchOp]) -> list[str]:
        path = self._scope_file(scope)
        lock_path = path.with_name(path.name + ".lock")
        lock_path.parent.mkdir(parents=True, exist_ok=True)

        with open(lock_path, "a+", encoding="utf-8") as lock:
            fcntl.flock(lock.fileno(), fcntl.LOCK_EX)
            try:
                documents = self._read_documents(path)
                created = apply_batch(documents, ops, scope=scope)
                self._write_documents(path, documents)
            finally:
                fcntl.flock(lock.fileno(), fcntl.LOCK_UN)
        return created

    async def list_by_scope(self, scope: Scope) -> list[DocumentRecord]:
        return await asyncio.to_thread(self._list_sync, scope)

    async def commit_batch(self, scope: Scope, ops: Sequence[BatchOp]) -> list[str]:
        try:
            created = await asyncio.to_thread(self._commit_sync, scope, ops)
        except OSError as e:
            raise StoreError(f"Failed to commit batch to {scope}: {e}", operation="commit_batch", target=scope.path) from e
        logger.debug("Committed %d operations to %s", len(ops), scope)
        return created

"""Blob and metadata store adapters.

Usage:
    from toonshelf.stores import create_stores

    blobs, metadata = create_stores(get_config().storage)
"""

import logging

from toonshelf.core.config.models import StorageConfig
from toonshelf.stores.base import (
    BatchOp,
    BlobStore,
    CreateOp,
    DeleteOp,
    MetadataStore,
    UpdateOp,
    apply_batch,
)
from toonshelf.stores.firebase_storage import FirebaseStorageBlobStore
from toonshelf.stores.local import LocalBlobStore, LocalMetadataStore
from toonshelf.stores.memory import MemoryBlobStore, MemoryMetadataStore

logger = logging.getLogger(__name__)

__all__ = [
    "BatchOp",
    "BlobStore",
    "CreateOp",
    "DeleteOp",
    "MetadataStore",
    "UpdateOp",
    "apply_batch",
    "FirebaseStorageBlobStore",
    "LocalBlobStore",
    "LocalMetadataStore",
    "MemoryBlobStore",
    "MemoryMetadataStore",
    "create_stores",
]


def create_stores(config: StorageConfig) -> tuple[BlobStore, MetadataStore]:
    """Instantiate the blob and metadata adapters for a storage config."""
    if config.backend == "memory":
        return MemoryBlobStore(), MemoryMetadataStore()

    metadata = LocalMetadataStore(config.root)
    if config.backend == "firebase":
        assert config.bucket is not None  # enforced by StorageConfig
        blobs: BlobStore = FirebaseStorageBlobStore(
            config.bucket,
            auth_token=config.auth_token,
            timeout=config.timeout,
        )
    else:
        blobs = LocalBlobStore(config.root)
    logger.debug("Using %s blob store with local metadata at %s", config.backend, config.root)
    return blobs, metadata

"""Configuration models for storage, reconciliation and logging."""

import logging
from pathlib import Path
from typing import Any, Literal, Self

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

logger = logging.getLogger(__name__)

__all__ = [
    "StorageConfig",
    "ReconcileConfig",
    "LoggingConfig",
    "Config",
]


class StorageConfig(BaseModel):
    """Backend selection for the blob and metadata stores.

    Attributes:
        backend: "local" (filesystem + YAML documents), "memory" (in-process,
            nothing survives the process) or "firebase" (Firebase Storage for
            blobs, local YAML documents for metadata).
        root: Data directory of the local backend.
        bucket: Firebase Storage bucket name (required for "firebase").
        auth_token: Bearer token sent to Firebase Storage.
        timeout: Request timeout in seconds for HTTP adapters.

    Example:
        >>> StorageConfig(backend="firebase", bucket="toons.appspot.com").timeout
        30.0

    """

    model_config = ConfigDict(frozen=True)

    backend: Literal["local", "memory", "firebase"] = "local"
    root: Path = Field(default=Path(".toonshelf"), description="Local data directory")
    bucket: str | None = None
    auth_token: str | None = Field(default=None, repr=False)
    timeout: float = Field(default=30.0, gt=0)

    @model_validator(mode="after")
    def validate_bucket(self) -> Self:
        """Firebase backend cannot run without a bucket."""
        if self.backend == "firebase" and not self.bucket:
            raise ValueError("storage.bucket is required when storage.backend is 'firebase'")
        return self


class ReconcileConfig(BaseModel):
    """Reconciler tuning.

    Attributes:
        max_concurrency: Upper bound on blob operations issued at once
            within one reconciliation step.
        blob_cleanup: "eager" deletes removed and superseded blobs before the
            metadata commit; "after_commit" defers those deletes until the
            batch succeeds.
        discard_failed_uploads: Delete blobs uploaded by a call that was
            aborted by another item's upload failure.

    """

    model_config = ConfigDict(frozen=True)

    max_concurrency: int = Field(default=4, ge=1, le=64)
    blob_cleanup: Literal["eager", "after_commit"] = "eager"
    discard_failed_uploads: bool = True


class LoggingConfig(BaseModel):
    """Root logger settings applied by the CLI."""

    model_config = ConfigDict(frozen=True)

    level: str = "INFO"

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, v: Any) -> str:
        """Accept any case; reject names logging does not know."""
        name = str(v).upper()
        if name not in logging.getLevelNamesMapping():
            raise ValueError(f"unknown log level: {v!r}")
        return name


class Config(BaseModel):
    """Top-level toonshelf configuration (toonshelf.yaml)."""

    model_config = ConfigDict(frozen=True)

    storage: StorageConfig = Field(default_factory=StorageConfig)
    reconcile: ReconcileConfig = Field(default_factory=ReconcileConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("storage", "reconcile", "logging", mode="before")
    @classmethod
    def coerce_none_to_defaults(cls, v: Any) -> Any:
        """YAML parses an empty section as None."""
        if v is None:
            return {}
        return v

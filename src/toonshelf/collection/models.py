"""Ordered collection data model.

A scope is a document collection path in the reader's hierarchy:

    Comics/{comicId}/Episodes/{episodeId}/Images/{imageId}/Comments

Each scope holds a sequence of items. The sequence is defined by the
scope's canonical ordering key: the dense ``order`` index for titles and
images, the creation timestamp for episodes and comments.

Public API:
    - Scope: Immutable collection path with its ordering policy
    - OrderingKey: Canonical ordering key of a scope
    - ItemState: Lifecycle flag set by edits, cleared by reconciliation
    - PendingPayload: Binary content waiting to be uploaded
    - Item: One element of an ordered collection
    - DocumentRecord: Raw document as returned by a metadata store
    - OrderedCollection: Immutable snapshot of a scope's items
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field, replace
from datetime import UTC, date, datetime
from enum import Enum
from types import MappingProxyType
from typing import Any

from toonshelf.core.exceptions import StoreError

logger = logging.getLogger(__name__)

__all__ = [
    "OrderingKey",
    "ItemState",
    "Scope",
    "PendingPayload",
    "Item",
    "DocumentRecord",
    "OrderedCollection",
    "COLLECTION_CHILDREN",
    "FIELD_ORDER",
    "FIELD_CONTENT_REF",
    "FIELD_CREATED_AT",
]

# Persisted document field names
FIELD_ORDER = "order"
FIELD_CONTENT_REF = "contentRef"
FIELD_CREATED_AT = "createdAt"

# Creation time under older document layouts: episodes, comments
_LEGACY_CREATED_FIELDS = ("uploadDate", "timestamp")

_RESERVED_FIELDS = frozenset({FIELD_ORDER, FIELD_CONTENT_REF, FIELD_CREATED_AT})


class OrderingKey(Enum):
    """Field defining the sequence of a scope.

    ORDER: explicit dense index maintained by reconciliation.
    CREATED_AT: monotonic creation timestamp (legacy, time-ordered scopes).
    """

    ORDER = "order"
    CREATED_AT = "created_at"


class ItemState(Enum):
    """Lifecycle flag of an item in a working collection."""

    EXISTING = "existing"
    NEW = "new"
    REPLACED = "replaced"
    REMOVED = "removed"


# Collection name -> child collection names
COLLECTION_CHILDREN: dict[str, tuple[str, ...]] = {
    "Comics": ("Episodes",),
    "Episodes": ("Images",),
    "Images": ("Comments",),
    "Comments": (),
}

_COLLECTION_ORDERING: dict[str, OrderingKey] = {
    "Comics": OrderingKey.ORDER,
    "Episodes": OrderingKey.CREATED_AT,
    "Images": OrderingKey.ORDER,
    "Comments": OrderingKey.CREATED_AT,
}


@dataclass(frozen=True)
class Scope:
    """Collection path identifying the parent of an ordered collection.

    Segments alternate collection name and document id and always end with
    a collection name, e.g. ``("Comics", "c1", "Episodes")``.

    Examples:
        >>> Scope.images("c1", "ep-1").path
        'Comics/c1/Episodes/ep-1/Images'
        >>> Scope.parse("Comics/c1/Episodes").ordering
        <OrderingKey.CREATED_AT: 'created_at'>

    """

    segments: tuple[str, ...]

    def __post_init__(self) -> None:
        if not self.segments or len(self.segments) % 2 == 0:
            raise ValueError(f"Scope must name a collection: {'/'.join(self.segments)!r}")
        if any(not s or "/" in s for s in self.segments):
            raise ValueError(f"Scope segments must be non-empty and slash-free: {self.segments!r}")

    @classmethod
    def parse(cls, path: str) -> Scope:
        """Parse a slash-separated collection path."""
        return cls(tuple(path.strip("/").split("/")))

    @classmethod
    def catalog(cls) -> Scope:
        return cls(("Comics",))

    @classmethod
    def episodes(cls, comic_id: str) -> Scope:
        return cls(("Comics", comic_id, "Episodes"))

    @classmethod
    def images(cls, comic_id: str, episode_id: str) -> Scope:
        return cls(("Comics", comic_id, "Episodes", episode_id, "Images"))

    @classmethod
    def comments(cls, comic_id: str, episode_id: str, image_id: str) -> Scope:
        return cls(("Comics", comic_id, "Episodes", episode_id, "Images", image_id, "Comments"))

    @property
    def path(self) -> str:
        return "/".join(self.segments)

    @property
    def collection(self) -> str:
        """Name of the collection this scope addresses."""
        return self.segments[-1]

    @property
    def ordering(self) -> OrderingKey:
        return _COLLECTION_ORDERING.get(self.collection, OrderingKey.ORDER)

    @property
    def blob_prefix(self) -> str:
        """Blob namespace for content uploaded into this scope.

        Mirrors the reader's storage layout: title thumbnails under
        ``comics/{title}/thumbnail``, episode images under
        ``comics/{title}/{episode}``. Other scopes map their document path
        to a lower-cased prefix.
        """
        if self.segments == ("Comics",):
            return "comics"
        if len(self.segments) == 5 and self.collection == "Images":
            return f"comics/{self.segments[1]}/{self.segments[3]}"
        return self.path.lower()

    def blob_prefix_for(self, item_id: str | None) -> str:
        """Blob namespace for one item's content."""
        if self.segments == ("Comics",) and item_id:
            return f"comics/{item_id}/thumbnail"
        return self.blob_prefix

    def child(self, item_id: str, collection: str) -> Scope:
        """Scope of a child collection under one of this scope's items."""
        return Scope((*self.segments, item_id, collection))

    def child_scopes(self, item_id: str) -> tuple[Scope, ...]:
        """All child collections an item of this scope owns."""
        return tuple(self.child(item_id, name) for name in COLLECTION_CHILDREN.get(self.collection, ()))

    def __str__(self) -> str:
        return self.path


@dataclass(frozen=True)
class PendingPayload:
    """Raw content that must be written before an item counts as persisted.

    Attributes:
        data: Bytes to upload.
        content_type: MIME type hint sent to the blob store.
        filename: Original file name, used to build the blob key.

    """

    data: bytes = field(repr=False)
    content_type: str = "application/octet-stream"
    filename: str = "blob"

    def __repr__(self) -> str:
        return f"PendingPayload({self.filename!r}, {self.content_type}, {len(self.data)} bytes)"


def new_draft_key() -> str:
    """Local key addressing an item that has no store id yet."""
    return f"draft-{secrets.token_hex(6)}"


@dataclass(frozen=True)
class Item:
    """One element of an ordered collection.

    Attributes:
        id: Store document id; None until the item is persisted.
        order: Dense zero-based position as last persisted. Never trusted for
            the next write: reconciliation derives order from list position.
        content_ref: Opaque blob reference (download URL, file URI, ...).
        pending: Content waiting for upload (NEW and REPLACED items).
        state: Lifecycle flag, see ItemState.
        created_at: Creation timestamp for time-ordered scopes.
        attributes: Other document fields, carried through untouched.
        draft_key: Local key for items without an id.

    """

    id: str | None
    order: int = 0
    content_ref: str | None = None
    pending: PendingPayload | None = None
    state: ItemState = ItemState.EXISTING
    created_at: datetime | None = None
    attributes: Mapping[str, Any] = field(default_factory=dict, compare=False, hash=False)
    draft_key: str | None = None

    def __post_init__(self) -> None:
        if self.id is None and self.draft_key is None:
            object.__setattr__(self, "draft_key", new_draft_key())
        object.__setattr__(self, "attributes", MappingProxyType(dict(self.attributes)))

    @property
    def key(self) -> str:
        """Identity within a working list: store id, else draft key."""
        return self.id if self.id is not None else str(self.draft_key)

    @property
    def is_persisted(self) -> bool:
        return self.id is not None

    @classmethod
    def from_record(cls, record: DocumentRecord) -> Item:
        """Build an EXISTING item from a stored document."""
        data = record.data
        order = data.get(FIELD_ORDER)
        return cls(
            id=record.id,
            order=int(order) if order is not None else -1,
            content_ref=data.get(FIELD_CONTENT_REF),
            created_at=_created_at(record),
            attributes={k: v for k, v in data.items() if k not in _RESERVED_FIELDS},
        )

    def with_changes(self, **changes: Any) -> Item:
        return replace(self, **changes)


@dataclass(frozen=True)
class DocumentRecord:
    """Raw document returned by a metadata store."""

    id: str
    data: Mapping[str, Any]


def _created_at(record: DocumentRecord) -> datetime | None:
    """Read a record's creation time, falling back to legacy field names.

    Accepts datetimes, dates (midnight UTC) and ISO 8601 strings.

    Raises:
        StoreError: If the stored value is not a recognizable timestamp.

    """
    for name in (FIELD_CREATED_AT, *_LEGACY_CREATED_FIELDS):
        value = record.data.get(name)
        if value is not None:
            break
    else:
        return None

    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=UTC)
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError as e:
            raise StoreError(
                f"Document {record.id!r} has a malformed {name}: {value!r}",
                operation="read",
                target=record.id,
            ) from e
    raise StoreError(
        f"Document {record.id!r} has a {type(value).__name__} {name}, expected a timestamp",
        operation="read",
        target=record.id,
    )


def _sort_key(ordering: OrderingKey) -> Any:
    def by_order(item: Item) -> tuple[int, int, str]:
        missing = 1 if item.order < 0 else 0
        return (missing, item.order, item.key)

    def by_created(item: Item) -> tuple[int, float, str]:
        if item.created_at is None:
            return (1, 0.0, item.key)
        return (0, item.created_at.timestamp(), item.key)

    return by_order if ordering is OrderingKey.ORDER else by_created


@dataclass(frozen=True)
class OrderedCollection:
    """Immutable snapshot of a scope's items in canonical order.

    Used both as the baseline (last confirmed persisted state) and as the
    frozen result of a WorkingCollection edit session.

    Invariant after a successful reconciliation of an ORDER-keyed scope:
    ``[i.order for i in items] == list(range(len(items)))``.
    """

    scope: Scope
    items: tuple[Item, ...] = ()

    @classmethod
    def from_records(cls, scope: Scope, records: Iterable[DocumentRecord]) -> OrderedCollection:
        """Build a baseline from stored documents, sorted by the scope's key."""
        items = sorted((Item.from_record(r) for r in records), key=_sort_key(scope.ordering))
        return cls(scope=scope, items=tuple(items))

    @classmethod
    def empty(cls, scope: Scope) -> OrderedCollection:
        return cls(scope=scope)

    def sorted(self) -> OrderedCollection:
        """Copy sorted by the scope's canonical ordering key."""
        return OrderedCollection(self.scope, tuple(sorted(self.items, key=_sort_key(self.scope.ordering))))

    @property
    def ids(self) -> list[str]:
        return [i.id for i in self.items if i.id is not None]

    def get(self, key: str) -> Item | None:
        for item in self.items:
            if item.key == key:
                return item
        return None

    def index_of(self, key: str) -> int:
        for idx, item in enumerate(self.items):
            if item.key == key:
                return idx
        return -1

    def is_dense(self) -> bool:
        """True when persisted order values are exactly 0..n-1."""
        return sorted(i.order for i in self.items) == list(range(len(self.items)))

    def __iter__(self) -> Iterator[Item]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.index_of(key) >= 0

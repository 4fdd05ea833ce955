"""Tests for Scope, Item and OrderedCollection."""

from datetime import UTC, date, datetime

import pytest

from toonshelf.collection.models import (
    DocumentRecord,
    Item,
    ItemState,
    OrderedCollection,
    OrderingKey,
    Scope,
)
from toonshelf.core.exceptions import StoreError


class TestScope:
    def test_factories_build_paths(self) -> None:
        assert Scope.catalog().path == "Comics"
        assert Scope.episodes("c1").path == "Comics/c1/Episodes"
        assert Scope.images("c1", "e1").path == "Comics/c1/Episodes/e1/Images"
        assert Scope.comments("c1", "e1", "i1").path == "Comics/c1/Episodes/e1/Images/i1/Comments"

    def test_parse_round_trips_path(self) -> None:
        scope = Scope.parse("/Comics/c1/Episodes/")
        assert scope == Scope.episodes("c1")
        assert str(scope) == "Comics/c1/Episodes"

    @pytest.mark.parametrize("path", ["Comics/c1", "", "Comics//Episodes"])
    def test_parse_rejects_document_paths(self, path: str) -> None:
        with pytest.raises(ValueError):
            Scope.parse(path)

    def test_ordering_per_collection(self) -> None:
        assert Scope.catalog().ordering is OrderingKey.ORDER
        assert Scope.episodes("c1").ordering is OrderingKey.CREATED_AT
        assert Scope.images("c1", "e1").ordering is OrderingKey.ORDER
        assert Scope.comments("c1", "e1", "i1").ordering is OrderingKey.CREATED_AT

    def test_blob_prefixes(self) -> None:
        assert Scope.images("c1", "e1").blob_prefix == "comics/c1/e1"
        assert Scope.catalog().blob_prefix_for("c1") == "comics/c1/thumbnail"
        assert Scope.catalog().blob_prefix_for(None) == "comics"
        assert Scope.episodes("c1").blob_prefix == "comics/c1/episodes"

    def test_child_scopes_follow_hierarchy(self) -> None:
        assert Scope.catalog().child_scopes("c1") == (Scope.episodes("c1"),)
        assert Scope.episodes("c1").child_scopes("e1") == (Scope.images("c1", "e1"),)
        assert Scope.images("c1", "e1").child_scopes("i1") == (Scope.comments("c1", "e1", "i1"),)
        assert Scope.comments("c1", "e1", "i1").child_scopes("m1") == ()


class TestItem:
    def test_draft_key_assigned_without_id(self) -> None:
        item = Item(id=None)
        assert item.draft_key is not None
        assert item.key == item.draft_key
        assert not item.is_persisted

    def test_key_is_id_when_persisted(self) -> None:
        item = Item(id="img-1")
        assert item.key == "img-1"
        assert item.is_persisted

    def test_from_record_splits_reserved_fields(self) -> None:
        record = DocumentRecord(
            id="e1",
            data={"order": 2, "contentRef": "mem://x", "createdAt": "2024-05-01T10:00:00+00:00", "title": "Pilot"},
        )
        item = Item.from_record(record)
        assert item.order == 2
        assert item.content_ref == "mem://x"
        assert item.created_at == datetime(2024, 5, 1, 10, tzinfo=UTC)
        assert dict(item.attributes) == {"title": "Pilot"}
        assert item.state is ItemState.EXISTING

    def test_from_record_without_order(self) -> None:
        assert Item.from_record(DocumentRecord(id="x", data={})).order == -1

    def test_attributes_are_read_only(self) -> None:
        item = Item(id="x", attributes={"a": 1})
        with pytest.raises(TypeError):
            item.attributes["a"] = 2  # type: ignore[index]


class TestOrderedCollection:
    def test_from_records_sorts_by_order(self) -> None:
        scope = Scope.images("c1", "e1")
        records = [
            DocumentRecord("b", {"order": 1}),
            DocumentRecord("none", {}),
            DocumentRecord("a", {"order": 0}),
            DocumentRecord("c", {"order": 2}),
        ]
        baseline = OrderedCollection.from_records(scope, records)
        assert baseline.ids == ["a", "b", "c", "none"]

    def test_from_records_sorts_by_creation_time(self) -> None:
        scope = Scope.episodes("c1")
        records = [
            DocumentRecord("late", {"createdAt": "2024-03-01T00:00:00+00:00"}),
            DocumentRecord("early", {"createdAt": "2024-01-01T00:00:00+00:00"}),
        ]
        assert OrderedCollection.from_records(scope, records).ids == ["early", "late"]

    def test_episodes_fall_back_to_upload_date(self) -> None:
        scope = Scope.episodes("c1")
        records = [
            DocumentRecord("e2", {"uploadDate": "2024-02-01T10:00:00+00:00"}),
            DocumentRecord("e3", {"createdAt": datetime(2024, 3, 1, tzinfo=UTC)}),
            DocumentRecord("e1", {"uploadDate": date(2024, 1, 15)}),
            DocumentRecord("undated", {}),
        ]
        baseline = OrderedCollection.from_records(scope, records)
        assert baseline.ids == ["e1", "e2", "e3", "undated"]
        assert baseline.get("e1").created_at == datetime(2024, 1, 15, tzinfo=UTC)
        assert baseline.get("e2").attributes["uploadDate"] == "2024-02-01T10:00:00+00:00"

    def test_comments_fall_back_to_timestamp(self) -> None:
        scope = Scope.comments("c1", "e1", "i1")
        records = [
            DocumentRecord("reply", {"timestamp": "2024-05-01T12:00:05+00:00"}),
            DocumentRecord("root", {"timestamp": "2024-05-01T12:00:00+00:00"}),
        ]
        assert OrderedCollection.from_records(scope, records).ids == ["root", "reply"]

    @pytest.mark.parametrize("value", ["yesterday", 1714564800, ["2024"]])
    def test_unreadable_creation_time(self, value) -> None:
        record = DocumentRecord("e1", {"createdAt": value})
        with pytest.raises(StoreError, match="e1") as exc_info:
            OrderedCollection.from_records(Scope.episodes("c1"), [record])
        assert exc_info.value.operation == "read"

    def test_ties_broken_by_id(self) -> None:
        scope = Scope.images("c1", "e1")
        records = [DocumentRecord("z", {"order": 0}), DocumentRecord("a", {"order": 0})]
        assert OrderedCollection.from_records(scope, records).ids == ["a", "z"]

    def test_lookup_helpers(self) -> None:
        scope = Scope.images("c1", "e1")
        baseline = OrderedCollection(scope, (Item("a", order=0), Item("b", order=1)))
        assert baseline.index_of("b") == 1
        assert baseline.index_of("zzz") == -1
        assert baseline.get("a") == Item("a", order=0)
        assert baseline.get("zzz") is None
        assert "a" in baseline
        assert 3 not in baseline
        assert len(baseline) == 2
        assert baseline.is_dense()

    def test_is_dense_detects_gaps(self) -> None:
        scope = Scope.images("c1", "e1")
        assert not OrderedCollection(scope, (Item("a", order=0), Item("b", order=2))).is_dense()
        assert OrderedCollection.empty(scope).is_dense()

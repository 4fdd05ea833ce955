"""Tests for the filesystem stores."""

from pathlib import Path

import pytest
import yaml

from toonshelf.collection.models import OrderedCollection, PendingPayload, Scope
from toonshelf.collection.working import WorkingCollection
from toonshelf.core.exceptions import StoreError
from toonshelf.stores.base import CreateOp, DeleteOp, UpdateOp
from toonshelf.stores.local import LocalBlobStore, LocalMetadataStore
from toonshelf.sync.reconciler import Reconciler

SCOPE = Scope.images("c1", "e1")


class TestLocalBlobStore:
    @pytest.mark.asyncio
    async def test_put_returns_file_uri(self, tmp_path: Path) -> None:
        store = LocalBlobStore(tmp_path)
        ref = await store.put(SCOPE, "comics/c1/e1/1_ab_page.png", b"png", "image/png")
        assert ref.startswith("file://")
        assert (tmp_path / "blobs" / "comics" / "c1" / "e1" / "1_ab_page.png").read_bytes() == b"png"
        assert store.read(ref) == b"png"

    @pytest.mark.asyncio
    async def test_delete(self, tmp_path: Path) -> None:
        store = LocalBlobStore(tmp_path)
        ref = await store.put(SCOPE, "comics/c1/e1/a.png", b"x", "image/png")
        await store.delete(ref)
        assert not (tmp_path / "blobs" / "comics" / "c1" / "e1" / "a.png").exists()
        with pytest.raises(StoreError, match="not found"):
            await store.delete(ref)

    @pytest.mark.asyncio
    async def test_key_cannot_escape_root(self, tmp_path: Path) -> None:
        store = LocalBlobStore(tmp_path)
        with pytest.raises(StoreError, match="escapes"):
            await store.put(SCOPE, "../../etc/passwd", b"x", "text/plain")

    @pytest.mark.asyncio
    async def test_foreign_reference_rejected(self, tmp_path: Path) -> None:
        store = LocalBlobStore(tmp_path)
        outside = tmp_path / "outside.txt"
        outside.write_text("keep")
        with pytest.raises(StoreError):
            await store.delete(outside.as_uri())
        with pytest.raises(StoreError):
            await store.delete("mem://comics/a.png")
        assert outside.exists()


class TestLocalMetadataStore:
    @pytest.mark.asyncio
    async def test_batch_persists_to_yaml(self, tmp_path: Path) -> None:
        store = LocalMetadataStore(tmp_path)
        created = await store.commit_batch(SCOPE, [CreateOp({"order": 0, "contentRef": "file:///a"})])

        path = tmp_path / "documents" / "Comics" / "c1" / "Episodes" / "e1" / "Images.yaml"
        saved = yaml.safe_load(path.read_text())
        assert "updated_at" in saved
        assert saved["documents"] == {created[0]: {"order": 0, "contentRef": "file:///a"}}
        assert not path.with_name("Images.yaml.tmp").exists()

        records = await store.list_by_scope(SCOPE)
        assert [r.id for r in records] == created

    @pytest.mark.asyncio
    async def test_rejected_batch_leaves_file_untouched(self, tmp_path: Path) -> None:
        store = LocalMetadataStore(tmp_path)
        (doc_id,) = await store.commit_batch(SCOPE, [CreateOp({"order": 0})])
        path = tmp_path / "documents" / "Comics" / "c1" / "Episodes" / "e1" / "Images.yaml"
        before = path.read_text()

        with pytest.raises(StoreError):
            await store.commit_batch(SCOPE, [UpdateOp(doc_id, {"order": 1}), DeleteOp("ghost")])

        assert path.read_text() == before

    @pytest.mark.asyncio
    async def test_missing_scope_is_empty(self, tmp_path: Path) -> None:
        assert await LocalMetadataStore(tmp_path).list_by_scope(Scope.catalog()) == []

    @pytest.mark.asyncio
    async def test_malformed_file(self, tmp_path: Path) -> None:
        path = tmp_path / "documents" / "Comics.yaml"
        path.parent.mkdir(parents=True)
        path.write_text("- not\n- a mapping\n")
        with pytest.raises(StoreError, match="Malformed"):
            await LocalMetadataStore(tmp_path).list_by_scope(Scope.catalog())


class TestLocalRoundTrip:
    @pytest.mark.asyncio
    async def test_reconcile_against_filesystem(self, tmp_path: Path) -> None:
        reconciler = Reconciler(LocalBlobStore(tmp_path), LocalMetadataStore(tmp_path))
        baseline = await reconciler.load(SCOPE)
        assert baseline == OrderedCollection.empty(SCOPE)

        working = WorkingCollection.from_baseline(baseline)
        working.append(PendingPayload(b"one", "image/png", "one.png"))
        working.append(PendingPayload(b"two", "image/png", "two.png"))
        result = await reconciler.commit(baseline, working.snapshot())
        first, second = result.baseline.ids

        working = WorkingCollection.from_baseline(result.baseline)
        working.move(second, 0)
        working.replace_content(first, PendingPayload(b"uno", "image/png", "uno.png"))
        result = await reconciler.commit(result.baseline, working.snapshot())

        assert result.baseline.ids == [second, first]
        assert [i.order for i in result.baseline] == [0, 1]
        blob_files = sorted(p.name for p in (tmp_path / "blobs").rglob("*") if p.is_file())
        assert len(blob_files) == 2
        assert any(name.endswith("_uno.png") for name in blob_files)
        assert not any(name.endswith("_one.png") for name in blob_files)

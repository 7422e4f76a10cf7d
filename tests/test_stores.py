import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from stores import (  # noqa: E402
    InMemoryBlobStore,
    InMemoryRecordStore,
    LocalBlobStore,
    StorageBucket,
    StoreError,
    clean_blob_path,
)


def test_select_filters_orders_and_pages():
    store = InMemoryRecordStore()
    for i, title in enumerate(["c", "a", "b"]):
        store.insert("books", {"id": f"b{i}", "title": title, "author_id": "x" if i < 2 else "y"})

    assert [r["title"] for r in store.select("books", order_by="title")] == ["a", "b", "c"]
    assert [r["title"] for r in store.select("books", order_by="title", descending=True)] == ["c", "b", "a"]
    assert [r["id"] for r in store.select("books", where={"author_id": "x"})] == ["b0", "b1"]
    assert [r["title"] for r in store.select("books", order_by="title", offset=1, limit=1)] == ["b"]


def test_rows_are_copies():
    store = InMemoryRecordStore()
    store.insert("t", {"id": "1", "tags": ["a"]})
    row = store.get("t", "1")
    row["tags"].append("b")
    assert store.get("t", "1") == {"id": "1", "tags": ["a"]}


def test_duplicate_insert_and_missing_update_raise():
    store = InMemoryRecordStore()
    store.insert("t", {"id": "1"})
    with pytest.raises(StoreError):
        store.insert("t", {"id": "1"})
    with pytest.raises(StoreError):
        store.update("t", "missing", {"x": 1})


def test_transaction_rolls_back_every_table():
    store = InMemoryRecordStore()
    store.insert("books", {"id": "keep"})

    with pytest.raises(RuntimeError):
        with store.transaction():
            store.insert("books", {"id": "new"})
            store.insert("chapters", {"id": "c1", "book_id": "new"})
            store.delete("books", "keep")
            raise RuntimeError("boom")

    assert [r["id"] for r in store.select("books")] == ["keep"]
    assert store.select("chapters") == []


def test_transaction_leaves_untouched_tables_alone():
    store = InMemoryRecordStore()
    store.insert("chat_messages", {"id": "m1", "content": "hi"})
    before = store._tables["chat_messages"]

    with pytest.raises(RuntimeError):
        with store.transaction():
            store.insert("books", {"id": "b1"})
            store.insert("chapters", {"id": "c1", "book_id": "b1"})
            raise RuntimeError("boom")

    assert store._tables["chat_messages"] is before
    assert store.select("books") == []
    assert store.select("chapters") == []


def test_nested_transaction_rollback_keeps_outer_writes():
    store = InMemoryRecordStore()
    store.insert("books", {"id": "keep"})

    with store.transaction():
        store.insert("books", {"id": "outer"})
        with pytest.raises(RuntimeError):
            with store.transaction():
                store.insert("books", {"id": "inner"})
                store.insert("tags", {"id": "t1"})
                raise RuntimeError("boom")

    assert sorted(r["id"] for r in store.select("books")) == ["keep", "outer"]
    assert store.select("tags") == []


def test_insert_many_is_all_or_nothing():
    store = InMemoryRecordStore()
    store.insert("t", {"id": "2"})
    with pytest.raises(StoreError):
        store.insert_many("t", [{"id": "1"}, {"id": "2"}])
    assert [r["id"] for r in store.select("t")] == ["2"]


@pytest.mark.parametrize("bad", ["", "../x", "a/../../b", "/"])
def test_blob_paths_cannot_escape_bucket(bad):
    with pytest.raises(StoreError):
        clean_blob_path(bad)


def test_in_memory_blob_store_urls_and_listing():
    blobs = InMemoryBlobStore("http://h/")
    url = blobs.put(StorageBucket.covers, "b1/My Cover.png", b"img")
    assert url == "http://h/files/covers/b1/My%20Cover.png"
    assert blobs.get(StorageBucket.covers, "b1/My Cover.png") == b"img"
    assert [i["path"] for i in blobs.list(StorageBucket.covers, prefix="b1")] == ["b1/My Cover.png"]
    blobs.delete(StorageBucket.covers, "b1/My Cover.png")
    with pytest.raises(StoreError):
        blobs.get(StorageBucket.covers, "b1/My Cover.png")


def test_local_blob_store_roundtrip(tmp_path):
    blobs = LocalBlobStore(str(tmp_path), "http://localhost:8000")
    blobs.put(StorageBucket.audio, "book/ch.mp3", b"ID3")
    assert (tmp_path / "audio" / "book" / "ch.mp3").read_bytes() == b"ID3"
    assert blobs.get(StorageBucket.audio, "book/ch.mp3") == b"ID3"
    assert blobs.list(StorageBucket.audio)[0]["size"] == 3


def test_local_blob_store_creates_directories_on_first_put(tmp_path):
    root = tmp_path / "blobs"
    blobs = LocalBlobStore(str(root), "http://localhost:8000")
    assert not root.exists()
    assert blobs.list(StorageBucket.covers) == []

    blobs.put(StorageBucket.covers, "b1/cover.png", b"img")
    assert (root / "covers" / "b1" / "cover.png").is_file()
    assert not (root / "audio").exists()

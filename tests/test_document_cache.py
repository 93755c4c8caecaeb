from __future__ import annotations

import json
import random

from zettelsync.api.schemas import Document
from zettelsync.cache.projection import DocumentCache
from zettelsync.cache.storage import DOCUMENT_CACHE_KEY, JsonFileStorage, MemoryStorage


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _doc(doc_id: str, title: str | None = None, chunks: int = 1) -> Document:
    return Document(id=doc_id, title=title or f"Note {doc_id}", source_type="standard", chunk_count=chunks)


def test_load_without_snapshot_starts_empty_and_marks_loaded() -> None:
    cache = DocumentCache(MemoryStorage())
    assert not cache.loaded
    cache.load()
    assert cache.loaded
    assert cache.documents == ()


def test_load_with_corrupt_snapshot_starts_empty() -> None:
    storage = MemoryStorage({DOCUMENT_CACHE_KEY: "{not json"})
    cache = DocumentCache(storage)
    cache.load()
    assert cache.loaded
    assert cache.documents == ()
    assert cache.is_stale()


def test_load_with_undecodable_snapshot_file_starts_empty(tmp_path) -> None:
    storage = JsonFileStorage(tmp_path)
    (tmp_path / f"{DOCUMENT_CACHE_KEY}.json").write_bytes(b"\xff\xfe{garbage")
    cache = DocumentCache(storage)

    cache.load()

    assert cache.loaded
    assert cache.documents == ()
    assert cache.is_stale()
    cache.replace([_doc("d1")])
    assert json.loads(storage.get_item(DOCUMENT_CACHE_KEY))["documents"][0]["id"] == "d1"


def test_persisted_record_shape_and_reload() -> None:
    storage = MemoryStorage()
    clock = FakeClock()
    cache = DocumentCache(storage, clock=clock)
    cache.replace([_doc("a"), _doc("b")])

    record = json.loads(storage.get_item(DOCUMENT_CACHE_KEY))
    assert set(record) == {"documents", "lastUpdated"}
    assert record["lastUpdated"] == int(clock.now * 1000)
    assert [d["id"] for d in record["documents"]] == ["a", "b"]

    reloaded = DocumentCache(storage, clock=clock)
    reloaded.load()
    assert [d.id for d in reloaded.documents] == ["a", "b"]


def test_every_mutator_persists_before_returning() -> None:
    storage = MemoryStorage()
    cache = DocumentCache(storage)

    def persisted_ids() -> list[str]:
        return [d["id"] for d in json.loads(storage.get_item(DOCUMENT_CACHE_KEY))["documents"]]

    cache.apply_created(_doc("a"))
    assert persisted_ids() == ["a"]
    cache.apply_created(_doc("b"))
    assert persisted_ids() == ["a", "b"]
    cache.apply_deleted("a")
    assert persisted_ids() == ["b"]
    cache.apply_bulk_update([_doc("c"), _doc("d")])
    assert persisted_ids() == ["c", "d"]


def test_staleness_lifecycle() -> None:
    clock = FakeClock()
    cache = DocumentCache(MemoryStorage(), clock=clock)
    cache.clear()
    assert cache.is_stale()

    cache.replace([_doc("a")])
    assert not cache.is_stale()

    clock.advance(3600)
    assert not cache.is_stale()
    clock.advance(1)
    assert cache.is_stale()


def test_apply_created_is_an_upsert_by_id() -> None:
    cache = DocumentCache(MemoryStorage())
    cache.apply_created(_doc("a", title="first"))
    cache.apply_created(_doc("b"))
    cache.apply_created(_doc("a", title="renamed"))
    assert [d.id for d in cache.documents] == ["a", "b"]
    assert cache.get("a").title == "renamed"


def test_delete_after_create_leaves_document_absent() -> None:
    cache = DocumentCache(MemoryStorage())
    cache.apply_created(_doc("x"))
    cache.apply_deleted("x")
    cache.apply_deleted("never-existed")
    assert "x" not in cache.ids()


def test_created_and_deleted_sequences_interleaved_with_replace() -> None:
    rng = random.Random(1234)
    for _ in range(50):
        cache = DocumentCache(MemoryStorage())
        expected: set[str] = set()
        for _ in range(40):
            roll = rng.random()
            doc_id = f"d{rng.randint(0, 9)}"
            if roll < 0.5:
                cache.apply_created(_doc(doc_id))
                expected.add(doc_id)
            elif roll < 0.85:
                cache.apply_deleted(doc_id)
                expected.discard(doc_id)
            else:
                snapshot = {f"d{rng.randint(0, 9)}" for _ in range(3)}
                cache.replace([_doc(i) for i in sorted(snapshot)])
                expected = set(snapshot)
            assert cache.ids() == expected
        assert len(cache.documents) == len(cache.ids())


def test_clear_wipes_memory_and_storage() -> None:
    storage = MemoryStorage()
    cache = DocumentCache(storage)
    cache.replace([_doc("a")])
    cache.clear()
    assert cache.documents == ()
    assert storage.get_item(DOCUMENT_CACHE_KEY) is None

    fresh = DocumentCache(storage)
    fresh.load()
    assert fresh.documents == ()


def test_listeners_see_each_snapshot_and_can_unsubscribe() -> None:
    cache = DocumentCache(MemoryStorage())
    seen: list[list[str]] = []
    unsubscribe = cache.subscribe(lambda docs: seen.append([d.id for d in docs]))

    def broken(_docs) -> None:
        raise RuntimeError("listener bug")

    cache.subscribe(broken)
    cache.apply_created(_doc("a"))
    unsubscribe()
    cache.apply_created(_doc("b"))
    assert seen == [["a"]]


def test_total_chunks_sums_chunk_counts() -> None:
    cache = DocumentCache(MemoryStorage())
    cache.replace([_doc("a", chunks=3), _doc("b", chunks=4)])
    assert cache.total_chunks() == 7

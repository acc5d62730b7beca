"""Tests for sfxdupe.core.hash_cache."""

from __future__ import annotations

import threading
import time
from pathlib import Path

from sfxdupe.core.hash_cache import (
    ContentHashCache,
    ContentHashRecord,
    LRUCache,
    ReadWriteLock,
)


def _record(name: str, digest: str = "abc", mtime: float = 100.0) -> ContentHashRecord:
    return ContentHashRecord(Path(f"/lib/{name}.wav"), digest, mtime)


class TestLRUCache:
    """Test LRUCache eviction order."""

    def test_evicts_oldest(self) -> None:
        cache: LRUCache[str, int] = LRUCache(maxsize=2)
        cache.put("a", 1)
        cache.put("b", 2)
        cache.put("c", 3)
        assert list(cache) == ["b", "c"]

    def test_overwrite_refreshes_entry(self) -> None:
        cache: LRUCache[str, int] = LRUCache(maxsize=2)
        cache.put("a", 1)
        cache.put("b", 2)
        cache.put("a", 10)
        cache.put("c", 3)
        assert list(cache) == ["a", "c"]
        assert cache.peek("a") == 10

    def test_peek_keeps_recency(self) -> None:
        cache: LRUCache[str, int] = LRUCache(maxsize=2)
        cache.put("a", 1)
        cache.put("b", 2)
        assert cache.peek("a") == 1
        cache.put("c", 3)
        assert "a" not in cache

    def test_missing_key(self) -> None:
        cache: LRUCache[str, int] = LRUCache()
        assert cache.peek("x") is None


class TestReadWriteLock:
    """Test ReadWriteLock exclusion."""

    def test_readers_share(self) -> None:
        lock = ReadWriteLock()
        assert lock.acquire_read(timeout=0.1)
        assert lock.acquire_read(timeout=0.1)
        lock.release_read()
        lock.release_read()

    def test_writer_excludes_readers(self) -> None:
        lock = ReadWriteLock()
        assert lock.acquire_write(timeout=0.1)
        assert not lock.acquire_read(timeout=0.05)
        lock.release_write()
        assert lock.acquire_read(timeout=0.1)
        lock.release_read()

    def test_reader_excludes_writer(self) -> None:
        lock = ReadWriteLock()
        assert lock.acquire_read(timeout=0.1)
        assert not lock.acquire_write(timeout=0.05)
        lock.release_read()
        assert lock.acquire_write(timeout=0.1)
        lock.release_write()

    def test_writer_waits_for_reader(self) -> None:
        lock = ReadWriteLock()
        lock.acquire_read()
        acquired = threading.Event()

        def write() -> None:
            if lock.acquire_write(timeout=2.0):
                acquired.set()
                lock.release_write()

        thread = threading.Thread(target=write)
        thread.start()
        time.sleep(0.05)
        assert not acquired.is_set()
        lock.release_read()
        thread.join(timeout=2.0)
        assert acquired.is_set()


class TestContentHashCache:
    """Test mtime validation and capacity."""

    def test_hit_when_unchanged(self) -> None:
        cache = ContentHashCache()
        record = _record("a")
        cache.store(record)
        assert cache.lookup(record.file_path, 100.0) == "abc"

    def test_hit_when_cached_mtime_is_newer(self) -> None:
        cache = ContentHashCache()
        record = _record("a", mtime=200.0)
        cache.store(record)
        assert cache.lookup(record.file_path, 150.0) == "abc"

    def test_stale_when_file_is_newer(self) -> None:
        cache = ContentHashCache()
        record = _record("a", mtime=100.0)
        cache.store(record)
        assert cache.lookup(record.file_path, 101.0) is None

    def test_overwrite(self) -> None:
        cache = ContentHashCache()
        cache.store(_record("a", "old", 100.0))
        cache.store(_record("a", "new", 200.0))
        assert cache.lookup(Path("/lib/a.wav"), 200.0) == "new"
        assert len(cache) == 1

    def test_capacity(self) -> None:
        cache = ContentHashCache(capacity=2)
        for name in ("a", "b", "c"):
            cache.store(_record(name))
        assert len(cache) == 2
        assert Path("/lib/a.wav") not in cache
        assert cache.capacity == 2

    def test_clear(self) -> None:
        cache = ContentHashCache()
        cache.store(_record("a"))
        cache.clear()
        assert len(cache) == 0

    def test_lock_timeout_degrades_to_miss(self, caplog) -> None:  # type: ignore
        cache = ContentHashCache(lock_timeout=0.05)
        record = _record("a")
        cache.store(record)

        cache._lock.acquire_write()
        try:
            with caplog.at_level("WARNING"):
                assert cache.lookup(record.file_path, 100.0) is None
                assert cache.store(_record("b")) is False
        finally:
            cache._lock.release_write()

        assert any("lock timeout" in r.message for r in caplog.records)

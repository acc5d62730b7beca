"""In-memory content hash cache with mtime validation."""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass
from pathlib import Path
from typing import TypeVar

logger = logging.getLogger(__name__)

K = TypeVar("K")
V = TypeVar("V")


class LRUCache(OrderedDict[K, V]):
    """Bounded map behind ContentHashCache, evicting in write order.

    Reads go through ``peek`` under a shared lock and never reorder entries,
    so only ``put`` (insert or overwrite) refreshes a key.
    """

    def __init__(self, maxsize: int = 100) -> None:
        super().__init__()
        self.maxsize = maxsize

    def peek(self, key: K) -> V | None:
        return self.get(key)

    def put(self, key: K, value: V) -> None:
        """Store ``value`` as the newest entry, dropping the oldest past ``maxsize``."""
        if key in self:
            self.move_to_end(key)
        self[key] = value
        if len(self) > self.maxsize:
            self.popitem(last=False)


class ReadWriteLock:
    """Many concurrent readers or one exclusive writer.

    Waiting writers block new readers so a steady read load cannot starve
    them.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._waiting_writers = 0

    def acquire_read(self, timeout: float | None = None) -> bool:
        with self._cond:
            ok = self._cond.wait_for(
                lambda: not self._writer and self._waiting_writers == 0, timeout
            )
            if ok:
                self._readers += 1
            return ok

    def release_read(self) -> None:
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self, timeout: float | None = None) -> bool:
        with self._cond:
            self._waiting_writers += 1
            try:
                ok = self._cond.wait_for(
                    lambda: not self._writer and self._readers == 0, timeout
                )
            finally:
                self._waiting_writers -= 1
            if ok:
                self._writer = True
            else:
                self._cond.notify_all()
            return ok

    def release_write(self) -> None:
        with self._cond:
            self._writer = False
            self._cond.notify_all()


@dataclass(frozen=True, slots=True)
class ContentHashRecord:
    file_path: Path
    content_hash: str
    file_mtime: float


class ContentHashCache:
    """Path -> ContentHashRecord, bounded and shared between workers.

    A record is only returned while its stored mtime is not older than the
    file's current mtime.  Lock timeouts are reported as misses (lookup) or
    dropped writes (store), never as errors.
    """

    def __init__(self, capacity: int = 100, lock_timeout: float = 1.0):
        self._entries: LRUCache[Path, ContentHashRecord] = LRUCache(maxsize=capacity)
        self._lock = ReadWriteLock()
        self.lock_timeout = lock_timeout

    @property
    def capacity(self) -> int:
        return self._entries.maxsize

    def lookup(self, path: Path, current_mtime: float) -> str | None:
        """Return the cached hash of ``path`` if still valid."""
        if not self._lock.acquire_read(self.lock_timeout):
            logger.warning("[HashCache] Read lock timeout for %s, recomputing", path)
            return None
        try:
            record = self._entries.peek(path)
        finally:
            self._lock.release_read()

        if record is None:
            return None
        if record.file_mtime < current_mtime:
            logger.debug("[HashCache] Stale entry for %s", path)
            return None
        return record.content_hash

    def store(self, record: ContentHashRecord) -> bool:
        """Insert or overwrite a record; returns False if the lock timed out."""
        if not self._lock.acquire_write(self.lock_timeout):
            logger.warning("[HashCache] Write lock timeout for %s, not cached", record.file_path)
            return False
        try:
            self._entries.put(record.file_path, record)
        finally:
            self._lock.release_write()
        return True

    def clear(self) -> None:
        if not self._lock.acquire_write():
            return
        try:
            self._entries.clear()
        finally:
            self._lock.release_write()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, path: object) -> bool:
        return path in self._entries

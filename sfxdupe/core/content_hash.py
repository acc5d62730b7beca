"""Byte-identity hashing of audio files.

Digests are SHA-256 hex strings computed with a size-dependent strategy:

==========================  ==================================================
size (bytes)                strategy
==========================  ==================================================
``<= 1_000_000``            single pass over the buffer
``<= 10_000_000``           256 KiB chunks hashed in parallel, digests folded
                            in order into one accumulator
``<= 50_000_000``           1 MB chunks hashed in parallel, hash of the
                            concatenated chunk digests
``> 50_000_000``            one 4-byte group out of every four, single pass
==========================  ==================================================

Two buffers that land in different tiers never compare equal, so a digest is
only meaningful next to digests of buffers of the same size class.
"""

from __future__ import annotations

import hashlib
import logging
import os
import queue
import threading
from collections.abc import Callable, Iterable, Iterator
from concurrent.futures import Executor, ThreadPoolExecutor
from contextlib import contextmanager
from pathlib import Path

import numpy as np

from .config import ContentHashConfig, ConverterConfig
from .converter import ConverterGate, ExternalConverter
from .decoder import AudioDecoder
from .errors import (
    AudioFileNotFoundError,
    AudioInputError,
    SfxDupeError,
    UnsupportedFormatError,
)
from .hash_cache import ContentHashCache, ContentHashRecord

logger = logging.getLogger(__name__)

SMALL_TIER_MAX = 1_000_000
MEDIUM_TIER_MAX = 10_000_000
LARGE_TIER_MAX = 50_000_000

MEDIUM_CHUNK_SIZE = 262_144
LARGE_CHUNK_SIZE = 1_000_000

# Huge buffers: keep GROUP_SIZE bytes out of every GROUP_SIZE * GROUP_STRIDE
GROUP_SIZE = 4
GROUP_STRIDE = 4

HashOutcome = str | SfxDupeError

_STOP = object()


def _sha256_digest(chunk: memoryview) -> bytes:
    return hashlib.sha256(chunk).digest()


@contextmanager
def _chunk_executor(executor: Executor | None) -> Iterator[Executor]:
    if executor is not None:
        yield executor
        return
    with ThreadPoolExecutor(max_workers=os.cpu_count() or 1) as own:
        yield own


def _chunk_digests(view: memoryview, chunk_size: int, executor: Executor | None) -> list[bytes]:
    chunks = [view[i : i + chunk_size] for i in range(0, len(view), chunk_size)]
    with _chunk_executor(executor) as ex:
        return list(ex.map(_sha256_digest, chunks))


def _downsample_groups(view: memoryview) -> bytes:
    arr = np.frombuffer(view, dtype=np.uint8)
    block = GROUP_SIZE * GROUP_STRIDE
    whole = (len(arr) // block) * block
    kept = arr[:whole].reshape(-1, block)[:, :GROUP_SIZE]
    tail = arr[whole:][:GROUP_SIZE]
    return kept.tobytes() + tail.tobytes()


def hash_audio(data: bytes | bytearray | memoryview, executor: Executor | None = None) -> str:
    """Hash a byte buffer with the strategy of its size tier.

    Args:
        data: Bytes to hash
        executor: Pool used for chunk hashing (a private one if None)

    Returns:
        SHA-256 hex digest
    """
    view = memoryview(data).cast("B")
    size = len(view)

    if size <= SMALL_TIER_MAX:
        return hashlib.sha256(view).hexdigest()

    if size <= MEDIUM_TIER_MAX:
        acc = hashlib.sha256()
        for digest in _chunk_digests(view, MEDIUM_CHUNK_SIZE, executor):
            acc.update(digest)
        return acc.hexdigest()

    if size <= LARGE_TIER_MAX:
        digests = _chunk_digests(view, LARGE_CHUNK_SIZE, executor)
        return hashlib.sha256(b"".join(digests)).hexdigest()

    return hashlib.sha256(_downsample_groups(view)).hexdigest()


class ContentHashEngine:
    """Cached content hashing of files.

    The hashed bytes depend on ``ContentHashConfig.source``:

    - ``"file"``: the raw file bytes
    - ``"pcm"``: the decoded samples (headers and tags do not matter)

    Files above ``ConverterConfig.large_file_threshold``, or every file when
    ``ignore_filetypes`` is set, are decoded through the external converter.
    """

    def __init__(
        self,
        config: ContentHashConfig | None = None,
        converter_config: ConverterConfig | None = None,
        cache: ContentHashCache | None = None,
        decoder: AudioDecoder | None = None,
        converter: ExternalConverter | None = None,
        gate: ConverterGate | None = None,
    ) -> None:
        """Initialize engine.

        Args:
            config: Hashing configuration (defaults if None)
            converter_config: External converter configuration (defaults if None)
            cache: Shared cache (a new one sized from config if None)
            decoder: Decoder for the "pcm" source
            converter: External converter (created on first use if None)
            gate: Process gate for a converter created on first use
        """
        self.config = config or ContentHashConfig()
        self.converter_config = converter_config or ConverterConfig()
        self.cache = cache or ContentHashCache(
            capacity=self.config.cache_capacity,
            lock_timeout=self.config.lock_timeout,
        )
        self.decoder = decoder or AudioDecoder()
        self._converter = converter
        self._gate = gate or ConverterGate(self.converter_config.max_processes)
        self._converter_lock = threading.Lock()
        # Chunk hashing for every file and worker goes through this one pool
        self._chunk_pool = ThreadPoolExecutor(
            max_workers=os.cpu_count() or 1, thread_name_prefix="content-hash-chunk"
        )

    def close(self) -> None:
        """Shut down the chunk hashing pool. The engine cannot hash afterwards."""
        self._chunk_pool.shutdown(wait=True)

    def __enter__(self) -> ContentHashEngine:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def converter(self) -> ExternalConverter:
        """External converter, created on first use (needs ffmpeg)."""
        with self._converter_lock:
            if self._converter is None:
                self._converter = ExternalConverter(self.converter_config, self._gate)
            return self._converter

    def content_hash(self, path: Path | str) -> str:
        """Hash one file, reusing a cached digest while the file is unchanged.

        Args:
            path: Audio file

        Returns:
            SHA-256 hex digest

        Raises:
            AudioFileNotFoundError: If the file does not exist
            AudioInputError: If the file cannot be read or decoded
            ConverterError: If the external converter fails
        """
        path = Path(path)
        try:
            stat = path.stat()
        except FileNotFoundError:
            raise AudioFileNotFoundError(path) from None

        cached = self.cache.lookup(path, stat.st_mtime)
        if cached is not None:
            logger.debug("[ContentHash] Cache hit: %s", path.name)
            return cached

        data = self._read_source(path, stat.st_size)
        digest = hash_audio(data, executor=self._chunk_pool)
        self.cache.store(ContentHashRecord(path, digest, stat.st_mtime))
        logger.debug("[ContentHash] %s: %s (%d bytes)", path.name, digest[:12], len(data))
        return digest

    def _read_source(self, path: Path, file_size: int) -> bytes:
        conv = self.converter_config
        if conv.ignore_filetypes or file_size > conv.large_file_threshold:
            return self.converter.convert_bytes(path)

        if self.config.source == "pcm":
            try:
                return self.decoder.decode(path).interleaved_bytes()
            except UnsupportedFormatError:
                logger.info("[ContentHash] %s: no in-process decoder, converting", path.name)
                return self.converter.convert_bytes(path)

        try:
            return path.read_bytes()
        except OSError as e:
            raise AudioInputError(f"Cannot read {path}: {e}") from e

    def hash_files(
        self,
        paths: Iterable[Path | str],
        cancelled: Callable[[], bool] | None = None,
    ) -> dict[Path, HashOutcome]:
        """Hash many files with a fixed pool of worker threads.

        Paths are fed through a bounded work queue; each worker posts a
        digest or a typed error per path to the result queue, which is read
        once every worker has finished.

        Args:
            paths: Files to hash
            cancelled: Optional callable returning True to stop early

        Returns:
            Mapping path -> digest or error, in input order (paths not reached
            before cancellation are absent)
        """
        ordered = [Path(p) for p in paths]
        n_workers = self.config.workers or os.cpu_count() or 1
        work: queue.Queue = queue.Queue(maxsize=self.config.queue_size)
        results: queue.SimpleQueue = queue.SimpleQueue()
        failures: list[BaseException] = []

        def worker() -> None:
            while True:
                item = work.get()
                if item is _STOP:
                    return
                if cancelled and cancelled():
                    continue
                try:
                    results.put((item, self.content_hash(item)))
                except SfxDupeError as e:
                    logger.warning("[ContentHash] %s: %s", item, e)
                    results.put((item, e))
                except OSError as e:
                    logger.warning("[ContentHash] %s: %s", item, e)
                    results.put((item, AudioInputError(f"Cannot read {item}: {e}")))
                except Exception as e:
                    logger.exception("[ContentHash] Unexpected failure on %s", item)
                    failures.append(e)

        threads = [
            threading.Thread(target=worker, name=f"content-hash-{i}", daemon=True)
            for i in range(n_workers)
        ]
        for t in threads:
            t.start()

        for path in ordered:
            if cancelled and cancelled():
                logger.info("[ContentHash] Cancelled while queueing work")
                break
            work.put(path)
        for _ in threads:
            work.put(_STOP)
        for t in threads:
            t.join()

        if failures:
            raise failures[0]

        collected: dict[Path, HashOutcome] = {}
        while not results.empty():
            path, outcome = results.get()
            collected[path] = outcome

        logger.info(
            "[ContentHash] Hashed %d/%d files with %d workers",
            len(collected),
            len(ordered),
            n_workers,
        )
        return {p: collected[p] for p in ordered if p in collected}


_default_engine: ContentHashEngine | None = None
_default_engine_lock = threading.Lock()


def content_hash(path: Path | str) -> str:
    """Hash a file with a process-wide engine using default settings."""
    global _default_engine
    with _default_engine_lock:
        if _default_engine is None:
            _default_engine = ContentHashEngine()
    return _default_engine.content_hash(path)

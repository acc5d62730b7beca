"""In-memory fingerprint index for one search session.

Maps every landmark hash to the (asset, anchor time) pairs where it occurs.
The index lives as long as the session that builds it; nothing is persisted.
"""

from __future__ import annotations

import logging
import os
from collections import defaultdict
from collections.abc import Callable, Hashable, Iterable
from concurrent.futures import ThreadPoolExecutor

from .audio import SampleBuffer
from .fingerprint import AssetFingerprint, Fingerprinter, LandmarkHash

logger = logging.getLogger(__name__)


class FingerprintIndex:
    """Hash -> occurrences multimap plus the fingerprint of every indexed asset.

    Insertion only; ``reset()`` is the only way to drop entries.  Call
    ``freeze()`` once indexing is done: matching reads a frozen index and any
    further insertion is refused.
    """

    def __init__(self) -> None:
        self._buckets: dict[LandmarkHash, list[tuple[Hashable, int]]] = defaultdict(list)
        self._assets: dict[Hashable, AssetFingerprint] = {}
        self._frozen = False

    def add(self, fingerprint: AssetFingerprint) -> int:
        """Index all hashes of one asset.

        Args:
            fingerprint: Asset fingerprint

        Returns:
            Number of occurrences inserted

        Raises:
            RuntimeError: If the index is frozen
            ValueError: If the asset is already indexed
        """
        if self._frozen:
            raise RuntimeError("Cannot add to a frozen fingerprint index")
        asset_id = fingerprint.asset_id
        if asset_id in self._assets:
            raise ValueError(f"Asset already indexed: {asset_id!r}")

        self._assets[asset_id] = fingerprint
        inserted = 0
        for hash_key, times in fingerprint.hashes.items():
            bucket = self._buckets[hash_key]
            for t in times:
                bucket.append((asset_id, t))
            inserted += len(times)
        return inserted

    def lookup(self, hash_key: LandmarkHash) -> list[tuple[Hashable, int]]:
        """Return the occurrences of a hash (empty list if unknown)."""
        return self._buckets.get(hash_key, [])

    def get(self, asset_id: Hashable) -> AssetFingerprint | None:
        return self._assets.get(asset_id)

    def freeze(self) -> None:
        """Make the index read-only."""
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def reset(self) -> None:
        """Drop every entry and unfreeze."""
        self._buckets.clear()
        self._assets.clear()
        self._frozen = False

    @property
    def asset_ids(self) -> list[Hashable]:
        """Indexed asset ids in insertion order."""
        return list(self._assets)

    def __len__(self) -> int:
        return len(self._assets)

    def __contains__(self, asset_id: object) -> bool:
        return asset_id in self._assets

    def stats(self) -> dict:
        """Get index statistics.

        Returns:
            Dict with asset, bucket and occurrence counts
        """
        occurrences = sum(len(b) for b in self._buckets.values())
        return {
            "assets": len(self._assets),
            "hash_keys": len(self._buckets),
            "occurrences": occurrences,
            "avg_occurrences_per_asset": (
                occurrences / len(self._assets) if self._assets else 0
            ),
        }


def build_index(
    assets: Iterable[tuple[Hashable, SampleBuffer]],
    fingerprinter: Fingerprinter | None = None,
    max_workers: int | None = None,
    cancelled: Callable[[], bool] | None = None,
) -> FingerprintIndex:
    """Fingerprint assets and merge them into a new index.

    Extraction runs in a thread pool; the merge is single-threaded and follows
    the input order, so the resulting index does not depend on scheduling.

    Args:
        assets: (asset_id, buffer) pairs
        fingerprinter: Fingerprinter (default parameters if None)
        max_workers: Extraction threads (CPU count if None)
        cancelled: Optional callable returning True to stop early

    Returns:
        FingerprintIndex holding every asset fingerprinted before cancellation.
        A cancelled build returns this partial index without marking it, so
        callers check their own cancel flag to tell the two apart.
    """
    fingerprinter = fingerprinter or Fingerprinter()
    index = FingerprintIndex()
    workers = max_workers or os.cpu_count() or 1

    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = []
        for asset_id, buffer in assets:
            if cancelled and cancelled():
                break
            futures.append(executor.submit(fingerprinter.fingerprint, asset_id, buffer))
        for future in futures:
            if cancelled and cancelled():
                logger.info(
                    "[FingerprintIndex] Build cancelled, index incomplete at %d assets", len(index)
                )
                for pending in futures:
                    pending.cancel()
                break
            index.add(future.result())

    logger.info("[FingerprintIndex] Indexed %d assets: %s", len(index), index.stats())
    return index

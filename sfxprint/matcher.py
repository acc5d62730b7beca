"""Subset (containment) matching over a fingerprint index.

Public API
----------
``SubsetMatcher.subset_match(query_asset_id)``
    Finds every indexed asset that contains the query, in whole or as a clip.

``SubsetMatcher.find_all_subset_matches()``
    Runs ``subset_match`` for every indexed asset, shortest first.

Internal pipeline
-----------------
1. For each query hash, fetch the index bucket
2. For each occurrence in another asset, vote for ``other_time - query_time``
3. Per candidate asset, keep the offset with the most votes
4. Accept candidates whose peak reaches ``min_match_count``

A real containment stacks its votes on a single offset (the alignment of the
clip inside the parent); unrelated audio spreads a few votes over many
offsets.
"""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from collections.abc import Callable, Hashable
from dataclasses import dataclass

from .index import FingerprintIndex

logger = logging.getLogger(__name__)

DEFAULT_MIN_MATCH_COUNT = 5


@dataclass(frozen=True, slots=True)
class MatchResult:
    """The child asset's content found inside the parent asset.

    Attributes:
        parent_id: Asset containing the match
        child_id: Query asset
        offset_bins: Parent time bin aligned with the child's time bin 0
        match_count: Votes at the best offset
        similarity: match_count / number of child (hash, time) pairs
    """
    parent_id: Hashable
    child_id: Hashable
    offset_bins: int
    match_count: int
    similarity: float

    def offset_seconds(self, seconds_per_bin: float) -> float:
        return self.offset_bins * seconds_per_bin


class SubsetMatcher:
    """Offset-histogram voting against a frozen fingerprint index."""

    def __init__(
        self,
        index: FingerprintIndex,
        min_match_count: int = DEFAULT_MIN_MATCH_COUNT,
    ):
        """Initialize matcher.

        Args:
            index: Index to search; frozen here if it is not already
            min_match_count: Minimum votes at the best offset to report a match
        """
        if min_match_count < 1:
            raise ValueError(f"min_match_count must be >= 1, got {min_match_count}")
        index.freeze()
        self.index = index
        self.min_match_count = min_match_count

    def subset_match(
        self,
        query_asset_id: Hashable,
        min_match_count: int | None = None,
    ) -> list[MatchResult]:
        """Find the assets containing the query asset.

        Args:
            query_asset_id: Indexed asset to look for
            min_match_count: Override of the matcher's threshold

        Returns:
            Matches sorted by descending match_count (empty if the query is
            unknown or has no hashes)
        """
        threshold = min_match_count if min_match_count is not None else self.min_match_count
        query = self.index.get(query_asset_id)
        if query is None or not query.hashes:
            return []

        votes: dict[Hashable, Counter[int]] = defaultdict(Counter)
        for hash_key, query_times in query.hashes.items():
            for other_id, other_time in self.index.lookup(hash_key):
                if other_id == query_asset_id:
                    continue
                histogram = votes[other_id]
                for query_time in query_times:
                    histogram[other_time - query_time] += 1

        total = query.hash_count
        results: list[MatchResult] = []
        for other_id, histogram in votes.items():
            # most_common keeps insertion order among equal counts: first seen wins
            best_offset, count = histogram.most_common(1)[0]
            if count < threshold:
                continue
            results.append(
                MatchResult(
                    parent_id=other_id,
                    child_id=query_asset_id,
                    offset_bins=best_offset,
                    match_count=count,
                    similarity=count / total,
                )
            )

        results.sort(key=lambda m: -m.match_count)
        return results

    def find_all_subset_matches(
        self,
        min_match_count: int | None = None,
        cancelled: Callable[[], bool] | None = None,
    ) -> list[MatchResult]:
        """Search every indexed asset against all others.

        Assets are processed in ascending duration order so shorter clips are
        tested against longer material first.

        Args:
            min_match_count: Override of the matcher's threshold
            cancelled: Optional callable returning True to abort early

        Returns:
            Matches in sweep order (per query: descending match_count). After
            cancellation this holds only the queries already swept; the list
            itself carries no incomplete marker.
        """
        ids = sorted(
            self.index.asset_ids,
            key=lambda asset_id: self.index.get(asset_id).duration_seconds,
        )

        all_results: list[MatchResult] = []
        for i, asset_id in enumerate(ids):
            if cancelled and cancelled():
                logger.info(
                    "[SubsetMatcher] Sweep cancelled at %d/%d assets, results incomplete",
                    i,
                    len(ids),
                )
                break
            all_results.extend(self.subset_match(asset_id, min_match_count))

        logger.info(
            "[SubsetMatcher] %d subset relationships across %d assets",
            len(all_results),
            len(ids),
        )
        return all_results


def subset_match(
    index: FingerprintIndex,
    query_asset_id: Hashable,
    min_match_count: int = DEFAULT_MIN_MATCH_COUNT,
) -> list[MatchResult]:
    """Convenience wrapper around ``SubsetMatcher.subset_match``.

    Freezes ``index``: ``add`` raises until ``reset`` is called.
    """
    return SubsetMatcher(index, min_match_count).subset_match(query_asset_id)


def find_all_subset_matches(
    index: FingerprintIndex,
    min_match_count: int = DEFAULT_MIN_MATCH_COUNT,
    cancelled: Callable[[], bool] | None = None,
) -> list[MatchResult]:
    """Convenience wrapper around ``SubsetMatcher.find_all_subset_matches``.

    Freezes ``index``: ``add`` raises until ``reset`` is called. A cancelled
    sweep returns the partial list.
    """
    return SubsetMatcher(index, min_match_count).find_all_subset_matches(cancelled=cancelled)

"""
SignalCraft
Copyright (c) 2026 Chris Menendez.
All Rights Reserved.
See LICENSE for permitted use.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, List, Optional, Tuple

from feed_engine.config import get_float_env, get_int_env
from feed_engine.models import MatchResult
from feed_engine.utils.ttl_cache import BoundedTTLCache

logger = logging.getLogger(__name__)

FeedKey = Tuple[str, str, int]


class FeedCache:
    """
    Ranked feeds keyed by (candidate_id, profile_hash, corpus_version).

    A profile edit or a corpus change yields a new key, so stale entries are
    simply never hit again and age out through TTL/LRU.
    """

    def __init__(
        self,
        *,
        max_entries: Optional[int] = None,
        ttl_s: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._cache: BoundedTTLCache[Tuple[MatchResult, ...]] = BoundedTTLCache(
            max_entries=max_entries or get_int_env("JOBFEED_FEED_CACHE_MAX", 5000),
            ttl_s=ttl_s or get_float_env("JOBFEED_FEED_CACHE_TTL_S", 900.0),
            clock=clock,
        )

    def __len__(self) -> int:
        return len(self._cache)

    def get(self, candidate_id: str, profile_hash: str, corpus_version: int) -> Optional[List[MatchResult]]:
        key: FeedKey = (candidate_id, profile_hash, int(corpus_version))
        hit = self._cache.get(key)
        logger.debug(
            "[feed_cache][%s] candidate=%s corpus_version=%s",
            "hit" if hit is not None else "miss",
            candidate_id,
            corpus_version,
        )
        return list(hit) if hit is not None else None

    def put(self, candidate_id: str, profile_hash: str, corpus_version: int, results: List[MatchResult]) -> None:
        self._cache.put((candidate_id, profile_hash, int(corpus_version)), tuple(results))

    def invalidate_candidate(self, candidate_id: str) -> int:
        dropped = self._cache.discard_where(lambda key: key[0] == candidate_id)
        if dropped:
            logger.info("[feed_cache][invalidate] candidate=%s entries=%s", candidate_id, dropped)
        return dropped

    def clear(self) -> None:
        self._cache.clear()

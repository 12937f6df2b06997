"""
SignalCraft
Copyright (c) 2026 Chris Menendez.
All Rights Reserved.
See LICENSE for permitted use.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from feed_engine.config import get_float_env, get_int_env
from feed_engine.models import CandidateVector
from feed_engine.profile_loader import CandidateProfile
from feed_engine.utils.ttl_cache import BoundedTTLCache

from .core import profile_hash, vectorize

logger = logging.getLogger(__name__)


class VectorCache:
    """Candidate vectors keyed by profile hash; an unchanged profile is never re-vectorized."""

    def __init__(
        self,
        *,
        max_entries: Optional[int] = None,
        ttl_s: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._cache: BoundedTTLCache[CandidateVector] = BoundedTTLCache(
            max_entries=max_entries or get_int_env("JOBFEED_VECTOR_CACHE_MAX", 10000),
            ttl_s=ttl_s or get_float_env("JOBFEED_VECTOR_CACHE_TTL_S", 86400.0),
            clock=clock,
        )
        self.computed = 0

    def __len__(self) -> int:
        return len(self._cache)

    def get_or_compute(self, profile: CandidateProfile) -> CandidateVector:
        key = profile_hash(profile)
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        vector = vectorize(profile)
        self.computed += 1
        self._cache.put(key, vector)
        logger.debug("[vector_cache][miss] candidate=%s profile_hash=%s", profile.candidate_id, key[:12])
        return vector

from __future__ import annotations

import pytest

from conftest import NOW
from feed_engine.models import MatchResult, SubScores
from feed_engine.ranking.cache import FeedCache
from feed_engine.utils.ttl_cache import BoundedTTLCache


class _Clock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def _result(job_id: str = "job_a") -> MatchResult:
    return MatchResult(
        candidate_id="cand_1",
        job_id=job_id,
        sub_scores=SubScores(semantic_relevance=0.9, recency=1.0, liveness=1.0, personalization=0.5),
        final_score=0.905,
        matched_skills=("React",),
        related_skills=(),
        explanation="Matches your skills: React.",
        badges=(),
        trust_score=90,
        posted_at=NOW,
    )


def test_hit_until_ttl_expires() -> None:
    clock = _Clock()
    cache = FeedCache(max_entries=10, ttl_s=60, clock=clock)
    cache.put("cand_1", "hash1", 3, [_result()])

    clock.now += 59
    assert [r.job_id for r in cache.get("cand_1", "hash1", 3)] == ["job_a"]

    clock.now += 1
    assert cache.get("cand_1", "hash1", 3) is None
    assert len(cache) == 0


def test_corpus_version_or_profile_change_misses() -> None:
    cache = FeedCache(max_entries=10, ttl_s=60, clock=_Clock())
    cache.put("cand_1", "hash1", 3, [_result()])

    assert cache.get("cand_1", "hash1", 4) is None
    assert cache.get("cand_1", "hash2", 3) is None
    assert cache.get("cand_1", "hash1", 3) is not None


def test_returned_list_is_a_copy() -> None:
    cache = FeedCache(max_entries=10, ttl_s=60, clock=_Clock())
    cache.put("cand_1", "hash1", 1, [_result()])

    cache.get("cand_1", "hash1", 1).clear()

    assert len(cache.get("cand_1", "hash1", 1)) == 1


def test_lru_eviction_respects_bound() -> None:
    cache = FeedCache(max_entries=2, ttl_s=60, clock=_Clock())
    cache.put("cand_a", "h", 1, [])
    cache.put("cand_b", "h", 1, [])
    assert cache.get("cand_a", "h", 1) == []

    cache.put("cand_c", "h", 1, [])

    assert len(cache) == 2
    assert cache.get("cand_b", "h", 1) is None
    assert cache.get("cand_a", "h", 1) == []
    assert cache.get("cand_c", "h", 1) == []


def test_invalidate_candidate_drops_all_versions() -> None:
    cache = FeedCache(max_entries=10, ttl_s=60, clock=_Clock())
    cache.put("cand_1", "h", 1, [])
    cache.put("cand_1", "h", 2, [])
    cache.put("cand_2", "h", 1, [])

    assert cache.invalidate_candidate("cand_1") == 2
    assert cache.invalidate_candidate("cand_1") == 0
    assert len(cache) == 1

    cache.clear()
    assert len(cache) == 0


def test_defaults_come_from_env(monkeypatch) -> None:
    monkeypatch.setenv("JOBFEED_FEED_CACHE_MAX", "1")
    cache = FeedCache(clock=_Clock())
    cache.put("cand_a", "h", 1, [])
    cache.put("cand_b", "h", 1, [])
    assert len(cache) == 1


@pytest.mark.parametrize("kwargs", [{"max_entries": 0, "ttl_s": 1.0}, {"max_entries": 1, "ttl_s": 0}])
def test_bounded_cache_rejects_bad_limits(kwargs) -> None:
    with pytest.raises(ValueError):
        BoundedTTLCache(**kwargs)

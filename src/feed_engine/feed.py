"""
SignalCraft
Copyright (c) 2026 Chris Menendez.
All Rights Reserved.
See LICENSE for permitted use.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Set

from feed_engine.collaborators import JobActionSource, JobInteraction, ProfileSource
from feed_engine.models import MatchBreakdown, MatchResult
from feed_engine.profile_loader import CandidateProfile
from feed_engine.ranking.cache import FeedCache
from feed_engine.ranking.contract import DEFAULT_RANKING_CONFIG, RankingConfig
from feed_engine.ranking.engine import (
    PersonalizationSignal,
    RankingContext,
    build_breakdown,
    rank_eligible,
    score_job,
    select_feed,
)
from feed_engine.semantic.cache import VectorCache
from feed_engine.semantic.core import experience_vector
from feed_engine.state.job_store import JobNotFoundError, JobStore
from feed_engine.utils.time import utc_now

logger = logging.getLogger(__name__)

__all__ = ["FeedService", "JobNotFoundError"]


class FeedService:
    """
    Read side: candidate profile + job actions + current corpus -> ranked feed.

    The feed cache holds the full above-threshold ranking per
    (candidate, profile hash, corpus version); exclusions and the feed_size
    cut are applied on every read so a fresh save or hide takes effect
    without waiting for the next ingestion batch.

    Caches are passed in so each process (CLI run, worker) decides their
    lifetime explicitly.
    """

    def __init__(
        self,
        store: JobStore,
        profiles: ProfileSource,
        actions: JobActionSource,
        *,
        feed_cache: Optional[FeedCache] = None,
        vector_cache: Optional[VectorCache] = None,
        config: RankingConfig = DEFAULT_RANKING_CONFIG,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.profiles = profiles
        self.actions = actions
        self.feed_cache = feed_cache if feed_cache is not None else FeedCache()
        self.vector_cache = vector_cache if vector_cache is not None else VectorCache()
        self.config = config
        self.clock = clock

    def _signal(self, interactions: List[JobInteraction]) -> PersonalizationSignal:
        liked: Set[str] = set()
        hidden: Set[str] = set()
        for interaction in interactions:
            job = self.store.get_job(interaction.job_id)
            if job is None or not job.company_id or job.company_id == "unknown":
                continue
            if interaction.status in ("saved", "applied"):
                liked.add(job.company_id)
            elif interaction.status == "hidden":
                hidden.add(job.company_id)
        return PersonalizationSignal(liked_company_ids=frozenset(liked), hidden_company_ids=frozenset(hidden - liked))

    def _context(self, profile: CandidateProfile, now: datetime) -> RankingContext:
        candidate = self.vector_cache.get_or_compute(profile)
        since = now - timedelta(days=self.config.interaction_window_days)
        interactions = self.actions.recent_interactions(profile.candidate_id, since)
        return RankingContext(
            candidate=candidate,
            profile=profile,
            experience_vector=experience_vector(profile) if not candidate.has_skills else (),
            signal=self._signal(interactions),
        )

    def get_daily_feed(self, candidate_id: str) -> List[MatchResult]:
        profile = self.profiles.get_profile(candidate_id)
        candidate = self.vector_cache.get_or_compute(profile)
        corpus_version = self.store.corpus_version()
        ranked = self.feed_cache.get(profile.candidate_id, candidate.profile_hash, corpus_version)
        if ranked is None:
            now = self.clock()
            context = self._context(profile, now)
            ranked = rank_eligible(context, self.store.list_feed_jobs(), now=now, config=self.config)
            self.feed_cache.put(profile.candidate_id, candidate.profile_hash, corpus_version, ranked)
        excluded = self.actions.excluded_job_ids(profile.candidate_id)
        feed = select_feed(ranked, config=self.config, excluded_ids=excluded)
        logger.info(
            "[feed][daily] candidate=%s corpus_version=%s eligible=%s excluded=%s returned=%s",
            profile.candidate_id,
            corpus_version,
            len(ranked),
            len(excluded),
            len(feed),
        )
        return feed

    def get_match_breakdown(self, candidate_id: str, job_id: str) -> MatchBreakdown:
        """Score one pair regardless of threshold, feed membership or exclusions."""
        profile = self.profiles.get_profile(candidate_id)
        job = self.store.get_job(job_id)
        if job is None:
            raise JobNotFoundError(f"job not found: {job_id}")
        now = self.clock()
        result = score_job(self._context(profile, now), job, now=now, config=self.config)
        return build_breakdown(result, job, self.config)

    def record_job_action(self, candidate_id: str, job_id: str, status: str) -> None:
        """
        Record a save/hide/apply and drop the candidate's cached rankings,
        since the action also shifts their company preferences.
        """
        profile = self.profiles.get_profile(candidate_id)
        if self.store.get_job(job_id) is None:
            raise JobNotFoundError(f"job not found: {job_id}")
        self.actions.record(profile.candidate_id, job_id, status, self.clock())
        self.feed_cache.invalidate_candidate(profile.candidate_id)

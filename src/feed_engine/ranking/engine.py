"""
SignalCraft
Copyright (c) 2026 Chris Menendez.
All Rights Reserved.
See LICENSE for permitted use.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import AbstractSet, Iterable, List, Optional, Sequence, Tuple

from feed_engine.models import (
    BADGE_DIRECT_FROM_COMPANY,
    BADGE_VERIFIED_ACTIVE,
    CandidateVector,
    Job,
    LivenessStatus,
    MatchBreakdown,
    MatchResult,
    SourceKind,
    SubScores,
    WorkType,
)
from feed_engine.normalize.skills import expand_implied, related_skills
from feed_engine.profile_loader import CandidateProfile
from feed_engine.semantic.core import JobVectorIndex, cosine_similarity
from feed_engine.utils.time import age_days

from .contract import DEFAULT_RANKING_CONFIG, RankingConfig

logger = logging.getLogger(__name__)

COMPANY_AFFINITY_BONUS = 0.3
COMPANY_AVOIDANCE_PENALTY = 0.3
PREFERENCE_STEP = 0.1


@dataclass(frozen=True)
class PersonalizationSignal:
    """Recent job actions folded into company-level preferences."""

    liked_company_ids: AbstractSet[str] = field(default_factory=frozenset)
    hidden_company_ids: AbstractSet[str] = field(default_factory=frozenset)


@dataclass(frozen=True)
class RankingContext:
    """Everything about the candidate the engine needs for one ranking pass."""

    candidate: CandidateVector
    profile: CandidateProfile
    experience_vector: Tuple[float, ...] = ()
    signal: PersonalizationSignal = field(default_factory=PersonalizationSignal)

    @property
    def discovery(self) -> bool:
        return not self.candidate.has_skills


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


def recency_score(job: Job, now: datetime, half_life_days: float) -> float:
    age = age_days(job.posted_at or job.first_seen_at, now)
    if age is None:
        return 0.5
    return _clamp(0.5 ** (age / half_life_days))


def liveness_score(status: LivenessStatus, config: RankingConfig) -> float:
    return _clamp(getattr(config.liveness_scores, status.value))


def _location_matches(job: Job, preferred: Sequence[str]) -> bool:
    haystack = " ".join(
        part.lower() for part in (job.location.raw, job.location.city or "", job.location.region or "") if part
    )
    return any(pref.strip().lower() and pref.strip().lower() in haystack for pref in preferred)


def personalization_score(
    job: Job,
    profile: CandidateProfile,
    signal: PersonalizationSignal,
    config: RankingConfig,
) -> float:
    """
    Baseline plus bounded nudges: company affinity from recent saves/applies
    (or avoidance from hides), work-type, location and salary fit.
    """
    score = config.personalization_baseline
    if job.company_id in signal.liked_company_ids:
        score += COMPANY_AFFINITY_BONUS
    elif job.company_id in signal.hidden_company_ids:
        score -= COMPANY_AVOIDANCE_PENALTY

    if profile.preferred_work_types and job.work_type != WorkType.UNSPECIFIED:
        score += PREFERENCE_STEP if job.work_type in profile.preferred_work_types else -PREFERENCE_STEP

    if job.location.is_remote:
        score += PREFERENCE_STEP if profile.remote_ok else -PREFERENCE_STEP
    elif profile.preferred_locations:
        score += PREFERENCE_STEP if _location_matches(job, profile.preferred_locations) else -PREFERENCE_STEP

    expectation = profile.salary_expectation
    if expectation is not None and expectation.min is not None:
        top = job.salary_max if job.salary_max is not None else job.salary_min
        if top is not None:
            score += PREFERENCE_STEP if top >= expectation.min else -PREFERENCE_STEP
    return _clamp(score)


def semantic_score(context: RankingContext, job: Job, vectors: JobVectorIndex) -> float:
    job_vec = vectors.get(job)
    if context.discovery:
        # No skills to match on: lean on experience text and how trustworthy the posting is.
        return _clamp(max(cosine_similarity(context.experience_vector, job_vec), job.trust_score / 100.0))
    return _clamp(cosine_similarity(context.candidate.vector, job_vec))


def skill_overlap(candidate_skills: Sequence[str], job_skills: Sequence[str]) -> Tuple[Tuple[str, ...], Tuple[str, ...]]:
    have = {skill.lower() for skill in candidate_skills}
    expanded = expand_implied(job_skills)
    matched = sorted({skill for skill in expanded if skill.lower() in have}, key=str.lower)
    related = sorted(set(related_skills(candidate_skills, expanded)) - set(matched), key=str.lower)
    return tuple(matched), tuple(related)


def badges_for(job: Job, config: RankingConfig = DEFAULT_RANKING_CONFIG) -> Tuple[str, ...]:
    badges: List[str] = []
    if job.liveness_status == LivenessStatus.ACTIVE and job.trust_score >= config.verified_badge_min_trust:
        badges.append(BADGE_VERIFIED_ACTIVE)
    if SourceKind.DIRECT_COMPANY in job.source_kinds:
        badges.append(BADGE_DIRECT_FROM_COMPANY)
    return tuple(badges)


def _days_phrase(days: Optional[float]) -> str:
    if days is None:
        return ""
    whole = int(days)
    if whole == 0:
        return "today"
    if whole == 1:
        return "1 day ago"
    return f"{whole} days ago"


def build_explanation(
    job: Job,
    *,
    matched: Sequence[str],
    related: Sequence[str],
    discovery: bool,
    now: datetime,
) -> str:
    parts: List[str] = []
    if matched:
        parts.append(f"Matches your skills: {', '.join(matched)}")
    if related:
        parts.append(f"Related to your skills: {', '.join(related)}")
    if discovery:
        parts.append("Suggested from your experience and source trust")
    elif not matched and not related:
        parts.append("Similar to your profile")
    if job.liveness_status == LivenessStatus.ACTIVE:
        verified = _days_phrase(age_days(job.last_verified_at, now))
        parts.append(f"Verified active {verified}".rstrip())
    elif job.liveness_status == LivenessStatus.UNKNOWN:
        parts.append("Not yet verified")
    posted = _days_phrase(age_days(job.posted_at or job.first_seen_at, now))
    if posted:
        parts.append(f"Posted {posted}")
    if SourceKind.DIRECT_COMPANY in job.source_kinds:
        parts.append(f"Listed directly by {job.company}")
    return ". ".join(parts) + "."


def score_job(
    context: RankingContext,
    job: Job,
    *,
    now: datetime,
    config: RankingConfig = DEFAULT_RANKING_CONFIG,
    vectors: Optional[JobVectorIndex] = None,
) -> MatchResult:
    vectors = vectors or JobVectorIndex()
    sub = SubScores(
        semantic_relevance=round(semantic_score(context, job, vectors), 6),
        recency=round(recency_score(job, now, config.recency_half_life_days), 6),
        liveness=round(liveness_score(job.liveness_status, config), 6),
        personalization=round(personalization_score(job, context.profile, context.signal, config), 6),
    )
    weights = config.weights.as_dict()
    final = round(_clamp(sum(weights[key] * value for key, value in sub.as_dict().items())), 6)
    matched, related = skill_overlap(context.candidate.skills, job.skills)
    return MatchResult(
        candidate_id=context.candidate.candidate_id,
        job_id=job.canonical_id,
        sub_scores=sub,
        final_score=final,
        matched_skills=matched,
        related_skills=related,
        explanation=build_explanation(job, matched=matched, related=related, discovery=context.discovery, now=now),
        badges=badges_for(job, config),
        trust_score=job.trust_score,
        posted_at=job.posted_at,
        discovery=context.discovery,
    )


def feed_sort_key(result: MatchResult) -> Tuple[float, int, float, str]:
    posted = -result.posted_at.timestamp() if result.posted_at is not None else float("inf")
    return (-result.final_score, -result.trust_score, posted, result.job_id)


def rank_eligible(
    context: RankingContext,
    jobs: Iterable[Job],
    *,
    now: datetime,
    config: RankingConfig = DEFAULT_RANKING_CONFIG,
) -> List[MatchResult]:
    """Every non-stale, in-scope job at or above the threshold, in feed order."""
    vectors = JobVectorIndex()
    results: List[MatchResult] = []
    considered = 0
    for job in jobs:
        if job.liveness_status == LivenessStatus.STALE or job.out_of_scope:
            continue
        considered += 1
        result = score_job(context, job, now=now, config=config, vectors=vectors)
        if result.final_score >= config.threshold:
            results.append(result)
    results.sort(key=feed_sort_key)
    logger.debug(
        "[ranking][eligible] candidate=%s considered=%s above_threshold=%s",
        context.candidate.candidate_id,
        considered,
        len(results),
    )
    return results


def select_feed(
    ranked: Sequence[MatchResult],
    *,
    config: RankingConfig = DEFAULT_RANKING_CONFIG,
    excluded_ids: AbstractSet[str] = frozenset(),
) -> List[MatchResult]:
    """Drop excluded jobs from an already ranked list and cut it to feed_size."""
    return [result for result in ranked if result.job_id not in excluded_ids][: config.feed_size]


def rank_jobs(
    context: RankingContext,
    jobs: Iterable[Job],
    *,
    now: datetime,
    config: RankingConfig = DEFAULT_RANKING_CONFIG,
    excluded_ids: AbstractSet[str] = frozenset(),
) -> List[MatchResult]:
    """
    Score every eligible job and return at most feed_size results above the
    threshold. Stale, out-of-scope and excluded jobs never make the feed; a
    short feed is returned as-is.
    """
    eligible = [job for job in jobs if job.canonical_id not in excluded_ids]
    ranked = rank_eligible(context, eligible, now=now, config=config)
    feed = select_feed(ranked, config=config)
    logger.info(
        "[ranking][feed] candidate=%s above_threshold=%s returned=%s discovery=%s",
        context.candidate.candidate_id,
        len(ranked),
        len(feed),
        context.discovery,
    )
    return feed


def build_breakdown(
    result: MatchResult,
    job: Job,
    config: RankingConfig = DEFAULT_RANKING_CONFIG,
) -> MatchBreakdown:
    weights = config.weights.as_dict()
    contributions = {key: round(weights[key] * value, 6) for key, value in result.sub_scores.as_dict().items()}
    return MatchBreakdown(
        result=result,
        weights=weights,
        contributions=contributions,
        threshold=config.threshold,
        liveness_status=job.liveness_status,
    )


def describe_feed(results: Sequence[MatchResult], config: RankingConfig = DEFAULT_RANKING_CONFIG) -> Optional[str]:
    """User-facing notice for a short feed; None when the feed is full."""
    count = len(results)
    if count >= config.feed_size:
        return None
    if count == 0:
        return f"No strong matches today; fewer than {config.feed_size} matches today."
    noun = "match" if count == 1 else "matches"
    return f"{count} {noun} cleared the bar; fewer than {config.feed_size} matches today."

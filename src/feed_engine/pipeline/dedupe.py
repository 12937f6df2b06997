"""
SignalCraft
Copyright (c) 2026 Chris Menendez.
All Rights Reserved.
See LICENSE for permitted use.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from difflib import SequenceMatcher
from typing import Any, Callable, List, Optional, Tuple

from feed_engine.models import Job, LineageEntry, LivenessStatus
from feed_engine.state.job_store import JobStore
from feed_engine.utils.job_identity import normalize_job_url, normalize_title
from feed_engine.utils.time import to_utc

logger = logging.getLogger(__name__)

FUZZY_MATCH_THRESHOLD = 0.90
AMBIGUOUS_FLOOR = 0.75
TIE_BREAK_FIELDS = ("description", "salary", "external_url", "posted_at")

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True)
class AmbiguousPair:
    """A cross-source near-match that was deliberately not merged."""

    existing_id: str
    incoming_source: str
    incoming_source_id: str
    title_ratio: float
    same_location: bool

    def to_dict(self) -> dict:
        return {
            "existing_id": self.existing_id,
            "incoming": f"{self.incoming_source}:{self.incoming_source_id}",
            "title_ratio": self.title_ratio,
            "same_location": self.same_location,
        }


@dataclass
class MergeOutcome:
    job: Job
    is_new: bool
    matched_by: str
    url_changed: bool = False
    ambiguous: List[AmbiguousPair] = field(default_factory=list)


def title_similarity(a: str, b: str) -> float:
    left, right = normalize_title(a), normalize_title(b)
    if not left or not right:
        return 0.0
    return round(SequenceMatcher(None, left, right).ratio(), 4)


def _winner_key(entry: LineageEntry) -> Tuple[int, float, str, str]:
    verified = to_utc(entry.last_verified_at) if entry.last_verified_at else _EPOCH
    return (-int(entry.trust_score), -verified.timestamp(), entry.source, entry.source_id)


def _has_value(entry: LineageEntry, field_name: str) -> bool:
    if field_name == "salary":
        return entry.salary_min is not None or entry.salary_max is not None
    value: Any = getattr(entry, field_name)
    return value not in (None, "")


def pick_field_winner(lineage: List[LineageEntry], field_name: str) -> Optional[LineageEntry]:
    """
    Which lineage entry supplies a mutable field.

    Order: highest current trust score, then most recently verified, then
    (source, source_id). Entries without a value for the field never win, so a
    high-trust source with no salary does not blank out a lower-trust salary.
    """
    contenders = [entry for entry in lineage if _has_value(entry, field_name)]
    if not contenders:
        return None
    return min(contenders, key=_winner_key)


def recompute_from_lineage(job: Job) -> Job:
    """Refresh tie-break fields and trust score from the job's lineage."""
    description = pick_field_winner(job.lineage, "description")
    job.description = description.description if description else ""
    salary = pick_field_winner(job.lineage, "salary")
    job.salary_min = salary.salary_min if salary else None
    job.salary_max = salary.salary_max if salary else None
    url = pick_field_winner(job.lineage, "external_url")
    job.external_url = url.external_url if url else None
    posted = pick_field_winner(job.lineage, "posted_at")
    job.posted_at = posted.posted_at if posted else None
    if job.lineage:
        job.trust_score = max(entry.trust_score for entry in job.lineage)
        job.first_seen_at = min(to_utc(entry.first_seen_at) for entry in job.lineage)
    return job


class Deduplicator:
    """
    Folds canonicalized postings into the store's canonical jobs.

    Primary match on (source, source_id); secondary cross-source fuzzy match on
    company id + location key + title similarity. Ambiguity resolves toward
    "not a duplicate".
    """

    def __init__(self, store: JobStore, *, clock: Optional[Callable[[], datetime]] = None) -> None:
        self.store = store
        self.clock = clock

    def merge(self, candidate: Job) -> MergeOutcome:
        if len(candidate.lineage) != 1:
            raise ValueError("candidate job must carry exactly one lineage entry")
        entry = candidate.lineage[0]
        now = self.clock() if self.clock else entry.last_seen_at

        existing = self.store.find_by_source_key(entry.source, entry.source_id)
        if existing is not None:
            with self.store.locks.hold(existing.canonical_id):
                current = self.store.get_job(existing.canonical_id) or existing
                job, url_changed = self._update_in_place(current, candidate, entry, now)
                self.store.save_job(job, reset_liveness=url_changed)
            return MergeOutcome(job=job, is_new=False, matched_by="source_key", url_changed=url_changed)

        match, ambiguous = self._fuzzy_match(candidate, entry)
        if match is not None:
            with self.store.locks.hold(match.canonical_id):
                current = self.store.get_job(match.canonical_id) or match
                job = self._absorb(current, candidate, entry)
                self.store.save_job(job)
            logger.info(
                "[dedupe][merge] job=%s source=%s source_id=%s lineage=%s",
                job.canonical_id,
                entry.source,
                entry.source_id,
                len(job.lineage),
            )
            return MergeOutcome(job=job, is_new=False, matched_by="fuzzy", ambiguous=ambiguous)

        with self.store.locks.hold(candidate.canonical_id):
            candidate.next_probe_at = now
            self.store.save_job(candidate)
        return MergeOutcome(job=candidate, is_new=True, matched_by="none", ambiguous=ambiguous)

    def _update_in_place(self, job: Job, candidate: Job, entry: LineageEntry, now: datetime) -> Tuple[Job, bool]:
        url_changed = False
        lineage: List[LineageEntry] = []
        for old in job.lineage:
            if old.key != entry.key:
                lineage.append(old)
                continue
            old_url = normalize_job_url(old.external_url)
            new_url = normalize_job_url(entry.external_url)
            url_changed = bool(old_url) and bool(new_url) and old_url != new_url
            lineage.append(
                LineageEntry(
                    source=entry.source,
                    source_id=entry.source_id,
                    source_kind=entry.source_kind,
                    trust_score=entry.trust_score,
                    first_seen_at=old.first_seen_at,
                    last_seen_at=entry.last_seen_at,
                    external_url=entry.external_url,
                    description=entry.description,
                    salary_min=entry.salary_min,
                    salary_max=entry.salary_max,
                    posted_at=entry.posted_at,
                    last_verified_at=None if url_changed else old.last_verified_at,
                    content_hash=entry.content_hash,
                )
            )
        job.lineage = lineage
        if len(lineage) == 1:
            # Sole contributor: its content defines the job.
            job.title = candidate.title
            job.company = candidate.company
            job.company_id = candidate.company_id
            job.location = candidate.location
            job.seniority = candidate.seniority
            job.work_type = candidate.work_type
            job.skills = list(candidate.skills)
            job.out_of_scope = candidate.out_of_scope
        else:
            job.skills = sorted(set(job.skills) | set(candidate.skills), key=str.lower)
        recompute_from_lineage(job)
        if url_changed:
            logger.info(
                "[dedupe][url_changed] job=%s source=%s previous_status=%s",
                job.canonical_id,
                entry.source,
                job.liveness_status.value,
            )
            job.liveness_status = LivenessStatus.UNKNOWN
            job.next_probe_at = now
            job.probe_failures = 0
        return job, url_changed

    def _absorb(self, job: Job, candidate: Job, entry: LineageEntry) -> Job:
        job.lineage = sorted([*job.lineage, entry], key=lambda item: item.key)
        job.skills = sorted(set(job.skills) | set(candidate.skills), key=str.lower)
        return recompute_from_lineage(job)

    def _fuzzy_match(self, candidate: Job, entry: LineageEntry) -> Tuple[Optional[Job], List[AmbiguousPair]]:
        if not candidate.company_id or candidate.company_id == "unknown" or not normalize_title(candidate.title):
            return None, []
        best: Optional[Job] = None
        best_ratio = 0.0
        ambiguous: List[AmbiguousPair] = []
        for existing in self.store.find_fuzzy_candidates(candidate.company_id):
            # Two postings from one source are two openings; fuzzy matching is cross-source only.
            if any(old.source == entry.source for old in existing.lineage):
                continue
            ratio = title_similarity(candidate.title, existing.title)
            same_location = existing.location.key == candidate.location.key
            if ratio >= FUZZY_MATCH_THRESHOLD and same_location:
                if ratio > best_ratio:
                    best, best_ratio = existing, ratio
                continue
            if ratio >= AMBIGUOUS_FLOOR:
                pair = AmbiguousPair(
                    existing_id=existing.canonical_id,
                    incoming_source=entry.source,
                    incoming_source_id=entry.source_id,
                    title_ratio=ratio,
                    same_location=same_location,
                )
                ambiguous.append(pair)
                logger.info(
                    "[dedupe][ambiguous] existing=%s incoming=%s:%s ratio=%.4f same_location=%s",
                    pair.existing_id,
                    pair.incoming_source,
                    pair.incoming_source_id,
                    ratio,
                    same_location,
                )
        return best, ambiguous

"""
SignalCraft
Copyright (c) 2026 Chris Menendez.
All Rights Reserved.
See LICENSE for permitted use.
"""

from __future__ import annotations

from typing import Optional
from urllib.parse import urlparse

from feed_engine.models import Job, LineageEntry, LivenessStatus, RawPosting
from feed_engine.normalize.companies import normalize_company
from feed_engine.normalize.locations import is_out_of_scope, normalize_location
from feed_engine.normalize.roles import infer_seniority, infer_work_type
from feed_engine.normalize.skills import extract_skills
from feed_engine.utils.content_fingerprint import posting_fingerprint
from feed_engine.utils.job_identity import canonical_job_id, derive_source_posting_id


class MalformedPostingError(ValueError):
    pass


def _company_from_url(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    host = urlparse(url).netloc.lower()
    if host.startswith("www."):
        host = host[4:]
    return host or None


def _salary_range(posting: RawPosting):
    low, high = posting.salary_min, posting.salary_max
    if low is not None and low < 0:
        low = None
    if high is not None and high < 0:
        high = None
    if low is not None and high is not None and low > high:
        low, high = high, low
    return low, high


def canonicalize(posting: RawPosting, *, trust_score: int, us_only: bool = True) -> Job:
    """
    Map one raw posting onto a single-lineage canonical Job.

    The canonical id is derived from the posting's own (source, source_id), so the
    result is only provisional until the deduplicator decides whether an
    existing job absorbs it.
    """
    title = " ".join((posting.title or "").split())
    if not title:
        raise MalformedPostingError(f"posting from {posting.source_id} has no title")
    company_raw = (posting.company or "").strip() or _company_from_url(posting.external_url)
    if not company_raw:
        raise MalformedPostingError(f"posting '{title}' from {posting.source_id} has neither company nor URL")

    source_posting_id = derive_source_posting_id(
        source=posting.source_id,
        external_id=posting.external_id,
        title=title,
        company=company_raw,
        location=posting.location,
        external_url=posting.external_url,
        description=posting.description,
    )
    company, company_id = normalize_company(company_raw)
    location = normalize_location(posting.location, latitude=posting.latitude, longitude=posting.longitude)
    salary_min, salary_max = _salary_range(posting)
    seen_at = posting.discovered_at

    entry = LineageEntry(
        source=posting.source_id,
        source_id=source_posting_id,
        source_kind=posting.source_kind,
        trust_score=int(trust_score),
        first_seen_at=seen_at,
        last_seen_at=seen_at,
        external_url=posting.external_url,
        description=posting.description or "",
        salary_min=salary_min,
        salary_max=salary_max,
        posted_at=posting.posted_at,
        content_hash=posting_fingerprint(posting),
    )
    return Job(
        canonical_id=canonical_job_id(posting.source_id, source_posting_id),
        title=title,
        company=company,
        company_id=company_id,
        location=location,
        description=entry.description,
        skills=extract_skills(title, posting.description, posting.tags),
        seniority=infer_seniority(title, posting.seniority_hint),
        work_type=infer_work_type(location, posting.work_type_hint, title),
        external_url=posting.external_url,
        first_seen_at=seen_at,
        trust_score=int(trust_score),
        liveness_status=LivenessStatus.UNKNOWN,
        salary_min=salary_min,
        salary_max=salary_max,
        posted_at=posting.posted_at,
        out_of_scope=is_out_of_scope(location, us_only=us_only),
        lineage=[entry],
    )

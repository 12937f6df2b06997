from __future__ import annotations

import os
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

import pytest

from feed_engine.models import Job, LineageEntry, LivenessStatus, Location, RawPosting, SourceKind, WorkType
from feed_engine.providers.retry import reset_politeness_state
from feed_engine.state.job_store import JobStore

NOW = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def _isolate_jobfeed_env(monkeypatch, tmp_path) -> None:
    for key in list(os.environ):
        if key.startswith("JOBFEED_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("JOBFEED_STATE_DIR", str(tmp_path / "state"))
    monkeypatch.setenv("JOBFEED_SOURCE_MIN_DELAY_S", "0")
    reset_politeness_state()


@pytest.fixture
def store(tmp_path: Path) -> JobStore:
    job_store = JobStore(tmp_path / "jobs.sqlite3")
    job_store.ensure_schema()
    return job_store


def make_posting(
    *,
    source_id: str = "greenhouse-acme",
    kind: SourceKind = SourceKind.DIRECT_COMPANY,
    external_id: Optional[str] = "1001",
    title: str = "Senior Software Engineer",
    company: Optional[str] = "Acme",
    location: Optional[str] = "Austin, TX",
    url: Optional[str] = "https://boards.greenhouse.io/acme/jobs/1001",
    description: str = "Build services in Python and React.",
    posted_at: Optional[datetime] = NOW,
    tags: Optional[List[str]] = None,
    discovered_at: datetime = NOW,
    salary_min: Optional[float] = None,
    salary_max: Optional[float] = None,
) -> RawPosting:
    return RawPosting(
        source_id=source_id,
        source_kind=kind,
        title=title,
        company=company,
        location=location,
        external_url=url,
        discovered_at=discovered_at,
        external_id=external_id,
        description=description,
        posted_at=posted_at,
        tags=list(tags or []),
        salary_min=salary_min,
        salary_max=salary_max,
    )


def make_job(
    canonical_id: str = "job_a",
    *,
    title: str = "Full Stack Engineer",
    company: str = "Acme",
    company_id: str = "acme",
    skills: Optional[List[str]] = None,
    status: LivenessStatus = LivenessStatus.ACTIVE,
    trust: int = 90,
    kind: SourceKind = SourceKind.DIRECT_COMPANY,
    source: str = "greenhouse-acme",
    posted_at: Optional[datetime] = NOW,
    url: Optional[str] = "https://boards.greenhouse.io/acme/jobs/1",
    location: Optional[Location] = None,
    work_type: WorkType = WorkType.ONSITE,
    out_of_scope: bool = False,
    last_verified_at: Optional[datetime] = NOW,
    next_probe_at: Optional[datetime] = None,
) -> Job:
    entry = LineageEntry(
        source=source,
        source_id=canonical_id,
        source_kind=kind,
        trust_score=trust,
        first_seen_at=posted_at or NOW,
        last_seen_at=posted_at or NOW,
        external_url=url,
        description="",
        posted_at=posted_at,
        last_verified_at=last_verified_at,
    )
    return Job(
        canonical_id=canonical_id,
        title=title,
        company=company,
        company_id=company_id,
        location=location or Location(raw="Austin, TX", city="Austin", region="TX", country="US"),
        description="",
        skills=list(skills if skills is not None else ["React", "Node.js"]),
        seniority=None,
        work_type=work_type,
        external_url=url,
        first_seen_at=posted_at or NOW,
        trust_score=trust,
        liveness_status=status,
        posted_at=posted_at,
        last_verified_at=last_verified_at,
        next_probe_at=next_probe_at,
        out_of_scope=out_of_scope,
        lineage=[entry],
    )

from __future__ import annotations

import pytest

from conftest import NOW, make_posting
from feed_engine.models import LivenessStatus, WorkType
from feed_engine.pipeline.canonicalize import MalformedPostingError, canonicalize
from feed_engine.utils.job_identity import canonical_job_id


def test_canonicalize_maps_posting_onto_job() -> None:
    job = canonicalize(make_posting(), trust_score=90)

    assert job.canonical_id == canonical_job_id("greenhouse-acme", "1001")
    assert job.title == "Senior Software Engineer"
    assert (job.company, job.company_id) == ("Acme", "acme")
    assert job.location.city == "Austin"
    assert job.location.country == "US"
    assert job.seniority == "senior"
    assert job.work_type == WorkType.ONSITE
    assert {"Python", "React"} <= set(job.skills)
    assert job.liveness_status == LivenessStatus.UNKNOWN
    assert job.trust_score == 90
    assert job.out_of_scope is False
    assert job.first_seen_at == NOW
    assert len(job.lineage) == 1
    entry = job.lineage[0]
    assert entry.key == ("greenhouse-acme", "1001")
    assert entry.content_hash
    assert entry.last_verified_at is None


def test_canonicalize_is_deterministic_without_external_id() -> None:
    first = canonicalize(make_posting(external_id=None), trust_score=60)
    second = canonicalize(make_posting(external_id=None), trust_score=60)

    assert first.canonical_id == second.canonical_id
    assert first.lineage[0].source_id.startswith("h:")


def test_canonicalize_rejects_missing_title() -> None:
    with pytest.raises(MalformedPostingError, match="no title"):
        canonicalize(make_posting(title="   "), trust_score=90)


def test_canonicalize_requires_company_or_url() -> None:
    with pytest.raises(MalformedPostingError, match="neither company nor URL"):
        canonicalize(make_posting(company=None, url=None), trust_score=90)

    job = canonicalize(make_posting(company=None, url="https://www.initech.example/jobs/9"), trust_score=90)
    assert job.company_id == "initech-example"


def test_canonicalize_normalizes_salary_range() -> None:
    swapped = canonicalize(make_posting(salary_min=200000, salary_max=150000), trust_score=90)
    assert (swapped.salary_min, swapped.salary_max) == (150000, 200000)

    negative = canonicalize(make_posting(salary_min=-1, salary_max=90000), trust_score=90)
    assert (negative.salary_min, negative.salary_max) == (None, 90000)


def test_canonicalize_flags_non_us_locations() -> None:
    berlin = make_posting(location="Berlin, Germany")

    assert canonicalize(berlin, trust_score=90, us_only=True).out_of_scope is True
    assert canonicalize(berlin, trust_score=90, us_only=False).out_of_scope is False


def test_canonicalize_collapses_title_whitespace() -> None:
    job = canonicalize(make_posting(title="  Staff \n Platform   Engineer "), trust_score=90)

    assert job.title == "Staff Platform Engineer"
    assert job.seniority == "staff"

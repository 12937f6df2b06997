from __future__ import annotations

from datetime import timedelta

import pytest

from conftest import NOW, make_posting
from feed_engine.models import LineageEntry, LivenessStatus, SourceKind
from feed_engine.pipeline.canonicalize import canonicalize
from feed_engine.pipeline.dedupe import Deduplicator, pick_field_winner, title_similarity
from feed_engine.state.job_store import JobStore


def _aggregator_posting(**overrides):
    values = dict(
        source_id="remotive",
        kind=SourceKind.AGGREGATOR,
        external_id="r-55",
        company="Acme Inc.",
        url="https://remotive.example/jobs/r-55",
        description="Aggregated copy.",
        salary_min=140000,
        salary_max=170000,
    )
    values.update(overrides)
    return make_posting(**values)


def test_primary_key_hit_updates_in_place(store) -> None:
    dedupe = Deduplicator(store)

    first = dedupe.merge(canonicalize(make_posting(), trust_score=90))
    second = dedupe.merge(canonicalize(make_posting(description="Updated description."), trust_score=90))

    assert first.is_new is True
    assert first.matched_by == "none"
    assert first.job.next_probe_at == NOW
    assert second.is_new is False
    assert second.matched_by == "source_key"
    assert second.job.canonical_id == first.job.canonical_id
    assert store.count_jobs() == 1
    assert store.get_job(first.job.canonical_id).description == "Updated description."


def test_cross_source_fuzzy_match_merges_lineage(store) -> None:
    dedupe = Deduplicator(store)
    direct = dedupe.merge(canonicalize(make_posting(), trust_score=90))

    merged = dedupe.merge(canonicalize(_aggregator_posting(), trust_score=70))

    assert merged.matched_by == "fuzzy"
    assert merged.job.canonical_id == direct.job.canonical_id
    assert store.count_jobs() == 1
    stored = store.get_job(direct.job.canonical_id)
    assert [entry.source for entry in stored.lineage] == ["greenhouse-acme", "remotive"]
    assert stored.trust_score == 90
    # highest-trust entry supplies the description; only the aggregator has a salary
    assert stored.description == "Build services in Python and React."
    assert (stored.salary_min, stored.salary_max) == (140000, 170000)
    assert stored.external_url == "https://boards.greenhouse.io/acme/jobs/1001"


def test_same_source_near_duplicates_stay_separate(store) -> None:
    dedupe = Deduplicator(store)

    dedupe.merge(canonicalize(make_posting(external_id="1001"), trust_score=90))
    outcome = dedupe.merge(
        canonicalize(
            make_posting(external_id="1002", url="https://boards.greenhouse.io/acme/jobs/1002"),
            trust_score=90,
        )
    )

    assert outcome.is_new is True
    assert store.count_jobs() == 2


def test_same_title_different_location_is_ambiguous_not_merged(store) -> None:
    dedupe = Deduplicator(store)
    dedupe.merge(canonicalize(make_posting(), trust_score=90))

    outcome = dedupe.merge(canonicalize(_aggregator_posting(location="Denver, CO"), trust_score=70))

    assert outcome.is_new is True
    assert store.count_jobs() == 2
    assert len(outcome.ambiguous) == 1
    assert outcome.ambiguous[0].same_location is False
    assert outcome.ambiguous[0].title_ratio == 1.0


def test_similar_title_below_threshold_is_ambiguous(store) -> None:
    dedupe = Deduplicator(store)
    dedupe.merge(canonicalize(make_posting(), trust_score=90))

    outcome = dedupe.merge(canonicalize(_aggregator_posting(title="Software Engineer"), trust_score=70))

    assert outcome.is_new is True
    assert outcome.ambiguous[0].same_location is True
    assert 0.75 <= outcome.ambiguous[0].title_ratio < 0.90


def test_url_change_resets_liveness(store) -> None:
    dedupe = Deduplicator(store)
    created = dedupe.merge(canonicalize(make_posting(), trust_score=90)).job
    store.apply_probe_result(
        created.canonical_id,
        liveness_status=LivenessStatus.ACTIVE,
        next_probe_at=NOW + timedelta(days=1),
        probe_failures=0,
        last_verified_at=NOW,
        verified_source="greenhouse-acme",
    )

    later = NOW + timedelta(hours=6)
    outcome = dedupe.merge(
        canonicalize(
            make_posting(url="https://boards.greenhouse.io/acme/jobs/1001-relisted", discovered_at=later),
            trust_score=90,
        )
    )

    assert outcome.url_changed is True
    stored = store.get_job(created.canonical_id)
    assert stored.liveness_status == LivenessStatus.UNKNOWN
    assert stored.next_probe_at == later
    assert stored.lineage[0].last_verified_at is None
    assert stored.lineage[0].first_seen_at == NOW


def test_reingest_keeps_probe_result_committed_by_another_process(tmp_path, monkeypatch) -> None:
    ingest_store = JobStore(tmp_path / "shared.sqlite3")
    ingest_store.ensure_schema()
    probe_store = JobStore(tmp_path / "shared.sqlite3")
    dedupe = Deduplicator(ingest_store)
    created = dedupe.merge(canonicalize(make_posting(), trust_score=90)).job
    verified_next = NOW + timedelta(days=1)
    read_job = ingest_store.get_job

    def read_then_race(job_id):
        job = read_job(job_id)
        probe_store.apply_probe_result(
            job_id,
            liveness_status=LivenessStatus.ACTIVE,
            next_probe_at=verified_next,
            probe_failures=0,
            last_verified_at=NOW,
            verified_source="greenhouse-acme",
        )
        return job

    monkeypatch.setattr(ingest_store, "get_job", read_then_race)
    later = NOW + timedelta(hours=6)
    outcome = dedupe.merge(
        canonicalize(make_posting(description="Updated copy.", discovered_at=later), trust_score=90)
    )

    assert outcome.url_changed is False
    stored = probe_store.get_job(created.canonical_id)
    assert stored.liveness_status == LivenessStatus.ACTIVE
    assert stored.last_verified_at == NOW
    assert stored.next_probe_at == verified_next
    assert stored.lineage[0].last_verified_at == NOW
    assert "Updated copy" in stored.description


def test_tracking_params_do_not_count_as_url_change(store) -> None:
    dedupe = Deduplicator(store)
    dedupe.merge(canonicalize(make_posting(), trust_score=90))

    outcome = dedupe.merge(
        canonicalize(make_posting(url="https://boards.greenhouse.io/acme/jobs/1001?utm_source=feed"), trust_score=90)
    )

    assert outcome.url_changed is False


def test_merge_requires_single_lineage_entry(store) -> None:
    job = canonicalize(make_posting(), trust_score=90)
    job.lineage = []

    with pytest.raises(ValueError):
        Deduplicator(store).merge(job)


def _entry(source: str, trust: int, **fields) -> LineageEntry:
    return LineageEntry(
        source=source,
        source_id="1",
        source_kind=SourceKind.AGGREGATOR,
        trust_score=trust,
        first_seen_at=NOW,
        last_seen_at=NOW,
        **fields,
    )


def test_pick_field_winner_ordering() -> None:
    high_no_salary = _entry("b", 90, description="high")
    low_with_salary = _entry("a", 60, description="low", salary_min=100.0)
    assert pick_field_winner([high_no_salary, low_with_salary], "description") is high_no_salary
    assert pick_field_winner([high_no_salary, low_with_salary], "salary") is low_with_salary
    assert pick_field_winner([high_no_salary], "salary") is None

    older = _entry("a", 80, description="older", last_verified_at=NOW - timedelta(days=2))
    newer = _entry("z", 80, description="newer", last_verified_at=NOW)
    assert pick_field_winner([older, newer], "description") is newer

    tie_a = _entry("a", 80, description="a")
    tie_b = _entry("b", 80, description="b")
    assert pick_field_winner([tie_b, tie_a], "description") is tie_a


def test_title_similarity() -> None:
    assert title_similarity("Senior Software Engineer", "senior  software engineer!") == 1.0
    assert title_similarity("", "Engineer") == 0.0

from __future__ import annotations

import json
from pathlib import Path
from typing import Dict

import pytest

from conftest import NOW, make_job
from feed_engine.collaborators import FileJobActionSource, FileProfileSource
from feed_engine.feed import FeedService, JobNotFoundError
from feed_engine.models import BADGE_VERIFIED_ACTIVE, LivenessStatus
from feed_engine.profile_loader import ProfileValidationError
from feed_engine.ranking.cache import FeedCache
from feed_engine.semantic.cache import VectorCache
from feed_engine.state.job_store import JobStore


def _write_profile(directory: Path, payload: Dict[str, object]) -> None:
    directory.mkdir(parents=True, exist_ok=True)
    (directory / f"{payload['candidate_id']}.json").write_text(json.dumps(payload), encoding="utf-8")


def _service(tmp_path: Path, store: JobStore, **profile: object) -> FeedService:
    payload: Dict[str, object] = {"candidate_id": "cand_1", "skills": ["React", "Node.js"]}
    payload.update(profile)
    _write_profile(tmp_path / "profiles", payload)
    return FeedService(
        store,
        FileProfileSource(tmp_path / "profiles"),
        FileJobActionSource(tmp_path / "job_actions"),
        feed_cache=FeedCache(max_entries=10, ttl_s=600),
        vector_cache=VectorCache(max_entries=10, ttl_s=600),
        clock=lambda: NOW,
    )


def test_daily_feed_ranks_store_corpus(tmp_path: Path, store: JobStore) -> None:
    store.save_job(make_job("job_a"))
    store.save_job(make_job("job_b", status=LivenessStatus.STALE))
    store.save_job(make_job("job_c", title="Payroll Specialist", skills=["Excel"], status=LivenessStatus.UNKNOWN))
    service = _service(tmp_path, store)

    feed = service.get_daily_feed("cand_1")

    assert [result.job_id for result in feed] == ["job_a"]
    assert BADGE_VERIFIED_ACTIVE in feed[0].badges


def test_feed_is_cached_until_corpus_version_changes(tmp_path: Path, store: JobStore) -> None:
    store.save_job(make_job("job_a"))
    service = _service(tmp_path, store)
    assert [result.job_id for result in service.get_daily_feed("cand_1")] == ["job_a"]

    store.save_job(make_job("job_d"))
    assert [result.job_id for result in service.get_daily_feed("cand_1")] == ["job_a"]
    assert service.vector_cache.computed == 1

    store.bump_corpus_version()
    assert [result.job_id for result in service.get_daily_feed("cand_1")] == ["job_a", "job_d"]


def test_profile_change_recomputes_feed(tmp_path: Path, store: JobStore) -> None:
    store.save_job(make_job("job_a"))
    service = _service(tmp_path, store)
    service.get_daily_feed("cand_1")
    store.save_job(make_job("job_d"))

    _write_profile(tmp_path / "profiles", {"candidate_id": "cand_1", "skills": ["React", "Node.js", "Python"]})
    feed = service.get_daily_feed("cand_1")

    assert [result.job_id for result in feed] == ["job_a", "job_d"]
    assert service.vector_cache.computed == 2


def test_exclusions_apply_to_cached_feed(tmp_path: Path, store: JobStore) -> None:
    store.save_job(make_job("job_a"))
    store.save_job(make_job("job_d"))
    service = _service(tmp_path, store)
    assert len(service.get_daily_feed("cand_1")) == 2

    FileJobActionSource(tmp_path / "job_actions").record("cand_1", "job_a", "hidden", NOW)

    assert [result.job_id for result in service.get_daily_feed("cand_1")] == ["job_d"]


def test_recorded_action_invalidates_and_personalizes(tmp_path: Path, store: JobStore) -> None:
    store.save_job(make_job("job_0g", company="Globex", company_id="globex"))
    store.save_job(make_job("job_a"))
    store.save_job(make_job("job_saved"))
    service = _service(tmp_path, store)
    assert [result.job_id for result in service.get_daily_feed("cand_1")] == ["job_0g", "job_a", "job_saved"]

    service.record_job_action("cand_1", "job_saved", "saved")
    feed = service.get_daily_feed("cand_1")

    assert [result.job_id for result in feed] == ["job_a", "job_0g"]
    assert feed[0].sub_scores.personalization == pytest.approx(0.8)
    assert feed[1].sub_scores.personalization == pytest.approx(0.5)


def test_record_job_action_rejects_unknown_job_and_status(tmp_path: Path, store: JobStore) -> None:
    store.save_job(make_job("job_a"))
    service = _service(tmp_path, store)

    with pytest.raises(JobNotFoundError):
        service.record_job_action("cand_1", "job_missing", "saved")
    with pytest.raises(ValueError, match="unsupported status"):
        service.record_job_action("cand_1", "job_a", "starred")


def test_match_breakdown_ignores_threshold(tmp_path: Path, store: JobStore) -> None:
    store.save_job(make_job("job_c", title="Payroll Specialist", skills=["Excel"], status=LivenessStatus.UNKNOWN))
    service = _service(tmp_path, store)

    breakdown = service.get_match_breakdown("cand_1", "job_c")

    assert breakdown.clears_threshold is False
    assert breakdown.liveness_status == LivenessStatus.UNKNOWN
    assert breakdown.result.sub_scores.liveness == 0.5


def test_match_breakdown_missing_job(tmp_path: Path, store: JobStore) -> None:
    service = _service(tmp_path, store)
    with pytest.raises(JobNotFoundError):
        service.get_match_breakdown("cand_1", "job_missing")


def test_missing_profile_raises(tmp_path: Path, store: JobStore) -> None:
    service = _service(tmp_path, store)
    with pytest.raises(ProfileValidationError, match="not found"):
        service.get_daily_feed("cand_2")


def test_candidate_without_skills_gets_discovery_feed(tmp_path: Path, store: JobStore) -> None:
    store.save_job(make_job("job_a", trust=92))
    service = _service(
        tmp_path,
        store,
        skills=[],
        experience=[{"title": "Frontend Developer", "summary": "Built React dashboards"}],
    )

    feed = service.get_daily_feed("cand_1")

    assert [result.job_id for result in feed] == ["job_a"]
    assert feed[0].discovery is True

from __future__ import annotations

import sqlite3
import threading
from datetime import timedelta
from pathlib import Path

import pytest

from conftest import NOW, make_job
from feed_engine.models import LivenessStatus, SourceKind
from feed_engine.state.job_store import JobStore, StoreError


def test_save_and_load_round_trip(store) -> None:
    job = make_job("job_a", next_probe_at=NOW + timedelta(days=1))
    job.salary_min, job.salary_max = 120000.0, 150000.0
    store.save_job(job)

    loaded = store.get_job("job_a")

    assert loaded == job
    assert store.get_job("missing") is None
    assert store.find_by_source_key("greenhouse-acme", "job_a").canonical_id == "job_a"
    assert store.find_by_source_key("greenhouse-acme", "other") is None


def test_schema_is_idempotent_and_uses_wal(tmp_path: Path) -> None:
    db_path = tmp_path / "jobs.sqlite3"
    store = JobStore(db_path)
    store.ensure_schema()

    with sqlite3.connect(db_path) as conn:
        mode = conn.execute("PRAGMA journal_mode;").fetchone()[0]
        tables = {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}

    assert mode.lower() == "wal"
    assert {"jobs", "job_lineage", "source_health", "store_meta"} <= tables
    assert store.corpus_version() == 0


def test_list_feed_jobs_excludes_stale_and_out_of_scope(store) -> None:
    store.save_job(make_job("job_active", trust=80))
    store.save_job(make_job("job_unknown", status=LivenessStatus.UNKNOWN, trust=95))
    store.save_job(make_job("job_stale", status=LivenessStatus.STALE))
    store.save_job(make_job("job_berlin", out_of_scope=True))

    ids = [job.canonical_id for job in store.list_feed_jobs()]

    assert ids == ["job_unknown", "job_active"]
    assert "job_berlin" in [job.canonical_id for job in store.list_feed_jobs(include_out_of_scope=True)]


def test_due_for_probe_orders_by_due_time(store) -> None:
    store.save_job(make_job("job_late", next_probe_at=NOW - timedelta(minutes=1)))
    store.save_job(make_job("job_early", next_probe_at=NOW - timedelta(hours=2)))
    store.save_job(make_job("job_future", next_probe_at=NOW + timedelta(hours=1)))
    store.save_job(make_job("job_unscheduled"))

    due = store.due_for_probe(NOW, limit=10)

    assert [job.canonical_id for job in due] == ["job_early", "job_late"]
    assert [job.canonical_id for job in store.due_for_probe(NOW, limit=1)] == ["job_early"]


def test_apply_probe_result_leaves_content_alone(store) -> None:
    store.save_job(make_job("job_a", status=LivenessStatus.UNKNOWN, last_verified_at=None))

    store.apply_probe_result(
        "job_a",
        liveness_status=LivenessStatus.ACTIVE,
        next_probe_at=NOW + timedelta(days=1),
        probe_failures=0,
        last_verified_at=NOW,
        trust_score=92,
        verified_source="greenhouse-acme",
    )

    loaded = store.get_job("job_a")
    assert loaded.liveness_status == LivenessStatus.ACTIVE
    assert loaded.last_verified_at == NOW
    assert loaded.trust_score == 92
    assert loaded.title == "Full Stack Engineer"
    assert loaded.lineage[0].last_verified_at == NOW

    store.apply_probe_result(
        "job_a",
        liveness_status=LivenessStatus.STALE,
        next_probe_at=NOW + timedelta(days=7),
        probe_failures=0,
    )
    loaded = store.get_job("job_a")
    assert loaded.liveness_status == LivenessStatus.STALE
    assert loaded.last_verified_at == NOW


def test_source_health_tracks_fetches_and_probes(store) -> None:
    store.record_fetch_outcome("remotive", source_kind=SourceKind.AGGREGATOR, ok=False, reason="timeout", at=NOW)
    store.record_fetch_outcome("remotive", source_kind=SourceKind.AGGREGATOR, ok=False, reason="timeout", at=NOW)
    store.record_fetch_outcome("remotive", source_kind=SourceKind.AGGREGATOR, ok=True, at=NOW)
    store.record_probe_outcome("remotive", source_kind=SourceKind.AGGREGATOR, success_rate=0.8)
    store.record_probe_outcome("lever-globex", source_kind=SourceKind.DIRECT_COMPANY, success_rate=1.0)

    health = {item.source: item for item in store.source_health()}

    remotive = health["remotive"]
    assert (remotive.fetch_ok_count, remotive.fetch_fail_count) == (1, 2)
    assert remotive.consecutive_fetch_failures == 0
    assert remotive.last_fetch_ok is True
    assert remotive.last_fetch_reason is None
    assert (remotive.success_rate, remotive.probe_samples) == (0.8, 1)
    assert health["lever-globex"].probe_samples == 1
    assert [item.source for item in store.source_health("lever-globex")] == ["lever-globex"]


def test_update_lineage_trust_applies_per_source(store) -> None:
    store.save_job(make_job("job_a", trust=90))
    store.save_job(make_job("job_b", trust=60, source="remotive", kind=SourceKind.AGGREGATOR))

    store.update_lineage_trust("remotive", 55)

    assert store.get_job("job_b").lineage[0].trust_score == 55
    assert store.get_job("job_a").lineage[0].trust_score == 90


def test_corpus_version_bumps_monotonically(store) -> None:
    assert store.corpus_version() == 0
    assert store.bump_corpus_version() == 1
    assert store.bump_corpus_version() == 2
    assert store.corpus_version() == 2


def test_liveness_statistics(store) -> None:
    store.save_job(make_job("job_a"))
    store.save_job(make_job("job_b", status=LivenessStatus.STALE))
    store.save_job(make_job("job_c", status=LivenessStatus.UNKNOWN, out_of_scope=True))

    assert store.liveness_statistics() == {"active": 1, "stale": 1, "unknown": 1, "out_of_scope": 1, "total": 3}


def test_job_locks_serialize_writers(store) -> None:
    order = []

    def writer() -> None:
        with store.locks.hold("job_a"):
            order.append("second")

    with store.locks.hold("job_a"):
        thread = threading.Thread(target=writer)
        thread.start()
        thread.join(timeout=0.05)
        assert thread.is_alive()
        order.append("first")
    thread.join(timeout=2)

    assert order == ["first", "second"]


def test_job_locks_drop_released_entries(store) -> None:
    entered = threading.Event()
    release = threading.Event()

    def holder() -> None:
        with store.locks.hold("job_b"):
            entered.set()
            release.wait(timeout=2)

    thread = threading.Thread(target=holder)
    thread.start()
    assert entered.wait(timeout=2)
    for index in range(50):
        with store.locks.hold(f"job_{index}"):
            pass
    assert len(store.locks) == 1
    release.set()
    thread.join(timeout=2)

    assert len(store.locks) == 0


def test_save_job_keeps_liveness_written_since_read(store) -> None:
    store.save_job(make_job("job_a", status=LivenessStatus.UNKNOWN, last_verified_at=None, next_probe_at=NOW))
    read_copy = store.get_job("job_a")
    store.apply_probe_result(
        "job_a",
        liveness_status=LivenessStatus.ACTIVE,
        next_probe_at=NOW + timedelta(days=1),
        probe_failures=0,
        last_verified_at=NOW,
        verified_source="greenhouse-acme",
    )

    read_copy.title = "Staff Engineer"
    store.save_job(read_copy)

    loaded = store.get_job("job_a")
    assert loaded.title == "Staff Engineer"
    assert loaded.liveness_status == LivenessStatus.ACTIVE
    assert loaded.last_verified_at == NOW
    assert loaded.next_probe_at == NOW + timedelta(days=1)
    assert loaded.lineage[0].last_verified_at == NOW

    read_copy.liveness_status = LivenessStatus.UNKNOWN
    read_copy.next_probe_at = NOW
    read_copy.lineage[0].last_verified_at = None
    store.save_job(read_copy, reset_liveness=True)

    reset = store.get_job("job_a")
    assert reset.liveness_status == LivenessStatus.UNKNOWN
    assert reset.next_probe_at == NOW
    assert reset.lineage[0].last_verified_at is None


def test_unusable_path_raises_store_error(tmp_path: Path) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x", encoding="utf-8")

    with pytest.raises((StoreError, OSError)):
        JobStore(blocker / "jobs.sqlite3")

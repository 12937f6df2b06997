"""
SignalCraft
Copyright (c) 2026 Chris Menendez.
All Rights Reserved.
See LICENSE for permitted use.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from feed_engine.config import job_store_path
from feed_engine.models import Job, LineageEntry, LivenessStatus, Location, SourceKind, WorkType
from feed_engine.utils.time import parse_timestamp, to_utc, utc_now

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1
_TS_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


class StoreError(RuntimeError):
    pass


class JobNotFoundError(LookupError):
    pass


@dataclass(frozen=True)
class SourceHealth:
    source: str
    source_kind: str
    trust_baseline: Optional[int]
    success_rate: Optional[float]
    probe_samples: int
    fetch_ok_count: int
    fetch_fail_count: int
    consecutive_fetch_failures: int
    last_fetch_at: Optional[str]
    last_fetch_ok: Optional[bool]
    last_fetch_reason: Optional[str]


class JobLocks:
    """
    Advisory per-job locks: one writer per canonical id at a time.

    Entries are reference-counted and dropped when the last holder or waiter
    releases.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, List[Any]] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, canonical_id: str) -> Iterator[None]:
        with self._guard:
            slot = self._locks.setdefault(canonical_id, [threading.Lock(), 0])
            slot[1] += 1
        try:
            with slot[0]:
                yield
        finally:
            with self._guard:
                slot[1] -= 1
                if slot[1] == 0:
                    del self._locks[canonical_id]


def _later_ts(current: str, incoming: str) -> str:
    # Fixed-width ISO strings: lexical order is time order.
    return f"NULLIF(MAX(COALESCE({current}, ''), COALESCE({incoming}, '')), '')"


def _ts(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return to_utc(value).strftime(_TS_FORMAT)


def _location_to_json(location: Location) -> str:
    return json.dumps(asdict(location), sort_keys=True)


def _location_from_json(raw: Optional[str]) -> Location:
    if not raw:
        return Location(raw="")
    return Location(**json.loads(raw))


def _connect(db_path: Path) -> sqlite3.Connection:
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path, timeout=30)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    return conn


def _lineage_from_row(row: sqlite3.Row) -> LineageEntry:
    return LineageEntry(
        source=row["source"],
        source_id=row["source_id"],
        source_kind=SourceKind(row["source_kind"]),
        trust_score=int(row["trust_score"]),
        first_seen_at=parse_timestamp(row["first_seen_at"]),
        last_seen_at=parse_timestamp(row["last_seen_at"]),
        external_url=row["external_url"],
        description=row["description"] or "",
        salary_min=row["salary_min"],
        salary_max=row["salary_max"],
        posted_at=parse_timestamp(row["posted_at"]),
        last_verified_at=parse_timestamp(row["last_verified_at"]),
        content_hash=row["content_hash"] or "",
    )


def _job_from_row(row: sqlite3.Row, lineage: List[LineageEntry]) -> Job:
    return Job(
        canonical_id=row["canonical_id"],
        title=row["title"],
        company=row["company"],
        company_id=row["company_id"],
        location=_location_from_json(row["location_json"]),
        description=row["description"] or "",
        skills=json.loads(row["skills_json"] or "[]"),
        seniority=row["seniority"],
        work_type=WorkType(row["work_type"]),
        external_url=row["external_url"],
        first_seen_at=parse_timestamp(row["first_seen_at"]),
        trust_score=int(row["trust_score"]),
        liveness_status=LivenessStatus(row["liveness_status"]),
        salary_min=row["salary_min"],
        salary_max=row["salary_max"],
        posted_at=parse_timestamp(row["posted_at"]),
        last_verified_at=parse_timestamp(row["last_verified_at"]),
        next_probe_at=parse_timestamp(row["next_probe_at"]),
        probe_failures=int(row["probe_failures"]),
        out_of_scope=bool(row["out_of_scope"]),
        lineage=lineage,
    )


class JobStore:
    """
    SQLite-backed canonical job store.

    Ingestion writes through `save_job`; the liveness prober writes only through
    `apply_probe_result`. Both take the per-job lock from `locks`. Jobs are never deleted.
    """

    def __init__(self, db_path: Optional[Path] = None, *, locks: Optional[JobLocks] = None) -> None:
        self.db_path = db_path or job_store_path()
        self.locks = locks or JobLocks()
        self._meta_lock = threading.Lock()
        self.ensure_schema()

    @contextmanager
    def _conn(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = _connect(self.db_path)
        except sqlite3.Error as exc:
            raise StoreError(f"job store unavailable: {self.db_path}: {exc}") from exc
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise StoreError(f"job store operation failed: {exc}") from exc
        finally:
            conn.close()

    def ensure_schema(self) -> Path:
        with self._conn() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS store_meta(
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                );
                CREATE TABLE IF NOT EXISTS jobs(
                    canonical_id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    company TEXT NOT NULL,
                    company_id TEXT NOT NULL,
                    location_json TEXT NOT NULL,
                    location_key TEXT NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    skills_json TEXT NOT NULL DEFAULT '[]',
                    seniority TEXT NULL,
                    work_type TEXT NOT NULL,
                    salary_min REAL NULL,
                    salary_max REAL NULL,
                    external_url TEXT NULL,
                    trust_score INTEGER NOT NULL,
                    liveness_status TEXT NOT NULL,
                    first_seen_at TEXT NOT NULL,
                    last_verified_at TEXT NULL,
                    posted_at TEXT NULL,
                    next_probe_at TEXT NULL,
                    probe_failures INTEGER NOT NULL DEFAULT 0,
                    out_of_scope INTEGER NOT NULL DEFAULT 0
                );
                CREATE TABLE IF NOT EXISTS job_lineage(
                    source TEXT NOT NULL,
                    source_id TEXT NOT NULL,
                    canonical_id TEXT NOT NULL REFERENCES jobs(canonical_id),
                    source_kind TEXT NOT NULL,
                    trust_score INTEGER NOT NULL,
                    first_seen_at TEXT NOT NULL,
                    last_seen_at TEXT NOT NULL,
                    external_url TEXT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    salary_min REAL NULL,
                    salary_max REAL NULL,
                    posted_at TEXT NULL,
                    last_verified_at TEXT NULL,
                    content_hash TEXT NOT NULL DEFAULT '',
                    PRIMARY KEY(source, source_id)
                );
                CREATE TABLE IF NOT EXISTS source_health(
                    source TEXT PRIMARY KEY,
                    source_kind TEXT NOT NULL,
                    trust_baseline INTEGER NULL,
                    success_rate REAL NULL,
                    probe_samples INTEGER NOT NULL DEFAULT 0,
                    fetch_ok_count INTEGER NOT NULL DEFAULT 0,
                    fetch_fail_count INTEGER NOT NULL DEFAULT 0,
                    consecutive_fetch_failures INTEGER NOT NULL DEFAULT 0,
                    last_fetch_at TEXT NULL,
                    last_fetch_ok INTEGER NULL,
                    last_fetch_reason TEXT NULL
                );
                CREATE INDEX IF NOT EXISTS idx_jobs_liveness_next_probe
                    ON jobs(liveness_status, next_probe_at);
                CREATE INDEX IF NOT EXISTS idx_jobs_trust
                    ON jobs(trust_score DESC);
                CREATE INDEX IF NOT EXISTS idx_jobs_company_location
                    ON jobs(company_id, location_key);
                CREATE INDEX IF NOT EXISTS idx_lineage_canonical
                    ON job_lineage(canonical_id);
                """
            )
            conn.execute(
                "INSERT OR REPLACE INTO store_meta(key, value) VALUES('schema_version', ?)",
                (str(SCHEMA_VERSION),),
            )
            conn.execute("INSERT OR IGNORE INTO store_meta(key, value) VALUES('corpus_version', '0')")
        return self.db_path

    # -- reads -------------------------------------------------------------

    def _load_jobs(self, conn: sqlite3.Connection, rows: List[sqlite3.Row]) -> List[Job]:
        if not rows:
            return []
        ids = [row["canonical_id"] for row in rows]
        lineage: Dict[str, List[LineageEntry]] = {cid: [] for cid in ids}
        # Chunk to stay under SQLite's bound-parameter limit.
        for start in range(0, len(ids), 500):
            chunk = ids[start : start + 500]
            placeholders = ",".join("?" for _ in chunk)
            for row in conn.execute(
                f"SELECT * FROM job_lineage WHERE canonical_id IN ({placeholders}) ORDER BY source, source_id",
                chunk,
            ):
                lineage[row["canonical_id"]].append(_lineage_from_row(row))
        return [_job_from_row(row, lineage[row["canonical_id"]]) for row in rows]

    def get_job(self, canonical_id: str) -> Optional[Job]:
        with self._conn() as conn:
            rows = conn.execute("SELECT * FROM jobs WHERE canonical_id = ?", (canonical_id,)).fetchall()
            jobs = self._load_jobs(conn, rows)
        return jobs[0] if jobs else None

    def find_by_source_key(self, source: str, source_id: str) -> Optional[Job]:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT canonical_id FROM job_lineage WHERE source = ? AND source_id = ?",
                (source, source_id),
            ).fetchone()
            if row is None:
                return None
            rows = conn.execute("SELECT * FROM jobs WHERE canonical_id = ?", (row["canonical_id"],)).fetchall()
            jobs = self._load_jobs(conn, rows)
        return jobs[0] if jobs else None

    def find_fuzzy_candidates(self, company_id: str, location_key: Optional[str] = None) -> List[Job]:
        """Jobs at the same company (optionally the same location key), ordered by canonical id."""
        with self._conn() as conn:
            if location_key is None:
                rows = conn.execute(
                    "SELECT * FROM jobs WHERE company_id = ? ORDER BY canonical_id", (company_id,)
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM jobs WHERE company_id = ? AND location_key = ? ORDER BY canonical_id",
                    (company_id, location_key),
                ).fetchall()
            return self._load_jobs(conn, rows)

    def list_feed_jobs(self, *, include_out_of_scope: bool = False) -> List[Job]:
        """The rankable corpus: every non-stale job, in scope unless asked otherwise."""
        query = "SELECT * FROM jobs WHERE liveness_status != ?"
        params: List[Any] = [LivenessStatus.STALE.value]
        if not include_out_of_scope:
            query += " AND out_of_scope = 0"
        query += " ORDER BY trust_score DESC, canonical_id"
        with self._conn() as conn:
            rows = conn.execute(query, params).fetchall()
            return self._load_jobs(conn, rows)

    def list_jobs(self) -> List[Job]:
        with self._conn() as conn:
            rows = conn.execute("SELECT * FROM jobs ORDER BY canonical_id").fetchall()
            return self._load_jobs(conn, rows)

    def due_for_probe(self, now: datetime, *, limit: int = 100) -> List[Job]:
        """Jobs whose next_probe_at has passed, earliest first. Stale jobs keep being probed."""
        with self._conn() as conn:
            rows = conn.execute(
                """
                SELECT * FROM jobs
                WHERE next_probe_at IS NOT NULL AND next_probe_at <= ?
                ORDER BY next_probe_at, canonical_id
                LIMIT ?
                """,
                (_ts(now), max(1, int(limit))),
            ).fetchall()
            return self._load_jobs(conn, rows)

    def count_jobs(self) -> int:
        with self._conn() as conn:
            return int(conn.execute("SELECT COUNT(*) FROM jobs").fetchone()[0])

    # -- writes ------------------------------------------------------------

    def save_job(self, job: Job, *, reset_liveness: bool = False) -> None:
        """
        Upsert the job row and its full lineage in one transaction.

        An existing row keeps its liveness columns (status, schedule, failure
        count, latest verification) unless reset_liveness is set: those belong
        to the prober, which may have written them from another process after
        this job was read. The URL-change reset is the one caller that sets it.
        """
        if reset_liveness:
            job_liveness = """,
                    liveness_status = excluded.liveness_status,
                    last_verified_at = excluded.last_verified_at,
                    next_probe_at = excluded.next_probe_at,
                    probe_failures = excluded.probe_failures"""
            lineage_verified = "excluded.last_verified_at"
        else:
            job_liveness = """,
                    last_verified_at = """ + _later_ts("jobs.last_verified_at", "excluded.last_verified_at")
            lineage_verified = _later_ts("job_lineage.last_verified_at", "excluded.last_verified_at")
        with self._conn() as conn:
            conn.execute(
                """
                INSERT INTO jobs(
                    canonical_id, title, company, company_id, location_json, location_key, description,
                    skills_json, seniority, work_type, salary_min, salary_max, external_url, trust_score,
                    liveness_status, first_seen_at, last_verified_at, posted_at, next_probe_at,
                    probe_failures, out_of_scope
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(canonical_id) DO UPDATE SET
                    title = excluded.title,
                    company = excluded.company,
                    company_id = excluded.company_id,
                    location_json = excluded.location_json,
                    location_key = excluded.location_key,
                    description = excluded.description,
                    skills_json = excluded.skills_json,
                    seniority = excluded.seniority,
                    work_type = excluded.work_type,
                    salary_min = excluded.salary_min,
                    salary_max = excluded.salary_max,
                    external_url = excluded.external_url,
                    trust_score = excluded.trust_score,
                    first_seen_at = excluded.first_seen_at,
                    posted_at = excluded.posted_at,
                    out_of_scope = excluded.out_of_scope"""
                + job_liveness,
                (
                    job.canonical_id,
                    job.title,
                    job.company,
                    job.company_id,
                    _location_to_json(job.location),
                    job.location.key,
                    job.description,
                    json.dumps(list(job.skills)),
                    job.seniority,
                    job.work_type.value,
                    job.salary_min,
                    job.salary_max,
                    job.external_url,
                    int(job.trust_score),
                    job.liveness_status.value,
                    _ts(job.first_seen_at),
                    _ts(job.last_verified_at),
                    _ts(job.posted_at),
                    _ts(job.next_probe_at),
                    int(job.probe_failures),
                    1 if job.out_of_scope else 0,
                ),
            )
            for entry in job.lineage:
                conn.execute(
                    """
                    INSERT INTO job_lineage(
                        source, source_id, canonical_id, source_kind, trust_score, first_seen_at, last_seen_at,
                        external_url, description, salary_min, salary_max, posted_at, last_verified_at, content_hash
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(source, source_id) DO UPDATE SET
                        canonical_id = excluded.canonical_id,
                        source_kind = excluded.source_kind,
                        trust_score = excluded.trust_score,
                        first_seen_at = excluded.first_seen_at,
                        last_seen_at = excluded.last_seen_at,
                        external_url = excluded.external_url,
                        description = excluded.description,
                        salary_min = excluded.salary_min,
                        salary_max = excluded.salary_max,
                        posted_at = excluded.posted_at,
                        content_hash = excluded.content_hash,
                        last_verified_at = """
                    + lineage_verified,
                    (
                        entry.source,
                        entry.source_id,
                        job.canonical_id,
                        entry.source_kind.value,
                        int(entry.trust_score),
                        _ts(entry.first_seen_at),
                        _ts(entry.last_seen_at),
                        entry.external_url,
                        entry.description,
                        entry.salary_min,
                        entry.salary_max,
                        _ts(entry.posted_at),
                        _ts(entry.last_verified_at),
                        entry.content_hash,
                    ),
                )

    def apply_probe_result(
        self,
        canonical_id: str,
        *,
        liveness_status: LivenessStatus,
        next_probe_at: Optional[datetime],
        probe_failures: int,
        last_verified_at: Optional[datetime] = None,
        trust_score: Optional[int] = None,
        verified_source: Optional[str] = None,
    ) -> None:
        """
        Liveness-only update. Never touches content columns, so a concurrent
        ingestion save cannot be overwritten with stale content.
        """
        with self._conn() as conn:
            conn.execute(
                """
                UPDATE jobs SET
                    liveness_status = ?,
                    next_probe_at = ?,
                    probe_failures = ?,
                    last_verified_at = COALESCE(?, last_verified_at),
                    trust_score = COALESCE(?, trust_score)
                WHERE canonical_id = ?
                """,
                (
                    liveness_status.value,
                    _ts(next_probe_at),
                    int(probe_failures),
                    _ts(last_verified_at),
                    trust_score,
                    canonical_id,
                ),
            )
            if last_verified_at is not None and verified_source is not None:
                conn.execute(
                    "UPDATE job_lineage SET last_verified_at = ? WHERE canonical_id = ? AND source = ?",
                    (_ts(last_verified_at), canonical_id, verified_source),
                )

    def update_lineage_trust(self, source: str, trust_score: int) -> None:
        with self._conn() as conn:
            conn.execute("UPDATE job_lineage SET trust_score = ? WHERE source = ?", (int(trust_score), source))

    # -- source health -----------------------------------------------------

    def record_fetch_outcome(
        self,
        source: str,
        *,
        source_kind: SourceKind,
        ok: bool,
        reason: Optional[str] = None,
        trust_baseline: Optional[int] = None,
        at: Optional[datetime] = None,
    ) -> None:
        with self._conn() as conn:
            conn.execute(
                """
                INSERT INTO source_health(source, source_kind, trust_baseline)
                VALUES (?, ?, ?)
                ON CONFLICT(source) DO UPDATE SET
                    source_kind = excluded.source_kind,
                    trust_baseline = excluded.trust_baseline
                """,
                (source, source_kind.value, trust_baseline),
            )
            if ok:
                conn.execute(
                    """
                    UPDATE source_health SET
                        fetch_ok_count = fetch_ok_count + 1,
                        consecutive_fetch_failures = 0,
                        last_fetch_at = ?, last_fetch_ok = 1, last_fetch_reason = NULL
                    WHERE source = ?
                    """,
                    (_ts(at or utc_now()), source),
                )
            else:
                conn.execute(
                    """
                    UPDATE source_health SET
                        fetch_fail_count = fetch_fail_count + 1,
                        consecutive_fetch_failures = consecutive_fetch_failures + 1,
                        last_fetch_at = ?, last_fetch_ok = 0, last_fetch_reason = ?
                    WHERE source = ?
                    """,
                    (_ts(at or utc_now()), reason, source),
                )

    def record_probe_outcome(self, source: str, *, source_kind: SourceKind, success_rate: float) -> None:
        with self._conn() as conn:
            conn.execute(
                """
                INSERT INTO source_health(source, source_kind, success_rate, probe_samples)
                VALUES (?, ?, ?, 1)
                ON CONFLICT(source) DO UPDATE SET
                    success_rate = excluded.success_rate,
                    probe_samples = probe_samples + 1
                """,
                (source, source_kind.value, float(success_rate)),
            )

    def source_health(self, source: Optional[str] = None) -> List[SourceHealth]:
        with self._conn() as conn:
            if source is None:
                rows = conn.execute("SELECT * FROM source_health ORDER BY source").fetchall()
            else:
                rows = conn.execute("SELECT * FROM source_health WHERE source = ?", (source,)).fetchall()
        return [
            SourceHealth(
                source=row["source"],
                source_kind=row["source_kind"],
                trust_baseline=row["trust_baseline"],
                success_rate=row["success_rate"],
                probe_samples=int(row["probe_samples"]),
                fetch_ok_count=int(row["fetch_ok_count"]),
                fetch_fail_count=int(row["fetch_fail_count"]),
                consecutive_fetch_failures=int(row["consecutive_fetch_failures"]),
                last_fetch_at=row["last_fetch_at"],
                last_fetch_ok=None if row["last_fetch_ok"] is None else bool(row["last_fetch_ok"]),
                last_fetch_reason=row["last_fetch_reason"],
            )
            for row in rows
        ]

    # -- corpus version ----------------------------------------------------

    def corpus_version(self) -> int:
        with self._conn() as conn:
            row = conn.execute("SELECT value FROM store_meta WHERE key = 'corpus_version'").fetchone()
        return int(row["value"]) if row else 0

    def bump_corpus_version(self) -> int:
        with self._meta_lock, self._conn() as conn:
            conn.execute(
                "UPDATE store_meta SET value = CAST(CAST(value AS INTEGER) + 1 AS TEXT) WHERE key = 'corpus_version'"
            )
            row = conn.execute("SELECT value FROM store_meta WHERE key = 'corpus_version'").fetchone()
        version = int(row["value"])
        logger.info("[job_store][corpus_version] version=%s", version)
        return version

    def liveness_statistics(self) -> Dict[str, int]:
        stats = {status.value: 0 for status in LivenessStatus}
        with self._conn() as conn:
            for row in conn.execute("SELECT liveness_status, COUNT(*) AS n FROM jobs GROUP BY liveness_status"):
                stats[row["liveness_status"]] = int(row["n"])
            stats["out_of_scope"] = int(conn.execute("SELECT COUNT(*) FROM jobs WHERE out_of_scope = 1").fetchone()[0])
            stats["total"] = int(conn.execute("SELECT COUNT(*) FROM jobs").fetchone()[0])
        return stats

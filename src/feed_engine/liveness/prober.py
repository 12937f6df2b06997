"""
SignalCraft
Copyright (c) 2026 Chris Menendez.
All Rights Reserved.
See LICENSE for permitted use.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional

from feed_engine.config import get_float_env, get_int_env
from feed_engine.liveness.probe import ProbeOutcome, ProbeResult, probe_job_url
from feed_engine.liveness.schedule import MAX_PROBE_ATTEMPTS, ProbeQueue, next_probe_at, retry_at
from feed_engine.models import Job, LineageEntry, LivenessStatus, SourceKind
from feed_engine.state.job_store import JobNotFoundError, JobStore
from feed_engine.trust import source_trust, update_success_rate
from feed_engine.utils.job_identity import normalize_job_url
from feed_engine.utils.time import isoformat_z, utc_now

logger = logging.getLogger(__name__)

ProbeFn = Callable[[Optional[str]], ProbeResult]


@dataclass
class Transition:
    job_id: str
    previous: LivenessStatus
    current: LivenessStatus
    reason: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "job_id": self.job_id,
            "from": self.previous.value,
            "to": self.current.value,
            "reason": self.reason,
        }


@dataclass
class ProbeRunReport:
    started_at: datetime
    probed: int = 0
    alive: int = 0
    dead: int = 0
    errors: int = 0
    skipped: int = 0
    transitions: List[Transition] = field(default_factory=list)
    corpus_version: Optional[int] = None

    def to_dict(self) -> Dict[str, object]:
        return {
            "started_at": isoformat_z(self.started_at),
            "probed": self.probed,
            "alive": self.alive,
            "dead": self.dead,
            "errors": self.errors,
            "skipped": self.skipped,
            "transitions": [item.to_dict() for item in self.transitions],
            "corpus_version": self.corpus_version,
        }


def _verifying_entry(job: Job) -> Optional[LineageEntry]:
    """The lineage entry whose URL the job currently shows."""
    if not job.lineage:
        return None
    target = normalize_job_url(job.external_url)
    for entry in job.lineage:
        if target and normalize_job_url(entry.external_url) == target:
            return entry
    return min(job.lineage, key=lambda entry: entry.key)


def _first_party(job: Job) -> bool:
    return not job.external_url and any(entry.source_kind == SourceKind.INTERNAL for entry in job.lineage)


class LivenessProber:
    """
    Pulls due jobs from the store, probes their URLs, and writes liveness back.

    Probe network calls run concurrently; each result is applied under the
    job's advisory lock and re-read first, so a URL changed by ingestion while
    the probe was in flight is never marked with the old URL's outcome.
    """

    def __init__(
        self,
        store: JobStore,
        *,
        probe: Optional[ProbeFn] = None,
        max_workers: Optional[int] = None,
        batch_limit: Optional[int] = None,
        poll_interval_s: Optional[float] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.probe = probe or probe_job_url
        self.max_workers = max_workers or get_int_env("JOBFEED_PROBE_MAX_WORKERS", 8)
        self.batch_limit = batch_limit or get_int_env("JOBFEED_PROBE_BATCH_LIMIT", 200)
        self.poll_interval_s = poll_interval_s or get_float_env("JOBFEED_PROBE_POLL_INTERVAL_S", 60.0)
        self.clock = clock
        self._health_lock = threading.Lock()

    # -- public ------------------------------------------------------------

    def run_once(self, now: Optional[datetime] = None, *, limit: Optional[int] = None) -> ProbeRunReport:
        now = now or self.clock()
        report = ProbeRunReport(started_at=now)
        queue = ProbeQueue()
        jobs: Dict[str, Job] = {}
        for job in self.store.due_for_probe(now, limit=limit or self.batch_limit):
            jobs[job.canonical_id] = job
            queue.schedule(job.canonical_id, job.next_probe_at or now)
        due_ids = queue.pop_due(now)
        if not due_ids:
            logger.info("[liveness][run] due=0")
            return report

        results: Dict[str, ProbeResult] = {}
        network: List[Job] = []
        for job_id in due_ids:
            job = jobs[job_id]
            if _first_party(job):
                results[job_id] = ProbeResult(ProbeOutcome.ALIVE, "first_party")
            else:
                network.append(job)

        if network:
            workers = max(1, min(self.max_workers, len(network)))
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="probe") as executor:
                futures = {executor.submit(self.probe, job.external_url): job.canonical_id for job in network}
                for future in as_completed(futures):
                    results[futures[future]] = future.result()

        for job_id in due_ids:
            self._apply(jobs[job_id], results[job_id], now, report)

        if report.transitions:
            report.corpus_version = self.store.bump_corpus_version()
        logger.info(
            "[liveness][run] probed=%s alive=%s dead=%s errors=%s skipped=%s transitions=%s",
            report.probed,
            report.alive,
            report.dead,
            report.errors,
            report.skipped,
            len(report.transitions),
        )
        return report

    def check_single_job(self, job_id: str, now: Optional[datetime] = None) -> ProbeResult:
        """Probe one job right away, regardless of its schedule."""
        job = self.store.get_job(job_id)
        if job is None:
            raise JobNotFoundError(f"job not found: {job_id}")
        now = now or self.clock()
        result = ProbeResult(ProbeOutcome.ALIVE, "first_party") if _first_party(job) else self.probe(job.external_url)
        report = ProbeRunReport(started_at=now)
        self._apply(job, result, now, report)
        if report.transitions:
            self.store.bump_corpus_version()
        return result

    def run_forever(self, stop_event: threading.Event) -> None:
        logger.info("[liveness][loop] start poll_interval_s=%s", self.poll_interval_s)
        while not stop_event.is_set():
            self.run_once()
            stop_event.wait(self.poll_interval_s)
        logger.info("[liveness][loop] stop")

    # -- internals ---------------------------------------------------------

    def _apply(self, probed: Job, result: ProbeResult, now: datetime, report: ProbeRunReport) -> None:
        with self.store.locks.hold(probed.canonical_id):
            job = self.store.get_job(probed.canonical_id)
            if job is None or normalize_job_url(job.external_url) != normalize_job_url(probed.external_url):
                report.skipped += 1
                logger.info("[liveness][skip] job=%s reason=url_changed_in_flight", probed.canonical_id)
                return
            report.probed += 1
            previous = job.liveness_status
            entry = _verifying_entry(job)

            if result.outcome == ProbeOutcome.ERROR:
                # Inconclusive: status stays as it was, only the schedule moves.
                report.errors += 1
                failures = job.probe_failures + 1
                if failures < MAX_PROBE_ATTEMPTS:
                    when = retry_at(failures, now)
                    logger.info(
                        "[liveness][retry] job=%s attempt=%s reason=%s next_probe_at=%s",
                        job.canonical_id,
                        failures,
                        result.reason,
                        isoformat_z(when),
                    )
                else:
                    logger.info(
                        "[liveness][retries_exhausted] job=%s status=%s reason=%s",
                        job.canonical_id,
                        previous.value,
                        result.reason,
                    )
                    failures = 0
                    when = next_probe_at(job, now)
                self.store.apply_probe_result(
                    job.canonical_id,
                    liveness_status=previous,
                    next_probe_at=when,
                    probe_failures=failures,
                )
                return

            alive = result.outcome == ProbeOutcome.ALIVE
            if alive:
                report.alive += 1
                status = LivenessStatus.ACTIVE
            else:
                report.dead += 1
                status = LivenessStatus.STALE

            trust = job.trust_score
            if entry is not None:
                source_score = self._record_source_outcome(entry, alive)
                entry.trust_score = source_score
                trust = max(item.trust_score for item in job.lineage)
            job.liveness_status = status
            job.trust_score = trust
            self.store.apply_probe_result(
                job.canonical_id,
                liveness_status=status,
                next_probe_at=next_probe_at(job, now),
                probe_failures=0,
                last_verified_at=now if alive else None,
                trust_score=trust,
                verified_source=entry.source if (alive and entry is not None) else None,
            )
            self._note_transition(report, job.canonical_id, previous, status, result.reason)

    def _record_source_outcome(self, entry: LineageEntry, alive: bool) -> int:
        with self._health_lock:
            health = self.store.source_health(entry.source)
            previous_rate = health[0].success_rate if health else None
            samples = health[0].probe_samples if health else 0
            baseline_override = health[0].trust_baseline if health else None
            rate = update_success_rate(previous_rate, samples, alive)
            self.store.record_probe_outcome(entry.source, source_kind=entry.source_kind, success_rate=rate)
            score = source_trust(
                entry.source_kind,
                entry.source,
                override=baseline_override,
                success_rate=rate,
                samples=samples + 1,
            )
            self.store.update_lineage_trust(entry.source, score)
        return score

    @staticmethod
    def _note_transition(
        report: ProbeRunReport,
        job_id: str,
        previous: LivenessStatus,
        current: LivenessStatus,
        reason: str,
    ) -> None:
        if previous == current:
            return
        report.transitions.append(Transition(job_id=job_id, previous=previous, current=current, reason=reason))
        logger.info(
            "[liveness][transition] job=%s from=%s to=%s reason=%s",
            job_id,
            previous.value,
            current.value,
            reason,
        )

"""
SignalCraft
Copyright (c) 2026 Chris Menendez.
All Rights Reserved.
See LICENSE for permitted use.
"""

from __future__ import annotations

import logging
from concurrent.futures import ALL_COMPLETED, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional

from feed_engine.config import get_float_env, get_int_env, us_only_enabled
from feed_engine.models import RawPosting
from feed_engine.pipeline.canonicalize import MalformedPostingError, canonicalize
from feed_engine.pipeline.dedupe import AmbiguousPair, Deduplicator
from feed_engine.providers.base import SourceAdapter, SourceConfig
from feed_engine.providers.registry import build_adapter
from feed_engine.providers.retry import PolitenessState, ProviderFetchError, classify_failure_type
from feed_engine.state.job_store import JobStore
from feed_engine.trust import source_trust
from feed_engine.utils.time import isoformat_z, utc_now

logger = logging.getLogger(__name__)

AdapterFactory = Callable[[SourceConfig], SourceAdapter]


@dataclass
class SourceReport:
    source_id: str
    fetched: int = 0
    ok: int = 0
    failed: int = 0
    skipped_malformed: int = 0
    status: str = "pending"
    reason: Optional[str] = None
    failure_type: Optional[str] = None
    trust_score: Optional[int] = None

    def to_dict(self) -> Dict[str, object]:
        return {
            "source_id": self.source_id,
            "status": self.status,
            "fetched": self.fetched,
            "ok": self.ok,
            "failed": self.failed,
            "skipped_malformed": self.skipped_malformed,
            "reason": self.reason,
            "failure_type": self.failure_type,
            "trust_score": self.trust_score,
        }


@dataclass
class IngestReport:
    started_at: datetime
    finished_at: Optional[datetime] = None
    sources: List[SourceReport] = field(default_factory=list)
    inserted: int = 0
    updated: int = 0
    merged: int = 0
    skipped_malformed: int = 0
    url_changes: int = 0
    ambiguous: List[AmbiguousPair] = field(default_factory=list)
    corpus_version: Optional[int] = None

    @property
    def failed_sources(self) -> List[str]:
        return [report.source_id for report in self.sources if report.status != "ok"]

    @property
    def had_failures(self) -> bool:
        return bool(self.failed_sources)

    def to_dict(self) -> Dict[str, object]:
        return {
            "started_at": isoformat_z(self.started_at),
            "finished_at": isoformat_z(self.finished_at),
            "inserted": self.inserted,
            "updated": self.updated,
            "merged": self.merged,
            "skipped_malformed": self.skipped_malformed,
            "url_changes": self.url_changes,
            "ambiguous": [pair.to_dict() for pair in self.ambiguous],
            "corpus_version": self.corpus_version,
            "sources": [report.to_dict() for report in self.sources],
        }


def _fetch_all(
    sources: List[SourceConfig],
    factory: AdapterFactory,
    *,
    max_workers: int,
    batch_timeout_s: float,
) -> Dict[str, object]:
    """
    Run every adapter concurrently. Returns source_id -> postings list or the
    exception / timeout marker for that source. Slow sources are abandoned, not awaited.
    """
    results: Dict[str, object] = {}
    if not sources:
        return results
    executor = ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(sources))), thread_name_prefix="ingest")
    try:
        futures = {executor.submit(factory(config).fetch, config): config.source_id for config in sources}
        done, pending = wait(futures, timeout=batch_timeout_s, return_when=ALL_COMPLETED)
        for future in done:
            source_id = futures[future]
            exc = future.exception()
            results[source_id] = exc if exc is not None else future.result()
        for future in pending:
            future.cancel()
            results[futures[future]] = ProviderFetchError("timeout", 0)
    finally:
        executor.shutdown(wait=False, cancel_futures=True)
    return results


def run_ingestion(
    store: JobStore,
    sources: List[SourceConfig],
    *,
    adapter_factory: Optional[AdapterFactory] = None,
    politeness: Optional[PolitenessState] = None,
    us_only: Optional[bool] = None,
    max_workers: Optional[int] = None,
    batch_timeout_s: Optional[float] = None,
    clock: Callable[[], datetime] = utc_now,
) -> IngestReport:
    """
    One ingestion batch: fetch every source concurrently, then canonicalize,
    dedupe and persist in a stable order (sources in config order, postings in
    discovery order). Safe to re-run; only StoreError escapes.
    """
    report = IngestReport(started_at=clock())
    factory = adapter_factory or (lambda config: build_adapter(config, state=politeness))
    workers = max_workers or get_int_env("JOBFEED_INGEST_MAX_WORKERS", 4)
    timeout_s = batch_timeout_s or get_float_env("JOBFEED_INGEST_BATCH_TIMEOUT_S", 300.0)
    scope_us_only = us_only_enabled() if us_only is None else us_only

    fetched = _fetch_all(sources, factory, max_workers=workers, batch_timeout_s=timeout_s)
    deduplicator = Deduplicator(store)

    for config in sources:
        source_report = SourceReport(source_id=config.source_id)
        report.sources.append(source_report)
        outcome = fetched.get(config.source_id)
        if isinstance(outcome, BaseException):
            reason = outcome.reason if isinstance(outcome, ProviderFetchError) else type(outcome).__name__
            source_report.status = "failed"
            source_report.reason = reason
            source_report.failure_type = classify_failure_type(reason)
            store.record_fetch_outcome(
                config.source_id,
                source_kind=config.source_kind,
                ok=False,
                reason=reason,
                trust_baseline=config.trust_baseline,
                at=clock(),
            )
            logger.warning(
                "[ingest][source] source=%s status=failed reason=%s failure_type=%s",
                config.source_id,
                reason,
                source_report.failure_type,
            )
            continue

        postings: List[RawPosting] = list(outcome or [])
        store.record_fetch_outcome(
            config.source_id,
            source_kind=config.source_kind,
            ok=True,
            trust_baseline=config.trust_baseline,
            at=clock(),
        )
        health = store.source_health(config.source_id)
        trust = source_trust(
            config.source_kind,
            config.source_id,
            override=config.trust_baseline,
            success_rate=health[0].success_rate if health else None,
            samples=health[0].probe_samples if health else 0,
        )
        source_report.trust_score = trust
        source_report.fetched = len(postings)
        for posting in postings:
            try:
                candidate = canonicalize(posting, trust_score=trust, us_only=scope_us_only)
            except MalformedPostingError as exc:
                source_report.skipped_malformed += 1
                report.skipped_malformed += 1
                logger.info("[ingest][malformed] source=%s reason=%s", config.source_id, exc)
                continue
            outcome_merge = deduplicator.merge(candidate)
            source_report.ok += 1
            report.ambiguous.extend(outcome_merge.ambiguous)
            if outcome_merge.is_new:
                report.inserted += 1
            elif outcome_merge.matched_by == "fuzzy":
                report.merged += 1
            else:
                report.updated += 1
            if outcome_merge.url_changed:
                report.url_changes += 1
        source_report.failed = source_report.skipped_malformed
        source_report.status = "ok"
        logger.info(
            "[ingest][source] source=%s status=ok fetched=%s ok=%s skipped_malformed=%s trust=%s",
            config.source_id,
            source_report.fetched,
            source_report.ok,
            source_report.skipped_malformed,
            trust,
        )

    report.corpus_version = store.bump_corpus_version()
    report.finished_at = clock()
    logger.info(
        "[ingest][batch] inserted=%s updated=%s merged=%s skipped_malformed=%s ambiguous=%s failed_sources=%s corpus_version=%s",
        report.inserted,
        report.updated,
        report.merged,
        report.skipped_malformed,
        len(report.ambiguous),
        ",".join(report.failed_sources) or "-",
        report.corpus_version,
    )
    return report

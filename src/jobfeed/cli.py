"""
SignalCraft
Copyright (c) 2026 Chris Menendez.
All Rights Reserved.
See LICENSE for permitted use.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import signal
import sys
import threading
from dataclasses import asdict
from pathlib import Path
from typing import List, Optional

from feed_engine.collaborators import JOB_ACTION_STATUSES, FileJobActionSource, FileProfileSource
from feed_engine.config import DEFAULT_SOURCES_CONFIG, job_store_path
from feed_engine.feed import FeedService
from feed_engine.liveness.prober import LivenessProber
from feed_engine.pipeline.ingest import run_ingestion
from feed_engine.profile_loader import ProfileValidationError
from feed_engine.providers.base import SourceConfigError
from feed_engine.providers.registry import load_sources_config, select_sources
from feed_engine.ranking.contract import RankingConfigError, load_ranking_config
from feed_engine.ranking.engine import describe_feed
from feed_engine.state.job_store import JobNotFoundError, JobStore, StoreError

EXIT_OK = 0
EXIT_PARTIAL_FAILURE = 1
EXIT_USAGE = 2

logger = logging.getLogger("jobfeed")


def _setup_logging() -> None:
    if logging.getLogger().hasHandlers():
        return
    level_name = os.environ.get("JOBFEED_LOG_LEVEL", "INFO").strip().upper() or "INFO"
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s %(levelname)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _store(args: argparse.Namespace) -> JobStore:
    return JobStore(Path(args.db) if args.db else job_store_path())


def _print_json(payload: object) -> None:
    print(json.dumps(payload, indent=2, sort_keys=True, default=str))


def _ingest(args: argparse.Namespace) -> int:
    configs = load_sources_config(Path(args.sources_config))
    sources = select_sources(configs, args.source)
    if not sources:
        print("No enabled sources to ingest.")
        return EXIT_OK
    report = run_ingestion(_store(args), sources)
    if args.json:
        _print_json(report.to_dict())
    else:
        for source in report.sources:
            print(
                f"[ingest] {source.status.upper()} {source.source_id}: fetched={source.fetched} "
                f"ok={source.ok} failed={source.failed} reason={source.reason or '-'}"
            )
        print(
            f"[ingest] inserted={report.inserted} updated={report.updated} merged={report.merged} "
            f"skipped_malformed={report.skipped_malformed} ambiguous={len(report.ambiguous)} "
            f"corpus_version={report.corpus_version}"
        )
    return EXIT_PARTIAL_FAILURE if report.had_failures else EXIT_OK


def _probe(args: argparse.Namespace) -> int:
    prober = LivenessProber(_store(args), batch_limit=args.limit)
    if args.job:
        result = prober.check_single_job(args.job)
        if args.json:
            _print_json(
                {
                    "job_id": args.job,
                    "outcome": result.outcome.value,
                    "reason": result.reason,
                    "status_code": result.status_code,
                }
            )
        else:
            print(f"[probe] job={args.job} outcome={result.outcome.value} reason={result.reason}")
        return EXIT_OK
    if args.once:
        report = prober.run_once()
        if args.json:
            _print_json(report.to_dict())
        else:
            print(
                f"[probe] probed={report.probed} alive={report.alive} dead={report.dead} "
                f"errors={report.errors} transitions={len(report.transitions)}"
            )
        return EXIT_OK

    stop_event = threading.Event()

    def _stop(signum: int, _frame: object) -> None:
        logger.info("[probe][signal] signum=%s stopping", signum)
        stop_event.set()

    signal.signal(signal.SIGINT, _stop)
    signal.signal(signal.SIGTERM, _stop)
    prober.run_forever(stop_event)
    return EXIT_OK


def _feed_service(args: argparse.Namespace) -> FeedService:
    return FeedService(
        _store(args),
        FileProfileSource(Path(args.profiles_dir) if args.profiles_dir else None),
        FileJobActionSource(Path(args.actions_dir) if args.actions_dir else None),
        config=load_ranking_config(Path(args.ranking_config) if args.ranking_config else None),
    )


def _feed(args: argparse.Namespace) -> int:
    service = _feed_service(args)
    results = service.get_daily_feed(args.candidate_id)
    notice = describe_feed(results, service.config)
    if args.json:
        _print_json({"candidate_id": args.candidate_id, "notice": notice, "results": [r.to_dict() for r in results]})
        return EXIT_OK
    for rank, result in enumerate(results, start=1):
        badges = f" [{', '.join(result.badges)}]" if result.badges else ""
        print(f"{rank:>2}. {result.job_id} score={result.final_score:.3f}{badges}")
        print(f"    {result.explanation}")
    if notice:
        print(notice)
    return EXIT_OK


def _breakdown(args: argparse.Namespace) -> int:
    breakdown = _feed_service(args).get_match_breakdown(args.candidate_id, args.job_id)
    _print_json(breakdown.to_dict())
    return EXIT_OK


def _action(args: argparse.Namespace) -> int:
    service = _feed_service(args)
    try:
        service.record_job_action(args.candidate_id, args.job_id, args.status)
    except ValueError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_USAGE
    print(f"[action] {args.candidate_id} {args.status} {args.job_id}")
    return EXIT_OK


def _stats(args: argparse.Namespace) -> int:
    store = _store(args)
    _print_json(
        {
            "corpus_version": store.corpus_version(),
            "jobs": store.liveness_statistics(),
            "sources": [asdict(health) for health in store.source_health()],
        }
    )
    return EXIT_OK


def _add_feed_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--profiles-dir", help="Candidate profiles directory (default: <state>/profiles).")
    parser.add_argument("--actions-dir", help="Job actions directory (default: <state>/job_actions).")
    parser.add_argument("--ranking-config", help="Ranking config JSON (default: built-in weights).")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="jobfeed",
        description="SignalCraft job feed: ingestion, liveness probing and candidate feeds.",
    )
    parser.add_argument("--db", help="Job store path (default: JOBFEED_STATE_DIR/jobs.sqlite3).")
    subparsers = parser.add_subparsers(dest="command", required=True)

    ingest_cmd = subparsers.add_parser("ingest", help="Run one ingestion batch")
    ingest_cmd.add_argument("--source", default="all", help="Source id or 'all'.")
    ingest_cmd.add_argument(
        "--sources-config",
        default=str(DEFAULT_SOURCES_CONFIG),
        help="Path to sources config JSON (start from config/sources.example.json).",
    )
    ingest_cmd.add_argument("--json", action="store_true", help="Print the batch report as JSON.")
    ingest_cmd.set_defaults(func=_ingest)

    probe_cmd = subparsers.add_parser("probe", help="Run the liveness prober")
    probe_cmd.add_argument("--once", action="store_true", help="Probe due jobs once and exit.")
    probe_cmd.add_argument("--limit", type=int, help="Max jobs per probe run.")
    probe_cmd.add_argument("--job", help="Probe one job now, regardless of its schedule.")
    probe_cmd.add_argument("--json", action="store_true", help="Print the result as JSON (with --once or --job).")
    probe_cmd.set_defaults(func=_probe)

    feed_cmd = subparsers.add_parser("feed", help="Show a candidate's daily feed")
    feed_cmd.add_argument("candidate_id")
    feed_cmd.add_argument("--json", action="store_true")
    _add_feed_options(feed_cmd)
    feed_cmd.set_defaults(func=_feed)

    breakdown_cmd = subparsers.add_parser("breakdown", help="Explain one candidate/job match")
    breakdown_cmd.add_argument("candidate_id")
    breakdown_cmd.add_argument("job_id")
    _add_feed_options(breakdown_cmd)
    breakdown_cmd.set_defaults(func=_breakdown)

    action_cmd = subparsers.add_parser("action", help="Save, hide or mark a job as applied")
    action_cmd.add_argument("candidate_id")
    action_cmd.add_argument("job_id")
    action_cmd.add_argument("status", choices=JOB_ACTION_STATUSES)
    _add_feed_options(action_cmd)
    action_cmd.set_defaults(func=_action)

    stats_cmd = subparsers.add_parser("stats", help="Job store and source health statistics")
    stats_cmd.set_defaults(func=_stats)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _setup_logging()
    try:
        return args.func(args)
    except (SourceConfigError, RankingConfigError, ProfileValidationError, JobNotFoundError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_USAGE
    except StoreError as exc:
        logger.error("[cli][store_error] command=%s error=%s", args.command, exc)
        return EXIT_PARTIAL_FAILURE


if __name__ == "__main__":
    raise SystemExit(main())

"""
SignalCraft
Copyright (c) 2026 Chris Menendez.
All Rights Reserved.
See LICENSE for permitted use.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Set, Tuple

from feed_engine.config import job_actions_dir, profiles_dir
from feed_engine.profile_loader import CandidateProfile, ProfileValidationError, load_candidate_profile
from feed_engine.utils.time import isoformat_z, parse_timestamp

logger = logging.getLogger(__name__)

JOB_ACTIONS_SCHEMA_VERSION = 1
JOB_ACTION_STATUSES = ("saved", "hidden", "applied")
EXCLUDING_STATUSES = frozenset(JOB_ACTION_STATUSES)


@dataclass(frozen=True)
class JobInteraction:
    job_id: str
    status: str
    at: Optional[datetime] = None


class ProfileSource(Protocol):
    def get_profile(self, candidate_id: str) -> CandidateProfile: ...


class JobActionSource(Protocol):
    def excluded_job_ids(self, candidate_id: str) -> Set[str]: ...

    def recent_interactions(self, candidate_id: str, since: datetime) -> List[JobInteraction]: ...

    def record(self, candidate_id: str, job_id: str, status: str, at: datetime) -> None: ...


def _safe_candidate_file(directory: Path, candidate_id: str) -> Path:
    name = (candidate_id or "").strip().lower()
    if not name or any(ch in name for ch in "/\\") or name.startswith("."):
        raise ProfileValidationError(f"invalid candidate_id: {candidate_id!r}")
    return directory / f"{name}.json"


class FileProfileSource:
    """Profiles stored one JSON document per candidate: <dir>/<candidate_id>.json."""

    def __init__(self, directory: Optional[Path] = None) -> None:
        self.directory = directory or profiles_dir()

    def get_profile(self, candidate_id: str) -> CandidateProfile:
        profile = load_candidate_profile(_safe_candidate_file(self.directory, candidate_id))
        if profile.candidate_id != candidate_id.strip().lower():
            raise ProfileValidationError(
                f"profile candidate_id mismatch: expected {candidate_id!r}, found {profile.candidate_id!r}"
            )
        return profile


def normalize_action_status(value: Any) -> str:
    return " ".join(str(value).split()).strip().lower()


def _normalize_record(raw: Dict[str, Any]) -> Dict[str, Any]:
    status = normalize_action_status(raw.get("status", ""))
    if status not in JOB_ACTION_STATUSES:
        raise ValueError(f"unsupported status: {status!r}")
    out: Dict[str, Any] = {"status": status}
    date = raw.get("date")
    if isinstance(date, str) and date.strip():
        out["date"] = date.strip()
    return out


def load_job_actions_checked(path: Path) -> Tuple[Dict[str, Dict[str, Any]], Optional[str]]:
    """
    Load a candidate's job actions with validation.
    Returns:
      - normalized mapping keyed by job_id
      - optional warning string (for invalid/unreadable files)
    """
    if not path.exists():
        return {}, None
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        return {}, f"invalid job actions JSON at {path}: {exc}"

    if not (
        isinstance(payload, dict)
        and payload.get("schema_version") == JOB_ACTIONS_SCHEMA_VERSION
        and isinstance(payload.get("jobs"), dict)
    ):
        return {}, (
            f"invalid job actions schema at {path}: expected "
            f'{{"schema_version": {JOB_ACTIONS_SCHEMA_VERSION}, "jobs": {{...}}}}'
        )

    normalized: Dict[str, Dict[str, Any]] = {}
    source = payload["jobs"]
    for key in sorted(source):
        raw = source.get(key)
        if not isinstance(raw, dict):
            return {}, f"invalid job actions entry at {path}: {key!r} must map to an object"
        try:
            normalized[str(key)] = _normalize_record(raw)
        except ValueError as exc:
            return {}, f"invalid job actions entry at {path}: {key!r} ({exc})"
    return normalized, None


def build_job_actions_document(jobs: Dict[str, Dict[str, Any]]) -> Dict[str, Any]:
    normalized = {str(job_id): _normalize_record(jobs[job_id]) for job_id in sorted(jobs)}
    return {"schema_version": JOB_ACTIONS_SCHEMA_VERSION, "jobs": normalized}


class FileJobActionSource:
    """
    Saved/hidden/applied marks per candidate, one schema-versioned document each:
    {"schema_version": 1, "jobs": {"<job_id>": {"status": "saved", "date": "..."}}}

    An unreadable document is logged and treated as empty so a broken file
    cannot take a candidate's feed down.
    """

    def __init__(self, directory: Optional[Path] = None) -> None:
        self.directory = directory or job_actions_dir()

    def _load(self, candidate_id: str) -> Dict[str, Dict[str, Any]]:
        path = _safe_candidate_file(self.directory, candidate_id)
        actions, warning = load_job_actions_checked(path)
        if warning:
            logger.warning("[job_actions][invalid] candidate=%s %s", candidate_id, warning)
        return actions

    def excluded_job_ids(self, candidate_id: str) -> Set[str]:
        return {job_id for job_id, record in self._load(candidate_id).items() if record["status"] in EXCLUDING_STATUSES}

    def recent_interactions(self, candidate_id: str, since: datetime) -> List[JobInteraction]:
        out: List[JobInteraction] = []
        for job_id, record in self._load(candidate_id).items():
            at = parse_timestamp(record.get("date"))
            if at is not None and at < since:
                continue
            out.append(JobInteraction(job_id=job_id, status=record["status"], at=at))
        return out

    def record(self, candidate_id: str, job_id: str, status: str, at: datetime) -> None:
        path = _safe_candidate_file(self.directory, candidate_id)
        actions, warning = load_job_actions_checked(path)
        if warning:
            raise ValueError(warning)
        actions[job_id] = {"status": status, "date": isoformat_z(at)}
        document = build_job_actions_document(actions)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(document, indent=2, sort_keys=True) + "\n", encoding="utf-8")
        tmp.replace(path)

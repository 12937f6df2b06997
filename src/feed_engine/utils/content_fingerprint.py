"""
SignalCraft
Copyright (c) 2026 Chris Menendez.
All Rights Reserved.
See LICENSE for permitted use.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any, Dict

from feed_engine.models import RawPosting
from feed_engine.utils.job_identity import normalize_job_text, normalize_job_url
from feed_engine.utils.time import isoformat_z


def canonical_json_sha256(payload: Any) -> str:
    raw = json.dumps(payload, ensure_ascii=False, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def posting_fingerprint(posting: RawPosting) -> str:
    """
    Stable content hash for change detection on a raw posting.

    Included fields (content-bearing, deterministic):
    - title, company, location
    - canonical external URL
    - description text hash
    - salary range and posted_at

    Excludes discovery timestamps and the raw payload.
    """
    description = normalize_job_text(posting.description or "")
    payload: Dict[str, Any] = {
        "title": normalize_job_text(posting.title or ""),
        "company": normalize_job_text(posting.company or ""),
        "location": normalize_job_text(posting.location or ""),
        "external_url": normalize_job_url(posting.external_url),
        "description_text_hash": hashlib.sha256(description.encode("utf-8")).hexdigest(),
        "salary": [posting.salary_min, posting.salary_max, posting.salary_currency],
        "posted_at": isoformat_z(posting.posted_at),
    }
    return canonical_json_sha256(payload)

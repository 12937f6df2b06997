"""
SignalCraft
Copyright (c) 2026 Chris Menendez.
All Rights Reserved.
See LICENSE for permitted use.
"""

from __future__ import annotations

import re
from typing import Optional

from feed_engine.models import Location, WorkType

SENIORITY_LEVELS = ("intern", "entry", "junior", "mid", "senior", "staff", "principal", "director", "executive")

_SENIORITY_PATTERNS = (
    ("intern", re.compile(r"\b(?:intern|internship|co-op)\b")),
    ("executive", re.compile(r"\b(?:chief|cto|ceo|cfo|vp|vice president)\b")),
    ("director", re.compile(r"\b(?:director|head of)\b")),
    ("principal", re.compile(r"\b(?:principal|distinguished)\b")),
    ("staff", re.compile(r"\bstaff\b")),
    ("senior", re.compile(r"\b(?:senior|sr\.?|lead|iii|iv)\b")),
    ("junior", re.compile(r"\b(?:junior|jr\.?|associate)\b")),
    ("entry", re.compile(r"\b(?:entry[- ]level|new grad|graduate)\b")),
    ("mid", re.compile(r"\b(?:mid[- ]level|ii)\b")),
)

_HYBRID_RE = re.compile(r"\bhybrid\b", re.IGNORECASE)
_ONSITE_RE = re.compile(r"\b(?:on-?site|in[- ]office|in[- ]person)\b", re.IGNORECASE)


def infer_seniority(title: str, hint: Optional[str] = None) -> Optional[str]:
    if hint:
        lowered = hint.strip().lower()
        if lowered in SENIORITY_LEVELS:
            return lowered
    text = (title or "").lower()
    for level, pattern in _SENIORITY_PATTERNS:
        if pattern.search(text):
            return level
    return None


def infer_work_type(location: Location, hint: Optional[str] = None, title: str = "") -> WorkType:
    """Explicit source hint first, then hybrid/onsite phrasing, then remote detection."""
    if hint:
        lowered = hint.strip().lower().replace("-", "")
        for work_type in (WorkType.REMOTE, WorkType.HYBRID, WorkType.ONSITE):
            if work_type.value in lowered:
                return work_type
    haystack = f"{location.raw} {title}"
    if _HYBRID_RE.search(haystack):
        return WorkType.HYBRID
    if location.is_remote:
        return WorkType.REMOTE
    if _ONSITE_RE.search(haystack) or location.city:
        return WorkType.ONSITE
    return WorkType.UNSPECIFIED

"""
SignalCraft
Copyright (c) 2026 Chris Menendez.
All Rights Reserved.
See LICENSE for permitted use.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional
from urllib.parse import urlparse

import requests
from bs4 import BeautifulSoup

from feed_engine.providers.retry import USER_AGENT, detect_blocked_content

logger = logging.getLogger(__name__)

DEFAULT_PROBE_TIMEOUT_S = 10.0

CLOSED_POSTING_PHRASES = (
    "position has been filled",
    "position filled",
    "no longer available",
    "no longer accepting",
    "job closed",
    "this job has expired",
    "job posting expired",
    "posting has expired",
    "this job is no longer open",
    "this position has been closed",
    "role has been filled",
    "we are no longer accepting applications",
    "application deadline has passed",
    "this listing has ended",
    "requisition closed",
)

GENERIC_CAREER_PATHS = (
    re.compile(r"/careers/?$", re.IGNORECASE),
    re.compile(r"/jobs/?$", re.IGNORECASE),
    re.compile(r"/careers/search", re.IGNORECASE),
    re.compile(r"/jobs/search", re.IGNORECASE),
    re.compile(r"/careers/openings", re.IGNORECASE),
    re.compile(r"/join-us/?$", re.IGNORECASE),
    re.compile(r"/work-with-us/?$", re.IGNORECASE),
    re.compile(r"/opportunities/?$", re.IGNORECASE),
)


class ProbeOutcome(str, Enum):
    ALIVE = "alive"
    DEAD = "dead"
    ERROR = "error"


@dataclass(frozen=True)
class ProbeResult:
    outcome: ProbeOutcome
    reason: str
    status_code: Optional[int] = None
    final_url: Optional[str] = None


def is_generic_career_redirect(original_url: str, final_url: str) -> bool:
    """A redirect that lands on a much shorter, generic careers path."""
    original_path = urlparse(original_url).path or "/"
    final_path = urlparse(final_url).path or "/"
    if final_path == original_path:
        return False
    if len(final_path) >= len(original_path) * 0.5:
        return False
    return any(pattern.search(final_path) for pattern in GENERIC_CAREER_PATHS)


def find_closed_phrase(html: str) -> Optional[str]:
    text = BeautifulSoup(html or "", "html.parser").get_text(" ")
    normalized = " ".join(text.replace("’", "'").lower().split())
    for phrase in CLOSED_POSTING_PHRASES:
        if phrase in normalized:
            return phrase
    return None


def _valid_url(url: Optional[str]) -> bool:
    if not url:
        return False
    parsed = urlparse(url)
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


def probe_job_url(url: Optional[str], *, timeout_s: float = DEFAULT_PROBE_TIMEOUT_S) -> ProbeResult:
    """
    Fetch a posting's URL once and classify it.

    dead: 404/410, redirect to a generic careers page, or closed/filled phrasing.
    error: anything that says nothing about the posting itself (timeouts,
    connection/DNS failures, 5xx, 429, auth walls, bot-block pages, bad URLs).
    """
    if not _valid_url(url):
        return ProbeResult(ProbeOutcome.ERROR, "invalid_url")
    try:
        resp = requests.get(
            url,
            headers={"User-Agent": USER_AGENT, "Accept": "text/html,application/xhtml+xml"},
            timeout=timeout_s,
            allow_redirects=True,
        )
    except requests.Timeout:
        return ProbeResult(ProbeOutcome.ERROR, "timeout")
    except requests.RequestException as exc:
        return ProbeResult(ProbeOutcome.ERROR, f"network_error:{type(exc).__name__}")

    status = resp.status_code
    final_url = getattr(resp, "url", None) or url
    if status in (404, 410):
        return ProbeResult(ProbeOutcome.DEAD, f"http_{status}", status, final_url)
    if status != 200:
        return ProbeResult(ProbeOutcome.ERROR, f"http_{status}", status, final_url)
    if is_generic_career_redirect(url, final_url):
        return ProbeResult(ProbeOutcome.DEAD, "generic_redirect", status, final_url)
    body = resp.text or ""
    if detect_blocked_content(body):
        return ProbeResult(ProbeOutcome.ERROR, "blocked", status, final_url)
    phrase = find_closed_phrase(body)
    if phrase:
        return ProbeResult(ProbeOutcome.DEAD, f"closed_phrase:{phrase}", status, final_url)
    return ProbeResult(ProbeOutcome.ALIVE, "ok", status, final_url)

"""
SignalCraft
Copyright (c) 2026 Chris Menendez.
All Rights Reserved.
See LICENSE for permitted use.
"""

from __future__ import annotations

import hashlib
import json
import re
from typing import Any, Dict, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

_DROP_QUERY_PREFIXES = ("utm_", "gh_", "lever_")
_DROP_QUERY_KEYS = {
    "gh_jid",
    "gh_src",
    "gh_source",
    "lever-source",
    "lever_source",
    "source",
    "sourceid",
    "ref",
    "referrer",
    "icid",
    "mc_cid",
    "mc_eid",
}
_PLAIN_ID_RE = re.compile(r"^[a-z0-9][a-z0-9._:-]{0,127}$", re.IGNORECASE)
_TITLE_NOISE_RE = re.compile(r"[^a-z0-9+#. ]+")


def normalize_job_text(value: str, *, casefold: bool = True) -> str:
    normalized = " ".join(value.split()).strip()
    return normalized.casefold() if casefold else normalized


def _should_drop_param(key: str) -> bool:
    lowered = key.casefold()
    if lowered in _DROP_QUERY_KEYS:
        return True
    return any(lowered.startswith(prefix) for prefix in _DROP_QUERY_PREFIXES)


def normalize_job_url(value: Optional[str]) -> str:
    """
    Canonical URL form for comparisons: lowercase scheme/host, no leading www,
    no trailing slash, tracking params dropped, remaining params sorted, no fragment.
    """
    normalized = normalize_job_text(value or "", casefold=False)
    if not normalized:
        return ""
    parts = urlsplit(normalized)
    scheme = parts.scheme.lower()
    netloc = parts.netloc.lower()
    if netloc.startswith("www."):
        netloc = netloc[4:]
    path = parts.path.rstrip("/")
    query_pairs = parse_qsl(parts.query, keep_blank_values=True)
    filtered = [(key, val) for key, val in query_pairs if key and not _should_drop_param(key)]
    filtered.sort(key=lambda item: (item[0].casefold(), item[1]))
    query = urlencode(filtered, doseq=True)
    return urlunsplit((scheme, netloc, path, query, ""))


def normalize_title(value: Optional[str]) -> str:
    text = normalize_job_text(value or "")
    text = _TITLE_NOISE_RE.sub(" ", text)
    return " ".join(text.split())


def normalize_external_id(value: Any) -> str:
    if value is None:
        return ""
    normalized = normalize_job_text(str(value))
    if not normalized or normalized.startswith(("http://", "https://", "/")):
        return ""
    return normalized if _PLAIN_ID_RE.fullmatch(normalized) else ""


def _sha256_payload(payload: Dict[str, Any]) -> str:
    raw = json.dumps(payload, ensure_ascii=False, sort_keys=True, default=str).encode("utf-8")
    return hashlib.sha256(raw).hexdigest()


def derive_source_posting_id(
    *,
    source: str,
    external_id: Any = None,
    title: Optional[str] = None,
    company: Optional[str] = None,
    location: Optional[str] = None,
    external_url: Optional[str] = None,
    description: Optional[str] = None,
) -> str:
    """
    Deterministic per-source posting id.

    Strategy (in priority order):
    1. the origin's own id when it is a plain identifier
    2. content fallback: hash of source + canonical URL + normalized title/company/location
       + description hash, so identical re-ingestion maps to the same id
    """
    origin_id = normalize_external_id(external_id)
    if origin_id:
        return origin_id

    description_norm = normalize_job_text(description or "")
    payload = {
        "strategy": "content_fallback",
        "source": normalize_job_text(source),
        "canonical_url": normalize_job_url(external_url),
        "title": normalize_title(title),
        "company": normalize_job_text(company or ""),
        "location": normalize_job_text(location or ""),
        "description_hash": hashlib.sha256(description_norm.encode("utf-8")).hexdigest() if description_norm else "",
    }
    return "h:" + _sha256_payload(payload)[:32]


def canonical_job_id(source: str, source_posting_id: str) -> str:
    """System-assigned id, derived from the first lineage key so rebuilds are reproducible."""
    digest = _sha256_payload({"source": normalize_job_text(source), "source_id": source_posting_id})
    return "job_" + digest[:20]

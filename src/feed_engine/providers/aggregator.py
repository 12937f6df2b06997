"""
SignalCraft
Copyright (c) 2026 Chris Menendez.
All Rights Reserved.
See LICENSE for permitted use.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from feed_engine.models import RawPosting
from feed_engine.providers.base import Clock, SourceConfig, clean_text, optional_float, optional_text
from feed_engine.providers.greenhouse import html_to_text
from feed_engine.providers.retry import PolitenessPolicy, PolitenessState, ProviderFetchError, fetch_json_with_retry
from feed_engine.utils.time import parse_timestamp, utc_now

logger = logging.getLogger(__name__)

# Remotive-style payload; a source entry may remap any of these.
DEFAULT_FIELD_MAP: Dict[str, str] = {
    "external_id": "id",
    "title": "title",
    "company": "company_name",
    "location": "candidate_required_location",
    "description": "description",
    "external_url": "url",
    "posted_at": "publication_date",
    "salary": "salary",
    "salary_min": "salary_min",
    "salary_max": "salary_max",
    "work_type": "job_type",
    "tags": "tags",
    "latitude": "latitude",
    "longitude": "longitude",
}
DEFAULT_RESULTS_KEY = "jobs"

_SALARY_NUMBER_RE = re.compile(r"(\d+(?:[.,]\d+)?)\s*([kK])?")


def _lookup(item: Dict[str, Any], dotted: str) -> Any:
    """Field map paths may be dotted ("company.name")."""
    node: Any = item
    for part in dotted.split("."):
        if not isinstance(node, dict):
            return None
        node = node.get(part)
    return node


def parse_salary_text(value: Any) -> Tuple[Optional[float], Optional[float]]:
    """'$120k - $150k' -> (120000.0, 150000.0); unparseable text -> (None, None)."""
    if value is None:
        return None, None
    if isinstance(value, (int, float)):
        return float(value), float(value)
    amounts: List[float] = []
    for number, thousands in _SALARY_NUMBER_RE.findall(str(value)):
        amount = float(number.replace(",", ""))
        if thousands:
            amount *= 1000
        if amount >= 1000:
            amounts.append(amount)
    if not amounts:
        return None, None
    return min(amounts), max(amounts)


class AggregatorAdapter:
    """Generic paginated aggregator JSON API driven by a field map."""

    def __init__(self, *, state: Optional[PolitenessState] = None, clock: Clock = utc_now) -> None:
        self.state = state
        self.clock = clock

    def fetch(self, config: SourceConfig) -> List[RawPosting]:
        policy = PolitenessPolicy.for_source(config.source_id, config.politeness)
        field_map = {**DEFAULT_FIELD_MAP, **config.field_map}
        results_key = config.results_key or DEFAULT_RESULTS_KEY
        postings: List[RawPosting] = []
        for page in range(1, config.max_pages + 1):
            params = dict(config.params)
            if config.page_param:
                params[config.page_param] = page
            payload = fetch_json_with_retry(
                config.url,
                params=params or None,
                timeout_s=config.timeout_s,
                source_id=config.source_id,
                policy=policy,
                state=self.state,
            )
            items = payload if isinstance(payload, list) else _lookup(payload, results_key)
            if not isinstance(items, list):
                raise ProviderFetchError("invalid_response", page)
            discovered_at = self.clock()
            postings.extend(
                self._to_posting(item, config, field_map, discovered_at) for item in items if isinstance(item, dict)
            )
            if not config.page_param or not items:
                break
        logger.info("[aggregator][fetch] source=%s postings=%s", config.source_id, len(postings))
        return postings

    def _to_posting(self, item: Dict[str, Any], config: SourceConfig, field_map: Dict[str, str], discovered_at) -> RawPosting:
        def get(name: str) -> Any:
            return _lookup(item, field_map[name]) if field_map.get(name) else None

        salary_min = optional_float(get("salary_min"))
        salary_max = optional_float(get("salary_max"))
        if salary_min is None and salary_max is None:
            salary_min, salary_max = parse_salary_text(get("salary"))
        raw_tags = get("tags")
        tags = [clean_text(tag) for tag in raw_tags if clean_text(tag)] if isinstance(raw_tags, list) else []
        description = get("description")
        return RawPosting(
            source_id=config.source_id,
            source_kind=config.source_kind,
            external_id=optional_text(get("external_id")),
            title=clean_text(get("title")),
            company=optional_text(get("company")),
            location=optional_text(get("location")),
            description=html_to_text(description) if description and "<" in str(description) else clean_text(description),
            external_url=optional_text(get("external_url")),
            posted_at=parse_timestamp(get("posted_at")),
            salary_min=salary_min,
            salary_max=salary_max,
            work_type_hint=optional_text(get("work_type")),
            tags=tags,
            latitude=optional_float(get("latitude")),
            longitude=optional_float(get("longitude")),
            discovered_at=discovered_at,
            raw=item,
        )

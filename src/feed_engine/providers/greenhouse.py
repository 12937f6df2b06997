"""
SignalCraft
Copyright (c) 2026 Chris Menendez.
All Rights Reserved.
See LICENSE for permitted use.
"""

from __future__ import annotations

import html
import logging
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup

from feed_engine.models import RawPosting
from feed_engine.providers.base import Clock, SourceConfig, clean_text, optional_text
from feed_engine.providers.retry import PolitenessPolicy, PolitenessState, ProviderFetchError, fetch_json_with_retry
from feed_engine.utils.time import parse_timestamp, utc_now

logger = logging.getLogger(__name__)

GREENHOUSE_API = "https://boards-api.greenhouse.io/v1/boards/{board}/jobs"


def html_to_text(value: Optional[str]) -> str:
    """Greenhouse ships entity-escaped HTML in `content`."""
    if not value:
        return ""
    soup = BeautifulSoup(html.unescape(value), "html.parser")
    return clean_text(soup.get_text(" "))


class GreenhouseAdapter:
    """Direct-company postings from a Greenhouse job board."""

    def __init__(self, *, state: Optional[PolitenessState] = None, clock: Clock = utc_now) -> None:
        self.state = state
        self.clock = clock

    def fetch(self, config: SourceConfig) -> List[RawPosting]:
        url = GREENHOUSE_API.format(board=config.board)
        payload = fetch_json_with_retry(
            url,
            params={"content": "true"},
            timeout_s=config.timeout_s,
            source_id=config.source_id,
            policy=PolitenessPolicy.for_source(config.source_id, config.politeness),
            state=self.state,
        )
        if not isinstance(payload, dict) or not isinstance(payload.get("jobs"), list):
            raise ProviderFetchError("invalid_response", 1)
        discovered_at = self.clock()
        company = config.company or config.board
        postings: List[RawPosting] = []
        for item in payload["jobs"]:
            if isinstance(item, dict):
                postings.append(self._to_posting(item, config, company, discovered_at))
        logger.info("[greenhouse][fetch] source=%s board=%s postings=%s", config.source_id, config.board, len(postings))
        return postings

    def _to_posting(self, item: Dict[str, Any], config: SourceConfig, company: Optional[str], discovered_at) -> RawPosting:
        location = item.get("location")
        location_name = location.get("name") if isinstance(location, dict) else location
        departments = item.get("departments") or []
        tags = [clean_text(dept.get("name")) for dept in departments if isinstance(dept, dict) and dept.get("name")]
        return RawPosting(
            source_id=config.source_id,
            source_kind=config.source_kind,
            external_id=optional_text(item.get("id")),
            title=clean_text(item.get("title")),
            company=company,
            location=optional_text(location_name),
            description=html_to_text(item.get("content")),
            external_url=optional_text(item.get("absolute_url")),
            posted_at=parse_timestamp(item.get("first_published") or item.get("updated_at")),
            tags=tags,
            discovered_at=discovered_at,
            raw=item,
        )

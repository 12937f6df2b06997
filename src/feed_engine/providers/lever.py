"""
SignalCraft
Copyright (c) 2026 Chris Menendez.
All Rights Reserved.
See LICENSE for permitted use.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from feed_engine.models import RawPosting
from feed_engine.providers.base import Clock, SourceConfig, clean_text, optional_float, optional_text
from feed_engine.providers.greenhouse import html_to_text
from feed_engine.providers.retry import PolitenessPolicy, PolitenessState, ProviderFetchError, fetch_json_with_retry
from feed_engine.utils.time import parse_timestamp, utc_now

logger = logging.getLogger(__name__)

LEVER_API = "https://api.lever.co/v0/postings/{board}"


class LeverAdapter:
    """Direct-company postings from the public Lever postings API."""

    def __init__(self, *, state: Optional[PolitenessState] = None, clock: Clock = utc_now) -> None:
        self.state = state
        self.clock = clock

    def fetch(self, config: SourceConfig) -> List[RawPosting]:
        payload = fetch_json_with_retry(
            LEVER_API.format(board=config.board),
            params={"mode": "json"},
            timeout_s=config.timeout_s,
            source_id=config.source_id,
            policy=PolitenessPolicy.for_source(config.source_id, config.politeness),
            state=self.state,
        )
        if not isinstance(payload, list):
            raise ProviderFetchError("invalid_response", 1)
        discovered_at = self.clock()
        postings = [
            self._to_posting(item, config, discovered_at) for item in payload if isinstance(item, dict)
        ]
        logger.info("[lever][fetch] source=%s board=%s postings=%s", config.source_id, config.board, len(postings))
        return postings

    def _to_posting(self, item: Dict[str, Any], config: SourceConfig, discovered_at) -> RawPosting:
        categories = item.get("categories") if isinstance(item.get("categories"), dict) else {}
        salary = item.get("salaryRange") if isinstance(item.get("salaryRange"), dict) else {}
        description = clean_text(item.get("descriptionPlain")) or html_to_text(item.get("description"))
        tags = [clean_text(categories.get(key)) for key in ("team", "department") if categories.get(key)]
        return RawPosting(
            source_id=config.source_id,
            source_kind=config.source_kind,
            external_id=optional_text(item.get("id")),
            title=clean_text(item.get("text")),
            company=config.company or config.board,
            location=optional_text(categories.get("location")),
            description=description,
            external_url=optional_text(item.get("hostedUrl") or item.get("applyUrl")),
            posted_at=parse_timestamp(item.get("createdAt")),
            salary_min=optional_float(salary.get("min")),
            salary_max=optional_float(salary.get("max")),
            salary_currency=optional_text(salary.get("currency")),
            work_type_hint=optional_text(item.get("workplaceType")),
            seniority_hint=None,
            tags=tags,
            discovered_at=discovered_at,
            raw=item,
        )

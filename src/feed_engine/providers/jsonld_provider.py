"""
SignalCraft
Copyright (c) 2026 Chris Menendez.
All Rights Reserved.
See LICENSE for permitted use.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from bs4 import BeautifulSoup

from feed_engine.models import RawPosting
from feed_engine.providers.base import Clock, SourceConfig, clean_text, optional_float, optional_text
from feed_engine.providers.greenhouse import html_to_text
from feed_engine.providers.retry import PolitenessPolicy, PolitenessState, fetch_text_with_retry
from feed_engine.utils.time import parse_timestamp, utc_now

logger = logging.getLogger(__name__)


class JsonLdCareersAdapter:
    """Career pages exposing schema.org JobPosting JSON-LD."""

    def __init__(self, *, state: Optional[PolitenessState] = None, clock: Clock = utc_now) -> None:
        self.state = state
        self.clock = clock

    def fetch(self, config: SourceConfig) -> List[RawPosting]:
        html = fetch_text_with_retry(
            config.url,
            timeout_s=config.timeout_s,
            source_id=config.source_id,
            policy=PolitenessPolicy.for_source(config.source_id, config.politeness),
            state=self.state,
        )
        postings = self.parse_html(html, config, now=self.clock())
        logger.info("[jsonld][fetch] source=%s url=%s postings=%s", config.source_id, config.url, len(postings))
        return postings

    def parse_html(self, html: str, config: SourceConfig, *, now: datetime) -> List[RawPosting]:
        soup = BeautifulSoup(html, "html.parser")
        payloads: List[Dict[str, Any]] = []
        for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
            text = script.string or script.get_text()
            if not text:
                continue
            try:
                data = json.loads(text)
            except json.JSONDecodeError:
                logger.info("[jsonld][skip] source=%s reason=invalid_json", config.source_id)
                continue
            self._walk(data, payloads)

        seen_urls: set[str] = set()
        postings: List[RawPosting] = []
        for payload in payloads:
            apply_url = clean_text(payload.get("url"))
            title = clean_text(payload.get("title") or payload.get("name"))
            if not apply_url or not title or apply_url in seen_urls:
                continue
            seen_urls.add(apply_url)
            location, latitude, longitude = self._extract_location(payload.get("jobLocation"))
            salary_min, salary_max, currency = self._extract_salary(payload.get("baseSalary"))
            remote_hint = "remote" if str(payload.get("jobLocationType") or "").upper() == "TELECOMMUTE" else None
            postings.append(
                RawPosting(
                    source_id=config.source_id,
                    source_kind=config.source_kind,
                    external_id=self._extract_identifier(payload.get("identifier")),
                    title=title,
                    company=self._extract_org(payload.get("hiringOrganization")) or config.company,
                    location=location or ("Remote" if remote_hint else None),
                    description=html_to_text(payload.get("description")),
                    external_url=apply_url,
                    posted_at=parse_timestamp(payload.get("datePosted")),
                    salary_min=salary_min,
                    salary_max=salary_max,
                    salary_currency=currency,
                    work_type_hint=remote_hint,
                    latitude=latitude,
                    longitude=longitude,
                    discovered_at=now,
                    raw=payload,
                )
            )
        return postings

    def _walk(self, node: Any, sink: List[Dict[str, Any]]) -> None:
        if isinstance(node, list):
            for item in node:
                self._walk(item, sink)
            return
        if not isinstance(node, dict):
            return
        node_type = node.get("@type")
        types = node_type if isinstance(node_type, list) else [node_type]
        if any(str(t or "").strip().lower() == "jobposting" for t in types):
            sink.append(node)
        for value in node.values():
            self._walk(value, sink)

    def _extract_location(self, value: Any) -> Tuple[Optional[str], Optional[float], Optional[float]]:
        if isinstance(value, str):
            return optional_text(value), None, None
        if isinstance(value, list):
            for item in value:
                parsed = self._extract_location(item)
                if parsed[0]:
                    return parsed
            return None, None, None
        if not isinstance(value, dict):
            return None, None, None
        geo = value.get("geo") if isinstance(value.get("geo"), dict) else {}
        latitude = optional_float(geo.get("latitude"))
        longitude = optional_float(geo.get("longitude"))
        address = value.get("address")
        if isinstance(address, dict):
            country = address.get("addressCountry")
            if isinstance(country, dict):
                country = country.get("name")
            parts = [
                clean_text(address.get("addressLocality")),
                clean_text(address.get("addressRegion")),
                clean_text(country),
            ]
            joined = ", ".join([part for part in parts if part])
            return joined or None, latitude, longitude
        return optional_text(value.get("name")), latitude, longitude

    def _extract_org(self, value: Any) -> Optional[str]:
        if isinstance(value, str):
            return optional_text(value)
        if isinstance(value, dict):
            return optional_text(value.get("name"))
        return None

    def _extract_identifier(self, value: Any) -> Optional[str]:
        if isinstance(value, dict):
            return optional_text(value.get("value"))
        return optional_text(value)

    def _extract_salary(self, value: Any) -> Tuple[Optional[float], Optional[float], Optional[str]]:
        if not isinstance(value, dict):
            return None, None, None
        currency = optional_text(value.get("currency"))
        amount = value.get("value")
        if isinstance(amount, dict):
            low = optional_float(amount.get("minValue"))
            high = optional_float(amount.get("maxValue"))
            single = optional_float(amount.get("value"))
            return (low if low is not None else single), (high if high is not None else single), currency
        single = optional_float(amount)
        return single, single, currency

"""
SignalCraft
Copyright (c) 2026 Chris Menendez.
All Rights Reserved.
See LICENSE for permitted use.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List

from feed_engine.config import REPO_ROOT
from feed_engine.models import RawPosting
from feed_engine.providers.base import Clock, SourceConfig, clean_text, optional_float, optional_text
from feed_engine.providers.retry import ProviderFetchError
from feed_engine.utils.time import parse_timestamp, utc_now

logger = logging.getLogger(__name__)


class InternalPostingsAdapter:
    """
    First-party postings from the platform's JSON export.

    Accepts either a list of posting dicts or {"postings": [...]}.
    """

    def __init__(self, *, clock: Clock = utc_now) -> None:
        self.clock = clock

    def _resolve(self, raw_path: str) -> Path:
        path = Path(raw_path).expanduser()
        return path if path.is_absolute() else REPO_ROOT / path

    def fetch(self, config: SourceConfig) -> List[RawPosting]:
        path = self._resolve(config.path or "")
        if not path.exists():
            raise ProviderFetchError("unavailable", 1)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise ProviderFetchError("invalid_response", 1) from exc
        items = data.get("postings") if isinstance(data, dict) else data
        if not isinstance(items, list):
            raise ProviderFetchError("invalid_response", 1)
        discovered_at = self.clock()
        postings = [self._to_posting(item, config, discovered_at) for item in items if isinstance(item, dict)]
        logger.info("[internal][fetch] source=%s path=%s postings=%s", config.source_id, path, len(postings))
        return postings

    def _to_posting(self, item: Dict[str, Any], config: SourceConfig, discovered_at) -> RawPosting:
        skills = item.get("skills") or item.get("tags") or []
        return RawPosting(
            source_id=config.source_id,
            source_kind=config.source_kind,
            external_id=optional_text(item.get("id")),
            title=clean_text(item.get("title")),
            company=optional_text(item.get("company")) or config.company,
            location=optional_text(item.get("location")),
            description=clean_text(item.get("description")),
            external_url=optional_text(item.get("url")),
            posted_at=parse_timestamp(item.get("posted_at") or item.get("created_at")),
            salary_min=optional_float(item.get("salary_min")),
            salary_max=optional_float(item.get("salary_max")),
            salary_currency=optional_text(item.get("salary_currency")),
            work_type_hint=optional_text(item.get("work_type")),
            seniority_hint=optional_text(item.get("seniority")),
            tags=[clean_text(skill) for skill in skills if clean_text(skill)] if isinstance(skills, list) else [],
            discovered_at=discovered_at,
            raw=item,
        )

"""
SignalCraft
Copyright (c) 2026 Chris Menendez.
All Rights Reserved.
See LICENSE for permitted use.
"""

# src/feed_engine/providers/base.py

from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Protocol
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from feed_engine.models import RawPosting, SourceKind

SUPPORTED_SOURCE_TYPES = {"greenhouse", "lever", "jsonld", "aggregator", "internal"}
DEFAULT_KIND_BY_TYPE = {
    "greenhouse": SourceKind.DIRECT_COMPANY,
    "lever": SourceKind.DIRECT_COMPANY,
    "jsonld": SourceKind.DIRECT_COMPANY,
    "aggregator": SourceKind.AGGREGATOR,
    "internal": SourceKind.INTERNAL,
}
_SOURCE_ID_RE = re.compile(r"^[a-z0-9][a-z0-9_-]*$")

Clock = Callable[[], datetime]


class SourceConfigError(ValueError):
    pass


class SourceConfig(BaseModel):
    """One entry of config/sources.json."""

    model_config = ConfigDict(extra="forbid")

    source_id: str
    type: str
    kind: Optional[SourceKind] = None
    company: Optional[str] = None
    board: Optional[str] = None
    url: Optional[str] = None
    path: Optional[str] = None
    field_map: Dict[str, str] = Field(default_factory=dict)
    results_key: Optional[str] = None
    max_pages: int = Field(default=1, ge=1, le=50)
    page_param: Optional[str] = None
    params: Dict[str, Any] = Field(default_factory=dict)
    trust_baseline: Optional[int] = Field(default=None, ge=0, le=100)
    politeness: Dict[str, float] = Field(default_factory=dict)
    timeout_s: float = Field(default=20.0, gt=0)
    enabled: bool = True

    @field_validator("source_id")
    @classmethod
    def _validate_source_id(cls, value: str) -> str:
        if not _SOURCE_ID_RE.match(value):
            raise ValueError(f"invalid source_id '{value}'")
        return value

    @field_validator("type")
    @classmethod
    def _validate_type(cls, value: str) -> str:
        lowered = value.strip().lower()
        if lowered not in SUPPORTED_SOURCE_TYPES:
            raise ValueError(f"unsupported source type '{value}'")
        return lowered

    @field_validator("url")
    @classmethod
    def _validate_url(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        parsed = urlparse(value)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ValueError(f"invalid url '{value}'")
        return value

    @model_validator(mode="after")
    def _validate_required_fields(self) -> "SourceConfig":
        if self.type in {"greenhouse", "lever"} and not self.board:
            raise ValueError(f"{self.type} source requires 'board'")
        if self.type in {"jsonld", "aggregator"} and not self.url:
            raise ValueError(f"{self.type} source requires 'url'")
        if self.type == "internal" and not self.path:
            raise ValueError("internal source requires 'path'")
        if self.kind is None:
            self.kind = DEFAULT_KIND_BY_TYPE[self.type]
        return self

    @property
    def source_kind(self) -> SourceKind:
        return self.kind or DEFAULT_KIND_BY_TYPE[self.type]


class SourceAdapter(Protocol):
    """One origin's transport. Emits source-specific postings, never canonicalizes."""

    def fetch(self, config: SourceConfig) -> List[RawPosting]: ...


def clean_text(value: Any) -> str:
    if value is None:
        return ""
    return " ".join(str(value).split())


def optional_text(value: Any) -> Optional[str]:
    text = clean_text(value)
    return text or None


def optional_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None

"""
SignalCraft
Copyright (c) 2026 Chris Menendez.
All Rights Reserved.
See LICENSE for permitted use.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from feed_engine.config import DEFAULT_SOURCES_CONFIG
from feed_engine.providers.aggregator import AggregatorAdapter
from feed_engine.providers.base import SourceAdapter, SourceConfig, SourceConfigError
from feed_engine.providers.greenhouse import GreenhouseAdapter
from feed_engine.providers.internal import InternalPostingsAdapter
from feed_engine.providers.jsonld_provider import JsonLdCareersAdapter
from feed_engine.providers.lever import LeverAdapter
from feed_engine.providers.retry import PolitenessState

ADAPTER_FACTORIES: Dict[str, Callable[[Optional[PolitenessState]], SourceAdapter]] = {
    "greenhouse": lambda state: GreenhouseAdapter(state=state),
    "lever": lambda state: LeverAdapter(state=state),
    "jsonld": lambda state: JsonLdCareersAdapter(state=state),
    "aggregator": lambda state: AggregatorAdapter(state=state),
    "internal": lambda state: InternalPostingsAdapter(),
}


def _validate_top_level(data: Any, path: Path) -> List[Any]:
    if not isinstance(data, dict):
        raise SourceConfigError(f"sources config must be an object: {path}")
    unknown = sorted(set(data.keys()) - {"schema_version", "sources"})
    if unknown:
        raise SourceConfigError(f"unsupported sources config keys: {', '.join(unknown)}")
    if data.get("schema_version") != 1:
        raise SourceConfigError(f"unsupported sources schema_version '{data.get('schema_version')}'")
    sources = data.get("sources")
    if not isinstance(sources, list):
        raise SourceConfigError("sources config missing sources list")
    return sources


def parse_sources(data: Any, *, path: Path = Path("<memory>")) -> List[SourceConfig]:
    entries = _validate_top_level(data, path)
    configs: List[SourceConfig] = []
    seen: set[str] = set()
    for index, entry in enumerate(entries):
        try:
            config = SourceConfig.model_validate(entry)
        except ValidationError as exc:
            raise SourceConfigError(f"invalid source entry #{index} in {path}: {exc}") from exc
        if config.source_id in seen:
            raise SourceConfigError(f"duplicate source_id '{config.source_id}'")
        seen.add(config.source_id)
        configs.append(config)
    return configs


def load_sources_config(path: Optional[Path] = None) -> List[SourceConfig]:
    """Load and validate config/sources.json, preserving file order."""
    config_path = path or DEFAULT_SOURCES_CONFIG
    if not config_path.exists():
        raise SourceConfigError(f"sources config missing: {config_path}")
    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise SourceConfigError(f"invalid sources config JSON: {config_path}: {exc}") from exc
    return parse_sources(data, path=config_path)


def select_sources(configs: List[SourceConfig], source_id: Optional[str] = None) -> List[SourceConfig]:
    if source_id in (None, "", "all"):
        return [config for config in configs if config.enabled]
    selected = [config for config in configs if config.source_id == source_id]
    if not selected:
        raise SourceConfigError(f"unknown source_id '{source_id}'")
    return selected


def build_adapter(config: SourceConfig, *, state: Optional[PolitenessState] = None) -> SourceAdapter:
    return ADAPTER_FACTORIES[config.type](state)

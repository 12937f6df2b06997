"""
SignalCraft
Copyright (c) 2026 Chris Menendez.
All Rights Reserved.
See LICENSE for permitted use.
"""

from __future__ import annotations

import json
import math
from pathlib import Path
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from feed_engine.utils.content_fingerprint import canonical_json_sha256

WEIGHT_KEYS = ("semantic_relevance", "recency", "liveness", "personalization")


class RankingConfigError(ValueError):
    pass


class RankingWeights(BaseModel):
    model_config = ConfigDict(extra="forbid")

    semantic_relevance: float = Field(default=0.45, ge=0.0, le=1.0)
    recency: float = Field(default=0.25, ge=0.0, le=1.0)
    liveness: float = Field(default=0.20, ge=0.0, le=1.0)
    personalization: float = Field(default=0.10, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def _validate_sum(self) -> "RankingWeights":
        total = sum(getattr(self, key) for key in WEIGHT_KEYS)
        if not math.isclose(total, 1.0, abs_tol=1e-9):
            raise ValueError(f"weights must sum to 1.0 (got {total:.6f})")
        return self

    def as_dict(self) -> Dict[str, float]:
        return {key: float(getattr(self, key)) for key in WEIGHT_KEYS}


class LivenessScores(BaseModel):
    model_config = ConfigDict(extra="forbid")

    active: float = Field(default=1.0, ge=0.0, le=1.0)
    unknown: float = Field(default=0.5, ge=0.0, le=1.0)
    stale: float = Field(default=0.0, ge=0.0, le=1.0)


class RankingConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    schema_version: int = Field(default=1)
    weights: RankingWeights = Field(default_factory=RankingWeights)
    threshold: float = Field(default=0.60, ge=0.0, le=1.0)
    feed_size: int = Field(default=15, ge=1, le=100)
    recency_half_life_days: float = Field(default=14.0, gt=0.0)
    liveness_scores: LivenessScores = Field(default_factory=LivenessScores)
    personalization_baseline: float = Field(default=0.5, ge=0.0, le=1.0)
    interaction_window_days: int = Field(default=30, ge=1)
    verified_badge_min_trust: int = Field(default=85, ge=0, le=100)

    @field_validator("schema_version")
    @classmethod
    def _validate_schema_version(cls, value: int) -> int:
        if value != 1:
            raise ValueError("unsupported ranking schema_version")
        return value


DEFAULT_RANKING_CONFIG = RankingConfig()


def ranking_config_sha256(config: RankingConfig) -> str:
    return canonical_json_sha256(config.model_dump(mode="json"))


def load_ranking_config(path: Optional[Path] = None) -> RankingConfig:
    if path is None:
        return RankingConfig()
    if not path.exists():
        raise RankingConfigError(f"ranking config missing: {path}")
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise RankingConfigError(f"invalid ranking config JSON: {path}: {exc}") from exc
    try:
        return RankingConfig.model_validate(payload)
    except ValidationError as exc:
        raise RankingConfigError(f"invalid ranking config: {path}: {exc}") from exc

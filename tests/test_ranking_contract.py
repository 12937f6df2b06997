from __future__ import annotations

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from feed_engine.ranking.contract import (
    DEFAULT_RANKING_CONFIG,
    RankingConfig,
    RankingConfigError,
    RankingWeights,
    load_ranking_config,
    ranking_config_sha256,
)


def _write(path: Path, payload: object) -> Path:
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def test_default_weights_and_limits() -> None:
    config = DEFAULT_RANKING_CONFIG
    assert config.weights.as_dict() == {
        "semantic_relevance": 0.45,
        "recency": 0.25,
        "liveness": 0.20,
        "personalization": 0.10,
    }
    assert config.threshold == 0.60
    assert config.feed_size == 15
    assert config.liveness_scores.unknown == 0.5


def test_weights_must_sum_to_one() -> None:
    with pytest.raises(ValidationError, match="weights must sum to 1.0"):
        RankingWeights(semantic_relevance=0.5, recency=0.25, liveness=0.20, personalization=0.10)


def test_unknown_keys_are_rejected() -> None:
    with pytest.raises(ValidationError):
        RankingConfig.model_validate({"threshold": 0.5, "boost": 2})


def test_schema_version_must_be_one() -> None:
    with pytest.raises(ValidationError, match="unsupported ranking schema_version"):
        RankingConfig.model_validate({"schema_version": 2})


def test_load_without_path_returns_defaults() -> None:
    assert load_ranking_config(None) == DEFAULT_RANKING_CONFIG


def test_load_valid_file(tmp_path: Path) -> None:
    path = _write(
        tmp_path / "ranking.json",
        {
            "schema_version": 1,
            "weights": {"semantic_relevance": 0.5, "recency": 0.2, "liveness": 0.2, "personalization": 0.1},
            "feed_size": 10,
        },
    )

    config = load_ranking_config(path)

    assert config.weights.semantic_relevance == 0.5
    assert config.feed_size == 10
    assert config.threshold == 0.60


def test_load_missing_file(tmp_path: Path) -> None:
    with pytest.raises(RankingConfigError, match="ranking config missing"):
        load_ranking_config(tmp_path / "nope.json")


def test_load_invalid_json(tmp_path: Path) -> None:
    path = tmp_path / "ranking.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(RankingConfigError, match="invalid ranking config JSON"):
        load_ranking_config(path)


def test_load_invalid_schema(tmp_path: Path) -> None:
    path = _write(tmp_path / "ranking.json", {"feed_size": 0})
    with pytest.raises(RankingConfigError, match="invalid ranking config"):
        load_ranking_config(path)


def test_config_hash_is_stable_and_sensitive() -> None:
    first = ranking_config_sha256(RankingConfig())
    assert first == ranking_config_sha256(RankingConfig())
    assert first != ranking_config_sha256(RankingConfig(threshold=0.55))

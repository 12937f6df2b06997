"""
SignalCraft
Copyright (c) 2026 Chris Menendez.
All Rights Reserved.
See LICENSE for permitted use.
"""

from .cache import FeedCache
from .contract import (
    DEFAULT_RANKING_CONFIG,
    RankingConfig,
    RankingConfigError,
    load_ranking_config,
    ranking_config_sha256,
)
from .engine import (
    PersonalizationSignal,
    RankingContext,
    badges_for,
    build_breakdown,
    describe_feed,
    rank_eligible,
    rank_jobs,
    score_job,
    select_feed,
)

__all__ = [
    "DEFAULT_RANKING_CONFIG",
    "FeedCache",
    "PersonalizationSignal",
    "RankingConfig",
    "RankingConfigError",
    "RankingContext",
    "badges_for",
    "build_breakdown",
    "describe_feed",
    "load_ranking_config",
    "rank_eligible",
    "rank_jobs",
    "ranking_config_sha256",
    "score_job",
    "select_feed",
]

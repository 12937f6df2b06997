"""
SignalCraft
Copyright (c) 2026 Chris Menendez.
All Rights Reserved.
See LICENSE for permitted use.
"""

from __future__ import annotations

from typing import Dict, Optional

from feed_engine.models import SourceKind

INTERNAL_TRUST = 100
DIRECT_COMPANY_TRUST = 90
AGGREGATOR_TRUST = 60
EXTERNAL_TRUST_CAP = 95

# Named aggregators with a known track record; matched against the source id prefix.
AGGREGATOR_TRUST_TABLE: Dict[str, int] = {
    "usajobs": 85,
    "remoteok": 75,
    "jsearch": 70,
    "themuse": 70,
    "remotive": 70,
    "arbeitnow": 65,
}

MIN_ADJUSTMENT = -20
MAX_ADJUSTMENT = 5
MIN_SAMPLES_FOR_ADJUSTMENT = 5
SUCCESS_RATE_ALPHA = 0.2
# Alive rate at which a source neither gains nor loses trust.
NEUTRAL_SUCCESS_RATE = 0.8


def baseline_trust(kind: SourceKind, source_id: str = "", override: Optional[int] = None) -> int:
    """Fixed per-source baseline before any liveness history is applied."""
    if kind == SourceKind.INTERNAL:
        return INTERNAL_TRUST
    if override is not None:
        return max(0, min(EXTERNAL_TRUST_CAP, int(override)))
    if kind == SourceKind.DIRECT_COMPANY:
        return DIRECT_COMPANY_TRUST
    lowered = (source_id or "").lower()
    for name, score in AGGREGATOR_TRUST_TABLE.items():
        if lowered == name or lowered.startswith(f"{name}-"):
            return score
    return AGGREGATOR_TRUST


def trust_adjustment(success_rate: Optional[float], samples: int) -> int:
    """
    Map a source's rolling alive rate onto [-20, +5].

    Linear around NEUTRAL_SUCCESS_RATE: a source whose postings are always alive
    gains 5 points, one whose postings are always dead loses 20.
    """
    if success_rate is None or samples < MIN_SAMPLES_FOR_ADJUSTMENT:
        return 0
    rate = max(0.0, min(1.0, float(success_rate)))
    adjustment = round((MAX_ADJUSTMENT - MIN_ADJUSTMENT) * (rate - NEUTRAL_SUCCESS_RATE))
    return max(MIN_ADJUSTMENT, min(MAX_ADJUSTMENT, adjustment))


def source_trust(
    kind: SourceKind,
    source_id: str = "",
    *,
    override: Optional[int] = None,
    success_rate: Optional[float] = None,
    samples: int = 0,
) -> int:
    baseline = baseline_trust(kind, source_id, override)
    if kind == SourceKind.INTERNAL:
        return baseline
    adjusted = baseline + trust_adjustment(success_rate, samples)
    return max(0, min(EXTERNAL_TRUST_CAP, adjusted))


def update_success_rate(previous: Optional[float], samples: int, alive: bool) -> float:
    """Exponentially weighted alive rate; the first sample seeds it."""
    observed = 1.0 if alive else 0.0
    if previous is None or samples <= 0:
        return observed
    return round(previous + SUCCESS_RATE_ALPHA * (observed - previous), 6)

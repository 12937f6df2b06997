"""
SignalCraft
Copyright (c) 2026 Chris Menendez.
All Rights Reserved.
See LICENSE for permitted use.
"""

from __future__ import annotations

import heapq
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from feed_engine.models import Job, LivenessStatus
from feed_engine.utils.time import age_days, to_utc

BASE_INTERVAL = timedelta(hours=24)
MIN_INTERVAL = timedelta(days=1)
MAX_INTERVAL = timedelta(days=7)
RETRY_BASE = timedelta(minutes=15)
MAX_PROBE_ATTEMPTS = 3


def age_factor(job: Job, now: datetime) -> float:
    """Young postings churn fastest, so they are probed most often."""
    age = age_days(job.posted_at or job.first_seen_at, now)
    if age is None or age < 7:
        return 1.0
    if age <= 30:
        return 2.0
    return 4.0


def probe_interval(job: Job, now: datetime) -> timedelta:
    if job.liveness_status == LivenessStatus.STALE:
        return MAX_INTERVAL
    trust = max(0, min(100, int(job.trust_score)))
    interval = BASE_INTERVAL * age_factor(job, now) * (0.5 + trust / 100.0)
    return max(MIN_INTERVAL, min(MAX_INTERVAL, interval))


def next_probe_at(job: Job, now: datetime) -> datetime:
    return to_utc(now) + probe_interval(job, now)


def retry_at(attempt: int, now: datetime) -> datetime:
    """Backoff after the attempt-th consecutive error: 15m, 30m, 60m, ..."""
    exponent = max(0, int(attempt) - 1)
    return to_utc(now) + RETRY_BASE * (2**exponent)


class ProbeQueue:
    """
    Min-heap of (next_probe_at, canonical_id) holding at most one live entry per
    job. Rescheduling a job supersedes its earlier entry.
    """

    def __init__(self) -> None:
        self._heap: List[Tuple[datetime, str]] = []
        self._scheduled: Dict[str, datetime] = {}

    def __len__(self) -> int:
        return len(self._scheduled)

    def __contains__(self, canonical_id: object) -> bool:
        return canonical_id in self._scheduled

    def schedule(self, canonical_id: str, when: datetime) -> None:
        when = to_utc(when)
        self._scheduled[canonical_id] = when
        heapq.heappush(self._heap, (when, canonical_id))

    def discard(self, canonical_id: str) -> None:
        self._scheduled.pop(canonical_id, None)

    def _drop_superseded(self) -> None:
        while self._heap:
            when, canonical_id = self._heap[0]
            if self._scheduled.get(canonical_id) == when:
                return
            heapq.heappop(self._heap)

    def peek(self) -> Optional[Tuple[datetime, str]]:
        self._drop_superseded()
        return self._heap[0] if self._heap else None

    def pop_due(self, now: datetime, *, limit: Optional[int] = None) -> List[str]:
        now = to_utc(now)
        due: List[str] = []
        while limit is None or len(due) < limit:
            head = self.peek()
            if head is None or head[0] > now:
                break
            heapq.heappop(self._heap)
            self._scheduled.pop(head[1], None)
            due.append(head[1])
        return due

"""
SignalCraft
Copyright (c) 2026 Chris Menendez.
All Rights Reserved.
See LICENSE for permitted use.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from feed_engine.utils.time import isoformat_z


class SourceKind(str, Enum):
    INTERNAL = "internal"
    DIRECT_COMPANY = "direct_company"
    AGGREGATOR = "aggregator"


class LivenessStatus(str, Enum):
    ACTIVE = "active"
    STALE = "stale"
    UNKNOWN = "unknown"


class WorkType(str, Enum):
    REMOTE = "remote"
    HYBRID = "hybrid"
    ONSITE = "onsite"
    UNSPECIFIED = "unspecified"


BADGE_VERIFIED_ACTIVE = "Verified Active"
BADGE_DIRECT_FROM_COMPANY = "Direct From Company"


@dataclass
class RawPosting:
    """
    Source-specific posting as emitted by an adapter.
    Nothing here is canonicalized; adapters only copy what the origin says.
    """

    source_id: str
    source_kind: SourceKind
    title: str
    company: Optional[str]
    location: Optional[str]
    external_url: Optional[str]
    discovered_at: datetime
    external_id: Optional[str] = None
    description: str = ""
    posted_at: Optional[datetime] = None
    salary_min: Optional[float] = None
    salary_max: Optional[float] = None
    salary_currency: Optional[str] = None
    work_type_hint: Optional[str] = None
    seniority_hint: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["source_kind"] = self.source_kind.value
        d["discovered_at"] = isoformat_z(self.discovered_at)
        d["posted_at"] = isoformat_z(self.posted_at)
        return d


@dataclass(frozen=True)
class Location:
    raw: str
    city: Optional[str] = None
    region: Optional[str] = None
    country: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    is_remote: bool = False
    us_guess_reason: str = "none"

    @property
    def is_us(self) -> bool:
        return self.country == "US"

    @property
    def key(self) -> str:
        """Comparison key used by the deduplicator."""
        if self.is_remote and not self.city:
            return f"remote|{(self.country or '').lower()}"
        parts = [self.city or "", self.region or "", self.country or ""]
        joined = "|".join(part.lower() for part in parts)
        if joined.strip("|"):
            return joined
        return " ".join(self.raw.lower().split())


@dataclass
class LineageEntry:
    """One raw record folded into a canonical job, with its own copy of the mutable fields."""

    source: str
    source_id: str
    source_kind: SourceKind
    trust_score: int
    first_seen_at: datetime
    last_seen_at: datetime
    external_url: Optional[str] = None
    description: str = ""
    salary_min: Optional[float] = None
    salary_max: Optional[float] = None
    posted_at: Optional[datetime] = None
    last_verified_at: Optional[datetime] = None
    content_hash: str = ""

    @property
    def key(self) -> Tuple[str, str]:
        return (self.source, self.source_id)


@dataclass
class Job:
    canonical_id: str
    title: str
    company: str
    company_id: str
    location: Location
    description: str
    skills: List[str]
    seniority: Optional[str]
    work_type: WorkType
    external_url: Optional[str]
    first_seen_at: datetime
    trust_score: int = 0
    liveness_status: LivenessStatus = LivenessStatus.UNKNOWN
    salary_min: Optional[float] = None
    salary_max: Optional[float] = None
    posted_at: Optional[datetime] = None
    last_verified_at: Optional[datetime] = None
    next_probe_at: Optional[datetime] = None
    probe_failures: int = 0
    out_of_scope: bool = False
    lineage: List[LineageEntry] = field(default_factory=list)

    @property
    def source_kinds(self) -> List[SourceKind]:
        kinds = {entry.source_kind for entry in self.lineage}
        return sorted(kinds, key=lambda kind: kind.value)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "canonical_id": self.canonical_id,
            "title": self.title,
            "company": self.company,
            "company_id": self.company_id,
            "location": asdict(self.location),
            "description": self.description,
            "skills": list(self.skills),
            "seniority": self.seniority,
            "work_type": self.work_type.value,
            "salary_min": self.salary_min,
            "salary_max": self.salary_max,
            "external_url": self.external_url,
            "trust_score": self.trust_score,
            "liveness_status": self.liveness_status.value,
            "first_seen_at": isoformat_z(self.first_seen_at),
            "last_verified_at": isoformat_z(self.last_verified_at),
            "posted_at": isoformat_z(self.posted_at),
            "out_of_scope": self.out_of_scope,
            "sources": [f"{entry.source}:{entry.source_id}" for entry in self.lineage],
        }


@dataclass(frozen=True)
class CandidateVector:
    candidate_id: str
    profile_hash: str
    vector: Tuple[float, ...]
    skills: Tuple[str, ...]

    @property
    def has_skills(self) -> bool:
        return bool(self.skills)


@dataclass(frozen=True)
class SubScores:
    semantic_relevance: float
    recency: float
    liveness: float
    personalization: float

    def as_dict(self) -> Dict[str, float]:
        return {
            "semantic_relevance": self.semantic_relevance,
            "recency": self.recency,
            "liveness": self.liveness,
            "personalization": self.personalization,
        }


@dataclass(frozen=True)
class MatchResult:
    candidate_id: str
    job_id: str
    sub_scores: SubScores
    final_score: float
    matched_skills: Tuple[str, ...]
    related_skills: Tuple[str, ...]
    explanation: str
    badges: Tuple[str, ...]
    trust_score: int
    posted_at: Optional[datetime]
    discovery: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "candidate_id": self.candidate_id,
            "job_id": self.job_id,
            "final_score": self.final_score,
            "sub_scores": self.sub_scores.as_dict(),
            "matched_skills": list(self.matched_skills),
            "related_skills": list(self.related_skills),
            "explanation": self.explanation,
            "badges": list(self.badges),
            "trust_score": self.trust_score,
            "posted_at": isoformat_z(self.posted_at),
            "discovery": self.discovery,
        }


@dataclass(frozen=True)
class MatchBreakdown:
    """Detailed "why this match" view of one (candidate, job) pair."""

    result: MatchResult
    weights: Dict[str, float]
    contributions: Dict[str, float]
    threshold: float
    liveness_status: LivenessStatus

    @property
    def clears_threshold(self) -> bool:
        return self.result.final_score >= self.threshold

    def to_dict(self) -> Dict[str, Any]:
        payload = self.result.to_dict()
        payload.update(
            {
                "weights": dict(self.weights),
                "contributions": dict(self.contributions),
                "threshold": self.threshold,
                "clears_threshold": self.clears_threshold,
                "liveness_status": self.liveness_status.value,
            }
        )
        return payload

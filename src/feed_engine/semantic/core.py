"""
SignalCraft
Copyright (c) 2026 Chris Menendez.
All Rights Reserved.
See LICENSE for permitted use.
"""

from __future__ import annotations

import hashlib
import math
import re
from typing import Dict, Iterable, List, Sequence, Tuple

from feed_engine.models import CandidateVector, Job
from feed_engine.normalize.skills import expand_implied, normalize_skills
from feed_engine.profile_loader import CandidateProfile
from feed_engine.utils.content_fingerprint import canonical_json_sha256

VECTOR_DIM = 512
SKILL_WEIGHT = 3.0
TEXT_WEIGHT = 1.0
_TOKEN_RE = re.compile(r"[a-z0-9]+")


def tokenize(text: str) -> List[str]:
    return _TOKEN_RE.findall((text or "").lower())


def _bucket(feature: str, dim: int) -> int:
    return int(hashlib.md5(feature.encode("utf-8")).hexdigest(), 16) % dim


def hash_features(features: Iterable[Tuple[str, float]], dim: int = VECTOR_DIM) -> Tuple[float, ...]:
    """Weighted hashing trick: each feature adds its weight to one md5 bucket."""
    vec = [0.0] * dim
    for feature, weight in features:
        vec[_bucket(feature, dim)] += weight
    return tuple(vec)


def profile_hash(profile: CandidateProfile) -> str:
    """Hash of the structured profile; a changed hash is what triggers re-vectorization."""
    return canonical_json_sha256(profile.model_dump(mode="json"))


def profile_skills(profile: CandidateProfile) -> List[str]:
    declared = list(profile.skills)
    for entry in profile.experience:
        declared.extend(entry.skills)
    return expand_implied(normalize_skills(declared))


def _skill_features(skills: Sequence[str]) -> List[Tuple[str, float]]:
    return [(f"skill:{skill.lower()}", SKILL_WEIGHT) for skill in skills]


def _text_features(texts: Iterable[str]) -> List[Tuple[str, float]]:
    return [(f"tok:{token}", TEXT_WEIGHT) for text in texts for token in tokenize(text)]


def experience_texts(profile: CandidateProfile) -> List[str]:
    texts: List[str] = []
    for entry in profile.experience:
        texts.extend([entry.title, entry.summary])
    for edu in profile.education:
        texts.extend([edu.degree, edu.field_of_study])
    return [text for text in texts if text]


def vectorize(profile: CandidateProfile, *, dim: int = VECTOR_DIM) -> CandidateVector:
    skills = profile_skills(profile)
    features = _skill_features(skills) + _text_features(experience_texts(profile))
    return CandidateVector(
        candidate_id=profile.candidate_id,
        profile_hash=profile_hash(profile),
        vector=hash_features(features, dim),
        skills=tuple(skills),
    )


def experience_vector(profile: CandidateProfile, *, dim: int = VECTOR_DIM) -> Tuple[float, ...]:
    """Text-only representation used when the candidate lists no skills."""
    return hash_features(_text_features(experience_texts(profile)), dim)


def job_vector(job: Job, *, dim: int = VECTOR_DIM) -> Tuple[float, ...]:
    texts = [job.title]
    if job.seniority:
        texts.append(job.seniority)
    features = _skill_features(expand_implied(job.skills)) + _text_features(texts)
    return hash_features(features, dim)


def cosine_similarity(vec_a: Sequence[float], vec_b: Sequence[float]) -> float:
    if not vec_a or not vec_b or len(vec_a) != len(vec_b):
        return 0.0
    dot = sum(float(a) * float(b) for a, b in zip(vec_a, vec_b))
    norm_a = math.sqrt(sum(float(a) * float(a) for a in vec_a))
    norm_b = math.sqrt(sum(float(b) * float(b) for b in vec_b))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return max(0.0, min(1.0, round(dot / (norm_a * norm_b), 8)))


class JobVectorIndex:
    """Memoizes job vectors for one ranking pass."""

    def __init__(self, *, dim: int = VECTOR_DIM) -> None:
        self.dim = dim
        self._vectors: Dict[str, Tuple[float, ...]] = {}

    def get(self, job: Job) -> Tuple[float, ...]:
        vec = self._vectors.get(job.canonical_id)
        if vec is None:
            vec = job_vector(job, dim=self.dim)
            self._vectors[job.canonical_id] = vec
        return vec

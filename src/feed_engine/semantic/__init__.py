"""
SignalCraft
Copyright (c) 2026 Chris Menendez.
All Rights Reserved.
See LICENSE for permitted use.
"""

from .cache import VectorCache
from .core import (
    SKILL_WEIGHT,
    TEXT_WEIGHT,
    VECTOR_DIM,
    JobVectorIndex,
    cosine_similarity,
    experience_vector,
    job_vector,
    profile_hash,
    profile_skills,
    vectorize,
)

__all__ = [
    "VECTOR_DIM",
    "SKILL_WEIGHT",
    "TEXT_WEIGHT",
    "JobVectorIndex",
    "VectorCache",
    "cosine_similarity",
    "experience_vector",
    "job_vector",
    "profile_hash",
    "profile_skills",
    "vectorize",
]

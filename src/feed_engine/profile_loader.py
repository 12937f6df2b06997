"""SignalCraft
Copyright (c) 2026 Chris Menendez.
All Rights Reserved.
See LICENSE for permitted use.

Load and validate candidate profiles from JSON files."""

from __future__ import annotations

import json
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from feed_engine.models import WorkType

_CANDIDATE_ID_CHARS = set("abcdefghijklmnopqrstuvwxyz0123456789_-")


class ProfileValidationError(ValueError):
    pass


class ExperienceEntry(BaseModel):
    """One role held by the candidate."""

    title: str
    company: Optional[str] = None
    years: float = Field(default=0.0, ge=0.0)
    summary: str = ""
    skills: List[str] = Field(default_factory=list)


class EducationEntry(BaseModel):
    """Degree or certificate."""

    degree: str = ""
    field_of_study: str = ""
    institution: str = ""


class SalaryExpectation(BaseModel):
    """Desired annual pay range in the posting's currency."""

    min: Optional[float] = Field(default=None, ge=0.0)
    max: Optional[float] = Field(default=None, ge=0.0)


class CandidateProfile(BaseModel):
    """Read-only candidate profile as supplied by the profile owner."""

    candidate_id: str
    skills: List[str] = Field(default_factory=list)
    experience: List[ExperienceEntry] = Field(default_factory=list)
    education: List[EducationEntry] = Field(default_factory=list)
    preferred_locations: List[str] = Field(default_factory=list)
    remote_ok: bool = True
    preferred_work_types: List[WorkType] = Field(default_factory=list)
    salary_expectation: Optional[SalaryExpectation] = None
    seniority: Optional[str] = None

    @field_validator("candidate_id")
    @classmethod
    def _validate_candidate_id(cls, value: str) -> str:
        text = (value or "").strip().lower()
        if not text or not set(text) <= _CANDIDATE_ID_CHARS:
            raise ValueError("candidate_id must be non-empty and use [a-z0-9_-]")
        return text

    @field_validator("skills")
    @classmethod
    def _strip_skills(cls, value: List[str]) -> List[str]:
        return [" ".join(item.split()) for item in value if item and item.strip()]


def parse_candidate_profile(payload: object) -> CandidateProfile:
    try:
        return CandidateProfile.model_validate(payload)
    except ValidationError as exc:
        raise ProfileValidationError(f"invalid candidate profile: {exc}") from exc


def load_candidate_profile(path: Path) -> CandidateProfile:
    """
    Load and validate a candidate profile.

    Raises:
        ProfileValidationError: missing file, invalid JSON, or schema mismatch.
    """
    if not path.exists():
        raise ProfileValidationError(f"candidate profile not found: {path}")
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ProfileValidationError(f"invalid candidate profile JSON: {path}: {exc}") from exc
    return parse_candidate_profile(payload)

"""
SignalCraft
Copyright (c) 2026 Chris Menendez.
All Rights Reserved.
See LICENSE for permitted use.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load .env file into environment
load_dotenv()

REPO_ROOT = Path(__file__).resolve().parents[2]
JOB_STORE_FILENAME = "jobs.sqlite3"
DEFAULT_SOURCES_CONFIG = REPO_ROOT / "config" / "sources.json"

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


def get_int_env(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def get_float_env(name: str, default: float) -> float:
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def get_bool_env(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    lowered = value.strip().lower()
    if lowered in _TRUTHY:
        return True
    if lowered in _FALSY:
        return False
    return default


def source_env_name(base: str, source_id: Optional[str]) -> str:
    if not source_id:
        return base
    suffix = "".join(ch if ch.isalnum() else "_" for ch in source_id.upper())
    return f"{base}_{suffix}"


def get_float_env_for_source(base: str, source_id: Optional[str], default: float) -> float:
    return get_float_env(source_env_name(base, source_id), get_float_env(base, default))


def get_int_env_for_source(base: str, source_id: Optional[str], default: int) -> int:
    return get_int_env(source_env_name(base, source_id), get_int_env(base, default))


def state_dir() -> Path:
    raw = os.environ.get("JOBFEED_STATE_DIR", "").strip()
    return Path(raw).expanduser() if raw else REPO_ROOT / "state"


def job_store_path() -> Path:
    return state_dir() / JOB_STORE_FILENAME


def profiles_dir() -> Path:
    return state_dir() / "profiles"


def job_actions_dir() -> Path:
    return state_dir() / "job_actions"


def us_only_enabled() -> bool:
    return get_bool_env("JOBFEED_US_ONLY", True)

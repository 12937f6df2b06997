"""
SignalCraft
Copyright (c) 2026 Chris Menendez.
All Rights Reserved.
See LICENSE for permitted use.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, replace
from typing import Any, Dict, Mapping, Optional
from urllib.parse import urlparse

import requests

from feed_engine.config import get_float_env_for_source, get_int_env_for_source

logger = logging.getLogger(__name__)

USER_AGENT = "jobfeed-bot/0.1 (+https://signalcraft.example/bot)"

BLOCK_PATTERNS = (
    "just a moment...",
    "verify you are human",
    "access denied",
    "cf-chl",
    "cdn-cgi/challenge-platform",
    "captcha",
    "attention required",
)

_NO_RETRY_REASONS = {"auth_error", "unavailable", "blocked", "parse_error", "invalid_response", "circuit_breaker"}
_TRANSIENT_REASONS = {"network_error", "timeout", "rate_limited"}


@dataclass
class ProviderFetchError(RuntimeError):
    reason: str
    attempts: int
    status_code: Optional[int] = None

    def __str__(self) -> str:
        parts = [self.reason, f"attempts={self.attempts}"]
        if self.status_code is not None:
            parts.append(f"status={self.status_code}")
        return "ProviderFetchError(" + ", ".join(parts) + ")"


@dataclass(frozen=True)
class PolitenessPolicy:
    min_delay_s: float = 1.0
    rate_jitter_s: float = 0.0
    max_attempts: int = 3
    backoff_base_s: float = 0.5
    backoff_max_s: float = 3.0
    backoff_jitter_s: float = 0.0
    max_consecutive_failures: int = 3
    cooldown_s: float = 300.0
    max_inflight_per_host: int = 2

    @classmethod
    def for_source(cls, source_id: Optional[str], overrides: Optional[Mapping[str, Any]] = None) -> "PolitenessPolicy":
        """Env (global, then per-source suffix) first, then explicit overrides from the sources config."""
        values: Dict[str, Any] = {
            "min_delay_s": get_float_env_for_source("JOBFEED_SOURCE_MIN_DELAY_S", source_id, 1.0),
            "rate_jitter_s": get_float_env_for_source("JOBFEED_SOURCE_RATE_JITTER_S", source_id, 0.0),
            "max_attempts": get_int_env_for_source("JOBFEED_SOURCE_MAX_ATTEMPTS", source_id, 3),
            "backoff_base_s": get_float_env_for_source("JOBFEED_SOURCE_BACKOFF_BASE", source_id, 0.5),
            "backoff_max_s": get_float_env_for_source("JOBFEED_SOURCE_BACKOFF_MAX", source_id, 3.0),
            "backoff_jitter_s": get_float_env_for_source("JOBFEED_SOURCE_BACKOFF_JITTER_S", source_id, 0.0),
            "max_consecutive_failures": get_int_env_for_source("JOBFEED_SOURCE_MAX_CONSEC_FAILS", source_id, 3),
            "cooldown_s": get_float_env_for_source("JOBFEED_SOURCE_COOLDOWN_S", source_id, 300.0),
            "max_inflight_per_host": get_int_env_for_source("JOBFEED_SOURCE_MAX_INFLIGHT_PER_HOST", source_id, 2),
        }
        for key, value in (overrides or {}).items():
            if key in values and value is not None:
                values[key] = type(values[key])(value)
        return cls(**values)


def _classify_status(status: int) -> str:
    if status in (401, 403):
        return "auth_error"
    if status in (404, 410):
        return "unavailable"
    if status == 429:
        return "rate_limited"
    if status in (408, 504):
        return "timeout"
    return "network_error"


def _should_retry(reason: str, status: Optional[int]) -> bool:
    if reason in _NO_RETRY_REASONS:
        return False
    if reason in _TRANSIENT_REASONS:
        return True
    return status is not None and 500 <= status <= 599


def classify_failure_type(reason: Optional[str]) -> Optional[str]:
    if not reason:
        return None
    if reason in _TRANSIENT_REASONS:
        return "transient_error"
    if reason in {"auth_error", "unavailable", "blocked", "circuit_breaker"}:
        return "unavailable"
    if reason in {"parse_error", "invalid_response"}:
        return "invalid_response"
    return "transient_error"


def detect_blocked_content(text: str) -> bool:
    lowered = text.lower()
    return any(pattern in lowered for pattern in BLOCK_PATTERNS)


class PolitenessState:
    """
    Per-process politeness bookkeeping: last request time per source, in-flight
    requests per host, and the consecutive-failure circuit breaker.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._last_request_ts: Dict[str, float] = {}
        self._inflight_by_host: Dict[str, int] = {}
        self._failures_by_source: Dict[str, int] = {}
        self._circuit_open_until: Dict[str, float] = {}

    def reset(self) -> None:
        with self._lock:
            self._last_request_ts.clear()
            self._inflight_by_host.clear()
            self._failures_by_source.clear()
            self._circuit_open_until.clear()

    def rate_limit(self, source_id: Optional[str], url: str, policy: PolitenessPolicy) -> None:
        if policy.min_delay_s <= 0:
            return
        now = time.time()
        key = source_id or "default"
        with self._lock:
            last_ts = self._last_request_ts.get(key)
            if last_ts is None:
                self._last_request_ts[key] = now
                return
            sleep_s = policy.min_delay_s - (now - last_ts)
            if sleep_s <= 0:
                self._last_request_ts[key] = now
                return
            self._last_request_ts[key] = now + sleep_s + policy.rate_jitter_s
        total = sleep_s + max(0.0, policy.rate_jitter_s)
        logger.info("[source_retry][rate_limit] source=%s url=%s sleep_s=%.3f", source_id, url, total)
        time.sleep(total)

    def acquire_host(self, host: str, max_inflight: int) -> None:
        if max_inflight <= 0:
            return
        while True:
            with self._lock:
                current = self._inflight_by_host.get(host, 0)
                if current < max_inflight:
                    self._inflight_by_host[host] = current + 1
                    return
            time.sleep(0.01)

    def release_host(self, host: str, max_inflight: int) -> None:
        if max_inflight <= 0:
            return
        with self._lock:
            current = self._inflight_by_host.get(host, 1)
            self._inflight_by_host[host] = max(0, current - 1)

    def check_circuit(self, source_id: Optional[str], policy: PolitenessPolicy) -> None:
        if not source_id or policy.max_consecutive_failures <= 0:
            return
        now = time.time()
        with self._lock:
            open_until = self._circuit_open_until.get(source_id)
            if open_until and now < open_until:
                raise ProviderFetchError("circuit_breaker", attempts=0)
            if open_until and now >= open_until:
                self._circuit_open_until.pop(source_id, None)
                self._failures_by_source.pop(source_id, None)

    def record_failure(self, source_id: Optional[str], reason: str, policy: PolitenessPolicy) -> None:
        if not source_id or reason not in (_TRANSIENT_REASONS | {"blocked"}):
            return
        if policy.max_consecutive_failures <= 0:
            return
        with self._lock:
            count = self._failures_by_source.get(source_id, 0) + 1
            self._failures_by_source[source_id] = count
            if count < policy.max_consecutive_failures:
                return
            if policy.cooldown_s > 0:
                self._circuit_open_until[source_id] = time.time() + policy.cooldown_s
        logger.warning(
            "[source_retry][circuit_breaker] source=%s failures=%s cooldown_s=%.3f",
            source_id,
            count,
            policy.cooldown_s,
        )

    def record_success(self, source_id: Optional[str]) -> None:
        if not source_id:
            return
        with self._lock:
            self._failures_by_source.pop(source_id, None)
            self._circuit_open_until.pop(source_id, None)


DEFAULT_POLITENESS = PolitenessState()


def reset_politeness_state() -> None:
    DEFAULT_POLITENESS.reset()


def _sleep_backoff(
    *,
    source_id: Optional[str],
    attempt: int,
    policy: PolitenessPolicy,
    reason: str,
    status: Optional[int],
) -> None:
    delay = min(policy.backoff_max_s, policy.backoff_base_s * (2 ** (attempt - 1))) + max(0.0, policy.backoff_jitter_s)
    logger.info(
        "[source_retry][backoff] source=%s attempt=%s sleep_s=%.3f reason=%s status=%s",
        source_id,
        attempt,
        delay,
        reason,
        status,
    )
    time.sleep(delay)


def _request_with_retry(
    url: str,
    *,
    params: Optional[Mapping[str, Any]],
    headers: Optional[Dict[str, str]],
    timeout_s: float,
    source_id: Optional[str],
    policy: PolitenessPolicy,
    state: PolitenessState,
    parse,
) -> Any:
    state.check_circuit(source_id, policy)
    attempts = max(1, policy.max_attempts)
    last_reason = "network_error"
    last_status: Optional[int] = None
    host = urlparse(url).netloc
    request_headers = {"User-Agent": USER_AGENT, **(headers or {})}

    for attempt in range(1, attempts + 1):
        try:
            state.rate_limit(source_id, url, policy)
            state.acquire_host(host, policy.max_inflight_per_host)
            try:
                resp = requests.get(url, params=params, headers=request_headers, timeout=timeout_s)
            finally:
                state.release_host(host, policy.max_inflight_per_host)
            last_status = resp.status_code
            if resp.status_code != 200:
                last_reason = _classify_status(resp.status_code)
                if attempt < attempts and _should_retry(last_reason, resp.status_code):
                    _sleep_backoff(
                        source_id=source_id, attempt=attempt, policy=policy, reason=last_reason, status=last_status
                    )
                    continue
                state.record_failure(source_id, last_reason, policy)
                raise ProviderFetchError(last_reason, attempt, resp.status_code)
            try:
                result = parse(resp)
            except ProviderFetchError as exc:
                exc.attempts = attempt
                state.record_failure(source_id, exc.reason, policy)
                raise
            state.record_success(source_id)
            return result
        except requests.Timeout:
            last_reason = "timeout"
        except requests.RequestException:
            last_reason = "network_error"

        if attempt < attempts and _should_retry(last_reason, last_status):
            _sleep_backoff(source_id=source_id, attempt=attempt, policy=policy, reason=last_reason, status=last_status)
            continue
        state.record_failure(source_id, last_reason, policy)
        raise ProviderFetchError(last_reason, attempt, last_status)

    state.record_failure(source_id, last_reason, policy)
    raise ProviderFetchError(last_reason, attempts, last_status)


def _resolve_policy(
    source_id: Optional[str],
    policy: Optional[PolitenessPolicy],
    max_attempts: Optional[int],
    backoff_base_s: Optional[float],
    backoff_max_s: Optional[float],
) -> PolitenessPolicy:
    overrides: Dict[str, Any] = {}
    if max_attempts is not None:
        overrides["max_attempts"] = max_attempts
    if backoff_base_s is not None:
        overrides["backoff_base_s"] = backoff_base_s
    if backoff_max_s is not None:
        overrides["backoff_max_s"] = backoff_max_s
    if policy is None:
        return PolitenessPolicy.for_source(source_id, overrides)
    if not overrides:
        return policy
    return replace(policy, **overrides)


def fetch_text_with_retry(
    url: str,
    *,
    headers: Optional[Dict[str, str]] = None,
    timeout_s: float = 20,
    max_attempts: Optional[int] = None,
    backoff_base_s: Optional[float] = None,
    backoff_max_s: Optional[float] = None,
    source_id: Optional[str] = None,
    policy: Optional[PolitenessPolicy] = None,
    state: Optional[PolitenessState] = None,
) -> str:
    """GET an HTML page; block pages and non-HTML bodies raise instead of returning."""

    def _parse(resp: Any) -> str:
        text = resp.text
        if text and detect_blocked_content(text):
            raise ProviderFetchError("blocked", 0, resp.status_code)
        if not text or "<html" not in text.lower():
            raise ProviderFetchError("parse_error", 0, resp.status_code)
        return text

    return _request_with_retry(
        url,
        params=None,
        headers=headers,
        timeout_s=timeout_s,
        source_id=source_id,
        policy=_resolve_policy(source_id, policy, max_attempts, backoff_base_s, backoff_max_s),
        state=state or DEFAULT_POLITENESS,
        parse=_parse,
    )


def fetch_json_with_retry(
    url: str,
    *,
    params: Optional[Mapping[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
    timeout_s: float = 30,
    max_attempts: Optional[int] = None,
    backoff_base_s: Optional[float] = None,
    backoff_max_s: Optional[float] = None,
    source_id: Optional[str] = None,
    policy: Optional[PolitenessPolicy] = None,
    state: Optional[PolitenessState] = None,
) -> Any:
    """GET a JSON document (object or array)."""

    def _parse(resp: Any) -> Any:
        try:
            data = resp.json()
        except ValueError as exc:
            raise ProviderFetchError("invalid_response", 0, resp.status_code) from exc
        if not isinstance(data, (dict, list)):
            raise ProviderFetchError("invalid_response", 0, resp.status_code)
        return data

    return _request_with_retry(
        url,
        params=params,
        headers={"Accept": "application/json", **(headers or {})},
        timeout_s=timeout_s,
        source_id=source_id,
        policy=_resolve_policy(source_id, policy, max_attempts, backoff_base_s, backoff_max_s),
        state=state or DEFAULT_POLITENESS,
        parse=_parse,
    )


__all__ = [
    "DEFAULT_POLITENESS",
    "PolitenessPolicy",
    "PolitenessState",
    "ProviderFetchError",
    "classify_failure_type",
    "detect_blocked_content",
    "fetch_json_with_retry",
    "fetch_text_with_retry",
    "reset_politeness_state",
]

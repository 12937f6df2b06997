from __future__ import annotations

import types

import pytest
import requests

from feed_engine.liveness.probe import (
    ProbeOutcome,
    find_closed_phrase,
    is_generic_career_redirect,
    probe_job_url,
)

JOB_URL = "https://acme.example/careers/jobs/12345-senior-engineer"


def _respond(monkeypatch, status_code: int, text: str = "<html>Senior Engineer</html>", url: str = JOB_URL) -> None:
    def fake_get(*args, **kwargs):
        return types.SimpleNamespace(status_code=status_code, text=text, url=url)

    monkeypatch.setattr(requests, "get", fake_get)


def test_live_posting_is_alive(monkeypatch) -> None:
    _respond(monkeypatch, 200)

    result = probe_job_url(JOB_URL)

    assert result.outcome == ProbeOutcome.ALIVE
    assert result.reason == "ok"
    assert result.status_code == 200


@pytest.mark.parametrize("status", [404, 410])
def test_gone_status_is_dead(monkeypatch, status: int) -> None:
    _respond(monkeypatch, status)

    result = probe_job_url(JOB_URL)

    assert result.outcome == ProbeOutcome.DEAD
    assert result.reason == f"http_{status}"


@pytest.mark.parametrize("status", [403, 429, 500, 503])
def test_other_statuses_are_errors(monkeypatch, status: int) -> None:
    _respond(monkeypatch, status)

    assert probe_job_url(JOB_URL).outcome == ProbeOutcome.ERROR


def test_redirect_to_generic_careers_page_is_dead(monkeypatch) -> None:
    _respond(monkeypatch, 200, url="https://acme.example/careers")

    result = probe_job_url(JOB_URL)

    assert result.outcome == ProbeOutcome.DEAD
    assert result.reason == "generic_redirect"
    assert result.final_url == "https://acme.example/careers"


def test_closed_phrase_is_dead(monkeypatch) -> None:
    _respond(monkeypatch, 200, text="<html><body><h1>Engineer</h1><p>This position has been filled.</p></body></html>")

    result = probe_job_url(JOB_URL)

    assert result.outcome == ProbeOutcome.DEAD
    assert result.reason == "closed_phrase:position has been filled"


def test_block_page_is_error_not_dead(monkeypatch) -> None:
    _respond(monkeypatch, 200, text="<html><title>Just a moment...</title>no longer available</html>")

    result = probe_job_url(JOB_URL)

    assert result.outcome == ProbeOutcome.ERROR
    assert result.reason == "blocked"


def test_network_failures_are_errors(monkeypatch) -> None:
    def timeout(*args, **kwargs):
        raise requests.Timeout("slow")

    monkeypatch.setattr(requests, "get", timeout)
    assert probe_job_url(JOB_URL).reason == "timeout"

    def refused(*args, **kwargs):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(requests, "get", refused)
    result = probe_job_url(JOB_URL)
    assert result.outcome == ProbeOutcome.ERROR
    assert result.reason == "network_error:ConnectionError"


@pytest.mark.parametrize("url", [None, "", "ftp://acme.example/job", "not a url"])
def test_invalid_urls_are_errors_without_fetching(monkeypatch, url) -> None:
    def fail(*args, **kwargs):
        raise AssertionError("should not fetch")

    monkeypatch.setattr(requests, "get", fail)

    result = probe_job_url(url)

    assert result.outcome == ProbeOutcome.ERROR
    assert result.reason == "invalid_url"


def test_is_generic_career_redirect() -> None:
    assert is_generic_career_redirect(JOB_URL, "https://acme.example/jobs/")
    assert not is_generic_career_redirect(JOB_URL, JOB_URL)
    assert not is_generic_career_redirect(JOB_URL, "https://acme.example/careers/jobs/12345")
    assert not is_generic_career_redirect("https://acme.example/j/1", "https://acme.example/careers")


def test_find_closed_phrase_normalizes_text() -> None:
    assert find_closed_phrase("<p>We’re   NO LONGER accepting applications</p>") == "no longer accepting"
    assert find_closed_phrase("<p>Apply now</p>") is None
    assert find_closed_phrase("") is None

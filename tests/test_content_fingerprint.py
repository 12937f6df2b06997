from dataclasses import replace

from conftest import NOW, make_posting

from feed_engine.utils.content_fingerprint import canonical_json_sha256, posting_fingerprint


def test_posting_fingerprint_ignores_discovery_time_and_tracking() -> None:
    base = make_posting()
    later = replace(base, discovered_at=NOW.replace(year=2027), external_url=base.external_url + "?utm_source=x")
    assert posting_fingerprint(base) == posting_fingerprint(later)


def test_posting_fingerprint_changes_for_meaningful_fields() -> None:
    base = make_posting()
    assert posting_fingerprint(base) != posting_fingerprint(replace(base, description="Different text"))
    assert posting_fingerprint(base) != posting_fingerprint(replace(base, salary_max=150000.0))


def test_canonical_json_sha256_is_key_order_independent() -> None:
    assert canonical_json_sha256({"a": 1, "b": 2}) == canonical_json_sha256({"b": 2, "a": 1})

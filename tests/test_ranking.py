from __future__ import annotations

from dataclasses import replace
from datetime import timedelta

import pytest

from conftest import NOW, make_job
from feed_engine.models import (
    BADGE_DIRECT_FROM_COMPANY,
    BADGE_VERIFIED_ACTIVE,
    LivenessStatus,
    Location,
    SourceKind,
    WorkType,
)
from feed_engine.profile_loader import CandidateProfile
from feed_engine.ranking import (
    DEFAULT_RANKING_CONFIG,
    PersonalizationSignal,
    RankingConfig,
    RankingContext,
    badges_for,
    build_breakdown,
    describe_feed,
    rank_eligible,
    rank_jobs,
    score_job,
    select_feed,
)
from feed_engine.ranking.engine import (
    feed_sort_key,
    liveness_score,
    personalization_score,
    recency_score,
    skill_overlap,
)
from feed_engine.semantic import experience_vector, vectorize


def _profile(**overrides) -> CandidateProfile:
    payload = {"candidate_id": "cand_1", "skills": ["React", "Node.js"]}
    payload.update(overrides)
    return CandidateProfile.model_validate(payload)


def _context(profile: CandidateProfile, signal: PersonalizationSignal = PersonalizationSignal()) -> RankingContext:
    candidate = vectorize(profile)
    return RankingContext(
        candidate=candidate,
        profile=profile,
        experience_vector=() if candidate.has_skills else experience_vector(profile),
        signal=signal,
    )


def test_daily_feed_keeps_verified_match_and_drops_stale() -> None:
    jobs = [
        make_job("job_a"),
        make_job("job_b", status=LivenessStatus.STALE),
        make_job("job_c", title="Payroll Specialist", skills=["Excel"], status=LivenessStatus.UNKNOWN),
    ]

    feed = rank_jobs(_context(_profile()), jobs, now=NOW)

    assert [result.job_id for result in feed] == ["job_a"]
    result = feed[0]
    assert result.final_score >= 0.60
    assert result.sub_scores.recency == 1.0
    assert result.sub_scores.liveness == 1.0
    assert result.sub_scores.personalization == 0.5
    expected = 0.45 * result.sub_scores.semantic_relevance + 0.25 + 0.20 + 0.05
    assert result.final_score == pytest.approx(expected, abs=1e-6)
    assert result.matched_skills == ("Node.js", "React")
    assert result.badges == (BADGE_VERIFIED_ACTIVE, BADGE_DIRECT_FROM_COMPANY)
    assert result.explanation == (
        "Matches your skills: Node.js, React. Verified active today. Posted today. Listed directly by Acme."
    )
    assert result.discovery is False


def test_feed_is_capped_at_feed_size() -> None:
    jobs = [make_job(f"job_{index:02d}") for index in range(20)]

    feed = rank_jobs(_context(_profile()), jobs, now=NOW)

    assert len(feed) == 15
    assert [result.job_id for result in feed] == [f"job_{index:02d}" for index in range(15)]
    assert describe_feed(feed) is None


def test_short_feed_is_returned_with_notice() -> None:
    feed = rank_jobs(_context(_profile()), [make_job("job_a")], now=NOW)

    assert len(feed) == 1
    assert describe_feed(feed) == "1 match cleared the bar; fewer than 15 matches today."
    assert describe_feed([]) == "No strong matches today; fewer than 15 matches today."


def test_equal_scores_break_ties_by_trust() -> None:
    jobs = [make_job("job_low", trust=88), make_job("job_high", trust=95)]

    feed = rank_jobs(_context(_profile()), jobs, now=NOW)

    assert feed[0].final_score == feed[1].final_score
    assert [result.job_id for result in feed] == ["job_high", "job_low"]


def test_feed_sort_key_orders_by_recency_then_id() -> None:
    base = score_job(_context(_profile()), make_job("job_a"), now=NOW)
    older = replace(base, job_id="job_a", posted_at=NOW - timedelta(days=1))
    newer = replace(base, job_id="job_z", posted_at=NOW)
    undated = replace(base, job_id="job_0", posted_at=None)
    twin = replace(base, job_id="job_b", posted_at=NOW)

    ordered = sorted([undated, older, twin, newer], key=feed_sort_key)

    assert [result.job_id for result in ordered] == ["job_b", "job_z", "job_a", "job_0"]


def test_excluded_and_out_of_scope_jobs_are_skipped() -> None:
    jobs = [make_job("job_a"), make_job("job_saved"), make_job("job_berlin", out_of_scope=True)]

    feed = rank_jobs(_context(_profile()), jobs, now=NOW, excluded_ids={"job_saved"})

    assert [result.job_id for result in feed] == ["job_a"]


def test_unverified_job_scores_lower_but_can_qualify() -> None:
    context = _context(_profile())
    active = score_job(context, make_job("job_a"), now=NOW)
    unknown = score_job(context, make_job("job_u", status=LivenessStatus.UNKNOWN, last_verified_at=None), now=NOW)

    assert unknown.sub_scores.liveness == 0.5
    assert unknown.final_score == pytest.approx(active.final_score - 0.10, abs=1e-6)
    assert unknown.final_score >= DEFAULT_RANKING_CONFIG.threshold
    assert unknown.badges == (BADGE_DIRECT_FROM_COMPANY,)
    assert "Not yet verified" in unknown.explanation


def test_discovery_mode_without_skills() -> None:
    profile = _profile(
        skills=[],
        experience=[{"title": "Frontend Developer", "summary": "Built React dashboards"}],
    )
    context = _context(profile)

    feed = rank_jobs(context, [make_job("job_a", trust=90)], now=NOW)

    assert context.discovery is True
    assert len(feed) == 1
    assert feed[0].discovery is True
    assert feed[0].sub_scores.semantic_relevance >= 0.9
    assert "Suggested from your experience and source trust" in feed[0].explanation


def test_recency_and_liveness_scores() -> None:
    assert recency_score(make_job(posted_at=NOW - timedelta(days=14)), NOW, 14) == pytest.approx(0.5)
    assert recency_score(make_job(posted_at=NOW - timedelta(days=28)), NOW, 14) == pytest.approx(0.25)
    assert recency_score(make_job(posted_at=NOW + timedelta(days=1)), NOW, 14) == 1.0
    assert liveness_score(LivenessStatus.ACTIVE, DEFAULT_RANKING_CONFIG) == 1.0
    assert liveness_score(LivenessStatus.UNKNOWN, DEFAULT_RANKING_CONFIG) == 0.5
    assert liveness_score(LivenessStatus.STALE, DEFAULT_RANKING_CONFIG) == 0.0


def test_personalization_nudges() -> None:
    config = DEFAULT_RANKING_CONFIG
    onsite = make_job("job_a")
    remote = make_job("job_r", location=Location(raw="Remote", country="US", is_remote=True), work_type=WorkType.REMOTE)
    plain = _profile()

    assert personalization_score(onsite, plain, PersonalizationSignal(), config) == 0.5
    liked = PersonalizationSignal(liked_company_ids=frozenset({"acme"}))
    hidden = PersonalizationSignal(hidden_company_ids=frozenset({"acme"}))
    assert personalization_score(onsite, plain, liked, config) == pytest.approx(0.8)
    assert personalization_score(onsite, plain, hidden, config) == pytest.approx(0.2)

    wants_remote = _profile(preferred_work_types=["remote"])
    assert personalization_score(onsite, wants_remote, PersonalizationSignal(), config) == pytest.approx(0.4)
    assert personalization_score(remote, wants_remote, PersonalizationSignal(), config) == pytest.approx(0.7)
    no_remote = _profile(remote_ok=False)
    assert personalization_score(remote, no_remote, PersonalizationSignal(), config) == pytest.approx(0.4)
    near_austin = _profile(preferred_locations=["austin"])
    assert personalization_score(onsite, near_austin, PersonalizationSignal(), config) == pytest.approx(0.6)

    onsite.salary_max = 120000.0
    assert personalization_score(
        onsite, _profile(salary_expectation={"min": 150000}), PersonalizationSignal(), config
    ) == pytest.approx(0.4)

    everything = _profile(
        preferred_work_types=["onsite"],
        preferred_locations=["Austin"],
        salary_expectation={"min": 100000},
    )
    assert personalization_score(onsite, everything, liked, config) == 1.0


def test_skill_overlap_matched_and_related() -> None:
    assert skill_overlap(["React"], ["Next.js"]) == (("React",), ("Next.js",))
    assert skill_overlap(["Python"], ["Java"]) == ((), ())


def test_badges_require_active_and_trust() -> None:
    aggregator = make_job("job_agg", trust=70, kind=SourceKind.AGGREGATOR, source="remotive")
    assert badges_for(aggregator) == ()
    assert badges_for(make_job("job_a", trust=84)) == (BADGE_DIRECT_FROM_COMPANY,)
    assert badges_for(make_job("job_a", trust=85)) == (BADGE_VERIFIED_ACTIVE, BADGE_DIRECT_FROM_COMPANY)


def test_breakdown_contributions_sum_to_final_score() -> None:
    job = make_job("job_c", title="Payroll Specialist", skills=["Excel"])
    result = score_job(_context(_profile()), job, now=NOW)

    breakdown = build_breakdown(result, job)

    assert sum(breakdown.contributions.values()) == pytest.approx(result.final_score, abs=1e-5)
    assert breakdown.weights == DEFAULT_RANKING_CONFIG.weights.as_dict()
    assert breakdown.threshold == 0.60
    payload = breakdown.to_dict()
    assert payload["clears_threshold"] == breakdown.clears_threshold
    assert payload["liveness_status"] == "active"


def test_custom_config_changes_feed_size_and_threshold() -> None:
    config = RankingConfig(feed_size=2, threshold=0.0)
    jobs = [make_job(f"job_{index}", title="Payroll Specialist", skills=["Excel"]) for index in range(4)]

    feed = rank_jobs(_context(_profile()), jobs, now=NOW, config=config)

    assert len(feed) == 2
    assert describe_feed(feed, config) is None


def test_select_feed_backfills_from_ranked_list_after_exclusions() -> None:
    ranked = rank_eligible(_context(_profile()), [make_job(f"job_{index:02d}") for index in range(17)], now=NOW)

    feed = select_feed(ranked, excluded_ids={"job_00", "job_03"})

    assert len(ranked) == 17
    assert len(feed) == 15
    assert "job_00" not in {result.job_id for result in feed}
    assert feed[-1].job_id == "job_16"


_DISCOVERY = {"skills": [], "experience": [{"title": "Frontend Developer", "summary": "Built React dashboards"}]}


@pytest.mark.parametrize(
    "profile_overrides, job",
    [
        ({}, make_job("job_a")),
        ({}, make_job("job_b", skills=[], title="Office Manager")),
        ({}, make_job("job_c", posted_at=NOW + timedelta(days=30))),
        ({}, make_job("job_d", posted_at=None)),
        ({}, make_job("job_e", trust=0, status=LivenessStatus.UNKNOWN, last_verified_at=None)),
        ({}, make_job("job_f", trust=100, status=LivenessStatus.STALE)),
        ({"salary_expectation": {"min": 1_000_000}}, replace(make_job("job_g"), salary_max=50_000_000.0)),
        (
            {"remote_ok": False, "preferred_work_types": ["onsite"], "preferred_locations": ["Berlin"]},
            make_job("job_h", work_type=WorkType.REMOTE, location=Location(raw="Remote", is_remote=True)),
        ),
        (_DISCOVERY, make_job("job_i", trust=100)),
        (_DISCOVERY, make_job("job_j", trust=0, skills=[], status=LivenessStatus.STALE)),
    ],
)
def test_scores_stay_within_unit_interval(profile_overrides, job) -> None:
    liked = PersonalizationSignal(liked_company_ids=frozenset({"acme"}))
    result = score_job(_context(_profile(**profile_overrides), liked), job, now=NOW)

    for name, value in result.sub_scores.as_dict().items():
        assert 0.0 <= value <= 1.0, name
    assert 0.0 <= result.final_score <= 1.0

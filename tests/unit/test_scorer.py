"""Tests for component scorers, composite scorers and best_profile."""

import pytest

from jobstream.core.schemas import Record
from jobstream.pipeline.scorer import (
    NEUTRAL_SCORE,
    AverageScorer,
    CompanyScorer,
    KeywordScorer,
    LocationScorer,
    RemoteScorer,
    SeniorityScorer,
    TechnologyScorer,
    TitleScorer,
    WeightedScorer,
    best_profile,
    default_scorer,
    score_record,
    score_records,
)
from jobstream.profile.schema import Profile, ScoringWeights


def _record(
    *,
    id: str = "1",
    title: str = "Senior Rust Engineer",
    description: str = "",
    company: str = "Acme",
    location: str = "",
    job_type: str = "",
) -> Record:
    return Record(
        id=id,
        title=title,
        source="test",
        description=description,
        company=company,
        location=location,
        job_type=job_type,
    )


# ---------------------------------------------------------------------------
# Component scorers
# ---------------------------------------------------------------------------


class TestKeywordAndTitle:
    def test_keyword_fraction(self) -> None:
        p = Profile(id="p", keywords=["rust", "tokio", "kafka", "grpc"])
        r = _record(title="Rust Engineer", description="tokio services")
        assert KeywordScorer()(r, p) == 0.5

    def test_keyword_no_keywords(self) -> None:
        p = Profile(id="p")
        assert KeywordScorer()(_record(), p) == 0.0
        assert not KeywordScorer().applies(p)

    def test_title_ignores_description(self) -> None:
        p = Profile(id="p", keywords=["rust", "tokio"])
        r = _record(title="Rust Engineer", description="tokio")
        assert TitleScorer()(r, p) == 0.5


class TestLocationScorer:
    def test_remote_with_preference_is_full(self) -> None:
        p = Profile(id="p", prefer_remote=True)
        assert LocationScorer()(_record(location="Remote"), p) == 1.0

    def test_location_match(self) -> None:
        p = Profile(id="p", locations=["Berlin"])
        assert LocationScorer()(_record(location="Berlin, DE"), p) == 1.0

    def test_remote_without_preference_is_partial(self) -> None:
        p = Profile(id="p", locations=["Berlin"])
        assert LocationScorer()(_record(location="Remote"), p) == 0.5

    def test_unknown_location_with_remote_preference(self) -> None:
        p = Profile(id="p", prefer_remote=True)
        assert LocationScorer()(_record(location=""), p) == 0.3

    def test_no_match(self) -> None:
        p = Profile(id="p", locations=["Berlin"])
        assert LocationScorer()(_record(location="Paris"), p) == 0.0


class TestOtherComponents:
    def test_company(self) -> None:
        p = Profile(id="p", preferred_companies=["cloudflare"])
        assert CompanyScorer()(_record(company="Cloudflare Inc"), p) == 1.0
        assert CompanyScorer()(_record(company="Acme"), p) == 0.0
        assert CompanyScorer()(_record(company=""), p) == 0.0

    def test_remote(self) -> None:
        p = Profile(id="p", prefer_remote=True)
        assert RemoteScorer()(_record(location="Remote"), p) == 1.0
        assert RemoteScorer()(_record(location="NYC"), p) == 0.0
        assert not RemoteScorer().applies(Profile(id="q"))

    def test_technology_whole_words(self) -> None:
        p = Profile(id="p", preferred_tech=["go", "rust"])
        r = _record(title="Django Developer", description="We love rust")
        assert TechnologyScorer()(r, p) == 0.5

    @pytest.mark.parametrize(
        ("seniority", "title", "expected"),
        [
            ("senior", "Senior Rust Engineer", 1.0),
            ("senior", "Sr. Backend Engineer", 1.0),
            ("senior", "Junior Rust Engineer", 0.0),
            ("mid", "Backend Engineer", 1.0),
            ("mid", "Staff Engineer", 0.0),
            ("staff", "Staff Engineer", 1.0),
        ],
    )
    def test_seniority(self, seniority: str, title: str, expected: float) -> None:
        p = Profile(id="p", seniority=seniority)
        assert SeniorityScorer()(_record(title=title), p) == expected


# ---------------------------------------------------------------------------
# Composite scorers
# ---------------------------------------------------------------------------


class TestAverageScorer:
    def test_mean_scaled(self) -> None:
        p = Profile(id="p", keywords=["rust", "tokio"], locations=["Berlin"])
        r = _record(title="Rust Engineer", description="tokio", location="Berlin")
        # keyword 1.0, title 0.5, location 1.0
        assert default_scorer()(r, p) == 83

    def test_no_scorers_is_zero(self) -> None:
        assert AverageScorer()(_record(), Profile(id="p")) == 0

    def test_bounds(self) -> None:
        p = Profile(id="p", keywords=["rust"], prefer_remote=True)
        best = _record(title="Rust", location="Remote")
        worst = _record(title="Java", location="Paris")
        assert default_scorer()(best, p) == 100
        assert default_scorer()(worst, p) == 0


class TestWeightedScorer:
    def test_full_match_is_100(self) -> None:
        p = Profile(
            id="p",
            preferred_tech=["rust"],
            prefer_remote=True,
            weights=ScoringWeights(technology=60, remote=40),
        )
        r = _record(title="Rust Engineer", location="Remote")
        assert WeightedScorer(p.weights)(r, p) == 100

    def test_partial_match_normalised(self) -> None:
        p = Profile(
            id="p",
            preferred_tech=["rust"],
            prefer_remote=True,
            weights=ScoringWeights(technology=60, remote=40),
        )
        r = _record(title="Rust Engineer", location="Berlin")
        assert WeightedScorer(p.weights)(r, p) == 60

    def test_fractional_dimension(self) -> None:
        p = Profile(
            id="p",
            preferred_tech=["rust", "go"],
            weights=ScoringWeights(technology=50),
        )
        assert WeightedScorer(p.weights)(_record(title="Rust Engineer"), p) == 50

    def test_inapplicable_dimensions_ignored(self) -> None:
        # company weight set but the profile has no preferred companies
        p = Profile(
            id="p",
            preferred_tech=["rust"],
            weights=ScoringWeights(technology=30, company=70),
        )
        assert WeightedScorer(p.weights)(_record(title="Rust"), p) == 100

    def test_neutral_when_nothing_applies(self) -> None:
        p = Profile(id="p", weights=ScoringWeights(technology=50, remote=50))
        assert WeightedScorer(p.weights)(_record(), p) == NEUTRAL_SCORE == 50

    def test_always_in_bounds(self) -> None:
        p = Profile(
            id="p",
            preferred_tech=["rust"],
            seniority="senior",
            locations=["Berlin"],
            preferred_companies=["Acme"],
            prefer_remote=True,
            weights=ScoringWeights(technology=1, seniority=2, location=3, company=4, remote=5),
        )
        for r in (
            _record(),
            _record(title="Junior Java", company="", location="Paris"),
            _record(location="Remote, Berlin"),
        ):
            assert 0 <= WeightedScorer(p.weights)(r, p) <= 100


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestHelpers:
    def test_score_record_keeps_identity(self) -> None:
        p = Profile(id="p", keywords=["rust"])
        r = _record(id="x")
        scored = score_record(r, p, default_scorer())
        assert scored.id == "x"
        assert scored.source == "test"
        assert r.score == 50

    def test_score_records_sorted_desc(self) -> None:
        p = Profile(id="p", keywords=["rust"])
        records = [_record(id="a", title="Java"), _record(id="b", title="Rust")]
        assert [r.id for r in score_records(records, p, default_scorer())] == ["b", "a"]

    def test_best_profile(self) -> None:
        rust = Profile(id="rust", keywords=["rust"])
        go = Profile(id="go", keywords=["golang"])
        profile, score = best_profile(_record(title="Rust Engineer"), [go, rust], default_scorer())
        assert profile is rust
        assert score > 0

    def test_best_profile_none_when_all_zero(self) -> None:
        profile, score = best_profile(
            _record(title="Java"), [Profile(id="go", keywords=["golang"])], default_scorer(),
        )
        assert profile is None
        assert score == 0

"""Profile-relative relevance scoring for records.

Component scorers measure one dimension and return a fraction in [0, 1].
Composite scorers turn components into the 0-100 integer stored on a record:

  - AverageScorer: unweighted mean of its components, scaled to 0-100.
  - WeightedScorer: per-dimension weights from the profile. Each dimension
    that applies adds its weight to the attainable maximum and
    weight * fraction to the total; the score is total normalised against
    the maximum. When no dimension applies the score is NEUTRAL_SCORE.
"""

import logging
from collections.abc import Iterable, Sequence
from typing import Protocol

from jobstream.core.schemas import Record
from jobstream.pipeline.filters import technology_haystack, technology_pattern
from jobstream.profile.schema import Profile, ScoringWeights

logger = logging.getLogger(__name__)

NEUTRAL_SCORE = 50

# Title markers per seniority level. "mid" has none: a title with no other
# level's marker counts as mid-level.
SENIORITY_KEYWORDS: dict[str, tuple[str, ...]] = {
    "junior": ("junior", "jr", "entry", "graduate", "intern"),
    "mid": ("mid", "intermediate"),
    "senior": ("senior", "sr"),
    "staff": ("staff",),
    "principal": ("principal", "distinguished"),
    "director": ("director", "head", "vp"),
}


class ComponentScorer(Protocol):
    def applies(self, profile: Profile) -> bool: ...

    def __call__(self, record: Record, profile: Profile) -> float: ...


class Scorer(Protocol):
    def __call__(self, record: Record, profile: Profile) -> int: ...


def _hit_fraction(text: str, terms: Sequence[str]) -> float:
    terms = [t.lower().strip() for t in terms if t.strip()]
    if not terms:
        return 0.0
    text = text.lower()
    hits = sum(1 for t in terms if t in text)
    return hits / len(terms)


class KeywordScorer:
    """Fraction of profile keywords found in title + description."""

    def applies(self, profile: Profile) -> bool:
        return any(k.strip() for k in profile.keywords)

    def __call__(self, record: Record, profile: Profile) -> float:
        return _hit_fraction(record.text, profile.keywords)


class TitleScorer:
    """Fraction of profile keywords found in the title only."""

    def applies(self, profile: Profile) -> bool:
        return any(k.strip() for k in profile.keywords)

    def __call__(self, record: Record, profile: Profile) -> float:
        return _hit_fraction(record.title, profile.keywords)


class LocationScorer:
    """1.0 on a location match, partial credit for acceptable remote, else 0."""

    def applies(self, profile: Profile) -> bool:
        return profile.prefer_remote or any(loc.strip() for loc in profile.locations)

    def __call__(self, record: Record, profile: Profile) -> float:
        location = record.location.lower()
        if record.is_remote and profile.prefer_remote:
            return 1.0
        for loc in profile.locations:
            if loc.strip() and loc.lower().strip() in location:
                return 1.0
        if record.is_remote:
            return 0.5
        if profile.prefer_remote and not location.strip():
            return 0.3
        return 0.0


class CompanyScorer:
    """1.0 when the company is on the profile's preferred list."""

    def applies(self, profile: Profile) -> bool:
        return any(c.strip() for c in profile.preferred_companies)

    def __call__(self, record: Record, profile: Profile) -> float:
        company = record.company.lower()
        if not company:
            return 0.0
        for c in profile.preferred_companies:
            if c.strip() and c.lower().strip() in company:
                return 1.0
        return 0.0


class RemoteScorer:
    """1.0 for remote records when the profile prefers remote."""

    def applies(self, profile: Profile) -> bool:
        return profile.prefer_remote

    def __call__(self, record: Record, profile: Profile) -> float:
        return 1.0 if record.is_remote else 0.0


class TechnologyScorer:
    """Fraction of preferred technologies mentioned as whole words."""

    def applies(self, profile: Profile) -> bool:
        return any(t.strip() for t in profile.preferred_tech)

    def __call__(self, record: Record, profile: Profile) -> float:
        techs = [t.strip() for t in profile.preferred_tech if t.strip()]
        if not techs:
            return 0.0
        text = technology_haystack(record)
        hits = sum(1 for t in techs if technology_pattern(t).search(text))
        return hits / len(techs)


class SeniorityScorer:
    """1.0 when the title's seniority markers match the profile's level."""

    def applies(self, profile: Profile) -> bool:
        return bool(profile.seniority)

    def __call__(self, record: Record, profile: Profile) -> float:
        levels = _title_levels(record.title)
        if profile.seniority in levels:
            return 1.0
        if profile.seniority == "mid" and not levels:
            return 1.0
        return 0.0


def _title_levels(title: str) -> set[str]:
    words = set(title.lower().replace("-", " ").replace(".", " ").split())
    return {level for level, markers in SENIORITY_KEYWORDS.items() if words & set(markers)}


class AverageScorer:
    """Equal-weight mean of component scorers, scaled to 0-100."""

    def __init__(self, *scorers: ComponentScorer) -> None:
        self.scorers = scorers

    def __call__(self, record: Record, profile: Profile) -> int:
        if not self.scorers:
            return 0
        total = sum(s(record, profile) for s in self.scorers)
        return _clamp(round(total * 100 / len(self.scorers)))


class WeightedScorer:
    """Weighted sum over applicable dimensions, normalised to 0-100."""

    def __init__(self, weights: ScoringWeights) -> None:
        self._dimensions: list[tuple[float, ComponentScorer]] = [
            (weights.technology, TechnologyScorer()),
            (weights.seniority, SeniorityScorer()),
            (weights.location, LocationScorer()),
            (weights.company, CompanyScorer()),
            (weights.remote, RemoteScorer()),
        ]

    def __call__(self, record: Record, profile: Profile) -> int:
        total = 0.0
        attainable = 0.0
        for weight, scorer in self._dimensions:
            if weight <= 0 or not scorer.applies(profile):
                continue
            attainable += weight
            total += weight * scorer(record, profile)
        if attainable == 0:
            # TODO: a neutral 50 reads as "average match" when it means "no
            # information"; revisit once stored scores can carry a sentinel.
            return NEUTRAL_SCORE
        return _clamp(round(total * 100 / attainable))


def default_scorer() -> AverageScorer:
    """Keyword + title + location average, used when a profile sets no weights."""
    return AverageScorer(KeywordScorer(), TitleScorer(), LocationScorer())


def score_record(record: Record, profile: Profile, scorer: Scorer) -> Record:
    return record.evolve(score=scorer(record, profile))


def score_records(
    records: Iterable[Record],
    profile: Profile,
    scorer: Scorer,
) -> list[Record]:
    """Score a batch of records, returning them sorted by score desc."""
    scored = [score_record(r, profile, scorer) for r in records]
    scored.sort(key=lambda r: r.score, reverse=True)
    return scored


def best_profile(
    record: Record,
    profiles: Iterable[Profile],
    scorer: Scorer,
) -> tuple[Profile | None, int]:
    """Return the profile that scores the record highest, and that score."""
    best: Profile | None = None
    best_score = 0
    for p in profiles:
        score = scorer(record, p)
        if score > best_score:
            best, best_score = p, score
    return best, best_score


def _clamp(score: int) -> int:
    return max(0, min(100, score))

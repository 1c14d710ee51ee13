"""Compile a Profile into a filter pipeline and a scorer.

Compilation is pure and cheap: no I/O, no caching. The compiled result holds
a deep copy of the profile, so later edits to the caller's Profile object are
never observed mid-run.

Pipeline order:
  1. keyword allow / deny
  2. location allow / deny
  3. company allow / deny
  4. technology allow / deny
  5. score range
  6. must-have-email, exclude-flagged (only when toggled on)
  7. posted-after / posted-before
  8. RemotePreferredFilter (only when prefer_remote; always last)
"""

import logging
from collections.abc import Iterable

from jobstream.core.schemas import Record
from jobstream.pipeline.filters import (
    CompanyFilter,
    ExcludeCompaniesFilter,
    ExcludeFlaggedFilter,
    ExcludeKeywordsFilter,
    ExcludeLocationsFilter,
    ExcludeTechnologyFilter,
    Filter,
    HasEmailFilter,
    KeywordFilter,
    LocationFilter,
    Pipe,
    PostedAfterFilter,
    PostedBeforeFilter,
    RemotePreferredFilter,
    ScoreRangeFilter,
    TechnologyFilter,
)
from jobstream.pipeline.scorer import Scorer, WeightedScorer, default_scorer, score_record
from jobstream.profile.schema import Profile

logger = logging.getLogger(__name__)


class CompiledProfile:
    """A profile snapshot with its filter pipeline and scorer."""

    def __init__(self, profile: Profile, pipeline: Pipe, scorer: Scorer) -> None:
        self.profile = profile
        self.pipeline = pipeline
        self.scorer = scorer

    def rescore(self, records: Iterable[Record]) -> list[Record]:
        return [score_record(r, self.profile, self.scorer) for r in records]

    def apply(self, records: list[Record]) -> list[Record]:
        """Run the filter pipeline only."""
        return self.pipeline(records)

    def process(self, records: Iterable[Record]) -> list[Record]:
        """Rescore every record against the profile, then filter."""
        return self.apply(self.rescore(records))


def build_filters(profile: Profile) -> list[Filter]:
    """Build the ordered filter list for a profile."""
    filters: list[Filter] = [
        KeywordFilter(profile.keywords),
        ExcludeKeywordsFilter(profile.exclude_keywords),
        LocationFilter(profile.locations),
        ExcludeLocationsFilter(profile.exclude_locations),
        CompanyFilter(profile.preferred_companies),
        ExcludeCompaniesFilter(profile.avoid_companies),
        TechnologyFilter(profile.preferred_tech),
        ExcludeTechnologyFilter(profile.avoid_tech),
        ScoreRangeFilter(profile.min_score, profile.max_score),
    ]
    if profile.must_have_email:
        filters.append(HasEmailFilter())
    if profile.exclude_flagged:
        filters.append(ExcludeFlaggedFilter())
    filters.append(PostedAfterFilter(profile.posted_after))
    filters.append(PostedBeforeFilter(profile.posted_before))
    if profile.prefer_remote:
        filters.append(RemotePreferredFilter())
    return filters


def build_scorer(profile: Profile) -> Scorer:
    if profile.weights.is_set:
        return WeightedScorer(profile.weights)
    return default_scorer()


def compile_profile(profile: Profile) -> CompiledProfile:
    """Snapshot a profile and compile it."""
    snapshot = profile.model_copy(deep=True)
    compiled = CompiledProfile(
        profile=snapshot,
        pipeline=Pipe(*build_filters(snapshot)),
        scorer=build_scorer(snapshot),
    )
    logger.debug("Compiled profile '%s': %r", snapshot.id, compiled.pipeline)
    return compiled

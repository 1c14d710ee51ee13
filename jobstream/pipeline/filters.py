"""Composable filters over record lists.

A filter is any callable taking a list of records and returning a list of
records. Filters compose left-to-right with Pipe:

    Pipe(f, g)(records) == g(f(records))

Every filter whose criteria are empty is the identity, so a profile with
unset fields imposes no restriction. RemotePreferredFilter reorders instead
of removing and belongs at the end of a pipeline.
"""

import logging
import re
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from typing import Any

from jobstream.core.schemas import Record

logger = logging.getLogger(__name__)

# A filter is a callable that takes records and returns a subset (or reordering).
Filter = Callable[[list[Record]], list[Record]]


class Pipe:
    """Left-to-right composition of filters. A Pipe is itself a filter."""

    def __init__(self, *filters: Filter) -> None:
        self.filters: tuple[Filter, ...] = filters

    def __call__(self, records: list[Record]) -> list[Record]:
        return run_filter_chain(records, self.filters)

    def __len__(self) -> int:
        return len(self.filters)

    def __repr__(self) -> str:
        names = ", ".join(type(f).__name__ for f in self.filters)
        return f"Pipe({names})"


def run_filter_chain(records: list[Record], filters: Iterable[Filter]) -> list[Record]:
    """Apply filters in order, returning the surviving records."""
    result = records
    for f in filters:
        result = f(result)
    return result


def map_records(records: Iterable[Record], fn: Callable[[Record], Record]) -> list[Record]:
    return [fn(r) for r in records]


def select_records(records: Iterable[Record], pred: Callable[[Record], bool]) -> list[Record]:
    return [r for r in records if pred(r)]


def _normalize(terms: Iterable[str]) -> list[str]:
    return [t.lower().strip() for t in terms if t.strip()]


class _CriteriaFilter:
    """Shared shape for list-driven filters: empty criteria means identity."""

    def __init__(self, terms: Iterable[str]) -> None:
        self._terms = _normalize(terms)

    def __call__(self, records: list[Record]) -> list[Record]:
        if not self._terms:
            return records
        result = [r for r in records if self._keep(r)]
        removed = len(records) - len(result)
        if removed:
            logger.debug("%s: removed %d records", type(self).__name__, removed)
        return result

    def _keep(self, record: Record) -> bool:
        raise NotImplementedError

    def _any_in(self, text: str) -> bool:
        text = text.lower()
        return any(t in text for t in self._terms)


class KeywordFilter(_CriteriaFilter):
    """Keep records whose title or description contains any keyword."""

    def _keep(self, record: Record) -> bool:
        return self._any_in(record.text)


class ExcludeKeywordsFilter(_CriteriaFilter):
    """Drop records whose title or description contains any excluded keyword."""

    def _keep(self, record: Record) -> bool:
        return not self._any_in(record.text)


class LocationFilter(_CriteriaFilter):
    """Keep records whose location matches any of the given locations."""

    def _keep(self, record: Record) -> bool:
        return self._any_in(record.location)


class ExcludeLocationsFilter(_CriteriaFilter):
    def _keep(self, record: Record) -> bool:
        return not self._any_in(record.location)


class CompanyFilter(_CriteriaFilter):
    """Keep records whose company matches any of the given companies."""

    def _keep(self, record: Record) -> bool:
        return self._any_in(record.company)


class ExcludeCompaniesFilter(_CriteriaFilter):
    def _keep(self, record: Record) -> bool:
        return not self._any_in(record.company)


def technology_pattern(term: str) -> re.Pattern[str]:
    """Whole-word pattern that also works for terms like 'c++' or 'node.js'."""
    return re.compile(rf"(?<![\w+#.]){re.escape(term)}(?![\w+#])", re.IGNORECASE)


def technology_haystack(record: Record) -> str:
    return f"{record.title} {record.description} {record.job_type}"


class TechnologyFilter(_CriteriaFilter):
    """Keep records mentioning any preferred technology as a whole word."""

    def __init__(self, technologies: Iterable[str]) -> None:
        super().__init__(technologies)
        self._patterns = [technology_pattern(t) for t in self._terms]

    def _keep(self, record: Record) -> bool:
        text = technology_haystack(record)
        return any(p.search(text) for p in self._patterns)


class ExcludeTechnologyFilter(TechnologyFilter):
    """Drop records mentioning any avoided technology as a whole word."""

    def _keep(self, record: Record) -> bool:
        return not super()._keep(record)


class ScoreRangeFilter:
    """Keep records with min_score <= score <= max_score. None means unbounded."""

    def __init__(self, min_score: int | None = None, max_score: int | None = None) -> None:
        self._min = min_score if min_score is not None and min_score > 0 else None
        self._max = max_score if max_score is not None and max_score < 100 else None

    def __call__(self, records: list[Record]) -> list[Record]:
        if self._min is None and self._max is None:
            return records
        low = self._min if self._min is not None else 0
        high = self._max if self._max is not None else 100
        result = [r for r in records if low <= r.score <= high]
        removed = len(records) - len(result)
        if removed:
            logger.debug("ScoreRangeFilter: removed %d records outside [%d, %d]", removed, low, high)
        return result


class HasEmailFilter:
    """Keep only records that carry a contact email."""

    def __call__(self, records: list[Record]) -> list[Record]:
        return [r for r in records if r.email.strip()]


class ExcludeFlaggedFilter:
    """Drop records flagged by content-safety scanning, whatever their score."""

    def __call__(self, records: list[Record]) -> list[Record]:
        result = [r for r in records if not r.has_flags]
        removed = len(records) - len(result)
        if removed:
            logger.debug("ExcludeFlaggedFilter: removed %d flagged records", removed)
        return result


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC so they compare with aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class PostedAfterFilter:
    """Keep records posted strictly after the bound. Undated records are dropped."""

    def __init__(self, bound: datetime | None) -> None:
        self._bound = as_utc(bound) if bound is not None else None

    def __call__(self, records: list[Record]) -> list[Record]:
        if self._bound is None:
            return records
        bound = self._bound
        return [r for r in records if r.posted_at is not None and as_utc(r.posted_at) > bound]


class PostedBeforeFilter:
    """Keep records posted strictly before the bound. Undated records are dropped."""

    def __init__(self, bound: datetime | None) -> None:
        self._bound = as_utc(bound) if bound is not None else None

    def __call__(self, records: list[Record]) -> list[Record]:
        if self._bound is None:
            return records
        bound = self._bound
        return [r for r in records if r.posted_at is not None and as_utc(r.posted_at) < bound]


class RemotePreferredFilter:
    """Stable-partition remote records ahead of the rest. Removes nothing."""

    def __call__(self, records: list[Record]) -> list[Record]:
        remote = [r for r in records if r.is_remote]
        rest = [r for r in records if not r.is_remote]
        return remote + rest


class SortFilter:
    """Stable sort by key. Equal keys keep their incoming order."""

    def __init__(self, key: Callable[[Record], Any], *, reverse: bool = False) -> None:
        self._key = key
        self._reverse = reverse

    def __call__(self, records: list[Record]) -> list[Record]:
        return sorted(records, key=self._key, reverse=self._reverse)


_EPOCH = datetime.min.replace(tzinfo=UTC)


def by_score_desc() -> SortFilter:
    return SortFilter(lambda r: r.score, reverse=True)


def by_date_desc() -> SortFilter:
    return SortFilter(lambda r: as_utc(r.posted_at) if r.posted_at else _EPOCH, reverse=True)


def by_title_asc() -> SortFilter:
    return SortFilter(lambda r: r.title.lower())

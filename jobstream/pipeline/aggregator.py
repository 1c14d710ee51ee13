"""Bulk aggregation: run every source concurrently and merge their output.

One task per source, joined with a TaskGroup. A failing source is recorded
and skipped; the run only counts as failed when every source failed, and
even then the (empty) result comes back alongside the error.
"""

import asyncio
import logging
from collections.abc import Sequence

from jobstream.core.errors import (
    AllSourcesFailedError,
    JobstreamError,
    SourceError,
    SourceTimeoutError,
)
from jobstream.core.schemas import Record, SourceFailure
from jobstream.sources.base import SourceAdapter

logger = logging.getLogger(__name__)


class AggregateResult:
    """Union of successful sources' records plus what went wrong."""

    def __init__(
        self,
        records: list[Record],
        failures: list[SourceFailure],
        succeeded: list[str],
        errors: list[SourceError] | None = None,
    ) -> None:
        self.records = records
        self.failures = failures
        self.succeeded = succeeded
        self._errors = errors or []

    @property
    def all_failed(self) -> bool:
        return bool(self.failures) and not self.succeeded

    @property
    def error(self) -> JobstreamError | None:
        """AllSourcesFailedError on total failure, else the most recent source error."""
        if self.all_failed:
            return AllSourcesFailedError(self.failures)
        return self._errors[-1] if self._errors else None

    def raise_for_failure(self) -> None:
        """Raise only when every source failed."""
        if self.all_failed:
            raise AllSourcesFailedError(self.failures)


async def fetch_source(source: SourceAdapter, timeout: float | None = None) -> list[Record]:
    """Run one adapter, normalising every failure into a SourceError.

    Output that is not a list of Records counts as a failure of the source.
    """
    try:
        if timeout is None:
            result = await source.fetch()
        else:
            async with asyncio.timeout(timeout):
                result = await source.fetch()
        return _checked(source.name, result)
    except SourceError:
        raise
    except TimeoutError as e:
        if timeout is None:
            raise SourceError(source.name, e) from e
        raise SourceTimeoutError(source.name, timeout) from e
    except Exception as e:
        raise SourceError(source.name, e) from e


def _checked(name: str, result: object) -> list[Record]:
    if not isinstance(result, list):
        msg = f"adapter returned {type(result).__name__}, expected a list of records"
        raise SourceError(name, msg)
    for item in result:
        if not isinstance(item, Record):
            msg = f"adapter returned a {type(item).__name__} item, expected Record"
            raise SourceError(name, msg)
    return result


def failure_from(error: SourceError) -> SourceFailure:
    return SourceFailure(
        source=error.source,
        error=str(error.cause),
        timed_out=isinstance(error, SourceTimeoutError),
    )


async def aggregate(
    sources: Sequence[SourceAdapter],
    *,
    source_timeout: float | None = None,
) -> AggregateResult:
    """Run all sources concurrently and return the merged result.

    Cross-source order follows completion order; within a source, adapter
    order is kept.
    """
    outcomes: list[tuple[SourceAdapter, list[Record] | SourceError]] = []

    async def run_one(source: SourceAdapter) -> None:
        try:
            outcomes.append((source, await fetch_source(source, source_timeout)))
        except SourceError as e:
            outcomes.append((source, e))

    async with asyncio.TaskGroup() as tg:
        for source in sources:
            tg.create_task(run_one(source))

    records: list[Record] = []
    failures: list[SourceFailure] = []
    succeeded: list[str] = []
    errors: list[SourceError] = []
    for source, outcome in outcomes:
        if isinstance(outcome, SourceError):
            logger.warning("Source '%s' failed: %s", source.name, outcome.cause)
            errors.append(outcome)
            failures.append(failure_from(outcome))
            continue
        logger.info("Source '%s': %d records", source.name, len(outcome))
        succeeded.append(source.name)
        records.extend(outcome)

    if failures and not succeeded:
        logger.error("All %d sources failed", len(failures))

    return AggregateResult(records, failures, succeeded, errors)

"""Orchestrator: wires sources, aggregation, profile pipeline and DB write.

Bulk data flow:
  1. aggregate() over every source → raw records + failures
  2. dedup → trap flagging → compiled profile (rescore, filter)
  3. sort by score, best first
  4. DB upsert (skipped on dry run)
  5. record the run

Streaming data flow: the IncrementalAggregator already flags, filters and
deduplicates per source, so records are persisted as they arrive.
"""

import asyncio
import json
import logging
import sqlite3
from collections.abc import Callable, Sequence
from datetime import datetime

from jobstream.core.config import Settings
from jobstream.core.db import insert_run, upsert_record
from jobstream.core.errors import AllSourcesFailedError, JobstreamError, SourceError
from jobstream.core.schemas import ProgressEvent, Record, SourceFailure
from jobstream.pipeline.aggregator import aggregate
from jobstream.pipeline.dedup import dedup
from jobstream.pipeline.filters import by_score_desc
from jobstream.pipeline.incremental import IncrementalAggregator
from jobstream.pipeline.safety import flag_records
from jobstream.profile.compiler import compile_profile
from jobstream.profile.schema import Profile
from jobstream.sources.base import SourceAdapter

logger = logging.getLogger(__name__)


class RunResult:
    """Summary of one aggregation run."""

    def __init__(
        self,
        mode: str,
        profile_id: str,
        sources: int,
        raw_count: int,
        records: list[Record],
        new_count: int,
        failures: list[SourceFailure],
        succeeded: list[str],
        cancelled: bool = False,
    ) -> None:
        self.mode = mode
        self.profile_id = profile_id
        self.sources = sources
        self.raw_count = raw_count
        self.records = records
        self.new_count = new_count
        self.failures = failures
        self.succeeded = succeeded
        self.cancelled = cancelled

    @property
    def kept_count(self) -> int:
        return len(self.records)

    @property
    def all_failed(self) -> bool:
        return bool(self.failures) and not self.succeeded

    @property
    def error(self) -> JobstreamError | None:
        if self.all_failed:
            return AllSourcesFailedError(self.failures)
        return None


async def run_aggregation(
    settings: Settings,
    profile: Profile,
    sources: Sequence[SourceAdapter],
    conn: sqlite3.Connection | None = None,
) -> RunResult:
    """Run every source once and reduce the union through the profile.

    Pass conn=None for a dry run: nothing is written.
    """
    started_at = datetime.now()
    compiled = compile_profile(profile)

    logger.info("Aggregating %d sources for profile '%s'", len(sources), profile.id)
    result = await aggregate(sources, source_timeout=settings.aggregator.source_timeout)
    logger.info("Raw records: %d", len(result.records))

    unique = dedup(result.records)
    kept = by_score_desc()(compiled.process(flag_records(unique)))
    logger.info("After dedup: %d, after profile: %d", len(unique), len(kept))

    new_count = 0
    if conn is not None:
        for record in kept:
            if upsert_record(conn, record):
                new_count += 1
        insert_run(
            conn,
            mode="bulk",
            profile_id=profile.id,
            sources=len(sources),
            raw_count=len(result.records),
            kept_count=len(kept),
            failures=result.failures,
            started_at=started_at,
            finished_at=datetime.now(),
        )

    logger.info(
        "Run complete: %d raw, %d kept, %d new, %d/%d sources failed",
        len(result.records), len(kept), new_count, len(result.failures), len(sources),
    )
    return RunResult(
        mode="bulk",
        profile_id=profile.id,
        sources=len(sources),
        raw_count=len(result.records),
        records=kept,
        new_count=new_count,
        failures=result.failures,
        succeeded=result.succeeded,
    )


async def stream_aggregation(
    aggregator: IncrementalAggregator,
    profile_id: str,
    conn: sqlite3.Connection | None = None,
    *,
    on_record: Callable[[Record], None] | None = None,
    on_progress: Callable[[ProgressEvent], None] | None = None,
    on_error: Callable[[SourceError], None] | None = None,
) -> RunResult:
    """Drive an IncrementalAggregator to completion, persisting as records arrive.

    The aggregator is started here if still idle. Callers stop it (e.g. on
    Ctrl-C) with aggregator.stop(); the streams still close cleanly and the
    records already received are kept.
    """
    records: list[Record] = []
    new_count = 0

    async def consume_records() -> None:
        nonlocal new_count
        async for record in aggregator.records:
            records.append(record)
            if conn is not None and upsert_record(conn, record):
                new_count += 1
            if on_record is not None:
                on_record(record)

    async def consume_progress() -> None:
        async for event in aggregator.progress:
            if on_progress is not None:
                on_progress(event)

    async def consume_errors() -> None:
        async for error in aggregator.errors:
            if on_error is not None:
                on_error(error)

    if aggregator.state == "idle":
        aggregator.start()

    try:
        async with asyncio.TaskGroup() as tg:
            tg.create_task(consume_records())
            tg.create_task(consume_progress())
            tg.create_task(consume_errors())
    except BaseException:
        # A failing consumer must not leave the run going with nobody reading.
        aggregator.stop()
        await aggregator.wait()
        raise

    summary = await aggregator.wait()
    if conn is not None:
        insert_run(
            conn,
            mode="stream",
            profile_id=profile_id,
            sources=aggregator.total_sources,
            raw_count=summary.raw,
            kept_count=len(records),
            failures=summary.failed,
            started_at=summary.started_at,
            finished_at=summary.finished_at or datetime.now(),
        )

    return RunResult(
        mode="stream",
        profile_id=profile_id,
        sources=aggregator.total_sources,
        raw_count=summary.raw,
        records=records,
        new_count=new_count,
        failures=summary.failed,
        succeeded=summary.succeeded,
        cancelled=bool(summary.cancelled) or aggregator.state == "cancelled",
    )


def export_results_json(result: RunResult) -> str:
    """Export a run's kept records as a JSON string."""
    data = [
        {
            "id": r.id,
            "source": r.source,
            "title": r.title,
            "company": r.company,
            "location": r.location,
            "url": r.url,
            "posted_at": r.posted_at.isoformat() if r.posted_at else None,
            "salary": r.salary,
            "job_type": r.job_type,
            "email": r.email,
            "score": r.score,
            "has_flags": r.has_flags,
            "flags": list(r.flags),
        }
        for r in result.records
    ]
    return json.dumps(data, indent=2)

"""Incremental aggregation: stream records and progress while sources run.

State machine: idle -> running -> finished | cancelled.

For each source, in configured order, the aggregator publishes an
in_progress event, runs the adapter under the per-source timeout, then emits
the source's records (flagged, rescored, filtered and deduplicated against
the run so far) followed by one completed event, or a single failed event.
The whole run sits under a run deadline; hitting it behaves like stop().

Streams close exactly once, in the order records -> errors -> progress,
after a final run summary event (source == "") is published.

Usage::

    aggregator = IncrementalAggregator(sources, profile)
    aggregator.start()
    async for record in aggregator.records:
        ...
    summary = await aggregator.wait()
"""

import asyncio
import logging
import time
from collections.abc import Sequence
from datetime import datetime
from enum import StrEnum
from types import TracebackType

from jobstream.core.channel import Channel
from jobstream.core.config import AggregatorConfig
from jobstream.core.errors import SourceError
from jobstream.core.schemas import (
    ProgressEvent,
    Record,
    RunSummary,
    SourceFailure,
    SourceStatus,
)
from jobstream.pipeline.aggregator import failure_from, fetch_source
from jobstream.pipeline.safety import flag_records
from jobstream.profile.compiler import compile_profile
from jobstream.profile.schema import Profile
from jobstream.sources.base import SourceAdapter

logger = logging.getLogger(__name__)

DEFAULT_SOURCE_TIMEOUT = 30.0
DEFAULT_RUN_TIMEOUT = 300.0


class RunState(StrEnum):
    IDLE = "idle"
    RUNNING = "running"
    FINISHED = "finished"
    CANCELLED = "cancelled"


class IncrementalAggregator:
    """Runs sources one at a time (or bounded-parallel) and streams results."""

    def __init__(
        self,
        sources: Sequence[SourceAdapter],
        profile: Profile,
        *,
        source_timeout: float = DEFAULT_SOURCE_TIMEOUT,
        run_timeout: float = DEFAULT_RUN_TIMEOUT,
        parallel: bool = False,
        max_concurrency: int = 4,
    ) -> None:
        self._sources = list(sources)
        self._compiled = compile_profile(profile)
        self._source_timeout = source_timeout
        self._run_timeout = run_timeout
        self._parallel = parallel
        self._max_concurrency = max(1, max_concurrency)

        self.records: Channel[Record] = Channel("records")
        self.errors: Channel[SourceError] = Channel("errors")
        self.progress: Channel[ProgressEvent] = Channel("progress")

        self._state = RunState.IDLE
        self._done = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self._stop_requested = False
        self._started = 0.0
        self._started_at = datetime.now()
        self._finished_at: datetime | None = None
        self._raw_count = 0
        self._emitted_ids: set[str] = set()
        self._succeeded: list[str] = []
        self._failures: list[SourceFailure] = []
        self._cancelled: list[str] = []

    @classmethod
    def from_config(
        cls,
        sources: Sequence[SourceAdapter],
        profile: Profile,
        config: AggregatorConfig,
    ) -> "IncrementalAggregator":
        return cls(
            sources,
            profile,
            source_timeout=config.source_timeout,
            run_timeout=config.run_timeout,
            parallel=config.parallel,
            max_concurrency=config.max_concurrency,
        )

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def done(self) -> asyncio.Event:
        """Set exactly once, when every stream has been closed."""
        return self._done

    @property
    def failures(self) -> list[SourceFailure]:
        return list(self._failures)

    @property
    def total_sources(self) -> int:
        return len(self._sources)

    @property
    def processed_sources(self) -> int:
        return len(self._succeeded) + len(self._failures)

    @property
    def emitted(self) -> int:
        return len(self._emitted_ids)

    def start(self) -> None:
        """Begin the run on the current event loop."""
        if self._state is not RunState.IDLE:
            msg = f"aggregator already {self._state}"
            raise RuntimeError(msg)
        self._state = RunState.RUNNING
        self._started = time.monotonic()
        self._started_at = datetime.now()
        logger.info("Starting incremental run over %d sources", len(self._sources))
        self._task = asyncio.create_task(self._run(), name="incremental-aggregator")
        self._task.add_done_callback(self._on_task_done)

    def stop(self) -> None:
        """Stop the run. No new source starts; an in-flight one is abandoned.

        Idempotent. Stopping an idle aggregator closes its streams at once.
        """
        if self._state is RunState.IDLE:
            self._stop_requested = True
            self._started = time.monotonic()
            self._finish(cancelled=True)
            return
        if self._state is not RunState.RUNNING or self._stop_requested:
            return
        logger.info("Stop requested")
        self._stop_requested = True
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def wait(self) -> RunSummary:
        await self._done.wait()
        return self.summary()

    def summary(self) -> RunSummary:
        return RunSummary(
            raw=self._raw_count,
            emitted=self.emitted,
            succeeded=list(self._succeeded),
            failed=list(self._failures),
            cancelled=list(self._cancelled),
            started_at=self._started_at,
            finished_at=self._finished_at,
        )

    async def __aenter__(self) -> "IncrementalAggregator":
        self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.stop()
        await self._done.wait()

    def _on_task_done(self, task: asyncio.Task[None]) -> None:
        # A task cancelled before its first step never enters _run, so its
        # finally block never closes the streams.
        if not self._done.is_set():
            self._finish(cancelled=True)

    async def _run(self) -> None:
        cancelled = False
        try:
            async with asyncio.timeout(self._run_timeout):
                for index, source in enumerate(self._sources, start=1):
                    self._publish(source.name, index, SourceStatus.PENDING)
                if self._parallel:
                    await self._run_parallel()
                else:
                    await self._run_sequential()
        except TimeoutError:
            logger.warning("Run deadline of %gs exceeded, cancelling", self._run_timeout)
            cancelled = True
        except asyncio.CancelledError:
            cancelled = True
            task = asyncio.current_task()
            if task is not None:
                task.uncancel()
        finally:
            self._finish(cancelled=cancelled or self._stop_requested)

    async def _run_sequential(self) -> None:
        for index, source in enumerate(self._sources, start=1):
            if self._stop_requested:
                return
            await self._run_source(index, source)

    async def _run_parallel(self) -> None:
        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def run_limited(index: int, source: SourceAdapter) -> None:
            async with semaphore:
                if self._stop_requested:
                    return
                await self._run_source(index, source)

        async with asyncio.TaskGroup() as tg:
            for index, source in enumerate(self._sources, start=1):
                tg.create_task(run_limited(index, source))

    async def _run_source(self, index: int, source: SourceAdapter) -> None:
        name = source.name
        self._publish(name, index, SourceStatus.IN_PROGRESS)

        try:
            raw = await fetch_source(source, self._source_timeout)
            kept = self._process(name, raw)
        except SourceError as e:
            logger.warning("Source '%s' failed: %s", name, e.cause)
            self._failures.append(failure_from(e))
            self.errors.send_nowait(e)
            self._publish(name, index, SourceStatus.FAILED, error=str(e))
            return

        # No await from here to the completed event: another source's
        # records can never interleave with this batch.
        self._raw_count += len(raw)
        self._emitted_ids.update(r.id for r in kept)
        for record in kept:
            self.records.send_nowait(record)
        self._succeeded.append(name)
        self._publish(name, index, SourceStatus.COMPLETED, items_found=len(kept))
        logger.info("Source '%s': %d raw, %d emitted", name, len(raw), len(kept))

    def _process(self, name: str, raw: list[Record]) -> list[Record]:
        """Flag, rescore and filter one source's batch, minus ids already emitted."""
        try:
            processed = self._compiled.process(flag_records(raw))
        except Exception as e:
            raise SourceError(name, e) from e
        kept: list[Record] = []
        seen = set(self._emitted_ids)
        for record in processed:
            if record.id in seen:
                continue
            seen.add(record.id)
            kept.append(record)
        return kept

    def _publish(
        self,
        source: str,
        index: int,
        status: SourceStatus,
        *,
        items_found: int = 0,
        error: str | None = None,
    ) -> None:
        self.progress.send_nowait(ProgressEvent(
            source=source,
            items_found=items_found,
            current=index,
            total=len(self._sources),
            elapsed=time.monotonic() - self._started,
            status=status,
            error=error,
        ))

    def _finish(self, *, cancelled: bool) -> None:
        finished = set(self._succeeded) | {f.source for f in self._failures}
        if cancelled:
            for index, source in enumerate(self._sources, start=1):
                if source.name not in finished:
                    self._cancelled.append(source.name)
                    self._publish(source.name, index, SourceStatus.CANCELLED)

        status = SourceStatus.CANCELLED if cancelled else SourceStatus.COMPLETED
        self._publish("", 0, status, items_found=self.emitted)

        self.records.close()
        self.errors.close()
        self.progress.close()

        self._finished_at = datetime.now()
        self._state = RunState.CANCELLED if cancelled else RunState.FINISHED
        logger.info(
            "Run %s: %d records from %d/%d sources (%d failed)",
            self._state, self.emitted, len(self._succeeded), len(self._sources),
            len(self._failures),
        )
        self._done.set()

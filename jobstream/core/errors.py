"""Exception hierarchy for the aggregation core."""

from collections.abc import Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from jobstream.core.schemas import SourceFailure


class JobstreamError(Exception):
    """Base class for all jobstream errors."""


class SourceError(JobstreamError):
    """A single source adapter failed. Never fatal to a run."""

    def __init__(self, source: str, cause: BaseException | str) -> None:
        self.source = source
        self.cause = cause
        super().__init__(f"error fetching {source}: {cause}")


class SourceTimeoutError(SourceError):
    """A source adapter exceeded its per-source timeout."""

    def __init__(self, source: str, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(source, f"timed out after {timeout:g}s")


class AllSourcesFailedError(JobstreamError):
    """Every configured source failed during a run."""

    def __init__(self, failures: Sequence["SourceFailure"]) -> None:
        self.failures = list(failures)
        names = ", ".join(f.source for f in self.failures)
        super().__init__(f"all {len(self.failures)} sources failed: {names}")


class RecordIdentityError(JobstreamError):
    """A pipeline stage tried to rewrite a record's id or source."""


class ChannelClosedError(JobstreamError):
    """Send on, receive from, or re-close of a closed channel."""


class ProfileNotFoundError(JobstreamError):
    """No stored profile matches the requested id."""

"""Core data models for the aggregation pipeline."""

import re
from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from jobstream.core.errors import RecordIdentityError

_IMMUTABLE_FIELDS = frozenset({"id", "source"})
_REMOTE_RE = re.compile(r"\bremote\b", re.IGNORECASE)


class Record(BaseModel):
    """A normalized job posting produced by a source adapter.

    Frozen. Pipeline stages enrich a record via evolve(), which returns a
    copy and refuses to touch id or source.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    source: str
    company: str = ""
    location: str = ""
    description: str = ""
    url: str = ""
    posted_at: datetime | None = None
    salary: str = ""
    job_type: str = ""
    email: str = ""
    score: int = Field(default=50, ge=0, le=100)
    has_flags: bool = False
    flags: tuple[str, ...] = ()
    applied: bool = False
    applied_at: datetime | None = None

    @field_validator("id", "source")
    @classmethod
    def identity_not_empty(cls, v: str) -> str:
        if not v.strip():
            msg = "id and source must not be empty"
            raise ValueError(msg)
        return v

    @property
    def is_remote(self) -> bool:
        return bool(_REMOTE_RE.search(self.location) or _REMOTE_RE.search(self.job_type))

    @property
    def text(self) -> str:
        """Title and description joined, the haystack for keyword matching."""
        return f"{self.title} {self.description}"

    def evolve(self, **changes: Any) -> "Record":
        """Return a copy with the given fields replaced.

        Raises:
            RecordIdentityError: If changes touch id or source.
        """
        touched = _IMMUTABLE_FIELDS & changes.keys()
        if touched:
            msg = f"pipeline stages must not rewrite {sorted(touched)} (record {self.id})"
            raise RecordIdentityError(msg)
        return self.model_copy(update=changes)


class SourceStatus(StrEnum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ProgressEvent(BaseModel):
    """Snapshot of one source's contribution to a run.

    The event with an empty source is the run summary, emitted last.
    """

    model_config = ConfigDict(frozen=True)

    source: str = ""
    items_found: int = 0
    current: int = 0
    total: int = 0
    elapsed: float = 0.0
    status: SourceStatus
    error: str | None = None

    @property
    def is_run_summary(self) -> bool:
        return self.source == ""

    @property
    def is_terminal(self) -> bool:
        return self.status in (
            SourceStatus.COMPLETED,
            SourceStatus.FAILED,
            SourceStatus.CANCELLED,
        )


class SourceFailure(BaseModel):
    """Why one source contributed nothing to a run."""

    model_config = ConfigDict(frozen=True)

    source: str
    error: str
    timed_out: bool = False


class RunSummary(BaseModel):
    """Outcome of an incremental run, per source."""

    raw: int = 0
    emitted: int = 0
    succeeded: list[str] = Field(default_factory=list)
    failed: list[SourceFailure] = Field(default_factory=list)
    cancelled: list[str] = Field(default_factory=list)
    started_at: datetime
    finished_at: datetime | None = None

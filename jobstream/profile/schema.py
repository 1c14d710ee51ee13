"""Profile model: a user's matching and scoring criteria."""

from datetime import datetime
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

ALLOWED_SENIORITY = {"", "junior", "mid", "senior", "staff", "principal", "director"}


class ScoringWeights(BaseModel):
    """Per-dimension weights for the weighted scorer, conceptually summing to 100.

    All-zero weights select the unweighted average scorer.
    """

    model_config = ConfigDict(frozen=True)

    technology: float = Field(default=0.0, ge=0.0)
    seniority: float = Field(default=0.0, ge=0.0)
    location: float = Field(default=0.0, ge=0.0)
    company: float = Field(default=0.0, ge=0.0)
    remote: float = Field(default=0.0, ge=0.0)

    @property
    def is_set(self) -> bool:
        return self.total > 0

    @property
    def total(self) -> float:
        return self.technology + self.seniority + self.location + self.company + self.remote


class Profile(BaseModel):
    """Named, user-owned configuration the core only ever reads."""

    id: str
    name: str = ""
    keywords: list[str] = Field(default_factory=list)
    exclude_keywords: list[str] = Field(default_factory=list)
    locations: list[str] = Field(default_factory=list)
    exclude_locations: list[str] = Field(default_factory=list)
    preferred_companies: list[str] = Field(default_factory=list)
    avoid_companies: list[str] = Field(default_factory=list)
    preferred_tech: list[str] = Field(default_factory=list)
    avoid_tech: list[str] = Field(default_factory=list)
    seniority: str = ""
    min_score: int = Field(default=0, ge=0, le=100)
    max_score: int = Field(default=100, ge=0, le=100)
    must_have_email: bool = False
    exclude_flagged: bool = False
    prefer_remote: bool = False
    posted_after: datetime | None = None
    posted_before: datetime | None = None
    weights: ScoringWeights = Field(default_factory=ScoringWeights)
    contact_email: str = ""
    cv_path: str = ""
    cover_path: str = ""

    @field_validator("id")
    @classmethod
    def id_normalized(cls, v: str) -> str:
        v = v.strip().lower()
        if not v:
            msg = "profile id must not be empty"
            raise ValueError(msg)
        return v

    @field_validator("seniority")
    @classmethod
    def seniority_in_allowed(cls, v: str) -> str:
        v = v.lower().strip()
        if v not in ALLOWED_SENIORITY:
            msg = f"seniority must be one of {sorted(ALLOWED_SENIORITY - {''})}, got '{v}'"
            raise ValueError(msg)
        return v

    @model_validator(mode="after")
    def bounds_ordered(self) -> "Profile":
        if self.min_score > self.max_score:
            msg = f"min_score ({self.min_score}) must not exceed max_score ({self.max_score})"
            raise ValueError(msg)
        if self.posted_after and self.posted_before and self.posted_after >= self.posted_before:
            msg = "posted_after must be earlier than posted_before"
            raise ValueError(msg)
        return self

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Profile":
        """Load profile from a YAML file."""
        path = Path(path)
        if not path.exists():
            msg = f"Profile file not found: {path}"
            raise FileNotFoundError(msg)
        raw: dict[str, Any] = yaml.safe_load(path.read_text()) or {}
        return cls.model_validate(raw)

    def to_yaml(self, path: str | Path) -> None:
        """Write profile to a YAML file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        data = self.model_dump(mode="json")
        path.write_text(yaml.dump(data, default_flow_style=False, sort_keys=False))

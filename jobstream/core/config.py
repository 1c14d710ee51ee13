"""Configuration models and YAML loader for the aggregator."""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

SOURCE_TYPES = ("remoteok", "greenhouse", "rss", "browser")


class SourceConfig(BaseModel):
    """A single configured source adapter."""

    type: str
    name: str = ""
    enabled: bool = True
    options: dict[str, Any] = Field(default_factory=dict)

    @field_validator("type")
    @classmethod
    def type_known(cls, v: str) -> str:
        v = v.lower().strip()
        if v not in SOURCE_TYPES:
            msg = f"source type must be one of {list(SOURCE_TYPES)}, got '{v}'"
            raise ValueError(msg)
        return v

    @model_validator(mode="after")
    def default_name(self) -> "SourceConfig":
        if not self.name.strip():
            self.name = self.type
        return self


class AggregatorConfig(BaseModel):
    """Timeouts and concurrency for aggregation runs (seconds)."""

    source_timeout: float = Field(default=30.0, gt=0)
    run_timeout: float = Field(default=300.0, gt=0)
    parallel: bool = False
    max_concurrency: int = Field(default=4, ge=1)

    @model_validator(mode="after")
    def run_outlasts_source(self) -> "AggregatorConfig":
        if self.run_timeout <= self.source_timeout:
            msg = "run_timeout must be greater than source_timeout"
            raise ValueError(msg)
        return self


class BrowserConfig(BaseModel):
    """Browser session configuration."""

    cookies_path: str = ""
    headless: bool = True
    timeout_ms: int = Field(default=30000, ge=1000)
    user_agent: str = ""


class DatabaseConfig(BaseModel):
    """Database configuration."""

    path: str = "data/jobstream.db"


class Settings(BaseModel):
    """Top-level settings loaded from YAML."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    aggregator: AggregatorConfig = Field(default_factory=AggregatorConfig)
    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    sources: list[SourceConfig] = Field(default_factory=list)
    profile_path: str | None = None

    @field_validator("sources")
    @classmethod
    def at_least_one_enabled(cls, v: list[SourceConfig]) -> list[SourceConfig]:
        if not any(s.enabled for s in v):
            msg = "at least one enabled source must be configured"
            raise ValueError(msg)
        names = [s.name for s in v]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            msg = f"source names must be unique, duplicated: {duplicates}"
            raise ValueError(msg)
        return v

    @property
    def enabled_sources(self) -> list[SourceConfig]:
        return [s for s in self.sources if s.enabled]

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """Load settings from a YAML file."""
        path = Path(path)
        if not path.exists():
            msg = f"Config file not found: {path}"
            raise FileNotFoundError(msg)
        raw: dict[str, Any] = yaml.safe_load(path.read_text()) or {}
        return cls.model_validate(raw)

"""Source adapter registry with lazy loading.

Adapter modules are imported on first use, so a config without browser
sources never imports patchright.

Usage:
    from jobstream.sources import build_sources

    sources = build_sources(settings)
"""

from __future__ import annotations

import importlib
from typing import TYPE_CHECKING

from jobstream.sources.base import FunctionSource, SourceAdapter

if TYPE_CHECKING:
    from jobstream.core.config import Settings, SourceConfig

__all__ = [
    "FunctionSource",
    "SourceAdapter",
    "available_sources",
    "build_source",
    "build_sources",
]

# Lazy registry: maps source type -> (module_path, class_name)
_REGISTRY: dict[str, tuple[str, str]] = {
    "remoteok": ("jobstream.sources.remoteok", "RemoteOKSource"),
    "greenhouse": ("jobstream.sources.greenhouse", "GreenhouseSource"),
    "rss": ("jobstream.sources.rss", "RSSSource"),
    "browser": ("jobstream.sources.browser", "BrowserListingSource"),
}


def build_source(source: SourceConfig, settings: Settings) -> SourceAdapter:
    """Instantiate one adapter from its config entry.

    Raises:
        ValueError: If the source type is unknown or its options are invalid.
    """
    if source.type not in _REGISTRY:
        valid = ", ".join(sorted(_REGISTRY))
        msg = f"Unknown source type '{source.type}'. Available: {valid}"
        raise ValueError(msg)

    module_path, class_name = _REGISTRY[source.type]
    module = importlib.import_module(module_path)
    cls = getattr(module, class_name)
    return cls.from_config(source, settings)  # type: ignore[no-any-return]


def build_sources(settings: Settings) -> list[SourceAdapter]:
    """Instantiate every enabled source, in configured order."""
    return [build_source(source, settings) for source in settings.enabled_sources]


def available_sources() -> list[str]:
    """Return sorted list of registered source types."""
    return sorted(_REGISTRY)

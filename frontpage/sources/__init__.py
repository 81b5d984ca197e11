"""Backend source registry."""

from __future__ import annotations

from typing import TYPE_CHECKING

from frontpage.config import get_source_config

if TYPE_CHECKING:
    from frontpage.sources.base import BaseSource

SOURCES: dict[str, type[BaseSource]] = {}


def register_source(name: str):
    """Decorator to register a source implementation."""

    def decorator(cls):
        SOURCES[name] = cls
        return cls

    return decorator


def create_source(config: dict, role: str) -> BaseSource | None:
    """Instantiate the source configured for ``role``, or None if disabled."""
    cfg = get_source_config(config, role)
    if not cfg or not cfg.get("enabled", True):
        return None
    source_type = cfg.get("type", "")
    if source_type not in SOURCES:
        raise ValueError(f"Unknown source type '{source_type}' for {role}")
    return SOURCES[source_type](cfg)


# Import implementations to trigger registration
from frontpage.sources.currency import DolarApiSource  # noqa: E402, F401
from frontpage.sources.http import HttpAdSource, HttpArticleSource  # noqa: E402, F401

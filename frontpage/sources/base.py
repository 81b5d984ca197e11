"""Abstract base classes for backend collaborators."""

from __future__ import annotations

from abc import ABC, abstractmethod

from frontpage.models import Advertisement, Article, CurrencyRate


class SourceError(Exception):
    """A backend answered with something we cannot use."""


class BaseSource(ABC):
    """Base class for every backend source."""

    def __init__(self, config: dict):
        self.config = config

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable source name."""
        ...


class BaseArticleSource(BaseSource):
    """Document-store access for articles. No ordering is assumed."""

    @abstractmethod
    async def fetch_top_articles(self, n: int) -> list[Article]:
        ...

    @abstractmethod
    async def fetch_by_category(self, category: str, n: int) -> list[Article]:
        ...

    @abstractmethod
    async def fetch_by_tag(self, tag: str, n: int) -> list[Article]:
        ...


class BaseAdSource(BaseSource):
    @abstractmethod
    async def fetch_ad_slots(self) -> dict[str, list[Advertisement]]:
        """Ads grouped by placement key."""
        ...


class BaseAuxiliarySource(BaseSource):
    @abstractmethod
    async def fetch_rates(self) -> list[CurrencyRate]:
        ...

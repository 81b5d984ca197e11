"""Core data models for the content delivery cache."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Mapping

FEATURED_TYPES = ("cover", "featured1", "featured2", "featured3", "none")

# Layout priority: lower ranks first, anything unknown sorts last
FEATURED_RANK = {
    "cover": 1,
    "featured1": 2,
    "featured2": 3,
    "featured3": 4,
}
UNRANKED = 99

VISIT_CATEGORY = "visit_category"
VISIT_TAG = "visit_tag"
SCROLL = "scroll"
READING_TIME = "reading_time"
EVENT_KINDS = (VISIT_CATEGORY, VISIT_TAG, SCROLL, READING_TIME)


def _parse_date(value: Any) -> datetime | None:
    """Accept ISO strings, epoch seconds/millis or datetimes."""
    if value is None or value == "":
        return None
    try:
        if isinstance(value, datetime):
            dt = value
        elif isinstance(value, (int, float)):
            # Millisecond epochs are common in the backend payloads
            seconds = value / 1000 if value > 10**11 else value
            dt = datetime.fromtimestamp(seconds, tz=timezone.utc)
        elif isinstance(value, dict) and "seconds" in value:
            dt = datetime.fromtimestamp(value["seconds"], tz=timezone.utc)
        else:
            dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except (OverflowError, OSError, ValueError, TypeError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _as_tuple(value: Any) -> tuple:
    if not value:
        return ()
    if isinstance(value, (list, tuple)):
        return tuple(value)
    return (value,)


@dataclass(frozen=True)
class Article:
    """A published news item as delivered by the article source."""

    id: str
    title: str
    description: str = ""
    subtitle: str = ""
    images: tuple[str, ...] = ()
    date: datetime | None = None
    author: str = ""
    category: str = ""
    tags: tuple[str, ...] = ()
    has_video: bool = False
    featured_type: str = "none"

    @property
    def featured_rank(self) -> int:
        return FEATURED_RANK.get(self.featured_type, UNRANKED)

    @classmethod
    def from_dict(cls, data: dict) -> Article:
        """Build an Article from a backend document."""
        images = data.get("image") or data.get("images") or data.get("imageUrl")
        featured = data.get("featuredType") or data.get("featured_type") or "none"
        if featured not in FEATURED_TYPES:
            featured = "none"
        return cls(
            id=str(data["id"]),
            title=data.get("title", ""),
            description=data.get("description", ""),
            subtitle=data.get("subtitle", ""),
            images=_as_tuple(images),
            date=_parse_date(data.get("date")),
            author=data.get("author", "") or "",
            category=data.get("mainCategory") or data.get("category") or "",
            tags=_as_tuple(data.get("tags")),
            has_video=bool(data.get("video") or data.get("youtubeLink")),
            featured_type=featured,
        )


@dataclass(frozen=True)
class Advertisement:
    """An ad creative assigned to a placement."""

    id: str
    placement: str
    title: str = ""
    image_url: str = ""
    link_url: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> Advertisement:
        return cls(
            id=str(data["id"]),
            placement=data.get("category") or data.get("placement") or "",
            title=data.get("title", ""),
            image_url=data.get("imageUrl") or data.get("image") or "",
            link_url=data.get("linkUrl") or data.get("link") or "",
        )


@dataclass(frozen=True)
class CurrencyRate:
    """Buy/sell quote for one exchange house."""

    name: str
    buy: float
    sell: float


@dataclass(frozen=True)
class AuxiliaryData:
    """Secondary payload (currency rates), time-stamped on its own."""

    fetched_at: float
    rates: tuple[CurrencyRate, ...] = ()


@dataclass(frozen=True)
class Snapshot:
    """Immutable bundle of aggregated content.

    Updates always produce a new Snapshot; ``ad_slots`` is wrapped in a
    read-only mapping so readers cannot mutate a shared instance.
    """

    fetched_at: float
    articles: tuple[Article, ...] = ()
    ad_slots: Mapping[str, tuple[Advertisement, ...]] = field(
        default_factory=dict,
    )
    auxiliary: AuxiliaryData | None = None

    def __post_init__(self):
        object.__setattr__(self, "articles", tuple(self.articles))
        object.__setattr__(
            self,
            "ad_slots",
            MappingProxyType(
                {k: tuple(v) for k, v in dict(self.ad_slots).items()},
            ),
        )


@dataclass(frozen=True)
class BehaviorEvent:
    """A navigation or interaction signal reported by the rendering layer.

    ``kind`` is one of EVENT_KINDS. ``topic`` is set for visits, ``value``
    carries the scroll depth percent or the dwell duration in milliseconds.
    ``timestamp`` is assigned by the recorder.
    """

    kind: str
    topic: str = ""
    value: float = 0.0
    timestamp: float | None = None

    @classmethod
    def visit_category(cls, category: str) -> BehaviorEvent:
        return cls(kind=VISIT_CATEGORY, topic=category)

    @classmethod
    def visit_tag(cls, tag: str) -> BehaviorEvent:
        return cls(kind=VISIT_TAG, topic=tag)

    @classmethod
    def scroll(cls, depth_percent: float) -> BehaviorEvent:
        return cls(kind=SCROLL, value=depth_percent)

    @classmethod
    def reading_time(cls, duration_ms: float) -> BehaviorEvent:
        return cls(kind=READING_TIME, value=duration_ms)

    @classmethod
    def from_dict(cls, data: dict) -> BehaviorEvent:
        kind = data["kind"]
        if kind == VISIT_CATEGORY:
            return cls.visit_category(data.get("category", ""))
        if kind == VISIT_TAG:
            return cls.visit_tag(data.get("tag", ""))
        if kind == SCROLL:
            return cls.scroll(float(data.get("depth", 0)))
        if kind == READING_TIME:
            return cls.reading_time(float(data.get("duration_ms", 0)))
        raise ValueError(f"Unknown behavior event kind: {kind!r}")


@dataclass(frozen=True)
class PrefetchTarget:
    """A topic worth warming, with its priority."""

    kind: str  # category, tag
    topic: str
    score: float

    @property
    def key(self) -> str:
        return f"{self.kind}:{self.topic}"


@dataclass(frozen=True)
class CacheResult:
    """What the cache hands back: the snapshot and whether it is stale."""

    snapshot: Any
    stale: bool = False
